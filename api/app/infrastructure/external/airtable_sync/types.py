"""
Tipos y utilidades puras para la sincronización Airtable <-> Postgres.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields as dc_fields
from datetime import datetime, timezone
from typing import Any, Optional


# Clave reservada para errores de metadatos (no asociados a un record)
METAS_RECORD = "METAS"

# Clases de tipo de columna que expone la introspección del store relacional
TYPE_CLASSES = ("string", "int", "float", "bool", "date", "enum", "array", "json")


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Airtable suele devolver ISO8601 con zona; aun así, normalizamos para
    comparar/almacenar de forma consistente.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_airtable_datetime(raw: Any) -> Optional[datetime]:
    """
    Parsea un timestamp de Airtable ("2025-12-16T10:15:00.000Z") a datetime UTC.

    Acepta también datetime ya construidos. Retorna None si el valor es vacío.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    return ensure_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))


# ---------------------------------------------------------------------------
# Metadatos Airtable
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldMetadata:
    """Metadatos de un field de Airtable (id estable, nombre mutable)."""

    id: str
    name: str
    type: str
    options: dict[str, Any] = field(default_factory=dict)
    path_name: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any], table_name: str) -> "FieldMetadata":
        return cls(
            id=raw["id"],
            name=raw["name"],
            type=raw["type"],
            options=raw.get("options") or {},
            path_name=f"{table_name}.{raw['name']}",
        )


@dataclass
class TableMetadata:
    """
    Metadatos de una tabla Airtable indexados por nombre y por id de field.

    Los ids son estables entre renombres, los nombres no.
    """

    id: str
    name: str
    primary_field_id: Optional[str]
    fields: dict[str, FieldMetadata]
    fields_by_id: dict[str, FieldMetadata]

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "TableMetadata":
        by_name: dict[str, FieldMetadata] = {}
        by_id: dict[str, FieldMetadata] = {}
        for raw_field in raw.get("fields") or []:
            meta = FieldMetadata.from_raw(raw_field, raw["name"])
            by_name[meta.name] = meta
            by_id[meta.id] = meta
        return cls(
            id=raw["id"],
            name=raw["name"],
            primary_field_id=raw.get("primaryFieldId"),
            fields=by_name,
            fields_by_id=by_id,
        )

    def replace_field(self, meta: FieldMetadata) -> None:
        """Reemplaza un field en ambos índices (p.ej. lookup resuelto o cambio de tipo)."""
        previous = self.fields_by_id.get(meta.id)
        if previous is not None and previous.name != meta.name:
            self.fields.pop(previous.name, None)
        self.fields[meta.name] = meta
        self.fields_by_id[meta.id] = meta


@dataclass(frozen=True)
class AirtableRecord:
    """Registro Airtable en formato REST (fields indexados por nombre)."""

    record_id: str
    fields: dict[str, Any]
    created_time: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "AirtableRecord":
        return cls(
            record_id=raw["id"],
            fields=raw.get("fields") or {},
            created_time=raw.get("createdTime"),
        )


# ---------------------------------------------------------------------------
# Esquema relacional
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ColumnSchema:
    """
    Columna del store relacional.

    - type_class: una de TYPE_CLASSES
    - params: valores posibles para enums / arrays restringidos
    - optional: True si la columna acepta NULL o tiene default
    - nullable: True si la columna acepta NULL explícito
    """

    name: str
    type_class: str
    optional: bool = True
    params: Optional[tuple[str, ...]] = None
    raw_type: str = ""
    nullable: bool = True


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: dict[str, ColumnSchema]
    primary_keys: tuple[str, ...]

    @property
    def path_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class UpsertOutcome:
    """Resultado de un upsert: filas insertadas y filas realmente modificadas."""

    inserted: int = 0
    updated: int = 0

    @property
    def affected(self) -> int:
        return self.inserted + self.updated


# ---------------------------------------------------------------------------
# Relaciones (tablas de unión)
# ---------------------------------------------------------------------------


@dataclass
class RelationGroup:
    """
    Filas pendientes para una tabla de unión, con sus columnas pk/fk.

    `pks` lista las pks tocadas en el batch, incluso las que quedaron sin
    ningún link: sus filas viejas también deben borrarse.
    """

    table: str
    pk_column: str
    fk_column: str
    rows: list[tuple[Any, Any]] = field(default_factory=list)
    pks: list[Any] = field(default_factory=list)

    def touch(self, pk: Any) -> None:
        if pk not in self.pks:
            self.pks.append(pk)

    def add(self, pk: Any, fk: Any) -> None:
        self.touch(pk)
        if (pk, fk) not in self.rows:
            self.rows.append((pk, fk))

    def fks_by_pk(self) -> dict[Any, list[Any]]:
        result: dict[Any, list[Any]] = {pk: [] for pk in self.pks}
        for pk, fk in self.rows:
            result.setdefault(pk, []).append(fk)
        return result

    def as_dicts(self) -> list[dict[str, Any]]:
        return [{self.pk_column: pk, self.fk_column: fk} for pk, fk in self.rows]


class RelationsIndex(dict):
    """Acumulador de RelationRecords agrupados por tabla de unión."""

    def group(self, table: str, pk_column: str, fk_column: str) -> RelationGroup:
        group = self.get(table)
        if group is None:
            group = RelationGroup(table=table, pk_column=pk_column, fk_column=fk_column)
            self[table] = group
        return group

    def add(self, table: str, pk_column: str, fk_column: str, pk: Any, fk: Any) -> None:
        self.group(table, pk_column, fk_column).add(pk, fk)

    def touch(self, table: str, pk_column: str, fk_column: str, pk: Any) -> None:
        self.group(table, pk_column, fk_column).touch(pk)

    def merge(self, other: "RelationsIndex") -> None:
        for table, group in other.items():
            target = self.group(table, group.pk_column, group.fk_column)
            for pk in group.pks:
                target.touch(pk)
            for pk, fk in group.rows:
                target.add(pk, fk)

    def assign_pk(self, pk: Any) -> None:
        """Completa la pk de filas creadas antes de conocerla (pk = recordId)."""
        for group in self.values():
            group.rows = [(pk if row_pk is None else row_pk, fk) for row_pk, fk in group.rows]
            group.pks = [pk if row_pk is None else row_pk for row_pk in group.pks]

    def count(self) -> int:
        return sum(len(g.rows) for g in self.values())


# ---------------------------------------------------------------------------
# Estadísticas
# ---------------------------------------------------------------------------


@dataclass
class SyncStats:
    """Contadores por provider. Se resetean después de cada reporte."""

    from_airtable: int = 0
    inserted: int = 0
    updated: int = 0
    upserted: int = 0
    excluded: int = 0
    deleted: int = 0
    upserted_relations: int = 0
    deleted_relations: int = 0
    errors: int = 0

    def reset(self) -> None:
        for f in dc_fields(self):
            setattr(self, f.name, 0)

    def merge(self, other: "SyncStats") -> None:
        for f in dc_fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def snapshot(self) -> "SyncStats":
        return SyncStats(**self.as_dict())

    def since(self, previous: "SyncStats") -> "SyncStats":
        """Diferencia respecto de un snapshot anterior."""
        return SyncStats(**{f.name: getattr(self, f.name) - getattr(previous, f.name) for f in dc_fields(self)})

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in dc_fields(self)}

    def is_empty(self) -> bool:
        # Solo cuentan los valores que merecen aparecer en el reporte
        return (self.deleted + self.excluded + self.errors) == 0
