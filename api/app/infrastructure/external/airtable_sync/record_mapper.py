"""
Conversión de records Airtable <-> filas Postgres para un provider.

Airtable -> Postgres (to_relational):
1. Se indexan los records (pk calculada + link en el IdentityIndex), así una
   columna puede referenciar a otro record de la misma tabla (p.ej. "parent").
2. Se mapea cada columna según su variante (Mirror, Computed, ToOne, ToMany).
   Un error de fila excluye solo ese record: se reporta, se cuenta y se
   deshace su link en el índice. Las relaciones del record se acumulan
   solo si la fila pasa todas las columnas.

Postgres -> Airtable (to_remote):
- Se arma el record Airtable y la fila para la base al mismo tiempo, porque
  la escritura va primero a Airtable y luego a la base.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Hashable, Iterable, Mapping, Optional

from loguru import logger

from app.shared.exceptions.domain import (
    DomainException,
    RecordExclusionException,
    SyncConfigurationException,
)

from .provider import DataProvider, ProviderRegistry
from .sync_config import ColumnMapping, Computed, Mirror, ToMany, ToOne, has_database_column, is_single_field
from .type_helpers import check_value
from .types import (
    AirtableRecord,
    ColumnSchema,
    RelationsIndex,
    ensure_utc,
    parse_airtable_datetime,
)


@dataclass
class MappingResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    relations: RelationsIndex = field(default_factory=RelationsIndex)
    # Valores "extra" (sin columna) por recordId
    extras: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class RemoteMappingResult:
    remote_records: list[dict[str, Any]] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    relations: RelationsIndex = field(default_factory=RelationsIndex)


def to_column_date(value: str, db_column: ColumnSchema) -> date | datetime:
    """
    Columnas `date` reciben un date sin zona: un timestamptz se convertiría
    con el TimeZone de la sesión y podría correr el día.
    """
    if db_column.raw_type == "date":
        if len(value) == 10:
            return date.fromisoformat(value)
        return parse_airtable_datetime(value).date()
    return parse_airtable_datetime(value)


def format_remote_date(value: Any, field_type: str) -> Any:
    """
    Formato textual esperado por Airtable:
    - date: YYYY-MM-DD
    - dateTime: YYYY-MM-DDTHH:MM:SS.000Z (UTC)
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_airtable_datetime(value)
    if field_type == "date":
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat()
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.000Z")


class RecordMapper:
    def __init__(self, provider: DataProvider, registry: ProviderRegistry) -> None:
        self.provider = provider
        self.registry = registry

    @property
    def config(self):
        return self.provider.config

    # ------------------------------------------------------------------
    # Airtable -> Postgres
    # ------------------------------------------------------------------

    def to_relational(self, records: Iterable[AirtableRecord]) -> MappingResult:
        records = list(records)
        result = MappingResult()
        if not records:
            return result

        schema = self.provider.schema()
        indexed = self._index_records(records)

        for record, pk_value in indexed:
            row_relations = RelationsIndex()
            try:
                row, extras = self._map_record(record, pk_value, schema.columns, row_relations)
            except RecordExclusionException as e:
                logger.debug(f"[{self.provider.name}] Record excluido del índice: {e.message}")
                self.provider.index.unlink(record.record_id)
                continue

            result.rows.append(row)
            result.relations.merge(row_relations)
            if extras:
                result.extras[record.record_id] = extras

        logger.debug(f"[{self.provider.name}] {len(result.rows)} filas para la base")
        return result

    def _index_records(self, records: list[AirtableRecord]) -> list[tuple[AirtableRecord, Hashable]]:
        pk = self.provider.primary_key
        columns = self.provider.schema().columns
        indexed: list[tuple[AirtableRecord, Hashable]] = []

        for record in records:
            if pk == self.config.record_id_column:
                pk_value = record.record_id
            else:
                mapping = self.config.mapper.get(pk)
                if mapping is None:
                    raise SyncConfigurationException(
                        f"La pk {pk} de la tabla {self.provider.table_name} no está declarada en el mapper",
                        details={"provider": self.provider.name, "pk": pk},
                    )
                try:
                    pk_value = self._column_value(pk, mapping, record, columns.get(pk))
                except RecordExclusionException:
                    continue
                if pk_value is None:
                    logger.debug(f"[{self.provider.name}] Sin pk para {record.record_id}, se omite")
                    continue

            self.provider.index.link(record.record_id, pk_value)
            indexed.append((record, pk_value))

        logger.debug(f"[{self.provider.name}] {len(indexed)} records indexados por airtableId (pk: {pk})")
        return indexed

    def _map_record(
        self,
        record: AirtableRecord,
        pk_value: Hashable,
        columns: Mapping[str, ColumnSchema],
        relations: RelationsIndex,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        config = self.config
        pk = self.provider.primary_key

        row: dict[str, Any] = {config.record_id_column: record.record_id}
        if config.created_column in columns:
            row[config.created_column] = parse_airtable_datetime(
                record.fields.get(config.created_field) or record.created_time
            )
        if config.updated_column in columns:
            row[config.updated_column] = parse_airtable_datetime(record.fields.get(config.updated_field))

        extras: dict[str, Any] = {}
        for column, mapping in config.mapper.items():
            if column == pk:
                row[column] = pk_value
                continue

            if isinstance(mapping, ToMany):
                self._collect_links(column, mapping, record, pk_value, relations)
                continue

            db_column = columns.get(column) if has_database_column(mapping) else None
            value = self._column_value(column, mapping, record, db_column)

            if db_column is None:
                if value is not None:
                    extras[column] = value
                continue

            if value is None and not db_column.nullable:
                # La columna tiene default: se deja a la base
                continue
            row[column] = value

        return row, extras

    def _raw_value(self, mapping: ColumnMapping, record: AirtableRecord) -> Any:
        if isinstance(mapping, Computed):
            return mapping.func({name: record.fields.get(name) for name in mapping.airtable})

        value = record.fields.get(mapping.airtable)
        if isinstance(mapping, Mirror) and value is not None and mapping.filter is not None:
            value = mapping.filter(value)
        return value

    def _exclude(
        self,
        record: AirtableRecord,
        column: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> RecordExclusionException:
        self.provider.report_to_devs(record, column, message, data)
        self.provider.stats.excluded += 1
        return RecordExclusionException(record.record_id, column, message)

    def _column_value(
        self,
        column: str,
        mapping: ColumnMapping,
        record: AirtableRecord,
        db_column: Optional[ColumnSchema],
    ) -> Any:
        value = self._raw_value(mapping, record)

        if isinstance(mapping, ToOne) and isinstance(value, (list, tuple)):
            value = value[0] if value else None

        # Sin columna (extra): no hay restricciones que validar
        if db_column is None:
            return value

        if value is None and not db_column.optional:
            # Probablemente alguien no terminó de completar el record
            if is_single_field(mapping):
                self.provider.report_to_sales(
                    record, mapping.airtable, f"Por favor completa un valor para {mapping.airtable}"
                )
            raise self._exclude(record, column, "Dato obligatorio no provisto.", {"value": None})

        if isinstance(mapping, ToOne) and value is not None:
            target = self.registry.get(mapping.target)
            local_id = target.index.get_local(value)
            if local_id is None:
                message = (
                    f"La columna {column} referencia un record de {target.name} que no está indexado. "
                    f"Puede que ese record haya sido excluido por estar incompleto."
                )
                self.provider.report_to_sales(
                    record,
                    mapping.airtable,
                    f"El record enlazado en {mapping.airtable} no pudo sincronizarse; revisa que esté completo.",
                )
                raise self._exclude(record, column, message, {"value": value})
            value = local_id

        if value is not None and db_column.type_class == "date" and isinstance(value, str):
            try:
                value = to_column_date(value, db_column)
            except ValueError:
                raise self._exclude(record, column, "Tipo de dato inválido", {"value": value})

        type_error = check_value(value, db_column)
        if type_error:
            raise self._exclude(record, column, "Tipo de dato inválido", {"error": type_error})

        return value

    def _collect_links(
        self,
        column: str,
        mapping: ToMany,
        record: AirtableRecord,
        pk_value: Hashable,
        relations: RelationsIndex,
    ) -> None:
        value = record.fields.get(mapping.airtable)
        relations.touch(mapping.table, mapping.pk_column, mapping.fk_column, pk_value)
        if value is None:
            return

        if not isinstance(value, (list, tuple)):
            raise self._exclude(record, column, "Se esperaba una lista de recordIds.", {"value": value})

        target = self.registry.get(mapping.target)
        for linked in value:
            fk_value = target.index.get_local(linked)
            if fk_value is None:
                # Solo se descarta este link, el record sigue
                self.provider.report_to_devs(
                    record,
                    column,
                    f"El link {linked} referencia un record de {target.name} que no está indexado.",
                    {"linked": linked},
                )
                self.provider.stats.excluded += 1
                continue
            relations.add(mapping.table, mapping.pk_column, mapping.fk_column, pk_value, fk_value)

    # ------------------------------------------------------------------
    # Postgres -> Airtable
    # ------------------------------------------------------------------

    def to_remote(self, rows: Iterable[Mapping[str, Any]]) -> RemoteMappingResult:
        """
        Limitaciones conocidas: los Computed no se envían a Airtable (solo a la base).
        Un link que no se puede resolver hace fallar toda la operación.
        """
        config = self.config
        schema = self.provider.schema()
        pk = self.provider.primary_key
        meta = self.provider.metadata()
        result = RemoteMappingResult()

        for row in rows:
            pk_value = row.get(pk)
            if pk != config.record_id_column and pk_value is None:
                raise DomainException(
                    f"Se debe proveer un valor para la pk {pk} de {self.provider.table_name}",
                    details={"pk": pk},
                )

            remote_id = row.get(config.record_id_column)
            fields: dict[str, Any] = {}
            db_row: dict[str, Any] = {config.record_id_column: remote_id} if remote_id else {}

            for key, value in row.items():
                if key == config.record_id_column:
                    continue

                mapping = config.mapper.get(key)
                if mapping is None:
                    logger.warning(
                        f"[{self.provider.name}] {key} no está mapeado para Airtable; solo se escribe en la base"
                    )
                    db_row[key] = value
                    continue

                db_column = schema.columns.get(key)
                if value is None and db_column is not None and not db_column.optional:
                    raise DomainException(
                        f"Se debe proveer un valor para {self.provider.table_name}.{key}",
                        details={"column": key},
                    )

                if isinstance(mapping, Computed):
                    if has_database_column(mapping):
                        db_row[key] = value
                    continue

                if isinstance(mapping, ToOne):
                    target = self.registry.get(mapping.target)
                    remote_value = [] if value is None else [target.index.get_remote(value, required=True)]
                    db_row[key] = value

                elif isinstance(mapping, ToMany):
                    if not isinstance(value, (list, tuple)):
                        raise DomainException(
                            f"{key} debe ser una lista de ids (relación ToMany)",
                            details={"column": key, "value": repr(value)},
                        )
                    target = self.registry.get(mapping.target)
                    remote_value = []
                    result.relations.touch(mapping.table, mapping.pk_column, mapping.fk_column, pk_value)
                    for fk_value in value:
                        remote_value.append(target.index.get_remote(fk_value, required=True))
                        result.relations.add(mapping.table, mapping.pk_column, mapping.fk_column, pk_value, fk_value)

                else:
                    remote_value = value
                    if has_database_column(mapping):
                        db_row[key] = value
                    field_meta = meta.fields.get(mapping.airtable)
                    if field_meta is not None and field_meta.type in ("date", "dateTime"):
                        remote_value = format_remote_date(value, field_meta.type)

                fields[mapping.airtable] = remote_value

            remote_record: dict[str, Any] = {"fields": fields}
            if remote_id:
                remote_record["id"] = remote_id

            result.remote_records.append(remote_record)
            result.rows.append(db_row)

        return result
