"""
Validación estructural Airtable <-> Postgres, una vez por arranque.

Para cada provider:
- la tabla Airtable existe y tiene los fields Created/Updated con su tipo
- cada field referenciado por el mapper existe (por nombre)
- las relaciones apuntan a fields multipleRecordLinks
- cada columna persistida existe en Postgres y su tipo es compatible
- la tabla Postgres tiene exactamente una pk

Cualquier violación es fatal para ese provider (SyncConfigurationException).
Se construye además la lista de field ids a observar por el webhook.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

from loguru import logger

from app.domain.repositories.relational_store import IRelationalStore
from app.shared.exceptions.domain import SyncConfigurationException

from .provider import DataProvider
from .sync_config import Mirror, ToMany, ToOne, has_database_column
from .type_helpers import get_type_helper, has_compatibility_error, resolve_lookup
from .types import ColumnSchema, TableMetadata, TableSchema


class BaseSchemaSource(Protocol):
    def get_base_schema(self) -> list[dict]: ...


@dataclass
class ValidationResult:
    watch_field_ids: set[str] = field(default_factory=set)
    columns_by_field_id: dict[str, ColumnSchema] = field(default_factory=dict)


def check_required_field(table: TableMetadata, field_name: str, field_type: str) -> None:
    meta = table.fields.get(field_name)
    if meta is None:
        raise SyncConfigurationException(
            f'Toda tabla Airtable sincronizada debe tener un field "{field_name}". '
            f'No es el caso de la tabla "{table.name}".',
            details={"table": table.name, "field": field_name},
        )
    if meta.type != field_type:
        raise SyncConfigurationException(
            f'El field "{field_name}" de la tabla Airtable "{table.name}" debe ser de tipo '
            f'"{field_type}" (tipo actual: "{meta.type}")',
            details={"table": table.name, "field": field_name, "type": meta.type},
        )


class SchemaReconciler:
    def __init__(self, schema_source: BaseSchemaSource, store: IRelationalStore) -> None:
        self._source = schema_source
        self._store = store
        self._tables: Optional[dict[str, TableMetadata]] = None

    def load_base_schema(self, force: bool = False) -> dict[str, TableMetadata]:
        """Carga los metadatos de la base una vez, indexados por nombre y por id."""
        if self._tables is not None and not force:
            return self._tables

        tables: dict[str, TableMetadata] = {}
        for raw in self._source.get_base_schema():
            meta = TableMetadata.from_raw(raw)
            tables[meta.name] = meta
            tables[meta.id] = meta
        self._tables = tables
        logger.info(f"Metadatos Airtable cargados: {len({t.id for t in tables.values()})} tablas")
        return tables

    def load_metadata(self, table: str) -> TableMetadata:
        tables = self.load_base_schema()
        meta = tables.get(table)
        if meta is None:
            raise SyncConfigurationException(
                f"No se encontraron metadatos Airtable para la tabla {table}",
                details={"known_tables": sorted({t.name for t in tables.values()})},
            )
        return meta

    def validate(
        self,
        provider: DataProvider,
        meta: TableMetadata,
        db_schema: TableSchema,
    ) -> ValidationResult:
        config = provider.config
        result = ValidationResult()
        logger.info(
            f"Verificando estructura entre la tabla Airtable {meta.name} y la tabla {db_schema.name}"
        )

        if len(db_schema.primary_keys) != 1:
            raise SyncConfigurationException(
                f"La tabla {db_schema.name} debe tener exactamente una primary key "
                f"para poder armar las tablas de unión (encontradas: {list(db_schema.primary_keys)})",
                details={"table": db_schema.name},
            )
        pk = db_schema.primary_keys[0]
        if pk != config.record_id_column and pk not in config.mapper:
            raise SyncConfigurationException(
                f"La pk {pk} de la tabla {db_schema.name} no está declarada en el mapper de {config.name}",
                details={"provider": config.name, "pk": pk},
            )
        if config.record_id_column not in db_schema.columns:
            raise SyncConfigurationException(
                f"La tabla {db_schema.name} no tiene la columna {config.record_id_column}",
                details={"table": db_schema.name},
            )

        for column_name, mapping in config.mapper.items():
            db_column: Optional[ColumnSchema] = None
            if has_database_column(mapping):
                db_column = db_schema.columns.get(column_name)
                if db_column is None:
                    raise SyncConfigurationException(
                        f"La columna {db_schema.name}.{column_name} no existe. "
                        f"Columnas conocidas: {', '.join(db_schema.columns)}",
                        details={"table": db_schema.name, "column": column_name},
                    )

            for field_name in mapping.airtable_fields:
                field_meta = meta.fields.get(field_name)
                if field_meta is None:
                    raise SyncConfigurationException(
                        f"El field Airtable {meta.name}.{field_name} no existe. "
                        f"Fields conocidos: {', '.join(meta.fields)}",
                        details={"table": meta.name, "field": field_name},
                    )

                get_type_helper(field_meta)

                if isinstance(mapping, (ToOne, ToMany)) and field_meta.type != "multipleRecordLinks":
                    raise SyncConfigurationException(
                        f"El field Airtable {field_meta.path_name} está mapeado a otro record, "
                        f"pero no es multipleRecordLinks en Airtable.",
                        details={"field": field_meta.path_name, "type": field_meta.type},
                    )

                result.watch_field_ids.add(field_meta.id)

                # Lookup = tipo real
                resolved = resolve_lookup(field_meta)
                if resolved is not field_meta:
                    meta.replace_field(resolved)
                    field_meta = resolved

                if db_column is not None:
                    error = has_compatibility_error(field_meta, db_column)
                    if error is not False:
                        raise SyncConfigurationException(
                            f"El field Airtable {field_meta.path_name} (tipo: {field_meta.type}) no es compatible "
                            f"con la columna {db_schema.name}.{db_column.name} ({db_column.type_class}): {error}",
                            details={"field": field_meta.path_name, "column": db_column.name},
                        )

                    if isinstance(mapping, (Mirror, ToOne)):
                        result.columns_by_field_id[field_meta.id] = db_column

        return result

    def reconcile(self, provider: DataProvider) -> ValidationResult:
        """Carga metadatos y esquema, valida y los asocia al provider."""
        meta = self.load_metadata(provider.config.airtable_table)
        check_required_field(meta, provider.config.created_field, "createdTime")
        check_required_field(meta, provider.config.updated_field, "lastModifiedTime")

        db_schema = self._store.get_table(provider.table_name)
        result = self.validate(provider, meta, db_schema)

        provider.table_meta = meta
        provider.db_schema = db_schema
        provider.columns_by_field_id = result.columns_by_field_id
        provider.watch_field_ids = result.watch_field_ids
        logger.success(
            f"[{provider.name}] Estructura validada: {len(result.watch_field_ids)} fields observados"
        )
        return result
