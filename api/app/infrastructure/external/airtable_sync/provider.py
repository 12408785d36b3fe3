"""
Provider: una tabla Airtable sincronizada con una tabla Postgres.

Cada provider es dueño de su IdentityIndex, sus estadísticas y sus buffers
de errores. El registry solo se usa para resolver relaciones entre providers
(lectura del IdentityIndex ajeno) y para despachar payloads por id de tabla.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from loguru import logger

from app.shared.exceptions.domain import (
    ProviderNotFoundException,
    SyncConfigurationException,
)

from .identity_index import IdentityIndex
from .sync_config import ProviderConfig
from .sync_errors import DevErrorRow, SalesErrorRow, SyncErrorBuffer
from .types import (
    METAS_RECORD,
    AirtableRecord,
    ColumnSchema,
    SyncStats,
    TableMetadata,
    TableSchema,
)


@dataclass
class ProviderSyncResults:
    """Snapshot tomado por el reporte. Los errores de negocio son la referencia viva."""

    stats: SyncStats
    deleted: list[dict[str, Any]]
    dev_errors: dict[str, DevErrorRow]
    sales_errors: dict[str, SalesErrorRow] = field(default_factory=dict)


class DataProvider:
    def __init__(self, config: ProviderConfig, base_id: str = "") -> None:
        self.config = config
        self.base_id = base_id
        self.index = IdentityIndex(config.name)
        self.stats = SyncStats()
        self.errors = SyncErrorBuffer(config.name)
        self.deleted_rows: list[dict[str, Any]] = []

        # Se completan en SchemaReconciler.reconcile()
        self.table_meta: Optional[TableMetadata] = None
        self.db_schema: Optional[TableSchema] = None
        self.columns_by_field_id: dict[str, ColumnSchema] = {}
        self.watch_field_ids: set[str] = set()

    def __repr__(self) -> str:
        return f"<DataProvider {self.name} {self.config.airtable_table} -> {self.table_name}>"

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def table_name(self) -> str:
        return self.config.table_name

    @property
    def remote(self) -> bool:
        return self.config.remote

    @property
    def is_loaded(self) -> bool:
        return self.table_meta is not None and self.db_schema is not None

    def metadata(self) -> TableMetadata:
        if self.table_meta is None:
            raise SyncConfigurationException(
                f"Metadatos Airtable no cargados para el provider {self.name}"
            )
        return self.table_meta

    def schema(self) -> TableSchema:
        if self.db_schema is None:
            raise SyncConfigurationException(
                f"Esquema de la tabla {self.table_name} no cargado para el provider {self.name}"
            )
        return self.db_schema

    @property
    def primary_key(self) -> str:
        """La tabla debe tener exactamente una pk (se usa para las tablas de unión)."""
        schema = self.schema()
        if len(schema.primary_keys) != 1:
            raise SyncConfigurationException(
                f"La tabla {schema.name} debe tener exactamente una primary key "
                f"(encontradas: {list(schema.primary_keys)})",
                details={"table": schema.name, "primary_keys": list(schema.primary_keys)},
            )
        return schema.primary_keys[0]

    def record_url(self, record_id: str) -> str:
        table_id = self.table_meta.id if self.table_meta else self.config.airtable_table
        return f"https://airtable.com/{self.base_id}/{table_id}/{record_id}"

    # ------------------------------------------------------------------
    # Errores
    # ------------------------------------------------------------------

    def report_to_devs(
        self,
        record: AirtableRecord,
        column: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        self.errors.report_to_devs(record.record_id, record.fields, column, message, data)

    def report_to_sales(self, record: Optional[AirtableRecord], airtable_field: str, message: str) -> None:
        """record=None reporta un error de metadatos (clave METAS)."""
        if record is None:
            logger.warning(f"[{self.name}] {message}")
            self.errors.report_to_sales(METAS_RECORD, None, airtable_field, message)
            return
        self.errors.report_to_sales(record.record_id, record.fields, airtable_field, message)

    def fix_error(self, record_id: str, field_names: Optional[list[str]] = None) -> None:
        self.errors.fix_error(record_id, field_names)

    def get_sync_results(self) -> ProviderSyncResults:
        """Retorna stats/errores del ciclo y resetea todo salvo los errores de negocio."""
        results = ProviderSyncResults(
            stats=self.stats.snapshot(),
            deleted=self.deleted_rows,
            dev_errors=self.errors.dev_errors,
            sales_errors=self.errors.sales_errors,
        )
        self.stats.reset()
        self.deleted_rows = []
        self.errors.reset_dev_errors()
        return results


class ProviderRegistry:
    """Registry de providers, por nombre y por id de tabla Airtable."""

    def __init__(self) -> None:
        self._by_name: dict[str, DataProvider] = {}
        self._by_table_id: dict[str, DataProvider] = {}

    def register(self, provider: DataProvider) -> DataProvider:
        if provider.name in self._by_name:
            raise SyncConfigurationException(f"Provider duplicado: {provider.name}")
        self._by_name[provider.name] = provider
        return provider

    def bind_table(self, table_id: str, provider: DataProvider) -> None:
        self._by_table_id[table_id] = provider

    def get(self, name: str) -> DataProvider:
        provider = self._by_name.get(name)
        if provider is None:
            raise ProviderNotFoundException(name)
        return provider

    def by_table_id(self, table_id: str) -> Optional[DataProvider]:
        return self._by_table_id.get(table_id)

    def names(self) -> list[str]:
        return list(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[DataProvider]:
        return iter(list(self._by_name.values()))

    def __len__(self) -> int:
        return len(self._by_name)
