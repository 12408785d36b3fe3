"""
Escrituras iniciadas desde la plataforma (Postgres -> Airtable -> Postgres).

La escritura va primero a Airtable: si Airtable falla, la base no se toca.
Recién después se escribe en la base bajo el lock del provider, se actualiza
el IdentityIndex y se reconcilian las tablas de unión.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger

from app.shared.exceptions.domain import (
    DomainException,
    RemoteAccessDisabledException,
    RemoteWriteException,
    UnknownRemoteActionException,
    WriteOperationsDisabledException,
)

from .airtable_client import AirtableApiError
from .provider import DataProvider
from .record_mapper import RecordMapper
from .types import SyncStats

if TYPE_CHECKING:
    from .sync_service import SyncOrchestrator


REMOTE_ACTIONS = ("create", "update", "delete")


class RemoteWriteService:
    def __init__(self, orchestrator: "SyncOrchestrator") -> None:
        self._orchestrator = orchestrator

    @property
    def options(self):
        return self._orchestrator.options

    def _ensure_enabled(self) -> None:
        if not self.options.enable:
            raise WriteOperationsDisabledException()

    def _provider(self, provider_id: str) -> DataProvider:
        return self._orchestrator.registry.get(provider_id)

    def _mapper(self, provider: DataProvider) -> RecordMapper:
        return RecordMapper(provider, self._orchestrator.registry)

    @property
    def _store(self):
        return self._orchestrator.store

    @property
    def _client(self):
        return self._orchestrator.client

    # ------------------------------------------------------------------
    # Operaciones
    # ------------------------------------------------------------------

    def create(self, provider_id: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Crea records en Airtable y luego inserta las filas en la base.
        Retorna las filas insertadas, cada una con su recordUrl.
        """
        self._ensure_enabled()
        provider = self._provider(provider_id)
        config = provider.config
        mapped = self._mapper(provider).to_remote(rows)
        pk = provider.primary_key
        if pk == config.record_id_column and len(mapped.rows) > 1 and mapped.relations.count():
            raise DomainException(
                f"{provider.table_name}: con pk = {pk} las relaciones ToMany se crean de a un record",
                details={"pk": pk},
            )

        try:
            created = self._client.create_records(
                config.airtable_table, [r["fields"] for r in mapped.remote_records]
            )
        except AirtableApiError as e:
            raise RemoteWriteException(provider.name, "create", str(e)) from e

        if len(created) != len(mapped.rows):
            raise RemoteWriteException(
                provider.name, "create", f"Airtable creó {len(created)} de {len(mapped.rows)} records"
            )

        result: list[dict[str, Any]] = []
        with self._orchestrator.locks.hold(provider.name):
            for remote, row in zip(created, mapped.rows):
                remote_id = remote["id"]
                row = dict(row)
                row[config.record_id_column] = remote_id
                pk_value = row.get(pk, remote_id if pk == config.record_id_column else None)

                self._store.insert(provider.table_name, [row])
                provider.index.link(remote_id, pk_value)
                provider.stats.inserted += 1
                result.append({**row, "recordUrl": provider.record_url(remote_id)})

            # Con pk = recordId, las relaciones se armaron antes de conocer la pk
            if len(result) == 1:
                mapped.relations.assign_pk(result[0][pk])
            self._orchestrator.relations.reconcile(mapped.relations, provider.stats)

        logger.info(f"[{provider.name}] {len(result)} records creados en Airtable y en la base")
        return result

    def update(
        self,
        provider_id: str,
        rows: list[dict[str, Any]],
        *,
        simulate: bool = False,
    ) -> SyncStats:
        """
        Actualiza records por airtableId.

        - simulate=True: solo mapea y loguea (errores de mapeo incluidos), no escribe nada.
        - Con las actualizaciones deshabilitadas solo se escribe en la base.
        """
        self._ensure_enabled()
        provider = self._provider(provider_id)
        config = provider.config

        for row in rows:
            if not row.get(config.record_id_column):
                raise DomainException(
                    f"Se debe proveer {config.record_id_column} para actualizar {provider.table_name}",
                    details={"column": config.record_id_column},
                )

        mapped = self._mapper(provider).to_remote(rows)

        if simulate:
            logger.info(f"[{provider.name}] Update simulado de {len(mapped.rows)} filas: no se escribe nada")
            logger.debug(f"[{provider.name}] Records simulados: {mapped.remote_records}")
            return SyncStats()

        if not (self.options.enable_sync and self.options.enable_update):
            logger.warning(
                f"[{provider.name}] Update en Airtable omitido (AIRTABLE_ENABLE_SYNC / AIRTABLE_ENABLE_UPDATE)"
            )
        else:
            try:
                self._client.update_records(config.airtable_table, mapped.remote_records)
            except AirtableApiError as e:
                raise RemoteWriteException(provider.name, "update", str(e)) from e

        delta = SyncStats()
        with self._orchestrator.locks.hold(provider.name):
            delta.updated = self._store.update(provider.table_name, mapped.rows, [config.record_id_column])
            self._orchestrator.relations.reconcile(mapped.relations, delta)
            provider.stats.merge(delta)

        logger.info(f"[{provider.name}] {delta.updated} filas actualizadas")
        return delta

    def delete(self, provider_id: str, record_ids: list[str]) -> list[dict[str, Any]]:
        """Borra en Airtable y después en la base. Retorna las filas borradas."""
        self._ensure_enabled()
        provider = self._provider(provider_id)
        config = provider.config
        if not record_ids:
            return []

        try:
            self._client.delete_records(config.airtable_table, record_ids)
        except AirtableApiError as e:
            raise RemoteWriteException(provider.name, "delete", str(e)) from e

        with self._orchestrator.locks.hold(provider.name):
            for record_id in record_ids:
                provider.fix_error(record_id)
                provider.index.unlink(record_id)
            deleted = self._store.delete(provider.table_name, where={config.record_id_column: list(record_ids)})
            provider.stats.deleted += len(deleted)
            provider.deleted_rows.extend(deleted)

        logger.info(f"[{provider.name}] {len(deleted)} filas borradas")
        return deleted

    # ------------------------------------------------------------------
    # Pasarela remota
    # ------------------------------------------------------------------

    def handle_remote_request(self, provider_id: str, action: str, data: Any) -> Any:
        """Despacha una escritura pedida por otro proceso (ver RemoteProvider)."""
        provider = self._provider(provider_id)
        if not provider.remote:
            raise RemoteAccessDisabledException(provider_id)

        logger.debug(f"[{provider.name}] Pedido remoto: {action}")
        if action == "create":
            return self.create(provider_id, list(data or []))
        if action == "update":
            payload: dict[str, Any] = data or {}
            delta = self.update(
                provider_id,
                list(payload.get("rows") or []),
                simulate=bool(payload.get("simulate", False)),
            )
            return delta.as_dict()
        if action == "delete":
            return self.delete(provider_id, list(data or []))

        raise UnknownRemoteActionException(action)


def remote_request_body(provider_id: str, action: str, data: Any) -> dict[str, Any]:
    return {"providerId": provider_id, "action": action, "data": data}
