"""
Suscripción a webhooks de Airtable y lectura de payloads por cursor.

El endpoint público solo incrementa un contador: los payloads no vienen en
la notificación, se consultan después con GET .../payloads?cursor=N.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from loguru import logger

from app.shared.exceptions.domain import SyncConfigurationException

from .airtable_client import PAYLOADS_PAGE_SIZE, AirtableClient


class CallbackUrlProvider(Protocol):
    def get_public_callback_url(self) -> str: ...


@dataclass(frozen=True)
class StaticCallbackUrl:
    """URL pública fija (detrás de un proxy / dominio propio)."""

    public_url: str
    path: str = "/api/v1/webhooks/airtable"

    @property
    def host(self) -> str:
        return self.public_url.rstrip("/")

    def get_public_callback_url(self) -> str:
        return self.host + "/" + self.path.lstrip("/")


@dataclass
class PayloadBatch:
    payloads: list[dict[str, Any]] = field(default_factory=list)
    cursor: int = 1
    might_have_more: bool = False


def build_webhook_specification(field_ids: list[str]) -> dict[str, Any]:
    return {
        "options": {
            "filters": {
                # tableFields: los cambios de tipo se vuelven a validar contra la base
                "dataTypes": ["tableData", "tableFields"],
                "watchDataInFieldIds": sorted(field_ids),
                "changeTypes": ["add", "update", "remove"],
                # Todas las fuentes salvo la API pública (nuestras propias escrituras)
                "fromSources": ["client", "formSubmission", "automation", "system", "sync"],
            },
            "includes": {
                "includeCellValuesInFieldIds": "all",
                "includePreviousCellValues": True,
                "includePreviousFieldDefinitions": True,
            },
        }
    }


class WebhooksConnector:
    def __init__(
        self,
        client: AirtableClient,
        callback: CallbackUrlProvider,
        *,
        enabled: bool = True,
    ) -> None:
        self._client = client
        self._callback = callback
        self.enabled = enabled

        self.webhook_id: Optional[str] = None
        self.webhook_url: Optional[str] = None
        self.cursor: int = 1

        self._pending = 0
        self._pending_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Notificaciones entrantes
    # ------------------------------------------------------------------

    def notify(self) -> int:
        with self._pending_lock:
            self._pending += 1
            return self._pending

    @property
    def pending_count(self) -> int:
        return self._pending

    def take_pending(self) -> int:
        with self._pending_lock:
            pending, self._pending = self._pending, 0
            return pending

    def restore_pending(self, count: int) -> None:
        with self._pending_lock:
            self._pending += max(count, 1)

    # ------------------------------------------------------------------
    # Suscripción
    # ------------------------------------------------------------------

    def register(self, field_ids: list[str]) -> Optional[str]:
        if not self.enabled:
            logger.info("Webhooks deshabilitados (AIRTABLE_ENABLE_REALTIME=false)")
            return None

        if self.webhook_id is not None:
            raise SyncConfigurationException("Los webhooks ya fueron registrados")

        logger.info(f"Registrando webhook para observar {len(field_ids)} fields")
        self.webhook_url = self._callback.get_public_callback_url()

        # Los webhooks de ejecuciones anteriores de este servicio ya no sirven
        for existing in self._client.list_webhooks():
            if (existing.get("notificationUrl") or "").startswith(self.webhook_url):
                logger.info(f"Borrando webhook anterior {existing.get('id')}")
                self._client.delete_webhook(existing["id"])

        created = self._client.create_webhook(self.webhook_url, build_webhook_specification(field_ids))
        self.webhook_id = created.get("id")
        if not self.webhook_id:
            raise SyncConfigurationException(
                "Airtable no retornó el id del webhook creado", details={"response": created}
            )
        self.cursor = 1
        logger.success(f"Webhook {self.webhook_id} registrado en {self.webhook_url}")
        return self.webhook_id

    def unregister(self) -> None:
        if not self.enabled or self.webhook_id is None:
            return
        logger.info(f"Borrando webhook {self.webhook_id}")
        self._client.delete_webhook(self.webhook_id)
        self.webhook_id = None

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def fetch_next_batch(self) -> PayloadBatch:
        """Lee el siguiente lote desde el último cursor confirmado (no lo avanza)."""
        if self.webhook_id is None:
            raise SyncConfigurationException("Webhook no inicializado (¿se llamó a register()?)")

        response = self._client.get_webhook_payloads(self.webhook_id, self.cursor, PAYLOADS_PAGE_SIZE)
        return PayloadBatch(
            payloads=response.get("payloads") or [],
            cursor=int(response.get("cursor") or self.cursor),
            might_have_more=bool(response.get("mightHaveMore")),
        )

    def acknowledge(self, batch: PayloadBatch) -> None:
        """Avanza el cursor: solo después de aplicar el lote completo."""
        self.cursor = batch.cursor
