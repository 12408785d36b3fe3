"""
Cliente de la pasarela remota: permite a otro proceso escribir en un
provider sin tener su propia conexión a Airtable.
"""
from typing import Any, Optional

import httpx
from loguru import logger

from app.shared.exceptions.domain import RemoteWriteException

from .remote_writes import remote_request_body


class RemoteProvider:
    """
    Envía {providerId, action, data} al endpoint /api/v1/sync/remote del
    proceso que corre el servicio de sync.
    """

    def __init__(
        self,
        provider_host: str,
        provider_id: str,
        path: str = "/api/v1/sync/remote",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider_id = provider_id
        self.url = provider_host.rstrip("/") + path
        self.timeout = timeout
        self._transport = transport

    async def _call(self, action: str, data: Any) -> Any:
        body = remote_request_body(self.provider_id, action, data)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=body)
                response.raise_for_status()
                return response.json().get("data")
        except httpx.HTTPError as e:
            logger.error(f"Error en la pasarela remota ({self.provider_id}.{action}): {e}")
            raise RemoteWriteException(self.provider_id, action, str(e)) from e

    async def create(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return await self._call("create", rows)

    async def update(self, rows: list[dict[str, Any]], simulate: bool = False) -> Optional[dict[str, int]]:
        return await self._call("update", {"rows": rows, "simulate": simulate})

    async def delete(self, record_ids: list[str]) -> list[dict[str, Any]]:
        return await self._call("delete", record_ids)
