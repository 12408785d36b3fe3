"""
Tests unitarios para RemoteProvider (cliente de la pasarela remota).
"""
from __future__ import annotations

import json

import httpx
import pytest

from app.infrastructure.external.airtable_sync.remote_provider import RemoteProvider
from app.shared.exceptions.domain import RemoteWriteException


@pytest.mark.asyncio
async def test_update_posts_rows_and_returns_data() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"success": True, "data": {"updated": 1}})

    provider = RemoteProvider("http://sync:8000/", "athletes", transport=httpx.MockTransport(handler))

    result = await provider.update([{"airtableId": "recA1", "age": 31}], simulate=True)

    assert result == {"updated": 1}
    assert str(requests[0].url) == "http://sync:8000/api/v1/sync/remote"
    assert json.loads(requests[0].content) == {
        "providerId": "athletes",
        "action": "update",
        "data": {"rows": [{"airtableId": "recA1", "age": 31}], "simulate": True},
    }


@pytest.mark.asyncio
async def test_http_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": "REMOTE_ACCESS_DISABLED"})

    provider = RemoteProvider("http://sync:8000", "coaches", transport=httpx.MockTransport(handler))

    with pytest.raises(RemoteWriteException):
        await provider.delete(["recC1"])
