"""
Tests unitarios para AirtableClient (paginación, lotes de escritura y backoff).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from app.infrastructure.external.airtable_sync import airtable_client
from app.infrastructure.external.airtable_sync.airtable_client import (
    AirtableApiError,
    AirtableClient,
    AirtableCredentials,
    build_incremental_filter_formula,
    chunked,
)


class _DummyResponse:
    def __init__(self, status_code: int = 200, payload: Optional[Dict[str, Any]] = None, headers=None) -> None:
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}
        self.content = b"{}" if payload is not None else b""
        self.text = str(payload)

    def json(self) -> Dict[str, Any]:
        return self._payload


class _DummySession:
    def __init__(self, responses: List[_DummyResponse]) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, **kwargs: Any) -> _DummyResponse:
        self.calls.append(kwargs)
        return self.responses.pop(0)


def _client(*responses: _DummyResponse) -> AirtableClient:
    return AirtableClient(
        AirtableCredentials(token="patTEST", base_id="appTEST"),
        session=_DummySession(list(responses)),
    )


def test_chunked() -> None:
    assert [len(c) for c in chunked(list(range(23)))] == [10, 10, 3]


def test_list_records_follows_offset() -> None:
    client = _client(
        _DummyResponse(payload={"records": [{"id": "rec1", "fields": {"Nombre": "Ana"}}], "offset": "itr1"}),
        _DummyResponse(payload={"records": [{"id": "rec2", "fields": {}, "createdTime": "2025-01-01T00:00:00.000Z"}]}),
    )

    records = client.list_records("Atletas", filter_formula="TRUE()")

    assert [r.record_id for r in records] == ["rec1", "rec2"]
    assert records[0].fields == {"Nombre": "Ana"}
    calls = client._session.calls
    assert ("filterByFormula", "TRUE()") in calls[0]["params"]
    assert ("offset", "itr1") in calls[1]["params"]
    assert calls[0]["url"] == "https://api.airtable.com/v0/appTEST/Atletas"
    assert calls[0]["headers"]["Authorization"] == "Bearer patTEST"


def test_record_without_id_fails() -> None:
    client = _client(_DummyResponse(payload={"records": [{"fields": {}}]}))

    with pytest.raises(AirtableApiError):
        client.list_records("Atletas")


def test_create_records_in_batches_of_ten() -> None:
    responses = [
        _DummyResponse(payload={"records": [{"id": f"rec{i}"} for i in range(n)]}) for n in (10, 10, 5)
    ]
    client = _client(*responses)

    created = client.create_records("Atletas", [{"Nombre": str(i)} for i in range(25)])

    assert len(created) == 25
    bodies = [call["json"] for call in client._session.calls]
    assert [len(b["records"]) for b in bodies] == [10, 10, 5]
    assert bodies[0]["records"][0] == {"fields": {"Nombre": "0"}}


def test_update_records_sends_ids() -> None:
    client = _client(_DummyResponse(payload={"records": [{"id": "rec1"}]}))

    client.update_records("Atletas", [{"id": "rec1", "fields": {"Nombre": "Ana"}}])

    call = client._session.calls[0]
    assert call["method"] == "PATCH"
    assert call["json"] == {"records": [{"fields": {"Nombre": "Ana"}, "id": "rec1"}]}


def test_delete_records_uses_query_params() -> None:
    client = _client(_DummyResponse(payload={"records": [{"id": "rec1", "deleted": True}]}))

    client.delete_records("Atletas", ["rec1"])

    call = client._session.calls[0]
    assert call["method"] == "DELETE"
    assert call["params"] == [("records[]", "rec1")]


def test_rate_limit_is_retried(monkeypatch) -> None:
    sleeps: List[float] = []
    monkeypatch.setattr(airtable_client.time, "sleep", sleeps.append)
    client = _client(
        _DummyResponse(status_code=429, headers={"Retry-After": "2"}),
        _DummyResponse(status_code=503),
        _DummyResponse(payload={"tables": [{"id": "tbl1", "name": "Atletas"}]}),
    )

    tables = client.get_base_schema()

    assert tables == [{"id": "tbl1", "name": "Atletas"}]
    assert sleeps[0] == 2.0
    assert len(sleeps) == 2
    assert client._session.calls[0]["url"] == "https://api.airtable.com/v0/meta/bases/appTEST/tables"


def test_client_error_is_not_retried() -> None:
    client = _client(_DummyResponse(status_code=422, payload={"error": "INVALID_REQUEST"}))

    with pytest.raises(AirtableApiError) as exc_info:
        client.create_records("Atletas", [{"Nombre": "Ana"}])

    assert exc_info.value.status_code == 422
    assert len(client._session.calls) == 1


def test_webhook_payloads_query() -> None:
    client = _client(_DummyResponse(payload={"payloads": [], "cursor": 3, "mightHaveMore": False}))

    response = client.get_webhook_payloads("ach1", cursor=3)

    call = client._session.calls[0]
    assert call["url"] == "https://api.airtable.com/v0/bases/appTEST/webhooks/ach1/payloads"
    assert ("cursor", 3) in call["params"]
    assert response["cursor"] == 3


def test_incremental_formula_on_updated_field(provider_configs) -> None:
    # 07:15 en UTC-3 son las 10:15 UTC; Airtable compara en UTC
    since = datetime(2025, 12, 16, 7, 15, 0, 250000, tzinfo=timezone(timedelta(hours=-3)))

    formula = build_incremental_filter_formula(provider_configs["athletes"].updated_field, since)

    assert formula == (
        "OR(IS_AFTER({Updated}, DATETIME_PARSE('2025-12-16T10:15:00Z')), "
        "IS_SAME({Updated}, DATETIME_PARSE('2025-12-16T10:15:00Z')))"
    )
