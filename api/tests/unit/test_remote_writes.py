"""
Tests unitarios para RemoteWriteService (escrituras Postgres -> Airtable -> Postgres).

Verifica:
- La escritura va primero a Airtable; si falla, la base no se toca.
- IdentityIndex y tablas de unión quedan consistentes después de escribir.
- La pasarela remota solo acepta providers declarados como remotos.
"""
from __future__ import annotations

import pytest

from app.infrastructure.external.airtable_sync.airtable_client import AirtableApiError
from app.infrastructure.external.airtable_sync.remote_writes import RemoteWriteService, remote_request_body
from app.infrastructure.external.airtable_sync.sync_service import SyncOptions, SyncOrchestrator
from app.shared.exceptions.domain import (
    DomainException,
    ProviderNotFoundException,
    RemoteAccessDisabledException,
    RemoteWriteException,
    UnknownRemoteActionException,
    WriteOperationsDisabledException,
)


@pytest.fixture
def writes(synced: SyncOrchestrator) -> RemoteWriteService:
    return RemoteWriteService(synced)


def _athlete(store, record_id):
    return next((r for r in store.rows("athletes") if r["airtableId"] == record_id), None)


class TestCreate:
    def test_creates_in_airtable_then_database(self, writes: RemoteWriteService, fake_client, fake_store, synced) -> None:
        created = writes.create("athletes", [{"name": "Carla", "coach_id": "recC2", "groups": ["recG1"], "age": 22}])

        assert fake_client.created == [
            ("Atletas", [{"Nombre": "Carla", "Entrenador": ["recC2"], "Grupos": ["recG1"], "Edad": 22}])
        ]
        assert created[0]["airtableId"] == "recNEW1"
        assert created[0]["recordUrl"] == "https://airtable.com/appTEST/tblAthl/recNEW1"
        assert _athlete(fake_store, "recNEW1")["name"] == "Carla"
        assert ("recNEW1", "recG1") in {(r["athlete_id"], r["group_id"]) for r in fake_store.rows("athlete_groups")}
        athletes = synced.registry.get("athletes")
        assert athletes.index.get_local("recNEW1") == "recNEW1"
        assert athletes.stats.upserted_relations == 3

    def test_airtable_failure_leaves_database_untouched(self, writes: RemoteWriteService, fake_client, fake_store) -> None:
        fake_client.fail_writes = AirtableApiError("422 INVALID_VALUE_FOR_COLUMN", status_code=422)
        before = len(fake_store.rows("athletes"))

        with pytest.raises(RemoteWriteException):
            writes.create("athletes", [{"name": "Carla"}])

        assert len(fake_store.rows("athletes")) == before

    def test_many_rows_with_relations_are_rejected(self, writes: RemoteWriteService, fake_client) -> None:
        rows = [{"name": "Carla", "groups": ["recG1"]}, {"name": "Dario", "groups": ["recG2"]}]

        with pytest.raises(DomainException):
            writes.create("athletes", rows)
        assert fake_client.created == []

    def test_unresolved_link_fails_before_airtable(self, writes: RemoteWriteService, fake_client) -> None:
        with pytest.raises(DomainException):
            writes.create("athletes", [{"name": "Carla", "coach_id": "recC404"}])
        assert fake_client.created == []

    def test_disabled_service(self, writes: RemoteWriteService, synced: SyncOrchestrator) -> None:
        synced.options = SyncOptions(enable=False)

        with pytest.raises(WriteOperationsDisabledException):
            writes.create("athletes", [{"name": "Carla"}])


class TestUpdate:
    def test_updates_airtable_and_database(self, writes: RemoteWriteService, fake_client, fake_store) -> None:
        delta = writes.update("athletes", [{"airtableId": "recA1", "name": "Ana María"}])

        assert delta.updated == 1
        assert fake_client.updated == [("Atletas", [{"id": "recA1", "fields": {"Nombre": "Ana María"}}])]
        assert _athlete(fake_store, "recA1")["name"] == "Ana María"

    def test_simulate_writes_nothing(self, writes: RemoteWriteService, fake_client, fake_store, synced) -> None:
        relations_before = list(fake_store.rows("athlete_groups"))

        delta = writes.update("athletes", [{"airtableId": "recA1", "age": 99, "groups": ["recG2"]}], simulate=True)

        assert delta.updated == 0
        assert fake_client.updated == []
        assert _athlete(fake_store, "recA1")["age"] == 30
        assert fake_store.rows("athlete_groups") == relations_before
        assert synced.registry.get("athletes").stats.updated == 0

    def test_simulate_still_validates_mapping(self, writes: RemoteWriteService, fake_client) -> None:
        with pytest.raises(DomainException):
            writes.update("athletes", [{"airtableId": "recA1", "coach_id": "recC404"}], simulate=True)
        assert fake_client.updated == []

    def test_updates_disabled_skip_airtable(self, writes: RemoteWriteService, synced: SyncOrchestrator, fake_client) -> None:
        synced.options = SyncOptions(enable_update=False)

        delta = writes.update("athletes", [{"airtableId": "recA1", "age": 31}])

        assert fake_client.updated == []
        assert delta.updated == 1

    def test_record_id_is_required(self, writes: RemoteWriteService) -> None:
        with pytest.raises(DomainException):
            writes.update("athletes", [{"name": "Ana"}])

    def test_relations_are_replaced(self, writes: RemoteWriteService, fake_store) -> None:
        delta = writes.update("athletes", [{"airtableId": "recA1", "groups": ["recG2"]}])

        assert delta.deleted_relations == 1
        assert [(r["athlete_id"], r["group_id"]) for r in fake_store.rows("athlete_groups")] == [("recA1", "recG2")]


class TestDelete:
    def test_deletes_in_airtable_then_database(self, writes: RemoteWriteService, fake_client, fake_store, synced) -> None:
        deleted = writes.delete("athletes", ["recA1"])

        assert fake_client.deleted == [("Atletas", ["recA1"])]
        assert [row["airtableId"] for row in deleted] == ["recA1"]
        assert _athlete(fake_store, "recA1") is None
        assert "recA1" not in synced.registry.get("athletes").index

    def test_airtable_failure_keeps_row(self, writes: RemoteWriteService, fake_client, fake_store) -> None:
        fake_client.fail_writes = AirtableApiError("404 NOT_FOUND", status_code=404)

        with pytest.raises(RemoteWriteException):
            writes.delete("athletes", ["recA1"])
        assert _athlete(fake_store, "recA1") is not None

    def test_empty_list(self, writes: RemoteWriteService, fake_client) -> None:
        assert writes.delete("athletes", []) == []
        assert fake_client.deleted == []


class TestRemoteGateway:
    def test_dispatches_update(self, writes: RemoteWriteService) -> None:
        result = writes.handle_remote_request(
            "athletes", "update", {"rows": [{"airtableId": "recA1", "age": 40}]}
        )

        assert result["updated"] == 1

    def test_dispatches_create_and_delete(self, writes: RemoteWriteService, fake_store) -> None:
        created = writes.handle_remote_request("athletes", "create", [{"name": "Carla"}])
        deleted = writes.handle_remote_request("athletes", "delete", [created[0]["airtableId"]])

        assert deleted[0]["name"] == "Carla"
        assert _athlete(fake_store, created[0]["airtableId"]) is None

    def test_non_remote_provider_is_rejected(self, writes: RemoteWriteService) -> None:
        with pytest.raises(RemoteAccessDisabledException):
            writes.handle_remote_request("coaches", "delete", ["recC1"])

    def test_unknown_provider(self, writes: RemoteWriteService) -> None:
        with pytest.raises(ProviderNotFoundException):
            writes.handle_remote_request("sessions", "create", [])

    def test_unknown_action(self, writes: RemoteWriteService) -> None:
        with pytest.raises(UnknownRemoteActionException):
            writes.handle_remote_request("athletes", "upsert", [])

    def test_request_body(self) -> None:
        assert remote_request_body("athletes", "delete", ["rec1"]) == {
            "providerId": "athletes",
            "action": "delete",
            "data": ["rec1"],
        }
