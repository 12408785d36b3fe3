"""
Configuración de fixtures para pytest.

Los tests del motor de sync corren contra dobles en memoria:
- FakeStore: implementa IRelationalStore con listas de dicts
- FakeAirtableClient: records, metadatos y webhooks en memoria
"""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pytest

from app.domain.repositories.relational_store import IRelationalStore
from app.infrastructure.external.airtable_sync.provider import DataProvider, ProviderRegistry
from app.infrastructure.external.airtable_sync.sync_config import Mirror, ProviderConfig, ToMany, ToOne
from app.infrastructure.external.airtable_sync.sync_service import SyncOptions, SyncOrchestrator
from app.infrastructure.external.airtable_sync.types import (
    AirtableRecord,
    ColumnSchema,
    TableSchema,
    UpsertOutcome,
)
from app.infrastructure.external.airtable_sync.webhooks import StaticCallbackUrl, WebhooksConnector
from app.shared.exceptions.domain import SyncConfigurationException


BASE_ID = "appTEST"
CREATED = "2025-01-10T09:00:00.000Z"
UPDATED = "2025-01-12T18:30:00.000Z"


# ---------------------------------------------------------------------------
# Dobles
# ---------------------------------------------------------------------------


class FakeStore(IRelationalStore):
    """Store relacional en memoria con la semántica de filtros del store Postgres."""

    def __init__(self, tables: Mapping[str, TableSchema]):
        self.tables = dict(tables)
        self.data: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.latest_sync_times: Dict[str, Any] = {}
        self.saved_times: List[Dict[str, Any]] = []
        self.closed = False

    @staticmethod
    def _matches(
        row: Mapping[str, Any],
        where: Optional[Mapping[str, Any]] = None,
        exclude: Optional[Mapping[str, Sequence[Any]]] = None,
        not_null: Sequence[str] = (),
    ) -> bool:
        for column, value in (where or {}).items():
            current = row.get(column)
            if value is None:
                if current is not None:
                    return False
            elif isinstance(value, (list, tuple, set)):
                if current not in value:
                    return False
            elif current != value:
                return False
        for column, values in (exclude or {}).items():
            current = row.get(column)
            if current is None or current in values:
                return False
        return all(row.get(column) is not None for column in not_null)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.data[table]

    def get_table(self, name: str) -> TableSchema:
        schema = self.tables.get(name)
        if schema is None:
            raise SyncConfigurationException(f"La tabla {name} no existe en la base")
        return schema

    def select(self, table, columns, where=None, not_null=()):
        return [
            {c: row.get(c) for c in columns}
            for row in self.data[table]
            if self._matches(row, where=where, not_null=not_null)
        ]

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        count = 0
        for row in rows:
            self.data[table].append(dict(row))
            count += 1
        return count

    def upsert(self, table, rows, overrides=None) -> UpsertOutcome:
        pks = self.get_table(table).primary_keys
        overrides = dict(overrides or {})
        inserted = updated = 0
        for row in rows:
            key = {pk: row[pk] for pk in pks}
            existing = next((r for r in self.data[table] if self._matches(r, where=key)), None)
            if existing is None:
                self.data[table].append({**overrides, **row})
                inserted += 1
                continue
            if any(existing.get(c) != v for c, v in row.items() if c not in pks):
                existing.update(overrides)
                existing.update(row)
                updated += 1
        return UpsertOutcome(inserted=inserted, updated=updated)

    def update(self, table, rows, key_columns) -> int:
        count = 0
        for row in rows:
            values = {c: v for c, v in row.items() if c not in key_columns}
            if not values:
                continue
            key = {c: row[c] for c in key_columns}
            for existing in self.data[table]:
                if self._matches(existing, where=key):
                    existing.update(values)
                    count += 1
        return count

    def delete(self, table, where=None, exclude=None):
        deleted = [r for r in self.data[table] if self._matches(r, where=where, exclude=exclude)]
        self.data[table] = [r for r in self.data[table] if r not in deleted]
        return deleted

    def load_latest_sync_times(self):
        return dict(self.latest_sync_times)

    def save_latest_sync_times(self, times):
        self.latest_sync_times = dict(times)
        self.saved_times.append(dict(times))

    def close(self) -> None:
        self.closed = True


class FakeAirtableClient:
    """Cliente Airtable en memoria: records por nombre de tabla, webhooks y payloads."""

    def __init__(self, schema: List[Dict[str, Any]], records: Dict[str, List[AirtableRecord]]):
        self.base_id = BASE_ID
        self.schema = schema
        self.records = records
        self.formulas: List[tuple] = []
        self.created: List[tuple] = []
        self.updated: List[tuple] = []
        self.deleted: List[tuple] = []
        self.webhooks: List[Dict[str, Any]] = []
        self.deleted_webhooks: List[str] = []
        self.payload_responses: deque = deque()
        self.payload_cursors: List[int] = []
        self.fail_writes: Optional[Exception] = None
        self._next_id = 0

    def get_base_schema(self):
        return self.schema

    def list_records(self, table: str, filter_formula: Optional[str] = None, **kwargs: Any):
        self.formulas.append((table, filter_formula))
        return list(self.records.get(table, []))

    def create_records(self, table, records):
        if self.fail_writes is not None:
            raise self.fail_writes
        created = []
        for fields in records:
            self._next_id += 1
            record_id = f"recNEW{self._next_id}"
            self.records.setdefault(table, []).append(AirtableRecord(record_id=record_id, fields=dict(fields)))
            created.append({"id": record_id, "fields": dict(fields)})
        self.created.append((table, list(records)))
        return created

    def update_records(self, table, records, **kwargs):
        if self.fail_writes is not None:
            raise self.fail_writes
        self.updated.append((table, list(records)))
        return list(records)

    def delete_records(self, table, record_ids):
        if self.fail_writes is not None:
            raise self.fail_writes
        self.deleted.append((table, list(record_ids)))
        return [{"id": rid, "deleted": True} for rid in record_ids]

    def list_webhooks(self):
        return list(self.webhooks)

    def create_webhook(self, notification_url, specification):
        webhook = {"id": f"ach{len(self.webhooks) + 1}", "notificationUrl": notification_url, "specification": specification}
        self.webhooks.append(webhook)
        return {"id": webhook["id"], "expirationTime": "2025-01-20T00:00:00.000Z"}

    def delete_webhook(self, webhook_id):
        self.deleted_webhooks.append(webhook_id)
        self.webhooks = [w for w in self.webhooks if w["id"] != webhook_id]

    def get_webhook_payloads(self, webhook_id, cursor=1, limit=50):
        self.payload_cursors.append(cursor)
        if not self.payload_responses:
            return {"payloads": [], "cursor": cursor, "mightHaveMore": False}
        response = self.payload_responses.popleft()
        if isinstance(response, Exception):
            raise response
        return response


# ---------------------------------------------------------------------------
# Datos de prueba: entrenadores, grupos y atletas
# ---------------------------------------------------------------------------


def _timestamps(prefix: str) -> List[Dict[str, Any]]:
    return [
        {"id": f"{prefix}1", "name": "Created", "type": "createdTime", "options": {}},
        {"id": f"{prefix}2", "name": "Updated", "type": "lastModifiedTime", "options": {}},
    ]


def make_base_schema() -> List[Dict[str, Any]]:
    return [
        {
            "id": "tblCoach",
            "name": "Entrenadores",
            "primaryFieldId": "fldC3",
            "fields": _timestamps("fldC") + [
                {"id": "fldC3", "name": "Nombre", "type": "singleLineText"},
                {"id": "fldC4", "name": "Email", "type": "email"},
            ],
        },
        {
            "id": "tblGroup",
            "name": "Grupos",
            "primaryFieldId": "fldG3",
            "fields": _timestamps("fldG") + [
                {"id": "fldG3", "name": "Nombre", "type": "singleLineText"},
            ],
        },
        {
            "id": "tblAthl",
            "name": "Atletas",
            "primaryFieldId": "fldA3",
            "fields": _timestamps("fldA") + [
                {"id": "fldA3", "name": "Nombre", "type": "singleLineText"},
                {
                    "id": "fldA4",
                    "name": "Nivel",
                    "type": "singleSelect",
                    "options": {"choices": [{"id": "selIni", "name": "Inicial"}, {"id": "selAva", "name": "Avanzado"}]},
                },
                {"id": "fldA5", "name": "Entrenador", "type": "multipleRecordLinks", "options": {"linkedTableId": "tblCoach"}},
                {"id": "fldA6", "name": "Grupos", "type": "multipleRecordLinks", "options": {"linkedTableId": "tblGroup"}},
                {"id": "fldA7", "name": "Edad", "type": "number", "options": {"precision": 0}},
            ],
        },
    ]


def _column(name: str, type_class: str = "string", required: bool = False, **kwargs: Any) -> ColumnSchema:
    return ColumnSchema(name=name, type_class=type_class, optional=not required, nullable=not required, **kwargs)


def _synced_table(name: str, *columns: ColumnSchema) -> TableSchema:
    all_columns = [
        _column("airtableId", required=True),
        *columns,
        _column("created", "date"),
        _column("updated", "date"),
        _column("synced", "date"),
    ]
    return TableSchema(name=name, columns={c.name: c for c in all_columns}, primary_keys=("airtableId",))


def make_table_schemas() -> Dict[str, TableSchema]:
    return {
        "coaches": _synced_table("coaches", _column("name", required=True), _column("email")),
        "training_groups": _synced_table("training_groups", _column("name", required=True)),
        "athletes": _synced_table(
            "athletes",
            _column("name", required=True),
            _column("level", "enum", params=("Inicial", "Avanzado"), raw_type="athlete_level"),
            _column("coach_id"),
            _column("age", "int"),
        ),
        "athlete_groups": TableSchema(
            name="athlete_groups",
            columns={
                "athlete_id": _column("athlete_id", required=True),
                "group_id": _column("group_id", required=True),
            },
            primary_keys=("athlete_id", "group_id"),
        ),
    }


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def make_provider_configs() -> List[ProviderConfig]:
    return [
        ProviderConfig(
            name="coaches",
            airtable_table="Entrenadores",
            table_name="coaches",
            mapper={
                "name": Mirror("Nombre", filter=_strip),
                "email": Mirror("Email", filter=lambda v: v.lower()),
            },
        ),
        ProviderConfig(
            name="groups",
            airtable_table="Grupos",
            table_name="training_groups",
            mapper={"name": Mirror("Nombre", filter=_strip)},
        ),
        ProviderConfig(
            name="athletes",
            airtable_table="Atletas",
            table_name="athletes",
            remote=True,
            mapper={
                "name": Mirror("Nombre", filter=_strip),
                "level": Mirror("Nivel"),
                "coach_id": ToOne("Entrenador", target="coaches"),
                "groups": ToMany("Grupos", target="groups", table="athlete_groups", pk_column="athlete_id", fk_column="group_id"),
                "age": Mirror("Edad"),
            },
        ),
    ]


def make_record(record_id: str, **fields: Any) -> AirtableRecord:
    values = {"Created": CREATED, "Updated": UPDATED}
    values.update(fields)
    return AirtableRecord(record_id=record_id, fields=values, created_time=CREATED)


def make_records() -> Dict[str, List[AirtableRecord]]:
    return {
        "Entrenadores": [
            make_record("recC1", Nombre=" Laura ", Email="Laura@Club.com"),
            make_record("recC2", Nombre="Marcos"),
        ],
        "Grupos": [
            make_record("recG1", Nombre="Fondo"),
            make_record("recG2", Nombre="Velocidad"),
        ],
        "Atletas": [
            make_record("recA1", Nombre="Ana", Nivel="Inicial", Entrenador=["recC1"], Grupos=["recG1", "recG2"], Edad=30),
            # Incompleto: sin nombre
            make_record("recA2", Nivel="Avanzado", Entrenador=["recC1"]),
        ],
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore(make_table_schemas())


@pytest.fixture
def fake_client() -> FakeAirtableClient:
    return FakeAirtableClient(make_base_schema(), make_records())


@pytest.fixture
def registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    for config in make_provider_configs():
        registry.register(DataProvider(config, base_id=BASE_ID))
    return registry


@pytest.fixture
def webhooks(fake_client: FakeAirtableClient) -> WebhooksConnector:
    return WebhooksConnector(fake_client, StaticCallbackUrl("https://sync.example.com"))


@pytest.fixture
def orchestrator(registry, fake_client, fake_store, webhooks) -> SyncOrchestrator:
    """Orquestador con la estructura ya validada (sin pull)."""
    orchestrator = SyncOrchestrator(
        registry,
        fake_client,
        fake_store,
        webhooks,
        options=SyncOptions(initial_pull_workers=1, reminder_iterations=3),
    )
    orchestrator.load_schema()
    return orchestrator


@pytest.fixture
def synced(orchestrator: SyncOrchestrator) -> SyncOrchestrator:
    """Orquestador después del pull inicial."""
    orchestrator.initial_pull()
    return orchestrator


@pytest.fixture
def record_factory():
    """make_record(record_id, **fields) con Created/Updated por defecto."""
    return make_record


@pytest.fixture
def provider_configs() -> Dict[str, ProviderConfig]:
    return {config.name: config for config in make_provider_configs()}
