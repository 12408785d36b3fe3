"""
Cliente mínimo de Airtable REST API (sin SDKs externos).

Requisitos cubiertos:
- requests
- paginación por offset ("all pages")
- escrituras por lotes de 10 records (límite de la API)
- metadatos de la base y webhooks (crear / listar / borrar / payloads)
- rate-limit/backoff (429, 5xx)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator, Optional, Sequence
from urllib.parse import quote

import requests
from loguru import logger

from .types import AirtableRecord, ensure_utc


# Límite de records por llamada de escritura
WRITE_BATCH_SIZE = 10

# Payloads por página al consultar un webhook
PAYLOADS_PAGE_SIZE = 50


@dataclass(frozen=True)
class AirtableCredentials:
    token: str
    base_id: str


class AirtableApiError(RuntimeError):
    """Error de integración con Airtable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _isoformat_z(dt: datetime) -> str:
    """
    Serializa datetime a ISO8601 con 'Z' (UTC) para fórmulas Airtable.
    """
    dt_utc = ensure_utc(dt)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_incremental_filter_formula(last_modified_field: str, cursor: datetime) -> str:
    """
    Construye una fórmula Airtable para traer registros incrementales:

    - Incluye igualdad (>=) para ser tolerante a cortes a mitad de página.
      La idempotencia queda asegurada por UPSERT en Postgres.

    Nota: Airtable no soporta operador >= directo en fórmulas con fechas.
    Se usa OR(IS_AFTER(...), IS_SAME(...)).
    """
    cursor_str = _isoformat_z(cursor)
    field_ref = "{" + last_modified_field + "}"
    return (
        f"OR("
        f"IS_AFTER({field_ref}, DATETIME_PARSE('{cursor_str}')), "
        f"IS_SAME({field_ref}, DATETIME_PARSE('{cursor_str}'))"
        f")"
    )


def chunked(items: Sequence[Any], size: int = WRITE_BATCH_SIZE) -> Iterator[list[Any]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class AirtableClient:
    """
    Cliente HTTP de Airtable.

    Importante:
    - No hace cast de tipos de campos: eso se decide en el RecordMapper.
    - Los errores 4xx (salvo 429) se propagan como AirtableApiError.
    """

    def __init__(
        self,
        credentials: AirtableCredentials,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = "https://api.airtable.com/v0",
        timeout_s: int = 30,
        max_retries: int = 6,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._session = session or requests.Session()

    @property
    def base_id(self) -> str:
        return self._creds.base_id

    def _table_url(self, table: str) -> str:
        return f"{self._base_url}/{self._creds.base_id}/{quote(table, safe='')}"

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def iter_records(
        self,
        table: str,
        *,
        filter_formula: Optional[str] = None,
        fields: Optional[list[str]] = None,
        page_size: int = 100,
        pages: Optional[int] = None,
    ) -> Iterator[AirtableRecord]:
        """
        Itera registros de una tabla, página por página.

        - pages=None recorre todas las páginas
        - filter_formula se envía como filterByFormula
        """
        url = self._table_url(table)
        offset: Optional[str] = None
        current_page = 1

        while True:
            query: list[tuple[str, Any]] = [("pageSize", page_size)]
            if filter_formula:
                query.append(("filterByFormula", filter_formula))
            if offset:
                query.append(("offset", offset))
            if fields:
                # Airtable permite repetir "fields[]" en querystring.
                for f in fields:
                    query.append(("fields[]", f))

            logger.debug(f"Airtable: página {current_page} de {table}")
            payload = self._request_json("GET", url, query=query)

            for rec in payload.get("records") or []:
                if not rec.get("id"):
                    # Caso raro; preferimos fallar temprano y visible.
                    raise AirtableApiError("Airtable devolvió un record sin 'id'")
                yield AirtableRecord.from_api(rec)

            offset = payload.get("offset")
            current_page += 1
            if not offset or (pages is not None and current_page > pages):
                break

    def list_records(self, table: str, **kwargs: Any) -> list[AirtableRecord]:
        return list(self.iter_records(table, **kwargs))

    def create_records(self, table: str, records: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        """Crea records ({field: valor}) por lotes de 10. Retorna los records creados, en orden."""
        url = self._table_url(table)
        created: list[dict[str, Any]] = []
        for i, chunk in enumerate(chunked(records)):
            logger.debug(f"Airtable: insertando lote {i} ({len(chunk)} records) en {table}")
            result = self._request_json("POST", url, body={"records": [{"fields": f} for f in chunk]})
            created.extend(result.get("records") or [])
        return created

    def update_records(
        self,
        table: str,
        records: Sequence[dict[str, Any]],
        *,
        fields_to_merge_on: Optional[list[str]] = None,
    ) -> list[dict[str, Any]]:
        """
        Actualiza records ({"id", "fields"}) por lotes de 10.
        Con fields_to_merge_on se hace upsert (performUpsert).
        """
        url = self._table_url(table)
        updated: list[dict[str, Any]] = []
        for i, chunk in enumerate(chunked(records)):
            body: dict[str, Any] = {"records": []}
            for r in chunk:
                item: dict[str, Any] = {"fields": r.get("fields") or {}}
                if r.get("id"):
                    item["id"] = r["id"]
                body["records"].append(item)
            if fields_to_merge_on:
                body["performUpsert"] = {"fieldsToMergeOn": list(fields_to_merge_on)}
            logger.debug(f"Airtable: actualizando lote {i} ({len(chunk)} records) en {table}")
            result = self._request_json("PATCH", url, body=body)
            updated.extend(result.get("records") or [])
        return updated

    def delete_records(self, table: str, record_ids: Sequence[str]) -> list[dict[str, Any]]:
        url = self._table_url(table)
        deleted: list[dict[str, Any]] = []
        for chunk in chunked(record_ids):
            result = self._request_json("DELETE", url, query=[("records[]", rid) for rid in chunk])
            deleted.extend(result.get("records") or [])
        logger.debug(f"Airtable: {len(deleted)} records borrados en {table}")
        return deleted

    # ------------------------------------------------------------------
    # Metadatos y webhooks
    # ------------------------------------------------------------------

    def get_base_schema(self) -> list[dict[str, Any]]:
        """https://airtable.com/developers/web/api/get-base-schema"""
        url = f"{self._base_url}/meta/bases/{self._creds.base_id}/tables"
        return self._request_json("GET", url).get("tables") or []

    def _webhooks_url(self, webhook_id: Optional[str] = None) -> str:
        url = f"{self._base_url}/bases/{self._creds.base_id}/webhooks"
        return f"{url}/{webhook_id}" if webhook_id else url

    def list_webhooks(self) -> list[dict[str, Any]]:
        return self._request_json("GET", self._webhooks_url()).get("webhooks") or []

    def create_webhook(self, notification_url: str, specification: dict[str, Any]) -> dict[str, Any]:
        return self._request_json(
            "POST",
            self._webhooks_url(),
            body={"notificationUrl": notification_url, "specification": specification},
        )

    def delete_webhook(self, webhook_id: str) -> None:
        self._request_json("DELETE", self._webhooks_url(webhook_id))

    def get_webhook_payloads(
        self,
        webhook_id: str,
        cursor: int = 1,
        limit: int = PAYLOADS_PAGE_SIZE,
    ) -> dict[str, Any]:
        """Retorna {payloads, cursor, mightHaveMore}."""
        return self._request_json(
            "GET",
            f"{self._webhooks_url(webhook_id)}/payloads",
            query=[("limit", limit), ("cursor", cursor)],
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        query: Optional[Iterable[tuple[str, Any]]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Request HTTP con backoff para 429/5xx.

        Estrategia:
        - 429: respeta Retry-After si existe, si no exponencial con jitter simple.
        - 5xx: exponencial con jitter.
        - 4xx (no 429): error inmediato (config/auth mal).
        """
        headers = {
            "Authorization": f"Bearer {self._creds.token}",
            "Content-Type": "application/json",
        }
        params = list(query) if query is not None else None

        for attempt in range(self._max_retries + 1):
            resp = self._session.request(
                method=method,
                url=url,
                params=params,
                json=body,
                headers=headers,
                timeout=self._timeout_s,
            )

            if 200 <= resp.status_code < 300:
                return resp.json() if resp.content else {}

            # Errores recuperables
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise AirtableApiError(
                        f"Airtable error {resp.status_code} tras {attempt} reintentos: {resp.text}",
                        status_code=resp.status_code,
                    )

                retry_after = resp.headers.get("Retry-After")
                if retry_after:
                    try:
                        sleep_s = float(retry_after)
                    except ValueError:
                        sleep_s = self._min_backoff_s
                else:
                    # Exponencial simple + jitter proporcional
                    base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
                    sleep_s = base + (0.15 * base)

                logger.warning(f"Airtable {resp.status_code} en {method} {url}, reintento en {sleep_s:.1f}s")
                time.sleep(sleep_s)
                continue

            # Errores no recuperables
            raise AirtableApiError(
                f"Airtable request falló {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )

        raise AirtableApiError(f"Airtable request sin respuesta: {method} {url}")
