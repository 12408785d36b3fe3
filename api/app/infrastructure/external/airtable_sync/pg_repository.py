"""
Store relacional Postgres (psycopg v3) para la sincronización:
- introspección de tablas (columnas, enums, primary keys)
- UPSERT fila por fila que solo modifica filas con valores distintos
- borrados por filtro con retorno de las filas borradas
- tabla de últimos tiempos de sync por provider

Conexión única en autocommit: cada sentencia es su propia transacción.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any, Optional

import psycopg
from loguru import logger
from psycopg.rows import dict_row
from psycopg.types.json import Json, Jsonb

from app.domain.repositories.relational_store import IRelationalStore
from app.shared.exceptions.domain import StoreWriteException, SyncConfigurationException

from .types import ColumnSchema, TableSchema, UpsertOutcome, ensure_utc


LATEST_SYNC_TABLE = "airtable_latest_sync"

_TYPE_CLASSES = {
    "text": "string",
    "character varying": "string",
    "character": "string",
    "uuid": "string",
    "smallint": "int",
    "integer": "int",
    "bigint": "int",
    "numeric": "float",
    "real": "float",
    "double precision": "float",
    "boolean": "bool",
    "date": "date",
    "timestamp without time zone": "date",
    "timestamp with time zone": "date",
    "json": "json",
    "jsonb": "json",
    "ARRAY": "array",
}


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def column_type_class(data_type: str, udt_name: str, enums: Mapping[str, tuple[str, ...]]) -> tuple[str, Optional[tuple[str, ...]]]:
    """
    Clase de tipo de una columna según information_schema.
    Retorna (type_class, params) donde params son las etiquetas del enum
    (también para arrays de enum).
    """
    if data_type == "USER-DEFINED":
        if udt_name in enums:
            return "enum", enums[udt_name]
        return "string", None
    if data_type == "ARRAY":
        return "array", enums.get(udt_name.lstrip("_"))
    return _TYPE_CLASSES.get(data_type, "string"), None


def build_upsert_sql(
    schema: str,
    table: str,
    columns: Sequence[str],
    primary_keys: Sequence[str],
    override_columns: Sequence[str] = (),
    text_columns: Sequence[str] = (),
) -> str:
    """
    INSERT ... ON CONFLICT (pks) DO UPDATE que solo toca la fila si algún valor
    (sin contar los overrides) es distinto. RETURNING no trae filas cuando no
    hubo cambios.

    Las columnas json (sin operador de igualdad) se comparan como texto.
    """
    all_columns = list(columns) + [c for c in override_columns if c not in columns]
    target = f"{quote_ident(schema)}.{quote_ident(table)}"
    insert_cols_sql = ", ".join(quote_ident(c) for c in all_columns)
    placeholders = ", ".join(["%s"] * len(all_columns))

    compared = [c for c in columns if c not in primary_keys and c not in override_columns]
    if not compared:
        conflict_sql = "DO NOTHING"
    else:
        set_sql = ", ".join(
            f"{quote_ident(c)} = EXCLUDED.{quote_ident(c)}" for c in all_columns if c not in primary_keys
        )
        cast = {c: "::text" if c in text_columns else "" for c in compared}
        current = ", ".join(f"t.{quote_ident(c)}{cast[c]}" for c in compared)
        incoming = ", ".join(f"EXCLUDED.{quote_ident(c)}{cast[c]}" for c in compared)
        conflict_sql = (
            f"DO UPDATE SET {set_sql} "
            f"WHERE ROW({current}) IS DISTINCT FROM ROW({incoming})"
        )

    return (
        f"INSERT INTO {target} AS t ({insert_cols_sql}) VALUES ({placeholders}) "
        f"ON CONFLICT ({', '.join(quote_ident(c) for c in primary_keys)}) {conflict_sql} "
        f"RETURNING (xmax = 0) AS is_insert"
    )


def build_filter_sql(
    where: Optional[Mapping[str, Any]] = None,
    exclude: Optional[Mapping[str, Sequence[Any]]] = None,
    not_null: Sequence[str] = (),
) -> tuple[str, list[Any]]:
    """
    Arma la cláusula WHERE:
    - where: escalar -> "=", lista -> "= ANY", None -> "IS NULL"
    - exclude: "IS NOT NULL AND NOT (= ANY)"
    """
    clauses: list[str] = []
    params: list[Any] = []

    for column, value in (where or {}).items():
        if value is None:
            clauses.append(f"{quote_ident(column)} IS NULL")
        elif isinstance(value, (list, tuple, set)):
            clauses.append(f"{quote_ident(column)} = ANY(%s)")
            params.append(list(value))
        else:
            clauses.append(f"{quote_ident(column)} = %s")
            params.append(value)

    for column, values in (exclude or {}).items():
        clauses.append(f"{quote_ident(column)} IS NOT NULL AND NOT ({quote_ident(column)} = ANY(%s))")
        params.append(list(values))

    for column in not_null:
        clauses.append(f"{quote_ident(column)} IS NOT NULL")

    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


class PostgresRelationalStore(IRelationalStore):
    def __init__(self, dsn: str, schema: str = "public") -> None:
        self._dsn = dsn
        self._schema = schema
        self._conn: Optional[psycopg.Connection] = None
        self._lock = threading.RLock()
        self._tables: dict[str, TableSchema] = {}

    def connect(self) -> psycopg.Connection:
        """
        Retorna la conexión persistente (autocommit), reconectando si se cerró.
        """
        with self._lock:
            if self._conn is not None and not self._conn.closed:
                return self._conn
            try:
                self._conn = psycopg.connect(self._dsn, row_factory=dict_row, autocommit=True)
            except psycopg.OperationalError as e:
                # Error común en dev: usar hostname de Docker (resuelve solo dentro de la red de Docker).
                raise psycopg.OperationalError(
                    f"{e}\n"
                    f"Sugerencia: verifica que DATABASE_URL sea accesible desde donde ejecutas el proceso.\n"
                    f"- Si DATABASE_URL apunta a un hostname de Docker (p.ej. 'postgres' o '...-1'), eso solo resuelve dentro de Docker.\n"
                    f"- Desde el host, usa un hostname/IP real o 'localhost' con el puerto mapeado (5432) y asegúrate que Postgres esté corriendo."
                ) from e
            return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _target(self, table: str) -> str:
        return f"{quote_ident(self._schema)}.{quote_ident(table)}"

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            with self.connect().cursor() as cur:
                cur.execute(sql, params)
                return list(cur.fetchall()) if cur.description else []

    def _write(self, table: str, sql: str, params: Sequence[Any]) -> psycopg.Cursor:
        with self._lock:
            cur = self.connect().cursor()
            try:
                cur.execute(sql, params)
            except psycopg.Error as e:
                cur.close()
                raise StoreWriteException(table, str(e).strip()) from e
            return cur

    # ------------------------------------------------------------------
    # Introspección
    # ------------------------------------------------------------------

    def _load_enums(self) -> dict[str, tuple[str, ...]]:
        rows = self._fetch(
            """
            SELECT t.typname AS name, e.enumlabel AS label
            FROM pg_type t
            JOIN pg_enum e ON e.enumtypid = t.oid
            ORDER BY t.typname, e.enumsortorder
            """
        )
        enums: dict[str, list[str]] = {}
        for row in rows:
            enums.setdefault(row["name"], []).append(row["label"])
        return {name: tuple(labels) for name, labels in enums.items()}

    def get_table(self, name: str) -> TableSchema:
        cached = self._tables.get(name)
        if cached is not None:
            return cached

        rows = self._fetch(
            """
            SELECT column_name, data_type, udt_name, is_nullable, column_default
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
            """,
            (self._schema, name),
        )
        if not rows:
            raise SyncConfigurationException(
                f"La tabla {self._schema}.{name} no existe en la base",
                details={"table": name},
            )

        enums = self._load_enums()
        columns: dict[str, ColumnSchema] = {}
        for row in rows:
            type_class, params = column_type_class(row["data_type"], row["udt_name"], enums)
            nullable = row["is_nullable"] == "YES"
            columns[row["column_name"]] = ColumnSchema(
                name=row["column_name"],
                type_class=type_class,
                optional=nullable or row["column_default"] is not None,
                params=params,
                raw_type=row["udt_name"] if row["data_type"] in ("USER-DEFINED", "ARRAY") else row["data_type"],
                nullable=nullable,
            )

        pk_rows = self._fetch(
            """
            SELECT a.attname AS name
            FROM pg_index i
            JOIN pg_attribute a ON a.attrelid = i.indrelid AND a.attnum = ANY(i.indkey)
            WHERE i.indrelid = %s::regclass AND i.indisprimary
            """,
            (self._target(name),),
        )

        schema = TableSchema(
            name=name,
            columns=columns,
            primary_keys=tuple(r["name"] for r in pk_rows),
        )
        self._tables[name] = schema
        logger.debug(f"Tabla {self._schema}.{name}: {len(columns)} columnas, pk={list(schema.primary_keys)}")
        return schema

    # ------------------------------------------------------------------
    # Lectura / escritura
    # ------------------------------------------------------------------

    def _adapt(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        """Envuelve los valores de columnas json/jsonb para psycopg."""
        columns = self._tables.get(table)
        if columns is None:
            return dict(row)
        adapted = dict(row)
        for name, value in row.items():
            column = columns.columns.get(name)
            if value is None or column is None or column.type_class != "json":
                continue
            adapted[name] = Jsonb(value) if column.raw_type == "jsonb" else Json(value)
        return adapted

    def _json_columns(self, table: str) -> list[str]:
        schema = self._tables.get(table)
        if schema is None:
            return []
        return [c.name for c in schema.columns.values() if c.raw_type == "json"]

    def select(
        self,
        table: str,
        columns: Sequence[str],
        where: Optional[Mapping[str, Any]] = None,
        not_null: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        cols_sql = ", ".join(quote_ident(c) for c in columns)
        filter_sql, params = build_filter_sql(where=where, not_null=not_null)
        return self._fetch(f"SELECT {cols_sql} FROM {self._target(table)}{filter_sql}", params)

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        count = 0
        for row in rows:
            row = self._adapt(table, row)
            columns = list(row.keys())
            sql = (
                f"INSERT INTO {self._target(table)} ({', '.join(quote_ident(c) for c in columns)}) "
                f"VALUES ({', '.join(['%s'] * len(columns))})"
            )
            with self._write(table, sql, [row[c] for c in columns]) as cur:
                count += cur.rowcount or 0
        return count

    def upsert(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> UpsertOutcome:
        primary_keys = self.get_table(table).primary_keys
        if not primary_keys:
            raise StoreWriteException(table, "UPSERT requiere una primary key")
        overrides = dict(overrides or {})

        inserted = updated = 0
        for row in rows:
            missing = [c for c in primary_keys if c not in row]
            if missing:
                raise StoreWriteException(table, f"Faltan columnas de la primary key en la fila: {missing}")

            row = self._adapt(table, row)
            columns = list(row.keys())
            override_columns = [c for c in overrides if c not in row]
            sql = build_upsert_sql(
                self._schema, table, columns, primary_keys, override_columns, self._json_columns(table)
            )
            params = [row[c] for c in columns] + [overrides[c] for c in override_columns]

            with self._write(table, sql, params) as cur:
                result = cur.fetchone()
            if result is None:
                continue
            if result.get("is_insert"):
                inserted += 1
            else:
                updated += 1

        return UpsertOutcome(inserted=inserted, updated=updated)

    def update(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        key_columns: Sequence[str],
    ) -> int:
        count = 0
        for row in rows:
            row = self._adapt(table, row)
            set_columns = [c for c in row if c not in key_columns]
            if not set_columns:
                continue
            set_sql = ", ".join(f"{quote_ident(c)} = %s" for c in set_columns)
            filter_sql, filter_params = build_filter_sql(where={c: row[c] for c in key_columns})
            sql = f"UPDATE {self._target(table)} SET {set_sql}{filter_sql}"
            with self._write(table, sql, [row[c] for c in set_columns] + filter_params) as cur:
                count += cur.rowcount or 0
        return count

    def delete(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        exclude: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> list[dict[str, Any]]:
        filter_sql, params = build_filter_sql(where=where, exclude=exclude)
        sql = f"DELETE FROM {self._target(table)}{filter_sql} RETURNING *"
        with self._write(table, sql, params) as cur:
            return list(cur.fetchall())

    # ------------------------------------------------------------------
    # Últimos tiempos de sync
    # ------------------------------------------------------------------

    def ensure_latest_sync_table(self) -> None:
        self._fetch(
            f"""
            CREATE TABLE IF NOT EXISTS {self._target(LATEST_SYNC_TABLE)} (
                provider   TEXT        PRIMARY KEY,
                sync_time  TIMESTAMPTZ NOT NULL
            )
            """
        )

    def load_latest_sync_times(self) -> dict[str, datetime]:
        self.ensure_latest_sync_table()
        rows = self._fetch(f"SELECT provider, sync_time FROM {self._target(LATEST_SYNC_TABLE)}")
        return {row["provider"]: ensure_utc(row["sync_time"]) for row in rows}

    def save_latest_sync_times(self, times: Mapping[str, datetime]) -> None:
        self.ensure_latest_sync_table()
        sql = (
            f"INSERT INTO {self._target(LATEST_SYNC_TABLE)} (provider, sync_time) VALUES (%s, %s) "
            f"ON CONFLICT (provider) DO UPDATE SET sync_time = EXCLUDED.sync_time"
        )
        for provider, sync_time in times.items():
            with self._write(LATEST_SYNC_TABLE, sql, (provider, ensure_utc(sync_time))):
                pass
