"""DB-backed lookup table store."""

from __future__ import annotations

import copy
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable

import psycopg2
import psycopg2.errors

from lookupcore.errors import RowHashConflict

from app.db import create_pool, execute, execute_values, fetch_all, fetch_one, get_conn

logger = logging.getLogger("lookup.db")

ROW_HASH_CONSTRAINT = "lookup_table_rows_table_hash_key"

SCHEMA_SQL = f"""
create table if not exists lookup_tables (
  id uuid primary key,
  name text not null,
  description text null,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);

create table if not exists lookup_table_columns (
  id uuid primary key,
  table_id uuid not null references lookup_tables(id) on delete cascade,
  name text not null,
  data_type text not null check (data_type in ('string', 'number', 'boolean', 'datetime')),
  sort_order integer not null default 0,
  created_at timestamptz not null default now()
);

create index if not exists lookup_table_columns_table_idx
  on lookup_table_columns (table_id, sort_order, created_at);

create table if not exists lookup_table_rows (
  id uuid primary key,
  table_id uuid not null references lookup_tables(id) on delete cascade,
  cell_values jsonb not null default '{{}}'::jsonb,
  row_hash text not null,
  sort_order integer not null default 0,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now(),
  constraint {ROW_HASH_CONSTRAINT} unique (table_id, row_hash)
);
"""


def _json_dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _ensure_json(value):
    if isinstance(value, str):
        return json.loads(value)
    return value


def _to_iso(value):
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return value


def _table_from_row(row: dict) -> dict:
    return {
        "id": str(row["id"]),
        "name": row["name"],
        "description": row.get("description"),
        "created_at": _to_iso(row.get("created_at")),
        "updated_at": _to_iso(row.get("updated_at")),
    }


def _column_from_row(row: dict) -> dict:
    return {
        "id": str(row["id"]),
        "table_id": str(row["table_id"]),
        "name": row["name"],
        "data_type": row["data_type"],
        "sort_order": row.get("sort_order") or 0,
        "created_at": _to_iso(row.get("created_at")),
    }


def _lookup_row_from_row(row: dict) -> dict:
    return {
        "id": str(row["id"]),
        "table_id": str(row["table_id"]),
        "values": copy.deepcopy(_ensure_json(row.get("cell_values")) or {}),
        "row_hash": row["row_hash"],
        "sort_order": row.get("sort_order") or 0,
        "created_at": _to_iso(row.get("created_at")),
        "updated_at": _to_iso(row.get("updated_at")),
    }


def _is_row_hash_violation(exc: Exception) -> bool:
    diag = getattr(exc, "diag", None)
    return getattr(diag, "constraint_name", None) == ROW_HASH_CONSTRAINT


class DbTx:
    """One pooled connection held for the lifetime of a transaction."""

    def __init__(self, conn, pool) -> None:
        self._conn = conn
        self._pool = pool
        self.committed = False
        self.rolled_back = False

    @property
    def conn(self):
        if self._conn is None:
            raise RuntimeError("transaction already finished")
        return self._conn

    def commit(self) -> None:
        try:
            self.conn.commit()
            self.committed = True
        finally:
            self._release()

    def rollback(self) -> None:
        try:
            self.conn.rollback()
            self.rolled_back = True
        finally:
            self._release()

    def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            self._pool.putconn(conn)


class DbTxManager:
    def __init__(self, pool=None, dsn: str | None = None) -> None:
        self._pool = pool
        self._dsn = dsn

    @property
    def pool(self):
        if self._pool is None:
            self._pool = create_pool(self._dsn)
        return self._pool

    def begin(self) -> DbTx:
        return DbTx(self.pool.getconn(), self.pool)

    def ensure_schema(self) -> None:
        with get_conn(self.pool) as conn:
            execute(conn, SCHEMA_SQL, query_name="lookup_schema.ensure")
        logger.info("lookup_schema_ensured tables=%s", ["lookup_tables", "lookup_table_columns", "lookup_table_rows"])


class DbLookupStore:
    # tables

    def create_table(self, tx, name: str, description: str | None = None) -> dict:
        row = fetch_one(
            tx.conn,
            """
            insert into lookup_tables (id, name, description, created_at, updated_at)
            values (%s,%s,%s,%s,%s)
            returning *
            """,
            [str(uuid.uuid4()), name, description, _now(), _now()],
            query_name="lookup_tables.insert",
        )
        return _table_from_row(row)

    def get_table(self, tx, table_id: str) -> dict | None:
        row = fetch_one(tx.conn, "select * from lookup_tables where id=%s", [table_id], query_name="lookup_tables.get")
        return _table_from_row(row) if row else None

    def list_tables(self, tx) -> list[dict]:
        rows = fetch_all(tx.conn, "select * from lookup_tables order by name asc", query_name="lookup_tables.list")
        return [_table_from_row(r) for r in rows]

    def update_table(self, tx, table_id: str, changes: dict) -> dict | None:
        sets = []
        params: list = []
        for key in ("name", "description"):
            if key in changes:
                sets.append(f"{key}=%s")
                params.append(changes[key])
        sets.append("updated_at=%s")
        params.extend([_now(), table_id])
        row = fetch_one(
            tx.conn,
            f"update lookup_tables set {', '.join(sets)} where id=%s returning *",
            params,
            query_name="lookup_tables.update",
        )
        return _table_from_row(row) if row else None

    def delete_table(self, tx, table_id: str) -> bool:
        count = execute(tx.conn, "delete from lookup_tables where id=%s", [table_id], query_name="lookup_tables.delete")
        return count > 0

    # columns

    def create_column(self, tx, table_id: str, name: str, data_type: str, sort_order: int = 0) -> dict:
        row = fetch_one(
            tx.conn,
            """
            insert into lookup_table_columns (id, table_id, name, data_type, sort_order, created_at)
            values (%s,%s,%s,%s,%s,clock_timestamp())
            returning *
            """,
            [str(uuid.uuid4()), table_id, name, data_type, sort_order],
            query_name="lookup_table_columns.insert",
        )
        return _column_from_row(row)

    def get_column(self, tx, column_id: str) -> dict | None:
        row = fetch_one(tx.conn, "select * from lookup_table_columns where id=%s", [column_id], query_name="lookup_table_columns.get")
        return _column_from_row(row) if row else None

    def list_columns(self, tx, table_id: str) -> list[dict]:
        rows = fetch_all(
            tx.conn,
            """
            select * from lookup_table_columns
            where table_id=%s
            order by sort_order asc, created_at asc, name asc
            """,
            [table_id],
            query_name="lookup_table_columns.list",
        )
        return [_column_from_row(r) for r in rows]

    def update_column(self, tx, column_id: str, changes: dict) -> dict | None:
        sets = []
        params: list = []
        for key in ("name", "data_type", "sort_order"):
            if key in changes:
                sets.append(f"{key}=%s")
                params.append(changes[key])
        if not sets:
            return self.get_column(tx, column_id)
        params.append(column_id)
        row = fetch_one(
            tx.conn,
            f"update lookup_table_columns set {', '.join(sets)} where id=%s returning *",
            params,
            query_name="lookup_table_columns.update",
        )
        return _column_from_row(row) if row else None

    def delete_column(self, tx, column_id: str) -> bool:
        count = execute(tx.conn, "delete from lookup_table_columns where id=%s", [column_id], query_name="lookup_table_columns.delete")
        return count > 0

    # rows

    def list_rows(self, tx, table_id: str) -> list[dict]:
        rows = fetch_all(
            tx.conn,
            """
            select * from lookup_table_rows
            where table_id=%s
            order by sort_order asc, created_at asc
            """,
            [table_id],
            query_name="lookup_table_rows.list",
        )
        return [_lookup_row_from_row(r) for r in rows]

    def get_row(self, tx, row_id: str) -> dict | None:
        row = fetch_one(tx.conn, "select * from lookup_table_rows where id=%s", [row_id], query_name="lookup_table_rows.get")
        return _lookup_row_from_row(row) if row else None

    def find_row_hashes(self, tx, table_id: str, hashes: Iterable[str]) -> set[str]:
        hashes = list(hashes)
        if not hashes:
            return set()
        rows = fetch_all(
            tx.conn,
            "select row_hash from lookup_table_rows where table_id=%s and row_hash = any(%s)",
            [table_id, hashes],
            query_name="lookup_table_rows.find_hashes",
        )
        return {r["row_hash"] for r in rows}

    def _row_id_for_hash(self, tx, table_id: str, row_hash: str) -> str | None:
        row = fetch_one(
            tx.conn,
            "select id from lookup_table_rows where table_id=%s and row_hash=%s",
            [table_id, row_hash],
            query_name="lookup_table_rows.id_for_hash",
        )
        return str(row["id"]) if row else None

    def insert_row(self, tx, table_id: str, values: dict, row_hash: str, sort_order: int = 0) -> dict:
        row = fetch_one(
            tx.conn,
            """
            insert into lookup_table_rows (id, table_id, cell_values, row_hash, sort_order, created_at, updated_at)
            values (%s,%s,%s::jsonb,%s,%s,clock_timestamp(),clock_timestamp())
            on conflict on constraint lookup_table_rows_table_hash_key do nothing
            returning *
            """,
            [str(uuid.uuid4()), table_id, _json_dumps(values), row_hash, sort_order],
            query_name="lookup_table_rows.insert",
        )
        if row is None:
            raise RowHashConflict(table_id, row_hash, self._row_id_for_hash(tx, table_id, row_hash))
        return _lookup_row_from_row(row)

    def insert_rows(self, tx, table_id: str, rows: list[dict]) -> int:
        if not rows:
            return 0
        payload = [
            (str(uuid.uuid4()), table_id, _json_dumps(item["values"]), item["row_hash"], item.get("sort_order") or 0)
            for item in rows
        ]
        returned = execute_values(
            tx.conn,
            """
            insert into lookup_table_rows (id, table_id, cell_values, row_hash, sort_order)
            values %s
            on conflict on constraint lookup_table_rows_table_hash_key do nothing
            returning id
            """,
            payload,
            query_name="lookup_table_rows.insert_many",
        )
        return len(returned)

    def update_row(self, tx, row_id: str, changes: dict) -> dict:
        current = self.get_row(tx, row_id)
        if current is None:
            raise KeyError("row not found")
        table_id = current["table_id"]
        new_hash = changes.get("row_hash", current["row_hash"])
        if new_hash != current["row_hash"]:
            owner = self._row_id_for_hash(tx, table_id, new_hash)
            if owner is not None and owner != row_id:
                raise RowHashConflict(table_id, new_hash, owner)
        sets = []
        params: list = []
        if "values" in changes:
            sets.append("cell_values=%s::jsonb")
            params.append(_json_dumps(changes["values"]))
        for key in ("row_hash", "sort_order"):
            if key in changes:
                sets.append(f"{key}=%s")
                params.append(changes[key])
        sets.append("updated_at=clock_timestamp()")
        params.append(row_id)
        try:
            row = fetch_one(
                tx.conn,
                f"update lookup_table_rows set {', '.join(sets)} where id=%s returning *",
                params,
                query_name="lookup_table_rows.update",
            )
        except psycopg2.errors.UniqueViolation as exc:
            if not _is_row_hash_violation(exc):
                raise
            raise RowHashConflict(table_id, new_hash) from exc
        if row is None:
            raise KeyError("row not found")
        return _lookup_row_from_row(row)

    def delete_row(self, tx, row_id: str) -> bool:
        count = execute(tx.conn, "delete from lookup_table_rows where id=%s", [row_id], query_name="lookup_table_rows.delete")
        return count > 0
