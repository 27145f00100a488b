"""psycopg2 helpers for the Postgres lookup store: pool, cursors, query timing."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool

_logger = logging.getLogger("lookup.db")
_query_logger = logging.getLogger("lookup.db.query")
_SLOW_MS = float(os.getenv("LOOKUP_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("LOOKUP_QUERY_LOG", "").strip() == "1"


def get_db_url() -> str:
    url = os.getenv("LOOKUP_DB_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("LOOKUP_DB_URL or DATABASE_URL is required when USE_DB=1")
    return url


def _short(val: Any) -> Any:
    # jsonb cell payloads can be large; keep log lines bounded
    if isinstance(val, str) and len(val) > 80:
        return f"{val[:40]}…{val[-10:]} ({len(val)} chars)"
    if isinstance(val, (list, tuple, set)) and len(val) > 10:
        return f"<{type(val).__name__}:{len(val)}>"
    return val


class _QueryTimer:
    """Collects rowcount for one statement and logs it when slow (or always, if enabled)."""

    def __init__(self, query_name: str | None, params: Iterable[Any] | None) -> None:
        self.query_name = query_name or "unnamed"
        self.params = params
        self.rowcount: int | None = None
        self._start = time.perf_counter()

    def finish(self) -> None:
        elapsed_ms = (time.perf_counter() - self._start) * 1000
        slow = elapsed_ms >= _SLOW_MS
        if not (slow or _LOG_ALL):
            return
        params = None if self.params is None else [_short(p) for p in self.params]
        log = _query_logger.warning if slow else _query_logger.info
        log(
            "db_query name=%s ms=%.2f rowcount=%s slow=%s params=%s",
            self.query_name,
            elapsed_ms,
            self.rowcount,
            slow,
            params,
        )


@contextmanager
def _cursor(conn, query_name: str | None, params: Iterable[Any] | None, dict_rows: bool = False) -> Iterator[tuple]:
    timer = _QueryTimer(query_name, params)
    factory = psycopg2.extras.RealDictCursor if dict_rows else None
    with conn.cursor(cursor_factory=factory) as cur:
        yield cur, timer
        if timer.rowcount is None:
            timer.rowcount = cur.rowcount
    timer.finish()


def create_pool(dsn: str | None = None, minconn: int | None = None, maxconn: int | None = None) -> SimpleConnectionPool:
    if minconn is None:
        minconn = int(os.getenv("LOOKUP_DB_POOL_MIN", "1"))
    if maxconn is None:
        maxconn = int(os.getenv("LOOKUP_DB_POOL_MAX", "10"))
    _logger.info("db_pool_created min=%s max=%s", minconn, maxconn)
    return SimpleConnectionPool(minconn, maxconn, dsn=dsn or get_db_url())


@contextmanager
def get_conn(pool: SimpleConnectionPool):
    """Borrow a connection for a single self-committing unit of work."""
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    with _cursor(conn, query_name, params, dict_rows=True) as (cur, _):
        cur.execute(sql, params or [])
        row = cur.fetchone()
    return dict(row) if row else None


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    with _cursor(conn, query_name, params, dict_rows=True) as (cur, _):
        cur.execute(sql, params or [])
        rows = cur.fetchall()
    return [dict(r) for r in rows]


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    with _cursor(conn, query_name, params) as (cur, timer):
        cur.execute(sql, params or [])
        timer.rowcount = cur.rowcount
    return timer.rowcount


def execute_values(conn, sql: str, rows: Sequence[Sequence[Any]], query_name: str | None = None) -> list[tuple]:
    """Run a multi-row ``insert ... values %s returning ...`` and return every returned row."""
    with _cursor(conn, query_name, [f"<rows:{len(rows)}>"]) as (cur, timer):
        returned = psycopg2.extras.execute_values(cur, sql, rows, fetch=True)
        timer.rowcount = len(returned)
    return returned
