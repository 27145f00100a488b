"""In-memory lookup table store and transaction manager."""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable

from lookupcore.errors import RowHashConflict

_ABSENT = object()


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryTx:
    """Serialized transaction with an undo journal.

    The manager's lock is held from ``begin()`` until ``commit()`` or
    ``rollback()``; rollback replays the journal newest first.
    """

    def __init__(self, lock: threading.RLock | None = None) -> None:
        self.committed = False
        self.rolled_back = False
        self._lock = lock
        self._undo: list[Callable[[], None]] = []

    def on_rollback(self, fn: Callable[[], None]) -> None:
        self._undo.append(fn)

    def commit(self) -> None:
        self.committed = True
        self._undo.clear()
        self._release()

    def rollback(self) -> None:
        self.rolled_back = True
        try:
            while self._undo:
                self._undo.pop()()
        finally:
            self._release()

    def _release(self) -> None:
        if self._lock is not None:
            lock, self._lock = self._lock, None
            lock.release()


class InMemoryTxManager:
    def __init__(self) -> None:
        self._lock = threading.RLock()

    def begin(self) -> InMemoryTx:
        self._lock.acquire()
        return InMemoryTx(self._lock)


class MemoryLookupStore:
    def __init__(self) -> None:
        self._tables: Dict[str, dict] = {}
        self._columns: Dict[str, dict] = {}
        self._rows: Dict[str, dict] = {}
        self._hash_index: Dict[tuple, str] = {}
        self._seq: Dict[str, int] = {}
        self._counter = 0

    # journaled primitives

    def _put(self, tx, bucket: dict, key: Any, value: Any) -> None:
        previous = bucket.get(key, _ABSENT)
        bucket[key] = value
        self._journal(tx, bucket, key, previous)

    def _pop(self, tx, bucket: dict, key: Any) -> Any:
        previous = bucket.pop(key, _ABSENT)
        if previous is not _ABSENT:
            self._journal(tx, bucket, key, previous)
        return None if previous is _ABSENT else previous

    def _journal(self, tx, bucket: dict, key: Any, previous: Any) -> None:
        if not hasattr(tx, "on_rollback"):
            return

        def undo() -> None:
            if previous is _ABSENT:
                bucket.pop(key, None)
            else:
                bucket[key] = previous

        tx.on_rollback(undo)

    def _next_seq(self, tx, key: str) -> None:
        self._counter += 1
        self._put(tx, self._seq, key, self._counter)

    # tables

    def create_table(self, tx, name: str, description: str | None = None) -> dict:
        now = _now()
        table = {
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "created_at": now,
            "updated_at": now,
        }
        self._put(tx, self._tables, table["id"], table)
        return copy.deepcopy(table)

    def get_table(self, tx, table_id: str) -> dict | None:
        table = self._tables.get(table_id)
        return copy.deepcopy(table) if table else None

    def list_tables(self, tx) -> list[dict]:
        items = sorted(self._tables.values(), key=lambda t: t.get("name") or "")
        return [copy.deepcopy(t) for t in items]

    def update_table(self, tx, table_id: str, changes: dict) -> dict | None:
        table = self._tables.get(table_id)
        if table is None:
            return None
        updated = {**table, **{k: v for k, v in changes.items() if k in ("name", "description")}}
        updated["updated_at"] = _now()
        self._put(tx, self._tables, table_id, updated)
        return copy.deepcopy(updated)

    def delete_table(self, tx, table_id: str) -> bool:
        if table_id not in self._tables:
            return False
        for row_id in [r["id"] for r in self._rows.values() if r["table_id"] == table_id]:
            self.delete_row(tx, row_id)
        for column_id in [c["id"] for c in self._columns.values() if c["table_id"] == table_id]:
            self.delete_column(tx, column_id)
        self._pop(tx, self._tables, table_id)
        return True

    # columns

    def create_column(self, tx, table_id: str, name: str, data_type: str, sort_order: int = 0) -> dict:
        column = {
            "id": str(uuid.uuid4()),
            "table_id": table_id,
            "name": name,
            "data_type": data_type,
            "sort_order": sort_order,
            "created_at": _now(),
        }
        self._put(tx, self._columns, column["id"], column)
        self._next_seq(tx, column["id"])
        return copy.deepcopy(column)

    def get_column(self, tx, column_id: str) -> dict | None:
        column = self._columns.get(column_id)
        return copy.deepcopy(column) if column else None

    def list_columns(self, tx, table_id: str) -> list[dict]:
        items = [c for c in self._columns.values() if c["table_id"] == table_id]
        items.sort(key=lambda c: (c.get("sort_order") or 0, self._seq.get(c["id"], 0), c.get("name") or ""))
        return [copy.deepcopy(c) for c in items]

    def update_column(self, tx, column_id: str, changes: dict) -> dict | None:
        column = self._columns.get(column_id)
        if column is None:
            return None
        allowed = ("name", "data_type", "sort_order")
        updated = {**column, **{k: v for k, v in changes.items() if k in allowed}}
        self._put(tx, self._columns, column_id, updated)
        return copy.deepcopy(updated)

    def delete_column(self, tx, column_id: str) -> bool:
        if self._pop(tx, self._columns, column_id) is None:
            return False
        self._pop(tx, self._seq, column_id)
        return True

    # rows

    def list_rows(self, tx, table_id: str) -> list[dict]:
        items = [r for r in self._rows.values() if r["table_id"] == table_id]
        items.sort(key=lambda r: (r.get("sort_order") or 0, self._seq.get(r["id"], 0)))
        return [copy.deepcopy(r) for r in items]

    def get_row(self, tx, row_id: str) -> dict | None:
        row = self._rows.get(row_id)
        return copy.deepcopy(row) if row else None

    def find_row_hashes(self, tx, table_id: str, hashes: Iterable[str]) -> set[str]:
        return {h for h in hashes if (table_id, h) in self._hash_index}

    def insert_row(self, tx, table_id: str, values: dict, row_hash: str, sort_order: int = 0) -> dict:
        existing = self._hash_index.get((table_id, row_hash))
        if existing is not None:
            raise RowHashConflict(table_id, row_hash, existing)
        now = _now()
        row = {
            "id": str(uuid.uuid4()),
            "table_id": table_id,
            "values": copy.deepcopy(values),
            "row_hash": row_hash,
            "sort_order": sort_order,
            "created_at": now,
            "updated_at": now,
        }
        self._put(tx, self._rows, row["id"], row)
        self._put(tx, self._hash_index, (table_id, row_hash), row["id"])
        self._next_seq(tx, row["id"])
        return copy.deepcopy(row)

    def insert_rows(self, tx, table_id: str, rows: list[dict]) -> int:
        inserted = 0
        for item in rows:
            try:
                self.insert_row(tx, table_id, item["values"], item["row_hash"], item.get("sort_order") or 0)
            except RowHashConflict:
                continue
            inserted += 1
        return inserted

    def update_row(self, tx, row_id: str, changes: dict) -> dict:
        row = self._rows.get(row_id)
        if row is None:
            raise KeyError("row not found")
        updated = copy.deepcopy(row)
        for key in ("values", "row_hash", "sort_order"):
            if key in changes:
                updated[key] = copy.deepcopy(changes[key])
        table_id = row["table_id"]
        if updated["row_hash"] != row["row_hash"]:
            owner = self._hash_index.get((table_id, updated["row_hash"]))
            if owner is not None and owner != row_id:
                raise RowHashConflict(table_id, updated["row_hash"], owner)
            self._pop(tx, self._hash_index, (table_id, row["row_hash"]))
            self._put(tx, self._hash_index, (table_id, updated["row_hash"]), row_id)
        updated["updated_at"] = _now()
        self._put(tx, self._rows, row_id, updated)
        return copy.deepcopy(updated)

    def delete_row(self, tx, row_id: str) -> bool:
        row = self._pop(tx, self._rows, row_id)
        if row is None:
            return False
        if self._hash_index.get((row["table_id"], row["row_hash"])) == row_id:
            self._pop(tx, self._hash_index, (row["table_id"], row["row_hash"]))
        self._pop(tx, self._seq, row_id)
        return True
