"""Transaction plumbing and issue envelopes for lookup table operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict

from lookupcore.cells import is_valid_data_type

Issue = Dict[str, Any]


@dataclass
class LookupOperationError(Exception):
    code: str
    message: str
    path: str | None = None
    detail: dict | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"

    def as_issue(self) -> Issue:
        return {"code": self.code, "message": self.message, "path": self.path, "detail": self.detail}


def fail(code: str, message: str, path: str | None = None, detail: dict | None = None) -> None:
    raise LookupOperationError(code=code, message=message, path=path, detail=detail)


def with_tx(tx_mgr, fn: Callable[[Any], dict]) -> dict:
    tx = tx_mgr.begin()
    try:
        result = fn(tx)
        tx.commit()
        return result
    except Exception:
        tx.rollback()
        raise


def run_operation(tx_mgr, fn: Callable[[Any], dict]) -> dict:
    """Run ``fn`` in one transaction and wrap the outcome in a result envelope.

    ``LookupOperationError`` becomes ``{"ok": False, "errors": [...]}`` after
    rollback; any other exception propagates after rollback.
    """
    try:
        payload = with_tx(tx_mgr, fn)
    except LookupOperationError as exc:
        return {"ok": False, "errors": [exc.as_issue()], "warnings": []}
    return {"ok": True, **payload, "errors": [], "warnings": []}


def require_table(tx, lookups, table_id: str) -> dict:
    table = lookups.get_table(tx, table_id)
    if table is None:
        fail("TABLE_NOT_FOUND", "Lookup table not found", "table_id")
    return table


def require_row(tx, lookups, table_id: str, row_id: str) -> dict:
    row = lookups.get_row(tx, row_id)
    if row is None or row.get("table_id") != table_id:
        fail("ROW_NOT_FOUND", "Row not found", "row_id")
    return row


def require_column(tx, lookups, table_id: str, column_id: str) -> dict:
    column = lookups.get_column(tx, column_id)
    if column is None or column.get("table_id") != table_id:
        fail("COLUMN_NOT_FOUND", "Column not found", "column_id")
    return column


def require_data_type(data_type: Any) -> str:
    if not is_valid_data_type(data_type):
        fail("INVALID_DATA_TYPE", "data_type must be one of string, number, boolean, datetime", "data_type")
    return data_type
