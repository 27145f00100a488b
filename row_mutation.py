"""Single-row create/update/delete for lookup tables."""

from __future__ import annotations

import logging
from typing import Any

from lookupcore.errors import RowHashConflict
from lookupcore.row_hash import canonicalize, is_blank_row

from lookup_tx import fail, require_row, require_table, run_operation

logger = logging.getLogger("lookup.rows")


def _sort_order(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _duplicate(exc: RowHashConflict) -> None:
    logger.info("row_duplicate table_id=%s row_hash=%s existing=%s", exc.table_id, exc.row_hash[:12], exc.existing_row_id)
    fail(
        "ROW_DUPLICATE",
        "A row with identical values already exists",
        "values",
        {"existing_row_id": exc.existing_row_id},
    )


def list_rows(tx_mgr, lookups, table_id: str) -> dict:
    def _list(tx) -> dict:
        require_table(tx, lookups, table_id)
        return {"rows": lookups.list_rows(tx, table_id)}

    return run_operation(tx_mgr, _list)


def create_row(tx_mgr, lookups, table_id: str, values: dict | None, sort_order: int | None = None) -> dict:
    def _create(tx) -> dict:
        require_table(tx, lookups, table_id)
        columns = lookups.list_columns(tx, table_id)
        normalized, row_hash = canonicalize(table_id, columns, values or {})
        if is_blank_row(normalized):
            fail("ROW_BLANK", "Row is blank", "values")
        try:
            row = lookups.insert_row(tx, table_id, normalized, row_hash, _sort_order(sort_order) or 0)
        except RowHashConflict as exc:
            _duplicate(exc)
        logger.info("row_created table_id=%s row_id=%s", table_id, row["id"])
        return {"row": row}

    return run_operation(tx_mgr, _create)


def update_row(
    tx_mgr,
    lookups,
    table_id: str,
    row_id: str,
    values: dict | None = None,
    sort_order: int | None = None,
) -> dict:
    """Replace a row's values and/or sort order.

    Omitted ``values`` reuse the row's stored values as the full basis; there is
    no per-cell merge, so clearing one cell means resending the others.
    """

    def _update(tx) -> dict:
        existing = require_row(tx, lookups, table_id, row_id)
        basis = values if values is not None else (existing.get("values") or {})
        columns = lookups.list_columns(tx, table_id)
        normalized, row_hash = canonicalize(table_id, columns, basis)
        if is_blank_row(normalized):
            fail("ROW_BLANK", "Row is blank", "values")
        changes: dict = {"values": normalized, "row_hash": row_hash}
        order = _sort_order(sort_order)
        if order is not None:
            changes["sort_order"] = order
        try:
            row = lookups.update_row(tx, row_id, changes)
        except RowHashConflict as exc:
            _duplicate(exc)
        if row_hash != existing.get("row_hash"):
            logger.info("row_rehashed table_id=%s row_id=%s", table_id, row_id)
        return {"row": row}

    return run_operation(tx_mgr, _update)


def delete_row(tx_mgr, lookups, table_id: str, row_id: str) -> dict:
    def _delete(tx) -> dict:
        require_row(tx, lookups, table_id, row_id)
        lookups.delete_row(tx, row_id)
        logger.info("row_deleted table_id=%s row_id=%s", table_id, row_id)
        return {}

    return run_operation(tx_mgr, _delete)
