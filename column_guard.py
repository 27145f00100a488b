"""Column schema changes guarded against collapsing distinct rows."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from lookupcore.cells import normalize_cell
from lookupcore.row_hash import canonicalize

from lookup_tx import fail, require_column, require_data_type, require_table, run_operation

logger = logging.getLogger("lookup.columns")


def find_projection_collision(table_id: str, columns: list[dict], rows: Iterable[dict]) -> tuple[str, str] | None:
    """Return the ids of the first two rows whose values hash alike over ``columns``."""
    seen: dict[str, str] = {}
    for row in rows:
        _, row_hash = canonicalize(table_id, columns, row.get("values") or {})
        if row_hash in seen:
            return seen[row_hash], row["id"]
        seen[row_hash] = row["id"]
    return None


def can_delete_column(tx, lookups, table_id: str, column_id: str) -> dict | None:
    """Check whether ``column_id`` can be dropped; returns an issue or None.

    Reads only. The caller must delete inside the same transaction.
    """
    require_column(tx, lookups, table_id, column_id)
    remaining = [c for c in lookups.list_columns(tx, table_id) if c["id"] != column_id]
    if not remaining:
        return None
    collision = find_projection_collision(table_id, remaining, lookups.list_rows(tx, table_id))
    if collision is None:
        return None
    logger.info("column_delete_blocked table_id=%s column_id=%s rows=%s", table_id, column_id, list(collision))
    return {
        "code": "COLUMN_DELETE_CONFLICT",
        "message": "Cannot delete column: would create duplicate rows",
        "path": "column_id",
        "detail": {"row_ids": list(collision)},
    }


def refresh_row_hashes(tx, lookups, table_id: str, columns: list[dict], rows: list[dict] | None = None) -> int:
    """Re-key every row to its hash over ``columns``.

    Stored values are left alone. Callers must have ruled out collisions over
    ``columns`` first. Returns the number of rows re-keyed.
    """
    if rows is None:
        rows = lookups.list_rows(tx, table_id)
    changed = 0
    for row in rows:
        _, row_hash = canonicalize(table_id, columns, row.get("values") or {})
        if row_hash == row.get("row_hash"):
            continue
        lookups.update_row(tx, row["id"], {"row_hash": row_hash})
        changed += 1
    return changed


def list_columns(tx_mgr, lookups, table_id: str) -> dict:
    def _list(tx) -> dict:
        require_table(tx, lookups, table_id)
        return {"columns": lookups.list_columns(tx, table_id)}

    return run_operation(tx_mgr, _list)


def add_column(tx_mgr, lookups, table_id: str, name: str, data_type: str, sort_order: int | None = None) -> dict:
    def _add(tx) -> dict:
        require_table(tx, lookups, table_id)
        if not isinstance(name, str) or not name.strip():
            fail("REQUIRED_FIELD", "Column name is required", "name")
        require_data_type(data_type)
        order = sort_order if isinstance(sort_order, int) and not isinstance(sort_order, bool) else 0
        column = lookups.create_column(tx, table_id, name.strip(), data_type, order)
        rehashed = refresh_row_hashes(tx, lookups, table_id, lookups.list_columns(tx, table_id))
        logger.info("column_added table_id=%s column_id=%s rows_rehashed=%s", table_id, column["id"], rehashed)
        return {"column": column}

    return run_operation(tx_mgr, _add)


def update_column(tx_mgr, lookups, table_id: str, column_id: str, changes: dict) -> dict:
    """Rename, re-order or re-type a column.

    A data type change re-normalizes that column's stored cells. It is refused
    with ``COLUMN_UPDATE_CONFLICT`` if a stored value would not convert to the
    new type, or if two rows would become identical.
    """

    def _update(tx) -> dict:
        existing = require_column(tx, lookups, table_id, column_id)
        patch: dict[str, Any] = {}
        if isinstance(changes.get("name"), str) and changes["name"].strip():
            patch["name"] = changes["name"].strip()
        if isinstance(changes.get("sort_order"), int) and not isinstance(changes["sort_order"], bool):
            patch["sort_order"] = changes["sort_order"]
        if "data_type" in changes:
            patch["data_type"] = require_data_type(changes["data_type"])

        retyped = "data_type" in patch and patch["data_type"] != existing["data_type"]
        column = lookups.update_column(tx, column_id, patch)
        if not retyped:
            return {"column": column}

        columns = lookups.list_columns(tx, table_id)
        rows = lookups.list_rows(tx, table_id)
        retyped_ids = []
        lossy_ids = []
        for row in rows:
            values = dict(row.get("values") or {})
            old = values.get(column_id)
            if old is None:
                continue
            cell = normalize_cell(patch["data_type"], old)
            if cell is None:
                lossy_ids.append(row["id"])
                continue
            if cell != old or type(cell) is not type(old):
                values[column_id] = cell
                row["values"] = values
                retyped_ids.append(row["id"])
        if lossy_ids:
            logger.info("column_retype_lossy table_id=%s column_id=%s rows=%s", table_id, column_id, lossy_ids)
            fail(
                "COLUMN_UPDATE_CONFLICT",
                f"Cannot change data type: {len(lossy_ids)} row(s) hold values that do not convert to {patch['data_type']}",
                "data_type",
                {"row_ids": lossy_ids},
            )
        collision = find_projection_collision(table_id, columns, rows)
        if collision is not None:
            logger.info("column_retype_blocked table_id=%s column_id=%s rows=%s", table_id, column_id, list(collision))
            fail(
                "COLUMN_UPDATE_CONFLICT",
                "Cannot change data type: would create duplicate rows",
                "data_type",
                {"row_ids": list(collision)},
            )
        by_id = {row["id"]: row for row in rows}
        for row_id in retyped_ids:
            lookups.update_row(tx, row_id, {"values": by_id[row_id]["values"]})
        rehashed = refresh_row_hashes(tx, lookups, table_id, columns, rows)
        logger.info(
            "column_retyped table_id=%s column_id=%s from=%s to=%s rows_rehashed=%s",
            table_id,
            column_id,
            existing["data_type"],
            patch["data_type"],
            rehashed,
        )
        return {"column": column}

    return run_operation(tx_mgr, _update)


def delete_column(tx_mgr, lookups, table_id: str, column_id: str) -> dict:
    """Drop a column unless that would make two existing rows identical.

    The dropped column's key stays in each row's stored values.
    """

    def _delete(tx) -> dict:
        issue = can_delete_column(tx, lookups, table_id, column_id)
        if issue is not None:
            fail(issue["code"], issue["message"], issue["path"], issue["detail"])
        lookups.delete_column(tx, column_id)
        remaining = lookups.list_columns(tx, table_id)
        rehashed = refresh_row_hashes(tx, lookups, table_id, remaining) if remaining else 0
        logger.info("column_deleted table_id=%s column_id=%s rows_rehashed=%s", table_id, column_id, rehashed)
        return {}

    return run_operation(tx_mgr, _delete)
