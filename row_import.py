"""Bulk import of lookup table rows with content-hash deduplication."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from lookupcore.row_hash import canonicalize, is_blank_row

from lookup_tx import require_table, run_operation

logger = logging.getLogger("lookup.import")


def _sort_order(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def classify_rows(table_id: str, columns: list[dict], rows: Iterable[dict]) -> tuple[list[dict], dict]:
    """Split raw rows into insert candidates and per-reason skip counts.

    Blank rows and repeats of a hash already seen earlier in the same batch are
    dropped; the first occurrence of each hash wins.
    """
    counts = {"skipped_blank": 0, "skipped_duplicate_in_request": 0}
    candidates: list[dict] = []
    seen: set[str] = set()
    for item in rows:
        item = item if isinstance(item, dict) else {}
        normalized, row_hash = canonicalize(table_id, columns, item.get("values") or {})
        if is_blank_row(normalized):
            counts["skipped_blank"] += 1
            continue
        if row_hash in seen:
            counts["skipped_duplicate_in_request"] += 1
            continue
        seen.add(row_hash)
        candidates.append({"values": normalized, "row_hash": row_hash, "sort_order": _sort_order(item.get("sort_order"))})
    return candidates, counts


def import_rows(tx_mgr, lookups, table_id: str, rows: list[dict]) -> dict:
    """Insert every new, non-blank, distinct row of ``rows`` into the table.

    Returns ``inserted`` plus the ``skipped_blank``,
    ``skipped_duplicate_in_request`` and ``skipped_existing`` counts. Without a
    concurrent writer the four add up to ``len(rows)``; with one, rows the store
    ignored on conflict are missing from every count but never duplicated.
    """

    def _import(tx) -> dict:
        require_table(tx, lookups, table_id)
        columns = lookups.list_columns(tx, table_id)
        candidates, counts = classify_rows(table_id, columns, rows)

        skipped_existing = 0
        inserted = 0
        if candidates:
            existing = lookups.find_row_hashes(tx, table_id, {c["row_hash"] for c in candidates})
            to_insert = [c for c in candidates if c["row_hash"] not in existing]
            skipped_existing = len(candidates) - len(to_insert)
            if to_insert:
                inserted = lookups.insert_rows(tx, table_id, to_insert)
                if inserted < len(to_insert):
                    logger.warning(
                        "import_conflict_ignored table_id=%s candidates=%s inserted=%s",
                        table_id,
                        len(to_insert),
                        inserted,
                    )

        logger.info(
            "import_rows table_id=%s received=%s inserted=%s skipped_blank=%s skipped_duplicate_in_request=%s skipped_existing=%s",
            table_id,
            len(rows),
            inserted,
            counts["skipped_blank"],
            counts["skipped_duplicate_in_request"],
            skipped_existing,
        )
        return {
            "inserted": inserted,
            "skipped_blank": counts["skipped_blank"],
            "skipped_duplicate_in_request": counts["skipped_duplicate_in_request"],
            "skipped_existing": skipped_existing,
        }

    return run_operation(tx_mgr, _import)
