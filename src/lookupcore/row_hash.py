"""Row canonicalization and content hashing."""

from __future__ import annotations

import hashlib
from typing import Any, Iterable, Mapping

from .canonical_json import canonical_dumps
from .cells import MISSING, CellValue, normalize_cell


def normalize_row(columns: Iterable[Mapping[str, Any]], raw_values: Mapping[str, Any] | None) -> dict[str, CellValue]:
    """Normalize ``raw_values`` against every column; unknown keys are ignored."""
    raw_values = raw_values if isinstance(raw_values, Mapping) else {}
    normalized: dict[str, CellValue] = {}
    for column in columns:
        column_id = column["id"]
        normalized[column_id] = normalize_cell(column.get("data_type"), raw_values.get(column_id, MISSING))
    return normalized


def canonical_values(normalized: Mapping[str, CellValue]) -> dict[str, CellValue]:
    return {key: normalized.get(key) for key in sorted(normalized.keys())}


def compute_row_hash(table_id: str, normalized: Mapping[str, CellValue]) -> str:
    """Return the hex SHA-256 of a row's canonical form within its table.

    Absent and null cells hash identically because ``normalized`` always
    carries every current column.
    """
    payload = canonical_dumps({"tableId": table_id, "values": canonical_values(normalized)})
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def canonicalize(
    table_id: str,
    columns: Iterable[Mapping[str, Any]],
    raw_values: Mapping[str, Any] | None,
) -> tuple[dict[str, CellValue], str]:
    normalized = normalize_row(columns, raw_values)
    return normalized, compute_row_hash(table_id, normalized)


def is_blank_row(normalized: Mapping[str, CellValue]) -> bool:
    if not normalized:
        return True
    return all(value is None for value in normalized.values())
