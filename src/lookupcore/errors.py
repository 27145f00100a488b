"""Storage-level errors shared by the lookup stores."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RowHashConflict(Exception):
    """A row with the same content hash already exists in the table."""

    table_id: str
    row_hash: str
    existing_row_id: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"row hash already present (table={self.table_id!r}, row_hash={self.row_hash[:12]!r})"
