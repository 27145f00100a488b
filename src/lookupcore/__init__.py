"""Lookup table kernel: cell normalization and row hashing."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps, number_text
from .cells import DATA_TYPES, MISSING, CellValue, is_valid_data_type, normalize_cell
from .errors import RowHashConflict
from .row_hash import canonicalize, compute_row_hash, is_blank_row, normalize_row

__all__ = [
    "CanonicalJsonTypeError",
    "CellValue",
    "DATA_TYPES",
    "MISSING",
    "RowHashConflict",
    "canonical_dumps",
    "canonicalize",
    "compute_row_hash",
    "is_blank_row",
    "is_valid_data_type",
    "normalize_cell",
    "normalize_row",
    "number_text",
]
