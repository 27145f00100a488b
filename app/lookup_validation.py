"""Request shape validation for the lookup table endpoints."""

from __future__ import annotations

import math
import uuid
from typing import Any

from lookupcore.cells import DATA_TYPES


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> dict:
    return {"code": code, "message": message, "path": path, "detail": detail}


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except (TypeError, ValueError):
        return False


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_cell_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, bool, int)):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _check_values(values: Any, path: str, errors: list[dict]) -> dict:
    if not isinstance(values, dict):
        errors.append(_issue("TYPE_MISMATCH", "values must be an object", path))
        return {}
    for key, val in values.items():
        if not _is_cell_value(val):
            errors.append(_issue("TYPE_MISMATCH", f"{key} must be a string, number, boolean or null", f"{path}.{key}"))
    return values


def _check_sort_order(body: dict, path: str, errors: list[dict]) -> int | None:
    if "sort_order" not in body or body.get("sort_order") is None:
        return None
    value = body.get("sort_order")
    if not _is_int(value):
        errors.append(_issue("TYPE_MISMATCH", "sort_order must be an integer", path))
        return None
    return value


def validate_row_payload(body: Any, for_create: bool, path: str = "row") -> tuple[list[dict], dict]:
    errors: list[dict] = []
    if not isinstance(body, dict):
        return [_issue("INVALID_PAYLOAD", "Row payload must be an object", path)], {}
    clean: dict = {}
    if "values" in body and body.get("values") is not None:
        clean["values"] = _check_values(body["values"], f"{path}.values", errors)
    elif for_create:
        errors.append(_issue("REQUIRED_FIELD", "Missing required field: values", f"{path}.values"))
    sort_order = _check_sort_order(body, f"{path}.sort_order", errors)
    if sort_order is not None:
        clean["sort_order"] = sort_order
    return errors, clean


def validate_bulk_payload(body: Any) -> tuple[list[dict], list[dict]]:
    if not isinstance(body, dict):
        return [_issue("INVALID_PAYLOAD", "Bulk payload must be an object", None)], []
    rows = body.get("rows")
    if not isinstance(rows, list) or not rows:
        return [_issue("REQUIRED_FIELD", "rows must be a non-empty list", "rows")], []
    errors: list[dict] = []
    clean_rows: list[dict] = []
    for idx, item in enumerate(rows):
        row_errors, clean = validate_row_payload(item, for_create=True, path=f"rows[{idx}]")
        errors.extend(row_errors)
        clean_rows.append(clean)
    return errors, clean_rows


def validate_table_payload(body: Any, for_create: bool) -> tuple[list[dict], dict]:
    if not isinstance(body, dict):
        return [_issue("INVALID_PAYLOAD", "Table payload must be an object", None)], {}
    errors: list[dict] = []
    clean: dict = {}
    name = body.get("name")
    if name is not None or for_create:
        if not isinstance(name, str) or not name.strip():
            errors.append(_issue("REQUIRED_FIELD", "name must be a non-empty string", "name"))
        else:
            clean["name"] = name.strip()
    if "description" in body:
        description = body.get("description")
        if description is not None and not isinstance(description, str):
            errors.append(_issue("TYPE_MISMATCH", "description must be a string or null", "description"))
        else:
            clean["description"] = description
    return errors, clean


def validate_column_payload(body: Any, for_create: bool) -> tuple[list[dict], dict]:
    if not isinstance(body, dict):
        return [_issue("INVALID_PAYLOAD", "Column payload must be an object", None)], {}
    errors: list[dict] = []
    clean: dict = {}
    name = body.get("name")
    if name is not None or for_create:
        if not isinstance(name, str) or not name.strip():
            errors.append(_issue("REQUIRED_FIELD", "name must be a non-empty string", "name"))
        else:
            clean["name"] = name.strip()
    data_type = body.get("data_type")
    if data_type is not None or for_create:
        if data_type not in DATA_TYPES:
            errors.append(_issue("INVALID_DATA_TYPE", f"data_type must be one of {list(DATA_TYPES)}", "data_type"))
        else:
            clean["data_type"] = data_type
    sort_order = _check_sort_order(body, "sort_order", errors)
    if sort_order is not None:
        clean["sort_order"] = sort_order
    return errors, clean
