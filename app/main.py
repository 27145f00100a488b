"""FastAPI app exposing the lookup table row engine."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging

from app.lookup_validation import (
    is_uuid as _is_uuid,
    validate_bulk_payload as _validate_bulk_payload,
    validate_column_payload as _validate_column_payload,
    validate_row_payload as _validate_row_payload,
    validate_table_payload as _validate_table_payload,
)
from app.stores import InMemoryTxManager, MemoryLookupStore
from app.stores_db import DbLookupStore, DbTxManager
from column_guard import add_column, delete_column, list_columns, update_column
from lookup_tx import require_table, run_operation
from row_import import import_rows
from row_mutation import create_row, delete_row, list_rows, update_row


app = FastAPI(title="Lookup Tables")
logger = logging.getLogger("lookup")
logging.basicConfig(level=logging.INFO)

APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
USE_DB = os.getenv("USE_DB", "").strip() == "1"
AUTO_MIGRATE = os.getenv("LOOKUP_AUTO_MIGRATE", "").strip() == "1"

_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("LOOKUP_CORS_ORIGINS", "").split(",")
    if origin.strip()
}

_STATUS_BY_CODE = {
    "TABLE_NOT_FOUND": 404,
    "ROW_NOT_FOUND": 404,
    "COLUMN_NOT_FOUND": 404,
    "ROW_BLANK": 400,
    "ROW_DUPLICATE": 409,
    "COLUMN_DELETE_CONFLICT": 409,
    "COLUMN_UPDATE_CONFLICT": 409,
}

if USE_DB:
    tx_mgr = DbTxManager()
    lookups = DbLookupStore()
    if AUTO_MIGRATE:
        tx_mgr.ensure_schema()
else:
    tx_mgr = InMemoryTxManager()
    lookups = MemoryLookupStore()


@app.middleware("http")
async def local_cors_fallback_middleware(request: Request, call_next):
    origin = request.headers.get("origin")
    if request.method == "OPTIONS":
        response = JSONResponse({}, status_code=200)
    else:
        response = await call_next(request)
    normalized_origin = origin.rstrip("/") if isinstance(origin, str) else origin
    allowed = normalized_origin in _CORS_ORIGINS or (IS_DEV and _LOCAL_CORS_REGEX.match(normalized_origin or ""))
    if normalized_origin and allowed:
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Access-Control-Allow-Headers", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "*")
        response.headers.setdefault("Vary", "Origin")
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _validation_response(errors: list, status: int = 400) -> JSONResponse:
    body = {"ok": False, "errors": errors, "warnings": []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _result_response(result: dict, status: int = 200) -> JSONResponse:
    if result.get("ok"):
        payload = {k: v for k, v in result.items() if k not in ("ok", "errors", "warnings")}
        return _ok_response(payload, warnings=result.get("warnings"), status=status)
    errors = result.get("errors") or []
    first = errors[0] if errors else {"code": "UNKNOWN_ERROR", "message": "Operation failed"}
    return _error_response(
        first["code"],
        first["message"],
        first.get("path"),
        first.get("detail"),
        status=_STATUS_BY_CODE.get(first["code"], 400),
    )


def _invalid_id(**ids: str) -> JSONResponse | None:
    for name, value in ids.items():
        if not _is_uuid(value):
            return _error_response("INVALID_ID", f"{name} must be a UUID", name)
    return None


async def _safe_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


# --- Tables ---


@app.get("/lookup-tables")
def get_tables():
    result = run_operation(tx_mgr, lambda tx: {"tables": lookups.list_tables(tx)})
    return _result_response(result)


@app.post("/lookup-tables")
async def create_table(request: Request):
    errors, clean = _validate_table_payload(await _safe_json(request), for_create=True)
    if errors:
        return _validation_response(errors)
    result = run_operation(
        tx_mgr,
        lambda tx: {"table": lookups.create_table(tx, clean["name"], clean.get("description"))},
    )
    return _result_response(result, status=201)


@app.put("/lookup-tables/{table_id}")
async def update_table(request: Request, table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid
    errors, clean = _validate_table_payload(await _safe_json(request), for_create=False)
    if errors:
        return _validation_response(errors)

    def _update(tx) -> dict:
        require_table(tx, lookups, table_id)
        return {"table": lookups.update_table(tx, table_id, clean)}

    return _result_response(run_operation(tx_mgr, _update))


@app.delete("/lookup-tables/{table_id}")
def remove_table(table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid

    def _delete(tx) -> dict:
        require_table(tx, lookups, table_id)
        lookups.delete_table(tx, table_id)
        return {}

    return _result_response(run_operation(tx_mgr, _delete))


# --- Columns ---


@app.get("/lookup-tables/{table_id}/columns")
def get_columns(table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid
    return _result_response(list_columns(tx_mgr, lookups, table_id))


@app.post("/lookup-tables/{table_id}/columns")
async def create_column(request: Request, table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid
    errors, clean = _validate_column_payload(await _safe_json(request), for_create=True)
    if errors:
        return _validation_response(errors)
    result = add_column(tx_mgr, lookups, table_id, clean["name"], clean["data_type"], clean.get("sort_order"))
    return _result_response(result, status=201)


@app.put("/lookup-tables/{table_id}/columns/{column_id}")
async def change_column(request: Request, table_id: str, column_id: str):
    invalid = _invalid_id(table_id=table_id, column_id=column_id)
    if invalid:
        return invalid
    errors, clean = _validate_column_payload(await _safe_json(request), for_create=False)
    if errors:
        return _validation_response(errors)
    return _result_response(update_column(tx_mgr, lookups, table_id, column_id, clean))


@app.delete("/lookup-tables/{table_id}/columns/{column_id}")
def remove_column(table_id: str, column_id: str):
    invalid = _invalid_id(table_id=table_id, column_id=column_id)
    if invalid:
        return invalid
    return _result_response(delete_column(tx_mgr, lookups, table_id, column_id))


# --- Rows ---


@app.get("/lookup-tables/{table_id}/rows")
def get_rows(table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid
    return _result_response(list_rows(tx_mgr, lookups, table_id))


@app.post("/lookup-tables/{table_id}/rows")
async def create_table_row(request: Request, table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid
    errors, clean = _validate_row_payload(await _safe_json(request), for_create=True)
    if errors:
        return _validation_response(errors)
    result = create_row(tx_mgr, lookups, table_id, clean["values"], clean.get("sort_order"))
    return _result_response(result, status=201)


@app.post("/lookup-tables/{table_id}/rows/bulk")
async def import_table_rows(request: Request, table_id: str):
    invalid = _invalid_id(table_id=table_id)
    if invalid:
        return invalid
    errors, rows = _validate_bulk_payload(await _safe_json(request))
    if errors:
        return _validation_response(errors)
    return _result_response(import_rows(tx_mgr, lookups, table_id, rows), status=201)


@app.put("/lookup-tables/{table_id}/rows/{row_id}")
async def update_table_row(request: Request, table_id: str, row_id: str):
    invalid = _invalid_id(table_id=table_id, row_id=row_id)
    if invalid:
        return invalid
    errors, clean = _validate_row_payload(await _safe_json(request), for_create=False)
    if errors:
        return _validation_response(errors)
    result = update_row(tx_mgr, lookups, table_id, row_id, clean.get("values"), clean.get("sort_order"))
    return _result_response(result)


@app.delete("/lookup-tables/{table_id}/rows/{row_id}")
def delete_table_row(table_id: str, row_id: str):
    invalid = _invalid_id(table_id=table_id, row_id=row_id)
    if invalid:
        return invalid
    return _result_response(delete_row(tx_mgr, lookups, table_id, row_id))
