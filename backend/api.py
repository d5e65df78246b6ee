"""FastAPI entrypoint for the transactions HTTP endpoints."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any
from uuid import UUID

from fastapi import Body, FastAPI, Header, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.auth.supabase_auth import (
    UnauthorizedError,
    extract_bearer_token,
    get_user_id_from_bearer_token,
)
from backend.factory import build_transaction_service
from backend.services.transaction_service import VALIDATION_MESSAGE, TransactionService
from shared import config as _config
from shared.models import FieldError, ToolError, ToolErrorCode


logger = logging.getLogger(__name__)


_STATUS_BY_ERROR_CODE = {
    ToolErrorCode.VALIDATION_ERROR: 400,
    ToolErrorCode.NOT_FOUND: 404,
    ToolErrorCode.BACKEND_ERROR: 500,
}


@lru_cache(maxsize=1)
def _cached_transaction_service() -> TransactionService:
    return build_transaction_service()


def get_transaction_service() -> TransactionService:
    """Create the transaction service once per process."""

    return _cached_transaction_service()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    if _cached_transaction_service.cache_info().currsize:
        _cached_transaction_service().close()
        _cached_transaction_service.cache_clear()
        logger.info("transaction_service_closed")


def _envelope(
    *,
    status_code: int = 200,
    data: Any = None,
    message: str | None = None,
    errors: list[FieldError] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": 200 <= status_code < 300}
    if message is not None:
        content["message"] = message
    if data is not None:
        content["data"] = jsonable_encoder(data, by_alias=True)
    if errors:
        content["errors"] = jsonable_encoder(errors)
    return JSONResponse(status_code=status_code, content=content)


def _error_response(error: ToolError) -> JSONResponse:
    return _envelope(
        status_code=_STATUS_BY_ERROR_CODE.get(error.code, 500),
        message=error.message,
        errors=error.errors,
    )


def _resolve_authenticated_user(authorization: str | None) -> UUID:
    """Resolve the owner id from the bearer token; client input never sets it."""

    try:
        token = extract_bearer_token(authorization)
        return get_user_id_from_bearer_token(token)
    except UnauthorizedError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def _present(**params: str | None) -> dict[str, str]:
    return {name: value for name, value in params.items() if value is not None}


app = FastAPI(title="Personal Finance Transactions API", lifespan=lifespan)

ALLOW_ORIGINS = _config.cors_allow_origins()


@app.middleware("http")
async def log_http_requests(request: Request, call_next):
    """Log incoming requests, HTTP status codes and unexpected errors."""

    logger.info("http_request_received method=%s path=%s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "http_request_failed method=%s path=%s",
            request.method,
            request.url.path,
        )
        raise

    logger.info(
        "http_response_sent method=%s path=%s status_code=%s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("cors_allow_origins=%s", ALLOW_ORIGINS)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors with the standard envelope."""

    return _envelope(status_code=exc.status_code, message=str(exc.detail))


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return malformed path ids and bodies as field-level 400 errors."""

    errors = [
        FieldError(
            field=".".join(str(part) for part in error.get("loc", ())[1:]) or "request",
            message=str(error.get("msg", "Invalid value")),
        )
        for error in exc.errors()
    ]
    return _envelope(status_code=400, message=VALIDATION_MESSAGE, errors=errors)


@app.exception_handler(Exception)
async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for unhandled exceptions."""

    logger.exception(
        "unhandled_exception method=%s path=%s exception_type=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc_info=exc,
    )
    return _envelope(status_code=500, message="Internal Server Error")


@app.get("/health")
def health() -> JSONResponse:
    """Healthcheck endpoint."""

    return _envelope(message="Server up")


@app.get("/transactions")
def list_transactions(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    category: str | None = Query(default=None),
    transaction_type: str | None = Query(default=None, alias="type"),
    description: str | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    """Return one page of the caller's transactions."""

    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().list_transactions(
        user_id=user_id,
        params=_present(
            startDate=start_date,
            endDate=end_date,
            category=category,
            type=transaction_type,
            description=description,
            page=page,
            limit=limit,
            sortBy=sort_by,
            sortOrder=sort_order,
        ),
    )
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data=result)


@app.get("/transactions/stats")
def get_transaction_stats(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    """Return income/expense totals for the caller."""

    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().type_stats(
        user_id=user_id,
        params=_present(startDate=start_date, endDate=end_date),
    )
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data=result)


@app.get("/transactions/stats/categories")
def get_category_stats(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    transaction_type: str | None = Query(default=None, alias="type"),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().category_stats(
        user_id=user_id,
        params=_present(startDate=start_date, endDate=end_date, type=transaction_type),
    )
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data=result)


@app.get("/transactions/stats/monthly")
def get_monthly_stats(
    year: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().monthly_stats(user_id=user_id, params=_present(year=year))
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data=result)


@app.get("/transactions/meta/categories")
def list_user_categories(authorization: str | None = Header(default=None)) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().distinct_values(user_id=user_id, field="category")
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data={"categories": result})


@app.get("/transactions/meta/payment-methods")
def list_user_payment_methods(authorization: str | None = Header(default=None)) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().distinct_values(user_id=user_id, field="payment_method")
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data={"paymentMethods": result})


@app.get("/transactions/meta/tags")
def list_user_tags(authorization: str | None = Header(default=None)) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().distinct_values(user_id=user_id, field="tags")
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data={"tags": result})


@app.get("/transactions/{transaction_id}")
def get_transaction(transaction_id: UUID, authorization: str | None = Header(default=None)) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().get_transaction(user_id=user_id, transaction_id=transaction_id)
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(data={"transaction": result})


@app.post("/transactions")
def add_transaction(
    payload: Any = Body(default=None),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().create_transaction(user_id=user_id, payload=payload)
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(
        status_code=201,
        message="Transaction added successfully",
        data={"transaction": result},
    )


@app.patch("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: UUID,
    payload: Any = Body(default=None),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    """Apply a partial update; foreign transactions answer 404."""

    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().update_transaction(
        user_id=user_id,
        transaction_id=transaction_id,
        payload=payload,
    )
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(message="Transaction updated successfully", data={"transaction": result})


@app.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: UUID, authorization: str | None = Header(default=None)) -> JSONResponse:
    """Delete a transaction and echo its prior state."""

    user_id = _resolve_authenticated_user(authorization)
    result = get_transaction_service().delete_transaction(user_id=user_id, transaction_id=transaction_id)
    if isinstance(result, ToolError):
        return _error_response(result)
    return _envelope(message="Transaction deleted successfully", data={"transaction": result})
