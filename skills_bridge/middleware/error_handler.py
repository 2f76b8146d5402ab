"""
Error normalizer

Turns every exception that escapes a route or gate into the JSON envelope
``{"success": false, "message": ..., ...}`` with a stable status code:

    bson InvalidId                  → 404 Resource not found
    pymongo DuplicateKeyError       → 400 field-specific duplicate message
    pydantic / request validation   → 400 joined messages + validationErrors
    jwt ExpiredSignatureError       → 401 token expired
    jwt InvalidTokenError           → 401 invalid token
    UploadError                     → 400 fixed upload message
    pymongo ConnectionFailure       → 503 database unavailable
    operational AppError            → its own status and message
    HTTPException                   → its own status and detail
    anything else                   → 500 Server Error

Outside production the body also carries the raw error and its stack trace.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Optional

import jwt
import orjson
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import ConnectionFailure, DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from skills_bridge.config import get_app_settings
from skills_bridge.middleware.rate_limit import get_client_ip
from skills_bridge.middleware.request_id import get_request_id
from skills_bridge.utils.errors import AppError, RateLimitExceededError, UploadError

logger = logging.getLogger(__name__)

SERVER_ERROR = "Server Error"

DUPLICATE_FIELD_MESSAGES = {
    "email": "An account with this email address already exists",
    "phone": "An account with this phone number already exists",
    "companyInfo.registrationNumber": "A company with this registration number already exists",
}

UPLOAD_MESSAGES = {
    UploadError.LIMIT_FILE_SIZE: "File size too large. Maximum size allowed is 5MB.",
    UploadError.LIMIT_UNEXPECTED_FILE: "Unexpected file field or too many files uploaded.",
}

# Request validation locations that are not part of the field name
_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


@dataclass
class NormalizedError:
    status_code: int
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


def _duplicate_key(exc: DuplicateKeyError) -> tuple[Optional[str], Any]:
    details = exc.details or {}
    key_value = details.get("keyValue") or {}
    if key_value:
        name = next(iter(key_value))
        return name, key_value[name]
    key_pattern = details.get("keyPattern") or {}
    if key_pattern:
        return next(iter(key_pattern)), None
    return None, None


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or "body"


def _field_message(error: dict[str, Any]) -> str:
    msg = str(error.get("msg", "Invalid value"))
    return msg.removeprefix("Value error, ")


def collect_validation_errors(errors: list[dict[str, Any]]) -> dict[str, str]:
    """First message per field, in the order pydantic reported them"""
    collected: dict[str, str] = {}
    for error in errors:
        collected.setdefault(_field_name(tuple(error.get("loc", ()))), _field_message(error))
    return collected


def normalize_error(exc: BaseException) -> NormalizedError:
    """Map an exception onto a status code, message and extra body fields"""
    if isinstance(exc, InvalidId):
        return NormalizedError(404, "Resource not found")

    if isinstance(exc, DuplicateKeyError):
        name, value = _duplicate_key(exc)
        message = DUPLICATE_FIELD_MESSAGES.get(name or "") or f"Duplicate field value: {value}"
        return NormalizedError(400, message, {"field": name, "value": value})

    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        validation_errors = collect_validation_errors(list(exc.errors()))
        message = ", ".join(validation_errors.values()) or "Validation failed"
        return NormalizedError(400, message, {"validationErrors": validation_errors})

    if isinstance(exc, jwt.ExpiredSignatureError):
        return NormalizedError(401, "Token has expired. Please login again.")

    if isinstance(exc, jwt.InvalidTokenError):
        return NormalizedError(401, "Invalid token. Please login again.")

    if isinstance(exc, UploadError):
        return NormalizedError(400, UPLOAD_MESSAGES.get(exc.code, exc.message))

    if isinstance(exc, ConnectionFailure):
        return NormalizedError(503, "Database connection error. Please try again later.")

    if isinstance(exc, AppError):
        if not exc.is_operational:
            return NormalizedError(500, SERVER_ERROR)
        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)
        return NormalizedError(exc.status_code, exc.message, dict(exc.extra), headers)

    if isinstance(exc, StarletteHTTPException):
        if isinstance(exc.detail, str):
            return NormalizedError(exc.status_code, exc.detail, headers=dict(exc.headers or {}))
        return NormalizedError(
            exc.status_code,
            HTTPStatus(exc.status_code).phrase,
            {"errors": exc.detail},
            dict(exc.headers or {}),
        )

    return NormalizedError(500, SERVER_ERROR)


def _principal_id(request: Request) -> Optional[str]:
    user = getattr(request.state, "user", None)
    return getattr(user, "id", None)


def build_log_data(request: Request, status_code: int, message: str) -> dict[str, Any]:
    """Structured summary of a failed request"""
    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "url": str(request.url.path) + (f"?{request.url.query}" if request.url.query else ""),
        "statusCode": status_code,
        "message": message,
        "userAgent": request.headers.get("User-Agent"),
        "ip": get_client_ip(request),
        "userId": _principal_id(request),
    }
    request_id = get_request_id(request)
    if request_id:
        log_data["requestId"] = request_id
    return log_data


async def handle_error(request: Request, exc: Exception) -> ORJSONResponse:
    """Exception handler shared by every registered exception type"""
    settings = get_app_settings(request)
    normalized = normalize_error(exc)

    if normalized.status_code >= 500:
        logger.error(f"Error: {exc!r}", exc_info=exc)
    else:
        logger.warning(f"Error: {exc!r}")

    log_data = build_log_data(request, normalized.status_code, normalized.message)
    if settings.is_production:
        logger.error("Error Log: %s", orjson.dumps(log_data).decode())
    else:
        logger.info(f"Error summary: {log_data}")

    body: dict[str, Any] = {"success": False, "message": normalized.message}
    body.update(normalized.details)

    if not settings.is_production:
        body["error"] = {"name": type(exc).__name__, "detail": str(exc)}
        body["stack"] = "".join(traceback.format_exception(exc))

    request_id = get_request_id(request)
    if request_id:
        body["requestId"] = request_id

    return ORJSONResponse(status_code=normalized.status_code, content=body, headers=normalized.headers)


AVAILABLE_ENDPOINTS = {
    "auth": "/api/auth (POST /register, POST /login, POST /logout, GET /me)",
    "public": "/api/public (GET /stats)",
    "health": "/health (Server health check)",
}


async def route_not_found(request: Request) -> ORJSONResponse:
    """404 for paths that match no route"""
    content = {
        "success": False,
        "message": f"Route {request.method} {request.url.path} not found",
        "availableEndpoints": AVAILABLE_ENDPOINTS,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    request_id = get_request_id(request)
    if request_id:
        content["requestId"] = request_id
    return ORJSONResponse(status_code=404, content=content)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    # Unmatched paths never get an endpoint in scope
    if exc.status_code == 404 and "endpoint" not in request.scope:
        return await route_not_found(request)
    return await handle_error(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the error normalizer for every recognised exception type"""
    for exc_class in (
        AppError,
        InvalidId,
        DuplicateKeyError,
        RequestValidationError,
        PydanticValidationError,
        jwt.PyJWTError,
        ConnectionFailure,
        Exception,
    ):
        app.add_exception_handler(exc_class, handle_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
