"""
Error responses.

Every failure leaves the API as ``{"success": false, "error": message}``.
A message is shown verbatim only when it matches a known-safe pattern and
no dangerous one (driver / SQL internals, credentials, stack traces).
Anything else, including every unexpected exception, is logged in full and
replaced with a generic localized message.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from transfer.config import settings
from transfer.domain.errors import BookingError

logger = logging.getLogger(__name__)

GENERIC_MESSAGES = {
    "th": "เกิดข้อผิดพลาด กรุณาลองใหม่อีกครั้ง",
    "en": "Something went wrong, please try again",
}
CONFLICT_MESSAGES = {
    "th": "ข้อมูลถูกแก้ไขโดยคำขออื่น กรุณาโหลดใหม่แล้วลองอีกครั้ง",
    "en": "The record was modified by another request, please reload and retry",
}
RATE_LIMIT_MESSAGES = {
    "th": "คำขอมากเกินไป กรุณารอสักครู่แล้วลองใหม่",
    "en": "Too many requests, please slow down and retry later",
}

SAFE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"not found",
        r"not authorized",
        r"authentication required",
        r"access required",
        r"required",
        r"invalid",
        r"must",
        r"cannot",
        r"already",
        r"\bonly\b",
        r"^please ",
        r"^no ",
        r"not configured",
        r"modified by another request",
        r"too many requests",
        r"ไม่พบ",
        r"ไม่มีสิทธิ์",
        r"ไม่ถูกต้อง",
        r"กรุณา",
    )
]

DANGEROUS_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"sqlalchemy",
        r"asyncpg",
        r"psycopg",
        r"sqlite",
        r"postgres",
        r"redis",
        r"\bselect\b.+\bfrom\b",
        r"\binsert into\b",
        r"\bupdate\b.+\bset\b",
        r"api.*key",
        r"secret",
        r"credential",
        r"password",
        r"token=",
        r"permission denied",
        r"internal server",
        r"ECONNREFUSED",
        r"ETIMEDOUT",
        r"connection refused",
        r"traceback",
        r"stack",
        r'File ".*", line \d+',
        r"at\s+\S+\s+\(",
    )
]


def is_safe_message(message: Optional[str]) -> bool:
    if not message:
        return False
    if any(p.search(message) for p in DANGEROUS_PATTERNS):
        return False
    return any(p.search(message) for p in SAFE_PATTERNS)


def request_locale(request: Optional[Request]) -> str:
    """``en`` when the client prefers English, else the configured default."""
    if request is not None:
        accept = request.headers.get("accept-language", "").lower()
        for lang in ("th", "en"):
            if accept.startswith(lang):
                return lang
    return settings.default_locale if settings.default_locale in GENERIC_MESSAGES else "th"


def safe_error_message(message: Optional[str], request: Optional[Request] = None) -> str:
    if is_safe_message(message):
        return message  # type: ignore[return-value]
    return GENERIC_MESSAGES[request_locale(request)]


def error_response(status_code: int, message: str, code: Optional[str] = None) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": message}
    if code:
        body["code"] = code
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


# ── Handlers ──────────────────────────────────────────────────────────


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    message = safe_error_message(exc.message, request)
    if message != exc.message:
        logger.warning(
            "Withheld %s message on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
        )
    return error_response(exc.status_code, message, exc.code)


async def stale_data_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info("Concurrent write on %s %s: %s", request.method, request.url.path, exc)
    return error_response(409, CONFLICT_MESSAGES[request_locale(request)], "conflict")


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        fields.append(loc or "body")
    message = f"Invalid request: {', '.join(fields)}" if fields else "Invalid request"
    return error_response(400, message, "validation_error")


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.info(
        "Rate limit hit on %s %s (%s)", request.method, request.url.path, exc.detail
    )
    response = error_response(429, RATE_LIMIT_MESSAGES[request_locale(request)], "rate_limited")
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s (user=%s)",
        request.method,
        request.url.path,
        request.headers.get("x-user-id"),
    )
    return error_response(500, GENERIC_MESSAGES[request_locale(request)], "internal_error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)
    app.add_exception_handler(IntegrityError, stale_data_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
