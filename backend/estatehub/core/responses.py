"""Uniform response envelope.

Every auth endpoint answers with the same shape::

    {
        "success": true,
        "statusCode": 200,
        "message": "OTP sent successfully",
        "data": {...},
        "timestamp": "2026-01-01T00:00:00.000000+00:00",
        "path": "/auth/send-otp"
    }

Failures carry ``success=false`` and an ``error`` object with a stable code.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from estatehub.core.exceptions import AppError
from estatehub.core.security import utcnow

logger = logging.getLogger(__name__)


def build_envelope(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    error: dict | None = None,
    path: str | None = None,
    meta: dict | None = None,
) -> dict:
    envelope: dict[str, Any] = {
        "success": 200 <= status_code < 300,
        "statusCode": status_code,
        "message": message,
        "timestamp": utcnow().isoformat(),
    }
    if path:
        envelope["path"] = path
    if data is not None:
        envelope["data"] = data
    if error is not None:
        envelope["error"] = error
    if meta is not None:
        envelope["meta"] = meta
    return envelope


def success_response(request: Request, data: Any, message: str = "Success", status_code: int = 200) -> dict:
    return build_envelope(
        status_code=status_code,
        message=message,
        data=data,
        path=request.url.path,
    )


def _error_response(request: Request, *, status_code: int, message: str, code: str, details=None, headers=None) -> JSONResponse:
    error: dict[str, Any] = {"code": code}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            build_envelope(status_code=status_code, message=message, error=error, path=request.url.path)
        ),
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _error_response(
        request,
        status_code=exc.status_code,
        message=exc.message,
        code=exc.code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(
        request,
        status_code=exc.status_code,
        message=message,
        code=f"HTTP_{exc.status_code}",
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in item.get("loc", ()) if part != "body"), "message": item.get("msg")}
        for item in exc.errors()
    ]
    return _error_response(
        request,
        status_code=400,
        message="Validation failed",
        code="INVALID_INPUT",
        details=details,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        request,
        status_code=500,
        message="Internal server error",
        code="INTERNAL_ERROR",
    )
