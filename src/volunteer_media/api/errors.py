"""
Exception handlers that give every error response the same shape.

All errors render as ``{"error": "<message>"}``. Handlers that need to
return extra fields (``attempts_remaining``, ``warnings``...) raise
HTTPException with a dict detail, which is used as the body verbatim.
"""

import logging
import re
from typing import Any, Dict, Iterable

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

_QUOTED = re.compile(r"'([^']*)'")
_VALUE_ERROR_PREFIX = "Value error, "


def _field_name(loc: Iterable[Any]) -> str:
    names = [str(part) for part in loc if isinstance(part, str) and part not in ("body", "query", "path")]
    return names[-1] if names else "request"


def _format_one(error: Dict[str, Any]) -> str:
    field = _field_name(error.get("loc", ()))
    kind = error.get("type", "")
    ctx = error.get("ctx") or {}
    msg = error.get("msg", "")

    if kind == "missing":
        return f"{field} is required"
    if kind == "string_too_short":
        min_length = ctx.get("min_length", 1)
        if min_length <= 1:
            return f"{field} is required"
        return f"{field} must be at least {min_length} characters"
    if kind == "string_too_long":
        return f"{field} must be at most {ctx.get('max_length')} characters"
    if kind == "string_pattern_mismatch":
        return f"{field} may only contain letters, numbers, underscores, dots, and dashes"
    if kind in ("literal_error", "enum"):
        options = _QUOTED.findall(str(ctx.get("expected", "")))
        return f"{field} must be one of: {', '.join(options)}"
    if kind == "value_error" and "email" in msg.lower():
        return f"{field} must be a valid email address"
    if msg.startswith(_VALUE_ERROR_PREFIX):
        return msg[len(_VALUE_ERROR_PREFIX):]
    return f"{field}: {msg}"


def format_validation_error(errors: Iterable[Dict[str, Any]]) -> str:
    """Turn pydantic error dicts into one human readable message."""
    messages = []
    for error in errors:
        message = _format_one(error)
        if message not in messages:
            messages.append(message)
    return "; ".join(messages) or "invalid request"


def error_body(detail: Any) -> Dict[str, Any]:
    if isinstance(detail, dict):
        return dict(detail)
    return {"error": detail}


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = format_validation_error(exc.errors())
    logger.debug(f"Validation failed on {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "internal server error"})


def install_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
