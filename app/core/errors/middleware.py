"""
FastAPI exception handler for CoachbillError.

Catches CoachbillError, looks up the registry, and returns a structured
JSON error response. Unknown codes get a safe fallback.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import CoachbillError
from app.core.errors.registry import error_registry

logger = logging.getLogger(__name__)


async def coachbill_error_handler(request: Request, exc: CoachbillError) -> JSONResponse:
    """Convert CoachbillError into a structured JSON response."""
    entry = error_registry.get(exc.code)

    if entry is None:
        logger.error(
            "unregistered_error_code",
            extra={"error.code": exc.code, "error.message": exc.detail},
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": exc.code,
                    "title": "Internal error",
                    "message": "An unexpected error occurred.",
                    "retryable": False,
                    "user_action_required": False,
                    "remediation": [],
                }
            },
        )

    log_extra = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "error.message_safe": entry.safe_message,
        "error.message": exc.detail,
        "error.retryable": entry.retryable,
        "error.user_action_required": entry.user_action_required,
        "http.path": request.url.path,
        **{f"error.ctx.{k}": v for k, v in exc.context.items()},
    }

    log_fn = severity_to_log_fn(entry.severity)
    log_fn(entry.title, extra=log_extra)

    return JSONResponse(
        status_code=entry.http_status,
        content={
            "error": {
                "code": entry.code,
                "title": entry.title,
                "message": entry.safe_message,
                "retryable": entry.retryable,
                "user_action_required": entry.user_action_required,
                "remediation": entry.remediation,
            }
        },
    )


def severity_to_log_fn(severity: str, log: logging.Logger = logger):
    """Map registry severity to logger method."""
    return {
        "DEBUG": log.debug,
        "INFO": log.info,
        "WARN": log.warning,
        "ERROR": log.error,
        "CRITICAL": log.critical,
    }.get(severity, log.error)
