"""
Domain errors and global exception handlers (no stack-trace leakage).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class AttendanceError(Exception):
    """Base class for errors raised by the reconciliation engine."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnresolvableIdentityError(AttendanceError):
    """Provider record has no active mapping to an internal employee."""

    status_code = 404

    def __init__(self, external_code: str, external_name: str | None = None) -> None:
        label = f"{external_code} ({external_name})" if external_name else external_code
        super().__init__(f"No employee mapping for {label}")
        self.external_code = external_code


class MalformedPunchError(AttendanceError):
    """Date or in-time of a provider record could not be parsed."""

    status_code = 422

    def __init__(self, external_code: str, date_string: str, reason: str) -> None:
        super().__init__(f"Malformed punch for {external_code} on {date_string}: {reason}")
        self.external_code = external_code
        self.date_string = date_string


class InvalidOverrideError(AttendanceError):
    status_code = 422


class InvalidScopeError(AttendanceError):
    """Batch scope (date range, employee set) is unusable."""

    status_code = 422


class ProviderError(AttendanceError):
    """The biometric provider API failed or answered with garbage."""

    status_code = 502


class NotFoundError(AttendanceError):
    status_code = 404


# ── Handlers ────────────────────────────────────────────────────────
async def _attendance_error_handler(_request: Request, exc: AttendanceError) -> JSONResponse:
    logger.info("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "success": False},
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(AttendanceError, _attendance_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
