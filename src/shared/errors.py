"""Custom exception classes and FastAPI exception handlers."""
from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from src.shared.models.scan import ScanSummary


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str, status_code: int = 500) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class ValidationError(AppError):
    """Validation error (422)."""

    def __init__(self, detail: str = "Validation error") -> None:
        super().__init__(detail=detail, status_code=422)


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, detail: str = "Resource not found") -> None:
        super().__init__(detail=detail, status_code=404)


class ParsingError(AppError):
    """Parsing error (400)."""

    def __init__(self, detail: str = "Parsing error") -> None:
        super().__init__(detail=detail, status_code=400)


class IndexUnavailableError(AppError):
    """The persisted index does not exist yet (503)."""

    def __init__(
        self,
        detail: str = (
            "Index database not found. Run the `rescan_memory` tool "
            "(or `scan` command) first to scan your codebase."
        ),
    ) -> None:
        super().__init__(detail=detail, status_code=503)


class StoreCorruptedError(AppError):
    """The persisted index exists but cannot be read (500)."""

    def __init__(self, detail: str = "Index database is corrupted or unreadable") -> None:
        super().__init__(detail=detail, status_code=500)


class ScanCancelledError(AppError):
    """A scan observed its cancellation signal (409).

    ``summary`` reports how far the scan got before stopping.
    """

    def __init__(
        self,
        summary: ScanSummary | None = None,
        detail: str = "Scan cancelled",
    ) -> None:
        self.summary = summary
        super().__init__(detail=detail, status_code=409)


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers with a FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )
