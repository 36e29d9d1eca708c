"""
Error taxonomy shared by services and routers.

Every error carries the HTTP status it maps to and renders a JSON body of the
form {"error", "details", "status"} (upstream errors add "suggestion").
Handlers are registered on the app in `register_error_handlers`.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("fintrack.errors")

DEFAULT_UPSTREAM_SUGGESTION = "Please try again later or check the submitted data."
INSUFFICIENT_BALANCE_SUGGESTION = (
    "The AI provider reports insufficient balance (402). Top up the account or configure another API key."
)
RATE_LIMIT_SUGGESTION = (
    "The AI provider is rate limiting requests (429). Wait a few minutes before trying again."
)


class AppError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, details: str = "", *, status_code: int | None = None, error: str | None = None) -> None:
        super().__init__(details or self.error)
        self.details = details or self.error
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error

    def to_content(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details, "status": self.status_code}


class ValidationError(AppError):
    """Missing or malformed request fields."""

    status_code = 400
    error = "Invalid request"


class InsufficientRowsError(ValidationError):
    error = "No data provided"

    def __init__(self, details: str = "The file has insufficient rows (need a header row and at least one data row).") -> None:
        super().__init__(details)


class AuthError(AppError):
    status_code = 401
    error = "Unauthorized"


class NotFoundError(AppError):
    status_code = 404
    error = "Not found"


class DataQualityError(AppError):
    """Detector or classifier produced no usable records."""

    status_code = 400
    error = "Data quality error"


class EmptyResultError(DataQualityError):
    error = "No transactions found"


class MalformedResponseError(DataQualityError):
    error = "Failed to parse bank statement"


class PersistenceError(AppError):
    status_code = 500
    error = "Failed to save data"


def suggestion_for_status(status_code: int, default: str = DEFAULT_UPSTREAM_SUGGESTION) -> str:
    if status_code == 402:
        return INSUFFICIENT_BALANCE_SUGGESTION
    if status_code == 429:
        return RATE_LIMIT_SUGGESTION
    return default


class UpstreamServiceError(AppError):
    """Inference backend answered with a non-2xx status or could not be reached."""

    error = "AI service error"

    def __init__(
        self,
        status_code: int,
        details: str = "",
        *,
        suggestion: str | None = None,
        provider: str | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(details or f"AI backend returned {status_code}", status_code=status_code, error=error)
        self.provider = provider
        self.suggestion = suggestion or suggestion_for_status(status_code)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429 or "rate limit" in self.details.lower()

    def to_content(self) -> dict[str, Any]:
        content = super().to_content()
        content["suggestion"] = self.suggestion
        return content


class ClassificationServiceError(UpstreamServiceError):
    error = "Failed to classify transactions"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_error path=%s status=%s details=%s", request.url.path, exc.status_code, exc.details)
        else:
            logger.info("request_rejected path=%s status=%s details=%s", request.url.path, exc.status_code, exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            details = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
        else:
            details = "Malformed request"
        return JSONResponse(status_code=400, content=ValidationError(details).to_content())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("request_unhandled path=%s error=%s", request.url.path, type(exc).__name__, exc_info=exc)
        return JSONResponse(status_code=500, content=AppError("An unexpected error occurred.").to_content())
