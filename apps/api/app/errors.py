"""Single mapping from pipeline errors to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from manuscript_providers import ProviderFailure
from manuscript_substrate.errors import PipelineError, RateLimitError

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code, headers=headers)


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if isinstance(exc, RateLimitError):
        return error_response(
            exc.status_code,
            exc.message,
            headers={"Retry-After": str(exc.retry_after)},
            retryAfter=exc.retry_after,
        )
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "code": exc.code, "error": exc.message})
    return error_response(exc.status_code, exc.message)


async def provider_failure_handler(request: Request, exc: ProviderFailure) -> JSONResponse:
    logger.error("Provider failure surfaced to client", extra={"path": request.url.path, "error": str(exc)})
    return error_response(exc.status_code, "Upstream provider failed")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(ProviderFailure, provider_failure_handler)
