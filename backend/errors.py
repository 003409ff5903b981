"""Error taxonomy and the FastAPI handlers that render it as ``{"error": ...}``."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("resumeai.errors")


class ServiceError(Exception):
    """Base error carrying the HTTP status and any extra JSON fields."""

    status_code = 500
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, status_code: int | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class BadRequest(ServiceError):
    status_code = 400
    default_message = "Invalid request."


class Unauthenticated(ServiceError):
    status_code = 401
    default_message = "Sign in required."


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Upgrade to Pro to use this feature."


class RateLimited(ServiceError):
    status_code = 429
    default_message = "Daily limit reached. Upgrade to continue."

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        extra.setdefault("limitReached", True)
        extra.setdefault("remaining", 0)
        super().__init__(message, **extra)


class UpstreamFailure(ServiceError):
    status_code = 500
    default_message = "The service is temporarily unavailable. Please retry shortly."


class ModelTimeout(ServiceError):
    status_code = 504
    default_message = "The AI request timed out. Please try again."


class MalformedModelOutput(ServiceError):
    status_code = 500
    default_message = "The AI returned an unexpected response. Please try again."


class ServerMisconfigured(ServiceError):
    status_code = 500
    default_message = "This feature is not configured on the server."


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request body."
    if errors:
        first = errors[0]
        if first.get("type") == "json_invalid":
            message = "Malformed JSON body."
        else:
            location = [str(part) for part in first.get("loc", ()) if part != "body"]
            if location:
                message = f"Invalid or missing field: {'.'.join(location)}"
    return JSONResponse(status_code=400, content={"error": message})


async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        message = "Method not allowed"
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = "Request failed."
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": ServiceError.default_message})
