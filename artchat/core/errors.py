"""Exception taxonomy for the messaging core."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MessagingError(Exception):
    """Base for expected, locally handled messaging outcomes."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationFailedError(MessagingError):
    """Malformed or missing ids, self-targeting, bad payload shape."""

    status_code = 400


class NotFoundError(MessagingError):
    status_code = 404


class ForbiddenError(MessagingError):
    """Role boundary violation, blocked relationship, non-owner mutation."""

    status_code = 403


class ContentRejectedError(MessagingError):
    """Content safety score fell below the acceptance threshold."""

    status_code = 422

    def __init__(self, message: str, violations: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.violations = list(violations or [])


class RateLimitedError(MessagingError):
    status_code = 429


class TransientIOError(MessagingError):
    """Persistence call failed. Never retried here; clients re-emit."""

    status_code = 503


async def messaging_exception_handler(
    request: Request, exc: MessagingError
) -> JSONResponse:
    """Render a MessagingError as a JSON error body."""
    if isinstance(exc, TransientIOError):
        logger.error("Transient error on %s: %s", request.url.path, exc.message)
    content: dict = {"error": exc.message, "type": exc.__class__.__name__}
    if isinstance(exc, ContentRejectedError):
        content["violations"] = exc.violations
    return JSONResponse(status_code=exc.status_code, content=content)
