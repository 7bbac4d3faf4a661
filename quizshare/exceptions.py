"""
Exceptions and error handlers for the quiz service.
Every failure resolves to a JSON body with a user-facing message.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class QuizShareError(Exception):
    """Base exception for the quiz service"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(QuizShareError):
    """Local input problem: empty username, incomplete answers, malformed questions"""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"


class NotFoundError(QuizShareError):
    """Requested quiz or score does not exist"""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class PersistenceError(QuizShareError):
    """The store rejected a read or write"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "PERSISTENCE_ERROR"


class UpstreamGenerationError(QuizShareError):
    """The generative or transcript service failed or returned unusable content"""

    status_code = status.HTTP_502_BAD_GATEWAY
    UNREACHABLE = "unreachable"
    MALFORMED = "malformed"

    def __init__(
        self,
        message: str,
        reason: str = UNREACHABLE,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        super().__init__(message, details)

    @property
    def error_code(self) -> str:
        if self.reason == self.MALFORMED:
            return "UPSTREAM_MALFORMED"
        return "UPSTREAM_UNREACHABLE"


class InvalidTransition(QuizShareError):
    """A session action was attempted in a state that does not allow it"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "INVALID_TRANSITION"


async def quizshare_exception_handler(request: Request, exc: QuizShareError) -> JSONResponse:
    """Render a QuizShareError as a JSON response"""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)

    content = {"detail": exc.message, "error": exc.error_code}
    content.update(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuizShareError, quizshare_exception_handler)
