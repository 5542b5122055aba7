"""
Domain exceptions raised by the integration pipeline.

Each error carries the HTTP status the routers translate it to and a
human-readable (Vietnamese) message that is safe to show to the teacher.
"""
from __future__ import annotations

from fastapi import status


class IntegrationError(Exception):
    """Base class for every failure that aborts an integration run."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(IntegrationError):
    """Missing file, subject or grade, or a file that is not a .docx."""

    status_code = status.HTTP_400_BAD_REQUEST


class FileTooLargeError(InputValidationError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class ExtractionError(IntegrationError):
    """The document could not be read or holds too little text."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AIServiceError(IntegrationError):
    """Generic failure of the generative AI call; message keeps the raw cause."""

    status_code = status.HTTP_502_BAD_GATEWAY


class AIServiceOverloadedError(AIServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class AIQuotaExceededError(AIServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class InvalidCredentialError(AIServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AIServiceTimeoutError(AIServiceError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class PipelineBusyError(IntegrationError):
    """A run is already in flight for this session."""

    status_code = status.HTTP_409_CONFLICT
