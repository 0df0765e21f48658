"""Typed error hierarchy for inference API and stream failures."""

from __future__ import annotations

from typing import Any


class InferenceError(Exception):
    """Base exception for all heroku-inference errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_body = error_body


class ConfigError(InferenceError):
    """Missing API key, model, or unusable configuration."""


# ---------------------------------------------------------------------------
# HTTP errors
# ---------------------------------------------------------------------------

class InferenceAPIError(InferenceError):
    """The service answered with a non-success status, or could not be reached."""


class ValidationError(InferenceAPIError):
    """400 / 422: invalid request parameters."""


class AuthenticationError(InferenceAPIError):
    """401: invalid or missing API key."""


class PermissionDeniedError(InferenceAPIError):
    """403: insufficient permissions."""


class NotFoundError(InferenceAPIError):
    """404: unknown endpoint or model."""


class ConflictError(InferenceAPIError):
    """409: conflicting request."""


class RateLimitError(InferenceAPIError):
    """429: too many requests."""


class ServerError(InferenceAPIError):
    """500+: server-side error."""


class RetriesExhaustedError(InferenceAPIError):
    """Every allowed attempt failed with a retryable error."""

    def __init__(
        self,
        message: str,
        attempts: int,
        status_code: int | None = None,
        error_body: Any = None,
    ):
        super().__init__(message, status_code=status_code, error_body=error_body)
        self.attempts = attempts


STATUS_MAP: dict[int, type[InferenceAPIError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    429: RateLimitError,
}


def error_for_status(status_code: int) -> type[InferenceAPIError]:
    if status_code >= 500:
        return ServerError
    return STATUS_MAP.get(status_code, InferenceAPIError)


# ---------------------------------------------------------------------------
# Stream errors
# ---------------------------------------------------------------------------

class StreamDecodeError(InferenceError):
    """Reading or decoding the response byte stream failed."""


class StreamProtocolError(InferenceError):
    """A well-formed SSE event carried data that is not valid JSON."""


class StreamEventError(InferenceError):
    """The service reported a failure through an ``error`` event."""
