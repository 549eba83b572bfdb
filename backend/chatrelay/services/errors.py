"""Domain errors and provider error mapping.

Every error the API can answer with derives from `RelayError` and carries its
HTTP status and a short machine-readable type; `main.py` turns them into
`{"detail": ..., "type": ...}` responses.
"""

from __future__ import annotations

import openai


class RelayError(Exception):
    """Base class for expected service errors."""

    status_code = 500
    error_type = "api_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or "")
        self.message = message or (self.__class__.__doc__ or "").strip()


class ValidationError(RelayError):
    """Invalid parameters."""

    status_code = 400
    error_type = "invalid_request_error"


class NotFoundError(RelayError):
    """Resource not found."""

    status_code = 404
    error_type = "not_found_error"


class AuthorizationError(RelayError):
    """Unauthorized."""

    status_code = 403
    error_type = "permission_error"


class ConflictError(RelayError):
    """Resource state conflict."""

    status_code = 409
    error_type = "conflict_error"


class ProviderError(RelayError):
    """AI service error."""

    status_code = 502
    error_type = "provider_error"


class ProviderAuthError(ProviderError):
    """Invalid API key."""

    error_type = "provider_auth_error"


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded. Please try again later."""

    status_code = 429
    error_type = "rate_limit_error"


class ProviderUnavailableError(ProviderError):
    """AI service temporarily unavailable."""

    status_code = 503
    error_type = "provider_unavailable_error"


class StreamInterruptedError(RelayError):
    """Client disconnected mid-stream."""

    status_code = 499
    error_type = "stream_interrupted"


def map_provider_error(exc: Exception) -> ProviderError:
    """Translate an `openai` SDK exception into a provider error kind."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderAuthError(f"Invalid API key: {_describe(exc)}")
    if isinstance(exc, openai.RateLimitError):
        return ProviderRateLimitError(f"Rate limit exceeded: {_describe(exc)}")
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return ProviderUnavailableError(f"AI service unreachable: {_describe(exc)}")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code >= 500:
            return ProviderUnavailableError(f"AI service temporarily unavailable: {_describe(exc)}")
        return ProviderError(f"AI service error: {_describe(exc)}")
    return ProviderUnavailableError(f"AI service error: {_describe(exc)}")


def _describe(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return str(message)[:300]
