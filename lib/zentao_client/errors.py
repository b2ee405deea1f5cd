from __future__ import annotations


class ZentaoClientError(Exception):
    """Base client error."""


class NetworkError(ZentaoClientError):
    """Transport/network layer error."""


class TranslationError(ZentaoClientError, ValueError):
    """Raised when a verb+path pair has no ZenTao module/function mapping."""

    def __init__(self, method: str, path: str, reason: str | None = None):
        msg = f"cannot translate {method} {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.method = method
        self.path = path


class ApiError(ZentaoClientError):
    def __init__(self, status_code: int, message: str, details: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthError(ApiError):
    """Auth-related API error."""
