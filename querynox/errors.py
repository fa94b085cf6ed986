"""Typed errors raised by the services and rendered once at the HTTP boundary.

Every error renders as ``{"error": message}``. Streaming turns turn them
into a terminal ``error`` event instead.
"""


class QueryNoxError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(QueryNoxError):
    """Missing or malformed input (400)."""

    status_code = 400


class NotFoundError(QueryNoxError):
    """Unknown conversation, turn or product (404)."""

    status_code = 404


class AuthorizationError(QueryNoxError):
    """Caller may not use the requested resource, e.g. a pro-only model (403)."""

    status_code = 403


class QuotaExceededError(AuthorizationError):
    """Monthly usage limit reached (429)."""

    status_code = 429


class UpstreamError(QueryNoxError):
    """Provider, search or embedding backend failed or is not configured (502)."""

    status_code = 502


class PersistenceError(QueryNoxError):
    """Storage write failed after a successful generation (500)."""

    status_code = 500
