"""Domain errors surfaced to API callers as ``{"detail", "code"}``."""

from __future__ import annotations


class LedgerError(Exception):
    status_code = 500
    default_code = "ledger_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(LedgerError):
    """Malformed or out-of-policy input. Raised before any write."""

    status_code = 400
    default_code = "invalid_input"


class NotFoundError(LedgerError):
    status_code = 404
    default_code = "not_found"


class DependencyError(LedgerError):
    """Blob store (or other external collaborator) failure."""

    status_code = 502
    default_code = "dependency_failed"


class AuthenticationError(LedgerError):
    status_code = 401
    default_code = "not_authenticated"


__all__ = [
    "LedgerError",
    "ValidationError",
    "NotFoundError",
    "DependencyError",
    "AuthenticationError",
]
