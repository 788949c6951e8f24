# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class ValidationError(ValueError):
    """400-level input problem. Always raised before any write."""


class NotFoundError(LookupError):
    """404-level: a referenced product, sale or user does not exist."""


class CommitFailed(Exception):
    """
    Raised when the sale unit of work fails and has been rolled back.

    Carries no partial-success detail: by construction nothing was written.
    """


class AuthError(Exception):
    """401-level: missing, invalid or expired credentials."""


# Map error types to HTTP status codes
ERROR_STATUS_MAP = {
    ValidationError: 400,
    AuthError: 401,
    NotFoundError: 404,
    CommitFailed: 500,
}
