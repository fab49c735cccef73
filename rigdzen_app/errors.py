# rigdzen_app/errors.py
# -*- coding: utf-8 -*-
"""
Domain exceptions.

Services raise these; ``create_app`` converts them into a JSON error for
``/api/`` routes or a flash message + redirect for pages.
"""
from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map to a caller-visible response."""
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationMissing(AppError):
    """No session, or the session token failed verification."""
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationDenied(AppError):
    """Valid session without the required role."""
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Invalid request"


class ExternalProviderFailure(AppError):
    """Payment provider call failed or did not report completion."""
    status_code = 502
    default_message = "Payment provider error"


class ConstraintViolation(AppError):
    """Uniqueness conflict, e.g. an external reference that was already settled."""
    status_code = 409
    default_message = "Already processed"
