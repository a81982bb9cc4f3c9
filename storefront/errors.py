"""
Error taxonomy shared by the session and store subsystems.

Every error raised by a request handler derives from ``StorefrontError`` and
carries the HTTP status it maps to; ``create_app`` turns them into JSON
responses.
"""

from __future__ import annotations


class StorefrontError(Exception):
    status_code: int = 500

    def __init__(self, detail: str = "Unexpected error"):
        super().__init__(detail)
        self.detail = detail


class ValidationError(StorefrontError):
    status_code = 400


class AuthenticationError(StorefrontError):
    status_code = 401


class CsrfError(AuthenticationError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


class ConflictError(StorefrontError):
    """
    Raised when a username is taken, an item id already exists, or an
    optimistic write kept losing to concurrent writers. In the last case the
    whole request may be retried safely.
    """

    status_code = 409


class UnexpectedError(StorefrontError):
    status_code = 500


class ConfigurationError(RuntimeError):
    """Fatal startup misconfiguration (never surfaced per request)."""
