"""
Session credential primitives: signed session tokens, double-submit CSRF
tokens and password hashing.
"""

from __future__ import annotations

import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from argon2 import PasswordHasher as Argon2Hasher
from argon2 import exceptions as argon2_exceptions

from storefront.config import Settings
from storefront.errors import ConfigurationError, CsrfError, UnexpectedError

CSRF_TOKEN_BYTES = 32


@dataclass(frozen=True)
class TokenIssuer:
    """Mints HS256 session tokens carrying ``sub``, ``iat`` and ``exp``."""

    secret: str
    algorithm: str = "HS256"
    ttl_seconds: int = 3 * 24 * 60 * 60

    def __post_init__(self):
        if not self.secret:
            raise ConfigurationError("SECRET_KEY is required to sign session tokens")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret=settings.secret_key or "",
            algorithm=settings.jwt_algorithm,
            ttl_seconds=settings.session_ttl_seconds,
        )

    def issue(self, user_id: str, *, now: Optional[int] = None) -> str:
        issued_at = int(time.time()) if now is None else int(now)
        payload: dict[str, Any] = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        try:
            return jwt.encode(payload, self.secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError) as exc:
            raise UnexpectedError("Could not sign session token") from exc


@dataclass(frozen=True)
class CsrfGuard:
    """
    Double-submit cookie guard.

    The token is set in a script-readable cookie and must be echoed back in a
    request header; the two values have to match exactly.
    """

    header_name: str = "X-CSRF-Token"
    cookie_name: str = "csrfToken"

    @classmethod
    def from_settings(cls, settings: Settings) -> "CsrfGuard":
        return cls(header_name=settings.csrf_header_name)

    def issue(self) -> str:
        return secrets.token_hex(CSRF_TOKEN_BYTES)

    def verify(self, cookie_value: Optional[str], header_value: Optional[str]) -> None:
        if not cookie_value or not header_value:
            raise CsrfError("CSRF token required")
        if not hmac.compare_digest(cookie_value.encode(), header_value.encode()):
            raise CsrfError("CSRF token mismatch")


@dataclass(frozen=True)
class PasswordHasher:
    """
    Thin wrapper around argon2-cffi PasswordHasher.
    """

    time_cost: int = 2
    memory_cost: int = 65536
    parallelism: int = 4

    def _impl(self) -> Argon2Hasher:
        return Argon2Hasher(
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
        )

    def hash(self, password: str) -> str:
        return self._impl().hash(password)

    def verify(self, hashed: Optional[str], password: str) -> bool:
        if not hashed:
            return False
        try:
            return bool(self._impl().verify(hashed, password))
        except (argon2_exceptions.VerificationError, argon2_exceptions.InvalidHashError):
            return False
