"""
Login and signup orchestration.

``AuthSession`` verifies credentials against the credential store and, only
once verification succeeded, mints the session token and the CSRF token the
routes hand out as cookies.
"""

from __future__ import annotations

import hmac
import logging
import time
import uuid
from dataclasses import dataclass, replace

from storefront.db import CredentialStore, UserRecord
from storefront.errors import AuthenticationError, ConflictError
from storefront.schemas import LoginRequest, SignUpRequest
from storefront.security import CsrfGuard, PasswordHasher, TokenIssuer

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class SessionGrant:
    user: UserRecord
    session_token: str
    csrf_token: str
    expires_at: int
    max_age: int


class AuthSession:
    def __init__(
        self,
        users: CredentialStore,
        issuer: TokenIssuer,
        csrf: CsrfGuard,
        hasher: PasswordHasher,
    ):
        self.users = users
        self.issuer = issuer
        self.csrf = csrf
        self.hasher = hasher

    def login(self, credentials: LoginRequest) -> SessionGrant:
        logger.info(
            "User login attempt: %s (%s)", credentials.user_name, credentials.login_type
        )
        user = self.users.find_user(credentials.user_name, credentials.role)
        if user is None:
            logger.warning("Login failed for %s: unknown user or role", credentials.user_name)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if credentials.login_type == "googleLogin":
            user = self._verify_external(user, credentials)
        elif not self.hasher.verify(user.password_hash, credentials.password or ""):
            logger.warning("Login failed for %s: bad password", credentials.user_name)
            raise AuthenticationError(INVALID_CREDENTIALS)

        grant = self._grant(user)
        logger.info("User login successful: %s", user.user_id)
        return grant

    def _verify_external(self, user: UserRecord, credentials: LoginRequest) -> UserRecord:
        """
        External-auth passthrough: the provider's access token is opaque to us,
        so the only check is that it matches the one stored for the account.
        """
        supplied = credentials.google_auth_access_token or ""
        stored = user.google_auth_access_token or ""
        if not supplied or not stored or not hmac.compare_digest(
            supplied.encode(), stored.encode()
        ):
            logger.warning("External login failed for %s", credentials.user_name)
            raise AuthenticationError(INVALID_CREDENTIALS)
        if credentials.image:
            updated = self.users.update_user(user.user_id, image=credentials.image)
            if updated is None:
                raise AuthenticationError(INVALID_CREDENTIALS)
            user = updated
        return user

    def sign_up(self, profile: SignUpRequest) -> SessionGrant:
        logger.info("User signup attempt: %s (%s)", profile.user_name, profile.role.value)
        if self.users.find_user_by_name(profile.user_name) is not None:
            logger.warning("Signup rejected, username taken: %s", profile.user_name)
            raise ConflictError("Username already exists")

        record = UserRecord(
            user_id=uuid.uuid4().hex,
            user_name=profile.user_name,
            role=profile.role,
            password_hash=self.hasher.hash(profile.password),
            contact=profile.contact,
            address=profile.address,
            image=profile.image,
        )
        # The store enforces uniqueness again for signups racing each other.
        user = self.users.create_user(record)
        grant = self._grant(user)
        logger.info("User signup successful: %s", user.user_id)
        return grant

    def _grant(self, user: UserRecord) -> SessionGrant:
        now = int(time.time())
        return SessionGrant(
            user=replace(user, password_hash=None),
            session_token=self.issuer.issue(user.user_id, now=now),
            csrf_token=self.csrf.issue(),
            expires_at=now + self.issuer.ttl_seconds,
            max_age=self.issuer.ttl_seconds,
        )
