"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends, Request

from storefront.auth import AuthSession
from storefront.config import get_settings
from storefront.db import CredentialStore, InMemoryDbClient, PostgresDbClient, StoreRepository
from storefront.mutator import SubResourceMutator
from storefront.security import CsrfGuard, PasswordHasher, TokenIssuer

_db_client: InMemoryDbClient | PostgresDbClient | None = None
_token_issuer: TokenIssuer | None = None
_csrf_guard: CsrfGuard | None = None
_password_hasher: PasswordHasher | None = None


def _get_db_client() -> InMemoryDbClient | PostgresDbClient:
    """
    Return a singleton DB client so users and stores persist across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_credential_store() -> CredentialStore:
    return _get_db_client()


def get_store_repository() -> StoreRepository:
    return _get_db_client()


def get_token_issuer() -> TokenIssuer:
    global _token_issuer
    if _token_issuer:
        return _token_issuer
    _token_issuer = TokenIssuer.from_settings(get_settings())
    return _token_issuer


def get_csrf_guard() -> CsrfGuard:
    global _csrf_guard
    if _csrf_guard:
        return _csrf_guard
    _csrf_guard = CsrfGuard.from_settings(get_settings())
    return _csrf_guard


def get_password_hasher() -> PasswordHasher:
    global _password_hasher
    if _password_hasher:
        return _password_hasher
    _password_hasher = PasswordHasher()
    return _password_hasher


def get_auth_session(
    users: CredentialStore = Depends(get_credential_store),
    issuer: TokenIssuer = Depends(get_token_issuer),
    csrf: CsrfGuard = Depends(get_csrf_guard),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> AuthSession:
    return AuthSession(users, issuer, csrf, hasher)


def get_mutator(
    repository: StoreRepository = Depends(get_store_repository),
) -> SubResourceMutator:
    settings = get_settings()
    return SubResourceMutator(
        repository,
        max_attempts=settings.mutation_max_attempts,
        backoff_seconds=settings.mutation_retry_backoff_seconds,
    )


def require_csrf(request: Request, guard: CsrfGuard = Depends(get_csrf_guard)) -> None:
    """Reject state-changing requests whose CSRF header does not echo the cookie."""
    guard.verify(
        request.cookies.get(guard.cookie_name),
        request.headers.get(guard.header_name),
    )


def reset_dependencies() -> None:
    """Drop cached singletons (useful in tests after changing settings)."""
    global _db_client, _token_issuer, _csrf_guard, _password_hasher
    _db_client = None
    _token_issuer = None
    _csrf_guard = None
    _password_hasher = None
