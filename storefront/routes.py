"""
HTTP routes for the storefront backend API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from storefront.auth import AuthSession, SessionGrant
from storefront.config import get_settings
from storefront.db import CredentialStore, Role, StoreRecord, StoreRepository, UserRecord
from storefront.dependencies import (
    get_auth_session,
    get_credential_store,
    get_mutator,
    get_store_repository,
    require_csrf,
)
from storefront.errors import NotFoundError, ValidationError
from storefront.mutator import SubResourceMutator
from storefront.schemas import (
    AddItemRequest,
    AddReviewRequest,
    CreateStoreRequest,
    DeleteItemRequest,
    GoogleTokenResponse,
    ItemCountResponse,
    LoginRequest,
    ModifyItemRequest,
    Review,
    SetGoogleTokenRequest,
    SignUpRequest,
    StoreDescriptionResponse,
    StoreListResponse,
    StoreResponse,
    UpdateStoreRequest,
    UpdateUserRequest,
    UpdateUserStoreRequest,
    UserCountResponse,
    UserListResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_COOKIE = "token"
CSRF_COOKIE = "csrfToken"


def _set_session_cookies(response: Response, grant: SessionGrant) -> None:
    secure = get_settings().cookie_secure
    response.set_cookie(
        SESSION_COOKIE,
        grant.session_token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=grant.max_age,
        path="/",
    )
    # Readable by client script so it can be echoed back in the CSRF header.
    response.set_cookie(
        CSRF_COOKIE,
        grant.csrf_token,
        httponly=False,
        samesite="strict",
        secure=secure,
        max_age=grant.max_age,
        path="/",
    )


def _user_response(user: UserRecord, *, include_image: bool = True) -> UserResponse:
    return UserResponse(**user.as_dict(include_image=include_image))


def _store_response(store: StoreRecord, *, include_item_images: bool = True) -> StoreResponse:
    return StoreResponse(**store.as_dict(include_item_images=include_item_images))


def _require_store(repository: StoreRepository, store_id: str) -> StoreRecord:
    store = repository.get_store(store_id)
    if store is None:
        raise NotFoundError("Store not found")
    return store


# Users


@router.post("/user/login", response_model=UserResponse)
def login(
    payload: LoginRequest,
    response: Response,
    auth: AuthSession = Depends(get_auth_session),
):
    grant = auth.login(payload)
    _set_session_cookies(response, grant)
    return _user_response(grant.user)


@router.post("/user/signup", response_model=UserResponse, status_code=201)
def sign_up(
    payload: SignUpRequest,
    response: Response,
    auth: AuthSession = Depends(get_auth_session),
):
    grant = auth.sign_up(payload)
    _set_session_cookies(response, grant)
    return _user_response(grant.user)


@router.get("/user", response_model=UserListResponse)
def list_users(users: CredentialStore = Depends(get_credential_store)):
    records = users.list_users()
    logger.info("Fetched %d users", len(records))
    return UserListResponse(
        users=[_user_response(u, include_image=False) for u in records],
        user_count=len(records),
    )


@router.get("/user/count", response_model=UserCountResponse)
def user_count(users: CredentialStore = Depends(get_credential_store)):
    return UserCountResponse(user_count=users.count_users())


@router.get("/user/google-token/{user_name}/{role}", response_model=GoogleTokenResponse)
def get_google_token(
    user_name: str,
    role: Role,
    users: CredentialStore = Depends(get_credential_store),
):
    user = users.find_user(user_name, role)
    if user is None:
        raise NotFoundError("User not found")
    return GoogleTokenResponse(google_auth_access_token=user.google_auth_access_token)


@router.put(
    "/user/google-token",
    response_model=UserResponse,
    dependencies=[Depends(require_csrf)],
)
def set_google_token(
    payload: SetGoogleTokenRequest,
    users: CredentialStore = Depends(get_credential_store),
):
    user = users.find_user(payload.user_name, payload.role)
    if user is None:
        raise NotFoundError("User not found")
    updated = users.update_user(
        user.user_id, google_auth_access_token=payload.google_auth_access_token
    )
    if updated is None:
        raise NotFoundError("User not found")
    logger.info("Updated external access token for user %s", updated.user_id)
    return _user_response(updated)


@router.put("/user", response_model=UserResponse, dependencies=[Depends(require_csrf)])
def update_user(
    payload: UpdateUserRequest,
    users: CredentialStore = Depends(get_credential_store),
):
    fields = payload.model_dump(exclude_none=True, exclude={"user_id"})
    if not fields:
        raise ValidationError("Nothing to update")
    updated = users.update_user(payload.user_id, **fields)
    if updated is None:
        raise NotFoundError("User not found")
    logger.info("Updated user %s", payload.user_id)
    return _user_response(updated)


@router.put(
    "/user/store", response_model=UserResponse, dependencies=[Depends(require_csrf)]
)
def update_user_store(
    payload: UpdateUserStoreRequest,
    users: CredentialStore = Depends(get_credential_store),
    repository: StoreRepository = Depends(get_store_repository),
):
    _require_store(repository, payload.store_id)
    updated = users.update_user(payload.user_id, store_id=payload.store_id)
    if updated is None:
        raise NotFoundError("User not found")
    logger.info("Linked user %s to store %s", payload.user_id, payload.store_id)
    return _user_response(updated)


@router.get("/user/{user_id}/{role}", response_model=UserResponse)
def get_user(
    user_id: str,
    role: Role,
    users: CredentialStore = Depends(get_credential_store),
):
    user = users.get_user(user_id)
    if user is None or user.role != role:
        raise NotFoundError("User not found")
    return _user_response(user)


@router.delete(
    "/user/{user_id}", response_model=UserResponse, dependencies=[Depends(require_csrf)]
)
def delete_user(user_id: str, users: CredentialStore = Depends(get_credential_store)):
    deleted = users.delete_user(user_id)
    if deleted is None:
        raise NotFoundError("User not found")
    logger.info("Deleted user %s", user_id)
    return _user_response(deleted)


# Stores


@router.post(
    "/store",
    response_model=StoreResponse,
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def create_store(
    payload: CreateStoreRequest,
    repository: StoreRepository = Depends(get_store_repository),
):
    store = repository.create_store(
        payload.store_name,
        payload.merchant_id,
        location=payload.location,
        description=payload.description,
    )
    logger.info("Created store %s for merchant %s", store.store_id, store.merchant_id)
    return _store_response(store)


@router.get("/store", response_model=StoreListResponse)
def list_stores(repository: StoreRepository = Depends(get_store_repository)):
    return StoreListResponse(stores=[_store_response(s) for s in repository.list_stores()])


@router.put("/store", response_model=StoreResponse, dependencies=[Depends(require_csrf)])
def update_store(
    payload: UpdateStoreRequest,
    repository: StoreRepository = Depends(get_store_repository),
):
    fields = payload.model_dump(exclude_none=True, exclude={"store_id"})
    if not fields:
        raise ValidationError("Nothing to update")
    updated = repository.update_store(payload.store_id, **fields)
    if updated is None:
        raise NotFoundError("Store not found")
    logger.info("Updated store %s", payload.store_id)
    return _store_response(updated)


@router.post(
    "/store/item", response_model=StoreResponse, dependencies=[Depends(require_csrf)]
)
def add_store_item(
    payload: AddItemRequest,
    mutator: SubResourceMutator = Depends(get_mutator),
):
    store = mutator.add_item(payload.store_id, payload.item)
    logger.info("Added item %s to store %s", payload.item.id, payload.store_id)
    return _store_response(store)


@router.put(
    "/store/item", response_model=StoreResponse, dependencies=[Depends(require_csrf)]
)
def modify_store_item(
    payload: ModifyItemRequest,
    mutator: SubResourceMutator = Depends(get_mutator),
):
    store = mutator.modify_item(payload.store_id, payload.item)
    logger.info("Modified item %s in store %s", payload.item.id, payload.store_id)
    return _store_response(store)


@router.delete(
    "/store/item", response_model=StoreResponse, dependencies=[Depends(require_csrf)]
)
def delete_store_item(
    payload: DeleteItemRequest,
    mutator: SubResourceMutator = Depends(get_mutator),
):
    store = mutator.delete_item(payload.store_id, payload.item_id)
    logger.info("Deleted item %s from store %s", payload.item_id, payload.store_id)
    return _store_response(store)


@router.post(
    "/store/review", response_model=StoreResponse, dependencies=[Depends(require_csrf)]
)
def add_review(
    payload: AddReviewRequest,
    mutator: SubResourceMutator = Depends(get_mutator),
):
    review = Review(**payload.model_dump(exclude={"store_id"}))
    store = mutator.add_review(payload.store_id, review)
    logger.info("Added review by %s to store %s", review.user_id, payload.store_id)
    return _store_response(store)


@router.get("/store/{store_id}", response_model=StoreResponse)
def get_store(store_id: str, repository: StoreRepository = Depends(get_store_repository)):
    store = _require_store(repository, store_id)
    return _store_response(store, include_item_images=False)


@router.get("/store/{store_id}/description", response_model=StoreDescriptionResponse)
def get_store_description(
    store_id: str, repository: StoreRepository = Depends(get_store_repository)
):
    store = _require_store(repository, store_id)
    return StoreDescriptionResponse(store_id=store.store_id, description=store.description)


@router.get("/store/{store_id}/item-count", response_model=ItemCountResponse)
def get_store_item_count(
    store_id: str, repository: StoreRepository = Depends(get_store_repository)
):
    store = _require_store(repository, store_id)
    return ItemCountResponse(item_count=len(store.items))


@router.delete(
    "/store/{store_id}", response_model=StoreResponse, dependencies=[Depends(require_csrf)]
)
def delete_store(store_id: str, repository: StoreRepository = Depends(get_store_repository)):
    deleted = repository.delete_store(store_id)
    if deleted is None:
        raise NotFoundError("Store not found")
    logger.info("Deleted store %s", store_id)
    return _store_response(deleted)
