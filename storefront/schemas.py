"""
Pydantic schemas for the storefront backend.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StringConstraints, field_validator

from storefront.db import Role


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(..., min_length=1, alias="userName")
    password: Optional[str] = None
    role: Role
    image: Optional[str] = None
    google_auth_access_token: Optional[str] = Field(
        default=None, alias="googleAuthAccessToken"
    )
    login_type: Literal["systemLogin", "googleLogin"] = Field(
        default="systemLogin", alias="loginType"
    )


class SignUpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(..., min_length=1, max_length=64, alias="userName")
    password: str = Field(..., min_length=1)
    contact: Optional[str] = None
    address: Optional[str] = None
    role: Role
    image: Optional[str] = None


class UserResponse(BaseModel):
    user_id: str
    user_name: str
    role: Role
    contact: Optional[str] = None
    address: Optional[str] = None
    image: Optional[str] = None
    google_auth_access_token: Optional[str] = None
    store_id: Optional[str] = None
    created_at: float


class UserListResponse(BaseModel):
    users: list[UserResponse]
    user_count: int


class UserCountResponse(BaseModel):
    user_count: int


class UpdateUserRequest(BaseModel):
    user_id: str
    user_name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    image: Optional[str] = None


class UpdateUserStoreRequest(BaseModel):
    user_id: str
    store_id: str


class SetGoogleTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(..., alias="userName")
    role: Role
    google_auth_access_token: str = Field(..., alias="googleAuthAccessToken")


class GoogleTokenResponse(BaseModel):
    google_auth_access_token: Optional[str] = None


# Ids are compared with exact equality, so 1 and "1" are different items.
ItemId = Union[StrictInt, Annotated[str, StringConstraints(min_length=1, max_length=64)]]


class StoreItem(BaseModel):
    """A store item; ``id`` is unique within its store."""

    model_config = ConfigDict(extra="forbid")

    id: ItemId
    name: str
    price: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None


class ItemPatch(BaseModel):
    """Partial update of a stored item: only the fields that are set get merged."""

    model_config = ConfigDict(extra="forbid")

    id: ItemId
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_null(cls, value: Optional[str]) -> str:
        # name is required on a stored item, so null cannot be merged over it
        if value is None:
            raise ValueError("name cannot be null")
        return value


class Review(BaseModel):
    user_id: str
    user_name: str
    rating: float = Field(..., ge=0, le=5)
    review: str = Field(default="", max_length=4096)


class CreateStoreRequest(BaseModel):
    store_name: str = Field(..., min_length=1)
    merchant_id: str
    location: Optional[str] = None
    description: Optional[str] = None


class UpdateStoreRequest(BaseModel):
    store_id: str
    store_name: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = None
    description: Optional[str] = None


class AddItemRequest(BaseModel):
    store_id: str
    item: StoreItem


class ModifyItemRequest(BaseModel):
    store_id: str
    item: ItemPatch


class DeleteItemRequest(BaseModel):
    store_id: str
    item_id: ItemId


class AddReviewRequest(Review):
    store_id: str


class StoreResponse(BaseModel):
    store_id: str
    store_name: str
    merchant_id: str
    location: Optional[str] = None
    description: Optional[str] = None
    items: list[dict]
    reviews: list[dict]
    version: int
    created_at: float
    updated_at: float


class StoreListResponse(BaseModel):
    stores: list[StoreResponse]


class StoreDescriptionResponse(BaseModel):
    store_id: str
    description: Optional[str] = None


class ItemCountResponse(BaseModel):
    item_count: int
