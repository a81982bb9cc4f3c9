"""
Database abstraction for Postgres and an in-memory test implementation.

Two collaborators live here: the credential store (user accounts) and the
store repository (store aggregates with nested item/review collections).
Store aggregates carry a ``version`` that every write bumps, which is what
``replace_collection`` compares against to make read-modify-write cycles
safe without locks.
"""

from __future__ import annotations

import copy
import enum
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import JSON, Column, Float, Integer, String, Text, create_engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from storefront.errors import ConflictError, NotFoundError


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    MERCHANT = "merchant"
    ADMIN = "admin"


COLLECTION_FIELDS = ("items", "reviews")
USER_MUTABLE_FIELDS = frozenset(
    {"user_name", "image", "store_id", "google_auth_access_token", "contact", "address"}
)
STORE_MUTABLE_FIELDS = frozenset({"store_name", "location", "description"})


@dataclass
class UserRecord:
    user_id: str
    user_name: str
    role: Role
    password_hash: Optional[str] = None
    contact: Optional[str] = None
    address: Optional[str] = None
    image: Optional[str] = None
    google_auth_access_token: Optional[str] = None
    store_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self, *, include_image: bool = True) -> dict:
        # password_hash never leaves the process
        data = {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "role": self.role.value,
            "contact": self.contact,
            "address": self.address,
            "google_auth_access_token": self.google_auth_access_token,
            "store_id": self.store_id,
            "created_at": self.created_at,
        }
        if include_image:
            data["image"] = self.image
        return data


@dataclass
class StoreRecord:
    store_id: str
    store_name: str
    merchant_id: str
    location: Optional[str] = None
    description: Optional[str] = None
    items: list[dict] = field(default_factory=list)
    reviews: list[dict] = field(default_factory=list)
    version: int = 1
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def collection(self, name: str) -> list[dict]:
        return list(getattr(self, name) or [])

    def as_dict(self, *, include_item_images: bool = True) -> dict:
        items = copy.deepcopy(self.items)
        if not include_item_images:
            for item in items:
                item.pop("image", None)
        return {
            "store_id": self.store_id,
            "store_name": self.store_name,
            "merchant_id": self.merchant_id,
            "location": self.location,
            "description": self.description,
            "items": items,
            "reviews": copy.deepcopy(self.reviews),
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class CredentialStore(Protocol):
    """Interface for user account persistence."""

    def create_user(self, record: UserRecord) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def find_user(self, user_name: str, role: Role) -> Optional[UserRecord]:
        ...

    def find_user_by_name(self, user_name: str) -> Optional[UserRecord]:
        ...

    def list_users(self) -> list[UserRecord]:
        ...

    def count_users(self) -> int:
        ...

    def update_user(self, user_id: str, **fields) -> Optional[UserRecord]:
        ...

    def delete_user(self, user_id: str) -> Optional[UserRecord]:
        ...


class StoreRepository(Protocol):
    """Interface for store aggregate persistence."""

    def create_store(
        self,
        store_name: str,
        merchant_id: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StoreRecord:
        ...

    def get_store(self, store_id: str) -> Optional[StoreRecord]:
        ...

    def list_stores(self) -> list[StoreRecord]:
        ...

    def update_store(self, store_id: str, **fields) -> Optional[StoreRecord]:
        ...

    def delete_store(self, store_id: str) -> Optional[StoreRecord]:
        ...

    def replace_collection(
        self, store_id: str, name: str, value: list[dict], expected_version: int
    ) -> Optional[StoreRecord]:
        """
        Replace one nested collection iff the store is still at
        ``expected_version``. Returns the updated store, or None when another
        writer got there first. Raises NotFoundError if the store is gone.
        """
        ...


def _check_fields(fields: dict, allowed: frozenset) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")


def _check_collection(name: str) -> None:
    if name not in COLLECTION_FIELDS:
        raise ValueError(f"Unknown collection: {name}")


class InMemoryDbClient:
    """
    Simple in-memory database for development and tests.

    A single lock makes each call atomic, so ``replace_collection`` behaves as
    a compare-and-swap just like the conditional UPDATE of the SQL client.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.stores: Dict[str, StoreRecord] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.stores.clear()

    # Users

    def create_user(self, record: UserRecord) -> UserRecord:
        with self._lock:
            if any(u.user_name == record.user_name for u in self.users.values()):
                raise ConflictError("Username already exists")
            self.users[record.user_id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            user = self.users.get(user_id)
            return copy.deepcopy(user) if user else None

    def find_user(self, user_name: str, role: Role) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.user_name == user_name and user.role == role:
                    return copy.deepcopy(user)
        return None

    def find_user_by_name(self, user_name: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.user_name == user_name:
                    return copy.deepcopy(user)
        return None

    def list_users(self) -> list[UserRecord]:
        with self._lock:
            return [copy.deepcopy(u) for u in self.users.values()]

    def count_users(self) -> int:
        with self._lock:
            return len(self.users)

    def update_user(self, user_id: str, **fields) -> Optional[UserRecord]:
        _check_fields(fields, USER_MUTABLE_FIELDS)
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                return None
            new_name = fields.get("user_name")
            if new_name and any(
                u.user_name == new_name and u.user_id != user_id
                for u in self.users.values()
            ):
                raise ConflictError("Username already exists")
            updated = replace(user, **fields)
            self.users[user_id] = updated
            return copy.deepcopy(updated)

    def delete_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self.users.pop(user_id, None)

    # Stores

    def create_store(
        self,
        store_name: str,
        merchant_id: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StoreRecord:
        record = StoreRecord(
            store_id=uuid.uuid4().hex,
            store_name=store_name,
            merchant_id=merchant_id,
            location=location,
            description=description,
        )
        with self._lock:
            self.stores[record.store_id] = record
            return copy.deepcopy(record)

    def get_store(self, store_id: str) -> Optional[StoreRecord]:
        with self._lock:
            store = self.stores.get(store_id)
            return copy.deepcopy(store) if store else None

    def list_stores(self) -> list[StoreRecord]:
        with self._lock:
            return [copy.deepcopy(s) for s in self.stores.values()]

    def update_store(self, store_id: str, **fields) -> Optional[StoreRecord]:
        _check_fields(fields, STORE_MUTABLE_FIELDS)
        with self._lock:
            store = self.stores.get(store_id)
            if not store:
                return None
            updated = replace(
                store, **fields, version=store.version + 1, updated_at=time.time()
            )
            self.stores[store_id] = updated
            return copy.deepcopy(updated)

    def delete_store(self, store_id: str) -> Optional[StoreRecord]:
        with self._lock:
            return self.stores.pop(store_id, None)

    def replace_collection(
        self, store_id: str, name: str, value: list[dict], expected_version: int
    ) -> Optional[StoreRecord]:
        _check_collection(name)
        with self._lock:
            store = self.stores.get(store_id)
            if not store:
                raise NotFoundError("Store not found")
            if store.version != expected_version:
                return None
            updated = replace(
                store,
                **{name: copy.deepcopy(value)},
                version=store.version + 1,
                updated_at=time.time(),
            )
            self.stores[store_id] = updated
            return copy.deepcopy(updated)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every thread sees its own empty DB.
            self.engine = create_engine(
                database_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            user_name=row.user_name,
            role=Role(row.role),
            password_hash=row.password_hash,
            contact=row.contact,
            address=row.address,
            image=row.image,
            google_auth_access_token=row.google_auth_access_token,
            store_id=row.store_id,
            created_at=row.created_at,
        )

    def _to_store_record(self, row: "StoreRow") -> StoreRecord:
        return StoreRecord(
            store_id=row.store_id,
            store_name=row.store_name,
            merchant_id=row.merchant_id,
            location=row.location,
            description=row.description,
            items=copy.deepcopy(row.items or []),
            reviews=copy.deepcopy(row.reviews or []),
            version=row.version_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    # Users

    def create_user(self, record: UserRecord) -> UserRecord:
        with self.Session() as session:
            row = UserRow(
                user_id=record.user_id,
                user_name=record.user_name,
                role=record.role.value,
                password_hash=record.password_hash,
                contact=record.contact,
                address=record.address,
                image=record.image,
                google_auth_access_token=record.google_auth_access_token,
                store_id=record.store_id,
                created_at=record.created_at,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("Username already exists") from exc
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def find_user(self, user_name: str, role: Role) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(
                UserRow.user_name == user_name, UserRow.role == role.value
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def find_user_by_name(self, user_name: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.user_name == user_name)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def list_users(self) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).order_by(UserRow.created_at.asc())
            ).scalars()
            return [self._to_user_record(row) for row in rows]

    def count_users(self) -> int:
        with self.Session() as session:
            return session.query(UserRow).count()

    def update_user(self, user_id: str, **fields) -> Optional[UserRecord]:
        _check_fields(fields, USER_MUTABLE_FIELDS)
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("Username already exists") from exc
            return self._to_user_record(row)

    def delete_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            record = self._to_user_record(row)
            session.delete(row)
            session.commit()
            return record

    # Stores

    def create_store(
        self,
        store_name: str,
        merchant_id: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StoreRecord:
        now = time.time()
        with self.Session() as session:
            row = StoreRow(
                store_id=uuid.uuid4().hex,
                store_name=store_name,
                merchant_id=merchant_id,
                location=location,
                description=description,
                items=[],
                reviews=[],
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_store_record(row)

    def get_store(self, store_id: str) -> Optional[StoreRecord]:
        with self.Session() as session:
            row = session.get(StoreRow, store_id)
            return self._to_store_record(row) if row else None

    def list_stores(self) -> list[StoreRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(StoreRow).order_by(StoreRow.created_at.asc())
            ).scalars()
            return [self._to_store_record(row) for row in rows]

    def update_store(self, store_id: str, **fields) -> Optional[StoreRecord]:
        _check_fields(fields, STORE_MUTABLE_FIELDS)
        with self.Session() as session:
            row = session.get(StoreRow, store_id)
            if not row:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = time.time()
            try:
                # version_id_col turns this into a versioned UPDATE
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                raise ConflictError("Store was modified concurrently") from exc
            return self._to_store_record(row)

    def delete_store(self, store_id: str) -> Optional[StoreRecord]:
        with self.Session() as session:
            row = session.get(StoreRow, store_id)
            if not row:
                return None
            record = self._to_store_record(row)
            session.delete(row)
            try:
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                raise ConflictError("Store was modified concurrently") from exc
            return record

    def replace_collection(
        self, store_id: str, name: str, value: list[dict], expected_version: int
    ) -> Optional[StoreRecord]:
        _check_collection(name)
        table = StoreRow.__table__
        with self.Session() as session:
            result = session.execute(
                update(table)
                .where(
                    table.c.store_id == store_id,
                    table.c.version_id == expected_version,
                )
                .values(
                    {
                        name: value,
                        "version_id": expected_version + 1,
                        "updated_at": time.time(),
                    }
                )
            )
            session.commit()
            if result.rowcount == 1:
                row = session.get(StoreRow, store_id, populate_existing=True)
                return self._to_store_record(row) if row else None
            if session.get(StoreRow, store_id) is None:
                raise NotFoundError("Store not found")
            return None


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    user_name = Column(String, nullable=False, unique=True, index=True)
    role = Column(String, nullable=False, index=True)
    password_hash = Column(String, nullable=True)
    contact = Column(String, nullable=True)
    address = Column(String, nullable=True)
    image = Column(Text, nullable=True)
    google_auth_access_token = Column(Text, nullable=True)
    store_id = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class StoreRow(Base):
    __tablename__ = "stores"

    store_id = Column(String, primary_key=True)
    store_name = Column(String, nullable=False)
    merchant_id = Column(String, nullable=False, index=True)
    location = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    items = Column(JSON, nullable=False, default=list)
    reviews = Column(JSON, nullable=False, default=list)
    version_id = Column(Integer, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}
