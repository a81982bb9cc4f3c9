"""
Race-free mutation of a store's nested item and review collections.

Each mutation is an optimistic read-modify-write cycle: read the store and its
version, compute the new collection, then ask the repository to write it
only if the version has not moved. A lost race means a re-read and another
attempt, up to a fixed ceiling, after which ``ConflictError`` is raised.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional

from storefront.db import StoreRecord, StoreRepository
from storefront.errors import ConflictError, NotFoundError
from storefront.schemas import ItemId, ItemPatch, Review, StoreItem

logger = logging.getLogger(__name__)

# Returns the new collection, or None to leave the store untouched.
Transform = Callable[[list[dict]], Optional[list[dict]]]


class SubResourceMutator:
    def __init__(
        self,
        repository: StoreRepository,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.01,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.repository = repository
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def mutate(self, store_id: str, collection: str, transform: Transform) -> StoreRecord:
        for attempt in range(1, self.max_attempts + 1):
            store = self.repository.get_store(store_id)
            if store is None:
                raise NotFoundError("Store not found")

            new_value = transform(store.collection(collection))
            if new_value is None:
                return store

            updated = self.repository.replace_collection(
                store_id, collection, new_value, expected_version=store.version
            )
            if updated is not None:
                return updated

            logger.warning(
                "Concurrent write on store %s (%s), attempt %d/%d",
                store_id,
                collection,
                attempt,
                self.max_attempts,
            )
            if attempt < self.max_attempts:
                self._sleep_before_retry(attempt)

        logger.error(
            "Giving up on store %s (%s) after %d attempts",
            store_id,
            collection,
            self.max_attempts,
        )
        raise ConflictError("Store was modified concurrently, please retry")

    def _sleep_before_retry(self, attempt: int) -> None:
        if self.backoff_seconds <= 0:
            return
        time.sleep(random.uniform(0, self.backoff_seconds * (2 ** (attempt - 1))))

    def add_item(self, store_id: str, item: StoreItem) -> StoreRecord:
        new_item = item.model_dump()

        def append(items: list[dict]) -> list[dict]:
            if any(existing.get("id") == item.id for existing in items):
                raise ConflictError(f"Item {item.id} already exists in store")
            return items + [new_item]

        return self.mutate(store_id, "items", append)

    def modify_item(self, store_id: str, patch: ItemPatch) -> StoreRecord:
        changes = patch.model_dump(exclude_unset=True)
        changes.pop("id", None)

        def merge(items: list[dict]) -> Optional[list[dict]]:
            for index, existing in enumerate(items):
                if existing.get("id") == patch.id:
                    merged = dict(existing)
                    merged.update(changes)
                    if merged == existing:
                        return None
                    return items[:index] + [merged] + items[index + 1 :]
            return None

        return self.mutate(store_id, "items", merge)

    def delete_item(self, store_id: str, item_id: ItemId) -> StoreRecord:
        def remove(items: list[dict]) -> Optional[list[dict]]:
            kept = [existing for existing in items if existing.get("id") != item_id]
            if len(kept) == len(items):
                return None
            return kept

        return self.mutate(store_id, "items", remove)

    def add_review(self, store_id: str, review: Review) -> StoreRecord:
        # Reviews are append-only; the same author may review more than once.
        entry = review.model_dump()
        return self.mutate(store_id, "reviews", lambda reviews: reviews + [entry])
