import os
import tempfile
import threading
import unittest
import uuid

from storefront.db import PostgresDbClient, Role, UserRecord
from storefront.errors import ConflictError, NotFoundError
from storefront.mutator import SubResourceMutator
from storefront.schemas import ItemPatch, StoreItem


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def _user(self, name="bob", role=Role.CUSTOMER):
        return UserRecord(
            user_id=uuid.uuid4().hex,
            user_name=name,
            role=role,
            password_hash="hashed",
        )

    def test_create_and_find_user(self):
        created = self.db.create_user(self._user())
        self.assertEqual(self.db.get_user(created.user_id).user_name, "bob")
        self.assertIsNotNone(self.db.find_user("bob", Role.CUSTOMER))
        self.assertIsNone(self.db.find_user("bob", Role.ADMIN))
        self.assertEqual(self.db.find_user_by_name("bob").user_id, created.user_id)
        self.assertEqual(self.db.count_users(), 1)

    def test_duplicate_username_conflicts(self):
        self.db.create_user(self._user())
        with self.assertRaises(ConflictError):
            self.db.create_user(self._user(role=Role.MERCHANT))
        self.assertEqual(self.db.count_users(), 1)

    def test_update_and_delete_user(self):
        created = self.db.create_user(self._user())
        updated = self.db.update_user(created.user_id, store_id="s1", image="img")
        self.assertEqual(updated.store_id, "s1")
        self.assertEqual(updated.image, "img")
        self.assertIsNone(self.db.update_user("missing", image="img"))
        with self.assertRaises(ValueError):
            self.db.update_user(created.user_id, role="admin")
        self.assertIsNotNone(self.db.delete_user(created.user_id))
        self.assertIsNone(self.db.get_user(created.user_id))

    def test_rename_to_taken_name_conflicts(self):
        self.db.create_user(self._user("bob"))
        alice = self.db.create_user(self._user("alice"))
        with self.assertRaises(ConflictError):
            self.db.update_user(alice.user_id, user_name="bob")

    def test_store_roundtrip_and_versioning(self):
        store = self.db.create_store("Corner Shop", "m1", location="Kandy")
        self.assertEqual(store.version, 1)
        self.assertEqual(store.items, [])

        updated = self.db.update_store(store.store_id, description="Fresh fruit")
        self.assertEqual(updated.description, "Fresh fruit")
        self.assertEqual(updated.version, 2)
        self.assertIsNone(self.db.update_store("missing", description="x"))

    def test_replace_collection_is_conditional(self):
        store = self.db.create_store("Corner Shop", "m1")
        written = self.db.replace_collection(
            store.store_id, "items", [{"id": "1"}], expected_version=store.version
        )
        self.assertEqual(written.items, [{"id": "1"}])
        self.assertEqual(written.version, store.version + 1)

        stale = self.db.replace_collection(
            store.store_id, "items", [{"id": "2"}], expected_version=store.version
        )
        self.assertIsNone(stale)
        self.assertEqual(self.db.get_store(store.store_id).items, [{"id": "1"}])

        with self.assertRaises(NotFoundError):
            self.db.replace_collection("missing", "items", [], expected_version=1)
        with self.assertRaises(ValueError):
            self.db.replace_collection(store.store_id, "owners", [], expected_version=2)

    def test_info_update_invalidates_pending_collection_write(self):
        store = self.db.create_store("Corner Shop", "m1")
        self.db.update_store(store.store_id, location="Galle")
        self.assertIsNone(
            self.db.replace_collection(
                store.store_id, "reviews", [{"rating": 5}], expected_version=store.version
            )
        )

    def test_mutator_over_sql(self):
        store = self.db.create_store("Corner Shop", "m1")
        mutator = SubResourceMutator(self.db, backoff_seconds=0)
        mutator.add_item(store.store_id, StoreItem(id="1", name="A", image="img"))
        mutator.add_item(store.store_id, StoreItem(id="2", name="B"))
        mutator.modify_item(store.store_id, ItemPatch(id="2", price=9.5))
        updated = mutator.delete_item(store.store_id, "1")
        self.assertEqual(len(updated.items), 1)
        self.assertEqual(updated.items[0]["price"], 9.5)
        self.assertEqual(updated.items[0]["name"], "B")
        self.assertEqual(updated.version, 5)

    def test_concurrent_adds_over_file_database(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        db = PostgresDbClient(f"sqlite+pysqlite:///{os.path.join(tmpdir.name, 'store.db')}")
        self.addCleanup(db.engine.dispose)
        store = db.create_store("Corner Shop", "m1")

        n = 8
        mutator = SubResourceMutator(db, max_attempts=n, backoff_seconds=0.001)
        barrier = threading.Barrier(n)
        errors = []

        def worker(i):
            barrier.wait()
            try:
                mutator.add_item(store.store_id, StoreItem(id=f"item-{i}", name=str(i)))
            except Exception as exc:  # surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        ids = [item["id"] for item in db.get_store(store.store_id).items]
        self.assertEqual(sorted(ids), sorted(f"item-{i}" for i in range(n)))

    def test_delete_store(self):
        store = self.db.create_store("Corner Shop", "m1")
        self.assertIsNotNone(self.db.delete_store(store.store_id))
        self.assertIsNone(self.db.get_store(store.store_id))
        self.assertIsNone(self.db.delete_store(store.store_id))


if __name__ == "__main__":
    unittest.main()
