import asyncio
import os
import tempfile
import unittest

from helpers import StoreTestCase

from db import database as db_database
from db import docstore
from db.errors import DocumentExists, DocumentNotFound, StoreError
from db.local_storage import LocalStorage


class DocumentTestCase(StoreTestCase):
    async def test_set_get_and_merge(self):
        await docstore.set_doc("carts", "u1", {"items": [], "note": "keep"})
        await docstore.set_doc("carts", "u1", {"items": [{"pid": "2"}]}, merge=True)
        doc = await docstore.get_doc("carts", "u1")
        self.assertEqual(doc["items"], [{"pid": "2"}])
        self.assertEqual(doc["note"], "keep")
        self.assertEqual(doc["id"], "u1")
        self.assertTrue(doc["created_at"] <= doc["updated_at"])

        await docstore.set_doc("carts", "u1", {"items": []})
        self.assertNotIn("note", await docstore.get_doc("carts", "u1"))
        self.assertIsNone(await docstore.get_doc("carts", "u2"))

    async def test_update_missing_document(self):
        with self.assertRaises(DocumentNotFound):
            await docstore.update_doc("orders", "ORD-1", {"status": "delivered"})

    async def test_create_refuses_existing_id(self):
        await docstore.create_doc("orders", "ORD-1", {"user_email": "a@example.com"})
        with self.assertRaises(DocumentExists):
            await docstore.create_doc("orders", "ORD-1", {"user_email": "b@example.com"})
        doc = await docstore.get_doc("orders", "ORD-1")
        self.assertEqual(doc["user_email"], "a@example.com")

    async def test_add_query_delete(self):
        first = await docstore.add_doc("support_tickets", {"user_id": "u1", "status": "Open"})
        await docstore.add_doc("support_tickets", {"user_id": "u2", "status": "Open"})
        self.assertEqual(len(first), 20)
        self.assertFalse(first.isdigit())

        found = await docstore.query("support_tickets", "user_id", "u1")
        self.assertEqual([d["id"] for d in found], [first])
        self.assertEqual(len(await docstore.list_docs("support_tickets")), 2)

        self.assertTrue(await docstore.delete_doc("support_tickets", first))
        self.assertFalse(await docstore.delete_doc("support_tickets", first))

    async def test_mutate_doc_rolls_back_on_error(self):
        await docstore.set_doc("support_tickets", "t1", {"replies": []})

        def explode(doc):
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            await docstore.mutate_doc("support_tickets", "t1", explode)
        self.assertEqual((await docstore.get_doc("support_tickets", "t1"))["replies"], [])

        written = await docstore.mutate_doc(
            "support_tickets", "t1", lambda doc: {**doc, "replies": ["hi"]}
        )
        self.assertEqual(written["replies"], ["hi"])
        self.assertIsNone(await docstore.mutate_doc("support_tickets", "t1", lambda doc: None))

    async def test_unreachable_store_raises_store_error(self):
        db_database.DB_PATH = self.temp_dir.name  # a directory, not a database file
        db_database._initialized = False
        with self.assertRaises(StoreError):
            await docstore.get_doc("carts", "u1")


class SubscriptionTestCase(StoreTestCase):
    async def test_slow_consumer_gets_latest_snapshot(self):
        sub = await docstore.watch_doc("carts", "u1")
        self.assertIsNone(await sub.next_snapshot(timeout=1))

        for n in range(3):
            await docstore.set_doc("carts", "u1", {"n": n})

        self.assertEqual((await sub.next_snapshot(timeout=1))["n"], 2)
        with self.assertRaises(asyncio.TimeoutError):
            await sub.next_snapshot(timeout=0.05)

    async def test_collection_watch_with_filter(self):
        sub = await docstore.watch_collection(
            "orders", where=("user_email", "a@example.com"), transform=len
        )
        self.assertEqual(await sub.next_snapshot(timeout=1), 0)

        await docstore.set_doc("orders", "ORD-1", {"user_email": "a@example.com"})
        await docstore.set_doc("orders", "ORD-2", {"user_email": "b@example.com"})
        self.assertEqual(await sub.next_snapshot(timeout=1), 1)

    async def test_close_ends_iteration(self):
        sub = await docstore.watch_doc("carts", "u1")
        received = []

        async def consume():
            async for snapshot in sub:
                received.append(snapshot)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        sub.close()
        await asyncio.wait_for(task, timeout=1)

        self.assertEqual(received, [None])
        await docstore.set_doc("carts", "u1", {"n": 1})
        self.assertTrue(sub.closed)
        self.assertEqual(received, [None])


class LocalStorageTestCase(unittest.TestCase):
    def test_in_memory(self):
        storage = LocalStorage()
        storage.set_json("greengo_cart", [{"pid": "2", "qty": 1}])
        self.assertEqual(storage.get_json("greengo_cart"), [{"pid": "2", "qty": 1}])
        storage.remove_item("greengo_cart")
        self.assertIsNone(storage.get_item("greengo_cart"))
        self.assertEqual(storage.get_json("greengo_cart", []), [])

    def test_file_backed_survives_restart(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "local.json")
            LocalStorage(path).set_item("greengo_currentUser", '{"uid": "u1"}')
            self.assertEqual(LocalStorage(path).get_json("greengo_currentUser"), {"uid": "u1"})

            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            self.assertEqual(LocalStorage(path).keys(), [])

    def test_malformed_value_reads_as_default(self):
        storage = LocalStorage()
        storage.set_item("greengo_cart", "[{broken")
        self.assertEqual(storage.get_json("greengo_cart", []), [])


if __name__ == "__main__":
    unittest.main()
