import asyncio
import random
import unittest
from unittest.mock import AsyncMock, patch

from helpers import StoreTestCase

from db import docstore
from db.cart import (
    CartService,
    LocalCartRepository,
    RemoteCartRepository,
    merge_guest_into_remote,
)
from db.errors import PermissionDenied, StoreError
from db.local_storage import CART_KEY, LocalStorage
from db.models import CartLine, Product, UserProfile
from utils.state import SessionState

CARROTS = Product("2", "Fresh Carrots", 80, "carrots.jpg", "vegetable")
LETTUCE = Product("3", "Organic Lettuce", 50, "lettuce.jpg", "vegetable")
APPLES = Product("9", "Fresh Apples", 150, "apples.jpg", "fruit")
KALE = Product("a1B2c3", "Baby Kale", 90, "kale.jpg", "vegetable")


class FlakyRepository(RemoteCartRepository):
    """Remote repository whose reads and writes can be switched to fail."""

    def __init__(self, user_id: str):
        super().__init__(user_id)
        self.fail_reads = False
        self.fail_writes = False

    async def load(self):
        if self.fail_reads:
            raise StoreError("store unreachable")
        return await super().load()

    async def save(self, lines):
        if self.fail_writes:
            raise StoreError("store unreachable")
        await super().save(lines)


class GuestCartTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.storage = LocalStorage()
        self.cart = CartService(LocalCartRepository(self.storage))

    async def test_random_sequences_match_net_effect(self):
        products = [CARROTS, LETTUCE, APPLES, KALE]
        for seed in range(5):
            rng = random.Random(seed)
            await self.cart.clear()
            expected = {}
            for _ in range(60):
                product = rng.choice(products)
                op = rng.choice(["add", "remove", "update"])
                if op == "add":
                    await self.cart.add_item(product)
                    expected[product.pid] = expected.get(product.pid, 0) + 1
                elif op == "remove":
                    await self.cart.remove_item(product.pid)
                    expected.pop(product.pid, None)
                else:
                    qty = rng.randint(-3, 5)
                    await self.cart.update_quantity(product.pid, qty)
                    if product.pid in expected:
                        if qty <= 0:
                            del expected[product.pid]
                        else:
                            expected[product.pid] = qty

            lines = await self.cart.get_cart()
            self.assertEqual({l.pid: l.qty for l in lines}, expected)
            self.assertTrue(all(l.qty > 0 for l in lines))
            self.assertEqual(len({l.pid for l in lines}), len(lines))

    async def test_existing_line_keeps_its_product_copy(self):
        await self.cart.add_item(CARROTS)
        repriced = Product("2", "Fresh Carrots", 99, "carrots.jpg", "vegetable")
        lines = await self.cart.add_item(repriced)
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].qty, 2)
        self.assertEqual(lines[0].price, 80)
        self.assertEqual(lines[0].name, "Fresh Carrots")

    async def test_update_quantity_clamps_and_ignores_absent_lines(self):
        await self.cart.add_item(CARROTS)
        await self.cart.update_quantity("9", 4)  # absent, no insert
        self.assertEqual([l.pid for l in await self.cart.get_cart()], ["2"])

        await self.cart.update_quantity("2", -5)
        self.assertEqual(await self.cart.get_cart(), [])
        self.assertEqual(self.storage.get_json(CART_KEY), [])

    async def test_count_and_total(self):
        await self.cart.add_item(CARROTS)
        await self.cart.add_item(CARROTS)
        await self.cart.add_item(LETTUCE)
        self.assertEqual(await self.cart.count(), 3)
        self.assertEqual(await self.cart.total(), 210)

    async def test_changed_signal_fires_on_mutations(self):
        seen = []
        self.cart.changed.connect(seen.append)
        await self.cart.add_item(APPLES)
        await self.cart.remove_item("missing")  # no-op, nothing emitted
        await self.cart.clear()
        self.assertEqual(len(seen), 2)
        self.assertEqual(seen[0], [CartLine.from_product(APPLES)])
        self.assertEqual(seen[-1], [])

    async def test_guest_watch_follows_local_writes(self):
        sub = await self.cart.watch()
        self.assertEqual(await sub.next_snapshot(timeout=1), [])

        await self.cart.add_item(APPLES)
        await self.cart.add_item(APPLES)
        await self.cart.add_item(APPLES)
        latest = await sub.next_snapshot(timeout=1)
        self.assertEqual(latest[0].qty, 3)

        sub.close()
        self.assertEqual(len(self.cart.changed), 0)


class RemoteCartTestCase(StoreTestCase):
    async def test_remote_cart_is_shared_between_services(self):
        first = CartService(RemoteCartRepository("user-1"), authenticated=True)
        await first.add_item(CARROTS)
        await first.add_item(KALE)

        second = CartService(RemoteCartRepository("user-1"), authenticated=True)
        self.assertEqual([l.pid for l in await second.get_cart()], ["2", "a1B2c3"])

    async def test_get_cart_serves_cache_when_store_fails(self):
        repo = FlakyRepository("user-1")
        cart = CartService(repo, authenticated=True)

        repo.fail_reads = True
        self.assertEqual(await cart.get_cart(), [])

        repo.fail_reads = False
        await cart.add_item(LETTUCE)
        repo.fail_reads = True
        lines = await cart.get_cart()
        self.assertEqual([(l.pid, l.qty) for l in lines], [("3", 1)])

    async def test_failed_write_keeps_intended_state_in_memory(self):
        repo = FlakyRepository("user-1")
        cart = CartService(repo, authenticated=True)
        repo.fail_writes = True

        lines = await cart.add_item(APPLES)
        self.assertEqual([(l.pid, l.qty) for l in lines], [("9", 1)])

        repo.fail_reads = True
        self.assertEqual([l.pid for l in await cart.get_cart()], ["9"])

        repo.fail_reads = False
        self.assertEqual(await cart.get_cart(), [])  # never persisted

    async def test_failed_write_of_authenticated_owner_skips_local_storage(self):
        storage = LocalStorage()
        repo = FlakyRepository("user-1")
        cart = CartService(repo, authenticated=True, local=LocalCartRepository(storage))
        repo.fail_writes = True

        await cart.add_item(APPLES)
        self.assertIsNone(storage.get_item(CART_KEY))

    async def test_failed_write_of_unconfirmed_owner_falls_back_to_local(self):
        storage = LocalStorage()
        local = LocalCartRepository(storage)
        repo = FlakyRepository("user-1")
        cart = CartService(repo, authenticated=False, local=local)
        repo.fail_writes = True

        await cart.add_item(APPLES)
        self.assertEqual([(l.pid, l.qty) for l in await local.load()], [("9", 1)])

        await cart.clear()
        self.assertEqual(await local.load(), [])

    async def test_remote_watch_delivers_latest_snapshot(self):
        cart = CartService(RemoteCartRepository("user-1"), authenticated=True)
        sub = await cart.watch()
        self.assertEqual(await sub.next_snapshot(timeout=1), [])

        await cart.add_item(CARROTS)
        await cart.add_item(CARROTS)
        await cart.add_item(APPLES)
        latest = await sub.next_snapshot(timeout=1)
        self.assertEqual([(l.pid, l.qty) for l in latest], [("2", 2), ("9", 1)])


class NeverClearedLocalRepository(LocalCartRepository):
    """Guest cart whose erase step never happens, as if the app died mid-merge."""

    async def clear(self):
        pass


class MergeTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.storage = LocalStorage()
        self.local = LocalCartRepository(self.storage)
        self.remote = RemoteCartRepository("user-1")

    async def test_merge_sums_shared_lines_and_appends_guest_only(self):
        await self.remote.save([CartLine.from_product(CARROTS, 2)])
        await self.local.save([CartLine.from_product(CARROTS, 1), CartLine.from_product(APPLES, 3)])

        merged = await merge_guest_into_remote(self.local, self.remote)

        self.assertEqual([(l.pid, l.qty) for l in merged], [("2", 3), ("9", 3)])
        self.assertEqual(await self.remote.load(), merged)
        self.assertEqual(await self.local.load(), [])
        self.assertIsNone(self.storage.get_item(CART_KEY))

    async def test_empty_guest_cart_leaves_remote_untouched(self):
        await self.remote.save([CartLine.from_product(LETTUCE, 4)])
        merged = await merge_guest_into_remote(self.local, self.remote)
        self.assertEqual([(l.pid, l.qty) for l in merged], [("3", 4)])

    async def test_merge_is_not_idempotent(self):
        local = NeverClearedLocalRepository(self.storage)
        await local.save([CartLine.from_product(CARROTS, 2)])
        await self.remote.save([CartLine.from_product(CARROTS, 1)])

        await merge_guest_into_remote(local, self.remote)
        merged = await merge_guest_into_remote(local, self.remote)

        # shared product counted twice: 1 + 2 + 2
        self.assertEqual([(l.pid, l.qty) for l in merged], [("2", 5)])

    async def test_failed_merge_keeps_guest_cart(self):
        await self.local.save([CartLine.from_product(APPLES, 1)])
        with patch.object(
            RemoteCartRepository, "load", new=AsyncMock(side_effect=StoreError("down"))
        ):
            with self.assertRaises(StoreError):
                await merge_guest_into_remote(self.local, self.remote)
        self.assertEqual([l.pid for l in await self.local.load()], ["9"])


class SessionStateTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.storage = LocalStorage()
        self.state = SessionState(self.storage)
        self.user = UserProfile(uid="user-1", name="Asha", email="asha@example.com")

    async def test_sign_in_merges_guest_cart_once(self):
        await self.state.cart.add_item(CARROTS)
        self.assertFalse(self.state.cart.authenticated)

        self.assertTrue(await self.state.sign_in(self.user))
        self.assertTrue(self.state.cart.authenticated)
        self.assertEqual([(l.pid, l.qty) for l in await self.state.cart.get_cart()], [("2", 1)])

        # a leftover guest cart is not merged again during the same sign-in
        await LocalCartRepository(self.storage).save([CartLine.from_product(CARROTS, 5)])
        self.assertFalse(await self.state.sign_in(self.user))
        self.assertEqual([(l.pid, l.qty) for l in await self.state.cart.get_cart()], [("2", 1)])

        # the next sign-in merges again
        await self.state.sign_out()
        self.assertTrue(await self.state.sign_in(self.user))
        self.assertEqual([(l.pid, l.qty) for l in await self.state.cart.get_cart()], [("2", 6)])

    async def test_concurrent_sign_ins_merge_once(self):
        await self.state.cart.add_item(CARROTS)
        await self.state.cart.add_item(CARROTS)
        await RemoteCartRepository(self.user.uid).save([CartLine.from_product(CARROTS, 1)])

        results = await asyncio.gather(*(self.state.sign_in(self.user) for _ in range(3)))

        self.assertEqual(sorted(results), [False, False, True])
        self.assertEqual([(l.pid, l.qty) for l in await self.state.cart.get_cart()], [("2", 3)])

    async def test_guest_watcher_is_closed_on_sign_in(self):
        sub = await self.state.cart.watch()
        self.assertEqual(await sub.next_snapshot(timeout=1), [])

        await self.state.sign_in(self.user)

        self.assertTrue(sub.closed)
        await self.state.cart.add_item(APPLES)
        self.assertFalse(sub._pending)

    async def test_guest_watcher_is_closed_on_shutdown(self):
        sub = await self.state.cart.watch()
        docstore.close_all_subscriptions()
        self.assertTrue(sub.closed)
        self.assertEqual(len(self.state.cart_changed), 0)

    async def test_cart_changed_signal_survives_identity_switch(self):
        counts = []
        self.state.cart_changed.connect(lambda lines: counts.append(sum(l.qty for l in lines)))

        await self.state.cart.add_item(APPLES)
        await self.state.sign_in(self.user)
        await self.state.cart.add_item(APPLES)
        await self.state.sign_out()

        self.assertEqual(counts, [1, 1, 2, 0])

    async def test_sign_in_survives_store_failure(self):
        await self.state.cart.add_item(APPLES)
        with patch.object(
            RemoteCartRepository, "load", new=AsyncMock(side_effect=StoreError("down"))
        ):
            self.assertTrue(await self.state.sign_in(self.user))
            self.assertEqual(await self.state.cart.get_cart(), [])
        self.assertEqual([l.pid for l in await LocalCartRepository(self.storage).load()], ["9"])

    async def test_admin_gate(self):
        await self.state.sign_in(self.user)
        self.assertFalse(self.state.is_admin)
        with self.assertRaises(PermissionDenied):
            self.state.require_admin()

        await self.state.sign_in(UserProfile("user-1", "Asha", "asha@example.com", "admin"))
        self.assertTrue(self.state.is_admin)
        self.assertEqual(self.state.require_admin().uid, "user-1")


if __name__ == "__main__":
    unittest.main()
