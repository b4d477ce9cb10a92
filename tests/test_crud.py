import asyncio
import unittest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

from helpers import StoreTestCase

from db import crud, docstore
from db.cart import CartService, RemoteCartRepository
from db.errors import PermissionDenied, ProductNotDeletableError, StoreError
from db.local_storage import LocalStorage
from db.models import DeliveryDetails, Product, UserProfile
from db.seed import SEED_PRODUCTS
from utils.pure import is_seed_product_id
from utils.state import SessionState

DETAILS = DeliveryDetails(name="Asha Rai", phone="9800000000", address="Lakeside, Pokhara")
USER = UserProfile(uid="user-1", name="Asha", email="asha@example.com")


class CatalogTestCase(StoreTestCase):
    async def asyncSetUp(self):
        await crud.ensure_catalog()

    async def test_ensure_catalog_seeds_once(self):
        self.assertEqual(len(await crud.list_products()), len(SEED_PRODUCTS))
        self.assertEqual(await crud.ensure_catalog(), 0)

    async def test_list_products_by_category(self):
        vegetables = await crud.list_products("vegetable")
        fruit = await crud.list_products("fruit")
        self.assertEqual([p.pid for p in vegetables], ["2", "3", "4", "5", "6"])
        self.assertEqual(len(fruit), 6)
        self.assertTrue(all(p.category == "fruit" for p in fruit))

    async def test_list_products_falls_back_to_bundled_catalog(self):
        with patch.object(docstore, "list_docs", new=AsyncMock(side_effect=StoreError("down"))):
            products = await crud.list_products()
        self.assertEqual([p.pid for p in products], [p.pid for p in SEED_PRODUCTS])

    async def test_seed_products_cannot_be_deleted(self):
        with self.assertRaises(ProductNotDeletableError):
            await crud.delete_product("3")
        self.assertIsNotNone(await crud.get_product("3"))

    async def test_store_added_products_can_be_deleted(self):
        self.assertFalse(is_seed_product_id("a1B2c3"))
        self.assertFalse(await crud.delete_product("a1B2c3"))  # valid target, just absent

        product = await crud.add_product("Baby Kale", "90", "kale.jpg", "vegetable")
        self.assertEqual(len(product.pid), 20)
        self.assertFalse(is_seed_product_id(product.pid))
        self.assertEqual((await crud.get_product(product.pid)).price, 90)

        # store-added products sort after the seed ones
        self.assertEqual((await crud.list_products())[-1].pid, product.pid)

        self.assertTrue(await crud.delete_product(product.pid))
        self.assertIsNone(await crud.get_product(product.pid))
        self.assertFalse(await crud.delete_product(product.pid))

    async def test_add_product_validates_fields(self):
        with self.assertRaises(ValueError):
            await crud.add_product("", "90", "kale.jpg", "vegetable")
        with self.assertRaises(ValueError):
            await crud.add_product("Kale", "-5", "kale.jpg", "vegetable")
        with self.assertRaises(ValueError):
            await crud.add_product("Kale", "90", "kale.jpg", "dairy")

    async def test_seed_products_can_be_edited(self):
        self.assertTrue(await crud.update_product("2", "Carrots", 85, "carrots.jpg", "vegetable"))
        self.assertEqual((await crud.get_product("2")).price, 85)
        self.assertFalse(await crud.update_product("404", "Ghost", 1, "x.jpg", "fruit"))


class OrderTestCase(StoreTestCase):
    async def asyncSetUp(self):
        await docstore.set_doc(
            crud.PRODUCTS,
            "1",
            {"name": "Tomatoes", "price": 80, "image": "tomato.jpg", "category": "vegetable"},
        )
        await docstore.set_doc(
            crud.PRODUCTS,
            "2",
            {"name": "Lettuce", "price": 50, "image": "lettuce.jpg", "category": "vegetable"},
        )
        self.cart = CartService(RemoteCartRepository(USER.uid), authenticated=True)

    async def _fill_cart(self):
        tomatoes = await crud.get_product("1")
        lettuce = await crud.get_product("2")
        await self.cart.add_item(tomatoes)
        await self.cart.add_item(tomatoes)
        await self.cart.add_item(lettuce)

    async def test_place_order_snapshots_cart(self):
        await self._fill_cart()

        order = await crud.place_order(self.cart, USER, DETAILS)

        self.assertEqual(order.total, 210)
        self.assertEqual(len(order.items), 2)
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.delivery, "Cash on Delivery")
        self.assertRegex(order.ono, r"^ORD-\d+$")
        self.assertEqual(await self.cart.get_cart(), [])

        # later price changes do not touch the stored order
        await crud.update_product("1", "Tomatoes", 120, "tomato.jpg", "vegetable")
        stored = await crud.get_order(order.ono)
        self.assertEqual(stored.items[0].pid, "1")
        self.assertEqual(stored.items[0].price, 80)
        self.assertEqual(stored.total, 210)
        self.assertEqual(stored.user_email, USER.email)

    async def test_place_order_rejects_empty_cart_and_bad_details(self):
        with self.assertRaises(ValueError):
            await crud.place_order(self.cart, USER, DETAILS)

        await self._fill_cart()
        with self.assertRaises(ValueError):
            await crud.place_order(self.cart, USER, DeliveryDetails("Asha", "", "Pokhara"))
        with self.assertRaises(ValueError):
            await crud.place_order(
                self.cart, USER, DeliveryDetails("Asha", "98", "Pokhara", delivery="Card")
            )
        self.assertEqual(await self.cart.count(), 3)

    async def test_order_numbers_are_unique_within_a_millisecond(self):
        with patch("db.crud.time.time", return_value=1_700_000_000.0):
            await self._fill_cart()
            first = await crud.place_order(self.cart, USER, DETAILS)
            await self._fill_cart()
            second = await crud.place_order(self.cart, USER, DETAILS)
        self.assertEqual(first.ono, "ORD-1700000000000")
        self.assertEqual(second.ono, "ORD-1700000000001")

    async def test_concurrent_checkouts_keep_both_orders(self):
        other = UserProfile(uid="user-2", name="Bikash", email="bikash@example.com")
        other_cart = CartService(RemoteCartRepository(other.uid), authenticated=True)
        lettuce = await crud.get_product("2")
        await self._fill_cart()
        await other_cart.add_item(lettuce)

        with patch("db.crud.time.time", return_value=1_700_000_000.0):
            first, second = await asyncio.gather(
                crud.place_order(self.cart, USER, DETAILS),
                crud.place_order(other_cart, other, DETAILS),
            )

        self.assertNotEqual(first.ono, second.ono)
        self.assertEqual(
            {first.ono, second.ono}, {"ORD-1700000000000", "ORD-1700000000001"}
        )
        stored = {o.ono: o.user_email for o in await crud.list_all_orders()}
        self.assertEqual(stored[first.ono], USER.email)
        self.assertEqual(stored[second.ono], other.email)

    async def test_user_orders_newest_first(self):
        now = datetime.now()
        await self._fill_cart()
        older = await crud.place_order(self.cart, USER, DETAILS, odate=now - timedelta(days=1))
        await self._fill_cart()
        newer = await crud.place_order(self.cart, USER, DETAILS, odate=now)

        orders = await crud.list_user_orders(USER.email)
        self.assertEqual([o.ono for o in orders], [newer.ono, older.ono])
        self.assertEqual(await crud.list_user_orders("nobody@example.com"), [])
        self.assertEqual(len(await crud.list_all_orders()), 2)

    async def test_order_status_changes(self):
        await self._fill_cart()
        order = await crud.place_order(self.cart, USER, DETAILS)

        self.assertTrue(await crud.update_order_status(order.ono, "delivered"))
        self.assertEqual((await crud.get_order(order.ono)).status, "delivered")
        # moving back is accepted as well
        self.assertTrue(await crud.update_order_status(order.ono, "pending"))
        self.assertEqual((await crud.get_order(order.ono)).status, "pending")

        with self.assertRaises(ValueError):
            await crud.update_order_status(order.ono, "shipped")
        self.assertFalse(await crud.update_order_status("ORD-0", "delivered"))

    async def test_watch_user_orders_sees_status_change(self):
        await self._fill_cart()
        order = await crud.place_order(self.cart, USER, DETAILS)

        sub = await crud.watch_user_orders(USER.email)
        self.assertEqual((await sub.next_snapshot(timeout=1))[0].status, "pending")
        await crud.update_order_status(order.ono, "delivered")
        self.assertEqual((await sub.next_snapshot(timeout=1))[0].status, "delivered")

    async def test_dashboard_stats(self):
        await crud.ensure_catalog()  # products already present, nothing seeded
        await self._fill_cart()
        first = await crud.place_order(self.cart, USER, DETAILS)
        await self._fill_cart()
        await crud.place_order(self.cart, USER, DETAILS)
        await crud.update_order_status(first.ono, "delivered")

        stats = await crud.dashboard_stats()
        self.assertEqual(
            stats,
            {
                "total_orders": 2,
                "pending_orders": 1,
                "delivered_orders": 1,
                "total_revenue": 210,
                "total_products": 2,
            },
        )


class UserProfileTestCase(StoreTestCase):
    async def test_roles(self):
        await crud.save_user_profile("user-1", {"name": "Asha", "email": "asha@example.com"})
        profile = await crud.get_user_profile("user-1")
        self.assertFalse(profile.is_admin)
        state = SessionState(LocalStorage())
        with self.assertRaises(PermissionDenied):
            state.require_admin()
        await state.sign_in(profile)
        with self.assertRaises(PermissionDenied):
            state.require_admin()

        self.assertTrue(await crud.set_user_role("user-1", "admin"))
        admin = await crud.get_user_profile("user-1")
        self.assertTrue(admin.is_admin)
        await state.sign_in(admin)
        self.assertEqual(state.require_admin(), admin)

        with self.assertRaises(ValueError):
            await crud.set_user_role("user-1", "owner")
        self.assertFalse(await crud.set_user_role("missing", "admin"))

    async def test_legacy_admin_flag(self):
        await crud.save_user_profile("user-2", {"email": "old@example.com", "is_admin": True})
        profile = await crud.get_user_profile("user-2")
        self.assertTrue(profile.is_admin)
        self.assertEqual(profile.name, "old")


if __name__ == "__main__":
    unittest.main()
