import itertools
import unittest

from helpers import StoreTestCase

from db import crud
from db.errors import TicketClosedError
from db.models import TICKET_STATUSES, UserProfile

CUSTOMER = UserProfile(uid="user-1", name="Asha", email="asha@example.com")
ADMIN = UserProfile(uid="admin-1", name="Store Admin", email="admin@greengo.com", role="admin")


class TicketTestCase(StoreTestCase):
    async def _open_ticket(self, message="My order arrived with bruised apples."):
        return await crud.create_ticket(
            CUSTOMER, CUSTOMER.name, CUSTOMER.email, message, order_ref="ORD-1700000000000"
        )

    async def test_create_ticket(self):
        ticket = await self._open_ticket()
        self.assertEqual(ticket.status, "Open")
        self.assertEqual(ticket.user_id, CUSTOMER.uid)
        self.assertEqual(ticket.order_ref, "ORD-1700000000000")
        self.assertEqual(ticket.replies, ())
        self.assertIsNotNone(ticket.created_at)

        with self.assertRaises(ValueError):
            await self._open_ticket("too short")

    async def test_every_status_transition_is_accepted(self):
        ticket = await self._open_ticket()
        for current, target in itertools.permutations(TICKET_STATUSES, 2):
            self.assertTrue(await crud.set_ticket_status(ticket.tid, current))
            self.assertTrue(await crud.set_ticket_status(ticket.tid, target))
            self.assertEqual((await crud.get_ticket(ticket.tid)).status, target)

        with self.assertRaises(ValueError):
            await crud.set_ticket_status(ticket.tid, "Closed")
        self.assertFalse(await crud.set_ticket_status("missing", "Open"))

    async def test_replies_are_appended_in_order(self):
        ticket = await self._open_ticket()
        self.assertTrue(await crud.append_reply(ticket.tid, ADMIN.uid, "Sorry! Refund on its way."))
        self.assertTrue(await crud.append_reply(ticket.tid, CUSTOMER.uid, "Thank you."))

        replies = (await crud.get_ticket(ticket.tid)).replies
        self.assertEqual([r.author_id for r in replies], [ADMIN.uid, CUSTOMER.uid])
        self.assertEqual(replies[0].message, "Sorry! Refund on its way.")

        self.assertFalse(await crud.append_reply(ticket.tid, ADMIN.uid, "   "))
        self.assertFalse(await crud.append_reply("missing", ADMIN.uid, "Hello?"))

    async def test_resolved_ticket_refuses_replies(self):
        ticket = await self._open_ticket()
        await crud.set_ticket_status(ticket.tid, "Resolved")

        with self.assertRaises(TicketClosedError):
            await crud.append_reply(ticket.tid, CUSTOMER.uid, "One more thing")
        self.assertEqual((await crud.get_ticket(ticket.tid)).replies, ())

        # reopening accepts replies again
        await crud.set_ticket_status(ticket.tid, "In Progress")
        self.assertTrue(await crud.append_reply(ticket.tid, CUSTOMER.uid, "One more thing"))

    async def test_listing_and_counts(self):
        first = await self._open_ticket()
        second = await self._open_ticket("Delivery was two hours late today.")
        other = UserProfile(uid="user-2", name="Bikash", email="bikash@example.com")
        await crud.create_ticket(other, other.name, other.email, "Where is my order please?")
        await crud.set_ticket_status(first.tid, "Resolved")

        mine = await crud.list_user_tickets(CUSTOMER.uid)
        self.assertEqual({t.tid for t in mine}, {first.tid, second.tid})
        self.assertEqual(len(await crud.list_all_tickets()), 3)
        self.assertEqual([t.tid for t in await crud.list_all_tickets("Resolved")], [first.tid])
        self.assertEqual(
            await crud.count_tickets_by_status(),
            {"Open": 2, "In Progress": 0, "Resolved": 1},
        )

    async def test_watch_tickets_sees_new_replies(self):
        ticket = await self._open_ticket()
        sub = await crud.watch_user_tickets(CUSTOMER.uid)
        self.assertEqual(len((await sub.next_snapshot(timeout=1))[0].replies), 0)

        await crud.append_reply(ticket.tid, ADMIN.uid, "Looking into it.")
        snapshot = await sub.next_snapshot(timeout=1)
        self.assertEqual(snapshot[0].replies[0].message, "Looking into it.")


if __name__ == "__main__":
    unittest.main()
