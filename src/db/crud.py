# src/db/crud.py
from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from db import docstore, models
from db.cart import CartService
from db.errors import (
    DocumentExists,
    DocumentNotFound,
    ProductNotDeletableError,
    StoreError,
    TicketClosedError,
)
from db.seed import SEED_PRODUCTS
from utils.logger import get_logger
from utils.pure import is_seed_product_id, line_total, pid_sort_key
from utils.validators import (
    parse_price,
    validate_delivery,
    validate_product_form,
    validate_ticket,
)

_logger = get_logger(__name__)

PRODUCTS = "products"
USERS = "users"
ORDERS = "orders"
TICKETS = "support_tickets"


# ---------------------------
# Catalog
# ---------------------------


async def ensure_catalog() -> int:
    """Load the bundled products into an empty catalog. Returns how many were written."""
    if await docstore.list_docs(PRODUCTS):
        return 0
    for product in SEED_PRODUCTS:
        await docstore.set_doc(PRODUCTS, product.pid, product.to_doc())
    _logger.info(f"Seeded catalog with {len(SEED_PRODUCTS)} products")
    return len(SEED_PRODUCTS)


async def list_products(category: Optional[str] = None) -> List[models.Product]:
    """
    Catalog ordered by id: seed products (numeric ids) first, store-added after.
    Falls back to the bundled list when the store is unreachable or empty.
    """
    try:
        docs = await docstore.list_docs(PRODUCTS)
    except StoreError:
        docs = []
    products = [models.Product.from_doc(d) for d in docs] or list(SEED_PRODUCTS)
    if category:
        products = [p for p in products if p.category == category]
    products.sort(key=lambda p: pid_sort_key(p.pid))
    return products


async def get_product(pid: str) -> Optional[models.Product]:
    try:
        doc = await docstore.get_doc(PRODUCTS, str(pid))
    except StoreError:
        return None
    return models.Product.from_doc(doc) if doc else None


def _product_fields(name: str, price, image: str, category: str) -> Dict:
    errors = validate_product_form(name, price, image, category)
    if errors:
        raise ValueError("; ".join(errors.values()))
    return {
        "name": name.strip(),
        "price": parse_price(price),
        "image": image.strip(),
        "category": category,
    }


async def add_product(name: str, price, image: str, category: str) -> models.Product:
    """Add a store product under a generated id. Errors propagate to the admin screen."""
    fields = _product_fields(name, price, image, category)
    pid = await docstore.add_doc(PRODUCTS, fields)
    return models.Product(pid=pid, **fields)


async def update_product(
    pid: str, name: str, price, image: str, category: str
) -> bool:
    """Edit any product, seed or store-added. False when it does not exist."""
    fields = _product_fields(name, price, image, category)
    try:
        await docstore.update_doc(PRODUCTS, str(pid), fields)
    except DocumentNotFound:
        return False
    return True


async def delete_product(pid: str) -> bool:
    """
    Delete a store-added product. Seed products (numeric ids) raise
    ProductNotDeletableError. Returns False when nothing was deleted.
    """
    if is_seed_product_id(pid):
        raise ProductNotDeletableError(pid)
    return await docstore.delete_doc(PRODUCTS, str(pid))


# ---------------------------
# User profiles
# ---------------------------


async def save_user_profile(uid: str, fields: Dict) -> bool:
    try:
        await docstore.set_doc(USERS, uid, fields, merge=True)
    except StoreError:
        return False
    return True


async def get_user_profile(uid: str) -> Optional[models.UserProfile]:
    try:
        doc = await docstore.get_doc(USERS, uid)
    except StoreError:
        return None
    return models.UserProfile.from_doc(doc) if doc else None


async def set_user_role(uid: str, role: Optional[str]) -> bool:
    """Grant ("admin") or revoke (None) the admin role."""
    if role not in (None, models.ADMIN_ROLE):
        raise ValueError(f"Unknown role: {role}")
    try:
        await docstore.update_doc(USERS, uid, {"role": role, "is_admin": role is not None})
    except DocumentNotFound:
        return False
    return True


# ---------------------------
# Checkout & Orders
# ---------------------------


async def _store_new_order(order: models.Order) -> models.Order:
    """Insert `order`, bumping its ORD-<ms> number by one millisecond until the insert wins."""
    stamp = int(order.ono.split("-", 1)[1])
    while True:
        try:
            await docstore.create_doc(ORDERS, order.ono, order.to_doc())
            return order
        except DocumentExists:
            stamp += 1
            order = replace(order, ono=f"ORD-{stamp}")


async def place_order(
    cart: CartService,
    user: Optional[models.UserProfile],
    details: models.DeliveryDetails,
    odate: Optional[datetime] = None,
) -> models.Order:
    """
    Snapshot the cart into a pending order, store it, then clear the cart.

    Raises ValueError for invalid delivery details or an empty cart, and
    StoreError when the order could not be stored (the cart is kept then).
    """
    errors = validate_delivery(details.name, details.phone, details.address)
    if errors:
        raise ValueError("; ".join(errors.values()))
    if details.delivery not in models.DELIVERY_METHODS:
        raise ValueError(f"Unsupported delivery method: {details.delivery}")

    lines = await cart.get_cart()
    if not lines:
        raise ValueError("Cart is empty")

    order = models.Order(
        ono=f"ORD-{int(time.time() * 1000)}",
        user_id=user.uid if user else None,
        user_email=user.email if user else "",
        name=details.name.strip(),
        phone=details.phone.strip(),
        address=details.address.strip(),
        items=tuple(lines),
        total=line_total(lines),
        delivery=details.delivery,
        status="pending",
        odate=odate or datetime.now(),
    )
    order = await _store_new_order(order)
    await cart.clear()
    _logger.info(f"Order {order.ono} placed, total {order.total}")
    return order


def _orders_newest_first(docs) -> List[models.Order]:
    orders = [models.Order.from_doc(d) for d in docs or []]
    orders.sort(key=lambda o: o.odate, reverse=True)
    return orders


async def get_order(ono: str) -> Optional[models.Order]:
    try:
        doc = await docstore.get_doc(ORDERS, ono)
    except StoreError:
        return None
    return models.Order.from_doc(doc) if doc else None


async def list_user_orders(email: str) -> List[models.Order]:
    if not email:
        return []
    try:
        return _orders_newest_first(await docstore.query(ORDERS, "user_email", email))
    except StoreError:
        return []


async def list_all_orders() -> List[models.Order]:
    try:
        return _orders_newest_first(await docstore.list_docs(ORDERS))
    except StoreError:
        return []


async def update_order_status(ono: str, status: str) -> bool:
    """
    Set an order's status. Any of ORDER_STATUSES is accepted from any other,
    including delivered back to pending. False when the order does not exist.
    """
    if status not in models.ORDER_STATUSES:
        raise ValueError(f"Unknown order status: {status}")
    try:
        await docstore.update_doc(ORDERS, ono, {"status": status})
    except DocumentNotFound:
        return False
    return True


async def watch_user_orders(email: str) -> docstore.Subscription:
    return await docstore.watch_collection(
        ORDERS, where=("user_email", email), transform=_orders_newest_first
    )


async def watch_all_orders() -> docstore.Subscription:
    return await docstore.watch_collection(ORDERS, transform=_orders_newest_first)


# ---------------------------
# Support tickets
# ---------------------------


def _tickets_newest_first(docs) -> List[models.SupportTicket]:
    tickets = [models.SupportTicket.from_doc(d) for d in docs or []]
    tickets.sort(key=lambda t: t.created_at or datetime.min, reverse=True)
    return tickets


async def create_ticket(
    user: models.UserProfile,
    name: str,
    email: str,
    message: str,
    order_ref: Optional[str] = None,
) -> models.SupportTicket:
    """Open a ticket for `user`. Raises ValueError when the form is invalid."""
    errors = validate_ticket(name, email, message)
    if errors:
        raise ValueError("; ".join(errors.values()))
    tid = await docstore.add_doc(
        TICKETS,
        {
            "user_id": user.uid,
            "name": name.strip(),
            "email": email.strip(),
            "message": message.strip(),
            "order_ref": (order_ref or "").strip() or None,
            "status": "Open",
            "replies": [],
        },
    )
    return await get_ticket(tid)


async def get_ticket(tid: str) -> Optional[models.SupportTicket]:
    try:
        doc = await docstore.get_doc(TICKETS, tid)
    except StoreError:
        return None
    return models.SupportTicket.from_doc(doc) if doc else None


async def list_user_tickets(uid: str) -> List[models.SupportTicket]:
    if not uid:
        return []
    try:
        return _tickets_newest_first(await docstore.query(TICKETS, "user_id", uid))
    except StoreError:
        return []


async def list_all_tickets(status: Optional[str] = None) -> List[models.SupportTicket]:
    try:
        tickets = _tickets_newest_first(await docstore.list_docs(TICKETS))
    except StoreError:
        return []
    if status:
        tickets = [t for t in tickets if t.status == status]
    return tickets


async def count_tickets_by_status() -> Dict[str, int]:
    counts = {s: 0 for s in models.TICKET_STATUSES}
    for ticket in await list_all_tickets():
        counts[ticket.status] = counts.get(ticket.status, 0) + 1
    return counts


async def set_ticket_status(tid: str, status: str) -> bool:
    """Any of TICKET_STATUSES from any other. False when the ticket does not exist."""
    if status not in models.TICKET_STATUSES:
        raise ValueError(f"Unknown ticket status: {status}")
    try:
        await docstore.update_doc(TICKETS, tid, {"status": status})
    except DocumentNotFound:
        return False
    return True


async def append_reply(
    tid: str, author_id: str, message: str, when: Optional[datetime] = None
) -> bool:
    """
    Append a reply. False for an empty message or a missing ticket,
    TicketClosedError when the ticket is resolved.
    """
    message = (message or "").strip()
    if not tid or not author_id or not message:
        return False
    reply = models.Reply(author_id=author_id, message=message, ts=when or datetime.now())

    def add_reply(doc):
        if doc is None:
            return None
        if doc.get("status") == "Resolved":
            raise TicketClosedError(tid)
        replies = list(doc.get("replies") or [])
        replies.append(reply.to_doc())
        return {**doc, "replies": replies}

    return await docstore.mutate_doc(TICKETS, tid, add_reply) is not None


async def watch_user_tickets(uid: str) -> docstore.Subscription:
    return await docstore.watch_collection(
        TICKETS, where=("user_id", uid), transform=_tickets_newest_first
    )


async def watch_all_tickets() -> docstore.Subscription:
    return await docstore.watch_collection(TICKETS, transform=_tickets_newest_first)


# ---------------------------
# Admin dashboard
# ---------------------------


async def dashboard_stats() -> Dict[str, int]:
    """Order counts, revenue from delivered orders, and catalog size."""
    orders = await list_all_orders()
    products = await list_products()
    delivered = [o for o in orders if o.status == "delivered"]
    return {
        "total_orders": len(orders),
        "pending_orders": sum(1 for o in orders if o.status == "pending"),
        "delivered_orders": len(delivered),
        "total_revenue": sum(o.total for o in delivered),
        "total_products": len(products),
    }
