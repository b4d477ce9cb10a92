"""
Cart storage and reconciliation.

A cart is an ordered list of CartLine, unique by product id, never holding a
line with quantity 0. Where the cart lives depends on who owns it:

  - guest: LocalCartRepository, a json list in device-local storage
  - signed in user: RemoteCartRepository, the document carts/<uid>

The repository is picked once when the identity is resolved (cart_for_identity),
CartService never re-checks identity per call. Every write stores the whole
cart; concurrent writers to the same cart overwrite each other.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from db import docstore
from db.errors import StoreError
from db.local_storage import CART_KEY, LocalStorage
from db.models import CartLine, Product
from utils.logger import get_logger
from utils.pure import line_count, line_total
from utils.signals import Signal

_logger = get_logger(__name__)

CARTS = "carts"


def lines_from_docs(items) -> List[CartLine]:
    lines: List[CartLine] = []
    for item in items or []:
        try:
            line = CartLine.from_doc(item)
        except (KeyError, TypeError, ValueError):
            _logger.warning(f"Skipping malformed cart line: {item!r}")
            continue
        if line.qty > 0:
            lines.append(line)
    return lines


def _lines_from_cart_doc(doc) -> List[CartLine]:
    return lines_from_docs(doc.get("items") if doc else [])


# ---------------------------
# Repositories
# ---------------------------


class CartRepository(ABC):
    remote = False

    @abstractmethod
    async def load(self) -> List[CartLine]: ...

    @abstractmethod
    async def save(self, lines: List[CartLine]) -> None: ...

    async def clear(self) -> None:
        await self.save([])

    async def watch(self) -> docstore.Subscription:
        raise NotImplementedError


class LocalCartRepository(CartRepository):
    """Guest cart kept in device-local storage. Reads and writes are synchronous underneath."""

    def __init__(self, storage: LocalStorage, key: str = CART_KEY):
        self.storage = storage
        self.key = key

    def load_now(self) -> List[CartLine]:
        return lines_from_docs(self.storage.get_json(self.key, []))

    async def load(self) -> List[CartLine]:
        return self.load_now()

    async def save(self, lines: List[CartLine]) -> None:
        self.storage.set_json(self.key, [line.to_doc() for line in lines])

    async def clear(self) -> None:
        self.storage.remove_item(self.key)


class RemoteCartRepository(CartRepository):
    """Cart of a signed in user, stored as carts/<uid> = {items: [...]}."""

    remote = True

    def __init__(self, user_id: str):
        self.user_id = str(user_id)

    async def load(self) -> List[CartLine]:
        doc = await docstore.get_doc(CARTS, self.user_id)
        return _lines_from_cart_doc(doc)

    async def save(self, lines: List[CartLine]) -> None:
        await docstore.set_doc(
            CARTS, self.user_id, {"items": [line.to_doc() for line in lines]}, merge=True
        )

    async def watch(self) -> docstore.Subscription:
        return await docstore.watch_doc(CARTS, self.user_id, transform=_lines_from_cart_doc)


# ---------------------------
# Identity
# ---------------------------


@dataclass(frozen=True)
class Identity:
    """Owner of a cart: a user id, or None for the device-scoped guest."""

    user_id: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


GUEST = Identity()


# ---------------------------
# Cart engine
# ---------------------------


class CartService:
    """
    Single cart abstraction over either repository.

    Reads fail soft: if the repository raises StoreError, the last lines that
    were successfully read or written are returned instead. A failed write is
    repeated against `local` when the owner is not authenticated. For an
    authenticated owner it is logged and swallowed, and the in-memory view still
    moves to the intended state even though it was not persisted.

    `changed` fires with the new lines after every mutation.
    """

    def __init__(
        self,
        repository: CartRepository,
        authenticated: bool = False,
        changed: Optional[Signal] = None,
        local: Optional[CartRepository] = None,
    ):
        self.repository = repository
        self.authenticated = authenticated
        self.local = local
        self.changed = changed if changed is not None else Signal("cart.changed")
        self._last_known: List[CartLine] = []
        self._watchers: List[docstore.Subscription] = []

    @property
    def last_known(self) -> List[CartLine]:
        return list(self._last_known)

    async def get_cart(self) -> List[CartLine]:
        try:
            lines = await self.repository.load()
        except StoreError as e:
            _logger.warning(f"Cart read failed, serving cached copy: {e}")
            return list(self._last_known)
        self._last_known = list(lines)
        return lines

    def _local_fallback(self) -> Optional[CartRepository]:
        if self.authenticated or self.local is None or self.local is self.repository:
            return None
        return self.local

    async def _commit(self, lines: List[CartLine]) -> List[CartLine]:
        try:
            await self.repository.save(lines)
        except (StoreError, OSError) as e:
            fallback = self._local_fallback()
            if fallback is None:
                _logger.error(f"Cart write failed, keeping unsaved state in memory: {e}")
            else:
                _logger.warning(f"Cart write failed, saving to local storage instead: {e}")
                await fallback.save(lines)
        self._last_known = list(lines)
        self.changed.emit(list(lines))
        return lines

    async def _mutate(
        self, change: Callable[[List[CartLine]], Optional[List[CartLine]]]
    ) -> List[CartLine]:
        lines = await self.get_cart()
        updated = change(list(lines))
        if updated is None:
            return lines
        return await self._commit(updated)

    async def add_item(self, product: Product) -> List[CartLine]:
        """Add one unit. An existing line keeps the product copy it was created with."""

        def change(lines: List[CartLine]) -> List[CartLine]:
            for i, line in enumerate(lines):
                if line.pid == product.pid:
                    lines[i] = line.with_qty(line.qty + 1)
                    return lines
            lines.append(CartLine.from_product(product, 1))
            return lines

        return await self._mutate(change)

    async def remove_item(self, pid: str) -> List[CartLine]:
        pid = str(pid)

        def change(lines: List[CartLine]) -> Optional[List[CartLine]]:
            kept = [line for line in lines if line.pid != pid]
            return kept if len(kept) != len(lines) else None

        return await self._mutate(change)

    async def update_quantity(self, pid: str, qty: int) -> List[CartLine]:
        """Set a line's quantity. Negative values clamp to 0, and 0 removes the line."""
        pid = str(pid)
        qty = max(0, int(qty))

        def change(lines: List[CartLine]) -> Optional[List[CartLine]]:
            for i, line in enumerate(lines):
                if line.pid == pid:
                    if qty == 0:
                        del lines[i]
                    elif line.qty == qty:
                        return None
                    else:
                        lines[i] = line.with_qty(qty)
                    return lines
            return None

        return await self._mutate(change)

    async def clear(self) -> List[CartLine]:
        try:
            await self.repository.clear()
        except (StoreError, OSError) as e:
            fallback = self._local_fallback()
            if fallback is None:
                _logger.error(f"Cart clear failed, cart emptied in memory only: {e}")
            else:
                _logger.warning(f"Cart clear failed, clearing local storage instead: {e}")
                await fallback.clear()
        self._last_known = []
        self.changed.emit([])
        return []

    async def count(self) -> int:
        return line_count(await self.get_cart())

    async def total(self) -> int:
        return line_total(await self.get_cart())

    async def watch(self) -> docstore.Subscription:
        """
        Stream of cart snapshots, latest value first.

        Remote carts follow the store; a guest cart follows this service's own writes.
        """
        if self.repository.remote:
            return await self.repository.watch()

        sub = docstore.Subscription(
            ("local", CART_KEY), self.repository.load, default=[]
        )
        sub.add_close_callback(self.changed.connect(sub.push))
        docstore.register(sub)
        self._watchers.append(sub)
        await sub.refresh()
        return sub

    def close(self) -> None:
        """Close the guest watchers of this service. Called when the identity changes."""
        for sub in self._watchers:
            sub.close()
        self._watchers.clear()


def cart_for_identity(
    identity: Identity, storage: LocalStorage, changed: Optional[Signal] = None
) -> CartService:
    if identity.is_guest:
        return CartService(LocalCartRepository(storage), False, changed)
    return CartService(
        RemoteCartRepository(identity.user_id), True, changed, local=LocalCartRepository(storage)
    )


# ---------------------------
# Reconciliation
# ---------------------------


def merge_lines(base: List[CartLine], incoming: List[CartLine]) -> List[CartLine]:
    """Sum quantities of shared product ids, append the rest of `incoming` as-is."""
    merged: Dict[str, CartLine] = {line.pid: line for line in base}
    for line in incoming:
        existing = merged.get(line.pid)
        merged[line.pid] = existing.with_qty(existing.qty + line.qty) if existing else line
    return list(merged.values())


async def merge_guest_into_remote(
    local: LocalCartRepository, remote: RemoteCartRepository
) -> List[CartLine]:
    """
    Fold the guest cart into the user's remote cart, then erase the guest cart.

    Not idempotent: calling it again before the guest cart is consumed adds the
    guest quantities a second time. SessionState runs it once per sign-in.
    The read and the write are separate steps, a concurrent write in between is lost.
    StoreError propagates and leaves the guest cart untouched.
    """
    guest_lines = await local.load()
    if not guest_lines:
        return await remote.load()

    remote_lines = await remote.load()
    merged = merge_lines(remote_lines, guest_lines)
    await remote.save(merged)
    await local.clear()
    _logger.info(
        f"Merged {len(guest_lines)} guest cart line(s) into cart of {remote.user_id}"
    )
    return merged
