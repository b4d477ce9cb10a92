from __future__ import annotations

import asyncio
from typing import List, Optional

from db.cart import (
    GUEST,
    CartLine,
    CartService,
    Identity,
    LocalCartRepository,
    cart_for_identity,
    merge_guest_into_remote,
)
from db.errors import PermissionDenied, StoreError
from db.local_storage import LocalStorage
from db.models import UserProfile
from utils.logger import get_logger
from utils.signals import Signal

_logger = get_logger(__name__)


class SessionState:
    """
    Who is using the app, and the cart that goes with them.

    Fields:
      - user: signed in profile, None for a guest
      - cart: CartService picked for the current identity
      - cart_changed: fires with the cart lines after any mutation, survives identity switches

    Only sign_in and sign_out change user and cart, one call at a time. The guest
    cart is merged into the user's cart at most once per sign-in, however many
    times sign_in is called; sign_out re-arms the merge.
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self.user: Optional[UserProfile] = None
        self.cart_changed = Signal("cart.changed")
        self.cart: CartService = cart_for_identity(GUEST, storage, self.cart_changed)
        self._merged_for: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def identity(self) -> Identity:
        return Identity(self.user.uid) if self.user else GUEST

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    def require_admin(self) -> UserProfile:
        if not self.is_admin:
            raise PermissionDenied("Admin access required")
        return self.user

    async def sign_in(self, user: Optional[UserProfile]) -> bool:
        """
        Switch to `user`. Returns True when the identity changed.
        Passing None signs out. The same user again only refreshes the profile.
        """
        if user is None:
            return await self.sign_out()
        async with self._lock:
            switched = self.user is None or self.user.uid != user.uid
            if switched and self.user is not None:
                await self._reset_to_guest()
            self.user = user
            if switched:
                self._use_cart(cart_for_identity(self.identity, self.storage, self.cart_changed))

            if self._merged_for != user.uid:
                self._merged_for = user.uid
                try:
                    await merge_guest_into_remote(
                        LocalCartRepository(self.storage), self.cart.repository
                    )
                except StoreError as e:
                    _logger.error(f"Guest cart merge failed, guest cart kept locally: {e}")

            if not switched:
                return False
            lines: List[CartLine] = await self.cart.get_cart()
            self.cart_changed.emit(lines)
            _logger.info(f"Signed in as {user.uid}")
            return True

    async def sign_out(self) -> bool:
        async with self._lock:
            if self.user is None:
                return False
            await self._reset_to_guest()
            self.cart_changed.emit(await self.cart.get_cart())
            return True

    def _use_cart(self, cart: CartService) -> None:
        self.cart.close()
        self.cart = cart

    async def _reset_to_guest(self) -> None:
        _logger.info(f"Signed out {self.user.uid}")
        self.user = None
        self._merged_for = None
        self._use_cart(cart_for_identity(GUEST, self.storage, self.cart_changed))
