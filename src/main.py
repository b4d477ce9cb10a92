from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from db import crud, database
from db.auth import FederatedFlow, IdentityProvider
from db.docstore import Subscription, close_all_subscriptions
from db.local_storage import LocalStorage
from utils.config import AppConfig, load_config
from utils.logger import get_logger, set_level
from utils.messages import (
    CartChangedMessage,
    ModeSwitchedMessage,
    QuitRequestedMessage,
    SessionChangedMessage,
    UserLogoutMessage,
)
from utils.pure import line_count
from utils.state import SessionState
from views.scr_account import AccountScreen
from views.scr_admin_dashboard import AdminDashboardScreen
from views.scr_admin_orders import AdminOrdersScreen
from views.scr_admin_products import AdminProductsScreen
from views.scr_admin_support import AdminSupportScreen
from views.scr_cart import CartScreen
from views.scr_login import LoginScreen
from views.scr_products import ProductsScreen
from views.scr_support import SupportScreen

_logger = get_logger(__name__)


class GreenGoApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "products": ProductsScreen,
        "cart": CartScreen,
        "account": AccountScreen,
        "support": SupportScreen,
        "admin_dash": AdminDashboardScreen,
        "admin_products": AdminProductsScreen,
        "admin_orders": AdminOrdersScreen,
        "admin_support": AdminSupportScreen,
    }

    CUSTOMER_MODES = {
        "products": "Shop",
        "cart": "Cart",
        "account": "My Account",
        "support": "Support",
    }
    ADMIN_MODES = {
        "admin_dash": "Dashboard",
        "admin_products": "Manage Products",
        "admin_orders": "Manage Orders",
        "admin_support": "Support Tickets",
    }
    LOGIN_REQUIRED = {"account", "support"}

    CSS_PATH = [
        "views/styles/index.tcss",
        "views/styles/login.tcss",
        "views/styles/products.tcss",
        "views/styles/cart.tcss",
        "views/styles/account.tcss",
        "views/styles/admin.tcss",
    ]

    state: SessionState
    auth: IdentityProvider

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        federated_flow: Optional[FederatedFlow] = None,
    ):
        super().__init__()
        self.config = config or load_config()
        set_level(self.config.level_name)
        database.configure(self.config.db_path)

        storage = LocalStorage(self.config.local_storage)
        self.state = SessionState(storage)
        self.auth = IdentityProvider(storage, federated_flow)
        self.auth.subscribe_auth_state(self.state.sign_in)
        self.state.cart_changed.connect(self._bridge_cart_change)
        self._cart_sub: Optional[Subscription] = None

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.title = "GreenGo"
        self.main_flow()

    def price(self, amount: int) -> str:
        return self.config.format_price(amount)

    def _bridge_cart_change(self, lines) -> None:
        self.screen.post_message(CartChangedMessage(line_count(lines)))

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @work
    async def main_flow(self):
        if self.config.seed_catalog:
            await crud.ensure_catalog()
        user = await self.auth.restore_session()
        if user:
            self.notify(f"Welcome back, {user.name}!")
        self.watch_cart()
        self.post_message(ModeSwitchedMessage("", "products"))
        await self.switch_mode("products")

    @work(exclusive=True, group="cart-watch")
    async def watch_cart(self):
        """Follow the remote cart of the signed in user; guest carts only change through this app."""
        if self._cart_sub is not None:
            self._cart_sub.close()
            self._cart_sub = None
        if not self.state.cart.repository.remote:
            return
        sub = await self.state.cart.watch()
        self._cart_sub = sub
        try:
            async for lines in sub:
                self.screen.post_message(CartChangedMessage(line_count(lines)))
        finally:
            sub.close()

    async def request_login(self) -> bool:
        """Show the login screen. Must run inside a worker. True once someone is signed in."""
        if self.state.is_authenticated:
            return True
        if not await self.push_screen_wait(LoginScreen()):
            return False
        self.watch_cart()
        self.screen.post_message(SessionChangedMessage())
        return self.state.is_authenticated

    @work(exclusive=True, group="navigation")
    async def open_mode(self, mode: str):
        if mode in self.LOGIN_REQUIRED or mode in self.ADMIN_MODES:
            if not await self.request_login():
                self.notify("Please log in to continue.", severity="warning")
                return
        if mode in self.ADMIN_MODES and not self.state.is_admin:
            self.notify("Admin access required.", severity="error")
            return
        if self.current_mode != mode:
            self.post_message(ModeSwitchedMessage(self.current_mode, mode))
            await self.switch_mode(mode)

    @work(exclusive=True, group="navigation")
    async def login_flow(self):
        if await self.request_login() and self.state.is_admin:
            self.post_message(ModeSwitchedMessage(self.current_mode, "admin_dash"))
            await self.switch_mode("admin_dash")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        await self.auth.logout()
        self.watch_cart()
        self.notify("Logout successful.")
        if self.current_mode != "products":
            self.post_message(ModeSwitchedMessage(self.current_mode, "products"))
            await self.switch_mode("products")
        self.screen.post_message(SessionChangedMessage())

    @on(QuitRequestedMessage)
    def handle_quit(self):
        close_all_subscriptions()
        self.exit()


def run():
    GreenGoApp().run()


if __name__ == "__main__":
    run()
