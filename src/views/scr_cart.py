from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from db.models import CartLine
from utils.messages import CartChangedMessage, ModeSwitchedMessage
from utils.pure import line_total
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import ConfirmDialogModal


class CartLineActionMessage(Message):
    bubble = True

    def __init__(self, pid: str, action: str) -> None:
        super().__init__()
        self.pid = pid
        self.action = action  # "inc", "dec" or "remove"


class CartItemWidget(HorizontalGroup):
    def __init__(self, line: CartLine):
        super().__init__()
        self.line = line

    def compose(self):
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(self.line.name, id="label-item-name")
                yield Label(self.app.price(self.line.price), id="label-item-price")
                yield Label(f"x {self.line.qty}", id="label-item-qty")
                yield Label(self.app.price(self.line.subtotal), id="label-item-subtotal")
            with Container(id="div-actions"):
                yield Button("-", id="btn-item-dec")
                yield Button("+", id="btn-item-inc")
                yield Button("Remove", id="btn-item-remove", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        action = event.button.id.removeprefix("btn-item-")
        self.post_message(CartLineActionMessage(self.line.pid, action))


class CartScreen(BaseScreen):
    """
    Cart contents with quantity controls, plus checkout.
    Works for guests; checkout asks for a login first.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lines: List[CartLine] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total: 0", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Continue Shopping", id="btn-shop")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @work(exclusive=True)  # must be exclusive, else racing renders mount duplicates
    async def handle_cart_change(self):
        lines = await self.app.state.cart.get_cart()

        content = self.query_one("#vertscroll-content")
        if [c.line for c in content.children] == lines and content.children:
            return

        await content.remove_children()
        await content.mount_all([CartItemWidget(line) for line in lines])
        content.set_class(not lines, "no-items")
        self._lines = lines

        self.query_one("#label-cart-total", Label).update(
            f"Total: {self.app.price(line_total(lines))}"
            if lines
            else "Your cart is empty"
        )
        self.query_one("#btn-checkout", Button).disabled = not lines

    @on(CartLineActionMessage)
    @work()
    async def handle_line_action(self, message: CartLineActionMessage):
        cart = self.app.state.cart
        line = next((l for l in self._lines if l.pid == message.pid), None)
        if line is None:
            return

        if message.action == "inc":
            await cart.update_quantity(line.pid, line.qty + 1)
        elif message.action == "dec":
            # going below one removes the line
            await cart.update_quantity(line.pid, line.qty - 1)
        elif message.action == "remove":
            if not await self.app.push_screen_wait(
                ConfirmDialogModal(f"Remove {line.name} from cart?")
            ):
                return
            await cart.remove_item(line.pid)
            self.notify("Item removed from cart.", severity="information")

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if not await self.app.state.cart.get_cart():
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            ConfirmDialogModal("Do you really want to remove all items from cart?", "error")
        ):
            await self.app.state.cart.clear()

    @on(Button.Pressed, "#btn-shop")
    def handle_continue_shopping(self) -> None:
        self.app.open_mode("products")

    @on(Button.Pressed, "#btn-checkout")
    @work(exclusive=True, group="checkout")
    async def handle_checkout(self) -> None:
        if not await self.app.state.cart.get_cart():
            self.app.notify("Cart is empty.", severity="warning")
            return

        if not self.app.state.is_authenticated:
            self.notify("Please log in to checkout.", severity="warning")
            if not await self.app.request_login():
                return

        # the merged cart may differ from what was shown before login
        if not await self.app.state.cart.get_cart():
            return
        if await self.app.push_screen_wait(CheckoutModal()):
            self.app.open_mode("account")
