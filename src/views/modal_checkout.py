from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer, Select

import db.crud
from db.errors import StoreError
from db.models import DELIVERY_METHODS, DeliveryDetails
from utils.pure import generate_markdown_table, line_total
from utils.validators import validate_delivery
from views.modal_dialog import ConfirmDialogModal


class CheckoutModal(ModalScreen[bool]):
    """
    Order summary plus delivery details.
    Return True when an order was placed, False otherwise.
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Full Name")
            yield Input(placeholder="Jane Doe", id="input-name")
            yield Label("Phone")
            yield Input(placeholder="98XXXXXXXX", id="input-phone", type="integer")
            yield Label("Delivery Address")
            yield Input(placeholder="Street, City", id="input-address")
            yield Label("Delivery Method")
            yield Select(
                [(m, m) for m in DELIVERY_METHODS],
                value=DELIVERY_METHODS[0],
                allow_blank=False,
                id="select-delivery",
            )
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        lines = await self.app.state.cart.get_cart()
        headers = ["Product", "Unit Price", "Quantity", "Subtotal"]
        rows = [
            [l.name, self.app.price(l.price), l.qty, self.app.price(l.subtotal)]
            for l in lines
        ]
        md = generate_markdown_table(headers, rows, ["l", "c", "c", "c"])
        md += f"\n\n**Total:** {self.app.price(line_total(lines))}"
        await self.query_one(MarkdownViewer).document.update("### Order Summary\n\n" + md)

        user = self.app.state.user
        if user:
            self.query_one("#input-name", Input).value = user.name
        self.query_one("#input-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        details = DeliveryDetails(
            name=self.query_one("#input-name", Input).value.strip(),
            phone=self.query_one("#input-phone", Input).value.strip(),
            address=self.query_one("#input-address", Input).value.strip(),
            delivery=self.query_one("#select-delivery", Select).value,
        )

        errors = validate_delivery(details.name, details.phone, details.address)
        for field in ("name", "phone", "address"):
            self.query_one(f"#input-{field}", Input).set_class(field in errors, "-invalid")
        if errors:
            first = next(iter(errors))
            self.query_one(f"#input-{first}", Input).focus()
            self.notify(errors[first], severity="error")
            return

        if not await self.app.push_screen_wait(
            ConfirmDialogModal("Place order? Payment is cash on delivery.", "positive")
        ):
            return

        try:
            order = await db.crud.place_order(
                self.app.state.cart, self.app.state.user, details
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        except StoreError:
            self.notify("Failed to place order. Please try again.", severity="error")
            return

        self.notify(f"Order placed successfully! Order ID: {order.ono}")
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
