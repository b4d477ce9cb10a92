from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

from db.models import CartLine, Product
from utils.pure import generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    Product detail plus quantity picker.
    Returns True if the cart changed, False if not.
    """

    order_qty = reactive(1)

    def __init__(self, product: Product) -> None:
        super().__init__()

        self._prod = product
        self._existing_line: CartLine = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(
                        value="1",
                        id="input-order-qty",
                        type="integer",
                        validators=[Number(minimum=1)],
                    )
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        prod = self._prod
        table_rows = [
            ["Name", prod.name],
            ["Category", prod.category.capitalize()],
            ["Price", self.app.price(prod.price)],
            ["Image", prod.image],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        await self.query_one(MarkdownViewer).document.update(
            f"### {prod.name}\n\n" + md_table_str
        )

        for line in await self.app.state.cart.get_cart():
            if line.pid == prod.pid:
                self._existing_line = line
                break
        if self._existing_line:
            self.order_qty = self._existing_line.qty
            self.query_one("#btn-addcart").label = "Update Cart"

        self.query_one("#input-order-qty").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def watch_order_qty(self, qty: int):
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        input_order_qty = self.query_one("#input-order-qty", Input)
        if input_order_qty.value != str(qty):
            input_order_qty.value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        if self.order_qty > 1:
            self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        cart = self.app.state.cart
        if not self._existing_line:
            await cart.add_item(self._prod)
            if self.order_qty > 1:
                await cart.update_quantity(self._prod.pid, self.order_qty)
            self.app.notify(f"{self._prod.name} added to cart!")
        else:
            await cart.update_quantity(self._prod.pid, self.order_qty)
            self.app.notify("Updated cart item quantity.")

        self.dismiss(True)
