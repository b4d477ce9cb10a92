from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer, TabbedContent, TabPane

import db.crud
from db.models import Order, SupportTicket
from utils.messages import SessionChangedMessage
from utils.pure import generate_markdown_table, short_text
from utils.validators import validate_profile
from views.base_screen import BaseScreen


def render_order_markdown(order: Optional[Order], price) -> str:
    """Markdown detail of one order, `price` formats amounts."""
    if not order:
        return "### Select an order to view its details."
    header = (
        f"### Order {order.ono}\n"
        f"Date: {order.odate:%Y-%m-%d %H:%M}  \n"
        f"Status: **{order.status.capitalize()}**  \n"
        f"Deliver to: {order.name}, {order.phone}, {order.address}  \n"
        f"Payment: {order.delivery}\n\n"
    )
    rows = [
        [i.name, i.category, i.qty, price(i.price), price(i.subtotal)] for i in order.items
    ]
    table = generate_markdown_table(
        ["Product", "Category", "Qty", "Unit Price", "Subtotal"], rows, ["l", "l", "r", "r", "r"]
    )
    return header + table + f"\n\n**Total:** {price(order.total)}"


class AccountScreen(BaseScreen):
    """
    Signed in users edit their profile and browse their orders and tickets.

    Orders and tickets follow store subscriptions while the screen is shown,
    so status changes made from the admin console show up live.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Order Detail", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[str, Order] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-account"):
            with TabPane("Profile", id="tab-profile"):
                with Vertical(id="div-profile"):
                    yield Label("Name")
                    yield Input(id="input-profile-name")
                    yield Label("Email")
                    yield Input(id="input-profile-email")
                    with Horizontal(id="div-profile-btns"):
                        yield Button("Save", id="btn-save-profile", variant="primary")
            with TabPane("Orders", id="tab-orders"):
                with Vertical():
                    yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
                    yield DataTable(id="table-orders")
            with TabPane("Support Tickets", id="tab-tickets"):
                yield DataTable(id="table-tickets")

    def on_mount(self) -> None:
        orders = self.query_one("#table-orders", DataTable)
        orders.cursor_type = "row"
        orders.zebra_stripes = True
        orders.add_columns("Order ID", "Date", "Items", "Total", "Status")

        tickets = self.query_one("#table-tickets", DataTable)
        tickets.cursor_type = "row"
        tickets.zebra_stripes = True
        tickets.add_columns("Ticket", "Created", "Status", "Replies", "Message")

    def action_noop(self) -> None:
        pass

    @on(ScreenResume)
    @on(SessionChangedMessage)
    def handle_refresh(self) -> None:
        user = self.app.state.user
        if user is None:
            return
        self.query_one("#input-profile-name", Input).value = user.name
        self.query_one("#input-profile-email", Input).value = user.email
        self.follow_orders(user.email)
        self.follow_tickets(user.uid)

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        self.workers.cancel_group(self, "account-watch-orders")
        self.workers.cancel_group(self, "account-watch-tickets")

    @work(exclusive=True, group="account-watch-orders")
    async def follow_orders(self, email: str) -> None:
        sub = await db.crud.watch_user_orders(email)
        try:
            async for orders in sub:
                self._render_orders(orders)
        finally:
            sub.close()

    @work(exclusive=True, group="account-watch-tickets")
    async def follow_tickets(self, uid: str) -> None:
        sub = await db.crud.watch_user_tickets(uid)
        try:
            async for tickets in sub:
                self._render_tickets(tickets)
        finally:
            sub.close()

    def _render_orders(self, orders: List[Order]) -> None:
        self._orders = {o.ono: o for o in orders}
        table = self.query_one("#table-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.ono,
                f"{o.odate:%Y-%m-%d}",
                sum(i.qty for i in o.items),
                self.app.price(o.total),
                o.status.capitalize(),
                key=o.ono,
            )
        if not orders:
            self.query_one("#md-order-detail", MarkdownViewer).document.update(
                "### No orders yet. Start shopping!"
            )
        else:
            self._render_detail(orders[0].ono)

    def _render_tickets(self, tickets: List[SupportTicket]) -> None:
        table = self.query_one("#table-tickets", DataTable)
        table.clear()
        for t in tickets:
            created = f"{t.created_at:%Y-%m-%d}" if t.created_at else "-"
            table.add_row(t.tid[:8], created, t.status, len(t.replies), short_text(t.message))

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self._render_detail(event.row_key.value)

    def _render_detail(self, ono: str) -> None:
        md = render_order_markdown(self._orders.get(ono), self.app.price)
        self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-save-profile")
    @work(exclusive=True)
    async def handle_save_profile(self) -> None:
        name = self.query_one("#input-profile-name", Input).value.strip()
        email = self.query_one("#input-profile-email", Input).value.strip()

        errors = validate_profile(name, email)
        for field in ("name", "email"):
            self.query_one(f"#input-profile-{field}", Input).set_class(
                field in errors, "-invalid"
            )
        if errors:
            self.notify(next(iter(errors.values())), severity="error")
            return

        result = await self.app.auth.update_profile(name, email)
        if result.success:
            self.notify(result.message)
            self.post_message(SessionChangedMessage())
        else:
            self.notify(result.message, severity="error")
