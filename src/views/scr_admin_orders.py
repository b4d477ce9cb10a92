from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select

import db.crud
from db.errors import StoreError
from db.models import ORDER_STATUSES, Order
from views.base_screen import BaseScreen
from views.scr_account import render_order_markdown


class AdminOrdersScreen(BaseScreen):
    """
    Every order in the store, newest first. Admins switch orders between pending and delivered.
    """

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[str, Order] = {}
        self._selected: Optional[str] = None
        self._status_filter: Optional[str] = None
        self._latest: List[Order] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filter"):
            yield Label("Status", id="label-status")
            yield Select(
                [(s.capitalize(), s) for s in ORDER_STATUSES],
                prompt="All orders",
                id="select-status-filter",
            )
        with Vertical():
            yield DataTable(id="table-all-orders")
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
        with Horizontal(id="hort-controls"):
            yield Button("Toggle Status", id="btn-toggle-status", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order ID", "Date", "Customer", "Email", "Total", "Status")

    @on(ScreenResume)
    def handle_resume(self) -> None:
        self.follow_orders()

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        self.workers.cancel_group(self, "admin-orders-watch")

    @work(exclusive=True, group="admin-orders-watch")
    async def follow_orders(self) -> None:
        sub = await db.crud.watch_all_orders()
        try:
            async for orders in sub:
                self._latest = orders
                self._render_orders()
        finally:
            sub.close()

    @on(Select.Changed, "#select-status-filter")
    def handle_filter(self, event: Select.Changed) -> None:
        self._status_filter = event.value if isinstance(event.value, str) else None
        self._render_orders()

    def _render_orders(self) -> None:
        orders = [
            o for o in self._latest if not self._status_filter or o.status == self._status_filter
        ]
        self._orders = {o.ono: o for o in orders}
        table = self.query_one(DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.ono,
                f"{o.odate:%Y-%m-%d %H:%M}",
                o.name,
                o.user_email,
                self.app.price(o.total),
                o.status.capitalize(),
                key=o.ono,
            )
        if self._selected not in self._orders:
            self._selected = orders[0].ono if orders else None
        self._render_detail()

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self._selected = event.row_key.value
            self._render_detail()

    def _render_detail(self) -> None:
        order = self._orders.get(self._selected)
        md = render_order_markdown(order, self.app.price)
        self.query_one("#md-order-detail", MarkdownViewer).document.update(md)
        button = self.query_one("#btn-toggle-status", Button)
        button.disabled = order is None
        if order is not None:
            button.label = (
                "Mark as Pending" if order.status == "delivered" else "Mark as Delivered"
            )

    @on(Button.Pressed, "#btn-toggle-status")
    @work(exclusive=True)
    async def handle_toggle_status(self) -> None:
        order = self._orders.get(self._selected)
        if order is None:
            return
        if not self.admin_ok():
            return

        new_status = "pending" if order.status == "delivered" else "delivered"
        try:
            updated = await db.crud.update_order_status(order.ono, new_status)
        except StoreError:
            updated = False
        if updated:
            self.notify(f"Order {order.ono} marked as {new_status}.")
        else:
            self.notify("Failed to update order status.", severity="error")
