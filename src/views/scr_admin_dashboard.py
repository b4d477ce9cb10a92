from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import Button, MarkdownViewer

import db.crud as crud
from utils.pure import generate_markdown_table
from views.base_screen import BaseScreen


class AdminDashboardScreen(BaseScreen):
    """
    Store overview: order counts, delivered revenue, catalog size, ticket load, recent orders.
    """

    RECENT_ORDERS = 5

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-dashboard", show_table_of_contents=False)
            yield Button("Refresh", id="btn-refresh", variant="primary")

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        if not self.admin_ok():
            return

        stats = await crud.dashboard_stats()
        tickets = await crud.count_tickets_by_status()
        recent = (await crud.list_all_orders())[: self.RECENT_ORDERS]
        price = self.app.price

        summary = generate_markdown_table(
            ["Metric", "Value"],
            [
                ["Total Orders", stats["total_orders"]],
                ["Pending Orders", stats["pending_orders"]],
                ["Delivered Orders", stats["delivered_orders"]],
                ["Revenue (delivered)", price(stats["total_revenue"])],
                ["Products", stats["total_products"]],
            ],
            ["l", "r"],
        )
        ticket_table = generate_markdown_table(
            ["Status", "Tickets"], [[s, n] for s, n in tickets.items()], ["l", "r"]
        )
        recent_table = generate_markdown_table(
            ["Order", "Customer", "Total", "Status"],
            [[o.ono, o.name, price(o.total), o.status.capitalize()] for o in recent],
            ["l", "l", "r", "l"],
        ) or "_No orders yet._"

        md = (
            "### Store Overview\n\n"
            + summary
            + "\n\n### Support Tickets\n\n"
            + ticket_table
            + "\n\n### Recent Orders\n\n"
            + recent_table
        )
        await self.query_one("#md-dashboard", MarkdownViewer).document.update(md)
