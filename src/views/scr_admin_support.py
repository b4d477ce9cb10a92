from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer, Select

import db.crud
from db.errors import StoreError, TicketClosedError
from db.models import TICKET_STATUSES, SupportTicket
from utils.pure import short_text
from views.base_screen import BaseScreen
from views.scr_support import render_ticket_markdown


class AdminSupportScreen(BaseScreen):
    """
    All support tickets. Admins filter by status, change status, and reply.
    """

    def __init__(self) -> None:
        super().__init__()
        self._latest: List[SupportTicket] = []
        self._tickets: Dict[str, SupportTicket] = {}
        self._selected: Optional[str] = None
        self._status_filter: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filter"):
            yield Label("Status", id="label-status")
            yield Select(
                [(s, s) for s in TICKET_STATUSES],
                prompt="All tickets",
                id="select-status-filter",
            )
            yield Label("", id="label-ticket-counts")
        with Vertical():
            yield DataTable(id="table-all-tickets")
            yield MarkdownViewer(id="md-ticket", show_table_of_contents=False)
        with Horizontal(id="hort-controls"):
            yield Select(
                [(s, s) for s in TICKET_STATUSES],
                allow_blank=False,
                value=TICKET_STATUSES[0],
                id="select-ticket-status",
            )
            yield Button("Set Status", id="btn-set-status")
            yield Input(placeholder="Reply to customer...", id="input-reply")
            yield Button("Send Reply", id="btn-reply", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Ticket", "Created", "Customer", "Order", "Status", "Message")

    @on(ScreenResume)
    def handle_resume(self) -> None:
        self.follow_tickets()

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        self.workers.cancel_group(self, "admin-support-watch")

    @work(exclusive=True, group="admin-support-watch")
    async def follow_tickets(self) -> None:
        sub = await db.crud.watch_all_tickets()
        try:
            async for tickets in sub:
                self._latest = tickets
                self._render_tickets()
        finally:
            sub.close()

    @on(Select.Changed, "#select-status-filter")
    def handle_filter(self, event: Select.Changed) -> None:
        self._status_filter = event.value if isinstance(event.value, str) else None
        self._render_tickets()

    def _render_tickets(self) -> None:
        counts = {s: 0 for s in TICKET_STATUSES}
        for t in self._latest:
            counts[t.status] = counts.get(t.status, 0) + 1
        self.query_one("#label-ticket-counts", Label).update(
            "  ".join(f"{s}: {n}" for s, n in counts.items())
        )

        tickets = [
            t for t in self._latest if not self._status_filter or t.status == self._status_filter
        ]
        self._tickets = {t.tid: t for t in tickets}
        table = self.query_one(DataTable)
        table.clear()
        for t in tickets:
            created = f"{t.created_at:%Y-%m-%d}" if t.created_at else "-"
            table.add_row(
                t.tid[:8],
                created,
                t.name,
                t.order_ref or "-",
                t.status,
                short_text(t.message, 30),
                key=t.tid,
            )
        if self._selected not in self._tickets:
            self._selected = tickets[0].tid if tickets else None
        self._render_detail()

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self._selected = event.row_key.value
            self._render_detail()

    def _render_detail(self) -> None:
        ticket = self._tickets.get(self._selected)
        user = self.app.state.user
        md = render_ticket_markdown(ticket, user.uid if user else "")
        self.query_one("#md-ticket", MarkdownViewer).document.update(md)
        self.query_one("#btn-set-status", Button).disabled = ticket is None
        self.query_one("#btn-reply", Button).disabled = not (ticket and ticket.accepts_replies)
        if ticket is not None:
            self.query_one("#select-ticket-status", Select).value = ticket.status

    @on(Button.Pressed, "#btn-set-status")
    @work(exclusive=True)
    async def handle_set_status(self) -> None:
        if not self._selected or not self.admin_ok():
            return
        status = self.query_one("#select-ticket-status", Select).value
        try:
            updated = await db.crud.set_ticket_status(self._selected, status)
        except StoreError:
            updated = False
        if updated:
            self.notify(f"Ticket status set to {status}.")
        else:
            self.notify("Failed to update ticket status.", severity="error")

    @on(Button.Pressed, "#btn-reply")
    @work(exclusive=True)
    async def handle_reply(self) -> None:
        if not self._selected or not self.admin_ok():
            return
        reply_input = self.query_one("#input-reply", Input)
        if not reply_input.value.strip():
            self.notify("Reply cannot be empty.", severity="warning")
            return
        try:
            sent = await db.crud.append_reply(
                self._selected, self.app.state.user.uid, reply_input.value
            )
        except TicketClosedError as e:
            self.notify(str(e), severity="error")
            return
        except StoreError:
            sent = False
        if sent:
            reply_input.value = ""
            self.notify("Reply sent!")
        else:
            self.notify("Failed to send reply.", severity="error")
