from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.widgets import (
    Button,
    DataTable,
    Input,
    Label,
    MarkdownViewer,
    TabbedContent,
    TabPane,
    TextArea,
)

import db.crud
from db.errors import StoreError, TicketClosedError
from db.models import SupportTicket
from utils.pure import short_text
from utils.validators import validate_ticket
from views.base_screen import BaseScreen


def render_ticket_markdown(ticket: Optional[SupportTicket], viewer_id: str = "") -> str:
    """Markdown thread of a ticket. Replies by `viewer_id` are labelled "You"."""
    if not ticket:
        return "### Select a ticket to view the conversation."
    lines = [
        f"### Ticket {ticket.tid[:8]} ({ticket.status})",
        f"From: {ticket.name} <{ticket.email}>  ",
    ]
    if ticket.order_ref:
        lines.append(f"Order: {ticket.order_ref}  ")
    if ticket.created_at:
        lines.append(f"Opened: {ticket.created_at:%Y-%m-%d %H:%M}")
    lines += ["", f"> {ticket.message}", ""]
    for reply in ticket.replies:
        if reply.author_id == viewer_id:
            author = "You"
        elif reply.author_id == ticket.user_id:
            author = ticket.name
        else:
            author = "Support"
        lines.append(f"**{author}** ({reply.ts:%Y-%m-%d %H:%M}): {reply.message}  ")
    if not ticket.accepts_replies:
        lines += ["", "_This ticket is resolved and closed for replies._"]
    return "\n".join(lines)


class SupportScreen(BaseScreen):
    """
    Customers open support tickets and follow up on them.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tickets: Dict[str, SupportTicket] = {}
        self._selected: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-support"):
            with TabPane("My Tickets", id="tab-my-tickets"):
                with Vertical():
                    yield DataTable(id="table-tickets")
                    yield MarkdownViewer(id="md-ticket", show_table_of_contents=False)
                    with Horizontal(id="hort-reply"):
                        yield Input(placeholder="Write a reply...", id="input-reply")
                        yield Button("Send", id="btn-reply", variant="primary")
            with TabPane("New Ticket", id="tab-new-ticket"):
                with Vertical(id="div-new-ticket"):
                    yield Label("Name")
                    yield Input(id="input-ticket-name")
                    yield Label("Email")
                    yield Input(id="input-ticket-email")
                    yield Label("Order ID (optional)")
                    yield Input(placeholder="ORD-...", id="input-ticket-order")
                    yield Label("Message")
                    yield TextArea(id="textarea-ticket-message")
                    with Horizontal(id="div-ticket-btns"):
                        yield Button("Submit", id="btn-submit-ticket", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one("#table-tickets", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Ticket", "Created", "Status", "Replies", "Message")

    @on(ScreenResume)
    def handle_resume(self) -> None:
        user = self.app.state.user
        if user is None:
            return
        name_input = self.query_one("#input-ticket-name", Input)
        email_input = self.query_one("#input-ticket-email", Input)
        if not name_input.value:
            name_input.value = user.name
        if not email_input.value:
            email_input.value = user.email
        self.follow_tickets(user.uid)

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        self.workers.cancel_group(self, "support-watch")

    @work(exclusive=True, group="support-watch")
    async def follow_tickets(self, uid: str) -> None:
        sub = await db.crud.watch_user_tickets(uid)
        try:
            async for tickets in sub:
                self._render_tickets(tickets)
        finally:
            sub.close()

    def _render_tickets(self, tickets: List[SupportTicket]) -> None:
        self._tickets = {t.tid: t for t in tickets}
        table = self.query_one("#table-tickets", DataTable)
        table.clear()
        for t in tickets:
            created = f"{t.created_at:%Y-%m-%d}" if t.created_at else "-"
            table.add_row(
                t.tid[:8], created, t.status, len(t.replies), short_text(t.message), key=t.tid
            )
        if self._selected not in self._tickets:
            self._selected = tickets[0].tid if tickets else None
        self._render_detail()

    @on(DataTable.RowHighlighted, "#table-tickets")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self._selected = event.row_key.value
            self._render_detail()

    def _render_detail(self) -> None:
        ticket = self._tickets.get(self._selected)
        user = self.app.state.user
        md = render_ticket_markdown(ticket, user.uid if user else "")
        self.query_one("#md-ticket", MarkdownViewer).document.update(md)
        self.query_one("#btn-reply", Button).disabled = not (ticket and ticket.accepts_replies)

    @on(Button.Pressed, "#btn-reply")
    @work(exclusive=True)
    async def handle_reply(self) -> None:
        reply_input = self.query_one("#input-reply", Input)
        if not self._selected or not reply_input.value.strip():
            self.notify("Reply cannot be empty.", severity="warning")
            return
        try:
            sent = await db.crud.append_reply(
                self._selected, self.app.state.user.uid, reply_input.value
            )
        except TicketClosedError:
            self.notify("This ticket is resolved and closed for replies.", severity="error")
            return
        except StoreError:
            sent = False
        if sent:
            reply_input.value = ""
            self.notify("Reply sent!")
        else:
            self.notify("Failed to send reply.", severity="error")

    @on(Button.Pressed, "#btn-submit-ticket")
    @work(exclusive=True)
    async def handle_submit_ticket(self) -> None:
        name = self.query_one("#input-ticket-name", Input).value.strip()
        email = self.query_one("#input-ticket-email", Input).value.strip()
        order_ref = self.query_one("#input-ticket-order", Input).value.strip()
        message_area = self.query_one("#textarea-ticket-message", TextArea)

        errors = validate_ticket(name, email, message_area.text)
        self.query_one("#input-ticket-name", Input).set_class("name" in errors, "-invalid")
        self.query_one("#input-ticket-email", Input).set_class("email" in errors, "-invalid")
        message_area.set_class("message" in errors, "-invalid")
        if errors:
            self.notify(next(iter(errors.values())), severity="error")
            return

        try:
            ticket = await db.crud.create_ticket(
                self.app.state.user, name, email, message_area.text, order_ref or None
            )
        except StoreError:
            self.notify("Failed to submit ticket. Please try again.", severity="error")
            return

        message_area.text = ""
        self.query_one("#input-ticket-order", Input).value = ""
        if ticket:
            self._selected = ticket.tid
        self.query_one(TabbedContent).active = "tab-my-tickets"
        self.notify("Your ticket has been submitted. We'll get back to you soon!")
