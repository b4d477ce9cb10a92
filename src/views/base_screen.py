from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Resize, ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from db.errors import PermissionDenied
from utils.messages import CartChangedMessage, SessionChangedMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import ConfirmDialogModal, QuitDialogModal, ResizeScreenPromptModal


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Label("Cart: 0 items", id="label-cart-count")
        yield Button("Log in", id="btn-auth", variant="primary")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        await self.reload()

    async def reload(self):
        """Re-render user info, auth button and menu for the current session."""
        state = self.app.state
        if state.user:
            rows = [
                ["Name", state.user.name],
                ["Email", state.user.email],
                ["Role", "Admin" if state.is_admin else "Customer"],
            ]
        else:
            rows = [["Name", "Guest"], ["Role", "Guest"]]
        md_table_str = generate_markdown_table(None, rows, ["l", "l"])
        await self.query_one("#md-userinfo", Markdown).update(md_table_str)

        btn = self.query_one("#btn-auth", Button)
        btn.label = "Log out" if state.user else "Log in"
        btn.variant = "error" if state.user else "primary"

        modes = dict(self.app.CUSTOMER_MODES)
        if state.is_admin:
            modes.update(self.app.ADMIN_MODES)
        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [ListItem(Label(v), id="list-menu-item-" + k) for k, v in modes.items()]
        )
        self.highlight_item(self.init_mode)
        self.set_cart_count(await state.cart.count())

    def set_cart_count(self, count: int) -> None:
        noun = "item" if count == 1 else "items"
        self.query_one("#label-cart-count", Label).update(f"Cart: {count} {noun}")

    def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        self.app.open_mode(selected_mode)

    @on(Button.Pressed, "#btn-auth")
    @work(exclusive=True)
    async def handle_auth_button(self):
        if not self.app.state.user:
            self.app.login_flow()
            return
        if not await self.app.push_screen_wait(
            ConfirmDialogModal("Are you sure you want to log out?")
        ):
            return
        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    MIN_WIDTH = 80
    MIN_HEIGHT = 24

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """

        # auto gen subtitles from the mode tables
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v):
                if k in self.app.ADMIN_MODES:
                    self.sub_title = self.app.ADMIN_MODES[k]
                elif k in self.app.CUSTOMER_MODES:
                    self.sub_title = self.app.CUSTOMER_MODES[k]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def on_resize(self, event: Resize) -> None:
        if isinstance(self.app.screen, ResizeScreenPromptModal):
            return
        if event.size.width < self.MIN_WIDTH or event.size.height < self.MIN_HEIGHT:
            self.app.push_screen(ResizeScreenPromptModal(self.MIN_WIDTH, self.MIN_HEIGHT))

    def admin_ok(self) -> bool:
        """Check the admin role before an admin action, notifying when it is missing."""
        try:
            self.app.state.require_admin()
        except PermissionDenied as e:
            self.notify(str(e), severity="error")
            return False
        return True

    @on(SessionChangedMessage)
    @on(ScreenResume)
    async def reload_sidebar(self):
        if self._show_sidebar and self.query(Sidebar):
            await self.query_one(Sidebar).reload()

    @on(CartChangedMessage)
    def update_cart_badge(self, message: CartChangedMessage):
        if self._show_sidebar and self.query(Sidebar):
            self.query_one(Sidebar).set_cart_count(message.count)

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
