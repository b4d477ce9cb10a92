from typing import Dict

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

from db.models import AuthResult
from utils.validators import validate_login, validate_registration
from views.base_screen import BaseScreen


class LoginScreen(BaseScreen):
    """
    Login and sign up.
    Dismisses with True once a user is signed in, False when continuing as guest.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Continue as Guest", id="btn-guest")
                        yield Button("Sign in with Google", id="btn-federated")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Name")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-reg-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-reg-pwd"
                    )
                    yield Label("Confirm Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-reg-confirm"
                    )
                    with Horizontal(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one("#input-reg-confirm"):
            self.handle_registration_submit()
        if event.key == "escape":
            self.dismiss(False)

    def _mark_invalid(self, errors: Dict[str, str], inputs: Dict[str, str]) -> bool:
        """Flag the inputs named in `errors`. Returns True when there were errors."""
        for field, input_id in inputs.items():
            self.query_one(input_id, Input).set_class(field in errors, "-invalid")
        if errors:
            first = next(iter(errors))
            self.query_one(inputs[first], Input).focus()
            self.notify(errors[first], severity="error")
        return bool(errors)

    def _finish(self, result: AuthResult) -> None:
        if result.success:
            self.notify(f"{result.message} Hello {result.user.name}!")
            self.dismiss(True)
        else:
            self.notify(result.message, severity="error")

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        errors = validate_login(email, pwd)
        if self._mark_invalid(
            errors, {"email": "#input-login-email", "password": "#input-login-pwd"}
        ):
            return

        result = await self.app.auth.login_with_credentials(email, pwd)
        if not result.success:
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
        self._finish(result)

    @on(Button.Pressed, "#btn-federated")
    @work(exclusive=True)
    async def handle_federated_login(self) -> None:
        self._finish(await self.app.auth.login_with_federated_provider())

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value
        confirm = self.query_one("#input-reg-confirm", Input).value

        errors = validate_registration(name, email, pwd, confirm)
        if self._mark_invalid(
            errors,
            {
                "name": "#input-reg-name",
                "email": "#input-reg-email",
                "password": "#input-reg-pwd",
                "confirm_password": "#input-reg-confirm",
            },
        ):
            return

        # registration signs the new account in
        self._finish(await self.app.auth.register_with_credentials(email, pwd, name))

    @on(Button.Pressed, "#btn-guest")
    def handle_continue_as_guest(self) -> None:
        self.dismiss(False)
