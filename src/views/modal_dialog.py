from typing import Dict, Literal, Tuple

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.events import Resize
from textual.screen import ModalScreen
from textual.widgets import Button, Label

from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]
ButtonVariant = Literal["primary", "default", "success", "warning", "error"]

# tone -> (variant of the confirm button, variant of the cancel button)
TONE_VARIANTS: Dict[str, Tuple[ButtonVariant, ButtonVariant]] = {
    "default": ("primary", "default"),
    "positive": ("success", "default"),
    "warning": ("warning", "default"),
    "error": ("error", "primary"),
}


class DialogModal(ModalScreen[bool]):
    """
    Message or question shown over the storefront.

    Dismisses with True when the confirm button is pressed, False for cancel or escape.
    A dialog without `cancel_text` is a plain notice with a single button.
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(
        self,
        caption: str,
        confirm_text: str = "OK",
        cancel_text: str = "",
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.confirm_text = confirm_text
        self.cancel_text = cancel_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        confirm_variant, cancel_variant = TONE_VARIANTS.get(self.tone, TONE_VARIANTS["default"])
        with Container(id="div-dialog"):
            yield Label(self.caption, id="label-dialog-caption")
            with Horizontal(id="hort-dialog-buttons"):
                if self.cancel_text:
                    yield Button(self.cancel_text, variant=cancel_variant, id="btn-cancel")
                yield Button(self.confirm_text, variant=confirm_variant, id="btn-confirm")

    def on_mount(self) -> None:
        # deleting products or emptying the cart starts on "No"
        focus_cancel = self.cancel_text and self.tone == "error"
        self.query_one("#btn-cancel" if focus_cancel else "#btn-confirm").focus()

    def confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-confirm")
    def handle_confirm(self) -> None:
        self.confirm()

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.action_cancel()


class SimpleDialogModal(DialogModal):
    def __init__(self, caption: str, tone: Tone = "default"):
        super().__init__(caption, tone=tone)


class ConfirmDialogModal(DialogModal):
    def __init__(self, caption: str, tone: Tone = "warning"):
        super().__init__(caption, "Yes", "No", tone)


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__("Are you sure you want to quit GreenGo?", "Yes", "No", "error")

    def confirm(self) -> None:
        self.app.post_message(QuitRequestedMessage())
        self.dismiss(True)


class ResizeScreenPromptModal(ModalScreen[None]):
    """Covers the screen while the terminal is smaller than the layout needs."""

    def __init__(self, min_width: int, min_height: int) -> None:
        super().__init__()
        self.min_width = min_width
        self.min_height = min_height

    def compose(self) -> ComposeResult:
        with Container(id="div-resize"):
            yield Label(
                f"Terminal too small, GreenGo needs at least "
                f"{self.min_width}x{self.min_height}",
                id="prompt",
            )

    def on_resize(self, event: Resize) -> None:
        if event.size.width >= self.min_width and event.size.height >= self.min_height:
            self.dismiss()
