import unittest

import helpers  # noqa: F401

from textual.app import App

from views.modal_dialog import ConfirmDialogModal, SimpleDialogModal


class DialogHost(App):
    def __init__(self, dialog):
        super().__init__()
        self.dialog = dialog
        self.answers = []

    def on_mount(self) -> None:
        self.push_screen(self.dialog, self.answers.append)


class TestDialogs(unittest.IsolatedAsyncioTestCase):
    async def test_confirm_answers_yes(self):
        app = DialogHost(ConfirmDialogModal("Place this order?"))
        async with app.run_test() as pilot:
            await pilot.pause()
            self.assertEqual(app.focused.id, "btn-confirm")
            await pilot.press("enter")
            await pilot.pause()
        self.assertEqual(app.answers, [True])

    async def test_destructive_confirm_starts_on_no(self):
        app = DialogHost(ConfirmDialogModal("Delete Carrot?", tone="error"))
        async with app.run_test() as pilot:
            await pilot.pause()
            self.assertEqual(app.focused.id, "btn-cancel")
            await pilot.press("enter")
            await pilot.pause()
        self.assertEqual(app.answers, [False])

    async def test_escape_cancels(self):
        app = DialogHost(ConfirmDialogModal("Clear the cart?"))
        async with app.run_test() as pilot:
            await pilot.pause()
            await pilot.press("escape")
            await pilot.pause()
        self.assertEqual(app.answers, [False])

    async def test_notice_has_single_button(self):
        app = DialogHost(SimpleDialogModal("Order placed!", tone="positive"))
        async with app.run_test() as pilot:
            await pilot.pause()
            self.assertEqual(len(app.screen.query("Button")), 1)
            await pilot.press("enter")
            await pilot.pause()
        self.assertEqual(app.answers, [True])


if __name__ == "__main__":
    unittest.main()
