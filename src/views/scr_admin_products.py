from __future__ import annotations

from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, MarkdownViewer

from db.crud import add_product, delete_product, list_products, update_product
from db.errors import ProductNotDeletableError, StoreError
from db.models import Product
from utils.messages import ProductsChangedMessage
from utils.pure import generate_markdown_table, is_seed_product_id
from views.base_screen import BaseScreen
from views.modal_dialog import ConfirmDialogModal, SimpleDialogModal
from views.modal_product_form import ProductFormModal


class AdminProductsScreen(BaseScreen):
    """
    Admins add, edit and delete products.
    Products shipped with the catalog can be edited but never deleted.
    """

    def __init__(self) -> None:
        super().__init__()
        self._products: Dict[str, Product] = {}
        self._current_pid: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Filter products by name...")
            yield DataTable(id="table-admin-products")
            yield MarkdownViewer(id="md-prod", show_table_of_contents=False)
            with Horizontal(id="hort-controls"):
                yield Button("Add Product", id="btn-add", variant="success")
                yield Button("Edit", id="btn-edit", variant="primary")
                yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price", "Origin")

    @on(ScreenResume)
    @on(ProductsChangedMessage)
    def handle_reload(self) -> None:
        self.load_products(self.query_one("#input-search", Input).value)

    @on(Input.Changed, "#input-search")
    def handle_search(self, message: Input.Changed) -> None:
        self.load_products(message.value)

    @work(exclusive=True, group="admin-products")
    async def load_products(self, query: str = "") -> None:
        products: List[Product] = await list_products()
        query = query.strip().lower()
        if query:
            products = [p for p in products if query in p.name.lower()]
        self._products = {p.pid: p for p in products}

        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p.pid,
                p.name,
                p.category.capitalize(),
                self.app.price(p.price),
                "Default" if is_seed_product_id(p.pid) else "Added",
                key=p.pid,
            )
        if self._current_pid not in self._products:
            self._current_pid = products[0].pid if products else None
        self.render_product()

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None:
            self._current_pid = event.row_key.value
            self.render_product()

    def render_product(self) -> None:
        prod = self._products.get(self._current_pid)
        viewer = self.query_one("#md-prod", MarkdownViewer)
        self.query_one("#btn-edit", Button).disabled = prod is None
        self.query_one("#btn-delete", Button).disabled = prod is None or is_seed_product_id(
            prod.pid
        )
        if prod is None:
            viewer.document.update("### No product selected.")
            return
        rows = [
            ["ID", prod.pid],
            ["Name", prod.name],
            ["Category", prod.category],
            ["Price", self.app.price(prod.price)],
            ["Image", prod.image],
        ]
        note = (
            "\n\n_Default product: can be edited, not deleted._"
            if is_seed_product_id(prod.pid)
            else ""
        )
        viewer.document.update(
            f"### Product Detail: {prod.name}\n\n"
            + generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
            + note
        )

    @on(Button.Pressed, "#btn-add")
    @work(exclusive=True, group="admin-products-edit")
    async def handle_add(self) -> None:
        if not self.admin_ok():
            return
        fields = await self.app.push_screen_wait(ProductFormModal())
        if not fields:
            return
        try:
            product = await add_product(**fields)
        except (ValueError, StoreError) as e:
            await self.app.push_screen_wait(SimpleDialogModal(f"Failed to add product: {e}", "error"))
            return
        self._current_pid = product.pid
        self.notify("Product added successfully!")
        self.post_message(ProductsChangedMessage())

    @on(Button.Pressed, "#btn-edit")
    @work(exclusive=True, group="admin-products-edit")
    async def handle_edit(self) -> None:
        prod = self._products.get(self._current_pid)
        if prod is None or not self.admin_ok():
            return
        fields = await self.app.push_screen_wait(ProductFormModal(prod))
        if not fields:
            return
        try:
            updated = await update_product(prod.pid, **fields)
        except (ValueError, StoreError) as e:
            await self.app.push_screen_wait(SimpleDialogModal(f"Failed to update product: {e}", "error"))
            return
        if updated:
            self.notify("Product updated successfully!")
        else:
            self.notify("Product no longer exists.", severity="warning")
        self.post_message(ProductsChangedMessage())

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True, group="admin-products-edit")
    async def handle_delete(self) -> None:
        prod = self._products.get(self._current_pid)
        if prod is None or not self.admin_ok():
            return
        if not await self.app.push_screen_wait(
            ConfirmDialogModal(f"Are you sure you want to delete {prod.name}?", "error")
        ):
            return
        try:
            deleted = await delete_product(prod.pid)
        except ProductNotDeletableError as e:
            await self.app.push_screen_wait(SimpleDialogModal(str(e), "warning"))
            return
        except StoreError as e:
            await self.app.push_screen_wait(SimpleDialogModal(f"Failed to delete product: {e}", "error"))
            return
        if deleted:
            self.notify("Product deleted successfully!")
        else:
            self.notify("Product was already deleted.", severity="warning")
        self.post_message(ProductsChangedMessage())
