from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import DataTable, Label, Select

import db.crud
from db.models import CATEGORIES, Product
from utils.messages import ProductsChangedMessage
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


class ProductsScreen(BaseScreen):
    """
    Catalog browser. Anyone can shop, guests included.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
        Binding("a", "quick_add", "Add to Cart", show=True),
    ]

    def __init__(self):
        super().__init__()
        self._products: Dict[str, Product] = {}
        self._category: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filter"):
            yield Label("Category", id="label-category")
            yield Select(
                [(c.capitalize(), c) for c in CATEGORIES],
                prompt="All products",
                id="select-category",
            )
        yield DataTable(id="table-products")
        yield Label("", id="label-product-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Category", "Price")
        table.focus()

    def action_noop(self) -> None:
        pass

    @on(Select.Changed, "#select-category")
    def handle_category_change(self, event: Select.Changed) -> None:
        self._category = event.value if isinstance(event.value, str) else None
        self.load_products()

    @on(ScreenResume)
    @on(ProductsChangedMessage)
    def handle_reload(self) -> None:
        self.load_products()

    @work(exclusive=True, group="catalog")
    async def load_products(self) -> None:
        products = await db.crud.list_products(self._category)
        self._products = {p.pid: p for p in products}

        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(p.name, p.category.capitalize(), self.app.price(p.price), key=p.pid)
        self.query_one("#label-product-cnt", Label).update(
            f"{len(products)} product(s)"
        )

    def _selected_product(self) -> Optional[Product]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return self._products.get(row_key.value)

    @on(DataTable.RowSelected)
    @work(exclusive=True, group="detail")
    async def handle_view_product(self, event: DataTable.RowSelected) -> None:
        product = self._products.get(event.row_key.value)
        if product:
            await self.app.push_screen_wait(ProdDetailModal(product))

    @work(exclusive=True, group="detail")
    async def action_quick_add(self) -> None:
        product = self._selected_product()
        if product is None:
            return
        await self.app.state.cart.add_item(product)
        self.notify(f"{product.name} added to cart!")
