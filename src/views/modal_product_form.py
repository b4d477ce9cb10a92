from typing import Dict, Optional

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select

from db.models import CATEGORIES, Product
from utils.validators import validate_product_form


class ProductFormModal(ModalScreen[Optional[Dict]]):
    """
    Add or edit a product.
    Dismisses with the validated fields (name, price, image, category) or None when cancelled.
    """

    def __init__(self, product: Optional[Product] = None) -> None:
        super().__init__()
        self._product = product

    def compose(self) -> ComposeResult:
        prod = self._product
        with Vertical(id="div-product-form"):
            yield Label("Edit Product" if prod else "Add New Product", id="label-form-title")
            yield Label("Product Name")
            yield Input(prod.name if prod else "", placeholder="Fresh Carrots", id="input-name")
            yield Label("Price")
            yield Input(
                str(prod.price) if prod else "",
                placeholder="80",
                type="integer",
                id="input-price",
            )
            yield Label("Image URL")
            yield Input(prod.image if prod else "", placeholder="https://...", id="input-image")
            yield Label("Category")
            preset = {"value": prod.category} if prod and prod.category in CATEGORIES else {}
            yield Select(
                [(c.capitalize(), c) for c in CATEGORIES],
                prompt="Select category",
                id="select-category",
                **preset,
            )
            with Horizontal():
                yield Button("Cancel", id="btn-cancel")
                yield Button(
                    "Update Product" if prod else "Add Product",
                    id="btn-save",
                    variant="success",
                )

    def on_mount(self) -> None:
        self.query_one("#input-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(None)

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        category = self.query_one("#select-category", Select).value
        fields = {
            "name": self.query_one("#input-name", Input).value.strip(),
            "price": self.query_one("#input-price", Input).value.strip(),
            "image": self.query_one("#input-image", Input).value.strip(),
            "category": category if isinstance(category, str) else None,
        }
        errors = validate_product_form(**fields)
        for field in ("name", "price", "image"):
            self.query_one(f"#input-{field}", Input).set_class(field in errors, "-invalid")
        if errors:
            self.notify(next(iter(errors.values())), severity="error")
            return
        self.dismiss(fields)
