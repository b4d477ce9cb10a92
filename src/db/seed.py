# products shipped with the storefront; ids are numeric and they cannot be deleted

from typing import List

from db.models import Product

_IMG = "https://images.unsplash.com/{}?w=400&h=400&fit=crop"

SEED_PRODUCTS: List[Product] = [
    Product("2", "Organic Carrots", 80, _IMG.format("photo-1445282768818-728615cc910a"), "vegetable"),
    Product("3", "Crisp Lettuce", 50, _IMG.format("photo-1622206151226-18ca2c9ab4a1"), "vegetable"),
    Product("4", "Fresh Broccoli", 120, _IMG.format("photo-1584270354949-c26b0d5b4a0c"), "vegetable"),
    Product("5", "Bell Peppers", 100, _IMG.format("photo-1563565375-f3fdfdbefa83"), "vegetable"),
    Product("6", "Fresh Spinach", 40, _IMG.format("photo-1576045057995-568f588f82fb"), "vegetable"),
    Product("9", "Fresh Apples", 150, _IMG.format("photo-1560806887-1e4cd0b6cbd6"), "fruit"),
    Product("10", "Sweet Bananas", 60, _IMG.format("photo-1571771894821-ce9b6c11b08e"), "fruit"),
    Product("11", "Juicy Oranges", 100, _IMG.format("photo-1580052614034-c55d20bfee3b"), "fruit"),
    Product("12", "Fresh Strawberries", 250, _IMG.format("photo-1464965911861-746a04b4bca6"), "fruit"),
    Product("15", "Sweet Pineapples", 80, _IMG.format("photo-1589820296156-2454bb8a6ad1"), "fruit"),
    Product("16", "Fresh Watermelons", 40, _IMG.format("photo-1587049352846-4a222e784d38"), "fruit"),
]
