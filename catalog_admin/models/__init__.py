from __future__ import annotations

# Import all models so migrations and create_all see them
from catalog_admin.models.ids import generate_hex_id
from catalog_admin.models.category import Category, ProductCategory

__all__ = [
    "generate_hex_id",
    "Category",
    "ProductCategory",
]
