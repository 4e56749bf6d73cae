from __future__ import annotations

# Re-export common schema classes for convenient imports
from .categories import (  # noqa: F401
    CategoryNode,
    CategoryTree,
    CategoryCreate,
    CategoryUpdate,
    CategoryMove,
    CategoryReorder,
)

__all__ = [
    "CategoryNode",
    "CategoryTree",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryMove",
    "CategoryReorder",
]
