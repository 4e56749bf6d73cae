from __future__ import annotations

from catalog_admin.repositories.category import SqlAlchemyCategoryStore

__all__ = [
    "SqlAlchemyCategoryStore",
]
