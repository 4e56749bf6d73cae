"""Error kinds raised by the category hierarchy engine.

Every error is a deterministic function of the stored tree and the caller's
input, so none of them are worth retrying. Transport layers read ``code``,
``status_code`` and ``details``; the engine never formats user-facing text.
"""
from __future__ import annotations

from typing import Any


class CategoryError(Exception):
    code: str = "category_error"
    status_code: int = 400
    message: str = "category operation failed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.details: dict[str, Any] = {k: v for k, v in details.items() if v is not None}
        super().__init__(message or self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self), "details": self.details}


class NotFound(CategoryError):
    code = "not_found"
    status_code = 404
    message = "category not found"


class ParentNotFound(CategoryError):
    code = "parent_not_found"
    status_code = 400
    message = "parent category not found"


class DuplicateSlug(CategoryError):
    code = "slug_conflict"
    status_code = 409
    message = "category with this slug already exists"


class InvalidSlug(CategoryError):
    code = "invalid_slug"
    status_code = 400
    message = "slug must contain only lowercase letters, numbers and hyphens"


class CircularReference(CategoryError):
    code = "circular_reference"
    status_code = 422
    message = "cannot create circular reference in category hierarchy"


class SelfParent(CircularReference):
    """The degenerate cycle: a node proposed as its own parent."""

    code = "self_parent"
    message = "category cannot be its own parent"


class HasChildren(CategoryError):
    code = "has_children"
    status_code = 409
    message = "cannot delete category that has subcategories"


class HasAssociatedItems(CategoryError):
    code = "has_items"
    status_code = 409
    message = "cannot delete category that has products assigned"


class CorruptHierarchy(CategoryError):
    """Stored data violates the tree invariants (e.g. edited outside the engine)."""

    code = "corrupt_hierarchy"
    status_code = 500
    message = "category hierarchy is corrupt"


__all__ = [
    "CategoryError",
    "NotFound",
    "ParentNotFound",
    "DuplicateSlug",
    "InvalidSlug",
    "SelfParent",
    "CircularReference",
    "HasChildren",
    "HasAssociatedItems",
    "CorruptHierarchy",
]
