from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Optional, Protocol, Sequence

import structlog
from flask import current_app

from catalog_admin.errors import (
    CircularReference,
    CorruptHierarchy,
    DuplicateSlug,
    HasAssociatedItems,
    HasChildren,
    InvalidSlug,
    NotFound,
    ParentNotFound,
    SelfParent,
)
from catalog_admin.extensions import cache, db
from catalog_admin.models.ids import generate_hex_id
from catalog_admin.repositories.category import SqlAlchemyCategoryStore
from catalog_admin.schemas.categories import CategoryCreate, CategoryNode, CategoryTree, CategoryUpdate
from catalog_admin.services.tree import (
    build_category_tree,
    collect_descendant_ids,
    index_by_id,
    iter_ancestors,
    sibling_sort_key,
)
from catalog_admin.utils.slug import is_valid_slug, slugify

logger = structlog.get_logger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Distinguishes "no parent filter" from "roots only" (parent_id=None)
UNSET: Any = _Unset()

SORT_FIELDS = ("sort_order", "name", "slug", "created_at", "updated_at", "child_count", "product_count")

TREE_CACHE_KEYS = {False: "category_tree:active", True: "category_tree:all"}


class CategoryStore(Protocol):
    def transaction(self) -> AbstractContextManager[None]: ...
    def get_by_id(self, category_id: str) -> Optional[CategoryNode]: ...
    def get_by_slug(self, slug: str) -> Optional[CategoryNode]: ...
    def list_all(self, active_only: bool = False) -> list[CategoryNode]: ...
    def insert(self, node: CategoryNode) -> CategoryNode: ...
    def update(self, category_id: str, fields: dict[str, Any]) -> CategoryNode: ...
    def delete(self, category_id: str) -> None: ...
    def count_children(self, category_id: str) -> int: ...
    def count_associated_items(self, category_id: str) -> int: ...


class CategoryHierarchyEngine:
    """Keeps the category tree valid and answers hierarchical queries.

    Mutations validate everything inside ``store.transaction()`` before the
    first write, so a failed call leaves the stored tree untouched.
    """

    def __init__(self, store: CategoryStore) -> None:
        self.store = store

    # Lookups
    def get(self, category_id: str) -> CategoryNode:
        node = self.store.get_by_id(category_id)
        if node is None:
            raise NotFound(category_id=category_id)
        return node

    def get_by_slug(self, slug: str) -> CategoryNode:
        node = self.store.get_by_slug(slug)
        if node is None:
            raise NotFound(slug=slug)
        return node

    def get_root_categories(self) -> list[CategoryNode]:
        roots = [node for node in self.store.list_all(active_only=True) if node.parent_id is None]
        return sorted(roots, key=sibling_sort_key)

    def get_children(self, parent_id: str, include_inactive: bool = False) -> list[CategoryNode]:
        self.get(parent_id)
        nodes = self.store.list_all(active_only=not include_inactive)
        return sorted((node for node in nodes if node.parent_id == parent_id), key=sibling_sort_key)

    def list_categories(
        self,
        *,
        parent_id: Any = UNSET,
        is_active: Optional[bool] = None,
        has_products: Optional[bool] = None,
        sort_by: str = "sort_order",
        descending: bool = False,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[CategoryNode], int]:
        """Filtered flat listing, returns ``(page_items, total)``.

        ``sort_by`` must be one of ``SORT_FIELDS``; ties keep sibling order.
        """
        if page < 1 or per_page < 1:
            raise ValueError("page and per_page must be positive")
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"cannot sort by {sort_by!r}")
        nodes = self.store.list_all(active_only=is_active is True)
        if parent_id is not UNSET:
            nodes = [node for node in nodes if node.parent_id == parent_id]
        if is_active is False:
            nodes = [node for node in nodes if not node.is_active]
        if has_products is not None:
            nodes = [node for node in nodes if (node.product_count > 0) == has_products]
        nodes.sort(key=sibling_sort_key)
        if sort_by != "sort_order" or descending:
            nodes.sort(key=lambda node: _sort_value(node, sort_by), reverse=descending)
        start = (page - 1) * per_page
        return nodes[start:start + per_page], len(nodes)

    # Mutations
    def create(self, data: CategoryCreate) -> CategoryNode:
        slug = data.slug or slugify(data.name)
        self._check_slug_format(slug, name=data.name)

        with self.store.transaction():
            if self.store.get_by_slug(slug) is not None:
                raise DuplicateSlug(slug=slug)
            if data.parent_id is not None and self.store.get_by_id(data.parent_id) is None:
                raise ParentNotFound(parent_id=data.parent_id)
            node = self.store.insert(
                CategoryNode(
                    id=generate_hex_id(),
                    name=data.name,
                    slug=slug,
                    description=data.description,
                    parent_id=data.parent_id,
                    is_active=data.is_active,
                    sort_order=data.sort_order,
                )
            )

        logger.info("category_created", category_id=node.id, slug=node.slug, parent_id=node.parent_id)
        return node

    def update(self, category_id: str, patch: CategoryUpdate) -> CategoryNode:
        changes = patch.changes()
        if "slug" in changes:
            self._check_slug_format(changes["slug"])

        with self.store.transaction():
            current = self.get(category_id)
            if "slug" in changes and changes["slug"] != current.slug:
                if self.store.get_by_slug(changes["slug"]) is not None:
                    raise DuplicateSlug(slug=changes["slug"])
            if "parent_id" in changes and changes["parent_id"] != current.parent_id:
                self._check_new_parent(category_id, changes["parent_id"])
            if not changes:
                return current
            node = self.store.update(category_id, changes)

        logger.info("category_updated", category_id=category_id, fields=sorted(changes))
        return node

    def move(
        self,
        category_id: str,
        new_parent_id: Optional[str] = None,
        new_sort_order: Optional[int] = None,
    ) -> CategoryNode:
        """Re-parent a node (``None`` makes it a root), optionally repositioning it."""
        with self.store.transaction():
            current = self.get(category_id)
            if new_parent_id != current.parent_id:
                self._check_new_parent(category_id, new_parent_id)
            fields: dict[str, Any] = {"parent_id": new_parent_id}
            if new_sort_order is not None:
                fields["sort_order"] = new_sort_order
            node = self.store.update(category_id, fields)

        logger.info(
            "category_moved",
            category_id=category_id,
            from_parent_id=current.parent_id,
            to_parent_id=new_parent_id,
            sort_order=node.sort_order,
        )
        return node

    def delete(self, category_id: str) -> None:
        with self.store.transaction():
            self.get(category_id)
            child_count = self.store.count_children(category_id)
            if child_count > 0:
                raise HasChildren(category_id=category_id, child_count=child_count)
            item_count = self.store.count_associated_items(category_id)
            if item_count > 0:
                raise HasAssociatedItems(category_id=category_id, item_count=item_count)
            self.store.delete(category_id)

        logger.info("category_deleted", category_id=category_id)

    def reorder(self, ordered_ids: Sequence[str]) -> None:
        """Set ``sort_order`` to each id's position; ids not listed keep theirs."""
        ordered_ids = list(ordered_ids)
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValueError("ordered_ids must not contain duplicates")
        with self.store.transaction():
            known = index_by_id(self.store.list_all())
            missing = [category_id for category_id in ordered_ids if category_id not in known]
            if missing:
                raise NotFound(category_ids=missing)
            for position, category_id in enumerate(ordered_ids):
                if known[category_id].sort_order != position:
                    self.store.update(category_id, {"sort_order": position})

        logger.info("categories_reordered", count=len(ordered_ids))

    # Hierarchy queries
    def build_tree(self, include_inactive: bool = False) -> list[CategoryTree]:
        roots, report = build_category_tree(self.store.list_all(), include_inactive=include_inactive)
        if report["orphans"] or report["unreachable"]:
            logger.warning(
                "category_tree_nodes_skipped",
                orphans=report["orphans"],
                unreachable=report["unreachable"],
            )
        return roots

    def get_ancestor_path(self, category_id: str) -> list[CategoryNode]:
        """Root first, the requested node last."""
        index = index_by_id(self.store.list_all())
        if category_id not in index:
            raise NotFound(category_id=category_id)
        try:
            chain = list(iter_ancestors(index, category_id))
        except CorruptHierarchy as e:
            logger.error("category_hierarchy_corrupt", operation="ancestor_path", **e.details)
            raise
        chain.reverse()
        return chain

    def find_available_parents(self, exclude_id: Optional[str] = None) -> list[CategoryNode]:
        """Every node that ``exclude_id`` could be moved under without a cycle."""
        nodes = self.store.list_all()
        if exclude_id is None:
            return nodes
        excluded = collect_descendant_ids(nodes, exclude_id)
        excluded.add(exclude_id)
        return [node for node in nodes if node.id not in excluded]

    # Validation helpers
    def _check_slug_format(self, slug: str, name: Optional[str] = None) -> None:
        if not is_valid_slug(slug):
            raise InvalidSlug(slug=slug, name=name)

    def _check_new_parent(self, category_id: str, new_parent_id: Optional[str]) -> None:
        if new_parent_id is None:
            return
        if new_parent_id == category_id:
            raise SelfParent(category_id=category_id)
        index = index_by_id(self.store.list_all())
        if new_parent_id not in index:
            raise ParentNotFound(parent_id=new_parent_id)
        try:
            for ancestor in iter_ancestors(index, new_parent_id):
                if ancestor.id == category_id:
                    raise CircularReference(category_id=category_id, parent_id=new_parent_id)
        except CorruptHierarchy as e:
            logger.error("category_hierarchy_corrupt", operation="parent_check", **e.details)
            raise


def get_category_engine() -> CategoryHierarchyEngine:
    """Engine bound to the request's database session."""
    store = SqlAlchemyCategoryStore(db.session, lock_key=current_app.config.get("CATEGORY_LOCK_KEY"))
    return CategoryHierarchyEngine(store)


def invalidate_tree_cache() -> None:
    """Drop both cached tree renderings; call after any committed mutation."""
    cache.delete_many(*TREE_CACHE_KEYS.values())


def _sort_value(node: CategoryNode, field: str) -> tuple[bool, Any]:
    # Missing timestamps rank below any present one
    value = getattr(node, field)
    return (value is not None, value)
