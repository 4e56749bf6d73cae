from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from catalog_admin.errors import DuplicateSlug, NotFound
from catalog_admin.extensions import db
from catalog_admin.models.category import Category, ProductCategory
from catalog_admin.schemas.categories import CategoryNode

# Columns the engine may write through ``update``
WRITABLE_FIELDS = frozenset({"name", "slug", "description", "parent_id", "is_active", "sort_order"})


class SqlAlchemyCategoryStore:
    """CategoryStore backed by the ``categories`` table.

    Methods only flush; ``transaction()`` owns the commit so a whole
    validate-then-write sequence lands atomically. The hierarchy lock taken
    at the start of a transaction serializes writers: an advisory lock on
    PostgreSQL, the database write lock on SQLite.
    """

    def __init__(self, session: Session | None = None, lock_key: int | None = None) -> None:
        self.session = session if session is not None else db.session
        self.lock_key = lock_key

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            self._lock_hierarchy()
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _lock_hierarchy(self) -> None:
        # Both locks are released at commit/rollback
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            self._begin_immediate()
        elif dialect == "postgresql" and self.lock_key is not None:
            self.session.execute(db.text("SELECT pg_advisory_xact_lock(:key)"), {"key": self.lock_key})

    def _begin_immediate(self) -> None:
        # pysqlite only emits BEGIN before the first write, so the reads that
        # validate a change would otherwise run without the write lock
        dbapi_connection = self.session.connection().connection.dbapi_connection
        if dbapi_connection is not None and not dbapi_connection.in_transaction:
            self.session.execute(db.text("BEGIN IMMEDIATE"))

    # Reads
    def get_by_id(self, category_id: str) -> Optional[CategoryNode]:
        row = self.session.execute(self._node_select().where(Category.id == category_id)).one_or_none()
        return self._to_node(row) if row else None

    def get_by_slug(self, slug: str) -> Optional[CategoryNode]:
        row = self.session.execute(self._node_select().where(Category.slug == slug)).one_or_none()
        return self._to_node(row) if row else None

    def list_all(self, active_only: bool = False) -> list[CategoryNode]:
        stmt = self._node_select().order_by(Category.sort_order, Category.name, Category.id)
        if active_only:
            stmt = stmt.where(Category.is_active.is_(True))
        return [self._to_node(row) for row in self.session.execute(stmt)]

    def count_children(self, category_id: str) -> int:
        return self.session.execute(
            db.select(db.func.count(Category.id)).filter_by(parent_id=category_id)
        ).scalar() or 0

    def count_associated_items(self, category_id: str) -> int:
        return self.session.execute(
            db.select(db.func.count(ProductCategory.id)).filter_by(category_id=category_id)
        ).scalar() or 0

    # Writes
    def insert(self, node: CategoryNode) -> CategoryNode:
        row = Category(
            id=node.id,
            name=node.name,
            slug=node.slug,
            description=node.description,
            parent_id=node.parent_id,
            is_active=node.is_active,
            sort_order=node.sort_order,
        )
        self.session.add(row)
        self._flush(slug=node.slug)
        return self.get_by_id(row.id)

    def update(self, category_id: str, fields: dict[str, Any]) -> CategoryNode:
        row = self._get_row(category_id)
        if row is None:
            raise NotFound(category_id=category_id)
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"not writable: {', '.join(sorted(unknown))}")
        for key, value in fields.items():
            setattr(row, key, value)
        self._flush(slug=fields.get("slug"))
        return self.get_by_id(category_id)

    def delete(self, category_id: str) -> None:
        row = self._get_row(category_id)
        if row is None:
            raise NotFound(category_id=category_id)
        self.session.delete(row)
        self.session.flush()

    # Product links
    def link_item(self, category_id: str, product_id: str, *, is_primary: bool = False) -> ProductCategory:
        link = ProductCategory(category_id=category_id, product_id=product_id, is_primary=is_primary)
        self.session.add(link)
        self.session.flush()
        return link

    def unlink_item(self, category_id: str, product_id: str) -> bool:
        result = self.session.execute(
            db.delete(ProductCategory).filter_by(category_id=category_id, product_id=product_id)
        )
        return result.rowcount > 0

    def _get_row(self, category_id: str) -> Optional[Category]:
        return self.session.execute(db.select(Category).filter_by(id=category_id)).scalar_one_or_none()

    def _flush(self, slug: str | None = None) -> None:
        try:
            self.session.flush()
        except IntegrityError as e:
            # A concurrent insert can still win the unique index race
            if "slug" in str(e.orig).lower():
                raise DuplicateSlug(slug=slug) from e
            raise

    @staticmethod
    def _node_select():
        """Category rows plus their child and product counts, in one query."""
        child = aliased(Category)
        child_count = (
            db.select(db.func.count(child.id))
            .where(child.parent_id == Category.id)
            .correlate(Category)
            .scalar_subquery()
        )
        product_count = (
            db.select(db.func.count(ProductCategory.id))
            .where(ProductCategory.category_id == Category.id)
            .correlate(Category)
            .scalar_subquery()
        )
        return db.select(Category, child_count.label("child_count"), product_count.label("product_count"))

    @staticmethod
    def _to_node(row) -> CategoryNode:
        category, child_count, product_count = row
        node = CategoryNode.model_validate(category)
        return node.model_copy(update={"child_count": child_count or 0, "product_count": product_count or 0})
