from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalog_admin.extensions import db
from catalog_admin.models.ids import generate_hex_id


class Category(db.Model):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(db.String(32), primary_key=True, default=generate_hex_id)
    name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    slug: Mapped[str] = mapped_column(db.String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    parent_id: Mapped[str | None] = mapped_column(
        db.String(32), db.ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(db.Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(db.Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), onupdate=func.now())

    product_links: Mapped[list["ProductCategory"]] = relationship(back_populates="category")

    __table_args__ = (
        Index("ix_categories_parent_sort", "parent_id", "sort_order"),
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug='{self.slug}', parent_id={self.parent_id})>"


class ProductCategory(db.Model):
    """Link between an externally managed product and a category."""

    __tablename__ = "product_categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(
        db.String(32), db.ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    is_primary: Mapped[bool] = mapped_column(db.Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    category: Mapped[Category] = relationship(back_populates="product_links")

    __table_args__ = (
        UniqueConstraint("product_id", "category_id", name="uq_product_categories_product_category"),
    )
