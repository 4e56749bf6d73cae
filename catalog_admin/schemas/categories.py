from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CategoryNode(BaseModel):
    """A single stored category, detached from the ORM session."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Derived by the store, not writable
    child_count: int = 0
    product_count: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class CategoryTree(CategoryNode):
    children: List["CategoryTree"] = Field(default_factory=list)
    depth: int = 0


class CategoryCreate(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: str = Field(min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[str] = None
    is_active: bool = True
    sort_order: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("slug")
    @classmethod
    def slug_stripped(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        # Blank slug means "derive it from the name"
        return v.strip() or None

    @field_validator("parent_id")
    @classmethod
    def empty_parent_is_root(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class CategoryUpdate(BaseModel):
    """Partial update; only fields present in ``model_fields_set`` change."""

    model_config = ConfigDict(extra='ignore')

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("slug")
    @classmethod
    def slug_stripped(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @field_validator("parent_id")
    @classmethod
    def empty_parent_is_root(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def required_fields_not_null(self) -> "CategoryUpdate":
        for field in ("name", "slug", "is_active", "sort_order"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class CategoryMove(BaseModel):
    model_config = ConfigDict(extra='ignore')

    new_parent_id: Optional[str] = None
    new_sort_order: Optional[int] = Field(default=None, ge=0)

    @field_validator("new_parent_id")
    @classmethod
    def empty_parent_is_root(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class CategoryReorder(BaseModel):
    category_ids: List[str] = Field(default_factory=list)

    @field_validator("category_ids")
    @classmethod
    def no_duplicates(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError("category_ids must not contain duplicates")
        return v


# Resolve the self-referencing children annotation
CategoryTree.model_rebuild()
