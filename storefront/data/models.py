"""
SQLAlchemy database models.
These are the authoritative source of truth for catalog and stock data.

The cache only ever holds derived copies of these rows.

Per-size stock is stored as one column per size so that a bucket and the
product's total can be changed by a single conditional UPDATE.
"""

import re
import uuid
from typing import Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, LargeBinary, String, Text
from sqlalchemy.orm import column_property, deferred, relationship
from sqlalchemy.sql import func

from storefront.data.database import Base

SIZES = ("S", "M", "L", "XL", "XXL")


def new_id() -> str:
    return uuid.uuid4().hex


def slugify(name: str) -> str:
    """URL-safe slug: lowercase, punctuation removed, whitespace runs become '-'."""
    slug = name.lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def stock_column_name(size: str) -> str:
    return f"stock_{size.lower()}"


def reserved_column_name(size: str) -> str:
    return f"reserved_{size.lower()}"


class Category(Base):
    """
    Category hierarchy. Roots have level 0, children parent.level + 1.

    Level is derived only from an already-persisted parent, so cycles cannot
    be built.
    """
    __tablename__ = "categories"
    __table_args__ = (Index("ix_categories_parent_active", "parent_id", "is_active"),)

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(64), nullable=False, unique=True)
    slug = Column(String(80), nullable=False, unique=True, index=True)
    parent_id = Column(String(32), ForeignKey("categories.id"), nullable=True)
    level = Column(Integer, nullable=False, default=0, index=True)
    icon = Column(String(16), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    parent = relationship("Category", remote_side=[id])


class ProductType(Base):
    """Garment / merchandise type (t-shirt, hoodie, ...)."""
    __tablename__ = "product_types"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(64), nullable=False, unique=True)
    display_name = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Product(Base):
    """
    Sellable product with per-size stock buckets.

    Invariant: total_stock == stock_s + stock_m + stock_l + stock_xl + stock_xxl
    after every committed mutation. reserved_<size> counts soft holds taken
    out of the matching bucket during checkout.
    """
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_visible_category", "is_deleted", "is_active", "category_id"),
        Index("ix_products_visible_subcategory", "is_deleted", "is_active", "subcategory_id"),
        Index("ix_products_visible_price", "is_deleted", "is_active", "price"),
        Index("ix_products_visible_stock", "is_deleted", "is_active", "total_stock"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    mrp = Column(Float, nullable=True)

    category_id = Column(String(32), ForeignKey("categories.id"), nullable=True)
    subcategory_id = Column(String(32), ForeignKey("categories.id"), nullable=True)
    product_type_id = Column(String(32), ForeignKey("product_types.id"), nullable=True)

    # Size buckets
    stock_s = Column(Integer, nullable=False, default=0)
    stock_m = Column(Integer, nullable=False, default=0)
    stock_l = Column(Integer, nullable=False, default=0)
    stock_xl = Column(Integer, nullable=False, default=0)
    stock_xxl = Column(Integer, nullable=False, default=0)

    # Soft holds taken from the buckets above
    reserved_s = Column(Integer, nullable=False, default=0)
    reserved_m = Column(Integer, nullable=False, default=0)
    reserved_l = Column(Integer, nullable=False, default=0)
    reserved_xl = Column(Integer, nullable=False, default=0)
    reserved_xxl = Column(Integer, nullable=False, default=0)

    total_stock = Column(Integer, nullable=False, default=0)
    sold = Column(Integer, nullable=False, default=0)

    # Alert state machine guards
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    alert_low_stock = Column(Boolean, nullable=False, default=False)
    alert_out_of_stock = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", foreign_keys=[category_id])
    subcategory = relationship("Category", foreign_keys=[subcategory_id])
    product_type = relationship("ProductType")
    tag_rows = relationship("ProductTag", back_populates="product", cascade="all, delete-orphan")
    images = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.order",
    )

    @property
    def tags(self) -> List[str]:
        return sorted(row.tag for row in self.tag_rows)

    @property
    def size_stock(self) -> Dict[str, int]:
        return {size: getattr(self, stock_column_name(size)) or 0 for size in SIZES}

    @property
    def reserved_stock(self) -> Dict[str, int]:
        return {size: getattr(self, reserved_column_name(size)) or 0 for size in SIZES}

    def stock_for(self, size: Optional[str] = None) -> int:
        if size is None:
            return sum(self.size_stock.values())
        return self.size_stock.get(size, 0)

    def is_low_stock(self, size: str) -> bool:
        stock = self.stock_for(size)
        return 0 < stock <= self.low_stock_threshold

    def primary_image(self) -> Optional["ProductImage"]:
        for image in self.images:
            if image.is_primary:
                return image
        return self.images[0] if self.images else None


class ProductTag(Base):
    """Lower-cased search tag attached to a product."""
    __tablename__ = "product_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(32), ForeignKey("products.id"), nullable=False, index=True)
    tag = Column(String(64), nullable=False, index=True)

    product = relationship("Product", back_populates="tag_rows")


class ProductImage(Base):
    """
    Product image, either an external URL or an uploaded binary.

    The binary payload is deferred so list queries never load it.
    """
    __tablename__ = "product_images"

    id = Column(String(32), primary_key=True, default=new_id)
    product_id = Column(String(32), ForeignKey("products.id"), nullable=False, index=True)
    url = Column(String(512), nullable=True)
    data = deferred(Column(LargeBinary, nullable=True))
    content_type = Column(String(64), nullable=True)
    caption = Column(String(255), nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="images")


# Whether an uploaded payload exists, computed in SQL so the deferred blob stays unloaded
ProductImage.has_data = column_property(ProductImage.__table__.c.data.is_not(None))
