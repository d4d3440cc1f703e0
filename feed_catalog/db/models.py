"""
ORM models for feeds and the catalog rows the import pipeline writes.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from feed_catalog.db.session import Base


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Feed(Base):
    """Persisted configuration for one vendor feed."""
    __tablename__ = "feeds"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="xml")
    schedule = Column(String(50), nullable=False, default="daily")
    is_active = Column(Boolean, nullable=False, default=True)
    xml_item_path = Column(String(100), nullable=False, default="SHOPITEM")
    field_mapping = Column(JSON, nullable=False, default=dict)
    last_run = Column(DateTime(timezone=True), nullable=True)
    last_status = Column(String(50), nullable=False, default="idle")
    product_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Category(Base):
    """
    Hierarchical category derived from feed category paths.

    ``(parent_id, slug)`` is unique. Root rows have a NULL parent, which a plain
    unique constraint treats as distinct, so roots get their own partial index.
    """
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("parent_id", "slug", name="uq_categories_parent_slug"),
        Index(
            "uq_categories_root_slug",
            "slug",
            unique=True,
            postgresql_where=text("parent_id IS NULL"),
            sqlite_where=text("parent_id IS NULL"),
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    parent_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    product_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_id)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    feed_id = Column(String(36), ForeignKey("feeds.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(500), nullable=False)
    slug = Column(String(500), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    short_description = Column(Text, nullable=False, default="")
    ean = Column(String(50), nullable=True, index=True)
    sku = Column(String(100), nullable=True, index=True)
    brand = Column(String(255), nullable=False, default="")
    image_url = Column(Text, nullable=False, default="")
    affiliate_url = Column(Text, nullable=False, default="")
    price_min = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    price_max = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    stock_status = Column(String(50), nullable=False, default="instock")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    category = relationship("Category", lazy="joined")
    attributes = relationship(
        "ProductAttribute",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductAttribute.position",
    )
    images = relationship(
        "ProductImage",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductImage.position",
    )


class ProductAttribute(Base):
    """Vendor parameter (name/value pair) attached to a product."""
    __tablename__ = "product_attributes"

    id = Column(String(36), primary_key=True, default=_new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    value = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(String(36), primary_key=True, default=_new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    is_main = Column(Boolean, nullable=False, default=False)


class FeedHistory(Base):
    """Outcome of one finished import run."""
    __tablename__ = "feed_history"

    id = Column(String(36), primary_key=True, default=_new_id)
    feed_id = Column(String(36), ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    total_items = Column(Integer, nullable=False, default=0)
    created = Column(Integer, nullable=False, default=0)
    updated = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)
    duration = Column(Float, nullable=False, default=0.0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), default=_utcnow)
    finished_at = Column(DateTime(timezone=True), nullable=True)
