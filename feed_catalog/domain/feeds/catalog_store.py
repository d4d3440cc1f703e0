"""
Relational persistence for feeds and the catalog rows written by imports.

Every operation opens its own short transaction, so one store instance can be
shared by the API handlers and by concurrent import workers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from feed_catalog.db.models import (
    Category,
    Feed,
    FeedHistory,
    Product,
    ProductAttribute,
    ProductImage,
)
from feed_catalog.db.session import get_session_local
from feed_catalog.utils.slug import slugify

logger = logging.getLogger(__name__)

# Product columns an import may overwrite on an existing row.
UPDATABLE_PRODUCT_FIELDS = (
    "title",
    "description",
    "short_description",
    "brand",
    "image_url",
    "affiliate_url",
    "category_id",
)

FEED_EDITABLE_FIELDS = ("name", "url", "type", "schedule", "is_active", "xml_item_path", "field_mapping")


class FeedNotFoundError(LookupError):
    """Raised when a feed id does not exist."""

    def __init__(self, feed_id: str):
        self.feed_id = feed_id
        super().__init__(f"Feed '{feed_id}' not found")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class FeedDefinition:
    """Detached snapshot of a feed row, safe to hand to background threads."""
    id: str
    name: str
    url: str
    type: str = "xml"
    xml_item_path: str = "SHOPITEM"
    field_mapping: Dict[str, str] = field(default_factory=dict)
    is_active: bool = True
    schedule: str = "daily"
    last_run: Optional[datetime] = None
    last_status: str = "idle"
    product_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Feed) -> "FeedDefinition":
        return cls(
            id=row.id,
            name=row.name,
            url=row.url,
            type=row.type,
            xml_item_path=row.xml_item_path or "SHOPITEM",
            field_mapping=dict(row.field_mapping or {}),
            is_active=bool(row.is_active),
            schedule=row.schedule,
            last_run=row.last_run,
            last_status=row.last_status or "idle",
            product_count=row.product_count or 0,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "type": self.type,
            "xml_item_path": self.xml_item_path,
            "field_mapping": dict(self.field_mapping),
            "is_active": self.is_active,
            "schedule": self.schedule,
            "last_run": _iso(self.last_run),
            "last_status": self.last_status,
            "product_count": self.product_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


def _history_to_dict(row: FeedHistory) -> Dict[str, Any]:
    return {
        "id": row.id,
        "feed_id": row.feed_id,
        "status": row.status,
        "total_items": row.total_items,
        "created": row.created,
        "updated": row.updated,
        "skipped": row.skipped,
        "errors": row.errors,
        "duration": row.duration,
        "error_message": row.error_message,
        "started_at": _iso(row.started_at),
        "finished_at": _iso(row.finished_at),
    }


def _product_document(product: Product) -> Dict[str, Any]:
    category = product.category
    return {
        "id": product.id,
        "title": product.title,
        "slug": product.slug,
        "description": product.description or "",
        "short_description": product.short_description or "",
        "ean": product.ean or "",
        "sku": product.sku or "",
        "brand": product.brand or "",
        "category_id": product.category_id or "",
        "category_name": category.name if category else "",
        "category_slug": category.slug if category else "",
        "image_url": product.image_url or "",
        "price_min": float(product.price_min or 0),
        "price_max": float(product.price_max or 0),
        "stock_status": product.stock_status,
        "is_active": bool(product.is_active),
        "attributes": [{"name": attr.name, "value": attr.value} for attr in product.attributes],
        "created_at": _iso(product.created_at),
    }


class SqlCatalogStore:
    """Catalog Store backed by SQLAlchemy sessions."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_local()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def _find_product_id(self, column, value: str) -> Optional[str]:
        if not value:
            return None
        with self._session_factory() as session:
            return session.execute(
                select(Product.id).where(column == value).order_by(Product.created_at).limit(1)
            ).scalar_one_or_none()

    def find_product_by_ean(self, ean: str) -> Optional[str]:
        return self._find_product_id(Product.ean, ean)

    def find_product_by_sku(self, sku: str) -> Optional[str]:
        return self._find_product_id(Product.sku, sku)

    def create_product(
        self,
        fields: Dict[str, Any],
        feed_id: Optional[str] = None,
        attributes: Sequence[Tuple[str, str]] = (),
        image_urls: Sequence[str] = (),
    ) -> str:
        """
        Insert a product with its attributes and images and return its new id.

        The row, its category count and its detail rows commit together, so a
        failed attribute write leaves nothing behind.
        """
        price = float(fields.get("price") or 0)
        category_id = fields.get("category_id")
        with self._session_factory.begin() as session:
            product = Product(
                title=fields["title"],
                slug=slugify(fields["title"]),
                description=fields.get("description") or "",
                short_description=fields.get("short_description") or "",
                ean=fields.get("ean") or None,
                sku=fields.get("sku") or None,
                brand=fields.get("brand") or "",
                image_url=fields.get("image_url") or "",
                affiliate_url=fields.get("affiliate_url") or "",
                category_id=category_id,
                price_min=price,
                price_max=price,
                feed_id=feed_id,
            )
            session.add(product)
            session.flush()
            if category_id:
                self._adjust_category_count(session, category_id, 1)
            self._write_attributes(session, product.id, attributes)
            if image_urls:
                self._write_images(session, product.id, image_urls)
            return product.id

    def update_product(
        self,
        product_id: str,
        fields: Dict[str, Any],
        attributes: Optional[Sequence[Tuple[str, str]]] = None,
        image_urls: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Overwrite the supplied fields in one transaction; EAN and SKU are never touched.

        ``attributes`` and ``image_urls`` replace the stored rows when given.
        Moving the product to another category moves its count along.
        """
        values = {key: fields[key] for key in UPDATABLE_PRODUCT_FIELDS if key in fields}
        if "price" in fields:
            price = float(fields["price"] or 0)
            values["price_min"] = price
            values["price_max"] = price
        values["updated_at"] = _utcnow()

        with self._session_factory.begin() as session:
            current = session.execute(
                select(Product.category_id).where(Product.id == product_id)
            ).first()
            if current is None:
                raise LookupError(f"Product '{product_id}' no longer exists")
            session.execute(update(Product).where(Product.id == product_id).values(**values))

            new_category = values.get("category_id")
            if new_category and new_category != current.category_id:
                if current.category_id:
                    self._adjust_category_count(session, current.category_id, -1)
                self._adjust_category_count(session, new_category, 1)

            if attributes is not None:
                self._write_attributes(session, product_id, attributes)
            if image_urls:
                self._write_images(session, product_id, image_urls)

    def replace_attributes(self, product_id: str, attributes: Sequence[Tuple[str, str]]) -> None:
        """Delete every attribute of the product, then insert ``attributes`` in order."""
        with self._session_factory.begin() as session:
            self._write_attributes(session, product_id, attributes)

    def replace_images(self, product_id: str, urls: Sequence[str]) -> None:
        with self._session_factory.begin() as session:
            self._write_images(session, product_id, urls)

    @staticmethod
    def _adjust_category_count(session, category_id: str, delta: int) -> None:
        session.execute(
            update(Category)
            .where(Category.id == category_id)
            .values(product_count=Category.product_count + delta)
        )

    def _write_attributes(self, session, product_id: str, attributes: Sequence[Tuple[str, str]]) -> None:
        # Delete-then-insert so parameters removed by the vendor disappear too.
        session.execute(delete(ProductAttribute).where(ProductAttribute.product_id == product_id))
        for position, (name, value) in enumerate(attributes):
            session.add(
                ProductAttribute(
                    product_id=product_id,
                    name=name,
                    slug=slugify(name),
                    value=value,
                    position=position,
                )
            )
        session.flush()

    def _write_images(self, session, product_id: str, urls: Sequence[str]) -> None:
        session.execute(delete(ProductImage).where(ProductImage.product_id == product_id))
        for position, url in enumerate(urls):
            session.add(ProductImage(product_id=product_id, url=url, position=position, is_main=position == 0))
        session.flush()

    def list_product_documents(self, product_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Build search-index documents for the given products."""
        ids = list(product_ids)
        if not ids:
            return []
        with self._session_factory() as session:
            products = session.execute(
                select(Product)
                .where(Product.id.in_(ids))
                .options(selectinload(Product.attributes))
            ).unique().scalars().all()
            return [_product_document(product) for product in products]

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def _find_category(self, slug: str, parent_id: Optional[str]) -> Optional[str]:
        parent_clause = Category.parent_id.is_(None) if parent_id is None else Category.parent_id == parent_id
        with self._session_factory() as session:
            return session.execute(
                select(Category.id).where(Category.slug == slug, parent_clause).limit(1)
            ).scalar_one_or_none()

    def find_or_create_category(self, name: str, parent_id: Optional[str] = None) -> str:
        """
        Return the id of the category ``name`` under ``parent_id``, creating it if needed.

        Two workers may race to create the same row; the unique index lets only
        one insert win and the loser re-reads the surviving row.
        """
        slug = slugify(name)
        existing = self._find_category(slug, parent_id)
        if existing:
            return existing

        try:
            with self._session_factory.begin() as session:
                category = Category(name=name, slug=slug, parent_id=parent_id)
                session.add(category)
                session.flush()
                return category.id
        except IntegrityError:
            existing = self._find_category(slug, parent_id)
            if existing:
                logger.debug("Category '%s' was created concurrently; reusing %s", slug, existing)
                return existing
            raise

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------
    def get_feed(self, feed_id: str) -> Optional[FeedDefinition]:
        with self._session_factory() as session:
            row = session.get(Feed, feed_id)
            return FeedDefinition.from_row(row) if row else None

    def list_feeds(self) -> List[FeedDefinition]:
        with self._session_factory() as session:
            rows = session.execute(select(Feed).order_by(Feed.created_at.desc())).scalars().all()
            return [FeedDefinition.from_row(row) for row in rows]

    def create_feed(self, data: Dict[str, Any]) -> FeedDefinition:
        values = {key: data[key] for key in FEED_EDITABLE_FIELDS if data.get(key) is not None}
        with self._session_factory.begin() as session:
            row = Feed(**values)
            session.add(row)
            session.flush()
            return FeedDefinition.from_row(row)

    def update_feed(self, feed_id: str, data: Dict[str, Any]) -> FeedDefinition:
        with self._session_factory.begin() as session:
            row = session.get(Feed, feed_id)
            if row is None:
                raise FeedNotFoundError(feed_id)
            for key in FEED_EDITABLE_FIELDS:
                if data.get(key) is not None:
                    setattr(row, key, data[key])
            session.flush()
            return FeedDefinition.from_row(row)

    def delete_feed(self, feed_id: str) -> None:
        with self._session_factory.begin() as session:
            row = session.get(Feed, feed_id)
            if row is None:
                raise FeedNotFoundError(feed_id)
            session.delete(row)

    def mark_feed_run_started(self, feed_id: str) -> None:
        with self._session_factory.begin() as session:
            session.execute(
                update(Feed).where(Feed.id == feed_id).values(last_status="running", last_run=_utcnow())
            )

    def record_feed_run_result(self, feed_id: str, status: str, product_count: Optional[int] = None) -> None:
        """Persist the terminal status of a run (and the product count when it completed)."""
        values: Dict[str, Any] = {"last_status": status}
        if product_count is not None:
            values["product_count"] = product_count
        with self._session_factory.begin() as session:
            session.execute(update(Feed).where(Feed.id == feed_id).values(**values))

    def record_feed_history(self, feed_id: str, summary: Dict[str, Any]) -> None:
        with self._session_factory.begin() as session:
            session.add(
                FeedHistory(
                    feed_id=feed_id,
                    status=summary["status"],
                    total_items=summary.get("total", 0),
                    created=summary.get("created", 0),
                    updated=summary.get("updated", 0),
                    skipped=summary.get("skipped", 0),
                    errors=summary.get("errors", 0),
                    duration=summary.get("duration", 0.0),
                    error_message=summary.get("error_message"),
                    started_at=summary.get("started_at") or _utcnow(),
                    finished_at=summary.get("finished_at") or _utcnow(),
                )
            )

    def list_feed_history(self, feed_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = session.execute(
                select(FeedHistory)
                .where(FeedHistory.feed_id == feed_id)
                .order_by(FeedHistory.started_at.desc())
                .limit(limit)
            ).scalars().all()
            return [_history_to_dict(row) for row in rows]
