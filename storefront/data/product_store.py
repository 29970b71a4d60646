"""
Product store: SQLAlchemy access for catalog reads and catalog-management writes.

Reads take a predicate tree from the query builder and run it twice, once
for the page and once for the total, compiled from the same tree.

Writes here never touch stock buckets after creation; stock changes go
through InventoryStore.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from storefront.catalog.predicates import MatchNone, Predicate
from storefront.catalog.sql_adapter import escape_like, order_by, to_sql
from storefront.data.models import (
    SIZES,
    Category,
    Product,
    ProductImage,
    ProductTag,
    ProductType,
    slugify,
    stock_column_name,
)
from storefront.errors import PersistenceError, ValidationError
from storefront.utils.logger import get_logger

logger = get_logger("data.product_store")

# Fields catalog management may change on an existing product
UPDATABLE_FIELDS = {
    "name",
    "description",
    "price",
    "mrp",
    "category_id",
    "subcategory_id",
    "product_type_id",
    "low_stock_threshold",
    "is_active",
    "is_featured",
}
STOCK_FIELDS = {"size_stock", "total_stock", "sold"} | {stock_column_name(s) for s in SIZES}


def distribute_stock(total: int) -> Dict[str, int]:
    """Split a total evenly over all sizes; the remainder goes to the first sizes."""
    base, remainder = divmod(max(int(total), 0), len(SIZES))
    return {size: base + (1 if index < remainder else 0) for index, size in enumerate(SIZES)}


class ProductStore:
    """Catalog persistence bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    #
    # Reads
    #

    def _visible(self):
        return self.session.query(Product).filter(
            Product.is_deleted.is_(False),
            Product.is_active.is_(True),
        )

    def fetch_page(
        self,
        predicate: Predicate,
        sort_by: str,
        sort_order: str,
        offset: int,
        limit: int,
    ) -> Tuple[List[Product], int]:
        """
        Page of products matching the predicate plus the total match count.

        Both queries are built from one compiled clause, so the count always
        describes exactly the rows the page was cut from.
        """
        if isinstance(predicate, MatchNone):
            return [], 0

        clause = to_sql(predicate)
        try:
            total = self.session.query(func.count(Product.id)).filter(clause).scalar() or 0
            items = (
                self.session.query(Product)
                .options(
                    selectinload(Product.tag_rows),
                    selectinload(Product.images),
                    selectinload(Product.category),
                    selectinload(Product.subcategory),
                    selectinload(Product.product_type),
                )
                .filter(clause)
                .order_by(*order_by(sort_by, sort_order))
                .offset(offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Product search failed: {e}")
            raise PersistenceError(f"Product search failed: {e}") from e
        return items, total

    def get_product(self, product_id: str, include_inactive: bool = False) -> Optional[Product]:
        try:
            query = self.session.query(Product).filter(Product.id == product_id, Product.is_deleted.is_(False))
            if not include_inactive:
                query = query.filter(Product.is_active.is_(True))
            return query.first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load product {product_id}: {e}")
            raise PersistenceError(f"Failed to load product {product_id}") from e

    def category_tree(self) -> List[Dict[str, Any]]:
        """Active roots, each with its active direct children, sorted by name."""
        try:
            categories = (
                self.session.query(Category)
                .filter(Category.is_active.is_(True))
                .order_by(Category.name)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load category tree: {e}")
            raise PersistenceError("Failed to load category tree") from e

        children: Dict[str, List[Category]] = {}
        for category in categories:
            if category.parent_id:
                children.setdefault(category.parent_id, []).append(category)

        def node(category: Category) -> Dict[str, Any]:
            return {
                "_id": category.id,
                "name": category.name,
                "slug": category.slug,
                "level": category.level,
                "icon": category.icon,
            }

        tree = []
        for category in categories:
            if category.parent_id is None:
                entry = node(category)
                entry["subcategories"] = [node(child) for child in children.get(category.id, [])]
                tree.append(entry)
        return tree

    def suggest(self, query: str, limit: int = 10) -> List[str]:
        """
        Up to `limit` unique suggestions for a partial query: matching product
        names first, then their category names, then matching category names.
        """
        text = query.strip()
        if len(text) < 2:
            return []
        pattern = f"%{escape_like(text)}%"
        try:
            products = (
                self._visible()
                .options(selectinload(Product.category))
                .filter(Product.name.ilike(pattern, escape="\\"))
                .order_by(Product.sold.desc(), Product.name.asc())
                .limit(limit)
                .all()
            )
            categories = (
                self.session.query(Category)
                .filter(Category.is_active.is_(True), Category.name.ilike(pattern, escape="\\"))
                .order_by(Category.level, Category.name)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Suggestion lookup failed for '{text}': {e}")
            raise PersistenceError("Suggestion lookup failed") from e

        suggestions: List[str] = []
        candidates = [p.name for p in products]
        candidates += [p.category.name for p in products if p.category is not None]
        candidates += [c.name for c in categories]
        for candidate in candidates:
            if candidate not in suggestions:
                suggestions.append(candidate)
        return suggestions[:limit]

    def popular_searches(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Best-selling product names, then top-level category names, as search prompts."""
        try:
            products = (
                self._visible()
                .order_by(Product.sold.desc(), Product.name.asc())
                .limit(limit)
                .all()
            )
            categories = (
                self.session.query(Category)
                .filter(Category.is_active.is_(True))
                .order_by(Category.level, Category.name)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Popular search lookup failed: {e}")
            raise PersistenceError("Popular search lookup failed") from e

        popular = [{"type": "product", "value": p.name, "count": p.sold} for p in products]
        popular += [{"type": "category", "value": c.name} for c in categories]
        return popular

    #
    # Catalog-management writes
    #

    def _commit(self, description: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.info(f"{description} rejected: {e.orig}")
            raise ValidationError(f"{description} conflicts with existing data", {"conflict": [str(e.orig)]}) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"{description} failed: {e}")
            raise PersistenceError(f"{description} failed") from e

    def create_category(
        self,
        name: str,
        parent_id: Optional[str] = None,
        icon: Optional[str] = None,
        is_active: bool = True,
    ) -> Category:
        """Create a category; slug comes from the name, level from the persisted parent."""
        level = 0
        if parent_id is not None:
            parent = self.session.get(Category, parent_id)
            if parent is None:
                raise ValidationError(f"Parent category '{parent_id}' not found", {"parentId": ["not found"]})
            level = parent.level + 1
        category = Category(
            name=name.strip(),
            slug=slugify(name),
            parent_id=parent_id,
            level=level,
            icon=icon,
            is_active=is_active,
        )
        self.session.add(category)
        self._commit(f"Create category '{name}'")
        return category

    def create_product_type(self, name: str, display_name: Optional[str] = None) -> ProductType:
        product_type = ProductType(name=name.strip().lower(), display_name=display_name or name.strip())
        self.session.add(product_type)
        self._commit(f"Create product type '{name}'")
        return product_type

    def create_product(
        self,
        name: str,
        price: float,
        category_id: Optional[str] = None,
        subcategory_id: Optional[str] = None,
        product_type_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Iterable[str] = (),
        size_stock: Optional[Dict[str, int]] = None,
        total_stock: Optional[int] = None,
        low_stock_threshold: int = 10,
        images: Iterable[Dict[str, Any]] = (),
        **fields: Any,
    ) -> Product:
        """
        Create a product.

        Either pass size_stock explicitly or only total_stock, which is then
        distributed over the sizes. The subcategory must be a child of the
        category when both are given.
        """
        self._check_subcategory(category_id, subcategory_id)

        if size_stock is None:
            size_stock = distribute_stock(total_stock or 0)
        buckets = {}
        for size in SIZES:
            count = int(size_stock.get(size, 0))
            if count < 0:
                raise ValidationError(f"Negative stock for size {size}", {"sizeStock": ["must not be negative"]})
            buckets[stock_column_name(size)] = count

        product = Product(
            name=name.strip(),
            description=description,
            price=float(price),
            category_id=category_id,
            subcategory_id=subcategory_id,
            product_type_id=product_type_id,
            low_stock_threshold=low_stock_threshold,
            total_stock=sum(buckets.values()),
            **buckets,
            **{key: value for key, value in fields.items() if key in UPDATABLE_FIELDS},
        )
        product.tag_rows = [ProductTag(tag=tag) for tag in sorted({t.strip().lower() for t in tags if t.strip()})]
        product.images = self._build_images(images)
        self.session.add(product)
        self._commit(f"Create product '{name}'")
        logger.info(f"Created product {product.id} '{product.name}' with {product.total_stock} units")
        return product

    def _check_subcategory(self, category_id: Optional[str], subcategory_id: Optional[str]) -> None:
        """The subcategory must be a child of the category when both are set."""
        if subcategory_id is None or category_id is None:
            return
        subcategory = self.session.get(Category, subcategory_id)
        if subcategory is None or subcategory.parent_id != category_id:
            raise ValidationError(
                "Subcategory does not belong to category",
                {"subcategoryId": ["must be a child of categoryId"]},
            )

    @staticmethod
    def _build_images(images: Iterable[Dict[str, Any]]) -> List[ProductImage]:
        rows = []
        for order, image in enumerate(images):
            rows.append(ProductImage(
                url=image.get("url"),
                data=image.get("data"),
                content_type=image.get("content_type", image.get("contentType")),
                caption=image.get("caption"),
                is_primary=bool(image.get("is_primary", image.get("isPrimary", False))),
                order=image.get("order", order),
            ))
        # Exactly one primary image whenever there are images.
        primaries = [row for row in rows if row.is_primary]
        if rows and len(primaries) != 1:
            for row in rows:
                row.is_primary = False
            min(rows, key=lambda row: row.order).is_primary = True
        return rows

    def update_product(self, product_id: str, **changes: Any) -> Product:
        """Update non-stock fields. Stock is owned by InventoryStore."""
        forbidden = sorted(set(changes) & STOCK_FIELDS)
        if forbidden:
            raise ValidationError(
                "Stock fields cannot be changed through catalog updates",
                {field: ["use the inventory operations"] for field in forbidden},
            )
        unknown = sorted(set(changes) - UPDATABLE_FIELDS - {"tags"})
        if unknown:
            raise ValidationError("Unknown product fields", {field: ["unknown field"] for field in unknown})

        product = self.get_product(product_id, include_inactive=True)
        if product is None:
            raise ValidationError(f"Product '{product_id}' not found", {"productId": ["not found"]})

        self._check_subcategory(
            changes.get("category_id", product.category_id),
            changes.get("subcategory_id", product.subcategory_id),
        )

        tags = changes.pop("tags", None)
        for key, value in changes.items():
            setattr(product, key, value)
        if tags is not None:
            product.tag_rows = [ProductTag(tag=tag) for tag in sorted({t.strip().lower() for t in tags if t.strip()})]
        self._commit(f"Update product {product_id}")
        # Reload so category relationships follow changed ids
        self.session.refresh(product)
        return product

    def soft_delete_product(self, product_id: str) -> bool:
        """Hide a product from every search; the row is kept for audit."""
        try:
            updated = (
                self.session.query(Product)
                .filter(Product.id == product_id, Product.is_deleted.is_(False))
                .update(
                    {Product.is_deleted: True, Product.deleted_at: datetime.now(timezone.utc)},
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Soft delete failed for product {product_id}: {e}")
            raise PersistenceError(f"Soft delete failed for product {product_id}") from e
        self._commit(f"Delete product {product_id}")
        return bool(updated)
