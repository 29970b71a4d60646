"""
Translate predicate trees into SQLAlchemy expressions over the products table.
"""
import operator
from typing import List

from sqlalchemy import and_, false, or_, true

from storefront.catalog.predicates import (
    And,
    Compare,
    Contains,
    Eq,
    In,
    MatchAll,
    MatchNone,
    Or,
    Predicate,
    Range,
)
from storefront.data.models import SIZES, Product, ProductTag, stock_column_name

# Compare.op -> Python operator, which SQLAlchemy columns overload
COMPARATORS = {"gt": operator.gt, "gte": operator.ge, "lt": operator.lt, "lte": operator.le}

# Logical field -> mapped column
FIELD_COLUMNS = {
    "id": Product.id,
    "name": Product.name,
    "description": Product.description,
    "price": Product.price,
    "category_id": Product.category_id,
    "subcategory_id": Product.subcategory_id,
    "product_type_id": Product.product_type_id,
    "total_stock": Product.total_stock,
    "is_active": Product.is_active,
    "is_deleted": Product.is_deleted,
    "is_featured": Product.is_featured,
}
for _size in SIZES:
    FIELD_COLUMNS[f"size_stock.{_size}"] = getattr(Product, stock_column_name(_size))

SORT_COLUMNS = {
    "newest": Product.created_at,
    "price": Product.price,
    "name": Product.name,
    "popularity": Product.sold,
    "stock": Product.total_stock,
}


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally (backslash escape)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _column(field: str):
    try:
        return FIELD_COLUMNS[field]
    except KeyError:
        raise ValueError(f"Unknown query field: {field}") from None


def to_sql(predicate: Predicate):
    """Compile a predicate tree into a SQLAlchemy boolean clause."""
    if isinstance(predicate, MatchAll):
        return true()
    if isinstance(predicate, MatchNone):
        return false()
    if isinstance(predicate, And):
        return and_(*[to_sql(child) for child in predicate.children])
    if isinstance(predicate, Or):
        return or_(*[to_sql(child) for child in predicate.children])

    if predicate.field == "tags":
        return _tag_clause(predicate)

    column = _column(predicate.field)
    if isinstance(predicate, Eq):
        if predicate.value is None:
            return column.is_(None)
        return column == predicate.value
    if isinstance(predicate, In):
        return column.in_(list(predicate.values))
    if isinstance(predicate, Compare):
        return COMPARATORS[predicate.op](column, predicate.value)
    if isinstance(predicate, Range):
        clauses = []
        if predicate.low is not None:
            clauses.append(column >= predicate.low)
        if predicate.high is not None:
            clauses.append(column <= predicate.high)
        return and_(*clauses) if clauses else true()
    if isinstance(predicate, Contains):
        return column.ilike(f"%{escape_like(predicate.text)}%", escape="\\")
    raise TypeError(f"Unknown predicate node: {predicate!r}")


def _tag_clause(predicate: Predicate):
    # Tags live in a child table; every tag test is an EXISTS over product_tags.
    if isinstance(predicate, Eq):
        return Product.tag_rows.any(ProductTag.tag == predicate.value)
    if isinstance(predicate, In):
        return Product.tag_rows.any(ProductTag.tag.in_(list(predicate.values)))
    if isinstance(predicate, Contains):
        pattern = f"%{escape_like(predicate.text)}%"
        return Product.tag_rows.any(ProductTag.tag.ilike(pattern, escape="\\"))
    raise ValueError(f"Unsupported predicate on tags: {predicate!r}")


def order_by(sort_by: str, sort_order: str) -> List:
    """ORDER BY clauses with an id tie-break so pages never overlap."""
    column = SORT_COLUMNS.get(sort_by, Product.created_at)
    primary = column.asc() if sort_order == "asc" else column.desc()
    return [primary, Product.id.asc()]
