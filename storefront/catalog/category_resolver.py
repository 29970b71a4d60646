"""
Category Resolver: turns category / subcategory references into query constraints.

A reference is either a category id or a free-text name. Names are matched
case-insensitively against active categories: an exact name or slug wins,
otherwise the closest substring match (shallowest level, then shortest name).
A reference that matches nothing is not an error; it resolves to
EMPTY_RESULT and the search legitimately returns nothing.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.catalog.predicates import Eq, In, Predicate, or_
from storefront.data.models import Category, ProductType
from storefront.errors import PersistenceError
from storefront.utils.logger import get_logger

logger = get_logger("catalog.category_resolver")


class EmptyResult:
    """Marker: the filter references nothing, so nothing can match."""

    def __repr__(self) -> str:
        return "EMPTY_RESULT"


EMPTY_RESULT = EmptyResult()


@dataclass(frozen=True)
class CategoryConstraint:
    predicate: Predicate
    # Categories the user explicitly selected (category and/or subcategory)
    selected: Tuple[Category, ...]


class CategoryResolver:
    """
    Resolves references against the active categories of one session.

    Categories are loaded once per resolver; the hierarchy is shallow and
    small enough to match in memory.
    """

    def __init__(self, session: Session):
        self.session = session
        self._categories: Optional[List[Category]] = None
        self._children: Dict[str, List[Category]] = {}

    def _load(self) -> List[Category]:
        if self._categories is None:
            try:
                rows = (
                    self.session.query(Category)
                    .filter(Category.is_active.is_(True))
                    .order_by(Category.level, Category.name)
                    .all()
                )
            except SQLAlchemyError as e:
                logger.error(f"Failed to load categories: {e}")
                raise PersistenceError(f"Failed to load categories: {e}") from e
            self._categories = rows
            self._children = {}
            for row in rows:
                if row.parent_id:
                    self._children.setdefault(row.parent_id, []).append(row)
        return self._categories

    def children_of(self, category: Category) -> List[Category]:
        self._load()
        return list(self._children.get(category.id, []))

    def find(self, ref: str, prefer_children: bool = False) -> Optional[Category]:
        """Best active category for a reference, or None."""
        categories = self._load()
        ref = ref.strip().lower()
        if not ref:
            return None

        for category in categories:
            if category.id == ref:
                return category

        exact = [c for c in categories if c.name.lower() == ref or c.slug == ref]
        partial = [c for c in categories if ref in c.name.lower() or ref in c.slug]
        candidates = exact or partial
        if not candidates:
            return None

        def rank(category: Category):
            is_root = category.level == 0
            return (is_root if prefer_children else not is_root, category.level, len(category.name), category.name)

        return sorted(candidates, key=rank)[0]

    def categories_matching(self, token: str) -> List[Category]:
        """All active categories whose name (or slug) contains the token."""
        token = token.strip().lower()
        if not token:
            return []
        return [c for c in self._load() if token in c.name.lower() or token in c.slug]

    def hierarchy_clause(self, category: Category) -> Predicate:
        """Products filed directly under the category or under any of its direct children."""
        child_ids = tuple(child.id for child in self.children_of(category))
        return or_(
            Eq("category_id", category.id),
            In("subcategory_id", (category.id,) + child_ids),
        )

    def resolve(self, category_ref: Optional[str] = None, subcategory_ref: Optional[str] = None):
        """
        Resolve a category / subcategory pair.

        Returns:
            None when neither reference is given, EMPTY_RESULT when a
            reference matches nothing (or the subcategory is not a child of
            the category), otherwise a CategoryConstraint.
        """
        if not category_ref and not subcategory_ref:
            return None

        category = None
        if category_ref:
            category = self.find(category_ref)
            if category is None:
                logger.info(f"Category '{category_ref}' not found, returning empty result")
                return EMPTY_RESULT

        if subcategory_ref:
            subcategory = self.find(subcategory_ref, prefer_children=True)
            if subcategory is None:
                logger.info(f"Subcategory '{subcategory_ref}' not found, returning empty result")
                return EMPTY_RESULT
            if category is not None and subcategory.parent_id != category.id:
                logger.info(
                    f"Subcategory '{subcategory.name}' is not a child of '{category.name}', "
                    f"returning empty result"
                )
                return EMPTY_RESULT
            selected = (category, subcategory) if category is not None else (subcategory,)
            return CategoryConstraint(Eq("subcategory_id", subcategory.id), selected)

        return CategoryConstraint(self.hierarchy_clause(category), (category,))

    def resolve_product_type(self, ref: str) -> Optional[str]:
        """Product type id for an id or case-insensitive name, or None."""
        ref = ref.strip().lower()
        try:
            types = self.session.query(ProductType).filter(ProductType.is_active.is_(True)).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load product types: {e}")
            raise PersistenceError(f"Failed to load product types: {e}") from e
        for product_type in types:
            names = {product_type.id, product_type.name.lower()}
            if product_type.display_name:
                names.add(product_type.display_name.lower())
            if ref in names:
                return product_type.id
        return None
