"""
Query Builder: FilterSpec -> backend-agnostic predicate tree.

The predicate returned by build() is used unchanged for both the page fetch
and the total count, so the two can never drift apart.
"""
from typing import List, Optional

from storefront.catalog.category_resolver import EMPTY_RESULT, CategoryConstraint, CategoryResolver
from storefront.catalog.filters import FilterSpec
from storefront.catalog.predicates import (
    MATCH_NONE,
    Compare,
    Contains,
    Eq,
    In,
    Predicate,
    Range,
    and_,
    describe,
    or_,
)
from storefront.utils.logger import get_logger

logger = get_logger("catalog.query_builder")

SEARCH_FIELDS = ("name", "description", "tags")


def tokenize(text: Optional[str]) -> List[str]:
    """Whitespace tokens, lower-cased, first occurrence order, duplicates dropped."""
    tokens: List[str] = []
    for token in (text or "").lower().split():
        if token not in tokens:
            tokens.append(token)
    return tokens


class QueryBuilder:
    """Builds the predicate for one FilterSpec using a CategoryResolver."""

    def __init__(self, resolver: CategoryResolver):
        self.resolver = resolver

    def base_predicate(self, spec: FilterSpec) -> Predicate:
        clauses = [Eq("is_deleted", False), Eq("is_active", True)]
        if spec.exclude_featured:
            clauses.append(Eq("is_featured", False))
        return and_(*clauses)

    def token_clause(self, token: str) -> Predicate:
        """Where a single token may appear: text fields, tags, or a matching category."""
        clauses = [Contains(field, token) for field in SEARCH_FIELDS]
        for category in self.resolver.categories_matching(token):
            clauses.append(self.resolver.hierarchy_clause(category))
        return or_(*clauses)

    def search_clause(self, text: Optional[str]) -> Optional[Predicate]:
        tokens = tokenize(text)
        if not tokens:
            return None
        # Every token must be found somewhere, not necessarily in the same field.
        return and_(*[self.token_clause(token) for token in tokens])

    @staticmethod
    def absorbs_search(constraint: CategoryConstraint, text: str) -> bool:
        """True when the search text names one of the explicitly selected categories."""
        text = text.lower()
        return any(text in category.name.lower() for category in constraint.selected)

    def build(self, spec: FilterSpec) -> Predicate:
        clauses = [self.base_predicate(spec)]

        constraint = self.resolver.resolve(spec.category, spec.subcategory)
        if constraint is EMPTY_RESULT:
            return MATCH_NONE
        if constraint is not None:
            clauses.append(constraint.predicate)

        if spec.product_type:
            product_type_id = self.resolver.resolve_product_type(spec.product_type)
            if product_type_id is None:
                logger.info(f"Product type '{spec.product_type}' not found, returning empty result")
                return MATCH_NONE
            clauses.append(Eq("product_type_id", product_type_id))

        if spec.min_price is not None or spec.max_price is not None:
            clauses.append(Range("price", spec.min_price, spec.max_price))

        if spec.tags:
            clauses.append(In("tags", spec.tags))

        if spec.sizes:
            clauses.append(or_(*[Compare(f"size_stock.{size}", "gt", 0) for size in spec.sizes]))

        if spec.availability == "in_stock":
            clauses.append(Compare("total_stock", "gt", 0))
        elif spec.availability == "out_of_stock":
            clauses.append(Eq("total_stock", 0))

        if spec.search:
            if constraint is not None and self.absorbs_search(constraint, spec.search):
                logger.debug(f"Search '{spec.search}' names the selected category, showing whole category")
            else:
                search = self.search_clause(spec.search)
                if search is not None:
                    clauses.append(search)

        predicate = and_(*clauses)
        logger.debug(f"Built predicate: {describe(predicate)}")
        return predicate
