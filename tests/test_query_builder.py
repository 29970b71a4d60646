"""
Tests for the predicate algebra, category resolution and query building.
"""
import pytest

from storefront.catalog.category_resolver import EMPTY_RESULT, CategoryResolver
from storefront.catalog.filters import FilterSpec
from storefront.catalog.predicates import (
    MATCH_ALL,
    MATCH_NONE,
    And,
    Compare,
    Contains,
    Eq,
    In,
    Or,
    Range,
    and_,
    describe,
    or_,
)
from storefront.catalog.query_builder import QueryBuilder, tokenize


def flatten(predicate):
    """Every leaf node of a predicate tree."""
    if isinstance(predicate, (And, Or)):
        leaves = []
        for child in predicate.children:
            leaves.extend(flatten(child))
        return leaves
    return [predicate]


class TestPredicateAlgebra:

    def test_and_short_circuits_on_match_none(self):
        assert and_(Eq("a", 1), MATCH_NONE) is MATCH_NONE

    def test_and_drops_match_all_and_flattens(self):
        result = and_(MATCH_ALL, Eq("a", 1), and_(Eq("b", 2), Eq("c", 3)))
        assert result == And((Eq("a", 1), Eq("b", 2), Eq("c", 3)))

    def test_or_short_circuits_on_match_all(self):
        assert or_(Eq("a", 1), MATCH_ALL) is MATCH_ALL

    def test_or_of_nothing_matches_nothing(self):
        assert or_() is MATCH_NONE
        assert or_(MATCH_NONE, MATCH_NONE) is MATCH_NONE

    def test_single_child_is_unwrapped(self):
        assert and_(Eq("a", 1)) == Eq("a", 1)
        assert or_(Eq("a", 1), Eq("a", 1)) == Eq("a", 1)

    def test_describe(self):
        text = describe(and_(Eq("is_active", True), Range("price", 10, None)))
        assert text == "(is_active = True AND price IN [10, None])"

    def test_unknown_comparison_is_rejected(self):
        with pytest.raises(ValueError):
            Compare("price", "between", 10)


class TestTokenize:

    def test_splits_and_deduplicates(self):
        assert tokenize("Naruto  shirt naruto") == ["naruto", "shirt"]

    def test_empty(self):
        assert tokenize(None) == []
        assert tokenize("   ") == []


class TestCategoryResolver:

    def test_exact_name_is_case_insensitive(self, session_factory, anime):
        with session_factory() as session:
            resolver = CategoryResolver(session)
            assert resolver.find("ANIME").id == anime["anime"]["_id"]

    def test_resolves_by_id(self, session_factory, anime):
        with session_factory() as session:
            assert CategoryResolver(session).find(anime["bleach"]["_id"]).name == "Bleach"

    def test_substring_match(self, session_factory, anime):
        with session_factory() as session:
            assert CategoryResolver(session).find("nim").name == "Anime"

    def test_category_expands_to_direct_children(self, session_factory, anime):
        with session_factory() as session:
            constraint = CategoryResolver(session).resolve("anime")
        leaves = flatten(constraint.predicate)
        assert Eq("category_id", anime["anime"]["_id"]) in leaves
        in_clause = next(leaf for leaf in leaves if isinstance(leaf, In))
        assert set(in_clause.values) == {anime["anime"]["_id"], anime["naruto"]["_id"], anime["bleach"]["_id"]}

    def test_subcategory_constraint(self, session_factory, anime):
        with session_factory() as session:
            constraint = CategoryResolver(session).resolve("anime", "naruto")
        assert constraint.predicate == Eq("subcategory_id", anime["naruto"]["_id"])

    def test_subcategory_of_another_category_is_empty(self, session_factory, anime):
        with session_factory() as session:
            assert CategoryResolver(session).resolve("anime", "zelda") is EMPTY_RESULT

    def test_unknown_reference_is_empty_not_error(self, session_factory, anime):
        with session_factory() as session:
            resolver = CategoryResolver(session)
            assert resolver.resolve("cooking") is EMPTY_RESULT
            assert resolver.resolve(None, "cooking") is EMPTY_RESULT

    def test_no_reference(self, session_factory, anime):
        with session_factory() as session:
            assert CategoryResolver(session).resolve(None, None) is None

    def test_inactive_categories_are_ignored(self, catalog, session_factory):
        catalog.create_category("Retired", is_active=False)
        with session_factory() as session:
            assert CategoryResolver(session).resolve("retired") is EMPTY_RESULT


class TestQueryBuilder:

    def build(self, session_factory, **params):
        with session_factory() as session:
            return QueryBuilder(CategoryResolver(session)).build(FilterSpec.from_params(params))

    def test_base_predicate(self, session_factory):
        predicate = self.build(session_factory)
        assert predicate == And((Eq("is_deleted", False), Eq("is_active", True)))

    def test_exclude_featured(self, session_factory):
        assert Eq("is_featured", False) in flatten(self.build(session_factory, excludeFeatured="true"))

    def test_filters_are_merged(self, session_factory):
        leaves = flatten(self.build(
            session_factory, minPrice="100", maxPrice="500", tags="anime",
            sizes="M,L", availability="in_stock",
        ))
        assert Range("price", 100.0, 500.0) in leaves
        assert In("tags", ("anime",)) in leaves
        assert Compare("size_stock.M", "gt", 0) in leaves
        assert Compare("size_stock.L", "gt", 0) in leaves
        assert Compare("total_stock", "gt", 0) in leaves

    def test_unknown_category_matches_nothing(self, session_factory, anime):
        assert self.build(session_factory, category="cooking") is MATCH_NONE

    def test_unknown_product_type_matches_nothing(self, session_factory):
        assert self.build(session_factory, productType="spaceship") is MATCH_NONE

    def test_every_search_token_gets_its_own_clause(self, session_factory):
        predicate = self.build(session_factory, search="naruto shirt")
        token_clauses = [c for c in predicate.children if isinstance(c, Or)]
        assert len(token_clauses) == 2
        assert Contains("name", "naruto") in token_clauses[0].children
        assert Contains("tags", "shirt") in token_clauses[1].children

    def test_search_token_matching_a_category_adds_hierarchy_clause(self, session_factory, anime):
        predicate = self.build(session_factory, search="bleach")
        assert In("subcategory_id", (anime["bleach"]["_id"],)) in flatten(predicate)

    def test_search_naming_selected_category_is_absorbed(self, session_factory, anime):
        predicate = self.build(session_factory, category="anime", search="Anime")
        assert not any(isinstance(leaf, Contains) for leaf in flatten(predicate))

    def test_search_naming_selected_subcategory_is_absorbed(self, session_factory, anime):
        predicate = self.build(session_factory, category="anime", subcategory="naruto", search="naruto")
        assert not any(isinstance(leaf, Contains) for leaf in flatten(predicate))

    def test_search_naming_a_different_category_is_anded(self, session_factory, anime):
        predicate = self.build(session_factory, category="anime", search="zelda")
        leaves = flatten(predicate)
        assert Contains("name", "zelda") in leaves
        assert In("subcategory_id", (anime["zelda"]["_id"],)) in leaves

    @pytest.mark.parametrize("search", ["shirt", "anime shirt"])
    def test_search_not_naming_category_is_anded(self, session_factory, anime, search):
        predicate = self.build(session_factory, category="anime", search=search)
        assert Contains("name", "shirt") in flatten(predicate)
