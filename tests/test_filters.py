"""
Tests for FilterSpec validation and canonicalization.
"""
import pytest

from storefront.catalog.filters import FilterSpec
from storefront.errors import ValidationError


class TestCanonicalization:

    def test_defaults(self):
        spec = FilterSpec.from_params({})
        assert spec.page == 1
        assert spec.limit == 12
        assert spec.sort_by == "newest"
        assert spec.sort_order == "desc"
        assert spec.search is None
        assert spec.tags == ()

    def test_text_is_trimmed_collapsed_and_lowercased(self):
        spec = FilterSpec.from_params({"search": "  Naruto   SHIRT ", "category": " Anime "})
        assert spec.search == "naruto shirt"
        assert spec.category == "anime"

    def test_camel_case_parameters(self):
        spec = FilterSpec.from_params({
            "minPrice": "100", "maxPrice": "900.5", "sortBy": "price",
            "productType": "Hoodies", "excludeFeatured": "true",
        })
        assert spec.min_price == 100.0
        assert spec.max_price == 900.5
        assert spec.sort_by == "price"
        assert spec.sort_order == "asc"
        assert spec.product_type == "hoodies"
        assert spec.exclude_featured is True

    def test_tags_and_sizes_are_deduplicated_and_ordered(self):
        spec = FilterSpec.from_params({"tags": "Manga, anime,manga", "sizes": ["xl", "S", "m,S"]})
        assert spec.tags == ("anime", "manga")
        assert spec.sizes == ("S", "M", "XL")

    def test_availability_all_means_no_filter(self):
        assert FilterSpec.from_params({"availability": "all"}).availability is None
        assert FilterSpec.from_params({"availability": "in-stock"}).availability == "in_stock"
        assert FilterSpec.from_params({"availability": "OUT_OF_STOCK"}).availability == "out_of_stock"

    def test_limit_is_clamped(self):
        assert FilterSpec.from_params({"limit": "500"}, max_limit=100).limit == 100

    def test_offset(self):
        assert FilterSpec.from_params({"page": "3", "limit": "10"}).offset == 20


class TestCacheKey:

    def test_equivalent_requests_share_a_key(self):
        a = FilterSpec.from_params({"search": "Naruto", "tags": "b,a", "page": 1, "category": "Anime"})
        b = FilterSpec.from_params({"category": "anime ", "tags": ["a", "b"], "search": " naruto", "page": "1"})
        assert a.cache_key() == b.cache_key()

    def test_different_pages_have_different_keys(self):
        spec = FilterSpec.from_params({"search": "naruto"})
        assert spec.cache_key() != spec.with_page(2).cache_key()

    def test_key_format(self):
        key = FilterSpec.from_params({}).cache_key()
        assert key.startswith("search:")
        assert len(key) == len("search:") + 16


class TestValidation:

    @pytest.mark.parametrize("params,field", [
        ({"minPrice": "cheap"}, "min_price"),
        ({"maxPrice": "-5"}, "max_price"),
        ({"minPrice": "nan"}, "min_price"),
        ({"minPrice": "500", "maxPrice": "100"}, "min_price"),
        ({"sizes": "M,XXXL"}, "sizes"),
        ({"availability": "maybe"}, "availability"),
        ({"sortBy": "rating"}, "sort_by"),
        ({"sortOrder": "sideways"}, "sort_order"),
        ({"page": "0"}, "page"),
        ({"page": "two"}, "page"),
        ({"limit": "0"}, "limit"),
        ({"excludeFeatured": "perhaps"}, "exclude_featured"),
    ])
    def test_rejects_malformed_field(self, params, field):
        with pytest.raises(ValidationError) as exc_info:
            FilterSpec.from_params(params)
        assert field in exc_info.value.errors

    def test_search_length_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            FilterSpec.from_params({"search": "x" * 101}, max_search_length=100)
        assert "search" in exc_info.value.errors

    def test_collects_every_problem(self):
        with pytest.raises(ValidationError) as exc_info:
            FilterSpec.from_params({"minPrice": "abc", "page": "-1", "sizes": "Q"})
        assert set(exc_info.value.errors) == {"min_price", "page", "sizes"}
