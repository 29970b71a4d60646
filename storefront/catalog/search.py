"""
Catalog service: cached product search, product detail, category tree and
suggestions, plus the catalog-management writes that keep the entity cache honest.
"""
import math
import time
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from storefront.cache.cache import CacheClient
from storefront.cache.cache_policy import CATEGORY_TREE_KEY, SEARCH_KEY_PATTERN, product_key, search_key
from storefront.catalog.category_resolver import CategoryResolver
from storefront.catalog.filters import FilterSpec
from storefront.catalog.query_builder import QueryBuilder
from storefront.catalog.views import product_view
from storefront.core.config import StorefrontConfig
from storefront.data.product_store import ProductStore
from storefront.utils.logger import get_logger

logger = get_logger("catalog.search")


def pagination(page: int, limit: int, total: int, returned: int) -> Dict[str, Any]:
    offset = (page - 1) * limit
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalProducts": total,
        "hasMore": offset + returned < total,
    }


class CatalogService:
    """
    Read side of the catalog.

    Search results are cached per canonical filter and expire by TTL only.
    Product detail is cached per id and deleted on every write to that product.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: Optional[CacheClient] = None,
        config: Optional[StorefrontConfig] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.config = config or StorefrontConfig()

    def _cache_get(self, key: str) -> Optional[Any]:
        return self.cache.get(key) if self.cache is not None else None

    def _cache_set(self, key: str, value: Any, ttl: int) -> bool:
        return self.cache.set(key, value, ttl) if self.cache is not None else False

    def _invalidate(self, product_id: str) -> None:
        if self.cache is not None:
            self.cache.delete(product_key(product_id))

    def parse_filters(self, params: Mapping[str, Any]) -> FilterSpec:
        return FilterSpec.from_params(
            params,
            default_limit=self.config.default_page_size,
            max_limit=self.config.max_page_size,
            max_search_length=self.config.max_search_length,
        )

    #
    # Search
    #

    def search(self, spec: FilterSpec) -> Dict[str, Any]:
        """
        Paginated product search.

        Returns:
            {"products": [...], "pagination": {...}, "_cached": bool}
            plus "_cacheAge" (seconds) on a hit or "_queryTime" (ms) on a miss.
        """
        key = search_key(spec)
        cached = self._cache_get(key)
        if isinstance(cached, dict) and "products" in cached:
            cached_at = cached.pop("cachedAt", None)
            cached["_cached"] = True
            cached["_cacheAge"] = round(time.time() - cached_at, 3) if cached_at else None
            logger.debug(f"Search cache hit {key}")
            return cached

        started = time.perf_counter()
        with self.session_factory() as session:
            predicate = QueryBuilder(CategoryResolver(session)).build(spec)
            items, total = ProductStore(session).fetch_page(
                predicate, spec.sort_by, spec.sort_order, spec.offset, spec.limit
            )
            products = [product_view(product) for product in items]

        result = {
            "products": products,
            "pagination": pagination(spec.page, spec.limit, total, len(products)),
        }
        self._cache_set(key, dict(result, cachedAt=time.time()), self.config.ttl_search)

        query_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(f"Search returned {len(products)}/{total} products in {query_ms}ms")
        return dict(result, _cached=False, _queryTime=query_ms)

    def invalidate_search_cache(self) -> int:
        """Drop every cached search page, e.g. after a bulk import. Returns keys deleted."""
        if self.cache is None:
            return 0
        deleted = self.cache.delete_pattern(SEARCH_KEY_PATTERN)
        logger.info(f"Invalidated {deleted} cached search page(s)")
        return deleted

    #
    # Detail / navigation
    #

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Product view by id through the entity cache; None if missing or deleted."""
        key = product_key(product_id)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        with self.session_factory() as session:
            product = ProductStore(session).get_product(product_id)
            if product is None:
                return None
            view = product_view(product)
        self._cache_set(key, view, self.config.ttl_entity)
        return view

    def category_tree(self) -> List[Dict[str, Any]]:
        cached = self._cache_get(CATEGORY_TREE_KEY)
        if cached is not None:
            return cached
        with self.session_factory() as session:
            tree = ProductStore(session).category_tree()
        self._cache_set(CATEGORY_TREE_KEY, tree, self.config.ttl_category_tree)
        return tree

    def suggest(self, query: str, limit: int = 10) -> List[str]:
        with self.session_factory() as session:
            return ProductStore(session).suggest(query, limit=limit)

    def popular_searches(self, limit: int = 5) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            return ProductStore(session).popular_searches(limit=limit)

    #
    # Catalog-management writes
    #

    def create_category(self, name: str, parent_id: Optional[str] = None, **kwargs: Any) -> Dict[str, Any]:
        with self.session_factory() as session:
            category = ProductStore(session).create_category(name, parent_id=parent_id, **kwargs)
            return {"_id": category.id, "name": category.name, "slug": category.slug, "level": category.level}

    def create_product_type(self, name: str, display_name: Optional[str] = None) -> Dict[str, Any]:
        with self.session_factory() as session:
            product_type = ProductStore(session).create_product_type(name, display_name)
            return {"_id": product_type.id, "name": product_type.name, "displayName": product_type.display_name}

    def create_product(self, **fields: Any) -> Dict[str, Any]:
        fields.setdefault("low_stock_threshold", self.config.default_low_stock_threshold)
        with self.session_factory() as session:
            product = ProductStore(session).create_product(**fields)
            view = product_view(product)
        self._invalidate(view["_id"])
        return view

    def update_product(self, product_id: str, **changes: Any) -> Dict[str, Any]:
        with self.session_factory() as session:
            product = ProductStore(session).update_product(product_id, **changes)
            view = product_view(product)
        self._invalidate(product_id)
        return view

    def delete_product(self, product_id: str) -> bool:
        with self.session_factory() as session:
            deleted = ProductStore(session).soft_delete_product(product_id)
        self._invalidate(product_id)
        return deleted
