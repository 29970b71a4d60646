"""
Storefront - inventory-aware catalog query engine

Core of the anime merchandise storefront:
- Filtered, paginated product search with category-hierarchy resolution
- Fail-open Redis caching of search pages and product detail
- Per-size stock buckets with atomic reserve / release / decrement
  and one-shot low-stock alerts
"""

from storefront.core.config import StorefrontConfig, get_config, set_config
from storefront.core.services import Services, build_services
from storefront.catalog.filters import FilterSpec
from storefront.errors import (
    InsufficientStockError,
    PersistenceError,
    ProductNotFoundError,
    StorefrontError,
    ValidationError,
)

__all__ = [
    'StorefrontConfig',
    'get_config',
    'set_config',
    'Services',
    'build_services',
    'FilterSpec',
    'StorefrontError',
    'ValidationError',
    'InsufficientStockError',
    'ProductNotFoundError',
    'PersistenceError',
]

__version__ = '0.1.0'
