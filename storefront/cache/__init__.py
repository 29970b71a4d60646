from storefront.cache.cache import CacheClient

__all__ = ["CacheClient"]
