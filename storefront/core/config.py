"""
Configuration management for the storefront catalog core.

Loads settings from YAML config file, then applies environment overrides.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from storefront.cache.cache_policy import TTL_CATEGORY_TREE, TTL_ENTITY, TTL_SEARCH

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of storefront package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"

# env var -> (attribute, type)
ENV_OVERRIDES = {
    "DATABASE_URL": ("database_url", str),
    "REDIS_URL": ("redis_url", str),
    "CACHE_NAMESPACE": ("cache_namespace", str),
    "CACHE_OP_TIMEOUT": ("cache_op_timeout", float),
    "CACHE_TTL_ENTITY": ("ttl_entity", int),
    "CACHE_TTL_SEARCH": ("ttl_search", int),
    "CACHE_TTL_CATEGORY_TREE": ("ttl_category_tree", int),
    "LOG_LEVEL": ("log_level", str),
}


@dataclass
class StorefrontConfig:
    """Configuration for the catalog core."""

    # Persistence
    database_url: str = "sqlite:///./storefront.db"

    # Cache backend (None = run without a cache, every lookup is a miss)
    redis_url: Optional[str] = None
    cache_namespace: str = "storefront"
    cache_op_timeout: float = 0.5           # Upper bound on any single cache round trip
    cache_connect_timeout: float = 1.0
    cache_retry_base_delay: float = 1.0     # First reconnect delay after a failure
    cache_retry_max_delay: float = 30.0     # Backoff ceiling

    # TTLs (seconds). Entity lookups are short-lived because edits must show up quickly.
    ttl_entity: int = TTL_ENTITY
    ttl_search: int = TTL_SEARCH
    ttl_category_tree: int = TTL_CATEGORY_TREE

    # Catalog queries
    default_page_size: int = 12
    max_page_size: int = 100
    max_search_length: int = 100

    # Inventory
    default_low_stock_threshold: int = 10

    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "StorefrontConfig":
        """Load configuration from YAML file, falling back to defaults."""
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls().apply_env()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        database_config = data.get('database', {})
        cache_config = data.get('cache', {})
        ttl_config = cache_config.get('ttl', {})
        catalog_config = data.get('catalog', {})
        inventory_config = data.get('inventory', {})

        config = cls(
            database_url=database_config.get('url', cls.database_url),
            redis_url=cache_config.get('redis_url'),
            cache_namespace=cache_config.get('namespace', cls.cache_namespace),
            cache_op_timeout=float(cache_config.get('op_timeout', cls.cache_op_timeout)),
            cache_connect_timeout=float(cache_config.get('connect_timeout', cls.cache_connect_timeout)),
            cache_retry_base_delay=float(cache_config.get('retry_base_delay', cls.cache_retry_base_delay)),
            cache_retry_max_delay=float(cache_config.get('retry_max_delay', cls.cache_retry_max_delay)),
            ttl_entity=int(ttl_config.get('entity', cls.ttl_entity)),
            ttl_search=int(ttl_config.get('search', cls.ttl_search)),
            ttl_category_tree=int(ttl_config.get('category_tree', cls.ttl_category_tree)),
            default_page_size=int(catalog_config.get('default_page_size', cls.default_page_size)),
            max_page_size=int(catalog_config.get('max_page_size', cls.max_page_size)),
            max_search_length=int(catalog_config.get('max_search_length', cls.max_search_length)),
            default_low_stock_threshold=int(
                inventory_config.get('default_low_stock_threshold', cls.default_low_stock_threshold)
            ),
        )
        return config.apply_env()

    def apply_env(self, environ: Optional[Dict[str, Any]] = None) -> "StorefrontConfig":
        """Override fields from environment variables (in place)."""
        environ = os.environ if environ is None else environ
        for env_name, (attr, cast) in ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            setattr(self, attr, cast(raw))
        return self


# Global config instance
_config: Optional[StorefrontConfig] = None


def get_config() -> StorefrontConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = StorefrontConfig.from_yaml()
    return _config


def set_config(config: StorefrontConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
