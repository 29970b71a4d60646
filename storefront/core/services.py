"""
Composition root: builds the engine, cache client and services once per process.

Nothing here is a module-level singleton; callers (the API app, scripts,
tests) build a Services bundle and pass it where it is needed.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from storefront.cache.cache import CacheClient
from storefront.catalog.search import CatalogService
from storefront.core.config import StorefrontConfig, get_config
from storefront.data.database import build_engine, build_session_factory, create_tables
from storefront.inventory.alerts import AlertDispatcher
from storefront.inventory.inventory_store import InventoryStore
from storefront.utils.logger import get_logger, set_level

logger = get_logger("core.services")


@dataclass
class Services:
    config: StorefrontConfig
    engine: Engine
    session_factory: sessionmaker
    cache: CacheClient
    catalog: CatalogService
    inventory: InventoryStore

    def create_tables(self) -> None:
        create_tables(self.engine)


def build_cache(config: StorefrontConfig) -> CacheClient:
    return CacheClient(
        url=config.redis_url,
        namespace=config.cache_namespace,
        op_timeout=config.cache_op_timeout,
        connect_timeout=config.cache_connect_timeout,
        retry_base_delay=config.cache_retry_base_delay,
        retry_max_delay=config.cache_retry_max_delay,
    )


def build_services(
    config: Optional[StorefrontConfig] = None,
    engine: Optional[Engine] = None,
    cache: Optional[CacheClient] = None,
    dispatcher: Optional[AlertDispatcher] = None,
) -> Services:
    """Wire every component from configuration; any piece may be injected instead."""
    config = config or get_config()
    set_level(config.log_level)
    engine = engine or build_engine(config.database_url)
    session_factory = build_session_factory(engine)
    cache = cache or build_cache(config)

    logger.info(
        f"Services ready: database={engine.url.render_as_string(hide_password=True)} "
        f"cache_namespace={cache.namespace}"
    )
    return Services(
        config=config,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        catalog=CatalogService(session_factory, cache, config),
        inventory=InventoryStore(session_factory, cache, dispatcher),
    )
