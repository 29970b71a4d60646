"""
Shared fixtures: in-memory SQLite catalog, fakeredis-backed cache, recorded alerts.
"""
import fakeredis
import pytest
from sqlalchemy.pool import StaticPool

from storefront.cache.cache import CacheClient
from storefront.catalog.search import CatalogService
from storefront.core.config import StorefrontConfig
from storefront.core.services import Services
from storefront.data.database import build_engine, build_session_factory, create_tables
from storefront.inventory.inventory_store import InventoryStore


@pytest.fixture
def config():
    return StorefrontConfig(database_url="sqlite://", redis_url=None)


@pytest.fixture
def engine():
    # One shared connection so every session sees the same in-memory database
    engine = build_engine("sqlite://", poolclass=StaticPool)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def redis_server():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def cache(redis_server):
    return CacheClient(client=redis_server, namespace="test")


@pytest.fixture
def alerts():
    """List that collects every dispatched StockAlert."""
    return []


@pytest.fixture
def inventory(session_factory, cache, alerts):
    return InventoryStore(session_factory, cache, dispatcher=alerts.append)


@pytest.fixture
def catalog(session_factory, cache, config):
    return CatalogService(session_factory, cache, config)


@pytest.fixture
def services(config, engine, session_factory, cache, catalog, inventory):
    return Services(
        config=config,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        catalog=catalog,
        inventory=inventory,
    )


@pytest.fixture
def anime(catalog):
    """
    Category "Anime" with subcategories "Naruto" and "Bleach",
    plus an unrelated root "Gaming" with subcategory "Zelda".
    """
    root = catalog.create_category("Anime")
    naruto = catalog.create_category("Naruto", parent_id=root["_id"])
    bleach = catalog.create_category("Bleach", parent_id=root["_id"])
    gaming = catalog.create_category("Gaming")
    zelda = catalog.create_category("Zelda", parent_id=gaming["_id"])
    return {"anime": root, "naruto": naruto, "bleach": bleach, "gaming": gaming, "zelda": zelda}


@pytest.fixture
def make_product(catalog):
    """Factory creating products with sensible defaults."""

    def _make(name="Plain Tee", price=500.0, size_stock=None, **fields):
        if size_stock is None and "total_stock" not in fields:
            size_stock = {"S": 10, "M": 10, "L": 10, "XL": 10, "XXL": 10}
        return catalog.create_product(name=name, price=price, size_stock=size_stock, **fields)

    return _make
