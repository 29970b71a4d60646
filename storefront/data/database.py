"""
Database connection and session management.
Uses SQLAlchemy; Postgres in production, SQLite for local runs and tests.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for all our database models
Base = declarative_base()


def build_engine(database_url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    pool_pre_ping ensures pooled connections are alive before use. SQLite
    connections are shared across the request threads of the API server.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        return create_engine(database_url, connect_args=connect_args, **kwargs)
    return create_engine(database_url, pool_pre_ping=True, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory; objects stay readable after commit for view building."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """Create all tables if they don't exist. In production, use migrations instead."""
    # Import models so they register on Base.metadata
    from storefront.data import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
