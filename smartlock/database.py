"""Database engine and session management for the local cache."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine usable from the foreground and the sync thread.

    In-memory SQLite lives inside a single connection, so it is pinned with
    StaticPool to keep every thread on the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables on startup."""
    from smartlock import models  # noqa: F401  (registers tables on Base)

    Base.metadata.create_all(engine)
