"""Database module."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str) -> Engine:
    """
    Build the engine for DATABASE_URL.

    In-memory SQLite databases share a single connection so every session sees
    the same data. Callers must not use that connection from two threads at
    once; see `shares_one_connection`.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def shares_one_connection(engine: Engine) -> bool:
    """True when every checkout returns the same DBAPI connection."""
    return isinstance(engine.pool, StaticPool)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
