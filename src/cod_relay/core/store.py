"""Credential store: one offline access token per shop."""

import logging
import threading
from contextlib import nullcontext
from typing import ContextManager, Iterable

from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cod_relay.core.database import (
    Base,
    make_engine,
    make_session_factory,
    shares_one_connection,
)
from cod_relay.core.errors import StoreUnavailable
from cod_relay.core.models import ShopSession

logger = logging.getLogger("store")

SUPPORTED_DIALECTS = ("postgresql", "sqlite", "mysql", "mariadb")


def _join_scopes(scopes: Iterable[str] | str | None) -> str | None:
    if scopes is None:
        return None
    if isinstance(scopes, str):
        scopes = scopes.split(",")
    ordered = dict.fromkeys(s.strip() for s in scopes if s and s.strip())
    return ",".join(ordered) or None


class CredentialStore:
    """
    Persists Shopify access tokens keyed by shop domain.

    `upsert` is a single INSERT ... ON CONFLICT statement, so duplicate OAuth
    callbacks for the same shop never race into a unique-key violation: the
    last one wins.

    An in-memory SQLite engine has a single connection, so sessions on it are
    serialized with a lock.
    """

    def __init__(self, engine: Engine) -> None:
        if engine.dialect.name not in SUPPORTED_DIALECTS:
            raise ValueError(
                f"Unsupported database dialect: {engine.dialect.name} "
                f"(expected one of {', '.join(SUPPORTED_DIALECTS)})"
            )
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        self._lock: ContextManager = (
            threading.Lock() if shares_one_connection(engine) else nullcontext()
        )

    @classmethod
    def from_url(cls, database_url: str) -> "CredentialStore":
        return cls(make_engine(database_url))

    def create_tables(self) -> None:
        """Create the shop_sessions table if it does not exist."""
        try:
            with self._lock:
                Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error("Error creating tables: %s", e)
            raise StoreUnavailable() from e

    def _upsert_statement(self, values: dict):
        dialect = self.engine.dialect.name
        update = {"access_token": values["access_token"], "scope": values["scope"]}
        if dialect == "postgresql":
            return (
                postgresql.insert(ShopSession)
                .values(**values)
                .on_conflict_do_update(index_elements=[ShopSession.shop], set_=update)
            )
        if dialect == "sqlite":
            return (
                sqlite.insert(ShopSession)
                .values(**values)
                .on_conflict_do_update(index_elements=[ShopSession.shop], set_=update)
            )
        return mysql.insert(ShopSession).values(**values).on_duplicate_key_update(**update)

    def upsert(
        self, shop: str, access_token: str, scopes: Iterable[str] | str | None = None
    ) -> None:
        """
        Insert or replace the access token for a shop.

        Args:
            shop (str): Shop domain.
            access_token (str): Offline access token; must not be empty.
            scopes (Iterable[str] | str | None): Granted scopes, informational only.

        Raises:
            ValueError: If shop or access_token is empty.
            StoreUnavailable: If the database cannot be reached.
        """
        if not shop:
            raise ValueError("shop is required")
        if not access_token:
            raise ValueError("access_token is required")

        stmt = self._upsert_statement(
            {"shop": shop, "access_token": access_token, "scope": _join_scopes(scopes)}
        )
        try:
            with self._lock, self._session_factory() as db:
                db.execute(stmt)
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Error upserting credentials for shop=%s: %s", shop, type(e).__name__)
            raise StoreUnavailable() from e
        logger.info("Stored credentials for shop=%s", shop)

    def get(self, shop: str) -> ShopSession | None:
        """Return the full row for a shop, or None if it is not installed."""
        if not shop:
            return None
        try:
            with self._lock, self._session_factory() as db:
                return db.get(ShopSession, shop)
        except SQLAlchemyError as e:
            logger.error("Error looking up shop=%s: %s", shop, type(e).__name__)
            raise StoreUnavailable() from e

    def lookup(self, shop: str) -> str | None:
        """Return the access token for a shop, or None if it is not installed."""
        session = self.get(shop)
        return session.access_token if session else None
