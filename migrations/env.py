"""Alembic environment: migrations run against DATABASE_URL."""

from alembic import context

from cod_relay.core.database import Base, make_engine
from cod_relay.core.dependencies import get_settings
from cod_relay.core.models import ShopSession  # noqa: F401  # registers the table

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=get_settings().database_url,
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(get_settings().database_url)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
