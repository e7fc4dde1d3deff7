"""
Alembic environment for the billing ledger schema.

Revisions are raw SQL through op.execute; there is no ORM metadata. The
database URL comes from sqlalchemy.url when set (offline SQL generation,
tests) and from Vault's admin credentials otherwise. Each revision commits
in its own transaction.

Usage:
    alembic upgrade head
    alembic upgrade head --sql > schema.sql
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def get_url() -> str:
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url

    from clients.vault_client import get_admin_database_url
    return get_admin_database_url()


def run_migrations_offline() -> None:
    """Emit the migration SQL to the output buffer without connecting."""
    context.configure(
        url=get_url(),
        target_metadata=None,
        literal_binds=True,
        transaction_per_migration=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(get_url(), poolclass=pool.NullPool)

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=None,
            transaction_per_migration=True,
        )

        with context.begin_transaction():
            context.run_migrations()

    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
