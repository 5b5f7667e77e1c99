# /backend/alembic/env.py
import asyncio
import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

# --- BEGIN PATH MODIFICATION ---
alembic_dir = Path(__file__).resolve().parent
project_root = alembic_dir.parent

if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
# --- END PATH MODIFICATION ---

# --- Alembic Config ---
config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# --- Application Imports ---
try:
    from fusion.core.config import settings

    # Registers every model with Base.metadata
    from fusion.db.base import Base

    logger.info("Successfully imported application settings, Base, and models.")
except ImportError as e:
    logger.error(f"Failed to import application modules. Error: {e}", exc_info=True)
    raise

# --- Target Metadata ---
target_metadata = Base.metadata

db_url_for_alembic_async = str(settings.ASYNC_SQLALCHEMY_DATABASE_URL)


def _masked(url: str) -> str:
    return make_url(url).render_as_string(hide_password=True)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (uses a synchronous URL)."""
    sync_url = str(settings.SYNC_SQLALCHEMY_DATABASE_URL)
    logger.info(f"Running migrations in OFFLINE mode using URL: {_masked(sync_url)}")

    context.configure(
        url=sync_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()
    logger.info("Offline migrations complete.")


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()
    logger.info("Online migration run completed within the transaction.")


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode using an ASYNC engine."""
    logger.info(f"Running migrations in ONLINE mode using URL: {_masked(db_url_for_alembic_async)}")
    connectable = create_async_engine(db_url_for_alembic_async, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()
    logger.info("Async engine disposed. Online migrations fully complete.")


# --- Main Execution Logic ---
if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
