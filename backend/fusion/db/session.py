# backend/fusion/db/session.py
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fusion.core.config import settings

logger = logging.getLogger(__name__)

fastapi_async_engine: AsyncEngine | None = None
FastAPISessionLocal: async_sessionmaker[AsyncSession] | None = None


def _initialize_db_resources() -> None:
    """
    Create the async engine and session maker.
    Called by the lifespan manager; a second call is a no-op.
    """
    global fastapi_async_engine, FastAPISessionLocal

    if fastapi_async_engine is not None:
        logger.info("Asynchronous database resources already initialized.")
        return

    db_url_str = str(settings.ASYNC_SQLALCHEMY_DATABASE_URL)
    logger.info("Initializing asynchronous database engine and session maker.")
    try:
        current_engine = create_async_engine(
            db_url_str,
            pool_pre_ping=True,
            echo=settings.DB_ECHO,
        )
    except Exception as e:
        logger.critical(f"Failed to initialize asynchronous database engine: {e}", exc_info=True)
        raise RuntimeError(f"Failed to initialize asynchronous database engine: {e}") from e

    fastapi_async_engine = current_engine
    FastAPISessionLocal = async_sessionmaker(
        bind=current_engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )
    logger.info(
        f"Asynchronous database engine ({db_url_str.split('@')[-1]}) configured successfully."
    )


async def _dispose_db_resources() -> None:
    global fastapi_async_engine, FastAPISessionLocal
    if fastapi_async_engine:
        logger.info("Disposing asynchronous database engine.")
        await fastapi_async_engine.dispose()
    fastapi_async_engine = None
    FastAPISessionLocal = None


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    if FastAPISessionLocal is None:
        logger.critical("FastAPISessionLocal is not initialized.")
        raise RuntimeError(
            "FastAPISessionLocal is not initialized. "
            "Ensure DB resources are initialized via lifespan."
        )
    async with FastAPISessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            logger.error("Async DB session rolled back due to an exception.", exc_info=True)
            raise


async def check_database_connection() -> bool:
    if fastapi_async_engine is None:
        return False
    try:
        async with fastapi_async_engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database connection check failed: {e}", exc_info=settings.DEBUG)
        return False
    return True


async def lifespan_db_manager(event_type: str) -> None:
    lifespan_logger = logging.getLogger("fusion.db.lifespan")

    if event_type == "startup":
        lifespan_logger.info("Lifespan: Startup event - Initializing DB resources.")
        _initialize_db_resources()
        if not await check_database_connection():
            await _dispose_db_resources()
            raise RuntimeError("Database connection test failed on startup.")
        lifespan_logger.info("Lifespan: Database connection successful on startup.")

    elif event_type == "shutdown":
        lifespan_logger.info("Lifespan: Shutdown event - Disposing DB resources.")
        await _dispose_db_resources()
