"""Database session management."""

import os
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from sentencify.utils.logging import log, get_logger

MODULE = "db"
logger = get_logger()

POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB", "sentencify")
POSTGRES_USER = os.getenv("POSTGRES_USER", "sentencify")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "sentencify-dev")

# DATABASE_URL overrides the POSTGRES_* parts (any async SQLAlchemy URL)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)


def create_session_factory(
    url: Optional[str] = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build an engine and session factory for ``url`` (default: DATABASE_URL)."""
    engine = create_async_engine(url or DATABASE_URL, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, factory


# Async engine (for the API and the chat cache)
engine, async_session = create_session_factory()

log.debug(logger, MODULE, "configured", "Database engine configured",
          host=POSTGRES_HOST, port=POSTGRES_PORT, database=POSTGRES_DB)
