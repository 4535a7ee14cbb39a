"""Database session management for PostgreSQL."""

from collections.abc import Generator
from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from notification_engine.config import get_settings


def normalize_database_url(database_url: str) -> str:
    """Select the psycopg v3 driver for plain postgresql:// URLs."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


@lru_cache
def get_engine() -> Engine:
    """Create the engine on first use so imports do not need DATABASE_URL."""
    settings = get_settings()
    database_url = normalize_database_url(settings.DATABASE_URL)

    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        connect_args=(
            {"sslmode": settings.DATABASE_SSLMODE}
            if database_url.startswith("postgresql")
            else {}
        ),
    )


def get_session() -> Generator[Session, None, None]:
    """Get database session with automatic cleanup."""
    with Session(get_engine()) as session:
        yield session
