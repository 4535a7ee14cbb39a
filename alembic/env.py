"""Alembic environment: migrates the database named by DATABASE_URL."""

from logging.config import fileConfig

from sqlalchemy import pool
from sqlmodel import SQLModel, create_engine

from alembic import context

from notification_engine.config import get_settings
from notification_engine.db.session import normalize_database_url
from notification_engine.models import (  # noqa: F401
    AuditLog,
    InvoiceSchedule,
    NotificationRecord,
)

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

settings = get_settings()
url = normalize_database_url(settings.DATABASE_URL)


def migrate() -> None:
    if context.is_offline_mode():
        # Emit SQL only
        context.configure(
            url=url,
            target_metadata=SQLModel.metadata,
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
        )
        with context.begin_transaction():
            context.run_migrations()
        return

    connect_args = {"sslmode": settings.DATABASE_SSLMODE} if url.startswith("postgresql") else {}
    engine = create_engine(url, poolclass=pool.NullPool, connect_args=connect_args)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=SQLModel.metadata)
        with context.begin_transaction():
            context.run_migrations()


migrate()
