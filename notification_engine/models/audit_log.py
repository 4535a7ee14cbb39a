"""AuditLog entity model for notification delivery and operator actions."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from notification_engine.clock import utcnow


class AuditLog(SQLModel, table=True):
    """Audit log database model for immutable activity records."""

    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    actor: str | None = Field(default=None, max_length=255, index=True)
    action: str = Field(max_length=50, index=True)
    entity_type: str = Field(max_length=50, index=True)
    entity_id: UUID | None = Field(default=None, index=True)
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    timestamp: datetime = Field(default_factory=utcnow, index=True)
