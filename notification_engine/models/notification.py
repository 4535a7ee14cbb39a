"""NotificationRecord entity model and API schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from notification_engine.clock import utcnow


class ServiceType(str, Enum):
    """Kinds of entity a notification can refer to."""

    DOMAIN = "DOMAIN"
    HOSTING = "HOSTING"
    VPS = "VPS"
    INVOICE = "INVOICE"


class NotificationType(str, Enum):
    """Notification kinds.

    The first six belong to the expiry family (cycle key = expiry date),
    the last two to the invoice family (cycle key = occurrence or due date).
    """

    EXPIRING_SOON_1 = "EXPIRING_SOON_1"
    EXPIRING_SOON_2 = "EXPIRING_SOON_2"
    EXPIRING_SOON_3 = "EXPIRING_SOON_3"
    EXPIRED = "EXPIRED"
    DELETION_WARNING = "DELETION_WARNING"
    DELETED = "DELETED"
    INVOICE_REMINDER = "INVOICE_REMINDER"
    INVOICE_DUE_SOON = "INVOICE_DUE_SOON"


EXPIRY_NOTIFICATION_TYPES = frozenset({
    NotificationType.EXPIRING_SOON_1,
    NotificationType.EXPIRING_SOON_2,
    NotificationType.EXPIRING_SOON_3,
    NotificationType.EXPIRED,
    NotificationType.DELETION_WARNING,
    NotificationType.DELETED,
})


class NotificationStatus(str, Enum):
    """Delivery lifecycle states."""

    PENDING = "PENDING"
    SENDING = "SENDING"  # Claimed by a delivery worker
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class NotificationRecord(SQLModel, table=True):
    """Notification record database model.

    One row per (service_type, service_id, notification_type, cycle_key).
    The unique constraint is what makes scheduling idempotent under
    concurrent scheduler runs.
    """

    __tablename__ = "notification_records"
    __table_args__ = (
        UniqueConstraint(
            "service_type",
            "service_id",
            "notification_type",
            "cycle_key",
            name="uq_notification_records_dedup_key",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    service_type: ServiceType = Field(index=True)
    service_id: str = Field(max_length=255, index=True)
    notification_type: NotificationType = Field(index=True)
    cycle_key: str = Field(max_length=100)
    customer_id: str | None = Field(default=None, max_length=100)

    recipient_email: str = Field(max_length=255)
    subject: str = Field(max_length=255)
    content: str

    status: NotificationStatus = Field(default=NotificationStatus.PENDING, index=True)
    scheduled_at: datetime | None = Field(default=None, index=True)
    sent_at: datetime | None = Field(default=None)
    error_message: str | None = Field(default=None, max_length=500)
    retry_count: int = Field(default=0)

    # Audit bag; key set is fixed per rule family (see services/templates.py)
    meta: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, nullable=False),
    )

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def dedup_key(self) -> tuple[str, str, str, str]:
        return (
            self.service_type.value,
            self.service_id,
            self.notification_type.value,
            self.cycle_key,
        )


class NotificationCreate(SQLModel):
    """Schema for notification creation (produced by the scheduler)."""

    service_type: ServiceType
    service_id: str = Field(max_length=255)
    notification_type: NotificationType
    cycle_key: str = Field(max_length=100)
    customer_id: str | None = None
    recipient_email: str = Field(max_length=255)
    subject: str = Field(max_length=255)
    content: str
    scheduled_at: datetime | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationUpdate(_CamelModel):
    """Operator edit of a notification. Only the provided fields change."""

    subject: str | None = None
    content: str | None = None
    status: NotificationStatus | None = None
    scheduled_at: datetime | None = None


class NotificationUpdateRequest(NotificationUpdate):
    """PUT body: the edit plus the record id."""

    id: UUID


class NotificationResponse(_CamelModel):
    """Schema for notification response (camelCase on the wire)."""

    id: UUID
    service_type: ServiceType
    service_id: str
    customer_id: str | None
    notification_type: NotificationType
    cycle_key: str
    subject: str
    content: str
    recipient_email: str
    status: NotificationStatus
    scheduled_at: datetime | None
    sent_at: datetime | None
    error_message: str | None
    retry_count: int
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationResponse":
        return cls(
            id=record.id,
            service_type=record.service_type,
            service_id=record.service_id,
            customer_id=record.customer_id,
            notification_type=record.notification_type,
            cycle_key=record.cycle_key,
            subject=record.subject,
            content=record.content,
            recipient_email=record.recipient_email,
            status=record.status,
            scheduled_at=record.scheduled_at,
            sent_at=record.sent_at,
            error_message=record.error_message,
            retry_count=record.retry_count,
            metadata=dict(record.meta or {}),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class Pagination(_CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class NotificationListResponse(_CamelModel):
    """Schema for a page of notifications."""

    success: bool = True
    data: list[NotificationResponse]
    pagination: Pagination


class NotificationEnvelope(_CamelModel):
    success: bool = True
    data: NotificationResponse


class ScheduleResponse(_CamelModel):
    """Result of a scheduling scan."""

    success: bool = True
    total_scheduled: int
    skipped_existing: int = 0
    rejected: int = 0
    by_type: dict[str, int] = {}


class ProcessResponse(_CamelModel):
    """Result of a delivery batch."""

    success: bool = True
    processed: int
    failed: int


class StatsResponse(_CamelModel):
    success: bool = True
    data: dict[str, int]


class DeleteResponse(_CamelModel):
    success: bool = True
    message: str
