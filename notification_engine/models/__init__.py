"""SQLModel entities for the notification engine."""

from notification_engine.models.audit_log import AuditLog
from notification_engine.models.invoice_schedule import (
    InvoiceSchedule,
    RecurrenceConfig,
    ReminderFrequency,
)
from notification_engine.models.notification import (
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    ServiceType,
)

__all__ = [
    "AuditLog",
    "InvoiceSchedule",
    "RecurrenceConfig",
    "ReminderFrequency",
    "NotificationRecord",
    "NotificationStatus",
    "NotificationType",
    "ServiceType",
]
