"""Domain errors raised by the notification engine."""

from uuid import UUID


class NotificationEngineError(Exception):
    """Base class for notification engine errors."""
    pass


class DuplicateNotificationError(NotificationEngineError):
    """Raised when a record already exists for the dedup key.

    The scheduler treats this as success: another invocation got there first.
    """

    def __init__(
        self,
        service_type: str,
        service_id: str,
        notification_type: str,
        cycle_key: str,
    ) -> None:
        self.key = (service_type, service_id, notification_type, cycle_key)
        super().__init__(
            f"Notification already exists for {service_type}/{service_id} "
            f"{notification_type} cycle {cycle_key}"
        )


class NotificationNotFoundError(NotificationEngineError):
    """Raised when a notification record is not found."""

    def __init__(self, notification_id: UUID) -> None:
        self.notification_id = notification_id
        super().__init__(f"Notification {notification_id} not found")


class ImmutableRecordError(NotificationEngineError):
    """Raised on edit attempts against a SENT record."""

    def __init__(self, notification_id: UUID) -> None:
        self.notification_id = notification_id
        super().__init__(f"Notification {notification_id} was already sent and cannot be modified")


class RecordBusyError(NotificationEngineError):
    """Raised when a record is claimed by a worker or changed concurrently."""

    def __init__(self, notification_id: UUID, status: str) -> None:
        self.notification_id = notification_id
        self.status = status
        super().__init__(
            f"Notification {notification_id} is {status} and cannot be modified right now"
        )


class InvalidTransitionError(NotificationEngineError):
    """Raised when a requested status change is not allowed."""
    pass


class DeliveryError(NotificationEngineError):
    """Wraps a mailer failure. Recorded on the record, never raised to callers of process_due."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)
