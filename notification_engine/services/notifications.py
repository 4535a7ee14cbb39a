"""Notification store operations and lifecycle controller.

Store primitives used by the scheduler and the delivery worker:
- create_if_absent(): conditional create guarded by the dedup unique constraint
- claim_for_delivery(): atomic PENDING/FAILED -> SENDING transition
- mark_sent() / mark_failed(): outcome of a claimed delivery

Operator lifecycle operations:
- list_notifications(), get_notification()
- update_notification(), cancel_notification(), resume_notification()
- delete_notification() (administrative hard delete)

Every state change is a conditional UPDATE on the status observed when the
record was read, so concurrent workers and operators cannot overwrite each
other's transitions.
"""

import logging
import math
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import ObjectDeletedError
from sqlmodel import Session, func, select

from notification_engine.errors import (
    DuplicateNotificationError,
    ImmutableRecordError,
    InvalidTransitionError,
    NotificationNotFoundError,
    RecordBusyError,
)
from notification_engine.models.audit_log import AuditLog
from notification_engine.models.notification import (
    NotificationCreate,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    NotificationUpdate,
    ServiceType,
)

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


# -----------------------------------------------------------------------------
# Store primitives
# -----------------------------------------------------------------------------


def find_by_dedup_key(
    session: Session,
    service_type: ServiceType,
    service_id: str,
    notification_type: NotificationType,
    cycle_key: str,
) -> NotificationRecord | None:
    """Look up the record occupying a dedup key, if any."""
    return session.exec(
        select(NotificationRecord)
        .where(NotificationRecord.service_type == service_type)
        .where(NotificationRecord.service_id == service_id)
        .where(NotificationRecord.notification_type == notification_type)
        .where(NotificationRecord.cycle_key == cycle_key)
    ).first()


def create_if_absent(
    session: Session,
    data: NotificationCreate,
    now: datetime,
) -> NotificationRecord:
    """Create a PENDING record unless its dedup key is already taken.

    Args:
        session: Database session
        data: Rendered notification
        now: Creation time

    Returns:
        NotificationRecord: The newly created record

    Raises:
        DuplicateNotificationError: If a record with the same key exists,
            including one inserted concurrently by another scheduler run
    """
    key = (
        data.service_type.value,
        data.service_id,
        data.notification_type.value,
        data.cycle_key,
    )

    existing = find_by_dedup_key(
        session,
        data.service_type,
        data.service_id,
        data.notification_type,
        data.cycle_key,
    )
    if existing is not None:
        raise DuplicateNotificationError(*key)

    record = NotificationRecord(
        **data.model_dump(),
        status=NotificationStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    session.add(record)

    try:
        session.commit()
    except IntegrityError as e:
        # Lost the race: the unique constraint is the source of truth
        session.rollback()
        raise DuplicateNotificationError(*key) from e

    session.refresh(record)
    return record


def _conditional_update(
    session: Session,
    record_id: UUID,
    expected_status: NotificationStatus,
    values: dict[str, Any],
    extra_conditions: tuple = (),
) -> bool:
    """UPDATE the record only if it is still in ``expected_status``.

    The statement joins the session transaction; the caller commits.

    Returns:
        True if exactly one row changed
    """
    statement = (
        update(NotificationRecord)
        .where(NotificationRecord.id == record_id)
        .where(NotificationRecord.status == expected_status)
        .values(**values)
    )
    for condition in extra_conditions:
        statement = statement.where(condition)

    result = session.connection().execute(statement)
    return result.rowcount == 1


def claim_for_delivery(
    session: Session,
    record: NotificationRecord,
    max_retries: int,
    now: datetime,
) -> bool:
    """Atomically move a PENDING or retryable FAILED record to SENDING.

    The claim is committed before any delivery attempt, so at most one
    worker can ever hold it.

    Returns:
        True if this caller owns the claim
    """
    try:
        expected = record.status
    except ObjectDeletedError:
        # Deleted by an operator after the batch was fetched
        return False
    if expected not in (NotificationStatus.PENDING, NotificationStatus.FAILED):
        return False

    conditions: tuple = ()
    if expected == NotificationStatus.FAILED:
        conditions = (NotificationRecord.retry_count < max_retries,)

    claimed = _conditional_update(
        session,
        record.id,
        expected,
        {"status": NotificationStatus.SENDING, "updated_at": now},
        conditions,
    )
    session.commit()
    if not claimed:
        return False
    session.refresh(record)
    return True


def mark_sent(session: Session, record: NotificationRecord, now: datetime) -> bool:
    """Record a successful delivery of a claimed record."""
    updated = _conditional_update(
        session,
        record.id,
        NotificationStatus.SENDING,
        {
            "status": NotificationStatus.SENT,
            "sent_at": now,
            "error_message": None,
            "updated_at": now,
        },
    )
    _add_audit(
        session,
        record,
        action="notification.sent",
        details={"recipient": record.recipient_email, "retry_count": record.retry_count},
    )
    session.commit()
    session.refresh(record)
    return updated


def mark_failed(
    session: Session,
    record: NotificationRecord,
    error: str,
    now: datetime,
    next_attempt_at: datetime | None,
    exhaust_retries_at: int | None = None,
) -> bool:
    """Record a failed delivery of a claimed record.

    Args:
        session: Database session
        record: The claimed record
        error: Failure reason, truncated to MAX_ERROR_LENGTH
        now: Failure time
        next_attempt_at: Backoff-adjusted earliest retry, or None to keep
            the current schedule (terminal failures)
        exhaust_retries_at: Set retry_count to this value instead of
            incrementing it (permanent failures)
    """
    retry_count: Any = NotificationRecord.retry_count + 1
    if exhaust_retries_at is not None:
        retry_count = exhaust_retries_at

    values: dict[str, Any] = {
        "status": NotificationStatus.FAILED,
        "retry_count": retry_count,
        "error_message": error[:MAX_ERROR_LENGTH] if error else None,
        "updated_at": now,
    }
    if next_attempt_at is not None:
        values["scheduled_at"] = next_attempt_at

    updated = _conditional_update(session, record.id, NotificationStatus.SENDING, values)
    _add_audit(
        session,
        record,
        action="notification.failed",
        details={"recipient": record.recipient_email, "error": values["error_message"]},
    )
    session.commit()
    session.refresh(record)
    return updated


def _add_audit(
    session: Session,
    record: NotificationRecord,
    action: str,
    details: dict[str, Any] | None = None,
    actor: str | None = None,
) -> None:
    session.add(
        AuditLog(
            actor=actor,
            action=action,
            entity_type="notification",
            entity_id=record.id,
            details={
                "service_type": record.service_type.value,
                "service_id": record.service_id,
                "notification_type": record.notification_type.value,
                "cycle_key": record.cycle_key,
                **(details or {}),
            },
        )
    )


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


def get_notification(session: Session, notification_id: UUID) -> NotificationRecord:
    """Get a notification by id.

    Raises:
        NotificationNotFoundError: If no such record exists
    """
    record = session.get(NotificationRecord, notification_id)
    if record is None:
        raise NotificationNotFoundError(notification_id)
    return record


def list_notifications(
    session: Session,
    status: NotificationStatus | None = None,
    notification_type: NotificationType | None = None,
    service_type: ServiceType | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[NotificationRecord], int]:
    """
    Get a page of notifications, newest first, with optional filtering.
    Returns (records, total_count).
    """
    query = select(NotificationRecord)
    count_query = select(func.count()).select_from(NotificationRecord)

    filters = []
    if status is not None:
        filters.append(NotificationRecord.status == status)
    if notification_type is not None:
        filters.append(NotificationRecord.notification_type == notification_type)
    if service_type is not None:
        filters.append(NotificationRecord.service_type == service_type)

    for condition in filters:
        query = query.where(condition)
        count_query = count_query.where(condition)

    offset = (max(page, 1) - 1) * limit
    query = (
        query.order_by(NotificationRecord.created_at.desc(), NotificationRecord.id)
        .offset(offset)
        .limit(limit)
    )

    records = list(session.exec(query).all())
    total = session.exec(count_query).one()

    return records, total


def total_pages(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit)) if limit else 1


def count_by_status(session: Session) -> dict[str, int]:
    """Number of records per status (all statuses present, zero-filled)."""
    rows = session.exec(
        select(NotificationRecord.status, func.count())
        .group_by(NotificationRecord.status)
    ).all()
    counts = {status.value: 0 for status in NotificationStatus}
    for status, count in rows:
        counts[NotificationStatus(status).value] = count
    return counts


# -----------------------------------------------------------------------------
# Lifecycle controller
# -----------------------------------------------------------------------------


def update_notification(
    session: Session,
    notification_id: UUID,
    changes: NotificationUpdate,
    now: datetime,
    actor: str | None = None,
) -> NotificationRecord:
    """Apply an operator edit to a notification.

    Editable fields are subject, content, scheduled_at and status. The only
    status targets are PENDING (resume / manual recovery) and CANCELLED
    (pause). Resuming a FAILED record resets its retry budget; resuming a
    CANCELLED one changes nothing else.

    Raises:
        NotificationNotFoundError: If no such record exists
        ImmutableRecordError: If the record was already sent
        RecordBusyError: If a worker holds the record, or it changed
            between read and write
        InvalidTransitionError: If the requested status change is not allowed
    """
    record = get_notification(session, notification_id)
    current = record.status

    if current == NotificationStatus.SENT:
        raise ImmutableRecordError(notification_id)
    if current == NotificationStatus.SENDING:
        raise RecordBusyError(notification_id, current.value)

    requested = changes.model_dump(exclude_unset=True)
    values: dict[str, Any] = {}

    for field_name in ("subject", "content"):
        if requested.get(field_name) is not None:
            values[field_name] = requested[field_name]
    if "scheduled_at" in requested:
        values["scheduled_at"] = requested["scheduled_at"]

    action = "notification.updated"
    target = requested.get("status")
    if target is not None and target != current:
        if target == NotificationStatus.CANCELLED:
            if current != NotificationStatus.PENDING:
                raise InvalidTransitionError(
                    f"Only pending notifications can be cancelled (status is {current.value})"
                )
            action = "notification.cancelled"
        elif target == NotificationStatus.PENDING:
            if current == NotificationStatus.FAILED:
                values["retry_count"] = 0
                values["error_message"] = None
            action = "notification.resumed"
        else:
            raise InvalidTransitionError(
                f"Status cannot be set to {target.value} manually"
            )
        values["status"] = target

    if not values:
        return record

    values["updated_at"] = now
    if not _conditional_update(session, notification_id, current, values):
        session.rollback()
        latest = get_notification(session, notification_id)
        if latest.status == NotificationStatus.SENT:
            raise ImmutableRecordError(notification_id)
        raise RecordBusyError(notification_id, latest.status.value)

    _add_audit(
        session,
        record,
        action=action,
        actor=actor,
        details={
            "previous_status": current.value,
            "changes": sorted(k for k in values if k != "updated_at"),
        },
    )
    session.commit()
    session.refresh(record)

    logger.info(
        "Notification updated",
        extra={
            "notification_id": str(notification_id),
            "action": action,
            "previous_status": current.value,
            "status": record.status.value,
        },
    )

    return record


def cancel_notification(
    session: Session,
    notification_id: UUID,
    now: datetime,
    actor: str | None = None,
) -> NotificationRecord:
    """Pause a pending notification."""
    return update_notification(
        session,
        notification_id,
        NotificationUpdate(status=NotificationStatus.CANCELLED),
        now,
        actor,
    )


def resume_notification(
    session: Session,
    notification_id: UUID,
    now: datetime,
    actor: str | None = None,
) -> NotificationRecord:
    """Return a cancelled (or exhausted failed) notification to PENDING."""
    return update_notification(
        session,
        notification_id,
        NotificationUpdate(status=NotificationStatus.PENDING),
        now,
        actor,
    )


def delete_notification(
    session: Session,
    notification_id: UUID,
    actor: str | None = None,
) -> None:
    """Hard-delete a notification regardless of its state."""
    record = get_notification(session, notification_id)

    _add_audit(
        session,
        record,
        action="notification.deleted",
        actor=actor,
        details={"status": record.status.value},
    )
    session.delete(record)
    session.commit()

    logger.warning(
        "Notification deleted",
        extra={"notification_id": str(notification_id), "actor": actor},
    )
