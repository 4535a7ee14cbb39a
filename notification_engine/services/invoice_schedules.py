"""Invoice reminder schedule management."""

import logging
from datetime import datetime

from sqlmodel import Session, select

from notification_engine.models.invoice_schedule import (
    InvoiceSchedule,
    InvoiceScheduleRequest,
)

logger = logging.getLogger(__name__)


def get_invoice_schedule(session: Session, invoice_id: str) -> InvoiceSchedule | None:
    """Get the stored schedule for an invoice."""
    return session.exec(
        select(InvoiceSchedule).where(InvoiceSchedule.invoice_id == invoice_id)
    ).first()


def upsert_invoice_schedule(
    session: Session,
    data: InvoiceScheduleRequest,
    now: datetime,
) -> tuple[InvoiceSchedule, bool]:
    """Create or replace the reminder schedule of an invoice.

    Disabling a schedule stops future reminders; records already created
    are left alone.

    Returns:
        (schedule, created)
    """
    schedule = get_invoice_schedule(session, data.invoice_id)
    created = schedule is None
    if schedule is None:
        schedule = InvoiceSchedule(
            invoice_id=data.invoice_id,
            recipient_email=data.recipient_email,
            start_date=data.start_date,
            created_at=now,
        )

    for key, value in data.model_dump().items():
        setattr(schedule, key, value)
    schedule.updated_at = now

    session.add(schedule)
    session.commit()
    session.refresh(schedule)

    logger.info(
        "Invoice schedule saved",
        extra={
            "invoice_id": schedule.invoice_id,
            "frequency": schedule.frequency.value,
            "enabled": schedule.enabled,
            "created": created,
        },
    )
    return schedule, created
