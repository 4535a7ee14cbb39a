"""Recurrence rule evaluation for invoice reminders.

Two independent sources of invoice notifications:

1. The regular cadence: one INVOICE_REMINDER per occurrence of the
   configured frequency, starting at ``start_date``.
2. The due-date reminder: a single INVOICE_DUE_SOON once ``now`` reaches
   ``due_date - days_before_due``.

Cycle keys for the two are built by separate functions with distinct
prefixes, so they can never be confused with each other or with the bare
ISO dates used by the expiry family.
"""

import calendar
from collections.abc import Collection
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from notification_engine.models.invoice_schedule import RecurrenceConfig, ReminderFrequency
from notification_engine.models.notification import NotificationType

FIXED_PERIOD_DAYS = {
    ReminderFrequency.WEEKLY: 7,
    ReminderFrequency.BIWEEKLY: 14,
}

MONTH_STEPS = {
    ReminderFrequency.MONTHLY: 1,
    ReminderFrequency.QUARTERLY: 3,
    ReminderFrequency.YEARLY: 12,
}


@dataclass(frozen=True)
class RecurrenceOccurrence:
    """A due invoice notification."""

    notification_type: NotificationType
    cycle_key: str
    scheduled_at: datetime
    occurrence_index: int | None = None
    occurrence_date: date | None = None


def occurrence_cycle_key(occurrence_day: date) -> str:
    return f"occurrence:{occurrence_day.isoformat()}"


def due_soon_cycle_key(due_date: date) -> str:
    return f"due:{due_date.isoformat()}"


def add_months(day: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def occurrence_date(config: RecurrenceConfig, index: int) -> date:
    """Date of the ``index``-th occurrence (0 is ``start_date``).

    Month-based cadences are computed from ``start_date`` each time so the
    day of month does not drift after a short month.
    """
    if config.frequency in MONTH_STEPS:
        return add_months(config.start_date, index * MONTH_STEPS[config.frequency])
    if config.frequency == ReminderFrequency.CUSTOM:
        period = config.interval_days
    else:
        period = FIXED_PERIOD_DAYS[config.frequency]
    return config.start_date + timedelta(days=index * period)


def fire_time(day: date, send_time: time, tz: tzinfo = timezone.utc) -> datetime:
    """Local ``day`` at ``send_time`` in ``tz``, as naive UTC."""
    local = datetime.combine(day, send_time, tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def evaluate_recurrence(
    config: RecurrenceConfig,
    due_date: date | None,
    now: datetime,
    fired_cycle_keys: Collection[str] = frozenset(),
    tz: tzinfo = timezone.utc,
) -> list[RecurrenceOccurrence]:
    """Return every invoice notification due at ``now`` that has not fired yet.

    Args:
        config: The invoice's reminder schedule
        due_date: Invoice due date (None disables the due-date reminder)
        now: Naive UTC evaluation time
        fired_cycle_keys: Keys that already have a non-cancelled record
        tz: Zone in which ``send_time`` is interpreted

    Returns:
        Occurrences in chronological order; empty when the schedule is disabled
    """
    if not config.enabled:
        return []

    due: list[RecurrenceOccurrence] = []

    index = 0
    while True:
        day = occurrence_date(config, index)
        scheduled_at = fire_time(day, config.send_time, tz)
        if scheduled_at > now:
            break
        cycle_key = occurrence_cycle_key(day)
        if cycle_key not in fired_cycle_keys:
            due.append(
                RecurrenceOccurrence(
                    notification_type=NotificationType.INVOICE_REMINDER,
                    cycle_key=cycle_key,
                    scheduled_at=scheduled_at,
                    occurrence_index=index,
                    occurrence_date=day,
                )
            )
        index += 1

    if due_date is not None:
        trigger_day = due_date - timedelta(days=config.days_before_due)
        scheduled_at = fire_time(trigger_day, config.send_time, tz)
        cycle_key = due_soon_cycle_key(due_date)
        if scheduled_at <= now and cycle_key not in fired_cycle_keys:
            due.append(
                RecurrenceOccurrence(
                    notification_type=NotificationType.INVOICE_DUE_SOON,
                    cycle_key=cycle_key,
                    scheduled_at=scheduled_at,
                )
            )

    return due
