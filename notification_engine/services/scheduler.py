"""Scheduler: turns catalog snapshots into PENDING notification records.

One invocation:
1. Reads services with an expiry date and evaluates the expiry rules
2. Reads active invoice schedules and evaluates the recurrence rules
3. Renders each due notification and creates it unless its key exists

Running it twice over the same inputs creates nothing the second time.
Existing records are never modified.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlmodel import Session

from notification_engine.catalogs import (
    InvoiceCatalog,
    InvoiceScheduleSnapshot,
    ServiceCatalog,
    ServiceSnapshot,
)
from notification_engine.clock import Clock, SystemClock
from notification_engine.config import Settings, get_settings
from notification_engine.errors import DuplicateNotificationError
from notification_engine.models.notification import NotificationCreate, ServiceType
from notification_engine.services import notifications as store
from notification_engine.services.expiry_rules import ExpiryPolicy, evaluate_expiry
from notification_engine.services.recurrence_rules import evaluate_recurrence
from notification_engine.services.templates import render_expiry, render_invoice

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    """Outcome of one scheduling scan."""

    total_scheduled: int = 0
    skipped_existing: int = 0
    rejected: int = 0  # candidates that failed validation
    by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_scheduled": self.total_scheduled,
            "skipped_existing": self.skipped_existing,
            "rejected": self.rejected,
            "by_type": dict(self.by_type),
        }


class NotificationScheduler:
    """Evaluates the rule sets against the catalogs and creates records."""

    def __init__(
        self,
        service_catalog: ServiceCatalog,
        invoice_catalog: InvoiceCatalog,
        clock: Clock | None = None,
        policy: ExpiryPolicy | None = None,
        tz: tzinfo = timezone.utc,
        company_name: str = "Hosting Services",
        expiry_enabled: bool = True,
    ) -> None:
        self.service_catalog = service_catalog
        self.invoice_catalog = invoice_catalog
        self.clock = clock or SystemClock()
        self.policy = policy or ExpiryPolicy()
        self.tz = tz
        self.company_name = company_name
        self.expiry_enabled = expiry_enabled

    @classmethod
    def from_settings(
        cls,
        service_catalog: ServiceCatalog,
        invoice_catalog: InvoiceCatalog,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> "NotificationScheduler":
        settings = settings or get_settings()
        return cls(
            service_catalog,
            invoice_catalog,
            clock=clock,
            policy=ExpiryPolicy.from_settings(settings),
            tz=ZoneInfo(settings.NOTIFICATION_TIMEZONE),
            company_name=settings.COMPANY_NAME,
            expiry_enabled=settings.SERVICE_EXPIRY_NOTIFICATIONS_ENABLED,
        )

    def schedule_due(self, session: Session) -> ScheduleResult:
        """Create every notification that is due and not yet recorded.

        Args:
            session: Database session

        Returns:
            ScheduleResult with counts of created and already-existing records
        """
        now = self.clock.now()
        result = ScheduleResult()
        created: Counter[str] = Counter()

        if self.expiry_enabled:
            for service in self.service_catalog.list_expiring_services():
                try:
                    candidate = self._expiry_candidate(service, now)
                except ValidationError as e:
                    self._reject(result, service.service_type.value, service.service_id, e)
                    continue
                if candidate is not None:
                    self._create(session, candidate, now, result, created)
        else:
            logger.info("Service expiry notifications disabled, skipping expiry scan")

        for invoice in self.invoice_catalog.list_active_recurrence_configs():
            try:
                candidates = self._invoice_candidates(invoice, now)
            except ValidationError as e:
                self._reject(result, ServiceType.INVOICE.value, invoice.invoice_id, e)
                continue
            for candidate in candidates:
                self._create(session, candidate, now, result, created)

        result.by_type = dict(created)

        logger.info("Scheduling scan complete", extra=result.to_dict())
        return result

    def _expiry_candidate(
        self, service: ServiceSnapshot, now: datetime
    ) -> NotificationCreate | None:
        decision = evaluate_expiry(service, now, self.policy, self.tz)
        if decision is None:
            return None

        subject, content, metadata = render_expiry(service, decision, self.company_name)
        return NotificationCreate(
            service_type=service.service_type,
            service_id=service.service_id,
            notification_type=decision.notification_type,
            cycle_key=decision.cycle_key,
            customer_id=service.customer_id,
            recipient_email=service.recipient_email,
            subject=subject,
            content=content,
            scheduled_at=now,
            meta=metadata,
        )

    def _invoice_candidates(
        self, invoice: InvoiceScheduleSnapshot, now: datetime
    ) -> list[NotificationCreate]:
        occurrences = evaluate_recurrence(
            invoice.config,
            invoice.due_date,
            now,
            invoice.already_fired_cycle_keys,
            self.tz,
        )

        candidates = []
        for occurrence in occurrences:
            subject, content, metadata = render_invoice(
                invoice, occurrence, self.company_name
            )
            candidates.append(
                NotificationCreate(
                    service_type=ServiceType.INVOICE,
                    service_id=invoice.invoice_id,
                    notification_type=occurrence.notification_type,
                    cycle_key=occurrence.cycle_key,
                    customer_id=invoice.customer_id,
                    recipient_email=invoice.recipient_email,
                    subject=subject,
                    content=content,
                    scheduled_at=occurrence.scheduled_at,
                    meta=metadata,
                )
            )
        return candidates

    def _create(
        self,
        session: Session,
        candidate: NotificationCreate,
        now: datetime,
        result: ScheduleResult,
        created: Counter,
    ) -> None:
        try:
            record = store.create_if_absent(session, candidate, now)
        except DuplicateNotificationError as e:
            result.skipped_existing += 1
            logger.debug("Notification already scheduled", extra={"key": e.key})
            return

        result.total_scheduled += 1
        created[record.notification_type.value] += 1
        logger.info(
            "Notification scheduled",
            extra={
                "notification_id": str(record.id),
                "service_type": record.service_type.value,
                "service_id": record.service_id,
                "notification_type": record.notification_type.value,
                "cycle_key": record.cycle_key,
            },
        )

    def _reject(
        self,
        result: ScheduleResult,
        service_type: str,
        service_id: str,
        error: ValidationError,
    ) -> None:
        result.rejected += 1
        logger.warning(
            "Skipping catalog entry that does not fit a notification record",
            extra={
                "service_type": service_type,
                "service_id": service_id[:100],
                "error": str(error)[:500],
            },
        )
