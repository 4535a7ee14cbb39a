"""Catalog collaborators consumed by the scheduler.

The dashboard owns customers, services and invoices; the engine only needs
read-only snapshots of them:

- ServiceCatalog: services with an expiry date (domains, hosting, VPS)
- InvoiceCatalog: invoices with an active reminder schedule

In-memory implementations back tests and embedding hosts that already hold
the data; ``HttpServiceCatalog`` and ``SqlInvoiceCatalog`` are the
production adapters.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

import httpx
from sqlmodel import Session, select

from notification_engine.models.invoice_schedule import InvoiceSchedule, RecurrenceConfig
from notification_engine.models.notification import (
    NotificationRecord,
    NotificationStatus,
    ServiceType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceSnapshot:
    """A service with an expiry date, as seen by the scheduler."""

    service_type: ServiceType
    service_id: str
    expiry_date: date
    recipient_email: str
    customer_id: str | None = None
    service_name: str | None = None


@dataclass(frozen=True)
class InvoiceScheduleSnapshot:
    """An invoice with its reminder schedule and the cycles already notified."""

    invoice_id: str
    config: RecurrenceConfig
    due_date: date | None
    recipient_email: str
    already_fired_cycle_keys: frozenset[str] = field(default_factory=frozenset)
    customer_id: str | None = None
    invoice_number: str | None = None


class ServiceCatalog(Protocol):
    def list_expiring_services(self) -> list[ServiceSnapshot]: ...


class InvoiceCatalog(Protocol):
    def list_active_recurrence_configs(self) -> list[InvoiceScheduleSnapshot]: ...


class StaticServiceCatalog:
    """Service catalog over a fixed list of snapshots."""

    def __init__(self, services: Iterable[ServiceSnapshot] = ()) -> None:
        self.services = list(services)

    def list_expiring_services(self) -> list[ServiceSnapshot]:
        return list(self.services)


class StaticInvoiceCatalog:
    """Invoice catalog over a fixed list of snapshots."""

    def __init__(self, invoices: Iterable[InvoiceScheduleSnapshot] = ()) -> None:
        self.invoices = list(invoices)

    def list_active_recurrence_configs(self) -> list[InvoiceScheduleSnapshot]:
        return list(self.invoices)


class HttpServiceCatalog:
    """Service catalog served by the dashboard over HTTP.

    Expects a JSON array of objects with ``serviceType``, ``serviceId``,
    ``expiryDate`` (ISO date) and ``recipientEmail``; ``customerId`` and
    ``serviceName`` are optional. Entries without an expiry date are skipped.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def list_expiring_services(self) -> list[ServiceSnapshot]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        response = self._client.get(self.url, headers=headers)
        response.raise_for_status()

        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("data", [])

        snapshots = []
        for item in payload:
            snapshot = self._parse(item)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def _parse(self, item: dict[str, Any]) -> ServiceSnapshot | None:
        if not item.get("expiryDate") or not item.get("recipientEmail"):
            logger.debug(
                "Skipping service without expiry date or recipient",
                extra={"service_id": item.get("serviceId")},
            )
            return None
        try:
            return ServiceSnapshot(
                service_type=ServiceType(item["serviceType"]),
                service_id=str(item["serviceId"]),
                expiry_date=date.fromisoformat(str(item["expiryDate"])[:10]),
                recipient_email=item["recipientEmail"],
                customer_id=str(item["customerId"]) if item.get("customerId") else None,
                service_name=item.get("serviceName"),
            )
        except (KeyError, ValueError) as e:
            logger.warning(
                "Skipping unreadable service entry",
                extra={"service_id": item.get("serviceId"), "error": str(e)},
            )
            return None


class SqlInvoiceCatalog:
    """Invoice catalog backed by the ``invoice_schedules`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_active_recurrence_configs(self) -> list[InvoiceScheduleSnapshot]:
        schedules = self.session.exec(
            select(InvoiceSchedule)
            .where(InvoiceSchedule.enabled == True)  # noqa: E712
            .order_by(InvoiceSchedule.id)
        ).all()

        return [
            InvoiceScheduleSnapshot(
                invoice_id=schedule.invoice_id,
                config=schedule.to_config(),
                due_date=schedule.due_date,
                recipient_email=schedule.recipient_email,
                already_fired_cycle_keys=self._fired_cycle_keys(schedule.invoice_id),
                customer_id=schedule.customer_id,
                invoice_number=schedule.invoice_number,
            )
            for schedule in schedules
        ]

    def _fired_cycle_keys(self, invoice_id: str) -> frozenset[str]:
        keys = self.session.exec(
            select(NotificationRecord.cycle_key)
            .where(NotificationRecord.service_type == ServiceType.INVOICE)
            .where(NotificationRecord.service_id == invoice_id)
            .where(NotificationRecord.status != NotificationStatus.CANCELLED)
        ).all()
        return frozenset(keys)
