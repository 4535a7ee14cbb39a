"""Subject and body rendering for scheduled notifications.

Each producer writes a fixed metadata key set so operators (and the delivery
worker) can rely on it:

- expiry:             rule, expiry_date, days_remaining, threshold_days, service_name
- invoice_recurrence: rule, invoice_id, invoice_number, frequency,
                      occurrence_index, occurrence_date, cc_accounting_team
- invoice_due_soon:   rule, invoice_id, invoice_number, due_date,
                      days_before_due, cc_accounting_team
"""

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel

from notification_engine.catalogs import InvoiceScheduleSnapshot, ServiceSnapshot
from notification_engine.models.notification import NotificationType
from notification_engine.services.expiry_rules import ExpiryDecision
from notification_engine.services.recurrence_rules import RecurrenceOccurrence

SUBJECT_MAX_LENGTH = 255


SERVICE_LABELS = {
    "DOMAIN": "domain",
    "HOSTING": "hosting plan",
    "VPS": "VPS",
}


class ExpiryMetadata(BaseModel):
    rule: Literal["expiry"] = "expiry"
    expiry_date: date
    days_remaining: int
    threshold_days: int | None = None
    service_name: str | None = None


class InvoiceReminderMetadata(BaseModel):
    rule: Literal["invoice_recurrence"] = "invoice_recurrence"
    invoice_id: str
    invoice_number: str | None = None
    frequency: str
    occurrence_index: int
    occurrence_date: date
    cc_accounting_team: bool = False


class InvoiceDueSoonMetadata(BaseModel):
    rule: Literal["invoice_due_soon"] = "invoice_due_soon"
    invoice_id: str
    invoice_number: str | None = None
    due_date: date
    days_before_due: int
    cc_accounting_team: bool = False


def _service_label(service: ServiceSnapshot) -> str:
    kind = SERVICE_LABELS.get(service.service_type.value, service.service_type.value)
    name = service.service_name or service.service_id
    return f"{kind} {name}"


def render_expiry(
    service: ServiceSnapshot,
    decision: ExpiryDecision,
    company_name: str,
) -> tuple[str, str, dict[str, Any]]:
    """Render an expiry-family notification.

    Returns:
        (subject, content, metadata)
    """
    label = _service_label(service)
    expiry = service.expiry_date.strftime("%d/%m/%Y")
    days = decision.days_remaining

    if decision.notification_type in (
        NotificationType.EXPIRING_SOON_1,
        NotificationType.EXPIRING_SOON_2,
        NotificationType.EXPIRING_SOON_3,
    ):
        subject = f"Your {label} expires in {days} days"
        body = (
            f"Your {label} will expire on {expiry} ({days} days from now). "
            "Please renew it to avoid any interruption."
        )
    elif decision.notification_type == NotificationType.EXPIRED:
        subject = f"Your {label} has expired"
        body = (
            f"Your {label} expired on {expiry}. "
            "Renew it now to restore the service."
        )
    elif decision.notification_type == NotificationType.DELETION_WARNING:
        subject = f"Your {label} is scheduled for deletion"
        body = (
            f"Your {label} expired on {expiry} and has not been renewed. "
            "It will be deleted soon together with its data unless it is renewed."
        )
    else:
        subject = f"Your {label} has been deleted"
        body = (
            f"Your {label} expired on {expiry} and has now been deleted. "
            "Contact us if you would like to register it again."
        )

    content = f"Dear customer,\n\n{body}\n\n{company_name}"
    metadata = ExpiryMetadata(
        expiry_date=service.expiry_date,
        days_remaining=days,
        threshold_days=decision.threshold_days,
        service_name=service.service_name,
    )
    return clip_subject(subject), content, metadata.model_dump(mode="json")


def render_invoice(
    invoice: InvoiceScheduleSnapshot,
    occurrence: RecurrenceOccurrence,
    company_name: str,
) -> tuple[str, str, dict[str, Any]]:
    """Render an invoice-family notification.

    Returns:
        (subject, content, metadata)
    """
    number = invoice.invoice_number or invoice.invoice_id
    due = invoice.due_date.strftime("%d/%m/%Y") if invoice.due_date else None

    if occurrence.notification_type == NotificationType.INVOICE_DUE_SOON:
        subject = f"Invoice {number} is due on {due}"
        body = (
            f"This is a reminder that invoice {number} is due on {due}. "
            "Please arrange payment before the due date."
        )
        metadata: BaseModel = InvoiceDueSoonMetadata(
            invoice_id=invoice.invoice_id,
            invoice_number=invoice.invoice_number,
            due_date=invoice.due_date,
            days_before_due=invoice.config.days_before_due,
            cc_accounting_team=invoice.config.cc_accounting_team,
        )
    else:
        subject = f"Payment reminder for invoice {number}"
        body = f"This is a reminder about invoice {number}."
        if due:
            body += f" Payment is due on {due}."
        metadata = InvoiceReminderMetadata(
            invoice_id=invoice.invoice_id,
            invoice_number=invoice.invoice_number,
            frequency=invoice.config.frequency.value,
            occurrence_index=occurrence.occurrence_index,
            occurrence_date=occurrence.occurrence_date,
            cc_accounting_team=invoice.config.cc_accounting_team,
        )

    content = f"Dear customer,\n\n{body}\n\nThank you,\n{company_name}"
    return clip_subject(subject), content, metadata.model_dump(mode="json")


def clip_subject(subject: str) -> str:
    """Shorten a subject to the column width, marking the cut with an ellipsis."""
    if len(subject) <= SUBJECT_MAX_LENGTH:
        return subject
    return subject[: SUBJECT_MAX_LENGTH - 3].rstrip() + "..."
