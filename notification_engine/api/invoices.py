"""Invoice reminder schedule API endpoints."""

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict

from notification_engine.api.deps import AppClock, CurrentAdmin, DBSession
from notification_engine.models.invoice_schedule import (
    InvoiceScheduleRequest,
    InvoiceScheduleResponse,
)
from notification_engine.services.invoice_schedules import (
    get_invoice_schedule,
    upsert_invoice_schedule,
)

router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


class InvoiceScheduleEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: InvoiceScheduleResponse


@router.post("/schedule", response_model=InvoiceScheduleEnvelope)
def schedule_invoice_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    clock: AppClock,
    body: InvoiceScheduleRequest,
    response: Response,
) -> InvoiceScheduleEnvelope:
    """Create or replace the reminder schedule of an invoice."""
    schedule, created = upsert_invoice_schedule(session, body, clock.now())
    if created:
        response.status_code = status.HTTP_201_CREATED
    return InvoiceScheduleEnvelope(data=InvoiceScheduleResponse.model_validate(schedule))


@router.get("/{invoice_id}/schedule", response_model=InvoiceScheduleEnvelope)
def get_invoice_schedule_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    invoice_id: str,
) -> InvoiceScheduleEnvelope:
    schedule = get_invoice_schedule(session, invoice_id)
    if schedule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invoice schedule not found",
        )
    return InvoiceScheduleEnvelope(data=InvoiceScheduleResponse.model_validate(schedule))
