"""Email notification API endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from notification_engine.api.deps import (
    AppClock,
    AppMailer,
    AppServiceCatalog,
    AppSettings,
    CurrentAdmin,
    DBSession,
)
from notification_engine.engine import process_due, schedule_due
from notification_engine.errors import (
    ImmutableRecordError,
    InvalidTransitionError,
    NotificationEngineError,
    NotificationNotFoundError,
    RecordBusyError,
)
from notification_engine.models.notification import (
    DeleteResponse,
    NotificationEnvelope,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatus,
    NotificationType,
    NotificationUpdate,
    NotificationUpdateRequest,
    Pagination,
    ProcessResponse,
    ScheduleResponse,
    ServiceType,
    StatsResponse,
)
from notification_engine.services.notifications import (
    cancel_notification,
    count_by_status,
    delete_notification,
    get_notification,
    list_notifications,
    resume_notification,
    total_pages,
    update_notification,
)

router = APIRouter(prefix="/api/email-notifications", tags=["Email Notifications"])


def _http_error(e: NotificationEngineError) -> HTTPException:
    """Map a lifecycle error to its HTTP status."""
    if isinstance(e, NotificationNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, (ImmutableRecordError, RecordBusyError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, InvalidTransitionError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(e))


@router.post("/schedule", response_model=ScheduleResponse)
def schedule_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    settings: AppSettings,
    clock: AppClock,
    service_catalog: AppServiceCatalog,
) -> ScheduleResponse:
    """Run a scheduling scan now."""
    result = schedule_due(
        session,
        service_catalog=service_catalog,
        clock=clock,
        settings=settings,
    )
    return ScheduleResponse(
        total_scheduled=result.total_scheduled,
        skipped_existing=result.skipped_existing,
        rejected=result.rejected,
        by_type=result.by_type,
    )


@router.post("/process", response_model=ProcessResponse)
def process_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    settings: AppSettings,
    clock: AppClock,
    mailer: AppMailer,
    batch_size: int | None = Query(
        default=None, ge=1, le=500, alias="batchSize", description="Records to attempt"
    ),
) -> ProcessResponse:
    """Run one delivery batch now."""
    result = process_due(
        session,
        batch_size=batch_size,
        mailer=mailer,
        clock=clock,
        settings=settings,
    )
    return ProcessResponse(**result.to_summary())


@router.get("", response_model=NotificationListResponse)
def list_notifications_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    status_filter: NotificationStatus | None = Query(default=None, alias="status"),
    notification_type: NotificationType | None = Query(
        default=None, alias="notificationType"
    ),
    service_type: ServiceType | None = Query(default=None, alias="serviceType"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> NotificationListResponse:
    """List notifications, newest first."""
    records, total = list_notifications(
        session,
        status=status_filter,
        notification_type=notification_type,
        service_type=service_type,
        page=page,
        limit=limit,
    )
    return NotificationListResponse(
        data=[NotificationResponse.from_record(r) for r in records],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages(total, limit),
        ),
    )


@router.get("/stats", response_model=StatsResponse)
def stats_endpoint(session: DBSession, admin: CurrentAdmin) -> StatsResponse:
    """Record counts per status."""
    return StatsResponse(data=count_by_status(session))


@router.get("/{notification_id}", response_model=NotificationEnvelope)
def get_notification_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    notification_id: UUID,
) -> NotificationEnvelope:
    try:
        record = get_notification(session, notification_id)
    except NotificationNotFoundError as e:
        raise _http_error(e)
    return NotificationEnvelope(data=NotificationResponse.from_record(record))


@router.put("", response_model=NotificationEnvelope)
def update_notification_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    clock: AppClock,
    body: NotificationUpdateRequest,
) -> NotificationEnvelope:
    """Edit subject, content, schedule or status of a notification."""
    changes = NotificationUpdate(**body.model_dump(exclude_unset=True, exclude={"id"}))
    try:
        record = update_notification(
            session, body.id, changes, clock.now(), actor=admin.subject
        )
    except NotificationEngineError as e:
        raise _http_error(e)
    return NotificationEnvelope(data=NotificationResponse.from_record(record))


@router.post("/{notification_id}/cancel", response_model=NotificationEnvelope)
def cancel_notification_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    clock: AppClock,
    notification_id: UUID,
) -> NotificationEnvelope:
    """Pause a pending notification."""
    try:
        record = cancel_notification(
            session, notification_id, clock.now(), actor=admin.subject
        )
    except NotificationEngineError as e:
        raise _http_error(e)
    return NotificationEnvelope(data=NotificationResponse.from_record(record))


@router.post("/{notification_id}/resume", response_model=NotificationEnvelope)
def resume_notification_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    clock: AppClock,
    notification_id: UUID,
) -> NotificationEnvelope:
    """Resume a cancelled notification or retry a failed one."""
    try:
        record = resume_notification(
            session, notification_id, clock.now(), actor=admin.subject
        )
    except NotificationEngineError as e:
        raise _http_error(e)
    return NotificationEnvelope(data=NotificationResponse.from_record(record))


@router.delete("", response_model=DeleteResponse)
def delete_notification_endpoint(
    session: DBSession,
    admin: CurrentAdmin,
    notification_id: UUID = Query(alias="id"),
) -> DeleteResponse:
    """Hard-delete a notification."""
    try:
        delete_notification(session, notification_id, actor=admin.subject)
    except NotificationNotFoundError as e:
        raise _http_error(e)
    return DeleteResponse(message="Notification deleted")
