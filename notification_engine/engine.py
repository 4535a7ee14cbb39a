"""Entry points shared by the HTTP API and the worker runner.

- schedule_due(): one scheduling scan over both catalogs
- process_due(): one delivery batch

Collaborators default to the configured production adapters; tests and
embedding hosts pass their own.
"""

import logging

from sqlmodel import Session

from notification_engine.catalogs import (
    HttpServiceCatalog,
    InvoiceCatalog,
    ServiceCatalog,
    SqlInvoiceCatalog,
    StaticServiceCatalog,
)
from notification_engine.clock import Clock
from notification_engine.config import Settings, get_settings
from notification_engine.mailer import Mailer, build_mailer
from notification_engine.services.scheduler import NotificationScheduler, ScheduleResult
from notification_engine.workers.base import WorkerResult
from notification_engine.workers.delivery_worker import DeliveryWorker

logger = logging.getLogger(__name__)


def build_service_catalog(settings: Settings | None = None) -> ServiceCatalog:
    settings = settings or get_settings()
    if not settings.SERVICE_CATALOG_URL:
        logger.warning("SERVICE_CATALOG_URL not set, no services will be scanned for expiry")
        return StaticServiceCatalog()
    return HttpServiceCatalog(
        settings.SERVICE_CATALOG_URL,
        api_key=settings.SERVICE_CATALOG_API_KEY,
    )


def schedule_due(
    session: Session,
    service_catalog: ServiceCatalog | None = None,
    invoice_catalog: InvoiceCatalog | None = None,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> ScheduleResult:
    """Create all notifications that are due now and not yet recorded."""
    settings = settings or get_settings()
    scheduler = NotificationScheduler.from_settings(
        service_catalog or build_service_catalog(settings),
        invoice_catalog or SqlInvoiceCatalog(session),
        clock=clock,
        settings=settings,
    )
    return scheduler.schedule_due(session)


def process_due(
    session: Session,
    batch_size: int | None = None,
    mailer: Mailer | None = None,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> WorkerResult:
    """Attempt delivery of up to ``batch_size`` due records."""
    settings = settings or get_settings()
    worker = DeliveryWorker.from_settings(
        mailer or build_mailer(settings),
        clock=clock,
        settings=settings,
        batch_size=batch_size,
    )
    return worker.run(session)
