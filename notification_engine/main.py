"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from notification_engine.api.invoices import router as invoices_router
from notification_engine.api.notifications import router as notifications_router
from notification_engine.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration on startup. Schema changes go through alembic."""
    get_settings().validate()
    logger.info("Notification engine API started")
    yield


app = FastAPI(
    title="Notification Scheduling & Delivery Engine",
    description="Expiry and invoice email notifications for hosting, domain and VPS services",
    version="1.0.0",
    lifespan=lifespan,
)

# Register routers
app.include_router(notifications_router)
app.include_router(invoices_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
