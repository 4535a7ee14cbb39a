"""API dependencies for dependency injection."""

from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlmodel import Session

from notification_engine.catalogs import ServiceCatalog
from notification_engine.clock import Clock, SystemClock
from notification_engine.config import Settings, get_settings
from notification_engine.db.session import get_session
from notification_engine.engine import build_service_catalog
from notification_engine.mailer import Mailer, build_mailer

security = HTTPBearer(auto_error=False)

ADMIN_ROLE = "ADMIN"


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


def get_app_settings() -> Settings:
    return get_settings()


def get_clock() -> Clock:
    return SystemClock()


def get_mailer(settings: Annotated[Settings, Depends(get_app_settings)]) -> Mailer:
    return build_mailer(settings)


def get_service_catalog(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ServiceCatalog:
    return build_service_catalog(settings)


DBSession = Annotated[Session, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
AppClock = Annotated[Clock, Depends(get_clock)]
AppMailer = Annotated[Mailer, Depends(get_mailer)]
AppServiceCatalog = Annotated[ServiceCatalog, Depends(get_service_catalog)]


@dataclass(frozen=True)
class Admin:
    """Authenticated operator, from the bearer token claims."""

    subject: str
    email: str | None = None


def get_current_admin(
    settings: AppSettings,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Admin:
    """Require a valid bearer token carrying the ADMIN role."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.ADMIN_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise credentials_exception

    subject: str | None = payload.get("sub")
    if subject is None:
        raise credentials_exception

    if payload.get("role") != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )

    return Admin(subject=subject, email=payload.get("email"))


CurrentAdmin = Annotated[Admin, Depends(get_current_admin)]
