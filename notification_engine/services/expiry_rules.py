"""Expiry rule evaluation for domains, hosting plans and VPS.

Maps a service's expiry date and "now" to at most one due notification
kind. Thresholds match exact days-remaining values, so a scan that misses a
threshold day never creates that reminder later. The post-expiry kinds are
windows and stay due for as long as the service sits in them; the cycle key
(the expiry date) keeps them from being created twice.

Everything here is a pure function of its inputs.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo

from notification_engine.catalogs import ServiceSnapshot
from notification_engine.config import Settings
from notification_engine.models.notification import NotificationType

STAGED_TYPES = (
    NotificationType.EXPIRING_SOON_1,
    NotificationType.EXPIRING_SOON_2,
    NotificationType.EXPIRING_SOON_3,
)


@dataclass(frozen=True)
class ExpiryPolicy:
    """Thresholds and windows, in days relative to the expiry date."""

    thresholds: tuple[int, ...] = (30, 15, 7)
    grace_period_days: int = 7
    deletion_window_days: int = 30

    def __post_init__(self) -> None:
        if not 1 <= len(self.thresholds) <= len(STAGED_TYPES):
            raise ValueError("between 1 and 3 expiry thresholds are supported")
        if list(self.thresholds) != sorted(set(self.thresholds), reverse=True):
            raise ValueError("expiry thresholds must be strictly descending")
        if self.thresholds[-1] <= 0:
            raise ValueError("expiry thresholds must be positive")
        if self.grace_period_days <= 0:
            raise ValueError("grace period must be positive")
        if self.deletion_window_days <= self.grace_period_days:
            raise ValueError("deletion window must be longer than the grace period")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExpiryPolicy":
        return cls(
            thresholds=tuple(settings.EXPIRY_THRESHOLD_DAYS),
            grace_period_days=settings.EXPIRY_GRACE_PERIOD_DAYS,
            deletion_window_days=settings.EXPIRY_DELETION_WINDOW_DAYS,
        )


@dataclass(frozen=True)
class ExpiryDecision:
    """A due expiry notification for one service."""

    notification_type: NotificationType
    cycle_key: str
    days_remaining: int
    threshold_days: int | None = None


def expiry_cycle_key(expiry_date: date) -> str:
    """Cycle key for the expiry family: the expiry date itself.

    Renewing a service moves its expiry date and therefore opens a new cycle.
    """
    return expiry_date.isoformat()


def days_remaining(
    expiry_date: date | datetime, now: datetime, tz: tzinfo = timezone.utc
) -> int:
    """Whole calendar days from today in ``tz`` until expiry (negative once expired).

    ``now`` is naive UTC.
    """
    if isinstance(expiry_date, datetime):
        expiry_date = expiry_date.date()
    today = now.replace(tzinfo=timezone.utc).astimezone(tz).date()
    return (expiry_date - today).days


def evaluate_expiry(
    snapshot: ServiceSnapshot,
    now: datetime,
    policy: ExpiryPolicy,
    tz: tzinfo = timezone.utc,
) -> ExpiryDecision | None:
    """Return the notification due for this service at ``now``, if any."""
    expiry_date = snapshot.expiry_date
    if isinstance(expiry_date, datetime):
        expiry_date = expiry_date.date()

    days = days_remaining(expiry_date, now, tz)
    cycle_key = expiry_cycle_key(expiry_date)

    if days > 0:
        for notification_type, threshold in zip(STAGED_TYPES, policy.thresholds):
            if days == threshold:
                return ExpiryDecision(
                    notification_type=notification_type,
                    cycle_key=cycle_key,
                    days_remaining=days,
                    threshold_days=threshold,
                )
        return None

    if days > -policy.grace_period_days:
        notification_type = NotificationType.EXPIRED
    elif days > -policy.deletion_window_days:
        notification_type = NotificationType.DELETION_WARNING
    else:
        notification_type = NotificationType.DELETED

    return ExpiryDecision(
        notification_type=notification_type,
        cycle_key=cycle_key,
        days_remaining=days,
    )
