"""Delivery worker.

Processes NotificationRecord rows:
1. Fetches PENDING and retryable FAILED records whose scheduled time has come
2. Claims each one (PENDING/FAILED -> SENDING, committed before sending)
3. Hands the message to the Mailer
4. Records SENT, or FAILED with a backoff-adjusted next attempt
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import inspect
from sqlmodel import Session, select

from notification_engine.clock import Clock, SystemClock
from notification_engine.config import Settings, get_settings
from notification_engine.errors import DeliveryError
from notification_engine.mailer import Mailer
from notification_engine.models.notification import NotificationRecord, NotificationStatus
from notification_engine.services import notifications as store
from notification_engine.workers.base import WorkerBase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff between delivery attempts."""

    base_delay_seconds: int = 60
    multiplier: float = 2.0
    max_delay_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            base_delay_seconds=settings.WORKER_RETRY_DELAY_SECONDS,
            multiplier=settings.WORKER_RETRY_BACKOFF_MULTIPLIER,
            max_delay_seconds=settings.WORKER_RETRY_MAX_DELAY_SECONDS,
        )

    def delay_for(self, retry_count: int) -> timedelta:
        """Delay before the next attempt, given the retry count after a failure."""
        seconds = self.base_delay_seconds * self.multiplier ** max(retry_count - 1, 0)
        return timedelta(seconds=min(seconds, self.max_delay_seconds))


class DeliveryWorker(WorkerBase[NotificationRecord]):
    """Worker that sends due notification records through a Mailer."""

    item_errors = (DeliveryError,)

    def __init__(
        self,
        mailer: Mailer,
        clock: Clock | None = None,
        batch_size: int = 50,
        max_retries: int = 3,
        retry_policy: RetryPolicy | None = None,
        accounting_email: str = "",
    ) -> None:
        super().__init__(batch_size=batch_size, max_retries=max_retries)
        self.mailer = mailer
        self.clock = clock or SystemClock()
        self.retry_policy = retry_policy or RetryPolicy()
        self.accounting_email = accounting_email

    @classmethod
    def from_settings(
        cls,
        mailer: Mailer,
        clock: Clock | None = None,
        settings: Settings | None = None,
        batch_size: int | None = None,
    ) -> "DeliveryWorker":
        settings = settings or get_settings()
        return cls(
            mailer,
            clock=clock,
            batch_size=batch_size or settings.WORKER_BATCH_SIZE,
            max_retries=settings.WORKER_MAX_RETRIES,
            retry_policy=RetryPolicy.from_settings(settings),
            accounting_email=settings.ACCOUNTING_EMAIL,
        )

    @property
    def worker_name(self) -> str:
        return "DeliveryWorker"

    def now(self) -> datetime:
        return self.clock.now()

    def fetch_pending(self, session: Session) -> list[NotificationRecord]:
        """Fetch records that are due for a delivery attempt.

        Fetches records that are:
        - PENDING
        - Or FAILED with attempts left

        and whose scheduled_at is unset or not in the future, oldest schedule
        first.
        """
        now = self.now()

        records = session.exec(
            select(NotificationRecord)
            .where(
                (NotificationRecord.status == NotificationStatus.PENDING)
                | (
                    (NotificationRecord.status == NotificationStatus.FAILED)
                    & (NotificationRecord.retry_count < self.max_retries)
                )
            )
            .where(
                NotificationRecord.scheduled_at.is_(None)
                | (NotificationRecord.scheduled_at <= now)
            )
            .order_by(
                NotificationRecord.scheduled_at.asc().nulls_first(),
                NotificationRecord.created_at,
            )
            .limit(self.batch_size)
        ).all()

        return list(records)

    def mark_processing(self, session: Session, item: NotificationRecord) -> bool:
        return store.claim_for_delivery(session, item, self.max_retries, self.now())

    def process_item(self, session: Session, item: NotificationRecord) -> None:
        """Send the record through the mailer.

        Raises:
            DeliveryError: For any mailer failure, timeouts included
        """
        cc = self._cc_for(item)
        try:
            self.mailer.send(item.recipient_email, item.subject, item.content, cc=cc)
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e

    def _cc_for(self, item: NotificationRecord) -> list[str] | None:
        if (item.meta or {}).get("cc_accounting_team") and self.accounting_email:
            return [self.accounting_email]
        return None

    def mark_completed(self, session: Session, item: NotificationRecord) -> None:
        if not store.mark_sent(session, item, self.now()):
            logger.warning(
                "Sent notification was no longer SENDING when recording success",
                extra={"notification_id": str(item.id)},
            )

    def should_retry(self, item: NotificationRecord, error: Exception) -> bool:
        if isinstance(error, DeliveryError) and not error.retryable:
            return False
        return super().should_retry(item, error)

    def mark_failed(
        self,
        session: Session,
        item: NotificationRecord,
        error: Exception,
        can_retry: bool,
    ) -> None:
        """Record a failed attempt.

        Retryable failures are pushed back by the retry policy; permanent
        ones use up the remaining attempts so the record is never picked
        up again.
        """
        now = self.now()
        next_attempt_at = None
        if can_retry:
            next_attempt_at = now + self.retry_policy.delay_for(item.retry_count + 1)

        exhaust_at = None
        if isinstance(error, DeliveryError) and not error.retryable:
            exhaust_at = self.max_retries

        store.mark_failed(
            session,
            item,
            str(error),
            now,
            next_attempt_at,
            exhaust_retries_at=exhaust_at,
        )

        if not can_retry:
            logger.error(
                "Notification delivery failed permanently",
                extra={
                    "notification_id": str(item.id),
                    "retry_count": item.retry_count,
                    "error": item.error_message,
                },
            )

    def get_item_id(self, item: NotificationRecord) -> UUID:
        # Readable without a reload, deleted rows included
        identity = inspect(item).identity
        return identity[0] if identity else item.id
