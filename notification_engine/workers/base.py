"""Base worker abstraction.

A worker handles one batch per ``run()``: fetch due items, claim each one
with an atomic conditional update, do the work, then record the outcome.

Only the exception types listed in ``item_errors`` count as per-item
failures. Anything else (database down, programming errors) rolls back,
is logged and propagates to the caller.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlmodel import Session

from notification_engine.clock import utcnow

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    """Status of a worker run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some items processed, some failed
    FAILED = "failed"
    NO_WORK = "no_work"

    @classmethod
    def from_counts(cls, processed: int, failed: int) -> "WorkerStatus":
        if processed and failed:
            return cls.PARTIAL
        if failed:
            return cls.FAILED
        if processed:
            return cls.SUCCESS
        return cls.NO_WORK


@dataclass
class WorkerResult:
    """Outcome of one batch.

    ``skipped_count`` counts items another worker or an operator changed
    between fetch and claim. ``errors`` holds one entry per failed item.
    """

    status: WorkerStatus
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
        }

    def to_summary(self) -> dict[str, int]:
        """Public summary returned by process_due."""
        return {"processed": self.processed_count, "failed": self.failed_count}


T = TypeVar("T")


class WorkerBase(ABC, Generic[T]):
    """Template for batch workers.

    Subclasses supply fetch_pending(), mark_processing() (the claim),
    process_item(), mark_completed() and mark_failed().
    """

    # Exceptions that fail a single item instead of the whole cycle
    item_errors: tuple[type[Exception], ...] = ()

    def __init__(self, batch_size: int = 50, max_retries: int = 3) -> None:
        self.batch_size = batch_size
        self.max_retries = max_retries
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        pass

    @abstractmethod
    def fetch_pending(self, session: Session) -> list[T]:
        """Items due for processing, at most batch_size of them."""
        pass

    @abstractmethod
    def mark_processing(self, session: Session, item: T) -> bool:
        """Claim an item; False when someone else got there first.

        Must be an atomic conditional update committed before
        process_item() runs.
        """
        pass

    @abstractmethod
    def process_item(self, session: Session, item: T) -> None:
        """Do the work for a claimed item, raising one of ``item_errors`` on failure."""
        pass

    @abstractmethod
    def mark_completed(self, session: Session, item: T) -> None:
        pass

    @abstractmethod
    def mark_failed(
        self, session: Session, item: T, error: Exception, can_retry: bool
    ) -> None:
        pass

    @abstractmethod
    def get_item_id(self, item: T) -> UUID:
        pass

    def now(self) -> datetime:
        return utcnow()

    def should_retry(self, item: T, error: Exception) -> bool:
        """True if another attempt follows the one being recorded now."""
        retry_count = getattr(item, "retry_count", None)
        if retry_count is None:
            return False
        return retry_count + 1 < self.max_retries

    def run(self, session: Session) -> WorkerResult:
        """Process one batch and report what happened."""
        started = utcnow()
        result = WorkerResult(status=WorkerStatus.NO_WORK)

        items = self.fetch_pending(session)
        if not items:
            self._logger.debug(f"[{self.worker_name}] Nothing due")
            result.duration_ms = self._elapsed_ms(started)
            return result

        self._logger.info(
            f"[{self.worker_name}] Processing {len(items)} items",
            extra={"batch_size": self.batch_size},
        )

        for item in items:
            try:
                self._handle(session, item, result)
            except Exception:
                session.rollback()
                self._logger.error(
                    f"[{self.worker_name}] Batch aborted at item {self.get_item_id(item)}",
                    extra={
                        "processed": result.processed_count,
                        "failed": result.failed_count,
                    },
                    exc_info=True,
                )
                raise

        result.status = WorkerStatus.from_counts(
            result.processed_count, result.failed_count
        )
        result.duration_ms = self._elapsed_ms(started)

        self._logger.info(
            f"[{self.worker_name}] Batch complete",
            extra=result.to_dict(),
        )
        return result

    def _handle(self, session: Session, item: T, result: WorkerResult) -> None:
        item_id = str(self.get_item_id(item))

        if not self.mark_processing(session, item):
            result.skipped_count += 1
            self._logger.debug(f"[{self.worker_name}] {item_id} claimed elsewhere")
            return

        try:
            self.process_item(session, item)
        except self.item_errors as e:
            can_retry = self.should_retry(item, e)
            self.mark_failed(session, item, e, can_retry)
            result.failed_count += 1

            entry = {"item_id": item_id, "error": str(e)[:500], "can_retry": can_retry}
            result.errors.append(entry)
            self._logger.warning(f"[{self.worker_name}] {item_id} failed", extra=entry)
            return

        self.mark_completed(session, item)
        result.processed_count += 1
        self._logger.info(
            f"[{self.worker_name}] {item_id} done",
            extra={"item_id": item_id},
        )

    def _elapsed_ms(self, start: datetime) -> float:
        return (utcnow() - start).total_seconds() * 1000
