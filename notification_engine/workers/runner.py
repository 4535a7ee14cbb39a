"""Worker runner.

Provides easy-to-use entry points for the periodic triggers:
- run_worker_once(): one scheduling scan followed by one delivery batch
- run_worker_loop(): the same, repeated on an interval

Design Principles:
- Works in a normal terminal (no special runtime)
- Structured logging for observability
- No silent failures
- Clean shutdown handling
"""

import logging
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlmodel import Session

from notification_engine.catalogs import ServiceCatalog
from notification_engine.clock import Clock, utcnow
from notification_engine.config import get_settings
from notification_engine.db.session import get_engine
from notification_engine.engine import process_due, schedule_due
from notification_engine.mailer import Mailer
from notification_engine.services.scheduler import ScheduleResult
from notification_engine.workers.base import WorkerResult

logger = logging.getLogger(__name__)


@dataclass
class RunnerResult:
    """Result of a complete runner cycle.

    Attributes:
        started_at: When the run started
        completed_at: When the run completed
        schedule_result: Outcome of the scheduling scan, if it ran
        delivery_result: Outcome of the delivery batch, if it ran
        errors: Top-level errors during run
    """

    started_at: datetime
    completed_at: datetime | None = None
    schedule_result: ScheduleResult | None = None
    delivery_result: WorkerResult | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def total_scheduled(self) -> int:
        return self.schedule_result.total_scheduled if self.schedule_result else 0

    @property
    def total_processed(self) -> int:
        return self.delivery_result.processed_count if self.delivery_result else 0

    @property
    def total_failed(self) -> int:
        return self.delivery_result.failed_count if self.delivery_result else 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "total_scheduled": self.total_scheduled,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "schedule_result": (
                self.schedule_result.to_dict() if self.schedule_result else None
            ),
            "delivery_result": (
                self.delivery_result.to_dict() if self.delivery_result else None
            ),
            "errors": self.errors,
        }


class WorkerRunner:
    """Runs the scheduler and the delivery worker in sequence.

    Usage:
        runner = WorkerRunner()
        result = runner.run_once()
    """

    def __init__(
        self,
        batch_size: int | None = None,
        schedule: bool = True,
        deliver: bool = True,
        mailer: Mailer | None = None,
        service_catalog: ServiceCatalog | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            batch_size: Override default delivery batch size
            schedule: Run the scheduling scan
            deliver: Run the delivery batch
            mailer: Mailer to use (configured adapter if omitted)
            service_catalog: Service catalog to use (configured adapter if omitted)
            clock: Time source (wall clock if omitted)
        """
        settings = get_settings()
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self.schedule = schedule
        self.deliver = deliver
        self.mailer = mailer
        self.service_catalog = service_catalog
        self.clock = clock

        self._logger = logging.getLogger(self.__class__.__name__)
        self._shutdown_requested = False

    def run_once(self, session: Session | None = None) -> RunnerResult:
        """Execute one complete cycle.

        A failing step is logged and recorded in ``errors``; the other step
        still runs.

        Args:
            session: Optional database session (creates new if not provided)

        Returns:
            RunnerResult with both outcomes
        """
        result = RunnerResult(started_at=utcnow())

        self._logger.info(
            "Starting worker run",
            extra={
                "batch_size": self.batch_size,
                "schedule": self.schedule,
                "deliver": self.deliver,
            },
        )

        own_session = session is None
        if own_session:
            session = Session(get_engine())

        try:
            if self.schedule:
                try:
                    result.schedule_result = schedule_due(
                        session,
                        service_catalog=self.service_catalog,
                        clock=self.clock,
                    )
                except Exception as e:
                    session.rollback()
                    error_msg = f"Scheduler failed: {e}"
                    result.errors.append(error_msg)
                    self._logger.error(error_msg, exc_info=True)

            if self.deliver:
                try:
                    result.delivery_result = process_due(
                        session,
                        batch_size=self.batch_size,
                        mailer=self.mailer,
                        clock=self.clock,
                    )
                except Exception as e:
                    error_msg = f"DeliveryWorker failed: {e}"
                    result.errors.append(error_msg)
                    self._logger.error(error_msg, exc_info=True)

        finally:
            if own_session:
                session.close()

        result.completed_at = utcnow()

        self._logger.info(
            "Worker run completed",
            extra=result.to_dict(),
        )

        return result

    def run_loop(
        self,
        interval_seconds: int | None = None,
        max_iterations: int | None = None,
    ) -> None:
        """Run cycles continuously.

        Args:
            interval_seconds: Seconds between cycles (default from config)
            max_iterations: Max cycles to run (None for infinite)
        """
        settings = get_settings()
        interval = interval_seconds or settings.WORKER_POLL_INTERVAL_SECONDS
        iterations = 0

        self._setup_signal_handlers()

        self._logger.info(
            "Starting worker loop",
            extra={
                "interval_seconds": interval,
                "max_iterations": max_iterations,
            },
        )

        try:
            while not self._shutdown_requested:
                if max_iterations is not None and iterations >= max_iterations:
                    self._logger.info(
                        f"Reached max iterations ({max_iterations}), stopping"
                    )
                    break

                result = self.run_once()
                iterations += 1

                self._logger.info(
                    f"Iteration {iterations} complete",
                    extra={
                        "scheduled": result.total_scheduled,
                        "processed": result.total_processed,
                        "failed": result.total_failed,
                    },
                )

                if not self._shutdown_requested and (
                    max_iterations is None or iterations < max_iterations
                ):
                    self._logger.debug(f"Sleeping for {interval} seconds")
                    time.sleep(interval)

        except KeyboardInterrupt:
            self._logger.info("Keyboard interrupt received, shutting down")

        self._logger.info(
            "Worker loop stopped",
            extra={"total_iterations": iterations},
        )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def handle_signal(signum, frame):
            self._logger.info(f"Received signal {signum}, requesting shutdown")
            self._shutdown_requested = True

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the loop."""
        self._shutdown_requested = True


def run_worker_once(
    batch_size: int | None = None,
    schedule: bool = True,
    deliver: bool = True,
) -> RunnerResult:
    """Run one scheduling scan and one delivery batch.

    Example:
        >>> from notification_engine.workers.runner import run_worker_once
        >>> result = run_worker_once()
        >>> print(f"Sent: {result.total_processed}")
    """
    runner = WorkerRunner(batch_size=batch_size, schedule=schedule, deliver=deliver)
    return runner.run_once()


def run_worker_loop(
    interval_seconds: int | None = None,
    max_iterations: int | None = None,
    batch_size: int | None = None,
    schedule: bool = True,
    deliver: bool = True,
) -> None:
    """Run cycles until interrupted (Ctrl+C) or max_iterations is reached."""
    runner = WorkerRunner(batch_size=batch_size, schedule=schedule, deliver=deliver)
    runner.run_loop(
        interval_seconds=interval_seconds,
        max_iterations=max_iterations,
    )


def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("notification_engine").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
