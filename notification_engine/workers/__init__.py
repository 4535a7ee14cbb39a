"""Background workers module.

- DeliveryWorker: sends due notification records through a Mailer

Periodic triggers (scheduling scan + delivery batch) live in
``notification_engine.workers.runner``:
- run_worker_once(): Single cycle
- run_worker_loop(): Continuous cycles with interval
"""

from notification_engine.workers.base import (
    WorkerBase,
    WorkerResult,
    WorkerStatus,
)
from notification_engine.workers.delivery_worker import DeliveryWorker, RetryPolicy

__all__ = [
    # Base classes
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    # Workers
    "DeliveryWorker",
    "RetryPolicy",
]
