"""Tests for the delivery worker.

Tests cover:
- WorkerResult summaries
- Selection of due records
- Successful delivery
- Failure handling, backoff and the retry ceiling
- Claim exclusivity
- Isolation of per-record failures
- Mailer adapters
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import httpx
from sqlmodel import Session, select

from notification_engine.clock import FixedClock
from notification_engine.errors import DeliveryError
from notification_engine.mailer import HttpMailer, LoggingMailer
from notification_engine.models.audit_log import AuditLog
from notification_engine.models.notification import (
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    ServiceType,
)
from notification_engine.services import notifications as store
from notification_engine.workers.base import WorkerResult, WorkerStatus
from notification_engine.workers.delivery_worker import DeliveryWorker, RetryPolicy

NOW = datetime(2024, 3, 1, 10, 0)


class FakeMailer:
    """Mailer that records sends and fails for chosen recipients."""

    def __init__(self, failing: set[str] | None = None, error: Exception | None = None):
        self.failing = failing or set()
        self.error = error or DeliveryError("SMTP 451 temporary failure")
        self.sent: list[tuple[str, str, list[str] | None]] = []

    def send(self, recipient_email, subject, content, cc=None):
        if recipient_email in self.failing:
            raise self.error
        self.sent.append((recipient_email, subject, cc))


def _record(session: Session, **overrides) -> NotificationRecord:
    values = {
        "service_type": ServiceType.DOMAIN,
        "service_id": "example.com",
        "notification_type": NotificationType.EXPIRING_SOON_1,
        "cycle_key": "2024-03-31",
        "recipient_email": "owner@example.com",
        "subject": "Your domain expires in 30 days",
        "content": "Please renew.",
        "scheduled_at": NOW - timedelta(minutes=5),
        "created_at": NOW - timedelta(minutes=5),
        "updated_at": NOW - timedelta(minutes=5),
    }
    values.update(overrides)
    record = NotificationRecord(**values)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def _worker(mailer, clock: FixedClock, **kwargs) -> DeliveryWorker:
    kwargs.setdefault("max_retries", 3)
    kwargs.setdefault(
        "retry_policy",
        RetryPolicy(base_delay_seconds=60, multiplier=2.0, max_delay_seconds=3600),
    )
    return DeliveryWorker(mailer, clock=clock, **kwargs)


# ============================================================================
# WorkerResult Tests
# ============================================================================

class TestWorkerResult:
    """Tests for WorkerResult dataclass."""

    def test_worker_result_defaults(self):
        result = WorkerResult(status=WorkerStatus.NO_WORK)

        assert result.processed_count == 0
        assert result.failed_count == 0
        assert result.skipped_count == 0
        assert result.errors == []

    def test_summary_has_processed_and_failed(self):
        result = WorkerResult(
            status=WorkerStatus.PARTIAL,
            processed_count=4,
            failed_count=1,
            skipped_count=2,
        )

        assert result.to_summary() == {"processed": 4, "failed": 1}
        assert result.to_dict()["skipped_count"] == 2


# ============================================================================
# Selection Tests
# ============================================================================

class TestFetchPending:
    """Tests for DeliveryWorker.fetch_pending."""

    def test_worker_name(self):
        assert _worker(FakeMailer(), FixedClock(NOW)).worker_name == "DeliveryWorker"

    def test_selects_due_pending_and_retryable_failed(self, db_session: Session, clock):
        due = _record(db_session, cycle_key="a")
        unscheduled = _record(db_session, cycle_key="b", scheduled_at=None)
        retryable = _record(db_session, cycle_key="c", status=NotificationStatus.FAILED, retry_count=2)
        _record(db_session, cycle_key="d", scheduled_at=NOW + timedelta(hours=1))
        _record(db_session, cycle_key="e", status=NotificationStatus.FAILED, retry_count=3)
        _record(db_session, cycle_key="f", status=NotificationStatus.SENT)
        _record(db_session, cycle_key="g", status=NotificationStatus.CANCELLED)
        _record(db_session, cycle_key="h", status=NotificationStatus.SENDING)

        pending = _worker(FakeMailer(), clock).fetch_pending(db_session)

        assert {r.id for r in pending} == {due.id, unscheduled.id, retryable.id}

    def test_orders_by_schedule_nulls_first(self, db_session: Session, clock):
        later = _record(db_session, cycle_key="a", scheduled_at=NOW - timedelta(minutes=1))
        earlier = _record(db_session, cycle_key="b", scheduled_at=NOW - timedelta(days=1))
        unscheduled = _record(db_session, cycle_key="c", scheduled_at=None)

        pending = _worker(FakeMailer(), clock).fetch_pending(db_session)

        assert [r.id for r in pending] == [unscheduled.id, earlier.id, later.id]

    def test_respects_batch_size(self, db_session: Session, clock):
        for i in range(5):
            _record(db_session, cycle_key=f"k{i}")

        pending = _worker(FakeMailer(), clock, batch_size=2).fetch_pending(db_session)

        assert len(pending) == 2


# ============================================================================
# Delivery Tests
# ============================================================================

class TestDelivery:
    """Tests for DeliveryWorker.run."""

    def test_successful_delivery_marks_sent(self, db_session: Session, clock):
        record = _record(db_session)
        mailer = FakeMailer()

        result = _worker(mailer, clock).run(db_session)

        db_session.refresh(record)
        assert result.status == WorkerStatus.SUCCESS
        assert result.to_summary() == {"processed": 1, "failed": 0}
        assert record.status == NotificationStatus.SENT
        assert record.sent_at == NOW
        assert record.error_message is None
        assert mailer.sent == [("owner@example.com", "Your domain expires in 30 days", None)]

    def test_sent_record_is_not_sent_again(self, db_session: Session, clock):
        _record(db_session)
        mailer = FakeMailer()
        worker = _worker(mailer, clock)

        worker.run(db_session)
        second = worker.run(db_session)

        assert second.status == WorkerStatus.NO_WORK
        assert len(mailer.sent) == 1

    def test_accounting_is_copied_when_requested(self, db_session: Session, clock):
        _record(db_session, meta={"rule": "invoice_recurrence", "cc_accounting_team": True})
        mailer = FakeMailer()

        _worker(mailer, clock, accounting_email="accounting@host.test").run(db_session)

        assert mailer.sent[0][2] == ["accounting@host.test"]

    def test_delivery_writes_audit_entry(self, db_session: Session, clock):
        record = _record(db_session)

        _worker(FakeMailer(), clock).run(db_session)

        audit = db_session.exec(select(AuditLog)).one()
        assert audit.action == "notification.sent"
        assert audit.entity_id == record.id


# ============================================================================
# Failure and Retry Tests
# ============================================================================

class TestFailures:
    """Tests for failure handling and the retry ceiling."""

    def test_failure_increments_retry_and_backs_off(self, db_session: Session, clock):
        record = _record(db_session)

        result = _worker(FakeMailer(failing={"owner@example.com"}), clock).run(db_session)

        db_session.refresh(record)
        assert result.status == WorkerStatus.FAILED
        assert result.to_summary() == {"processed": 0, "failed": 1}
        assert record.status == NotificationStatus.FAILED
        assert record.retry_count == 1
        assert record.error_message == "SMTP 451 temporary failure"
        assert record.scheduled_at == NOW + timedelta(seconds=60)

    def test_backoff_grows_with_retry_count(self, db_session: Session, clock):
        record = _record(db_session, status=NotificationStatus.FAILED, retry_count=1)

        _worker(FakeMailer(failing={"owner@example.com"}), clock).run(db_session)

        db_session.refresh(record)
        assert record.retry_count == 2
        assert record.scheduled_at == NOW + timedelta(seconds=120)

    def test_backed_off_record_is_not_selected_early(self, db_session: Session, clock):
        _record(db_session)
        mailer = FakeMailer(failing={"owner@example.com"})
        worker = _worker(mailer, clock)

        worker.run(db_session)
        immediate = worker.run(db_session)
        clock.advance(seconds=60)
        later = worker.run(db_session)

        assert immediate.status == WorkerStatus.NO_WORK
        assert later.failed_count == 1

    def test_last_attempt_is_terminal(self, db_session: Session, clock):
        """A FAILED record at max_retries - 1 ends FAILED at max_retries and is never selected again."""
        record = _record(db_session, status=NotificationStatus.FAILED, retry_count=2)
        worker = _worker(FakeMailer(failing={"owner@example.com"}), clock, max_retries=3)

        result = worker.run(db_session)

        db_session.refresh(record)
        assert result.failed_count == 1
        assert result.errors[0]["can_retry"] is False
        assert record.status == NotificationStatus.FAILED
        assert record.retry_count == 3
        assert worker.fetch_pending(db_session) == []

        clock.advance(days=1)
        assert worker.run(db_session).status == WorkerStatus.NO_WORK

    def test_permanent_error_exhausts_retries(self, db_session: Session, clock):
        record = _record(db_session)
        mailer = FakeMailer(
            failing={"owner@example.com"},
            error=DeliveryError("Mailbox does not exist", retryable=False),
        )
        worker = _worker(mailer, clock)

        worker.run(db_session)

        db_session.refresh(record)
        assert record.status == NotificationStatus.FAILED
        assert record.retry_count == 3
        assert worker.fetch_pending(db_session) == []

    def test_unexpected_mailer_exception_is_a_delivery_failure(self, db_session: Session, clock):
        record = _record(db_session)
        mailer = FakeMailer(failing={"owner@example.com"}, error=ConnectionResetError("reset"))

        result = _worker(mailer, clock).run(db_session)

        db_session.refresh(record)
        assert result.failed_count == 1
        assert record.status == NotificationStatus.FAILED
        assert "ConnectionResetError" in record.error_message

    def test_one_failure_does_not_abort_batch(self, db_session: Session, clock):
        ok_first = _record(db_session, cycle_key="a", recipient_email="a@example.com")
        broken = _record(db_session, cycle_key="b", recipient_email="broken@example.com")
        ok_last = _record(db_session, cycle_key="c", recipient_email="c@example.com")

        result = _worker(FakeMailer(failing={"broken@example.com"}), clock).run(db_session)

        for record in (ok_first, broken, ok_last):
            db_session.refresh(record)
        assert result.status == WorkerStatus.PARTIAL
        assert result.to_summary() == {"processed": 2, "failed": 1}
        assert ok_first.status == NotificationStatus.SENT
        assert broken.status == NotificationStatus.FAILED
        assert ok_last.status == NotificationStatus.SENT

    def test_store_errors_propagate(self, db_session: Session, clock, monkeypatch):
        _record(db_session)
        worker = _worker(FakeMailer(), clock)
        monkeypatch.setattr(store, "mark_sent", Mock(side_effect=RuntimeError("db down")))

        with pytest.raises(RuntimeError):
            worker.run(db_session)


# ============================================================================
# Claim Tests
# ============================================================================

class TestClaim:
    """Tests for the atomic PENDING/FAILED -> SENDING claim."""

    def test_stale_reader_cannot_claim(self, engine, clock):
        """Two sessions observe PENDING; only the first claim succeeds."""
        with Session(engine) as setup:
            record_id = _record(setup).id

        with Session(engine) as first, Session(engine) as second:
            seen_by_first = first.get(NotificationRecord, record_id)
            seen_by_second = second.get(NotificationRecord, record_id)
            assert seen_by_first.status == NotificationStatus.PENDING
            assert seen_by_second.status == NotificationStatus.PENDING

            assert store.claim_for_delivery(second, seen_by_second, 3, NOW) is True
            assert store.claim_for_delivery(first, seen_by_first, 3, NOW) is False
            assert seen_by_first.status == NotificationStatus.SENDING

    def test_claimed_record_is_skipped_by_worker(self, db_session: Session, clock, monkeypatch):
        record = _record(db_session)
        mailer = FakeMailer()
        worker = _worker(mailer, clock)
        monkeypatch.setattr(worker, "mark_processing", lambda session, item: False)

        result = worker.run(db_session)

        db_session.refresh(record)
        assert result.skipped_count == 1
        assert result.processed_count == 0
        assert mailer.sent == []
        assert record.status == NotificationStatus.PENDING

    def test_record_deleted_after_fetch_is_skipped(self, engine, clock):
        """Records deleted by an operator mid-batch are skipped, the rest are sent."""
        with Session(engine) as setup:
            first = _record(
                setup, service_id="gone-first.com", recipient_email="a@gone.test",
                scheduled_at=NOW - timedelta(minutes=30),
            ).id
            _record(
                setup, service_id="kept.com", recipient_email="owner@kept.test",
                scheduled_at=NOW - timedelta(minutes=20),
            )
            last = _record(
                setup, service_id="gone-last.com", recipient_email="b@gone.test",
                scheduled_at=NOW - timedelta(minutes=10),
            ).id
        mailer = FakeMailer()
        worker = _worker(mailer, clock)

        with Session(engine) as worker_session:
            due = worker.fetch_pending(worker_session)
            with Session(engine) as admin:
                store.delete_notification(admin, first, actor="admin-1")
                store.delete_notification(admin, last, actor="admin-1")

            with patch.object(worker, "fetch_pending", return_value=due):
                result = worker.run(worker_session)

        assert [sent[0] for sent in mailer.sent] == ["owner@kept.test"]
        assert result.processed_count == 1
        assert result.skipped_count == 2
        assert result.status == WorkerStatus.SUCCESS

    def test_exhausted_failed_record_cannot_be_claimed(self, db_session: Session):
        record = _record(db_session, status=NotificationStatus.FAILED, retry_count=3)

        assert store.claim_for_delivery(db_session, record, 3, NOW) is False


# ============================================================================
# Retry Policy and Mailer Tests
# ============================================================================

class TestRetryPolicy:
    """Tests for RetryPolicy.delay_for."""

    def test_exponential_growth(self):
        policy = RetryPolicy(base_delay_seconds=60, multiplier=2.0, max_delay_seconds=3600)

        assert policy.delay_for(1) == timedelta(seconds=60)
        assert policy.delay_for(2) == timedelta(seconds=120)
        assert policy.delay_for(3) == timedelta(seconds=240)

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(base_delay_seconds=60, multiplier=10.0, max_delay_seconds=900)

        assert policy.delay_for(5) == timedelta(seconds=900)


class TestMailers:
    """Tests for the mailer adapters."""

    def test_logging_mailer_records_message(self):
        mailer = LoggingMailer()

        mailer.send("a@example.com", "Hello", "Body", cc=["b@example.com"])

        assert mailer.sent[0]["cc"] == ["b@example.com"]

    def test_http_mailer_posts_json(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "msg-1"})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        mailer = HttpMailer("https://mail.test/send", "key", "no-reply@host.test", client=client)

        mailer.send("a@example.com", "Hello", "Body", cc=["acct@host.test"])

        assert requests[0].headers["Authorization"] == "Bearer key"
        body = requests[0].read()
        assert b'"cc":["acct@host.test"]' in body.replace(b" ", b"")

    def test_http_mailer_server_error_is_retryable(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))
        )
        mailer = HttpMailer("https://mail.test/send", "key", "no-reply@host.test", client=client)

        with pytest.raises(DeliveryError) as exc_info:
            mailer.send("a@example.com", "Hello", "Body")

        assert exc_info.value.retryable is True

    def test_http_mailer_rejection_is_permanent(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(422, text="invalid"))
        )
        mailer = HttpMailer("https://mail.test/send", "key", "no-reply@host.test", client=client)

        with pytest.raises(DeliveryError) as exc_info:
            mailer.send("a@example.com", "Hello", "Body")

        assert exc_info.value.retryable is False

    def test_http_mailer_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        mailer = HttpMailer("https://mail.test/send", "key", "no-reply@host.test", client=client)

        with pytest.raises(DeliveryError, match="timed out"):
            mailer.send("a@example.com", "Hello", "Body")


# ============================================================================
# Pytest Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """Create an in-memory test database."""
    from sqlmodel import create_engine, SQLModel
    from sqlmodel.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import all models to register them
    from notification_engine.models import AuditLog, InvoiceSchedule, NotificationRecord  # noqa: F401

    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(engine):
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)
