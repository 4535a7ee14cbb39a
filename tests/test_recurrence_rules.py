"""Tests for invoice recurrence evaluation.

Tests cover:
- Occurrence dates per frequency (month clamping included)
- Due occurrences and their cycle keys
- The due-date reminder
- Disabled schedules and already-fired keys
- Local send time conversion
"""

import pytest
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from notification_engine.models.invoice_schedule import RecurrenceConfig, ReminderFrequency
from notification_engine.models.notification import NotificationType
from notification_engine.services.recurrence_rules import (
    add_months,
    due_soon_cycle_key,
    evaluate_recurrence,
    fire_time,
    occurrence_cycle_key,
    occurrence_date,
)


def _config(**overrides) -> RecurrenceConfig:
    values = {
        "frequency": ReminderFrequency.MONTHLY,
        "start_date": date(2024, 1, 1),
        "send_time": time(9, 0),
    }
    values.update(overrides)
    return RecurrenceConfig(**values)


# ============================================================================
# Occurrence Date Tests
# ============================================================================

class TestOccurrenceDates:
    """Tests for occurrence date arithmetic."""

    @pytest.mark.parametrize(
        "frequency,index,expected",
        [
            (ReminderFrequency.WEEKLY, 2, date(2024, 1, 15)),
            (ReminderFrequency.BIWEEKLY, 2, date(2024, 1, 29)),
            (ReminderFrequency.MONTHLY, 2, date(2024, 3, 1)),
            (ReminderFrequency.QUARTERLY, 1, date(2024, 4, 1)),
            (ReminderFrequency.YEARLY, 1, date(2025, 1, 1)),
        ],
    )
    def test_fixed_frequencies(self, frequency, index, expected):
        assert occurrence_date(_config(frequency=frequency), index) == expected

    def test_custom_interval(self):
        config = _config(frequency=ReminderFrequency.CUSTOM, interval_days=10)

        assert occurrence_date(config, 3) == date(2024, 1, 31)

    def test_month_end_clamps_without_drift(self):
        """Jan 31 -> Feb 29 -> Mar 31: each month is computed from the start date."""
        config = _config(start_date=date(2024, 1, 31))

        assert occurrence_date(config, 1) == date(2024, 2, 29)
        assert occurrence_date(config, 2) == date(2024, 3, 31)

    def test_add_months_across_year(self):
        assert add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)

    def test_custom_requires_interval(self):
        with pytest.raises(ValidationError):
            RecurrenceConfig(
                frequency=ReminderFrequency.CUSTOM,
                start_date=date(2024, 1, 1),
            )

    def test_negative_days_before_due_rejected(self):
        with pytest.raises(ValidationError):
            _config(days_before_due=-1)


# ============================================================================
# Evaluation Tests
# ============================================================================

class TestEvaluateRecurrence:
    """Tests for evaluate_recurrence."""

    def test_monthly_occurrences_due_by_march_first(self):
        """Monthly from 2024-01-01 evaluated on 2024-03-01 yields Jan and Feb."""
        occurrences = evaluate_recurrence(_config(), None, datetime(2024, 3, 1))

        assert [o.occurrence_date for o in occurrences] == [
            date(2024, 1, 1),
            date(2024, 2, 1),
        ]
        assert all(o.notification_type == NotificationType.INVOICE_REMINDER for o in occurrences)
        assert len({o.cycle_key for o in occurrences}) == 2
        assert occurrences[0].cycle_key == "occurrence:2024-01-01"
        assert occurrences[1].occurrence_index == 1

    def test_occurrence_due_once_send_time_passes(self):
        config = _config()

        before = evaluate_recurrence(config, None, datetime(2024, 1, 1, 8, 59))
        at = evaluate_recurrence(config, None, datetime(2024, 1, 1, 9, 0))

        assert before == []
        assert len(at) == 1
        assert at[0].scheduled_at == datetime(2024, 1, 1, 9, 0)

    def test_fired_keys_are_skipped(self):
        occurrences = evaluate_recurrence(
            _config(),
            None,
            datetime(2024, 3, 1),
            fired_cycle_keys={"occurrence:2024-01-01"},
        )

        assert [o.cycle_key for o in occurrences] == ["occurrence:2024-02-01"]

    def test_disabled_schedule_yields_nothing(self):
        config = _config(enabled=False)

        assert evaluate_recurrence(config, date(2024, 2, 10), datetime(2024, 3, 1)) == []

    def test_start_in_future_yields_nothing(self):
        config = _config(start_date=date(2024, 5, 1))

        assert evaluate_recurrence(config, None, datetime(2024, 3, 1)) == []

    def test_local_send_time(self):
        """09:00 in Ho Chi Minh City (UTC+7) is 02:00 UTC."""
        tz = ZoneInfo("Asia/Ho_Chi_Minh")

        occurrences = evaluate_recurrence(_config(), None, datetime(2024, 1, 1, 2, 0), tz=tz)

        assert len(occurrences) == 1
        assert occurrences[0].scheduled_at == datetime(2024, 1, 1, 2, 0)
        assert fire_time(date(2024, 1, 1), time(9, 0), tz) == datetime(2024, 1, 1, 2, 0)


# ============================================================================
# Due-date Reminder Tests
# ============================================================================

class TestDueSoonReminder:
    """Tests for the INVOICE_DUE_SOON reminder."""

    def _due_soon(self, occurrences):
        return [o for o in occurrences if o.notification_type == NotificationType.INVOICE_DUE_SOON]

    def test_fires_days_before_due(self):
        config = _config(start_date=date(2024, 6, 1), days_before_due=3)
        due_date = date(2024, 3, 20)

        early = self._due_soon(evaluate_recurrence(config, due_date, datetime(2024, 3, 16, 12, 0)))
        on_time = self._due_soon(evaluate_recurrence(config, due_date, datetime(2024, 3, 17, 9, 0)))

        assert early == []
        assert len(on_time) == 1
        assert on_time[0].cycle_key == "due:2024-03-20"
        assert on_time[0].scheduled_at == datetime(2024, 3, 17, 9, 0)

    def test_still_due_after_due_date_until_fired(self):
        config = _config(start_date=date(2024, 6, 1))
        due_date = date(2024, 3, 20)

        late = self._due_soon(evaluate_recurrence(config, due_date, datetime(2024, 4, 1)))
        fired = self._due_soon(
            evaluate_recurrence(
                config,
                due_date,
                datetime(2024, 4, 1),
                fired_cycle_keys={due_soon_cycle_key(due_date)},
            )
        )

        assert len(late) == 1
        assert fired == []

    def test_no_due_date_no_reminder(self):
        config = _config(start_date=date(2024, 6, 1))

        assert evaluate_recurrence(config, None, datetime(2024, 4, 1)) == []

    def test_cycle_key_families_do_not_collide(self):
        day = date(2024, 3, 1)

        assert occurrence_cycle_key(day) != due_soon_cycle_key(day)
        assert day.isoformat() not in (occurrence_cycle_key(day), due_soon_cycle_key(day))
