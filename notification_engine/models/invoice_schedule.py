"""Invoice reminder schedule model and recurrence configuration."""

from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel
from sqlmodel import Field, SQLModel

from notification_engine.clock import utcnow


class ReminderFrequency(str, Enum):
    """Invoice reminder cadence."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


def check_recurrence(frequency, interval_days, days_before_due) -> None:
    if frequency == ReminderFrequency.CUSTOM:
        if interval_days is None or interval_days < 1:
            raise ValueError("intervalDays must be at least 1 for custom frequency")
    if days_before_due < 0:
        raise ValueError("daysBeforeDue cannot be negative")


class RecurrenceConfig(BaseModel):
    """Reminder schedule for one invoice, as consumed by the recurrence evaluator."""

    model_config = ConfigDict(frozen=True)

    frequency: ReminderFrequency = ReminderFrequency.MONTHLY
    interval_days: int | None = None  # custom only
    send_time: time = time(9, 0)
    start_date: date
    days_before_due: int = 3
    cc_accounting_team: bool = False
    enabled: bool = True

    @model_validator(mode="after")
    def _check_interval(self) -> "RecurrenceConfig":
        check_recurrence(self.frequency, self.interval_days, self.days_before_due)
        return self


class InvoiceSchedule(SQLModel, table=True):
    """Stored reminder schedule for an invoice."""

    __tablename__ = "invoice_schedules"

    id: int | None = Field(default=None, primary_key=True)
    invoice_id: str = Field(max_length=100, unique=True, index=True)
    invoice_number: str | None = Field(default=None, max_length=100)
    customer_id: str | None = Field(default=None, max_length=100)
    recipient_email: str = Field(max_length=255)
    due_date: date | None = Field(default=None)

    frequency: ReminderFrequency = Field(default=ReminderFrequency.MONTHLY)
    interval_days: int | None = Field(default=None)
    send_time: time = Field(default=time(9, 0))
    start_date: date
    days_before_due: int = Field(default=3)
    cc_accounting_team: bool = Field(default=False)
    enabled: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_config(self) -> RecurrenceConfig:
        return RecurrenceConfig(
            frequency=self.frequency,
            interval_days=self.interval_days,
            send_time=self.send_time,
            start_date=self.start_date,
            days_before_due=self.days_before_due,
            cc_accounting_team=self.cc_accounting_team,
            enabled=self.enabled,
        )


class InvoiceScheduleRequest(BaseModel):
    """Body of POST /api/invoices/schedule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    invoice_id: str
    invoice_number: str | None = None
    customer_id: str | None = None
    recipient_email: str
    due_date: date | None = None
    frequency: ReminderFrequency = ReminderFrequency.MONTHLY
    interval_days: int | None = None
    send_time: time = time(9, 0)
    start_date: date
    days_before_due: int = 3
    cc_accounting_team: bool = False
    enabled: bool = True

    @model_validator(mode="after")
    def _check_config(self) -> "InvoiceScheduleRequest":
        check_recurrence(self.frequency, self.interval_days, self.days_before_due)
        return self

    def to_config(self) -> RecurrenceConfig:
        return RecurrenceConfig(
            frequency=self.frequency,
            interval_days=self.interval_days,
            send_time=self.send_time,
            start_date=self.start_date,
            days_before_due=self.days_before_due,
            cc_accounting_team=self.cc_accounting_team,
            enabled=self.enabled,
        )


class InvoiceScheduleResponse(BaseModel):
    """Stored schedule echoed back to the caller."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    invoice_id: str
    invoice_number: str | None
    customer_id: str | None
    recipient_email: str
    due_date: date | None
    frequency: ReminderFrequency
    interval_days: int | None
    send_time: time
    start_date: date
    days_before_due: int
    cc_accounting_team: bool
    enabled: bool
    created_at: datetime
    updated_at: datetime
