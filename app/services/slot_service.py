"""Period calculator: maps instants onto week periods, day offsets and time offsets.

Anchor rule: a week period starts on Monday 00:00 at the reference offset
UTC+07:00 and ends exactly seven days later. Periods are half-open, so an
instant at Monday 00:00+07:00 belongs to the week that starts there.
Naive datetimes are treated as UTC. Period bounds are kept as naive UTC to
match TIMESTAMP WITHOUT TIME ZONE columns.

The Monday anchor is the one the doctor and patient schedule views read.
Older booking forms wrote Sunday-anchored periods ending Saturday
23:59:59.999; such a weekPeriod fails the 7-day and alignment checks and the
request is rejected with 422. Those clients should send the calendar ``date`` instead.
"""
from datetime import UTC, date, datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.errors import ValidationError

REFERENCE_OFFSET = timedelta(hours=7)
REFERENCE_TZ = timezone(REFERENCE_OFFSET, "UTC+07:00")
ANCHOR_WEEKDAY = 0  # Monday
WEEK = timedelta(days=7)
DAYS_PER_WEEK = 7

MORNING = 0
AFTERNOON = 1
AFTERNOON_START_HOUR = 12

TimeOffset = Literal[0, 1]


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _local(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(REFERENCE_TZ)


def _local_midnight_utc(d: date) -> datetime:
    return datetime(d.year, d.month, d.day) - REFERENCE_OFFSET


class WeekPeriod(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start: datetime = Field(alias="from")
    end: datetime = Field(alias="to")

    @field_validator("start", "end")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def _one_week(self) -> "WeekPeriod":
        if self.end - self.start != WEEK:
            raise ValueError("week period must span exactly 7 days")
        return self

    def contains(self, instant: datetime) -> bool:
        instant = to_naive_utc(instant)
        return self.start <= instant < self.end


def local_date_of(instant: datetime) -> date:
    """Calendar day of ``instant`` at the reference offset."""
    return _local(instant).date()


def day_offset_for_date(d: date) -> int:
    return (d.weekday() - ANCHOR_WEEKDAY) % DAYS_PER_WEEK


def week_period_for_date(d: date) -> WeekPeriod:
    first_day = d - timedelta(days=day_offset_for_date(d))
    start = _local_midnight_utc(first_day)
    return WeekPeriod(start=start, end=start + WEEK)


def week_period_of(instant: datetime) -> WeekPeriod:
    return week_period_for_date(local_date_of(instant))


def day_offset_of(instant: datetime) -> int:
    return day_offset_for_date(local_date_of(instant))


def time_offset_of(instant: datetime) -> int:
    """0 (morning) before noon at the reference offset, else 1 (afternoon)."""
    return MORNING if _local(instant).hour < AFTERNOON_START_HOUR else AFTERNOON


class SlotKey(BaseModel):
    """Identity of a bookable unit: (week period, day offset, time offset)."""

    model_config = ConfigDict(frozen=True)

    week_period: WeekPeriod
    day_offset: int = Field(ge=0, le=DAYS_PER_WEEK - 1)
    time_offset: TimeOffset

    @classmethod
    def from_parts(cls, week_period: WeekPeriod, day_offset: int, time_offset: int) -> "SlotKey":
        """Build a key from caller-supplied parts, rejecting periods off the anchor rule."""
        if not 0 <= day_offset < DAYS_PER_WEEK:
            raise ValidationError(f"dayOffset must be between 0 and 6, got {day_offset}")
        if time_offset not in (MORNING, AFTERNOON):
            raise ValidationError(f"timeOffset must be 0 or 1, got {time_offset}")
        canonical = week_period_of(week_period.start)
        if canonical != week_period:
            raise ValidationError(
                "weekPeriod is not aligned to Monday 00:00 UTC+07:00 "
                f"(expected from={canonical.start.isoformat()}Z)"
            )
        return cls(week_period=canonical, day_offset=day_offset, time_offset=time_offset)

    @property
    def label(self) -> str:
        return "morning" if self.time_offset == MORNING else "afternoon"

    def calendar_date(self) -> date:
        return local_date_of(self.week_period.start) + timedelta(days=self.day_offset)

    def day_start(self) -> datetime:
        """Start of the slot's calendar day, as naive UTC."""
        return self.week_period.start + timedelta(days=self.day_offset)


def slot_key_for_date(d: date, time_offset: int) -> SlotKey:
    return SlotKey.from_parts(week_period_for_date(d), day_offset_for_date(d), time_offset)


def slot_key_for_instant(instant: datetime) -> SlotKey:
    return SlotKey(
        week_period=week_period_of(instant),
        day_offset=day_offset_of(instant),
        time_offset=time_offset_of(instant),
    )


def week_slot_keys(week_period: WeekPeriod) -> list[SlotKey]:
    """All 14 slot keys of a week, day by day, morning before afternoon."""
    return [
        SlotKey(week_period=week_period, day_offset=day, time_offset=t)
        for day in range(DAYS_PER_WEEK)
        for t in (MORNING, AFTERNOON)
    ]
