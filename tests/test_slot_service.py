from datetime import UTC, date, datetime, timedelta

import pydantic
import pytest

from app.core.errors import ValidationError
from app.services.slot_service import (
    REFERENCE_TZ,
    SlotKey,
    WeekPeriod,
    day_offset_of,
    local_date_of,
    slot_key_for_date,
    slot_key_for_instant,
    time_offset_of,
    week_period_of,
    week_slot_keys,
)

# Monday 2026-10-19 00:00 at UTC+07:00, as naive UTC
WEEK_START = datetime(2026, 10, 18, 17, 0)


def test_week_period_starts_monday_midnight_reference_offset() -> None:
    period = week_period_of(datetime(2026, 10, 21, 3, 0, tzinfo=UTC))
    assert period.start == WEEK_START
    assert period.end == WEEK_START + timedelta(days=7)


def test_instants_in_same_week_share_period() -> None:
    first = datetime(2026, 10, 19, 0, 0, tzinfo=REFERENCE_TZ)
    last = datetime(2026, 10, 25, 23, 59, 59, 999999, tzinfo=REFERENCE_TZ)
    middle = datetime(2026, 10, 22, 9, 30)  # naive, read as UTC
    assert week_period_of(first) == week_period_of(last) == week_period_of(middle)


def test_week_boundary_belongs_to_new_week() -> None:
    assert week_period_of(WEEK_START).start == WEEK_START
    just_before = WEEK_START - timedelta(microseconds=1)
    assert week_period_of(just_before).start == WEEK_START - timedelta(days=7)
    assert day_offset_of(WEEK_START) == 0
    assert day_offset_of(just_before) == 6


def test_day_offset_reconstructs_calendar_day() -> None:
    t = datetime(2026, 9, 28, 0, 0, tzinfo=UTC)
    end = t + timedelta(days=21)
    while t < end:
        period = week_period_of(t)
        offset = day_offset_of(t)
        assert 0 <= offset <= 6
        assert local_date_of(period.start + timedelta(days=offset)) == local_date_of(t)
        assert period.contains(t)
        t += timedelta(hours=5, minutes=17)


def test_time_offset_splits_at_local_noon() -> None:
    assert time_offset_of(datetime(2026, 10, 21, 4, 59, tzinfo=UTC)) == 0
    assert time_offset_of(datetime(2026, 10, 21, 5, 0, tzinfo=UTC)) == 1
    assert time_offset_of(datetime(2026, 10, 21, 23, 0, tzinfo=REFERENCE_TZ)) == 1


def test_week_period_requires_exactly_seven_days() -> None:
    # end-inclusive Saturday 23:59:59.999 periods are not accepted
    with pytest.raises(pydantic.ValidationError):
        WeekPeriod(start=WEEK_START, end=WEEK_START + timedelta(days=6, hours=23, minutes=59))


def test_week_period_accepts_wire_aliases_and_aware_datetimes() -> None:
    period = WeekPeriod.model_validate(
        {"from": "2026-10-19T00:00:00+07:00", "to": "2026-10-26T00:00:00+07:00"}
    )
    assert period.start == WEEK_START
    assert period.model_dump(by_alias=True)["from"] == WEEK_START


def test_from_parts_rejects_misaligned_period() -> None:
    misaligned = WeekPeriod(start=datetime(2026, 10, 19), end=datetime(2026, 10, 26))
    with pytest.raises(ValidationError):
        SlotKey.from_parts(misaligned, 0, 0)


def test_from_parts_rejects_out_of_range_offsets() -> None:
    period = week_period_of(WEEK_START)
    with pytest.raises(ValidationError):
        SlotKey.from_parts(period, 7, 0)
    with pytest.raises(ValidationError):
        SlotKey.from_parts(period, 0, 2)


def test_slot_key_for_date_matches_instant() -> None:
    key = slot_key_for_date(date(2026, 10, 25), 1)
    assert key.day_offset == 6
    assert key.calendar_date() == date(2026, 10, 25)
    assert key.label == "afternoon"
    assert key == slot_key_for_instant(datetime(2026, 10, 25, 15, 0, tzinfo=REFERENCE_TZ))
    assert len({key, slot_key_for_date(date(2026, 10, 25), 1)}) == 1


def test_day_start_is_local_midnight() -> None:
    key = slot_key_for_date(date(2026, 10, 21), 0)
    assert key.day_start() == datetime(2026, 10, 20, 17, 0)


def test_week_slot_keys_cover_fourteen_slots() -> None:
    keys = week_slot_keys(week_period_of(WEEK_START))
    assert len(keys) == 14
    assert len(set(keys)) == 14
    assert (keys[0].day_offset, keys[0].time_offset) == (0, 0)
    assert (keys[-1].day_offset, keys[-1].time_offset) == (6, 1)
