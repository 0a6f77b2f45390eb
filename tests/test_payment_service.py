import pytest

from app.core.errors import InvalidTransition, NotFound, ValidationError
from app.models.schedule import Schedule
from app.services.payment_service import summarize
from app.services.slot_service import slot_key_for_date
from tests.conftest import BOOKING_DATE, package_request, services_request


def test_partially_paid_summary() -> None:
    summary = summarize("s1", total_price=500000, total_paid=200000)
    assert summary.remaining_balance == 300000
    assert not summary.is_fully_paid


def test_overpaid_summary_never_goes_negative() -> None:
    summary = summarize("s1", total_price=500000, total_paid=600000)
    assert summary.remaining_balance == 0
    assert summary.is_fully_paid


def test_summary_serializes_camel_case() -> None:
    body = summarize("s1", total_price=100, total_paid=0).model_dump(by_alias=True)
    assert body["remainingBalance"] == 100
    assert body["isFullyPaid"] is False
    assert body["priceSource"] == "schedule"


async def test_summary_uses_booking_price(services) -> None:
    schedule = await services.booking.create(services_request("user-an", ["svc1", "svc3"]))
    summary = await services.payments.summary(schedule.id)
    assert summary.total_price == 550000
    assert summary.remaining_balance == 550000
    assert summary.price_source == "schedule"


async def test_record_payment_accumulates(services) -> None:
    schedule = await services.booking.create(package_request("user-an", "pkg-basic"))

    await services.payments.record_payment(schedule.id, 200000, reference="pay-1")
    updated = await services.payments.record_payment(schedule.id, 300000, reference="pay-2")

    assert updated.total_paid == 500000
    assert updated.payments == ["pay-1", "pay-2"]
    summary = await services.payments.summary(schedule.id)
    assert summary.is_fully_paid


@pytest.mark.parametrize("amount", [0, -1000])
async def test_record_payment_rejects_non_positive_amount(services, amount) -> None:
    schedule = await services.booking.create(package_request("user-an", "pkg-basic"))
    with pytest.raises(ValidationError):
        await services.payments.record_payment(schedule.id, amount)


async def test_record_payment_on_cancelled_schedule(services) -> None:
    schedule = await services.booking.create(package_request("user-an", "pkg-basic"))
    await services.status.cancel(schedule.id)
    with pytest.raises(InvalidTransition):
        await services.payments.record_payment(schedule.id, 1000)


async def test_record_payment_unknown_schedule(services) -> None:
    with pytest.raises(NotFound):
        await services.payments.record_payment("does-not-exist", 1000)


def _unpriced(**fields) -> Schedule:
    week = slot_key_for_date(BOOKING_DATE, 0).week_period
    return Schedule(
        user_id="user-an",
        week_from=week.start,
        week_to=week.end,
        day_offset=2,
        time_offset=0,
        total_price=None,
        **fields,
    )


async def test_missing_price_falls_back_to_catalog(services) -> None:
    schedule = _unpriced(
        type="services",
        services=[{"service": "svc1", "status": "pending"}, {"service": "svc2", "status": "pending"}],
        total_paid=100000,
    )
    summary = await services.payments.summary_for(schedule)
    assert summary.total_price == 400000
    assert summary.remaining_balance == 300000
    assert summary.price_source == "catalog"


async def test_catalog_fallback_surfaces_missing_items(services) -> None:
    with pytest.raises(NotFound):
        await services.payments.summary_for(_unpriced(type="package", package_id="pkg-retired"))
    with pytest.raises(NotFound):
        await services.payments.summary_for(
            _unpriced(type="services", services=[{"service": "svc-retired", "status": "pending"}])
        )
