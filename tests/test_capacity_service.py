import pytest

from app.core.errors import CapacityExceeded, NotFound
from app.services.capacity_service import max_slots_for
from app.services.slot_service import slot_key_for_date
from tests.conftest import BOOKING_DATE, package_request, services_request

MORNING = slot_key_for_date(BOOKING_DATE, 0)


async def test_remaining_capacity_counts_active_bookings(services, session_maker) -> None:
    async with session_maker() as session:
        assert await services.capacity.remaining_capacity(session, MORNING, "pkg-basic") == 2

    await services.booking.create(package_request("user-an", "pkg-basic"))

    async with session_maker() as session:
        assert await services.capacity.remaining_capacity(session, MORNING, "pkg-basic") == 1
        # other package and other half-day are independent
        assert await services.capacity.remaining_capacity(session, MORNING, "pkg-cardio") == 1
        afternoon = slot_key_for_date(BOOKING_DATE, 1)
        assert await services.capacity.remaining_capacity(session, afternoon, "pkg-basic") == 2


async def test_cancelled_bookings_free_capacity(services, session_maker) -> None:
    first = await services.booking.create(package_request("user-an", "pkg-cardio"))
    with pytest.raises(CapacityExceeded):
        await services.booking.create(package_request("user-binh", "pkg-cardio"))

    await services.status.cancel(first.id)

    async with session_maker() as session:
        assert await services.capacity.remaining_capacity(session, MORNING, "pkg-cardio") == 1
    second = await services.booking.create(package_request("user-binh", "pkg-cardio"))
    assert second.capacity_seat == 0


async def test_package_without_limit_defaults_to_one(services, catalog) -> None:
    assert max_slots_for(catalog.packages["pkg-general"]) == 1
    await services.booking.create(package_request("user-an", "pkg-general"))
    with pytest.raises(CapacityExceeded):
        await services.booking.create(package_request("user-binh", "pkg-general"))


async def test_reserve_hands_out_lowest_free_seat(services) -> None:
    a = await services.booking.create(package_request("user-an", "pkg-basic"))
    b = await services.booking.create(package_request("user-binh", "pkg-basic"))
    assert (a.capacity_seat, b.capacity_seat) == (0, 1)

    await services.status.cancel(a.id)
    c = await services.booking.create(package_request("user-chi", "pkg-basic"))
    assert c.capacity_seat == 0


async def test_services_bookings_are_not_capacity_limited(services, session_maker) -> None:
    for user in ("user-an", "user-binh", "user-chi", "user-dung"):
        schedule = await services.booking.create(services_request(user, ["svc1"]))
        assert schedule.capacity_seat is None

    async with session_maker() as session:
        assert await services.capacity.remaining_capacity(session, MORNING, "pkg-basic") == 2


async def test_week_availability_reports_each_slot(services, session_maker) -> None:
    await services.booking.create(package_request("user-an", "pkg-basic"))

    async with session_maker() as session:
        package, slots = await services.capacity.week_availability(
            session, MORNING.week_period, "pkg-basic"
        )

    assert package.id == "pkg-basic"
    assert len(slots) == 14
    remaining = {(key.day_offset, key.time_offset): n for key, n in slots}
    assert remaining[(MORNING.day_offset, 0)] == 1
    assert remaining[(MORNING.day_offset, 1)] == 2
    assert remaining[(0, 0)] == 2


async def test_unknown_package_is_not_found(services, session_maker) -> None:
    async with session_maker() as session:
        with pytest.raises(NotFound):
            await services.capacity.remaining_capacity(session, MORNING, "pkg-missing")
