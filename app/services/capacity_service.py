"""Per-package capacity of a slot.

Each active package booking occupies one seat ``0..maxSlotPerPeriod-1`` of its
slot. Seats are unique per (slot key, package) in the schedules table, so two
concurrent inserts for the same seat cannot both commit; the loser re-reads
the taken seats and either moves to the next free one or is rejected.
Services bookings are not capacity-limited.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import CapacityExceeded, NotFound
from app.models.catalog import CatalogPackage
from app.models.schedule import Schedule, ScheduleStatus, ScheduleType
from app.services.catalog_client import Catalog
from app.services.slot_service import SlotKey, WeekPeriod, week_slot_keys


def _active_package_bookings(package_id: str):
    return (
        Schedule.package_id == package_id,
        Schedule.type == ScheduleType.PACKAGE.value,
        Schedule.status != ScheduleStatus.CANCELLED.value,
    )


def _in_slot(slot_key: SlotKey):
    return (
        Schedule.week_from == slot_key.week_period.start,
        Schedule.day_offset == slot_key.day_offset,
        Schedule.time_offset == slot_key.time_offset,
    )


def max_slots_for(package: CatalogPackage) -> int:
    # a missing or zero limit falls back to the default, as the booking UI always did
    return package.max_slot_per_period or settings.default_max_slot_per_period


async def count_active_bookings(session: AsyncSession, slot_key: SlotKey, package_id: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Schedule)
        .where(*_in_slot(slot_key), *_active_package_bookings(package_id))
    )
    return result.scalar_one()


async def get_taken_seats(session: AsyncSession, slot_key: SlotKey, package_id: str) -> set[int]:
    result = await session.execute(
        select(Schedule.capacity_seat).where(
            *_in_slot(slot_key),
            *_active_package_bookings(package_id),
            Schedule.capacity_seat.is_not(None),
        )
    )
    return {row[0] for row in result.all()}


class CapacityManager:
    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def get_package(self, package_id: str) -> CatalogPackage:
        package = await self._catalog.get_package(package_id)
        if package is None:
            raise NotFound(f"Package {package_id} not found")
        return package

    async def remaining_capacity(
        self, session: AsyncSession, slot_key: SlotKey, package_id: str
    ) -> int:
        package = await self.get_package(package_id)
        booked = await count_active_bookings(session, slot_key, package_id)
        return max(0, max_slots_for(package) - booked)

    async def reserve(
        self, session: AsyncSession, slot_key: SlotKey, package: CatalogPackage
    ) -> int:
        """Return the lowest free seat of the slot for ``package``.

        The seat only becomes binding when the schedule row carrying it commits;
        call this inside the same transaction as the insert.
        """
        limit = max_slots_for(package)
        taken = await get_taken_seats(session, slot_key, package.id)
        for seat in range(limit):
            if seat not in taken:
                return seat
        raise CapacityExceeded(
            f"Package {package.id} is fully booked for {slot_key.calendar_date().isoformat()} {slot_key.label}"
        )

    async def week_availability(
        self, session: AsyncSession, week_period: WeekPeriod, package_id: str
    ) -> tuple[CatalogPackage, list[tuple[SlotKey, int]]]:
        """Remaining capacity for every slot of the week, morning before afternoon."""
        package = await self.get_package(package_id)
        result = await session.execute(
            select(Schedule.day_offset, Schedule.time_offset, func.count())
            .where(Schedule.week_from == week_period.start, *_active_package_bookings(package_id))
            .group_by(Schedule.day_offset, Schedule.time_offset)
        )
        booked = {(day, t): n for day, t, n in result.all()}
        limit = max_slots_for(package)
        return package, [
            (key, max(0, limit - booked.get((key.day_offset, key.time_offset), 0)))
            for key in week_slot_keys(week_period)
        ]
