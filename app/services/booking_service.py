"""Booking entry point: every Schedule is created here.

Checks run in a fixed order (services list, package, slot key, capacity,
duplicate) and the row is written in the same transaction as the capacity
and duplicate reads. The schedules table carries unique constraints on the
occupied seat and on the active booking signature, so when two requests race
past the reads only one insert commits; the other is rolled back and its
checks are re-run against the committed state, surfacing as
CapacityExceeded or DuplicateBooking.
"""
import hashlib
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import DuplicateBooking, NotFound, Timeout, Unavailable, ValidationError
from app.models.catalog import CatalogPackage
from app.models.schedule import (
    Schedule,
    ScheduleCreate,
    ScheduleStatus,
    ScheduleType,
    ServiceItemStatus,
)
from app.services.capacity_service import CapacityManager, max_slots_for
from app.services.catalog_client import Catalog
from app.services.slot_service import SlotKey, slot_key_for_date

logger = logging.getLogger(__name__)


def booking_signature(
    user_id: str,
    slot_key: SlotKey,
    booking_type: ScheduleType,
    package_id: str | None,
    service_ids: list[str],
) -> str:
    """Stable identity of a booking; services compare as a set."""
    if booking_type == ScheduleType.PACKAGE:
        target = f"package:{package_id}"
    else:
        target = "services:" + ",".join(sorted(set(service_ids)))
    raw = "|".join(
        [
            user_id,
            slot_key.week_period.start.isoformat(),
            str(slot_key.day_offset),
            str(slot_key.time_offset),
            target,
        ]
    )
    return hashlib.sha256(raw.encode()).hexdigest()


def resolve_slot_key(request: ScheduleCreate) -> SlotKey:
    if request.date is not None:
        if request.week_period is not None or request.day_offset is not None:
            raise ValidationError("Give either date or weekPeriod with dayOffset, not both")
        return slot_key_for_date(request.date, request.time_offset)
    if request.week_period is None or request.day_offset is None:
        raise ValidationError("date or weekPeriod with dayOffset is required")
    return SlotKey.from_parts(request.week_period, request.day_offset, request.time_offset)


async def get_by_idempotency_key(session: AsyncSession, key: str) -> Schedule | None:
    result = await session.execute(select(Schedule).where(Schedule.idempotency_key == key))
    return result.scalar_one_or_none()


async def get_active_by_signature(session: AsyncSession, signature: str) -> Schedule | None:
    result = await session.execute(select(Schedule).where(Schedule.active_signature == signature))
    return result.scalar_one_or_none()


class BookingService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        catalog: Catalog,
        capacity: CapacityManager,
        max_attempts: int | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._catalog = catalog
        self._capacity = capacity
        self._max_attempts = max_attempts or settings.booking_max_attempts

    async def create(self, request: ScheduleCreate) -> Schedule:
        service_ids = self._validate_services(request)
        package, total_price = await self._price_target(request, service_ids)
        slot_key = resolve_slot_key(request)
        signature = booking_signature(
            request.user_id, slot_key, request.type, request.package_id, service_ids
        )

        # every lost race means another booking committed: at most one per seat,
        # plus one for the duplicate signature and one for the idempotency key
        max_attempts = self._max_attempts
        if package is not None:
            max_attempts = max(max_attempts, max_slots_for(package) + 2)

        for attempt in range(1, max_attempts + 1):
            try:
                schedule = await self._insert(
                    request, slot_key, package, service_ids, signature, total_price
                )
            except IntegrityError:
                logger.info(
                    "Booking race lost: user=%s week=%s day=%d time=%d attempt=%d",
                    request.user_id,
                    slot_key.week_period.start.isoformat(),
                    slot_key.day_offset,
                    slot_key.time_offset,
                    attempt,
                )
                continue
            except OperationalError as e:
                logger.warning("Schedule store unavailable while booking: %s", e)
                raise Unavailable("Schedule store unavailable, retry with the same idempotency key") from e
            except PoolTimeoutError as e:
                logger.warning("No database connection available while booking: %s", e)
                raise Timeout("Schedule store busy, retry with the same idempotency key") from e
            return schedule

        raise Unavailable(f"Booking still contended after {max_attempts} attempts, retry later")

    def _validate_services(self, request: ScheduleCreate) -> list[str]:
        if request.type == ScheduleType.SERVICES:
            if not request.services:
                raise ValidationError("A services booking needs at least one service")
            # keep first occurrence order
            return list(dict.fromkeys(request.services))
        if not request.package_id:
            raise ValidationError("A package booking needs a packageId")
        if request.services:
            raise ValidationError("A package booking cannot list services")
        return []

    async def _price_target(
        self, request: ScheduleCreate, service_ids: list[str]
    ) -> tuple[CatalogPackage | None, int]:
        if request.type == ScheduleType.PACKAGE:
            package = await self._capacity.get_package(request.package_id)
            return package, package.price
        found = await self._catalog.get_services(service_ids)
        missing = [sid for sid in service_ids if sid not in found]
        if missing:
            raise NotFound(f"Service(s) not found: {', '.join(missing)}")
        return None, sum(found[sid].price for sid in service_ids)

    async def _insert(
        self,
        request: ScheduleCreate,
        slot_key: SlotKey,
        package: CatalogPackage | None,
        service_ids: list[str],
        signature: str,
        total_price: int,
    ) -> Schedule:
        async with self._session_maker() as session:
            async with session.begin():
                if request.idempotency_key:
                    existing = await get_by_idempotency_key(session, request.idempotency_key)
                    if existing is not None:
                        if existing.request_signature != signature:
                            raise ValidationError("Idempotency key already used for a different booking")
                        logger.info("Replaying booking %s for idempotency key", existing.id)
                        return existing

                seat = None
                if package is not None:
                    seat = await self._capacity.reserve(session, slot_key, package)

                duplicate = await get_active_by_signature(session, signature)
                if duplicate is not None:
                    raise DuplicateBooking(
                        f"User {request.user_id} already holds booking {duplicate.id} for this slot"
                    )

                schedule = Schedule(
                    user_id=request.user_id,
                    week_from=slot_key.week_period.start,
                    week_to=slot_key.week_period.end,
                    day_offset=slot_key.day_offset,
                    time_offset=slot_key.time_offset,
                    type=request.type.value,
                    package_id=request.package_id if package is not None else None,
                    services=[
                        {"service": sid, "status": ServiceItemStatus.PENDING.value}
                        for sid in service_ids
                    ]
                    or None,
                    status=ScheduleStatus.CONFIRMED.value,
                    total_price=total_price,
                    active_signature=signature,
                    request_signature=signature,
                    capacity_seat=seat,
                    idempotency_key=request.idempotency_key,
                )
                session.add(schedule)
                await session.flush()

        logger.info(
            "Booked schedule %s: user=%s type=%s week=%s day=%d time=%d seat=%s",
            schedule.id,
            schedule.user_id,
            schedule.type,
            schedule.week_from.isoformat(),
            schedule.day_offset,
            schedule.time_offset,
            seat,
        )
        return schedule
