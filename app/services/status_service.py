"""Schedule status lifecycle.

    CONFIRMED -> CHECKEDIN -> SERVING -> COMPLETED
    CONFIRMED | CHECKEDIN -> CANCELLED

COMPLETED and CANCELLED are terminal. Every change is a conditional UPDATE on
the current status, so of two actors racing on one schedule (say check-in and
cancel) exactly one wins and the other gets InvalidTransition.
"""
import logging
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import InvalidTransition, NotFound, ValidationError
from app.models.schedule import Schedule, ScheduleStatus, ScheduleType, ServiceItemStatus

logger = logging.getLogger(__name__)

TRANSITIONS: dict[ScheduleStatus, frozenset[ScheduleStatus]] = {
    ScheduleStatus.CONFIRMED: frozenset({ScheduleStatus.CHECKEDIN, ScheduleStatus.CANCELLED}),
    ScheduleStatus.CHECKEDIN: frozenset({ScheduleStatus.SERVING, ScheduleStatus.CANCELLED}),
    ScheduleStatus.SERVING: frozenset({ScheduleStatus.COMPLETED}),
    ScheduleStatus.COMPLETED: frozenset(),
    ScheduleStatus.CANCELLED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: ScheduleStatus, target: ScheduleStatus) -> bool:
    return target in TRANSITIONS[current]


def sources_of(target: ScheduleStatus) -> frozenset[ScheduleStatus]:
    return frozenset(s for s, targets in TRANSITIONS.items() if target in targets)


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


async def get_schedule(session: AsyncSession, schedule_id: str) -> Schedule:
    schedule = await session.get(Schedule, schedule_id)
    if schedule is None:
        raise NotFound(f"Schedule {schedule_id} not found")
    return schedule


class StatusService:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def transition(self, schedule_id: str, target: ScheduleStatus | str) -> Schedule:
        try:
            target = ScheduleStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown status {target!r}")

        values: dict = {"status": target.value, "updated_at": _utc_naive_now()}
        if target == ScheduleStatus.CANCELLED:
            # frees the capacity seat and lets the same booking be made again
            values.update(active_signature=None, capacity_seat=None)

        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Schedule)
                    .where(
                        Schedule.id == schedule_id,
                        Schedule.status.in_([s.value for s in sources_of(target)]),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    current = await session.scalar(
                        select(Schedule.status).where(Schedule.id == schedule_id)
                    )
                    if current is None:
                        raise NotFound(f"Schedule {schedule_id} not found")
                    logger.warning(
                        "Rejected transition of schedule %s: %s -> %s", schedule_id, current, target.value
                    )
                    raise InvalidTransition(
                        f"Cannot move schedule from {current} to {target.value}",
                        current=current,
                        target=target.value,
                    )
                schedule = await get_schedule(session, schedule_id)

        logger.info("Schedule %s moved to %s", schedule_id, target.value)
        return schedule

    async def check_in(self, schedule_id: str) -> Schedule:
        return await self.transition(schedule_id, ScheduleStatus.CHECKEDIN)

    async def start_serving(self, schedule_id: str) -> Schedule:
        return await self.transition(schedule_id, ScheduleStatus.SERVING)

    async def complete(self, schedule_id: str) -> Schedule:
        return await self.transition(schedule_id, ScheduleStatus.COMPLETED)

    async def cancel(self, schedule_id: str) -> Schedule:
        return await self.transition(schedule_id, ScheduleStatus.CANCELLED)

    async def complete_service_item(self, schedule_id: str, service_id: str) -> Schedule:
        """Mark one service of a services booking as done; only while it is being served."""
        async with self._session_maker() as session:
            async with session.begin():
                schedule = await get_schedule(session, schedule_id)
                if schedule.type != ScheduleType.SERVICES:
                    raise ValidationError(f"Schedule {schedule_id} is a package booking")
                if schedule.status != ScheduleStatus.SERVING:
                    raise InvalidTransition(
                        f"Services can only be completed while serving, schedule is {schedule.status}",
                        current=schedule.status,
                    )
                if service_id not in schedule.service_ids:
                    raise NotFound(f"Service {service_id} is not part of schedule {schedule_id}")

                items = [
                    {**item, "status": ServiceItemStatus.COMPLETED.value}
                    if item["service"] == service_id
                    else dict(item)
                    for item in schedule.services
                ]
                result = await session.execute(
                    update(Schedule)
                    .where(
                        Schedule.id == schedule_id,
                        Schedule.status == ScheduleStatus.SERVING.value,
                        Schedule.updated_at == schedule.updated_at,
                    )
                    .values(services=items, updated_at=_utc_naive_now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidTransition(
                        f"Schedule {schedule_id} changed concurrently, reload and retry"
                    )
                await session.refresh(schedule)

        logger.info("Schedule %s: service %s completed", schedule_id, service_id)
        return schedule
