import logging
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import InvalidTransition, NotFound, Unavailable, ValidationError
from app.models.base import CamelModel
from app.models.schedule import Schedule, ScheduleStatus, ScheduleType
from app.services.catalog_client import Catalog
from app.services.status_service import get_schedule

logger = logging.getLogger(__name__)


class PaymentSummary(CamelModel):
    schedule_id: str
    total_price: int
    total_paid: int
    remaining_balance: int
    is_fully_paid: bool
    # "catalog" when the schedule had no price yet and linked items were summed
    price_source: Literal["schedule", "catalog"] = "schedule"


def summarize(
    schedule_id: str,
    total_price: int,
    total_paid: int,
    price_source: Literal["schedule", "catalog"] = "schedule",
) -> PaymentSummary:
    remaining = max(0, total_price - total_paid)
    return PaymentSummary(
        schedule_id=schedule_id,
        total_price=total_price,
        total_paid=total_paid,
        remaining_balance=remaining,
        is_fully_paid=remaining == 0,
        price_source=price_source,
    )


class PaymentService:
    """Paid/owed view of a schedule. Payment capture itself happens elsewhere."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], catalog: Catalog) -> None:
        self._session_maker = session_maker
        self._catalog = catalog

    async def summary(self, schedule_id: str) -> PaymentSummary:
        async with self._session_maker() as session:
            schedule = await get_schedule(session, schedule_id)
        return await self.summary_for(schedule)

    async def summary_for(self, schedule: Schedule) -> PaymentSummary:
        if schedule.total_price is not None:
            return summarize(schedule.id, schedule.total_price, schedule.total_paid)
        price = await self._catalog_price(schedule)
        return summarize(schedule.id, price, schedule.total_paid, price_source="catalog")

    async def _catalog_price(self, schedule: Schedule) -> int:
        # a lookup failure must surface; reporting 0 would read as a free booking
        if schedule.type == ScheduleType.PACKAGE:
            package = await self._catalog.get_package(schedule.package_id)
            if package is None:
                raise NotFound(f"Package {schedule.package_id} of schedule {schedule.id} not found")
            return package.price
        service_ids = schedule.service_ids
        found = await self._catalog.get_services(service_ids)
        missing = [sid for sid in service_ids if sid not in found]
        if missing:
            raise NotFound(f"Service(s) of schedule {schedule.id} not found: {', '.join(missing)}")
        return sum(found[sid].price for sid in service_ids)

    async def record_payment(
        self, schedule_id: str, amount: int, reference: str | None = None
    ) -> Schedule:
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")

        for _ in range(settings.booking_max_attempts):
            async with self._session_maker() as session:
                async with session.begin():
                    schedule = await get_schedule(session, schedule_id)
                    if schedule.status == ScheduleStatus.CANCELLED:
                        raise InvalidTransition(
                            f"Schedule {schedule_id} is cancelled, payments are closed",
                            current=schedule.status,
                        )
                    payments = list(schedule.payments or [])
                    if reference:
                        payments.append(reference)
                    result = await session.execute(
                        update(Schedule)
                        .where(
                            Schedule.id == schedule_id,
                            Schedule.updated_at == schedule.updated_at,
                            Schedule.status != ScheduleStatus.CANCELLED.value,
                        )
                        .values(
                            total_paid=Schedule.total_paid + amount,
                            payments=payments,
                            updated_at=datetime.now(UTC).replace(tzinfo=None),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        await session.refresh(schedule)
                        logger.info(
                            "Recorded payment on schedule %s: amount=%d total_paid=%d",
                            schedule_id,
                            amount,
                            schedule.total_paid,
                        )
                        return schedule
            logger.info("Schedule %s changed while recording payment, retrying", schedule_id)

        raise Unavailable(f"Schedule {schedule_id} kept changing, payment not recorded")
