from datetime import UTC, date, datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Services, get_services, get_session
from app.api.schemas.schedule import PeriodInfo, SlotCapacity, WeekCapacityResponse
from app.services.capacity_service import max_slots_for
from app.services.slot_service import slot_key_for_instant, week_period_for_date

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/period", response_model=PeriodInfo)
async def period_of(at: datetime | None = Query(None)) -> PeriodInfo:
    """Week period, day offset and time offset of an instant (default: now). Naive input is UTC."""
    key = slot_key_for_instant(at or datetime.now(UTC))
    return PeriodInfo(
        week_period=key.week_period,
        day_offset=key.day_offset,
        time_offset=key.time_offset,
        date=key.calendar_date(),
    )


@router.get("/capacity", response_model=WeekCapacityResponse)
async def week_capacity(
    package_id: str = Query(..., alias="packageId"),
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> WeekCapacityResponse:
    """Remaining package capacity for every slot of the week containing ``date``."""
    week = week_period_for_date(date_param)
    package, slots = await services.capacity.week_availability(session, week, package_id)
    return WeekCapacityResponse(
        package_id=package.id,
        max_slot_per_period=max_slots_for(package),
        week_period=week,
        slots=[
            SlotCapacity(
                day_offset=key.day_offset,
                time_offset=key.time_offset,
                date=key.calendar_date(),
                remaining=remaining,
            )
            for key, remaining in slots
        ],
    )
