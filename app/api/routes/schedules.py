import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query, status

from app.api.deps import Services, get_services
from app.api.schemas.schedule import RecordPaymentRequest, SchedulePage, StatusChangeRequest
from app.models.catalog import PackageRef, UserRef
from app.models.schedule import (
    PaymentInfo,
    Schedule,
    ScheduleCreate,
    SchedulePublic,
    ScheduleStatus,
    ScheduleType,
    ServiceItem,
)
from app.services.payment_service import PaymentSummary
from app.services.schedule_query_service import ScheduleFilter
from app.services.slot_service import WeekPeriod

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/schedules", tags=["schedules"])


def _to_public(
    s: Schedule, user_ref: UserRef | None = None, package_ref: PackageRef | None = None
) -> SchedulePublic:
    return SchedulePublic(
        id=s.id,
        user_id=s.user_id,
        user_info=user_ref,
        week_period=WeekPeriod(start=s.week_from, end=s.week_to),
        day_offset=s.day_offset,
        time_offset=s.time_offset,
        type=s.type,
        status=s.status,
        package_info=package_ref,
        services=[ServiceItem(**item) for item in s.services] if s.services else None,
        payment=PaymentInfo(
            total_price=s.total_price,
            total_paid=s.total_paid,
            payments=list(s.payments or []),
        ),
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


async def _render(services: Services, schedules: list[Schedule], expand: bool = False) -> list[SchedulePublic]:
    users, packages = await asyncio.gather(
        services.queries.user_refs(schedules, expand=expand),
        services.queries.package_refs(schedules, expand=expand),
    )
    return [_to_public(s, users.get(s.id), packages.get(s.id)) for s in schedules]


async def _render_one(services: Services, schedule: Schedule, expand: bool = False) -> SchedulePublic:
    return (await _render(services, [schedule], expand=expand))[0]


@router.post("", response_model=SchedulePublic, status_code=status.HTTP_201_CREATED)
async def book_schedule(
    body: ScheduleCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    services: Services = Depends(get_services),
) -> SchedulePublic:
    if idempotency_key:
        body = body.model_copy(update={"idempotency_key": idempotency_key})
    schedule = await services.booking.create(body)
    return await _render_one(services, schedule)


@router.get("", response_model=SchedulePage)
async def list_schedules(
    status_param: ScheduleStatus | None = Query(None, alias="status"),
    type_param: ScheduleType | None = Query(None, alias="type"),
    user_id: str | None = Query(None, alias="userId"),
    package_id: str | None = Query(None, alias="packageId"),
    week_from: datetime | None = Query(None, alias="weekFrom"),
    day_offset: int | None = Query(None, alias="dayOffset", ge=0, le=6),
    time_offset: int | None = Query(None, alias="timeOffset", ge=0, le=1),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    sort: str = Query("createdAt"),
    order: str = Query("desc"),
    expand: bool = Query(False),
    services: Services = Depends(get_services),
) -> SchedulePage:
    filters = ScheduleFilter(
        status=status_param,
        type=type_param,
        user_id=user_id,
        package_id=package_id,
        week_from=week_from,
        day_offset=day_offset,
        time_offset=time_offset,
        search=search,
    )
    schedules, pagination = await services.queries.list_schedules(
        filters, page=page, limit=limit, sort=sort, order=order
    )
    return SchedulePage(data=await _render(services, schedules, expand=expand), pagination=pagination)


@router.get("/user/{user_id}", response_model=SchedulePage)
async def list_user_schedules(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    expand: bool = Query(False),
    services: Services = Depends(get_services),
) -> SchedulePage:
    schedules, pagination = await services.queries.list_for_user(user_id, page=page, limit=limit)
    return SchedulePage(data=await _render(services, schedules, expand=expand), pagination=pagination)


@router.get("/{schedule_id}", response_model=SchedulePublic)
async def get_schedule(
    schedule_id: str,
    expand: bool = Query(False),
    services: Services = Depends(get_services),
) -> SchedulePublic:
    schedule = await services.queries.get(schedule_id)
    return await _render_one(services, schedule, expand=expand)


@router.post("/{schedule_id}/check-in", response_model=SchedulePublic)
async def check_in(schedule_id: str, services: Services = Depends(get_services)) -> SchedulePublic:
    return await _render_one(services, await services.status.check_in(schedule_id))


@router.post("/{schedule_id}/start", response_model=SchedulePublic)
async def start_serving(schedule_id: str, services: Services = Depends(get_services)) -> SchedulePublic:
    return await _render_one(services, await services.status.start_serving(schedule_id))


@router.post("/{schedule_id}/complete", response_model=SchedulePublic)
async def complete(schedule_id: str, services: Services = Depends(get_services)) -> SchedulePublic:
    return await _render_one(services, await services.status.complete(schedule_id))


@router.post("/{schedule_id}/cancel", response_model=SchedulePublic)
async def cancel(schedule_id: str, services: Services = Depends(get_services)) -> SchedulePublic:
    return await _render_one(services, await services.status.cancel(schedule_id))


@router.patch("/{schedule_id}/status", response_model=SchedulePublic)
async def change_status(
    schedule_id: str,
    body: StatusChangeRequest,
    services: Services = Depends(get_services),
) -> SchedulePublic:
    return await _render_one(services, await services.status.transition(schedule_id, body.status))


@router.post("/{schedule_id}/services/{service_id}/complete", response_model=SchedulePublic)
async def complete_service(
    schedule_id: str,
    service_id: str,
    services: Services = Depends(get_services),
) -> SchedulePublic:
    schedule = await services.status.complete_service_item(schedule_id, service_id)
    return await _render_one(services, schedule)


@router.get("/{schedule_id}/payment", response_model=PaymentSummary)
async def payment_summary(schedule_id: str, services: Services = Depends(get_services)) -> PaymentSummary:
    return await services.payments.summary(schedule_id)


@router.post("/{schedule_id}/payments", response_model=PaymentSummary)
async def record_payment(
    schedule_id: str,
    body: RecordPaymentRequest,
    services: Services = Depends(get_services),
) -> PaymentSummary:
    schedule = await services.payments.record_payment(schedule_id, body.amount, body.reference)
    logger.info("Payment recorded via API for schedule %s", schedule_id)
    return await services.payments.summary_for(schedule)
