from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.booking_service import BookingService
from app.services.capacity_service import CapacityManager
from app.services.catalog_client import Catalog, UserDirectory
from app.services.payment_service import PaymentService
from app.services.schedule_query_service import ScheduleQueryService
from app.services.status_service import StatusService


@dataclass
class Services:
    """Service objects built once at startup and shared by all requests."""

    session_maker: async_sessionmaker[AsyncSession]
    capacity: CapacityManager
    booking: BookingService
    status: StatusService
    payments: PaymentService
    queries: ScheduleQueryService


def build_services(
    session_maker: async_sessionmaker[AsyncSession],
    catalog: Catalog,
    directory: UserDirectory,
) -> Services:
    capacity = CapacityManager(catalog)
    return Services(
        session_maker=session_maker,
        capacity=capacity,
        booking=BookingService(session_maker, catalog, capacity),
        status=StatusService(session_maker),
        payments=PaymentService(session_maker, catalog),
        queries=ScheduleQueryService(session_maker, catalog, directory),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_session(services: Services = Depends(get_services)) -> AsyncGenerator[AsyncSession, None]:
    async with services.session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
