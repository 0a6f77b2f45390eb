import asyncio
import logging
import math
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import NotFound, ValidationError
from app.models.catalog import PackageRef, ResolvedPackage, ResolvedUser, UnresolvedRef, UserRef
from app.models.schedule import Schedule, ScheduleStatus, ScheduleType
from app.services.catalog_client import Catalog, UserDirectory
from app.services.slot_service import SlotKey, to_naive_utc

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "createdAt": Schedule.created_at,
    "updatedAt": Schedule.updated_at,
    "weekFrom": Schedule.week_from,
}


class ScheduleFilter(BaseModel):
    status: ScheduleStatus | None = None
    type: ScheduleType | None = None
    user_id: str | None = None
    package_id: str | None = None
    week_from: datetime | None = None
    day_offset: int | None = None
    time_offset: int | None = None
    # matched against user and package names by the external collaborators
    search: str | None = None


class PaginationInfo(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class ScheduleQueryService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        catalog: Catalog,
        directory: UserDirectory,
    ) -> None:
        self._session_maker = session_maker
        self._catalog = catalog
        self._directory = directory

    async def get(self, schedule_id: str) -> Schedule:
        async with self._session_maker() as session:
            schedule = await session.get(Schedule, schedule_id)
        if schedule is None:
            raise NotFound(f"Schedule {schedule_id} not found")
        return schedule

    async def list_schedules(
        self,
        filters: ScheduleFilter | None = None,
        page: int = 1,
        limit: int | None = None,
        sort: str = "createdAt",
        order: str = "desc",
    ) -> tuple[list[Schedule], PaginationInfo]:
        filters = filters or ScheduleFilter()
        limit = limit or settings.default_page_limit
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        limit = min(limit, settings.max_page_limit)
        if sort not in SORT_FIELDS:
            raise ValidationError(f"Cannot sort by {sort!r}; use one of {', '.join(SORT_FIELDS)}")
        if order not in ("asc", "desc"):
            raise ValidationError("order must be 'asc' or 'desc'")

        conditions = await self._conditions(filters)
        sort_column = SORT_FIELDS[sort]
        ordering = (
            [sort_column.asc(), Schedule.id.asc()]
            if order == "asc"
            else [sort_column.desc(), Schedule.id.desc()]
        )

        async with self._session_maker() as session:
            total = (
                await session.execute(select(func.count()).select_from(Schedule).where(*conditions))
            ).scalar_one()
            result = await session.execute(
                select(Schedule)
                .where(*conditions)
                .order_by(*ordering)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            schedules = list(result.scalars().all())

        return schedules, PaginationInfo(
            total=total, page=page, limit=limit, totalPages=math.ceil(total / limit)
        )

    async def list_for_user(
        self, user_id: str, page: int = 1, limit: int | None = None
    ) -> tuple[list[Schedule], PaginationInfo]:
        return await self.list_schedules(ScheduleFilter(user_id=user_id), page=page, limit=limit)

    async def list_for_slot(
        self, slot_key: SlotKey, include_cancelled: bool = False
    ) -> list[Schedule]:
        q = select(Schedule).where(
            Schedule.week_from == slot_key.week_period.start,
            Schedule.day_offset == slot_key.day_offset,
            Schedule.time_offset == slot_key.time_offset,
        )
        if not include_cancelled:
            q = q.where(Schedule.status != ScheduleStatus.CANCELLED.value)
        async with self._session_maker() as session:
            result = await session.execute(q.order_by(Schedule.created_at))
            return list(result.scalars().all())

    async def _conditions(self, filters: ScheduleFilter) -> list:
        conditions = []
        if filters.status is not None:
            conditions.append(Schedule.status == filters.status.value)
        if filters.type is not None:
            conditions.append(Schedule.type == filters.type.value)
        if filters.user_id:
            conditions.append(Schedule.user_id == filters.user_id)
        if filters.package_id:
            conditions.append(Schedule.package_id == filters.package_id)
        if filters.week_from is not None:
            conditions.append(Schedule.week_from == to_naive_utc(filters.week_from))
        if filters.day_offset is not None:
            conditions.append(Schedule.day_offset == filters.day_offset)
        if filters.time_offset is not None:
            conditions.append(Schedule.time_offset == filters.time_offset)
        if filters.search and filters.search.strip():
            text = filters.search.strip()
            user_ids, package_ids = await asyncio.gather(
                self._directory.search_users(text),
                self._catalog.search_packages(text),
            )
            logger.debug(
                "Search %r matched %d user(s), %d package(s)", text, len(user_ids), len(package_ids)
            )
            conditions.append(
                or_(Schedule.user_id.in_(user_ids), Schedule.package_id.in_(package_ids))
            )
        return conditions

    async def package_refs(
        self, schedules: list[Schedule], expand: bool = False
    ) -> dict[str, PackageRef]:
        """Package reference of each package booking, keyed by schedule id.

        References stay unresolved unless ``expand`` is set; resolving happens
        here only, so callers never have to guess which shape they hold.
        """
        package_ids = {s.package_id for s in schedules if s.package_id}
        records = {}
        if expand and package_ids:
            found = await asyncio.gather(*(self._catalog.get_package(pid) for pid in package_ids))
            records = {p.id: p for p in found if p is not None}
        refs: dict[str, PackageRef] = {}
        for s in schedules:
            if not s.package_id:
                continue
            record = records.get(s.package_id)
            refs[s.id] = (
                ResolvedPackage(id=s.package_id, record=record)
                if record is not None
                else UnresolvedRef(id=s.package_id)
            )
        return refs

    async def user_refs(
        self, schedules: list[Schedule], expand: bool = False
    ) -> dict[str, UserRef]:
        """User reference of each schedule, keyed by schedule id; resolved like ``package_refs``."""
        user_ids = {s.user_id for s in schedules}
        records = {}
        if expand and user_ids:
            found = await asyncio.gather(*(self._directory.get_user(uid) for uid in user_ids))
            records = {u.id: u for u in found if u is not None}
        return {
            s.id: (
                ResolvedUser(id=s.user_id, record=records[s.user_id])
                if s.user_id in records
                else UnresolvedRef(id=s.user_id)
            )
            for s in schedules
        }
