import datetime as dt
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal
from uuid import uuid4

from pydantic import AliasChoices
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.models.base import CamelModel
from app.models.catalog import PackageRef, UserRef
from app.services.slot_service import WeekPeriod


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_id() -> str:
    return uuid4().hex


class ScheduleStatus(StrEnum):
    # wire values are the ones the clinic frontends already send
    CONFIRMED = "pending"
    CHECKEDIN = "checkedIn"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScheduleType(StrEnum):
    PACKAGE = "package"
    SERVICES = "services"


class ServiceItemStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"


class Schedule(SQLModel, table=True):
    __tablename__ = "schedules"
    # One row per occupied seat of a package in a slot; NULL seats (services
    # bookings, cancelled rows) never collide.
    __table_args__ = (
        UniqueConstraint(
            "week_from",
            "day_offset",
            "time_offset",
            "package_id",
            "capacity_seat",
            name="uq_schedules_package_seat",
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    week_from: datetime = Field(index=True)
    week_to: datetime
    day_offset: int
    time_offset: int
    type: str
    package_id: str | None = Field(default=None, index=True)
    # [{"service": "<id>", "status": "pending"}, ...] in booking order
    services: list[dict] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    status: str = Field(default=ScheduleStatus.CONFIRMED.value, index=True)
    total_price: int | None = None
    total_paid: int = 0
    payments: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # Set while the booking is active, cleared on cancel
    active_signature: str | None = Field(default=None, unique=True)
    # Same value, kept after cancel; an idempotency key only replays a matching request
    request_signature: str | None = None
    capacity_seat: int | None = None
    idempotency_key: str | None = Field(default=None, unique=True)
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)

    @property
    def service_ids(self) -> list[str]:
        return [item["service"] for item in self.services or []]

    @property
    def is_active(self) -> bool:
        return self.status != ScheduleStatus.CANCELLED


class ScheduleCreate(CamelModel):
    """Booking request.

    The slot is given either as a calendar ``date`` (read at UTC+07:00) or as an
    explicit ``weekPeriod`` + ``dayOffset`` pair; ``timeOffset`` is always required.
    """

    user_id: str = PydanticField(min_length=1)
    type: ScheduleType
    time_offset: Literal[0, 1]
    date: dt.date | None = None
    week_period: WeekPeriod | None = None
    day_offset: int | None = None
    # older clients send the package id as "packageInfo"
    package_id: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("packageId", "packageInfo", "package_id")
    )
    services: list[str] | None = None
    idempotency_key: str | None = None


class ServiceItem(CamelModel):
    service: str
    status: ServiceItemStatus = ServiceItemStatus.PENDING


class PaymentInfo(CamelModel):
    total_price: int | None = None
    total_paid: int = 0
    payments: list[str] = []


class SchedulePublic(CamelModel):
    id: str
    user_id: str
    week_period: WeekPeriod
    day_offset: int
    time_offset: int
    type: ScheduleType
    status: ScheduleStatus
    user_info: UserRef | None = None
    package_info: PackageRef | None = None
    services: list[ServiceItem] | None = None
    payment: PaymentInfo
    created_at: datetime
    updated_at: datetime
