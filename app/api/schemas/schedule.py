from datetime import date

from pydantic import BaseModel, Field

from app.models.base import CamelModel
from app.models.schedule import SchedulePublic, ScheduleStatus
from app.services.schedule_query_service import PaginationInfo
from app.services.slot_service import WeekPeriod


class StatusChangeRequest(BaseModel):
    status: ScheduleStatus


class RecordPaymentRequest(BaseModel):
    amount: int = Field(gt=0)
    reference: str | None = None


class SchedulePage(BaseModel):
    data: list[SchedulePublic]
    pagination: PaginationInfo


class PeriodInfo(CamelModel):
    week_period: WeekPeriod
    day_offset: int
    time_offset: int
    date: date


class SlotCapacity(CamelModel):
    day_offset: int
    time_offset: int
    date: date
    remaining: int


class WeekCapacityResponse(CamelModel):
    package_id: str
    max_slot_per_period: int
    week_period: WeekPeriod
    slots: list[SlotCapacity]
