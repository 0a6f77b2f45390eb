from app.models.catalog import (
    CatalogPackage,
    CatalogService,
    PackageRef,
    ResolvedPackage,
    ResolvedUser,
    UnresolvedRef,
    UserIdentity,
    UserRef,
)
from app.models.schedule import Schedule, ScheduleStatus, ScheduleType, ServiceItemStatus

__all__ = [
    "CatalogPackage",
    "CatalogService",
    "PackageRef",
    "ResolvedPackage",
    "ResolvedUser",
    "UnresolvedRef",
    "UserIdentity",
    "UserRef",
    "Schedule",
    "ScheduleStatus",
    "ScheduleType",
    "ServiceItemStatus",
]
