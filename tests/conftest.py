import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./clinic-scheduling-test.db")

from datetime import date  # noqa: E402

import pytest  # noqa: E402

from app.api.deps import Services, build_services  # noqa: E402
from app.core.db import build_engine, build_session_maker, init_db  # noqa: E402
from app.models.catalog import CatalogPackage, CatalogService, UserIdentity  # noqa: E402
from app.models.schedule import ScheduleCreate, ScheduleType  # noqa: E402

# Wednesday; its week starts Monday 2026-10-19 00:00+07:00
BOOKING_DATE = date(2026, 10, 21)


class FakeCatalog:
    def __init__(self, packages: list[CatalogPackage], services: list[CatalogService]) -> None:
        self.packages = {p.id: p for p in packages}
        self.services = {s.id: s for s in services}

    async def get_package(self, package_id: str) -> CatalogPackage | None:
        return self.packages.get(package_id)

    async def get_services(self, service_ids: list[str]) -> dict[str, CatalogService]:
        return {sid: self.services[sid] for sid in service_ids if sid in self.services}

    async def search_packages(self, text: str) -> list[str]:
        return [p.id for p in self.packages.values() if text.lower() in p.title.lower()]


class FakeDirectory:
    def __init__(self, users: list[UserIdentity]) -> None:
        self.users = {u.id: u for u in users}

    async def get_user(self, user_id: str) -> UserIdentity | None:
        return self.users.get(user_id)

    async def search_users(self, text: str) -> list[str]:
        return [u.id for u in self.users.values() if text.lower() in u.name.lower()]


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'schedules.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        packages=[
            CatalogPackage(id="pkg-basic", title="Basic health check", price=500000, max_slot_per_period=2),
            CatalogPackage(id="pkg-cardio", title="Cardio screening", price=800000, max_slot_per_period=1),
            CatalogPackage(id="pkg-general", title="General consultation", price=300000),
            CatalogPackage(id="pkg-vaccine", title="Flu vaccination day", price=200000, max_slot_per_period=12),
        ],
        services=[
            CatalogService(id="svc1", name="Blood test", price=150000),
            CatalogService(id="svc2", name="Chest X-ray", price=250000),
            CatalogService(id="svc3", name="Ultrasound", price=400000),
        ],
    )


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(
        users=[
            UserIdentity(id="user-an", name="Nguyen Van An", phone_number="0901000001"),
            UserIdentity(id="user-binh", name="Tran Thi Binh", phone_number="0901000002"),
            UserIdentity(id="user-chi", name="Le Minh Chi"),
        ]
    )


@pytest.fixture
def services(session_maker, catalog, directory) -> Services:
    return build_services(session_maker, catalog, directory)


def package_request(user_id: str, package_id: str, time_offset: int = 0, **kwargs) -> ScheduleCreate:
    return ScheduleCreate(
        user_id=user_id,
        type=ScheduleType.PACKAGE,
        package_id=package_id,
        date=kwargs.pop("date", BOOKING_DATE),
        time_offset=time_offset,
        **kwargs,
    )


def services_request(user_id: str, service_ids: list[str], time_offset: int = 0, **kwargs) -> ScheduleCreate:
    return ScheduleCreate(
        user_id=user_id,
        type=ScheduleType.SERVICES,
        services=service_ids,
        date=kwargs.pop("date", BOOKING_DATE),
        time_offset=time_offset,
        **kwargs,
    )
