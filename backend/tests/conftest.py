from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from leavedesk.db import get_session
from leavedesk.main import app
from leavedesk.models import SQLModel
from leavedesk.models.enums import LeaveMode, StaffRole
from leavedesk.services.directory import InMemoryDirectoryService, StaffInfo, set_directory_service
from leavedesk.services.hierarchy import (
    DepartmentInfo,
    InMemoryHierarchyService,
    OrganizationInfo,
    set_hierarchy_service,
)
from leavedesk.services.notification import InMemoryNotificationSink, set_notification_sink
from leavedesk.services.schedule import (
    InMemoryEventService,
    InMemoryRosterService,
    set_event_service,
    set_roster_service,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory SQLite engine with a fresh schema for each test."""
    _engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Yield the session shared by the test body and the API under test."""
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Collaborator stubs
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def directory() -> Iterator[InMemoryDirectoryService]:
    svc = InMemoryDirectoryService()
    set_directory_service(svc)
    yield svc
    set_directory_service(InMemoryDirectoryService())


@pytest.fixture(autouse=True)
def hierarchy() -> Iterator[InMemoryHierarchyService]:
    svc = InMemoryHierarchyService()
    set_hierarchy_service(svc)
    yield svc
    set_hierarchy_service(InMemoryHierarchyService())


@pytest.fixture(autouse=True)
def roster() -> Iterator[InMemoryRosterService]:
    svc = InMemoryRosterService()
    set_roster_service(svc)
    yield svc
    set_roster_service(InMemoryRosterService())


@pytest.fixture(autouse=True)
def events() -> Iterator[InMemoryEventService]:
    svc = InMemoryEventService()
    set_event_service(svc)
    yield svc
    set_event_service(InMemoryEventService())


@pytest.fixture(autouse=True)
def notifications() -> Iterator[InMemoryNotificationSink]:
    sink = InMemoryNotificationSink()
    set_notification_sink(sink)
    yield sink
    set_notification_sink(InMemoryNotificationSink())


# ---------------------------------------------------------------------------
# Organization fixture
# ---------------------------------------------------------------------------


@dataclass
class World:
    """One organization: a workspace with a facility holding departments A and B."""

    organization_id: uuid.UUID = field(default_factory=uuid.uuid4)
    workspace_id: uuid.UUID = field(default_factory=uuid.uuid4)
    facility_id: uuid.UUID = field(default_factory=uuid.uuid4)
    department_a: uuid.UUID = field(default_factory=uuid.uuid4)
    department_b: uuid.UUID = field(default_factory=uuid.uuid4)
    staff: dict[str, StaffInfo] = field(default_factory=dict)

    def headers(self, name: str) -> dict[str, str]:
        return {"X-Organization-Id": str(self.organization_id), "X-User-Id": str(self.staff[name].id)}

    def id(self, name: str) -> uuid.UUID:
        return self.staff[name].id

    def url(self, path: str) -> str:
        return f"/organizations/{self.organization_id}{path}"


_PEOPLE: list[tuple[str, str, StaffRole, str | None]] = [
    ("alice", "Alice Smith", StaffRole.STAFF, "a"),
    ("bob", "Bob Jones", StaffRole.STAFF, "a"),
    ("ivy", "Ivy Chen", StaffRole.INTERN, "a"),
    ("head_a", "Hannah Head", StaffRole.DEPARTMENT_HEAD, "a"),
    ("carol", "Carol White", StaffRole.STAFF, "b"),
    ("head_b", "Henry Head", StaffRole.DEPARTMENT_HEAD, "b"),
    ("facility_sup", "Fiona Super", StaffRole.FACILITY_SUPERVISOR, "a"),
    ("workspace_sup", "Walter Super", StaffRole.WORKSPACE_SUPERVISOR, "a"),
    ("admin", "Ada Admin", StaffRole.ORGANIZATION_ADMIN, None),
]


@pytest.fixture
def world(
    directory: InMemoryDirectoryService,
    hierarchy: InMemoryHierarchyService,
) -> World:
    """Seed the directory and hierarchy stubs with one organization in full leave mode."""
    w = World()
    hierarchy.seed_organization(OrganizationInfo(id=w.organization_id, name="Acme Health", leave_mode=LeaveMode.FULL))
    for department_id, name in ((w.department_a, "Nursing"), (w.department_b, "Pharmacy")):
        hierarchy.seed_department(
            DepartmentInfo(
                id=department_id,
                organization_id=w.organization_id,
                name=name,
                facility_id=w.facility_id,
                workspace_id=w.workspace_id,
            )
        )
    for key, full_name, role, department in _PEOPLE:
        department_id = {"a": w.department_a, "b": w.department_b}.get(department) if department else None
        info = StaffInfo(
            id=uuid.uuid4(),
            organization_id=w.organization_id,
            full_name=full_name,
            email=f"{key}@example.com",
            role=role,
            department_id=department_id,
            facility_id=w.facility_id,
            workspace_id=w.workspace_id,
        )
        directory.seed(info)
        w.staff[key] = info
    return w
