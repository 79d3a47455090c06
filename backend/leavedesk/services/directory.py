# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from leavedesk.models.enums import StaffRole


class StaffInfo(BaseModel):
    """Identity and role metadata from the Directory Service."""

    id: uuid.UUID
    organization_id: uuid.UUID
    full_name: str
    email: str
    role: StaffRole
    department_id: uuid.UUID | None = None
    facility_id: uuid.UUID | None = None
    workspace_id: uuid.UUID | None = None


@runtime_checkable
class DirectoryService(Protocol):
    """Interface for the identity/role provider."""

    async def get_staff(self, organization_id: uuid.UUID, staff_id: uuid.UUID) -> StaffInfo | None:
        """Fetch a staff member's role and scope. Returns None if not found."""
        ...


class InMemoryDirectoryService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._staff: dict[tuple[uuid.UUID, uuid.UUID], StaffInfo] = {}

    def seed(self, staff: StaffInfo) -> None:
        """Seed a staff member for testing."""
        self._staff[(staff.organization_id, staff.id)] = staff

    async def get_staff(self, organization_id: uuid.UUID, staff_id: uuid.UUID) -> StaffInfo | None:
        return self._staff.get((organization_id, staff_id))


_directory_service: DirectoryService = InMemoryDirectoryService()


def get_directory_service() -> DirectoryService:
    """FastAPI dependency for the Directory Service."""
    return _directory_service


def set_directory_service(service: DirectoryService) -> None:
    """Override the service (for testing or production wiring)."""
    global _directory_service
    _directory_service = service
