# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from leavedesk.models.enums import LeaveMode


class OrganizationInfo(BaseModel):
    """Organization metadata from the Organization Service."""

    id: uuid.UUID
    name: str
    leave_mode: LeaveMode = LeaveMode.FULL


class DepartmentInfo(BaseModel):
    """A department and the facility/workspace that contain it."""

    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    facility_id: uuid.UUID | None = None
    workspace_id: uuid.UUID | None = None


@runtime_checkable
class HierarchyService(Protocol):
    """Interface for the organization hierarchy (workspace > facility > department)."""

    async def get_organization(self, organization_id: uuid.UUID) -> OrganizationInfo | None:
        """Fetch organization metadata. Returns None if not found."""
        ...

    async def get_department(self, department_id: uuid.UUID) -> DepartmentInfo | None:
        """Resolve a department's containment. Returns None if not found."""
        ...


class InMemoryHierarchyService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._organizations: dict[uuid.UUID, OrganizationInfo] = {}
        self._departments: dict[uuid.UUID, DepartmentInfo] = {}

    def seed_organization(self, organization: OrganizationInfo) -> None:
        self._organizations[organization.id] = organization

    def seed_department(self, department: DepartmentInfo) -> None:
        self._departments[department.id] = department

    async def get_organization(self, organization_id: uuid.UUID) -> OrganizationInfo | None:
        return self._organizations.get(organization_id)

    async def get_department(self, department_id: uuid.UUID) -> DepartmentInfo | None:
        return self._departments.get(department_id)


_hierarchy_service: HierarchyService = InMemoryHierarchyService()


def get_hierarchy_service() -> HierarchyService:
    """FastAPI dependency for the hierarchy lookup."""
    return _hierarchy_service


def set_hierarchy_service(service: HierarchyService) -> None:
    """Override the service (for testing or production wiring)."""
    global _hierarchy_service
    _hierarchy_service = service


async def get_leave_mode(organization_id: uuid.UUID) -> LeaveMode:
    """Return the organization's leave mode, defaulting to full enforcement."""
    organization = await _hierarchy_service.get_organization(organization_id)
    if organization is None:
        return LeaveMode.FULL
    return organization.leave_mode
