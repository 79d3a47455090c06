from __future__ import annotations

import enum


class LeaveMode(enum.StrEnum):
    """Organization-level toggle for balance enforcement."""

    PLANNING = "planning"
    FULL = "full"


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class SegmentStatus(enum.StrEnum):
    """Status of a single date range within a request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(enum.StrEnum):
    """Outcome recorded on an approval record."""

    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(enum.StrEnum):
    """Approver action on a pending request."""

    APPROVE = "approve"
    REJECT = "reject"


class StaffRole(enum.StrEnum):
    """Organizational role as reported by the identity provider."""

    STAFF = "staff"
    INTERN = "intern"
    DEPARTMENT_HEAD = "department_head"
    FACILITY_SUPERVISOR = "facility_supervisor"
    WORKSPACE_SUPERVISOR = "workspace_supervisor"
    GENERAL_ADMIN = "general_admin"
    ORGANIZATION_ADMIN = "organization_admin"
    SUPER_ADMIN = "super_admin"


OVERRIDE_ROLES = frozenset({StaffRole.SUPER_ADMIN, StaffRole.ORGANIZATION_ADMIN})
ADMIN_ROLES = OVERRIDE_ROLES


class RoutingScope(enum.StrEnum):
    """Approval tier a request is directed to."""

    DEPARTMENT = "department"
    FACILITY = "facility"
    WORKSPACE = "workspace"
    OVERRIDE = "override"


class OperationalConflictType(enum.StrEnum):
    """Kind of operational commitment a segment collides with."""

    SHIFT = "shift"
    EVENT = "event"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    LEAVE_TYPE = "LEAVE_TYPE"
    ROLE_DEFAULT = "ROLE_DEFAULT"
    BALANCE = "BALANCE"
    REQUEST = "REQUEST"
