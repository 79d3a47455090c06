from sqlmodel import SQLModel

from leavedesk.models.approval import ApprovalRecord
from leavedesk.models.audit import AuditLog
from leavedesk.models.balance import LeaveBalance
from leavedesk.models.base import TimestampMixin, UUIDBase
from leavedesk.models.enums import (
    ApprovalStatus,
    AuditAction,
    AuditEntityType,
    Decision,
    LeaveMode,
    OperationalConflictType,
    RequestStatus,
    RoutingScope,
    SegmentStatus,
    StaffRole,
)
from leavedesk.models.leave_type import LeaveType
from leavedesk.models.request import LeaveRequest, LeaveSegment
from leavedesk.models.role_default import RoleDefault

__all__ = [
    "ApprovalRecord",
    "ApprovalStatus",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "Decision",
    "LeaveBalance",
    "LeaveMode",
    "LeaveRequest",
    "LeaveSegment",
    "LeaveType",
    "OperationalConflictType",
    "RequestStatus",
    "RoleDefault",
    "RoutingScope",
    "SQLModel",
    "SegmentStatus",
    "StaffRole",
    "TimestampMixin",
    "UUIDBase",
]
