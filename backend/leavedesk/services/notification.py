"""Notification side-effects for leave request status changes.

The leave core only decides that a notification is due and what it says;
delivery (email, chat, in-app) belongs to whatever sink is wired in.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from leavedesk.models.enums import RequestStatus

logger = logging.getLogger(__name__)


class NotificationMessage(BaseModel):
    """Payload handed to the notification sink."""

    request_id: uuid.UUID
    new_status: RequestStatus
    staff_id: uuid.UUID
    actor_name: str | None
    title: str
    message: str


@runtime_checkable
class NotificationSink(Protocol):
    """Interface for notification delivery."""

    async def send(self, notification: NotificationMessage) -> None:
        """Deliver a notification. Failures are the sink's concern."""
        ...


class InMemoryNotificationSink:
    """Records notifications instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[NotificationMessage] = []

    async def send(self, notification: NotificationMessage) -> None:
        self.sent.append(notification)


_notification_sink: NotificationSink = InMemoryNotificationSink()


def get_notification_sink() -> NotificationSink:
    return _notification_sink


def set_notification_sink(sink: NotificationSink) -> None:
    """Override the sink (for testing or production wiring)."""
    global _notification_sink
    _notification_sink = sink


def _format_range(dates: list[tuple[date, date]]) -> str:
    if not dates:
        return ""
    first = min(start for start, _ in dates)
    last = max(end for _, end in dates)
    return f" ({first:%b} {first.day}, {first.year} - {last:%b} {last.day}, {last.year})"


def build_status_message(
    *,
    request_id: uuid.UUID,
    staff_id: uuid.UUID,
    new_status: RequestStatus,
    leave_type_name: str,
    total_days: int,
    segment_dates: list[tuple[date, date]],
    actor_name: str | None = None,
    comment: str | None = None,
) -> NotificationMessage | None:
    """Compose the notification for a status change, or None when nothing is due."""
    by_actor = f" by {actor_name}" if actor_name else ""
    date_range = _format_range(segment_dates)

    if new_status == RequestStatus.APPROVED:
        title = "Leave Approved"
        message = (
            f"Your {leave_type_name} request for {total_days} days{date_range} has been fully approved{by_actor}."
        )
        if comment:
            message += f" Note: {comment}"
    elif new_status == RequestStatus.REJECTED:
        title = "Leave Rejected"
        message = f"Your {leave_type_name} request for {total_days} days{date_range} has been rejected{by_actor}."
        if comment:
            message += f" Reason: {comment}"
    elif new_status == RequestStatus.PENDING:
        # Addressed to the requester, like the other statuses.
        title = "Leave Request Submitted"
        message = f"Your {leave_type_name} request for {total_days} days{date_range} has been submitted for approval."
    else:
        return None

    return NotificationMessage(
        request_id=request_id,
        new_status=new_status,
        staff_id=staff_id,
        actor_name=actor_name,
        title=title,
        message=message,
    )


async def dispatch(notification: NotificationMessage | None) -> None:
    """Fire-and-forget delivery: a failing sink never fails the operation."""
    if notification is None:
        return
    try:
        await get_notification_sink().send(notification)
    except Exception:
        logger.exception(
            "Notification delivery failed for request=%s status=%s",
            notification.request_id,
            notification.new_status,
        )
