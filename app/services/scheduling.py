"""
Tenant-scoped scheduling operations used by the HTTP layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List

from app.models.messages import ScheduledMessage
from app.services.dispatcher import CancelResult, MessageDispatcher
from app.services.scheduled_messages import (
    MessageNotFoundError,
    ScheduledMessageRegistry,
)


class ScheduleInPastError(Exception):
    """Raised when a message is scheduled for a time that is not in the future."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageSchedulingService:
    """Create, list and cancel scheduled messages on behalf of a tenant."""

    def __init__(
        self,
        registry: ScheduledMessageRegistry,
        dispatcher: MessageDispatcher,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._clock = clock

    def schedule(
        self, *, tenant_id: str, channel_id: str, text: str, send_at: datetime
    ) -> ScheduledMessage:
        if send_at.tzinfo is None:
            send_at = send_at.replace(tzinfo=timezone.utc)
        if send_at <= self._clock():
            raise ScheduleInPastError("send_at must be in the future.")

        message = self._registry.create(
            tenant_id=tenant_id, channel_id=channel_id, text=text, send_at=send_at
        )
        if not self._dispatcher.arm(message):
            # send_at elapsed while the record was being written.
            self._dispatcher.dispatch_now(message)
        return message

    def list(self, tenant_id: str) -> List[ScheduledMessage]:
        return self._registry.list_by_tenant(tenant_id)

    def get(self, tenant_id: str, message_id: str) -> ScheduledMessage:
        message = self._registry.get(message_id)
        if message.tenant_id != tenant_id:
            raise MessageNotFoundError(f"Scheduled message {message_id} not found.")
        return message

    def cancel(self, tenant_id: str, message_id: str) -> CancelResult:
        self.get(tenant_id, message_id)
        return self._dispatcher.cancel(message_id)


__all__ = ["MessageSchedulingService", "ScheduleInPastError"]
