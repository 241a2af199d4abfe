"""
Durable registry of scheduled messages and their status lifecycle.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List
from uuid import uuid4

from app.clients.sqlite_store import SQLiteStore
from app.models.messages import (
    MESSAGE_PARTITION,
    MessageStatus,
    ScheduledMessage,
    TERMINAL_STATUSES,
)

logger = logging.getLogger(__name__)


class MessageNotFoundError(Exception):
    """Raised when a scheduled message id is unknown."""


class InvalidTransitionError(Exception):
    """Raised when a status change is attempted from a non-matching status."""

    def __init__(self, message_id: str, current: MessageStatus, target: MessageStatus) -> None:
        super().__init__(
            f"Cannot move message {message_id} from {current.value} to {target.value}."
        )
        self.message_id = message_id
        self.current = current
        self.target = target


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledMessageRegistry:
    """Persist scheduled messages and apply conditional status transitions."""

    def __init__(
        self, store: SQLiteStore, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._store = store
        self._clock = clock

    def create(
        self,
        *,
        tenant_id: str,
        channel_id: str,
        text: str,
        send_at: datetime,
    ) -> ScheduledMessage:
        message = ScheduledMessage(
            id=uuid4().hex,
            tenant_id=tenant_id,
            channel_id=channel_id,
            text=text,
            send_at=send_at,
            status=MessageStatus.SCHEDULED,
            created_at=self._clock(),
        )
        self._store.put_item(message.to_item())
        logger.info(
            "Scheduled message %s for tenant %s at %s",
            message.id,
            tenant_id,
            message.send_at.isoformat(),
        )
        return message

    def get(self, message_id: str) -> ScheduledMessage:
        record = self._store.get_item(
            partition_key=MESSAGE_PARTITION, sort_key=message_id
        )
        if not record:
            raise MessageNotFoundError(f"Scheduled message {message_id} not found.")
        return ScheduledMessage.from_item(record)

    def list_by_tenant(self, tenant_id: str) -> List[ScheduledMessage]:
        records = self._store.list_items(
            partition_key=MESSAGE_PARTITION, field="tenant_id", value=tenant_id
        )
        return [ScheduledMessage.from_item(record) for record in records]

    def list_by_status(self, status: MessageStatus) -> List[ScheduledMessage]:
        records = self._store.list_items(
            partition_key=MESSAGE_PARTITION, field="status", value=status.value
        )
        return [ScheduledMessage.from_item(record) for record in records]

    def transition(
        self,
        message_id: str,
        to_status: MessageStatus,
        *,
        error: str | None = None,
        expected: Iterable[MessageStatus] = (MessageStatus.SCHEDULED,),
    ) -> ScheduledMessage:
        """Atomically move a message out of ``expected`` into ``to_status``.

        Terminal statuses are final, so ``expected`` may only contain
        ``scheduled`` and ``to_status`` must be terminal.
        """
        expected_statuses = set(expected)
        if to_status not in TERMINAL_STATUSES or expected_statuses & TERMINAL_STATUSES:
            raise ValueError("Only scheduled messages can move into a terminal status.")

        updated = self._store.compare_and_swap(
            partition_key=MESSAGE_PARTITION,
            sort_key=message_id,
            field="status",
            expected=[status.value for status in expected_statuses],
            changes={"status": to_status.value, "last_error": error},
        )
        if updated is None:
            current = self.get(message_id)
            raise InvalidTransitionError(message_id, current.status, to_status)

        logger.info("Message %s is now %s", message_id, to_status.value)
        return ScheduledMessage.from_item(updated)


__all__ = [
    "InvalidTransitionError",
    "MessageNotFoundError",
    "ScheduledMessageRegistry",
]
