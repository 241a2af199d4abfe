"""
Domain models for scheduled message persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

MESSAGE_PARTITION = "scheduled_message"


class MessageStatus(str, Enum):
    """Delivery status of a scheduled message."""

    SCHEDULED = "scheduled"
    SENT = "sent"
    CANCELED = "canceled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.SCHEDULED


TERMINAL_STATUSES = frozenset(
    {MessageStatus.SENT, MessageStatus.CANCELED, MessageStatus.FAILED}
)


class ScheduledMessage(BaseModel):
    """A message payload plus destination and due time awaiting delivery."""

    id: str
    tenant_id: str
    channel_id: str
    text: str
    send_at: datetime
    status: MessageStatus = MessageStatus.SCHEDULED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_error: Optional[str] = None

    @field_validator("send_at", "created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_item(self) -> Dict[str, Any]:
        """Serialize into a key-value record."""
        item = self.model_dump(mode="json")
        item["pk"] = MESSAGE_PARTITION
        item["sk"] = self.id
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "ScheduledMessage":
        return cls.model_validate(
            {key: value for key, value in item.items() if key not in ("pk", "sk")}
        )


__all__ = [
    "MESSAGE_PARTITION",
    "MessageStatus",
    "ScheduledMessage",
    "TERMINAL_STATUSES",
]
