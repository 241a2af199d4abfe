"""Schemas for channel listing, immediate sends and scheduled messages."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.messages import MessageStatus, ScheduledMessage


class SlackChannel(BaseModel):
    """Subset of a Slack conversation object exposed to clients."""

    id: str
    name: Optional[str] = None
    is_private: bool = False
    is_member: bool = False

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "SlackChannel":
        return cls(
            id=payload["id"],
            name=payload.get("name"),
            is_private=bool(payload.get("is_private", False)),
            is_member=bool(payload.get("is_member", False)),
        )


class ChannelListResponse(BaseModel):
    channels: List[SlackChannel] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    """Payload for posting a message right away."""

    tenant_id: str = Field(..., min_length=1, description="Connected Slack team id.")
    channel_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class SendMessageResponse(BaseModel):
    channel_id: str
    ts: Optional[str] = None


class ScheduleMessageRequest(SendMessageRequest):
    """Payload for scheduling a message at an absolute time."""

    send_at: datetime = Field(
        ..., description="Absolute delivery time; naive values are read as UTC."
    )

    @field_validator("send_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ScheduleMessageResponse(BaseModel):
    id: str
    status: MessageStatus


class ScheduledMessageList(BaseModel):
    scheduled: List[ScheduledMessage] = Field(default_factory=list)


class CancelMessageResponse(BaseModel):
    id: str
    status: MessageStatus
    outcome: str


__all__ = [
    "CancelMessageResponse",
    "ChannelListResponse",
    "ScheduleMessageRequest",
    "ScheduleMessageResponse",
    "ScheduledMessageList",
    "SendMessageRequest",
    "SendMessageResponse",
    "SlackChannel",
]
