"""Public schema exports."""

from .auth import OAuthCallbackPayload, OAuthConnectionResult
from .messages import (
    CancelMessageResponse,
    ChannelListResponse,
    ScheduleMessageRequest,
    ScheduleMessageResponse,
    ScheduledMessageList,
    SendMessageRequest,
    SendMessageResponse,
    SlackChannel,
)

__all__ = [
    "CancelMessageResponse",
    "ChannelListResponse",
    "OAuthCallbackPayload",
    "OAuthConnectionResult",
    "ScheduleMessageRequest",
    "ScheduleMessageResponse",
    "ScheduledMessageList",
    "SendMessageRequest",
    "SendMessageResponse",
    "SlackChannel",
]
