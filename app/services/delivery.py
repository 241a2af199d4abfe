"""
Outbound delivery of messages to Slack on behalf of a tenant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from app.clients.slack_web import SlackAPIError, SlackWebClient
from app.schemas.messages import SlackChannel
from app.services.slack_tokens import (
    CredentialNotFoundError,
    SlackTokenService,
    TokenRefreshError,
)


class DeliveryError(Exception):
    """Raised when a message could not be delivered."""


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a successful ``chat.postMessage`` call."""

    channel_id: str
    ts: str | None = None


class DeliveryGateway:
    """Resolve a valid token for the tenant and call the Slack Web API."""

    def __init__(self, token_service: SlackTokenService, web_client: SlackWebClient) -> None:
        self._tokens = token_service
        self._web = web_client

    async def send(self, tenant_id: str, channel_id: str, text: str) -> DeliveryResult:
        try:
            access_token = await self._tokens.get_valid_access_token(tenant_id)
            data = await self._web.post_message(
                access_token=access_token, channel_id=channel_id, text=text
            )
        except (CredentialNotFoundError, TokenRefreshError, SlackAPIError) as exc:
            raise DeliveryError(str(exc)) from exc
        return DeliveryResult(channel_id=data.get("channel") or channel_id, ts=data.get("ts"))

    async def list_channels(self, tenant_id: str) -> List[SlackChannel]:
        """List channels; credential errors propagate unchanged for the caller."""
        access_token = await self._tokens.get_valid_access_token(tenant_id)
        channels = await self._web.list_channels(access_token=access_token)
        return [SlackChannel.from_api(channel) for channel in channels]


__all__ = ["DeliveryError", "DeliveryGateway", "DeliveryResult"]
