"""Slack Web API client wrapper for posting messages and listing channels."""

from __future__ import annotations

from typing import Any, Dict, List

import httpx

from app.core.config import SlackSettings


class SlackAPIError(Exception):
    """Raised when Slack rejects a call or cannot be reached."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"{method} failed: {error}")
        self.method = method
        self.error = error


class SlackWebClient:
    """Call Slack Web API methods with a bearer token and a bounded timeout."""

    def __init__(
        self,
        slack_settings: SlackSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = slack_settings.api_base_url.rstrip("/")
        self._timeout = slack_settings.request_timeout_seconds
        self._transport = transport

    async def post_message(
        self, *, access_token: str, channel_id: str, text: str
    ) -> Dict[str, Any]:
        """Post ``text`` to ``channel_id`` via ``chat.postMessage``."""
        return await self._call(
            "chat.postMessage",
            access_token=access_token,
            json={"channel": channel_id, "text": text},
        )

    async def list_channels(self, *, access_token: str) -> List[Dict[str, Any]]:
        """Return non-archived public and private channels visible to the token."""
        data = await self._call(
            "conversations.list",
            access_token=access_token,
            params={
                "exclude_archived": "true",
                "limit": 200,
                "types": "public_channel,private_channel",
            },
        )
        return list(data.get("channels", []))

    async def _call(
        self,
        method: str,
        *,
        access_token: str,
        json: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        url = f"{self._base_url}/{method}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                if json is not None:
                    response = await client.post(url, json=json, headers=headers)
                else:
                    response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SlackAPIError(method, str(exc) or exc.__class__.__name__) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise SlackAPIError(method, "invalid_response") from exc
        if not data.get("ok"):
            raise SlackAPIError(method, data.get("error") or "unknown_error")
        return data


__all__ = ["SlackAPIError", "SlackWebClient"]
