"""
Slack OAuth v2 utilities.

These helpers manage the workspace installation flow and the token refresh
lifecycle.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import HTTPException, status

from app.core.config import OAuthSettings, SlackSettings


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint returns an error."""


@dataclass(frozen=True)
class OAuthGrant:
    """Token material returned by ``oauth.v2.access``."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "OAuthGrant":
        access_token = payload.get("access_token")
        if not access_token:
            raise OAuthTokenExchangeError("Incomplete token payload returned from Slack.")
        team = payload.get("team") or {}
        expires_in = payload.get("expires_in")
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_in=int(expires_in) if expires_in else None,
            scope=payload.get("scope"),
            token_type=payload.get("token_type"),
            team_id=team.get("id"),
            team_name=team.get("name"),
        )


class SlackOAuthClient:
    """Build Slack authorization URLs, exchange codes and refresh tokens."""

    AUTH_BASE_URL = "https://slack.com/oauth/v2/authorize"
    TOKEN_PATH = "/oauth.v2.access"

    def __init__(
        self,
        slack_settings: SlackSettings,
        oauth_settings: OAuthSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._slack = slack_settings
        self._oauth = oauth_settings
        self._transport = transport

    @property
    def token_url(self) -> str:
        return f"{self._slack.api_base_url.rstrip('/')}{self.TOKEN_PATH}"

    def build_authorization_url(self, state: str) -> str:
        """Construct the Slack consent URL."""
        params = {
            "client_id": self._slack.client_id,
            "scope": ",".join(self._oauth.scopes),
            "redirect_uri": str(self._slack.redirect_uri),
            "state": state,
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> OAuthGrant:
        """Exchange an authorization code for tokens."""
        return await self._request_token(
            {
                "code": code,
                "client_id": self._slack.client_id,
                "client_secret": self._slack.client_secret,
                "redirect_uri": str(self._slack.redirect_uri),
            }
        )

    async def refresh_token(self, refresh_token: str) -> OAuthGrant:
        """Refresh the access token using a stored refresh token."""
        return await self._request_token(
            {
                "grant_type": "refresh_token",
                "client_id": self._slack.client_id,
                "client_secret": self._slack.client_secret,
                "refresh_token": refresh_token,
            }
        )

    async def _request_token(self, payload: Dict[str, str]) -> OAuthGrant:
        try:
            async with httpx.AsyncClient(
                timeout=self._slack.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(f"Slack token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise OAuthTokenExchangeError(response.text)

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise OAuthTokenExchangeError("Slack token endpoint returned invalid JSON.") from exc
        # Slack reports failures with HTTP 200 and ok=false.
        if not token_payload.get("ok"):
            raise OAuthTokenExchangeError(token_payload.get("error") or "unknown_error")

        return OAuthGrant.from_payload(token_payload)


__all__ = [
    "OAuthGrant",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "SlackOAuthClient",
]
