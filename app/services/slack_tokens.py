"""
Helpers for retrieving and refreshing Slack OAuth credentials.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable

from app.clients.slack_auth import OAuthGrant, OAuthTokenExchangeError, SlackOAuthClient
from app.clients.sqlite_store import SQLiteStore
from app.models.oauth import CREDENTIAL_PARTITION, SlackCredential

logger = logging.getLogger(__name__)


class CredentialNotFoundError(Exception):
    """Raised when no persisted credential is available for a tenant."""


class TokenRefreshError(Exception):
    """Raised when Slack rejects a refresh exchange."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(credential: SlackCredential, now: datetime) -> bool:
    """Return True once ``expires_in`` seconds have elapsed since ``obtained_at``."""
    if not credential.expires_in:
        return False
    return (now - credential.obtained_at).total_seconds() >= credential.expires_in


class SlackTokenService:
    """Manages access to persisted Slack credentials.

    Refreshes for one tenant are serialized by a per-tenant lock so two
    concurrent callers cannot both spend the same refresh token and write back
    a stale one. Different tenants refresh independently.
    """

    def __init__(
        self,
        store: SQLiteStore,
        oauth_client: SlackOAuthClient,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._clock = clock
        self._refresh_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, tenant_id: str) -> SlackCredential:
        record = self._store.get_item(
            partition_key=CREDENTIAL_PARTITION, sort_key=tenant_id
        )
        if not record:
            raise CredentialNotFoundError(f"No Slack credential stored for tenant {tenant_id}.")
        return SlackCredential.from_item(record)

    def put(self, credential: SlackCredential) -> None:
        """Upsert the credential, replacing any prior record for the tenant."""
        self._store.put_item(credential.to_item())

    def is_expired(self, credential: SlackCredential, now: datetime | None = None) -> bool:
        return is_expired(credential, now or self._clock())

    def store_grant(self, tenant_id: str, grant: OAuthGrant) -> SlackCredential:
        """Persist a freshly exchanged grant as the tenant's credential."""
        credential = SlackCredential(
            tenant_id=tenant_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_in=grant.expires_in,
            obtained_at=self._clock(),
            scope=grant.scope,
            token_type=grant.token_type,
            team_name=grant.team_name,
        )
        self.put(credential)
        logger.info("Stored Slack credential for tenant %s", tenant_id)
        return credential

    async def get_valid_access_token(self, tenant_id: str) -> str:
        """Return a usable access token, refreshing it first when it has expired.

        An expired credential without a refresh token is returned as-is; the
        downstream Slack call reports the real error.
        """
        credential = self.get(tenant_id)
        if not self.is_expired(credential):
            return credential.access_token
        if not credential.refresh_token:
            logger.warning(
                "Credential for tenant %s expired and has no refresh token", tenant_id
            )
            return credential.access_token

        async with self._refresh_locks[tenant_id]:
            # Another caller may have refreshed while this one waited.
            credential = self.get(tenant_id)
            if not self.is_expired(credential) or not credential.refresh_token:
                return credential.access_token
            refreshed = await self._refresh(credential)
        return refreshed.access_token

    async def _refresh(self, credential: SlackCredential) -> SlackCredential:
        refreshed_at = self._clock()
        try:
            grant = await self._oauth.refresh_token(credential.refresh_token or "")
        except OAuthTokenExchangeError as exc:
            logger.warning(
                "Token refresh failed for tenant %s: %s", credential.tenant_id, exc
            )
            raise TokenRefreshError(
                f"Slack rejected token refresh for tenant {credential.tenant_id}: {exc}"
            ) from exc

        updated = credential.model_copy(
            update={
                "access_token": grant.access_token,
                "refresh_token": grant.refresh_token or credential.refresh_token,
                "expires_in": grant.expires_in or credential.expires_in,
                "scope": grant.scope or credential.scope,
                "token_type": grant.token_type or credential.token_type,
                "team_name": grant.team_name or credential.team_name,
                "obtained_at": refreshed_at,
            }
        )
        self.put(updated)
        logger.info("Refreshed Slack token for tenant %s", credential.tenant_id)
        return updated


__all__ = [
    "CredentialNotFoundError",
    "SlackTokenService",
    "TokenRefreshError",
    "is_expired",
]
