"""
Domain models for OAuth credential persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

CREDENTIAL_PARTITION = "credential"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlackCredential(BaseModel):
    """OAuth access/refresh token pair plus expiry bookkeeping for one tenant."""

    tenant_id: str = Field(..., description="Slack team id owning the token.")
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(
        None, description="Token lifetime in seconds; unset means it never expires."
    )
    obtained_at: datetime = Field(default_factory=_utcnow)
    scope: Optional[str] = None
    token_type: Optional[str] = None
    team_name: Optional[str] = None

    @field_validator("obtained_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_item(self) -> Dict[str, Any]:
        """Serialize into a key-value record."""
        item = self.model_dump(mode="json")
        item["pk"] = CREDENTIAL_PARTITION
        item["sk"] = self.tenant_id
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "SlackCredential":
        return cls.model_validate(
            {key: value for key, value in item.items() if key not in ("pk", "sk")}
        )


__all__ = ["CREDENTIAL_PARTITION", "SlackCredential"]
