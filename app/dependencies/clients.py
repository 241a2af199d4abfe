"""
Factory functions to provide shared clients and services as FastAPI dependencies.

Every factory is cached so the process holds exactly one dispatcher, and with
it one armed-timer map, for its whole lifetime.
"""

from functools import lru_cache

from app.clients import OAuthStateEncoder, SlackOAuthClient, SlackWebClient, SQLiteStore
from app.core.config import get_settings
from app.services import (
    DeliveryGateway,
    MessageDispatcher,
    MessageSchedulingService,
    ScheduledMessageRegistry,
    ScheduleReconciler,
    SlackTokenService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Slack client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.slack.client_secret)


@lru_cache()
def get_slack_oauth_client() -> SlackOAuthClient:
    """Create a singleton Slack OAuth client."""
    settings = _settings()
    return SlackOAuthClient(settings.slack, settings.oauth)


@lru_cache()
def get_slack_web_client() -> SlackWebClient:
    """Provide the Slack Web API client."""
    return SlackWebClient(_settings().slack)


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite record store."""
    settings = _settings()
    return SQLiteStore(settings.scheduler.db_path)


@lru_cache()
def get_slack_token_service() -> SlackTokenService:
    """Provide helper for managing Slack OAuth credentials."""
    return SlackTokenService(
        store=get_sqlite_store(),
        oauth_client=get_slack_oauth_client(),
    )


@lru_cache()
def get_delivery_gateway() -> DeliveryGateway:
    """Provide the outbound delivery gateway."""
    return DeliveryGateway(
        token_service=get_slack_token_service(),
        web_client=get_slack_web_client(),
    )


@lru_cache()
def get_message_registry() -> ScheduledMessageRegistry:
    """Provide the durable scheduled message registry."""
    return ScheduledMessageRegistry(get_sqlite_store())


@lru_cache()
def get_message_dispatcher() -> MessageDispatcher:
    """Provide the process-wide dispatcher owning the armed timers."""
    return MessageDispatcher(
        registry=get_message_registry(),
        gateway=get_delivery_gateway(),
    )


@lru_cache()
def get_schedule_reconciler() -> ScheduleReconciler:
    """Provide the startup reconciler."""
    return ScheduleReconciler(
        registry=get_message_registry(),
        dispatcher=get_message_dispatcher(),
    )


def get_scheduling_service() -> MessageSchedulingService:
    """Build the tenant-scoped scheduling facade."""
    return MessageSchedulingService(
        registry=get_message_registry(),
        dispatcher=get_message_dispatcher(),
    )


__all__ = [
    "get_delivery_gateway",
    "get_message_dispatcher",
    "get_message_registry",
    "get_oauth_state_encoder",
    "get_schedule_reconciler",
    "get_scheduling_service",
    "get_slack_oauth_client",
    "get_slack_token_service",
    "get_slack_web_client",
    "get_sqlite_store",
]
