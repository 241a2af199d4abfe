"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_delivery_gateway,
    get_message_dispatcher,
    get_message_registry,
    get_oauth_state_encoder,
    get_schedule_reconciler,
    get_scheduling_service,
    get_slack_oauth_client,
    get_slack_token_service,
    get_slack_web_client,
    get_sqlite_store,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
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
