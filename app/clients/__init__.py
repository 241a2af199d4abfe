"""Expose constructed client wrappers."""

from .slack_auth import OAuthGrant, OAuthStateEncoder, SlackOAuthClient
from .slack_web import SlackWebClient
from .sqlite_store import SQLiteStore

__all__ = [
    "OAuthGrant",
    "OAuthStateEncoder",
    "SQLiteStore",
    "SlackOAuthClient",
    "SlackWebClient",
]
