"""Service layer exports."""

from .delivery import DeliveryError, DeliveryGateway, DeliveryResult
from .dispatcher import CancelOutcome, CancelResult, MessageDispatcher
from .reconciler import MISSED_WINDOW_ERROR, ReconciliationReport, ScheduleReconciler
from .scheduled_messages import (
    InvalidTransitionError,
    MessageNotFoundError,
    ScheduledMessageRegistry,
)
from .scheduling import MessageSchedulingService, ScheduleInPastError
from .slack_tokens import CredentialNotFoundError, SlackTokenService, TokenRefreshError

__all__ = [
    "CancelOutcome",
    "CancelResult",
    "CredentialNotFoundError",
    "DeliveryError",
    "DeliveryGateway",
    "DeliveryResult",
    "InvalidTransitionError",
    "MISSED_WINDOW_ERROR",
    "MessageDispatcher",
    "MessageNotFoundError",
    "MessageSchedulingService",
    "ReconciliationReport",
    "ScheduleInPastError",
    "ScheduleReconciler",
    "ScheduledMessageRegistry",
    "SlackTokenService",
    "TokenRefreshError",
]
