"""
Startup reconciliation between persisted scheduled messages and live timers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from app.models.messages import MessageStatus
from app.services.dispatcher import MessageDispatcher
from app.services.scheduled_messages import (
    InvalidTransitionError,
    ScheduledMessageRegistry,
)

logger = logging.getLogger(__name__)

MISSED_WINDOW_ERROR = "missed scheduled time"


@dataclass(frozen=True)
class ReconciliationReport:
    armed: Tuple[str, ...] = ()
    missed: Tuple[str, ...] = ()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleReconciler:
    """Re-arm future messages and fail the ones missed while the process was down.

    Missed messages are never delivered late. Reconciliation runs once per
    instance; repeated calls return the first report.
    """

    def __init__(
        self,
        registry: ScheduledMessageRegistry,
        dispatcher: MessageDispatcher,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._clock = clock
        self._report: Optional[ReconciliationReport] = None

    @property
    def has_run(self) -> bool:
        return self._report is not None

    def reconcile(self) -> ReconciliationReport:
        if self._report is not None:
            return self._report

        now = self._clock()
        armed: list[str] = []
        missed: list[str] = []
        for message in self._registry.list_by_status(MessageStatus.SCHEDULED):
            if self._dispatcher.is_armed(message.id) or self._dispatcher.is_in_flight(
                message.id
            ):
                continue
            if message.send_at > now and self._dispatcher.arm(message):
                armed.append(message.id)
                continue
            try:
                self._registry.transition(
                    message.id, MessageStatus.FAILED, error=MISSED_WINDOW_ERROR
                )
            except InvalidTransitionError:
                continue
            missed.append(message.id)

        self._report = ReconciliationReport(armed=tuple(armed), missed=tuple(missed))
        logger.info(
            "Reconciliation complete: %d re-armed, %d missed", len(armed), len(missed)
        )
        if missed:
            logger.warning("Marked missed messages as failed: %s", ", ".join(missed))
        return self._report


__all__ = ["MISSED_WINDOW_ERROR", "ReconciliationReport", "ScheduleReconciler"]
