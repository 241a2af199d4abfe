"""
Timer-driven delivery of scheduled messages.

Each armed message owns one event-loop timer handle. When the handle fires the
message is delivered exactly once through the gateway and its persisted status
moves to ``sent`` or ``failed``. Cancellation only wins while the timer has not
fired; once delivery has started the outcome is decided by the delivery.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List

from app.models.messages import MessageStatus, ScheduledMessage
from app.services.delivery import DeliveryGateway
from app.services.scheduled_messages import (
    InvalidTransitionError,
    MessageNotFoundError,
    ScheduledMessageRegistry,
)

logger = logging.getLogger(__name__)


class CancelOutcome(str, Enum):
    CANCELED = "canceled"
    ALREADY_FINAL = "already_final"
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class CancelResult:
    message: ScheduledMessage
    outcome: CancelOutcome


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageDispatcher:
    """Arm, fire and cancel per-message delivery timers."""

    def __init__(
        self,
        registry: ScheduledMessageRegistry,
        gateway: DeliveryGateway,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._gateway = gateway
        self._clock = clock
        self._timers: Dict[str, asyncio.Handle] = {}
        self._in_flight: Dict[str, asyncio.Task[None]] = {}

    def armed_ids(self) -> List[str]:
        return list(self._timers)

    def is_armed(self, message_id: str) -> bool:
        return message_id in self._timers

    def is_in_flight(self, message_id: str) -> bool:
        return message_id in self._in_flight

    def arm(self, message: ScheduledMessage) -> bool:
        """Schedule a one-shot wake-up at ``message.send_at``.

        Returns False without arming when the message is not ``scheduled``,
        is already armed, or is not strictly in the future. Past-due messages
        belong to the reconciler.
        """
        if message.status is not MessageStatus.SCHEDULED:
            return False
        if message.id in self._timers or message.id in self._in_flight:
            return False
        delay = (message.send_at - self._clock()).total_seconds()
        if delay <= 0:
            return False

        loop = asyncio.get_running_loop()
        self._timers[message.id] = loop.call_later(delay, self._fire, message.id)
        logger.debug("Armed message %s to fire in %.3fs", message.id, delay)
        return True

    def dispatch_now(self, message: ScheduledMessage) -> bool:
        """Queue delivery on the next loop iteration.

        Used for a freshly created message whose ``send_at`` elapsed before it
        could be armed. The handle is tracked like a timer so ``cancel`` still
        wins until delivery starts.
        """
        if message.status is not MessageStatus.SCHEDULED:
            return False
        if message.id in self._timers or message.id in self._in_flight:
            return False

        loop = asyncio.get_running_loop()
        self._timers[message.id] = loop.call_soon(self._fire, message.id)
        logger.debug("Queued message %s for immediate delivery", message.id)
        return True

    def cancel(self, message_id: str) -> CancelResult:
        """Cancel a pending message.

        Terminal messages are reported as an idempotent no-op. A message whose
        delivery already started is left to that delivery.
        """
        message = self._registry.get(message_id)
        if message.status.is_terminal:
            return CancelResult(message, CancelOutcome.ALREADY_FINAL)
        if message_id in self._in_flight:
            return CancelResult(message, CancelOutcome.IN_FLIGHT)

        handle = self._timers.pop(message_id, None)
        if handle is not None:
            handle.cancel()

        try:
            updated = self._registry.transition(message_id, MessageStatus.CANCELED)
        except InvalidTransitionError:
            return CancelResult(self._registry.get(message_id), CancelOutcome.ALREADY_FINAL)
        logger.info("Canceled message %s", message_id)
        return CancelResult(updated, CancelOutcome.CANCELED)

    async def wait_idle(self) -> None:
        """Wait for deliveries that are currently running."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Drop every armed timer and let running deliveries settle.

        Persisted statuses are left untouched so the next start re-arms them.
        """
        for handle in self._timers.values():
            handle.cancel()
        dropped = len(self._timers)
        self._timers.clear()
        await self.wait_idle()
        logger.info("Dispatcher stopped; %d armed timers dropped", dropped)

    def _fire(self, message_id: str) -> None:
        self._timers.pop(message_id, None)
        task = asyncio.get_running_loop().create_task(
            self._deliver(message_id), name=f"deliver-{message_id}"
        )
        self._in_flight[message_id] = task
        task.add_done_callback(lambda _task: self._in_flight.pop(message_id, None))

    async def _deliver(self, message_id: str) -> None:
        try:
            message = self._registry.get(message_id)
        except MessageNotFoundError:
            logger.warning("Fired message %s no longer exists", message_id)
            return
        except Exception as exc:
            logger.exception("Failed loading fired message %s", message_id)
            self._settle(
                message_id, MessageStatus.FAILED, error=str(exc) or exc.__class__.__name__
            )
            return
        if message.status is not MessageStatus.SCHEDULED:
            logger.info(
                "Skipping message %s already %s", message_id, message.status.value
            )
            return

        # Loop timers may wake marginally early relative to the wall clock.
        remaining = (message.send_at - self._clock()).total_seconds()
        if remaining > 0:
            await asyncio.sleep(remaining)

        try:
            await self._gateway.send(message.tenant_id, message.channel_id, message.text)
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning("Delivery of message %s failed: %s", message_id, reason)
            self._settle(message_id, MessageStatus.FAILED, error=reason)
            return

        logger.info("Delivered message %s to channel %s", message_id, message.channel_id)
        self._settle(message_id, MessageStatus.SENT)

    def _settle(
        self, message_id: str, status: MessageStatus, error: str | None = None
    ) -> None:
        try:
            self._registry.transition(message_id, status, error=error)
        except InvalidTransitionError as exc:
            logger.warning(
                "Message %s was already %s when delivery finished",
                message_id,
                exc.current.value,
            )
        except Exception:
            logger.exception("Failed recording status for message %s", message_id)


__all__ = ["CancelOutcome", "CancelResult", "MessageDispatcher"]
