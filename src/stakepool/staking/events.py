"""
Pool event definitions and the in-memory event log.

Events are the pool's notifications to the outside world: one record per
deposit, withdrawal, emergency withdrawal and reward payout. They are only
published once the operation that raised them has completed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger("stakepool.staking.events")


class PoolEventType(Enum):
    """Kinds of notifications a pool emits."""

    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    EMERGENCY_WITHDRAW = "EmergencyWithdraw"
    REWARD_CLAIM = "RewardClaim"


@dataclass(frozen=True)
class PoolEvent:
    """
    A single pool notification.

    Attributes:
        event_type: What happened
        user: Acting identity
        amount: Stake units moved, or reward units paid for RewardClaim
        tick: Tick at which the operation executed
    """

    event_type: PoolEventType
    user: str
    amount: int
    tick: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event_type.value,
            "user": self.user,
            "amount": self.amount,
            "tick": self.tick,
        }


EventListener = Callable[[PoolEvent], None]


class EventLog:
    """Append-only record of published events with optional listeners."""

    def __init__(self):
        self.events: list[PoolEvent] = []
        self._listeners: list[EventListener] = []
        self._lock = threading.RLock()

    def subscribe(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, events: Iterable[PoolEvent]) -> None:
        """
        Records `events`, then notifies listeners.

        Events describe operations that have already been applied, so a
        failing listener is logged and skipped rather than raised.
        """
        with self._lock:
            batch = list(events)
            self.events.extend(batch)
            listeners = list(self._listeners)
            for event in batch:
                for listener in listeners:
                    try:
                        listener(event)
                    except Exception:
                        logger.exception(
                            "Event listener %r failed on %s for %s",
                            listener,
                            event.event_type.value,
                            event.user,
                            extra={"event": "events.listener_failed"},
                        )

    def filter(self, event_type: PoolEventType | None = None, user: str | None = None) -> list[PoolEvent]:
        """Returns published events, optionally narrowed by type and/or user."""
        with self._lock:
            return [
                event
                for event in self.events
                if (event_type is None or event.event_type == event_type)
                and (user is None or event.user == user)
            ]
