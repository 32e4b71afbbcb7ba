"""
Engine event channel.

Events are delivered two ways:
- synchronous subscriber callbacks, in subscription order
- an optional bounded asyncio.Queue for async consumers; when full the
  oldest queued event is discarded and counted in ``dropped``

A failing subscriber is logged and never breaks delivery to the others.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from trading_core.interfaces.types import utc_now
from trading_core.logging_config import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    STRATEGY_ADDED = "strategyAdded"
    STRATEGY_REMOVED = "strategyRemoved"
    SIGNAL_GENERATED = "signalGenerated"
    SIGNAL_REJECTED = "signalRejected"
    TRADE_EXECUTED = "tradeExecuted"
    PAPER_TRADE_EXECUTED = "paperTradeExecuted"
    TRADE_REJECTED = "tradeRejected"
    TRADE_EXECUTION_ERROR = "tradeExecutionError"
    ORDER_COMPLETED = "orderCompleted"
    ORDER_CANCEL_ERROR = "orderCancelError"
    ORDER_UPDATE_ERROR = "orderUpdateError"
    STRATEGY_ERROR = "strategyError"
    PNL_UPDATED = "pnlUpdated"
    ENGINE_STARTED = "engineStarted"
    ENGINE_STOPPED = "engineStopped"
    EMERGENCY_STOP = "emergencyStop"


@dataclass(frozen=True)
class EngineEvent:
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


Subscriber = Callable[[EngineEvent], None]


class EventChannel:
    """
    Typed outbound channel for engine notifications.

    Parameters
    ----------
    queue_size : int, optional
        Capacity of the consumer queue. ``None`` or 0 disables queueing.
    """

    def __init__(self, queue_size: Optional[int] = None):
        self._subscribers: List[tuple] = []
        self._queue: Optional[asyncio.Queue] = asyncio.Queue(maxsize=queue_size) if queue_size else None
        self.dropped = 0
        self.published = 0

    @property
    def queue(self) -> Optional[asyncio.Queue]:
        return self._queue

    def subscribe(self, callback: Subscriber, event_type: Optional[EventType] = None) -> Callable[[], None]:
        """
        Register a callback for one event type (or all when None).

        Returns a function that removes the subscription.
        """
        entry = (event_type, callback)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event_type: EventType, **payload: Any) -> EngineEvent:
        event = EngineEvent(type=event_type, payload=payload)
        self.published += 1

        for wanted, callback in list(self._subscribers):
            if wanted is not None and wanted is not event_type:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("event_subscriber_failed", event_type=event_type.value)

        if self._queue is not None:
            if self._queue.full():
                self._queue.get_nowait()
                self.dropped += 1
            self._queue.put_nowait(event)

        return event

    def drain(self) -> List[EngineEvent]:
        """Remove and return every queued event."""
        events = []
        if self._queue is None:
            return events
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events
