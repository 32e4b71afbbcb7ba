"""
Trading engine.

Orchestrator, outbound event channel and the periodic scheduler used for
order monitoring and simulated price ticks.
"""

from .events import EngineEvent, EventChannel, EventType
from .scheduler import PeriodicTask
from .trading_engine import EngineMetrics, EngineStateError, TradingEngine

__all__ = [
    "EngineEvent",
    "EventChannel",
    "EventType",
    "PeriodicTask",
    "EngineMetrics",
    "EngineStateError",
    "TradingEngine",
]
