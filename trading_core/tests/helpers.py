"""
Series builders and a manual clock shared by the test modules.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Sequence

from trading_core.interfaces.types import PriceObservation

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_series(
    closes: Sequence[float],
    start: datetime = START,
    step: timedelta = timedelta(minutes=1),
) -> List[PriceObservation]:
    """Observations with open=high=low=close at fixed spacing."""
    return [
        PriceObservation(
            timestamp=start + i * step,
            open=float(c),
            high=float(c),
            low=float(c),
            close=float(c),
            volume=100.0,
        )
        for i, c in enumerate(closes)
    ]


def rising_closes(n: int = 20, start: float = 100.0, step: float = 1.0) -> List[float]:
    return [start + i * step for i in range(n)]


def decline_then_rally(decline: int = 45, rally: int = 10) -> List[float]:
    """150 falling by 1 per bar, then rising by 3 per bar."""
    falling = [150.0 - i for i in range(decline)]
    bottom = falling[-1]
    return falling + [bottom + 3.0 * (i + 1) for i in range(rally)]


def rally_then_decline(rally: int = 45, decline: int = 10) -> List[float]:
    """50 rising by 1 per bar, then falling by 3 per bar."""
    rising = [50.0 + i for i in range(rally)]
    top = rising[-1]
    return rising + [top - 3.0 * (i + 1) for i in range(decline)]


class ManualClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta
