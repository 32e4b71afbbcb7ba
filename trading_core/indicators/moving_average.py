"""
Simple and exponential moving averages over close prices.
"""

from typing import List, Sequence

from trading_core.interfaces.types import IndicatorResult, IndicatorType, PriceObservation, TimeFrame

from .base import BaseIndicator, closes, require_positive
from .math_utils import ema, round_to, sma


class SMAIndicator(BaseIndicator):
    """Rolling mean of closes; one result per full window."""

    indicator_type = IndicatorType.SMA

    def __init__(self, symbol: str, timeframe: TimeFrame, period: int = 20):
        require_positive("SMA period", period)
        super().__init__(symbol, timeframe, {"period": period})
        self.period = period

    @property
    def min_length(self) -> int:
        return self.period

    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        values = sma(closes(window), self.period)
        offset = self.period - 1
        return [
            IndicatorResult(
                timestamp=window[i + offset].timestamp,
                value=round_to(v, 8),
                metadata={"period": self.period},
            )
            for i, v in enumerate(values)
        ]


class EMAIndicator(BaseIndicator):
    """Exponential mean of closes seeded with the SMA of the first window."""

    indicator_type = IndicatorType.EMA

    def __init__(self, symbol: str, timeframe: TimeFrame, period: int = 20):
        require_positive("EMA period", period)
        super().__init__(symbol, timeframe, {"period": period})
        self.period = period

    @property
    def min_length(self) -> int:
        return self.period

    @property
    def multiplier(self) -> float:
        return 2.0 / (self.period + 1)

    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        values = ema(closes(window), self.period)
        offset = self.period - 1
        return [
            IndicatorResult(
                timestamp=window[i + offset].timestamp,
                value=round_to(v, 8),
                metadata={"period": self.period, "multiplier": self.multiplier},
            )
            for i, v in enumerate(values)
        ]
