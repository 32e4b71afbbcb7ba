"""
Moving Average Convergence Divergence.

MACD line = fast EMA - slow EMA (both referencing the same observation),
signal line = EMA of the MACD line, histogram = MACD - signal.
Crossovers are histogram sign transitions between consecutive results.
"""

from typing import List, Optional, Sequence

from trading_core.interfaces.types import IndicatorResult, IndicatorType, PriceObservation, TimeFrame

from .base import BaseIndicator, closes, require_positive
from .math_utils import ema, round_to

BULLISH = "bullish"
BEARISH = "bearish"


def detect_crossover(previous: Optional[float], current: float) -> Optional[str]:
    """
    Classify a histogram transition.

    Returns "bullish" for <=0 -> >0, "bearish" for >=0 -> <0, None otherwise
    (including when there is no previous value).
    """
    if previous is None:
        return None
    if previous <= 0 < current:
        return BULLISH
    if previous >= 0 > current:
        return BEARISH
    return None


class MACDIndicator(BaseIndicator):
    """
    MACD with crossover detection.

    Parameters
    ----------
    symbol : str
        Product id
    timeframe : TimeFrame
        Bar timeframe
    fast_period : int
        Fast EMA period (default 12)
    slow_period : int
        Slow EMA period (default 26), must exceed fast_period
    signal_period : int
        Signal EMA period (default 9)
    """

    indicator_type = IndicatorType.MACD

    def __init__(
        self,
        symbol: str,
        timeframe: TimeFrame,
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9,
    ):
        require_positive("MACD fast period", fast_period)
        require_positive("MACD slow period", slow_period)
        require_positive("MACD signal period", signal_period)
        if fast_period >= slow_period:
            raise ValueError(
                f"MACD fast period ({fast_period}) must be less than slow period ({slow_period})"
            )
        super().__init__(
            symbol,
            timeframe,
            {"fast_period": fast_period, "slow_period": slow_period, "signal_period": signal_period},
        )
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.signal_period = signal_period

    @property
    def min_length(self) -> int:
        return self.slow_period + self.signal_period - 1

    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        prices = closes(window)
        fast = ema(prices, self.fast_period)
        slow = ema(prices, self.slow_period)

        # fast[i + shift] and slow[i] both end at window index i + slow_period - 1
        shift = self.slow_period - self.fast_period
        macd_line = fast[shift:shift + len(slow)] - slow
        signal_line = ema(macd_line, self.signal_period)

        offset = self.slow_period + self.signal_period - 2
        results = []
        previous_hist = None
        for i, signal_value in enumerate(signal_line):
            macd_value = round_to(macd_line[i + self.signal_period - 1], 8)
            signal_value = round_to(signal_value, 8)
            histogram = round_to(macd_value - signal_value, 8)
            results.append(
                IndicatorResult(
                    timestamp=window[i + offset].timestamp,
                    value=histogram,
                    metadata={
                        "macd": macd_value,
                        "signal": signal_value,
                        "histogram": histogram,
                        "fast_period": self.fast_period,
                        "slow_period": self.slow_period,
                        "signal_period": self.signal_period,
                        "crossover": detect_crossover(previous_hist, histogram),
                    },
                )
            )
            previous_hist = histogram
        return results
