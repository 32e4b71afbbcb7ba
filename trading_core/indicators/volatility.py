"""
Volatility indicators: Bollinger Bands and Average True Range.
"""

from typing import List, Sequence

import numpy as np

from trading_core.interfaces.types import IndicatorResult, IndicatorType, PriceObservation, TimeFrame

from .base import BaseIndicator, closes, require_positive
from .math_utils import ema, rolling_std, round_to, sma, true_range

SQUEEZE_BANDWIDTH_PCT = 10.0


class BollingerBandsIndicator(BaseIndicator):
    """
    Bollinger Bands around an SMA middle band.

    Upper/lower = middle +/- k * population std over the same window.
    Result value is the middle band.
    """

    indicator_type = IndicatorType.BOLLINGER_BANDS

    def __init__(self, symbol: str, timeframe: TimeFrame, period: int = 20, std_dev: float = 2.0):
        require_positive("Bollinger Bands period", period)
        require_positive("Standard deviation", std_dev)
        super().__init__(symbol, timeframe, {"period": period, "std_dev": std_dev})
        self.period = period
        self.std_dev = std_dev

    @property
    def min_length(self) -> int:
        return self.period

    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        prices = closes(window)
        middles = sma(prices, self.period)
        stds = rolling_std(prices, self.period)

        results = []
        for i, (middle, std) in enumerate(zip(middles, stds)):
            idx = i + self.period - 1
            price = prices[idx]
            upper = middle + std * self.std_dev
            lower = middle - std * self.std_dev
            bandwidth = (upper - lower) / middle * 100 if middle != 0 else 0.0

            if price > upper:
                position = "above_upper"
            elif price < lower:
                position = "below_lower"
            else:
                position = "inside"

            results.append(
                IndicatorResult(
                    timestamp=window[idx].timestamp,
                    value=round_to(middle, 8),
                    metadata={
                        "upper_band": round_to(upper, 8),
                        "middle_band": round_to(middle, 8),
                        "lower_band": round_to(lower, 8),
                        "period": self.period,
                        "standard_deviation": self.std_dev,
                        "bandwidth": round_to(bandwidth, 2),
                        "squeeze": bool(bandwidth < SQUEEZE_BANDWIDTH_PCT),
                        "position": position,
                    },
                )
            )
        return results


def volatility_level(atr_percentage: float) -> str:
    if atr_percentage < 1:
        return "low"
    if atr_percentage < 3:
        return "medium"
    return "high"


class ATRIndicator(BaseIndicator):
    """Average True Range: EMA of True Range starting at the second observation."""

    indicator_type = IndicatorType.ATR

    def __init__(self, symbol: str, timeframe: TimeFrame, period: int = 14):
        require_positive("ATR period", period)
        super().__init__(symbol, timeframe, {"period": period})
        self.period = period

    @property
    def min_length(self) -> int:
        return self.period + 1

    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        highs = np.fromiter((p.high for p in window), dtype=np.float64, count=len(window))
        lows = np.fromiter((p.low for p in window), dtype=np.float64, count=len(window))
        prices = closes(window)
        atr_values = ema(true_range(highs, lows, prices), self.period)

        results = []
        for i, raw in enumerate(atr_values):
            idx = i + self.period
            atr = round_to(raw, 8)
            atr_pct = atr / prices[idx] * 100 if prices[idx] != 0 else 0.0
            results.append(
                IndicatorResult(
                    timestamp=window[idx].timestamp,
                    value=atr,
                    metadata={
                        "period": self.period,
                        "atr_percentage": round_to(atr_pct, 2),
                        "volatility": volatility_level(atr_pct),
                    },
                )
            )
        return results
