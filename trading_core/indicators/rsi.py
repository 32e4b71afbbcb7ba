"""
Relative Strength Index.

Average gain and loss are EMA-smoothed per-step close deltas. Each result is
classified against configurable overbought/oversold thresholds.
"""

from typing import List, Sequence

import numpy as np

from trading_core.interfaces.types import IndicatorResult, IndicatorType, PriceObservation, TimeFrame

from .base import BaseIndicator, closes, require_positive
from .math_utils import clamp, ema, round_to

OVERBOUGHT = "overbought"
OVERSOLD = "oversold"
NEUTRAL = "neutral"


def classify_rsi(value: float, overbought: float, oversold: float) -> str:
    if value >= overbought:
        return OVERBOUGHT
    if value <= oversold:
        return OVERSOLD
    return NEUTRAL


class RSIIndicator(BaseIndicator):
    """
    RSI with EMA smoothing.

    Parameters
    ----------
    symbol : str
        Product id
    timeframe : TimeFrame
        Bar timeframe
    period : int
        Smoothing period (default 14)
    overbought : float
        Overbought threshold (default 70)
    oversold : float
        Oversold threshold (default 30)
    """

    indicator_type = IndicatorType.RSI

    def __init__(
        self,
        symbol: str,
        timeframe: TimeFrame,
        period: int = 14,
        overbought: float = 70.0,
        oversold: float = 30.0,
    ):
        require_positive("RSI period", period)
        if not (0 <= oversold < overbought <= 100):
            raise ValueError(
                f"RSI thresholds must satisfy 0 <= oversold < overbought <= 100, "
                f"got oversold={oversold}, overbought={overbought}"
            )
        super().__init__(
            symbol, timeframe, {"period": period, "overbought": overbought, "oversold": oversold}
        )
        self.period = period
        self.overbought = overbought
        self.oversold = oversold

    @property
    def min_length(self) -> int:
        return self.period + 1

    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        deltas = np.diff(closes(window))
        avg_gain = ema(np.where(deltas > 0, deltas, 0.0), self.period)
        avg_loss = ema(np.where(deltas < 0, -deltas, 0.0), self.period)

        results = []
        for i, (gain, loss) in enumerate(zip(avg_gain, avg_loss)):
            if loss == 0:
                rsi = 100.0
            else:
                rsi = 100.0 - 100.0 / (1.0 + gain / loss)
            rsi = round_to(clamp(rsi, 0.0, 100.0), 2)
            results.append(
                IndicatorResult(
                    timestamp=window[i + self.period].timestamp,
                    value=rsi,
                    metadata={
                        "period": self.period,
                        "overbought": self.overbought,
                        "oversold": self.oversold,
                        "signal": classify_rsi(rsi, self.overbought, self.oversold),
                    },
                )
            )
        return results
