"""
Base indicator interface.

Each indicator instance is bound to one symbol and timeframe and owns its
own result sequence, which is replaced on every ``calculate`` call.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from trading_core.interfaces.types import (
    IndicatorResult,
    IndicatorType,
    PriceObservation,
    TimeFrame,
)


class IndicatorError(Exception):
    """Base class for indicator calculation errors."""


class InsufficientDataError(IndicatorError):
    """Raised when a window is shorter than an indicator's minimum length."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {indicator}: need at least {required} data points, got {available}"
        )


def require_positive(name: str, value) -> None:
    if value is None or value <= 0:
        raise ValueError(f"{name} must be greater than 0, got {value}")


class BaseIndicator(ABC):
    """
    Abstract base class for technical indicators.

    Subclasses declare ``indicator_type``, implement ``min_length`` and
    ``_compute``; ``calculate`` handles validation and result bookkeeping.
    """

    indicator_type: IndicatorType

    def __init__(self, symbol: str, timeframe: TimeFrame, parameters: Optional[Dict[str, Any]] = None):
        self.symbol = symbol
        self.timeframe = timeframe
        self.parameters = dict(parameters or {})
        self._results: List[IndicatorResult] = []

    @property
    @abstractmethod
    def min_length(self) -> int:
        """Minimum window length required to produce one result."""
        pass

    @abstractmethod
    def _compute(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        pass

    def calculate(self, window: Sequence[PriceObservation]) -> List[IndicatorResult]:
        """
        Calculate indicator values over a price window.

        Parameters
        ----------
        window : sequence of PriceObservation
            Ordered observations, oldest first

        Returns
        -------
        list[IndicatorResult]
            ``len(window) - min_length + 1`` results aligned to the tail

        Raises
        ------
        InsufficientDataError
            If the window is shorter than ``min_length``
        """
        if window is None or len(window) < self.min_length:
            raise InsufficientDataError(
                self.indicator_type.value, self.min_length, 0 if window is None else len(window)
            )
        self._results = self._compute(window)
        return self.results

    @property
    def results(self) -> List[IndicatorResult]:
        return list(self._results)

    def latest_result(self) -> Optional[IndicatorResult]:
        return self._results[-1] if self._results else None

    def reset(self) -> None:
        self._results = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(symbol={self.symbol!r}, parameters={self.parameters})"


def closes(window: Sequence[PriceObservation]) -> np.ndarray:
    return np.fromiter((p.close for p in window), dtype=np.float64, count=len(window))


# =============================================================================
# DataFrame bridge
# =============================================================================

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


def observations_from_frame(df: pd.DataFrame, timestamp_col: Optional[str] = None) -> List[PriceObservation]:
    """
    Convert an OHLCV DataFrame to observations.

    Parameters
    ----------
    df : pd.DataFrame
        Frame with open/high/low/close[/volume] columns
    timestamp_col : str, optional
        Column holding timestamps; the index is used when omitted

    Returns
    -------
    list[PriceObservation]
    """
    missing = [c for c in OHLCV_COLUMNS[:4] if c not in df.columns]
    if missing:
        raise ValueError(f"Missing OHLC columns: {missing}")

    timestamps = df[timestamp_col] if timestamp_col else df.index
    volumes = df["volume"] if "volume" in df.columns else pd.Series(0.0, index=df.index)

    return [
        PriceObservation(
            timestamp=pd.Timestamp(ts).to_pydatetime(),
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, l, c, v in zip(
            timestamps, df["open"], df["high"], df["low"], df["close"], volumes
        )
    ]


def results_to_frame(results: Sequence[IndicatorResult]) -> pd.DataFrame:
    """Flatten indicator results (value plus metadata) into a DataFrame indexed by timestamp."""
    if not results:
        return pd.DataFrame(columns=["value"])
    rows = [{"timestamp": r.timestamp, "value": r.value, **r.metadata} for r in results]
    return pd.DataFrame(rows).set_index("timestamp")
