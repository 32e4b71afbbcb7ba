"""
Numeric kernels for indicator calculations, optimized with Numba.

All kernels return only the fully-formed values: an input of length n with
lookback p yields n - p + 1 outputs (True Range yields n - 1).
"""

import numpy as np
from numba import njit


@njit
def _sma(values: np.ndarray, period: int) -> np.ndarray:
    n = len(values)
    if n < period:
        return np.empty(0)
    out = np.empty(n - period + 1)
    for i in range(period - 1, n):
        total = 0.0
        for j in range(i - period + 1, i + 1):
            total += values[j]
        out[i - period + 1] = total / period
    return out


@njit
def _ema(values: np.ndarray, period: int) -> np.ndarray:
    n = len(values)
    if n < period:
        return np.empty(0)
    out = np.empty(n - period + 1)

    # Seed with the simple average of the first window
    total = 0.0
    for j in range(period):
        total += values[j]
    out[0] = total / period

    multiplier = 2.0 / (period + 1)
    for i in range(period, n):
        prev = out[i - period]
        out[i - period + 1] = (values[i] - prev) * multiplier + prev
    return out


@njit
def _rolling_std(values: np.ndarray, period: int) -> np.ndarray:
    n = len(values)
    if n < period:
        return np.empty(0)
    out = np.empty(n - period + 1)
    for i in range(period - 1, n):
        window = values[i - period + 1:i + 1]
        mean = window.sum() / period
        out[i - period + 1] = np.sqrt(((window - mean) ** 2).sum() / period)
    return out


@njit
def _true_range(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    n = len(highs)
    if n < 2:
        return np.empty(0)
    out = np.empty(n - 1)
    for i in range(1, n):
        hl = highs[i] - lows[i]
        hc = abs(highs[i] - closes[i - 1])
        lc = abs(lows[i] - closes[i - 1])
        out[i - 1] = max(hl, hc, lc)
    return out


def _as_float_array(values) -> np.ndarray:
    return np.ascontiguousarray(values, dtype=np.float64)


def sma(values, period: int) -> np.ndarray:
    """
    Simple moving average.

    Parameters
    ----------
    values : array-like
        Input series
    period : int
        Window length

    Returns
    -------
    np.ndarray
        len(values) - period + 1 averages (empty when too short)
    """
    return _sma(_as_float_array(values), period)


def ema(values, period: int) -> np.ndarray:
    """
    Exponential moving average seeded with the SMA of the first period values.

    Multiplier is 2 / (period + 1).

    Parameters
    ----------
    values : array-like
        Input series
    period : int
        Smoothing period

    Returns
    -------
    np.ndarray
        len(values) - period + 1 values (empty when too short)
    """
    return _ema(_as_float_array(values), period)


def rolling_std(values, period: int) -> np.ndarray:
    """Population standard deviation over a rolling window."""
    return _rolling_std(_as_float_array(values), period)


def true_range(highs, lows, closes) -> np.ndarray:
    """
    True Range from the second observation onward.

    max(high - low, |high - prev_close|, |low - prev_close|)
    """
    highs = _as_float_array(highs)
    lows = _as_float_array(lows)
    closes = _as_float_array(closes)
    if not (len(highs) == len(lows) == len(closes)):
        raise ValueError("highs, lows and closes must have equal length")
    return _true_range(highs, lows, closes)


def highest(values, period: int) -> np.ndarray:
    """Rolling maximum."""
    arr = _as_float_array(values)
    if len(arr) < period:
        return np.empty(0)
    return np.lib.stride_tricks.sliding_window_view(arr, period).max(axis=1)


def lowest(values, period: int) -> np.ndarray:
    """Rolling minimum."""
    arr = _as_float_array(values)
    if len(arr) < period:
        return np.empty(0)
    return np.lib.stride_tricks.sliding_window_view(arr, period).min(axis=1)


def round_to(value: float, decimals: int) -> float:
    return float(round(float(value), decimals))


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)
