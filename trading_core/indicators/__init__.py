"""Technical indicators.

Stateless numeric transforms over an ordered price window. Each indicator
is bound to one symbol and owns its own result sequence. Kernels live in
``math_utils`` and are compiled with Numba.
"""

from .base import (
    BaseIndicator,
    IndicatorError,
    InsufficientDataError,
    observations_from_frame,
    results_to_frame,
)
from .moving_average import SMAIndicator, EMAIndicator
from .rsi import RSIIndicator, classify_rsi
from .macd import MACDIndicator, detect_crossover
from .volatility import BollingerBandsIndicator, ATRIndicator
from .factory import create_indicator, default_parameters, supported_indicators

__all__ = [
    "BaseIndicator",
    "IndicatorError",
    "InsufficientDataError",
    "observations_from_frame",
    "results_to_frame",
    "SMAIndicator",
    "EMAIndicator",
    "RSIIndicator",
    "classify_rsi",
    "MACDIndicator",
    "detect_crossover",
    "BollingerBandsIndicator",
    "ATRIndicator",
    "create_indicator",
    "default_parameters",
    "supported_indicators",
]
