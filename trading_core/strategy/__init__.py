"""
Strategies.

Abstract strategy, concrete RSI/MACD policies and the registration-based
factory that builds them from StrategyConfig records.
"""

from .base import BaseStrategy, StrategyContext
from .rsi_strategy import RSIStrategy
from .macd_strategy import MACDStrategy, crossover_confidence
from .registry import register_strategy
from .factory import (
    create_strategy,
    supported_types,
    is_supported,
    default_parameters,
    validate_parameters,
)

__all__ = [
    "BaseStrategy",
    "StrategyContext",
    "RSIStrategy",
    "MACDStrategy",
    "crossover_confidence",
    "register_strategy",
    "create_strategy",
    "supported_types",
    "is_supported",
    "default_parameters",
    "validate_parameters",
]
