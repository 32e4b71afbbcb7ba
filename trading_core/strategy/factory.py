"""
Strategy Factory - Resolves strategy configs to strategy instances.

Entry point for building strategies from declarative StrategyConfig records.
Types are resolved through the registry populated by ``register_strategy``.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from trading_core.config_schemas import StrategyConfig
from trading_core.interfaces.types import StrategyType

# Imported for registration side effects
from . import macd_strategy, rsi_strategy  # noqa: F401
from .base import DEFAULT_PORTFOLIO_VALUE, BaseStrategy
from .registry import registered_strategies


def create_strategy(
    config: StrategyConfig,
    clock: Optional[Callable[[], datetime]] = None,
    portfolio_value: float = DEFAULT_PORTFOLIO_VALUE,
) -> BaseStrategy:
    """
    Build a strategy from its configuration.

    Parameters
    ----------
    config : StrategyConfig
        Strategy record
    clock : callable, optional
        Time source passed to the strategy
    portfolio_value : float
        Default sizing portfolio value

    Returns
    -------
    BaseStrategy

    Raises
    ------
    NotImplementedError
        If the type is known but has no implementation
    ValueError
        If parameters are invalid for the strategy's indicators

    Examples
    --------
    >>> config = StrategyConfig(
    ...     id="rsi-btc",
    ...     type=StrategyType.RSI_OVERSOLD_OVERBOUGHT,
    ...     symbols=["BTC-USD"],
    ... )
    >>> strategy = create_strategy(config)
    """
    cls = registered_strategies().get(config.type)
    if cls is None:
        raise NotImplementedError(f"Strategy type {config.type.value} not implemented yet")
    return cls(config, clock=clock, portfolio_value=portfolio_value)


def supported_types() -> List[StrategyType]:
    return list(registered_strategies())


def is_supported(strategy_type: StrategyType) -> bool:
    return StrategyType(strategy_type) in registered_strategies()


def default_parameters(strategy_type: StrategyType) -> Dict[str, Any]:
    """Default parameter map for a type (empty for unsupported types)."""
    cls = registered_strategies().get(StrategyType(strategy_type))
    if cls is None:
        return {}
    return dict(cls.DEFAULT_PARAMETERS)


def validate_parameters(strategy_type: StrategyType, parameters: Dict[str, Any]) -> bool:
    """True when every default parameter key is present and not None."""
    return all(
        parameters.get(key) is not None for key in default_parameters(strategy_type)
    )
