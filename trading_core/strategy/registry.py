"""
Strategy registry.

Concrete strategies register themselves against a StrategyType; the factory
resolves types through this table, so adding a strategy means adding a
class, not editing callers.
"""

from typing import Callable, Dict, Type, TypeVar

from trading_core.interfaces.types import StrategyType

S = TypeVar("S")

_REGISTRY: Dict[StrategyType, type] = {}


def register_strategy(strategy_type: StrategyType) -> Callable[[Type[S]], Type[S]]:
    """
    Class decorator registering a strategy implementation.

    Raises
    ------
    ValueError
        If the type is already registered to a different class
    """
    def decorator(cls: Type[S]) -> Type[S]:
        existing = _REGISTRY.get(strategy_type)
        if existing is not None and existing is not cls:
            raise ValueError(
                f"Strategy type {strategy_type.value} already registered to {existing.__name__}"
            )
        _REGISTRY[strategy_type] = cls
        cls.strategy_type = strategy_type
        return cls

    return decorator


def registered_strategies() -> Dict[StrategyType, type]:
    return dict(_REGISTRY)
