"""
Indicator factory.

Builds indicators from a type tag and a (possibly partial) parameter map,
filling in the standard defaults.
"""

from typing import Any, Dict, List, Optional

from trading_core.interfaces.types import IndicatorType, TimeFrame

from .base import BaseIndicator
from .macd import MACDIndicator
from .moving_average import EMAIndicator, SMAIndicator
from .rsi import RSIIndicator
from .volatility import ATRIndicator, BollingerBandsIndicator

DEFAULT_PARAMETERS: Dict[IndicatorType, Dict[str, Any]] = {
    IndicatorType.SMA: {"period": 20},
    IndicatorType.EMA: {"period": 20},
    IndicatorType.RSI: {"period": 14, "overbought": 70.0, "oversold": 30.0},
    IndicatorType.MACD: {"fast_period": 12, "slow_period": 26, "signal_period": 9},
    IndicatorType.BOLLINGER_BANDS: {"period": 20, "std_dev": 2.0},
    IndicatorType.ATR: {"period": 14},
}

_INDICATOR_CLASSES = {
    IndicatorType.SMA: SMAIndicator,
    IndicatorType.EMA: EMAIndicator,
    IndicatorType.RSI: RSIIndicator,
    IndicatorType.MACD: MACDIndicator,
    IndicatorType.BOLLINGER_BANDS: BollingerBandsIndicator,
    IndicatorType.ATR: ATRIndicator,
}


def create_indicator(
    indicator_type: IndicatorType,
    symbol: str,
    timeframe: TimeFrame,
    parameters: Optional[Dict[str, Any]] = None,
) -> BaseIndicator:
    """
    Create an indicator with defaults applied.

    Parameters
    ----------
    indicator_type : IndicatorType
        Which indicator to build (enum or its string value)
    symbol : str
        Product id
    timeframe : TimeFrame
        Bar timeframe
    parameters : dict, optional
        Overrides for the default parameters

    Returns
    -------
    BaseIndicator

    Raises
    ------
    ValueError
        If the type is unknown, a parameter is unrecognised, or a value is invalid

    Examples
    --------
    >>> rsi = create_indicator(IndicatorType.RSI, "BTC-USD", TimeFrame.ONE_HOUR, {"period": 7})
    """
    indicator_type = IndicatorType(indicator_type)
    params = default_parameters(indicator_type)
    unknown = set(parameters or {}) - set(params)
    if unknown:
        raise ValueError(f"Unknown parameters for {indicator_type.value}: {sorted(unknown)}")
    params.update(parameters or {})
    return _INDICATOR_CLASSES[indicator_type](symbol, timeframe, **params)


def default_parameters(indicator_type: IndicatorType) -> Dict[str, Any]:
    return dict(DEFAULT_PARAMETERS[IndicatorType(indicator_type)])


def supported_indicators() -> List[IndicatorType]:
    return list(_INDICATOR_CLASSES)
