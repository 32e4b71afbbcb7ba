"""
Shared fixtures for trading_core tests.
"""

import pytest

from trading_core.config_schemas import RiskParameters, StrategyConfig
from trading_core.interfaces.types import StrategyType, TimeFrame

from .helpers import ManualClock


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rsi_config():
    return StrategyConfig(
        id="rsi-btc",
        name="RSI BTC",
        type=StrategyType.RSI_OVERSOLD_OVERBOUGHT,
        symbols=["BTC-USD"],
        timeframe=TimeFrame.ONE_MINUTE,
        parameters={"rsi_period": 14, "oversold": 30, "overbought": 70},
    )


@pytest.fixture
def macd_config():
    return StrategyConfig(
        id="macd-btc",
        name="MACD BTC",
        type=StrategyType.MACD_CROSSOVER,
        symbols=["BTC-USD"],
        timeframe=TimeFrame.ONE_MINUTE,
        parameters={"fast_period": 12, "slow_period": 26, "signal_period": 9},
        risk_parameters=RiskParameters(max_position_size=10.0),
    )
