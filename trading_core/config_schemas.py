"""
Configuration schema validation using Pydantic.

Provides validated configuration models for strategies, the engine and
venue credentials. Catches configuration errors at load time.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from trading_core.interfaces.types import ExchangeType, StrategyType, TimeFrame


class RiskParameters(BaseModel):
    """Per-strategy risk limits."""
    model_config = ConfigDict(extra="forbid")

    max_position_size: float = Field(10.0, gt=0, le=100, description="Max position value as % of portfolio")
    stop_loss_percentage: Optional[float] = Field(None, gt=0, le=100, description="Max stop distance in %")
    take_profit_percentage: Optional[float] = Field(None, gt=0, description="Max take-profit distance in %")
    max_daily_loss: Optional[float] = Field(None, gt=0, description="Risk budget per trade in quote currency")


class StrategyConfig(BaseModel):
    """Declarative strategy record as loaded from persistence."""
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(..., min_length=1, description="Strategy identifier")
    name: str = Field("", description="Display name")
    type: StrategyType = Field(..., description="Strategy type tag")
    symbols: List[str] = Field(..., description="Product ids the strategy trades")
    timeframe: TimeFrame = Field(TimeFrame.ONE_HOUR, description="Bar timeframe")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    risk_parameters: RiskParameters = Field(default_factory=RiskParameters)
    is_active: bool = True

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, v):
        """Ensure at least one well-formed product id."""
        if not v:
            raise ValueError("At least one symbol must be configured")
        for symbol in v:
            if "-" not in symbol:
                raise ValueError(f"Invalid symbol format: {symbol}. Expected BASE-QUOTE")
        return [s.upper() for s in v]


class EngineConfig(BaseModel):
    """Trading engine settings."""
    model_config = ConfigDict(extra="forbid")

    max_concurrent_orders: int = Field(10, ge=1)
    max_daily_trades: int = Field(50, ge=1)
    emergency_stop_loss: float = Field(0.1, gt=0, le=1, description="Drawdown fraction for emergency stop")
    enable_paper_trading: bool = False
    monitor_interval: float = Field(10.0, gt=0, description="Seconds between order refreshes")
    portfolio_value: float = Field(10000.0, gt=0)
    auto_emergency_stop: bool = Field(False, description="Trigger emergency_stop on critical safety failures")
    event_queue_size: int = Field(1000, ge=0, description="0 disables the consumer queue")


class ExchangeCredentials(BaseModel):
    """Venue API credentials."""
    model_config = ConfigDict(extra="forbid")

    api_key: str = ""
    api_secret: str = ""
    passphrase: Optional[str] = None
    sandbox: bool = False


class SimulatorSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    initial_balance: float = Field(10000.0, ge=0)
    tick_interval: float = Field(5.0, gt=0)
    seed: Optional[int] = None
    prices: Dict[str, float] = Field(default_factory=lambda: {"BTC-USD": 45000.0, "ETH-USD": 3000.0})

    @field_validator("prices")
    @classmethod
    def validate_prices(cls, v):
        for symbol, price in v.items():
            if price <= 0:
                raise ValueError(f"Price for {symbol} must be positive, got {price}")
        return v


class ExchangeSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: ExchangeType = ExchangeType.SIMULATOR
    credentials: ExchangeCredentials = Field(default_factory=ExchangeCredentials)
    simulator: SimulatorSettings = Field(default_factory=SimulatorSettings)
    timeout: float = Field(30.0, gt=0, description="HTTP timeout in seconds")


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    file: Optional[str] = None
    json_output: bool = True

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class AppConfig(BaseModel):
    """Complete configuration for a trading session."""
    model_config = ConfigDict(extra="forbid")

    engine: EngineConfig = Field(default_factory=EngineConfig)
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    strategies: List[StrategyConfig] = Field(default_factory=list)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_unique_strategy_ids(self):
        ids = [s.id for s in self.strategies]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate strategy ids: {duplicates}")
        return self


def load_config(path: Union[str, Path]) -> AppConfig:
    """
    Load and validate a YAML session configuration.

    Args:
        path: YAML file path

    Returns:
        Validated AppConfig

    Raises:
        ValidationError: If configuration is invalid
    """
    with open(path) as fh:
        raw = yaml.safe_load(fh) or {}
    return AppConfig.model_validate(raw)
