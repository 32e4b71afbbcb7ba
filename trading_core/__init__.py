"""
Trading Core

Algorithmic trading orchestration: indicators feed strategies, strategies
emit signals, a safety engine gates them and the trading engine routes
approved orders to a venue connector (or a paper-trading path).

Package Structure:
- interfaces/: Value types, orders, signals, venue connector contract
- indicators/: SMA, EMA, RSI, MACD, Bollinger Bands, ATR (numba kernels)
- strategy/: Abstract strategy, RSI and MACD strategies, factory
- risk/: Safety engine and position sizing helpers
- exchanges/: Simulator, Coinbase REST connector, factory
- engine/: Trading engine, event channel, periodic scheduler
- config_schemas: pydantic configuration models and YAML loader
- logging_config: structlog setup
- cli: click entry point
"""

__version__ = '0.1.0'
