"""
Core interfaces for the trading system.

Value types, enums, the signal and order types, and the venue connector
contract shared by strategies, the safety engine, connectors and the engine.
"""

from .types import (
    OrderSide,
    OrderType,
    OrderStatus,
    TERMINAL_STATUSES,
    TimeFrame,
    StrategyType,
    IndicatorType,
    ExchangeType,
    SafetyCheckType,
    Severity,
    PriceObservation,
    IndicatorResult,
    TradingPair,
    RateLimit,
    ExchangeInfo,
    Ticker,
    OrderBookLevel,
    OrderBook,
    Trade,
    CandleData,
    Balance,
    split_symbol,
    utc_now,
)
from .signal import TradingSignal
from .orders import Order, OrderRequest, OrderFill, order_from_request
from .exchange import ApiResponse, IExchangeConnector

__all__ = [
    "OrderSide",
    "OrderType",
    "OrderStatus",
    "TERMINAL_STATUSES",
    "TimeFrame",
    "StrategyType",
    "IndicatorType",
    "ExchangeType",
    "SafetyCheckType",
    "Severity",
    "PriceObservation",
    "IndicatorResult",
    "TradingPair",
    "RateLimit",
    "ExchangeInfo",
    "Ticker",
    "OrderBookLevel",
    "OrderBook",
    "Trade",
    "CandleData",
    "Balance",
    "split_symbol",
    "utc_now",
    "TradingSignal",
    "Order",
    "OrderRequest",
    "OrderFill",
    "order_from_request",
    "ApiResponse",
    "IExchangeConnector",
]
