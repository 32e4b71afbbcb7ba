"""
Core value types shared across the trading system.

Design principles:
- Enum values match the venue/wire vocabulary (lowercase strings)
- Observations and results are immutable once produced
- Market data types carry floats; currencies are derived from the symbol

"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def split_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split a product id into (base, quote) currencies.

    >>> split_symbol("BTC-USD")
    ('BTC', 'USD')
    """
    base, _, quote = symbol.partition("-")
    return base or "BTC", quote or "USD"


# =============================================================================
# Enums
# =============================================================================


class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"


class OrderStatus(Enum):
    """
    Canonical order lifecycle.

    PENDING -> OPEN -> {FILLED | CANCELLED | REJECTED | EXPIRED}
    """
    PENDING = "pending"
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    OrderStatus.FILLED,
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
    OrderStatus.EXPIRED,
})


class TimeFrame(Enum):
    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    TWELVE_HOURS = "12h"
    ONE_DAY = "1d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1M"


class StrategyType(Enum):
    SIMPLE_MOVING_AVERAGE = "simple_moving_average"
    RSI_OVERSOLD_OVERBOUGHT = "rsi_oversold_overbought"
    MACD_CROSSOVER = "macd_crossover"
    BOLLINGER_BANDS_SQUEEZE = "bollinger_bands_squeeze"
    MEAN_REVERSION = "mean_reversion"
    MOMENTUM = "momentum"
    CUSTOM = "custom"


class IndicatorType(Enum):
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER_BANDS = "bollinger_bands"
    ATR = "atr"


class ExchangeType(Enum):
    COINBASE_PRO = "coinbase_pro"
    BINANCE = "binance"
    KRAKEN = "kraken"
    BITTREX = "bittrex"
    SIMULATOR = "simulator"


class SafetyCheckType(Enum):
    POSITION_SIZE = "position_size"
    DAILY_TRADE_LIMIT = "daily_trade_limit"
    DRAWDOWN_LIMIT = "drawdown_limit"
    CONFIDENCE = "confidence"
    ORDER_CONFLICT = "order_conflict"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Price data
# =============================================================================


@dataclass(frozen=True)
class PriceObservation:
    """
    One OHLCV observation.

    Attributes
    ----------
    timestamp : datetime
        Bar time
    open, high, low, close : float
        Prices
    volume : float
        Traded volume in base currency
    """
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class IndicatorResult:
    """Single indicator output aligned to one observation timestamp."""
    timestamp: datetime
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Market data returned by connectors
# =============================================================================


@dataclass(frozen=True)
class TradingPair:
    symbol: str
    base_currency: str
    quote_currency: str
    min_order_size: float
    max_order_size: float
    price_increment: float
    size_increment: float
    is_active: bool = True


@dataclass(frozen=True)
class RateLimit:
    endpoint: str
    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class ExchangeInfo:
    exchange_type: ExchangeType
    name: str
    server_time: datetime
    timezone: str = "UTC"
    trading_pairs: List[TradingPair] = field(default_factory=list)
    rate_limits: List[RateLimit] = field(default_factory=list)


@dataclass(frozen=True)
class Ticker:
    symbol: str
    price: float
    bid: float
    ask: float
    volume_24h: float
    change_24h: float
    high_24h: float
    low_24h: float
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class OrderBookLevel:
    price: float
    size: float
    order_count: int = 1


@dataclass(frozen=True)
class OrderBook:
    symbol: str
    bids: List[OrderBookLevel]
    asks: List[OrderBookLevel]
    sequence: int = 0
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Trade:
    trade_id: str
    symbol: str
    price: float
    size: float
    side: OrderSide
    timestamp: datetime


@dataclass(frozen=True)
class CandleData:
    """Candles for one symbol/timeframe, oldest first."""
    symbol: str
    timeframe: TimeFrame
    candles: List[PriceObservation]


@dataclass(frozen=True)
class Balance:
    currency: str
    total: float
    available: float
    locked: float = 0.0
