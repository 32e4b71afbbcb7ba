"""
Venue connector contract.

Every operation returns an ApiResponse envelope. Venue-level failures
(rejected order, unknown symbol) come back as ``success=False``; only
transport-level faults raise, and callers isolate those per call.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from .orders import Order, OrderFill, OrderRequest
from .types import (
    Balance,
    CandleData,
    ExchangeInfo,
    ExchangeType,
    OrderBook,
    Ticker,
    TimeFrame,
    Trade,
    TradingPair,
    utc_now,
)

T = TypeVar("T")


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    """Uniform success/error envelope."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def ok(cls, data: T = None) -> "ApiResponse[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ApiResponse[T]":
        return cls(success=False, error=error, message=error)


class IExchangeConnector(ABC):
    """
    Abstract interface for a trading venue.

    Implemented by:
    - SimulatorExchange (in-memory venue)
    - CoinbaseExchange (REST over HTTPS)
    """

    exchange_type: ExchangeType

    def __init__(self) -> None:
        self._connected = False

    # Lifecycle

    async def connect(self) -> None:
        """Verify the venue is reachable."""
        response = await self.get_exchange_info()
        self._connected = response.success
        if not response.success:
            raise ConnectionError(response.error or "connection failed")

    async def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    async def close(self) -> None:
        """Release any held resources (HTTP clients, background tasks)."""
        await self.disconnect()

    # Market data

    @abstractmethod
    async def get_exchange_info(self) -> ApiResponse[ExchangeInfo]:
        pass

    @abstractmethod
    async def get_trading_pairs(self) -> ApiResponse[List[TradingPair]]:
        pass

    @abstractmethod
    async def get_ticker(self, symbol: str) -> ApiResponse[Ticker]:
        pass

    @abstractmethod
    async def get_order_book(self, symbol: str, depth: int = 20) -> ApiResponse[OrderBook]:
        pass

    @abstractmethod
    async def get_trades(self, symbol: str, limit: int = 100) -> ApiResponse[List[Trade]]:
        pass

    @abstractmethod
    async def get_candles(
        self, symbol: str, timeframe: TimeFrame, limit: int = 100
    ) -> ApiResponse[CandleData]:
        pass

    # Trading

    @abstractmethod
    async def place_order(self, request: OrderRequest) -> ApiResponse[Order]:
        """
        Submit an order.

        Args:
            request: Order to submit

        Returns:
            Envelope holding the venue's Order
        """
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> ApiResponse[None]:
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> ApiResponse[Order]:
        pass

    @abstractmethod
    async def get_open_orders(self, symbol: Optional[str] = None) -> ApiResponse[List[Order]]:
        pass

    @abstractmethod
    async def get_order_history(
        self, symbol: Optional[str] = None, limit: int = 100
    ) -> ApiResponse[List[Order]]:
        pass

    @abstractmethod
    async def get_order_fills(self, order_id: str) -> ApiResponse[List[OrderFill]]:
        pass

    # Account

    @abstractmethod
    async def get_balances(self) -> ApiResponse[List[Balance]]:
        pass

    @abstractmethod
    async def get_balance(self, currency: str) -> ApiResponse[Balance]:
        pass
