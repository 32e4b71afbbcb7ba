"""
Simulator Exchange - In-memory venue for paper sessions and tests.

Holds balances, orders and fills in process. Prices follow a bounded
random walk advanced by ``tick()``, either called directly or driven by
a background PeriodicTask via ``start()``.

Market orders fill immediately at the current price with zero fees and
update base/quote balances. Limit orders rest as OPEN until cancelled.
"""

import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from trading_core.engine.scheduler import PeriodicTask
from trading_core.indicators.math_utils import round_to
from trading_core.interfaces.exchange import ApiResponse, IExchangeConnector
from trading_core.interfaces.orders import Order, OrderFill, OrderRequest, order_from_request
from trading_core.interfaces.types import (
    Balance,
    CandleData,
    ExchangeInfo,
    ExchangeType,
    OrderBook,
    OrderBookLevel,
    OrderSide,
    OrderStatus,
    OrderType,
    PriceObservation,
    Ticker,
    TimeFrame,
    Trade,
    TradingPair,
    split_symbol,
    utc_now,
)
from trading_core.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_INITIAL_BALANCE = 10000.0
DEFAULT_TICK_INTERVAL = 5.0
MIN_PRICE = 0.01
MIN_VOLUME = 1.0

# symbol -> (price, 24h volume)
DEFAULT_MARKETS = {
    "BTC-USD": (45000.0, 1000.0),
    "ETH-USD": (3000.0, 5000.0),
}

DEFAULT_MIN_ORDER_SIZES = {
    "BTC-USD": 0.001,
    "ETH-USD": 0.01,
}


@dataclass
class _Market:
    price: float
    volume: float


class SimulatorExchange(IExchangeConnector):
    """
    Simulated venue.

    Parameters
    ----------
    initial_balance : float
        Starting USD balance (default 10000)
    seed : int, optional
        Seed for the price walk and synthetic market data
    tick_interval : float
        Seconds between background price ticks (default 5)
    prices : dict, optional
        Starting prices per symbol, replacing the default markets

    Examples
    --------
    >>> exchange = SimulatorExchange(seed=7)
    >>> response = await exchange.place_order(request)
    >>> response.data.status
    <OrderStatus.FILLED: 'filled'>
    """

    exchange_type = ExchangeType.SIMULATOR

    def __init__(
        self,
        initial_balance: float = DEFAULT_INITIAL_BALANCE,
        seed: Optional[int] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        prices: Optional[Dict[str, float]] = None,
    ):
        super().__init__()
        self._rng = random.Random(seed)
        self._balances: Dict[str, float] = {"USD": float(initial_balance)}
        self._orders: Dict[str, Order] = {}
        self._fills: Dict[str, List[OrderFill]] = {}
        self._next_order_id = 1
        self._next_fill_id = 1

        if prices:
            self._markets = {
                symbol: _Market(float(price), DEFAULT_MARKETS.get(symbol, (price, 1000.0))[1])
                for symbol, price in prices.items()
            }
        else:
            self._markets = {
                symbol: _Market(price, volume) for symbol, (price, volume) in DEFAULT_MARKETS.items()
            }

        self._ticker_task = PeriodicTask("simulator-price-tick", tick_interval, self._tick_async)

    # ------------------------------------------------------------------
    # Simulation control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background price walk."""
        self._ticker_task.start()

    async def stop(self) -> None:
        await self._ticker_task.stop()

    async def close(self) -> None:
        await self.stop()
        await super().close()

    def tick(self) -> Dict[str, float]:
        """
        Advance every market by one random-walk step.

        Price moves by at most +/-1% and never drops below 0.01; volume
        moves by at most +/-5% and never drops below 1.
        """
        for market in self._markets.values():
            change = (self._rng.random() - 0.5) * 0.02
            market.price = max(market.price * (1 + change), MIN_PRICE)
            market.volume = max(market.volume * (1 + (self._rng.random() - 0.5) * 0.1), MIN_VOLUME)
        return self.prices()

    async def _tick_async(self) -> None:
        self.tick()

    def set_price(self, symbol: str, price: float) -> None:
        """Pin a symbol's price (adds the market if unknown)."""
        if price <= 0:
            raise ValueError(f"price must be positive, got {price}")
        market = self._markets.get(symbol)
        if market is None:
            self._markets[symbol] = _Market(float(price), 1000.0)
        else:
            market.price = float(price)

    def prices(self) -> Dict[str, float]:
        return {symbol: market.price for symbol, market in self._markets.items()}

    def _market(self, symbol: str) -> Optional[_Market]:
        return self._markets.get(symbol)

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_exchange_info(self) -> ApiResponse[ExchangeInfo]:
        return ApiResponse.ok(
            ExchangeInfo(
                exchange_type=ExchangeType.SIMULATOR,
                name="Simulator Exchange",
                server_time=utc_now(),
            )
        )

    async def get_trading_pairs(self) -> ApiResponse[List[TradingPair]]:
        pairs = []
        for symbol in self._markets:
            base, quote = split_symbol(symbol)
            pairs.append(
                TradingPair(
                    symbol=symbol,
                    base_currency=base,
                    quote_currency=quote,
                    min_order_size=DEFAULT_MIN_ORDER_SIZES.get(symbol, 0.001),
                    max_order_size=1000.0,
                    price_increment=0.01,
                    size_increment=1e-8,
                )
            )
        return ApiResponse.ok(pairs)

    async def get_ticker(self, symbol: str) -> ApiResponse[Ticker]:
        market = self._market(symbol)
        if market is None:
            return ApiResponse.fail(f"Symbol {symbol} not found")

        price = market.price
        spread = price * 0.001
        return ApiResponse.ok(
            Ticker(
                symbol=symbol,
                price=round_to(price, 2),
                bid=round_to(price - spread / 2, 2),
                ask=round_to(price + spread / 2, 2),
                volume_24h=round_to(market.volume, 2),
                change_24h=(self._rng.random() - 0.5) * 10,
                high_24h=round_to(price * 1.05, 2),
                low_24h=round_to(price * 0.95, 2),
            )
        )

    async def get_order_book(self, symbol: str, depth: int = 20) -> ApiResponse[OrderBook]:
        market = self._market(symbol)
        if market is None:
            return ApiResponse.fail(f"Symbol {symbol} not found")

        price = market.price
        half_spread = price * 0.001 / 2

        def level(level_price: float) -> OrderBookLevel:
            return OrderBookLevel(
                price=round_to(level_price, 2),
                size=round_to(self._rng.random() * 10 + 1, 8),
                order_count=self._rng.randint(1, 10),
            )

        now = utc_now()
        return ApiResponse.ok(
            OrderBook(
                symbol=symbol,
                bids=[level(price - half_spread - i * 0.01) for i in range(depth)],
                asks=[level(price + half_spread + i * 0.01) for i in range(depth)],
                sequence=int(now.timestamp() * 1000),
                timestamp=now,
            )
        )

    async def get_trades(self, symbol: str, limit: int = 100) -> ApiResponse[List[Trade]]:
        market = self._market(symbol)
        if market is None:
            return ApiResponse.fail(f"Symbol {symbol} not found")

        price = market.price
        now = utc_now()
        stamp = int(now.timestamp() * 1000)
        trades = [
            Trade(
                trade_id=f"trade_{stamp}_{i}",
                symbol=symbol,
                price=round_to(price + (self._rng.random() - 0.5) * price * 0.01, 2),
                size=round_to(self._rng.random() * 5 + 0.1, 8),
                side=OrderSide.BUY if self._rng.random() > 0.5 else OrderSide.SELL,
                timestamp=now - timedelta(seconds=i),
            )
            for i in range(min(limit, 100))
        ]
        return ApiResponse.ok(trades)

    async def get_candles(
        self, symbol: str, timeframe: TimeFrame, limit: int = 100
    ) -> ApiResponse[CandleData]:
        """Synthetic one-minute candles around the current price, oldest first."""
        market = self._market(symbol)
        if market is None:
            return ApiResponse.fail(f"Symbol {symbol} not found")

        base_price = market.price
        count = min(limit, 200)
        now = utc_now()
        candles = []
        for i in range(count):
            open_ = base_price + (self._rng.random() - 0.5) * base_price * 0.02
            high = open_ + self._rng.random() * open_ * 0.01
            low = open_ - self._rng.random() * open_ * 0.01
            close = low + self._rng.random() * (high - low)
            candles.append(
                PriceObservation(
                    timestamp=now - timedelta(minutes=count - i),
                    open=round_to(open_, 2),
                    high=round_to(high, 2),
                    low=round_to(low, 2),
                    close=round_to(close, 2),
                    volume=round_to(self._rng.random() * 100 + 10, 8),
                )
            )
        return ApiResponse.ok(CandleData(symbol=symbol, timeframe=TimeFrame(timeframe), candles=candles))

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    async def place_order(self, request: OrderRequest) -> ApiResponse[Order]:
        market = self._market(request.symbol)
        if market is None:
            return ApiResponse.fail(f"Symbol {request.symbol} not found")

        order_id = f"sim_order_{self._next_order_id}"
        self._next_order_id += 1

        current_price = market.price
        if request.type is OrderType.MARKET:
            order = order_from_request(request, order_id, OrderStatus.FILLED, fill_price=current_price)
            self._orders[order_id] = order
            self._record_fill(order, current_price)
        else:
            order = order_from_request(request, order_id, OrderStatus.OPEN, fill_price=current_price)
            self._orders[order_id] = order

        logger.info(
            "simulated_order_placed",
            order_id=order_id,
            symbol=request.symbol,
            side=request.side.value,
            type=request.type.value,
            size=request.size,
            status=order.status.value,
        )
        return ApiResponse.ok(order.copy())

    def _record_fill(self, order: Order, fill_price: float) -> None:
        fill = OrderFill(
            fill_id=f"fill_{self._next_fill_id}",
            order_id=order.id,
            symbol=order.symbol,
            side=order.side,
            price=fill_price,
            size=order.size,
            fees=0.0,
            liquidity="taker",
        )
        self._next_fill_id += 1
        self._fills.setdefault(order.id, []).append(fill)

        base, quote = split_symbol(order.symbol)
        value = order.size * fill_price
        if order.side is OrderSide.BUY:
            self._balances[quote] = self._balances.get(quote, 0.0) - value
            self._balances[base] = self._balances.get(base, 0.0) + order.size
        else:
            self._balances[base] = self._balances.get(base, 0.0) - order.size
            self._balances[quote] = self._balances.get(quote, 0.0) + value

    async def cancel_order(self, order_id: str) -> ApiResponse[None]:
        order = self._orders.get(order_id)
        if order is None:
            return ApiResponse.fail(f"Order {order_id} not found")
        if order.status.is_terminal:
            return ApiResponse.fail(f"Order {order_id} is already {order.status.value}")

        order.status = OrderStatus.CANCELLED
        order.updated_at = utc_now()
        logger.info("simulated_order_cancelled", order_id=order_id)
        return ApiResponse.ok(None)

    def fill_order(self, order_id: str, price: Optional[float] = None) -> ApiResponse[Order]:
        """Fill a resting limit order at ``price`` (defaults to its limit price)."""
        order = self._orders.get(order_id)
        if order is None:
            return ApiResponse.fail(f"Order {order_id} not found")
        if not order.is_open:
            return ApiResponse.fail(f"Order {order_id} is not open")

        fill_price = price if price is not None else (order.price or self._markets[order.symbol].price)
        order.status = OrderStatus.FILLED
        order.filled_size = order.size
        order.average_fill_price = fill_price
        order.updated_at = utc_now()
        self._record_fill(order, fill_price)
        return ApiResponse.ok(order.copy())

    async def get_order(self, order_id: str) -> ApiResponse[Order]:
        order = self._orders.get(order_id)
        if order is None:
            return ApiResponse.fail(f"Order {order_id} not found")
        return ApiResponse.ok(order.copy())

    async def get_open_orders(self, symbol: Optional[str] = None) -> ApiResponse[List[Order]]:
        orders = [
            o.copy() for o in self._orders.values()
            if o.is_open and (symbol is None or o.symbol == symbol)
        ]
        return ApiResponse.ok(orders)

    async def get_order_history(
        self, symbol: Optional[str] = None, limit: int = 100
    ) -> ApiResponse[List[Order]]:
        done = (OrderStatus.FILLED, OrderStatus.CANCELLED)
        orders = [
            o.copy() for o in self._orders.values()
            if o.status in done and (symbol is None or o.symbol == symbol)
        ]
        return ApiResponse.ok(orders[:limit])

    async def get_order_fills(self, order_id: str) -> ApiResponse[List[OrderFill]]:
        return ApiResponse.ok(list(self._fills.get(order_id, [])))

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def get_balances(self) -> ApiResponse[List[Balance]]:
        return ApiResponse.ok([
            Balance(currency=currency, total=total, available=total, locked=0.0)
            for currency, total in self._balances.items()
        ])

    async def get_balance(self, currency: str) -> ApiResponse[Balance]:
        total = self._balances.get(currency, 0.0)
        return ApiResponse.ok(Balance(currency=currency, total=total, available=total, locked=0.0))
