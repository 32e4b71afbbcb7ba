"""
Coinbase Exchange REST connector.

Signed requests over httpx.AsyncClient:

    CB-ACCESS-SIGN = base64(HMAC-SHA256(b64decode(secret),
                                        timestamp + METHOD + path + body))

HTTP status errors and malformed payloads come back as error envelopes.
Transport failures (connect errors, timeouts) raise httpx.TransportError
to the caller.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

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
    RateLimit,
    Ticker,
    TimeFrame,
    Trade,
    TradingPair,
    utc_now,
)
from trading_core.logging_config import get_logger

logger = get_logger(__name__)

PRODUCTION_URL = "https://api.exchange.coinbase.com"
SANDBOX_URL = "https://api-public.sandbox.exchange.coinbase.com"

DEFAULT_TIMEOUT = 30.0
MAX_CONCURRENT_REQUESTS = 10

STATUS_MAP = {
    "pending": OrderStatus.PENDING,
    "open": OrderStatus.OPEN,
    "active": OrderStatus.OPEN,
    "done": OrderStatus.FILLED,
    "cancelled": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
}

# Candle granularity in seconds; unmapped timeframes fall back to 1h
GRANULARITY = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "1h": 3600,
    "6h": 21600,
    "1d": 86400,
}
DEFAULT_GRANULARITY = 3600

# Failures reported as envelopes rather than raised
VENUE_ERRORS = (httpx.HTTPStatusError, KeyError, ValueError, TypeError)


def map_order_status(status: Optional[str]) -> OrderStatus:
    return STATUS_MAP.get((status or "").lower(), OrderStatus.PENDING)


def granularity_for(timeframe: TimeFrame) -> int:
    return GRANULARITY.get(TimeFrame(timeframe).value, DEFAULT_GRANULARITY)


def parse_time(value: Any) -> datetime:
    """ISO-8601 string or epoch seconds to an aware UTC datetime."""
    if value is None:
        return utc_now()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).replace("Z", "+00:00")
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)


def _book_level(row: List[Any]) -> OrderBookLevel:
    # Level 2 rows: [price, size, num_orders]; level 3 rows: [price, size, order_id]
    count = row[2] if len(row) > 2 and not isinstance(row[2], str) else 1
    return OrderBookLevel(price=_float(row[0]), size=_float(row[1]), order_count=int(count))


def describe_error(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            payload = response.json()
            detail = payload.get("message", "") if isinstance(payload, dict) else str(payload)
        except ValueError:
            detail = response.text
        return f"HTTP {response.status_code} {detail}".strip()
    return f"{type(exc).__name__}: {exc}"


class CoinbaseExchange(IExchangeConnector):
    """
    Coinbase Exchange (formerly Coinbase Pro) connector.

    Parameters
    ----------
    api_key, api_secret, passphrase : str
        API credentials; ``api_secret`` is the base64 secret issued by the venue
    sandbox : bool
        Use the public sandbox instead of production
    timeout : float
        Request timeout in seconds (default 30)
    transport : httpx.AsyncBaseTransport, optional
        Custom transport (e.g. httpx.MockTransport in tests)

    Raises
    ------
    ValueError
        If ``api_secret`` is not valid base64
    """

    exchange_type = ExchangeType.COINBASE_PRO

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        passphrase: str = "",
        sandbox: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_concurrent_requests: int = MAX_CONCURRENT_REQUESTS,
    ):
        super().__init__()
        self.api_key = api_key
        self.passphrase = passphrase or ""
        self.sandbox = sandbox
        self._secret = base64.b64decode(api_secret, validate=True) if api_secret else b""
        self.base_url = SANDBOX_URL if sandbox else PRODUCTION_URL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )
        self._limiter = asyncio.Semaphore(max_concurrent_requests)

    async def close(self) -> None:
        await self._client.aclose()
        await super().close()

    # ------------------------------------------------------------------
    # Signing and transport
    # ------------------------------------------------------------------

    def sign(self, timestamp: str, method: str, path: str, body: str = "") -> str:
        message = f"{timestamp}{method.upper()}{path}{body}".encode()
        digest = hmac.new(self._secret, message, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def _timestamp(self) -> str:
        return str(int(time.time()))

    def auth_headers(self, method: str, path: str, body: str = "") -> Dict[str, str]:
        timestamp = self._timestamp()
        return {
            "CB-ACCESS-KEY": self.api_key,
            "CB-ACCESS-SIGN": self.sign(timestamp, method, path, body),
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-PASSPHRASE": self.passphrase,
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        content = json.dumps(body) if body is not None else ""
        request = self._client.build_request(method, path, params=params, content=content or None)
        # Signed path includes the query string
        request_path = request.url.raw_path.decode()
        request.headers.update(self.auth_headers(method, request_path, content))

        async with self._limiter:
            response = await self._client.send(request)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    def _failure(self, context: str, exc: Exception) -> ApiResponse:
        error = f"{context}: {describe_error(exc)}"
        logger.warning("venue_request_failed", exchange="coinbase", error=error)
        return ApiResponse.fail(error)

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_exchange_info(self) -> ApiResponse[ExchangeInfo]:
        try:
            data = await self._get("/time")
            server_time = parse_time(data["iso"])
        except VENUE_ERRORS as exc:
            return self._failure("Failed to get exchange info", exc)

        return ApiResponse.ok(
            ExchangeInfo(
                exchange_type=ExchangeType.COINBASE_PRO,
                name="Coinbase Pro",
                server_time=server_time,
                rate_limits=[
                    RateLimit(endpoint="public", max_requests=10, window_ms=1000),
                    RateLimit(endpoint="private", max_requests=5, window_ms=1000),
                ],
            )
        )

    async def get_trading_pairs(self) -> ApiResponse[List[TradingPair]]:
        try:
            data = await self._get("/products")
            pairs = [
                TradingPair(
                    symbol=product["id"],
                    base_currency=product["base_currency"],
                    quote_currency=product["quote_currency"],
                    min_order_size=_float(product.get("base_min_size")),
                    max_order_size=_float(product.get("max_market_funds"), 1_000_000.0),
                    price_increment=_float(product.get("quote_increment")),
                    size_increment=_float(product.get("base_increment")),
                    is_active=product.get("status") == "online",
                )
                for product in data
            ]
        except VENUE_ERRORS as exc:
            return self._failure("Failed to get trading pairs", exc)
        return ApiResponse.ok(pairs)

    async def get_ticker(self, symbol: str) -> ApiResponse[Ticker]:
        try:
            ticker, stats = await asyncio.gather(
                self._get(f"/products/{symbol}/ticker"),
                self._get(f"/products/{symbol}/stats"),
            )
            price = _float(ticker["price"])
            open_ = _float(stats.get("open"))
            change = (price - open_) / open_ * 100 if open_ > 0 else 0.0
            result = Ticker(
                symbol=symbol,
                price=price,
                bid=_float(ticker.get("bid")),
                ask=_float(ticker.get("ask")),
                volume_24h=_float(stats.get("volume")),
                change_24h=change,
                high_24h=_float(stats.get("high")),
                low_24h=_float(stats.get("low")),
                timestamp=parse_time(ticker.get("time")),
            )
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get ticker for {symbol}", exc)
        return ApiResponse.ok(result)

    async def get_order_book(self, symbol: str, depth: int = 20) -> ApiResponse[OrderBook]:
        try:
            data = await self._get(f"/products/{symbol}/book", params={"level": 3 if depth > 50 else 2})

            book = OrderBook(
                symbol=symbol,
                bids=[_book_level(row) for row in data.get("bids", [])[:depth]],
                asks=[_book_level(row) for row in data.get("asks", [])[:depth]],
                sequence=int(data.get("sequence", 0)),
            )
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get order book for {symbol}", exc)
        return ApiResponse.ok(book)

    async def get_trades(self, symbol: str, limit: int = 100) -> ApiResponse[List[Trade]]:
        try:
            data = await self._get(f"/products/{symbol}/trades", params={"limit": min(limit, 1000)})
            trades = [
                Trade(
                    trade_id=str(trade["trade_id"]),
                    symbol=symbol,
                    price=_float(trade["price"]),
                    size=_float(trade["size"]),
                    side=OrderSide(trade["side"]),
                    timestamp=parse_time(trade.get("time")),
                )
                for trade in data
            ]
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get trades for {symbol}", exc)
        return ApiResponse.ok(trades)

    async def get_candles(
        self, symbol: str, timeframe: TimeFrame, limit: int = 100
    ) -> ApiResponse[CandleData]:
        """Rows arrive newest first as [time, low, high, open, close, volume]."""
        granularity = granularity_for(timeframe)
        end = utc_now()
        start = end - timedelta(seconds=limit * granularity)
        try:
            rows = await self._get(
                f"/products/{symbol}/candles",
                params={"start": start.isoformat(), "end": end.isoformat(), "granularity": granularity},
            )
            candles = [
                PriceObservation(
                    timestamp=parse_time(row[0]),
                    low=float(row[1]),
                    high=float(row[2]),
                    open=float(row[3]),
                    close=float(row[4]),
                    volume=float(row[5]),
                )
                for row in reversed(rows)
            ]
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get candles for {symbol}", exc)
        return ApiResponse.ok(CandleData(symbol=symbol, timeframe=TimeFrame(timeframe), candles=candles))

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    async def place_order(self, request: OrderRequest) -> ApiResponse[Order]:
        body: Dict[str, Any] = {
            "product_id": request.symbol,
            "side": request.side.value,
            "type": request.type.value,
            "size": f"{request.size:.8f}",
            "time_in_force": request.time_in_force or "GTC",
            "client_oid": request.client_order_id,
        }
        if request.price is not None:
            body["price"] = f"{request.price:.2f}"

        try:
            data = await self._request("POST", "/orders", body=body)
            order = order_from_request(request, data["id"], OrderStatus.PENDING)
        except VENUE_ERRORS as exc:
            return self._failure("Failed to place order", exc)

        logger.info(
            "order_placed",
            exchange="coinbase",
            order_id=order.id,
            symbol=request.symbol,
            side=request.side.value,
            size=request.size,
        )
        return ApiResponse.ok(order)

    async def cancel_order(self, order_id: str) -> ApiResponse[None]:
        try:
            await self._request("DELETE", f"/orders/{order_id}")
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to cancel order {order_id}", exc)
        logger.info("order_cancelled", exchange="coinbase", order_id=order_id)
        return ApiResponse.ok(None)

    @staticmethod
    def _parse_order(data: Dict[str, Any]) -> Order:
        filled = _float(data.get("filled_size"))
        executed_value = _float(data.get("executed_value"))
        created = parse_time(data.get("created_at"))
        price = data.get("price")
        return Order(
            id=data["id"],
            exchange_order_id=data["id"],
            symbol=data["product_id"],
            side=OrderSide(data["side"]),
            type=OrderType(data.get("type", "limit")),
            size=_float(data.get("size")),
            price=_float(price) if price not in (None, "") else None,
            status=map_order_status(data.get("status")),
            filled_size=filled,
            average_fill_price=executed_value / filled if filled > 0 and executed_value else None,
            fees=_float(data.get("fill_fees")),
            client_order_id=data.get("client_oid"),
            time_in_force=data.get("time_in_force", "GTC"),
            created_at=created,
            updated_at=parse_time(data["done_at"]) if data.get("done_at") else created,
        )

    async def get_order(self, order_id: str) -> ApiResponse[Order]:
        try:
            order = self._parse_order(await self._get(f"/orders/{order_id}"))
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get order {order_id}", exc)
        return ApiResponse.ok(order)

    async def get_open_orders(self, symbol: Optional[str] = None) -> ApiResponse[List[Order]]:
        params = {"product_id": symbol} if symbol else None
        try:
            orders = [self._parse_order(o) for o in await self._get("/orders", params=params)]
        except VENUE_ERRORS as exc:
            return self._failure("Failed to get open orders", exc)
        return ApiResponse.ok(orders)

    async def get_order_history(
        self, symbol: Optional[str] = None, limit: int = 100
    ) -> ApiResponse[List[Order]]:
        params: Dict[str, Any] = {"status": ["done", "rejected"], "limit": min(limit, 1000)}
        if symbol:
            params["product_id"] = symbol
        try:
            orders = [self._parse_order(o) for o in await self._get("/orders", params=params)]
        except VENUE_ERRORS as exc:
            return self._failure("Failed to get order history", exc)
        return ApiResponse.ok(orders)

    async def get_order_fills(self, order_id: str) -> ApiResponse[List[OrderFill]]:
        try:
            data = await self._get("/fills", params={"order_id": order_id})
            fills = [
                OrderFill(
                    fill_id=str(fill["trade_id"]),
                    order_id=fill["order_id"],
                    symbol=fill["product_id"],
                    side=OrderSide(fill["side"]),
                    price=_float(fill["price"]),
                    size=_float(fill["size"]),
                    fees=_float(fill.get("fee")),
                    liquidity=fill.get("liquidity", ""),
                    timestamp=parse_time(fill.get("created_at")),
                )
                for fill in data
            ]
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get order fills for {order_id}", exc)
        return ApiResponse.ok(fills)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_account(account: Dict[str, Any]) -> Balance:
        return Balance(
            currency=account["currency"],
            total=_float(account.get("balance")),
            available=_float(account.get("available")),
            locked=_float(account.get("hold")),
        )

    async def get_balances(self) -> ApiResponse[List[Balance]]:
        try:
            balances = [self._parse_account(a) for a in await self._get("/accounts")]
        except VENUE_ERRORS as exc:
            return self._failure("Failed to get balances", exc)
        return ApiResponse.ok(balances)

    async def get_balance(self, currency: str) -> ApiResponse[Balance]:
        try:
            accounts = await self._get("/accounts")
            account = next((a for a in accounts if a.get("currency") == currency), None)
            balance = self._parse_account(account) if account is not None else None
        except VENUE_ERRORS as exc:
            return self._failure(f"Failed to get balance for {currency}", exc)
        if balance is None:
            return ApiResponse.fail(f"Currency {currency} not found")
        return ApiResponse.ok(balance)
