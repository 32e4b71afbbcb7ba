"""
Order types.

Design principles:
- OrderRequest is what a strategy asks for; it never lives on its own
- Order is the venue's view of a request and moves through OrderStatus
- Terminal orders are never mutated back into a live status

"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from .types import OrderSide, OrderStatus, OrderType, utc_now


@dataclass(frozen=True)
class OrderRequest:
    """
    Order intent produced by a strategy from an approved signal.

    Attributes
    ----------
    symbol : str
        Product id (e.g., "BTC-USD")
    side : OrderSide
        BUY or SELL
    type : OrderType
        MARKET, LIMIT, ...
    size : float
        Quantity in base currency
    price : float, optional
        Limit price (None for market orders)
    client_order_id : str
        Client-assigned identifier
    time_in_force : str
        Venue time-in-force code (default "GTC")
    """
    symbol: str
    side: OrderSide
    type: OrderType
    size: float
    client_order_id: str
    price: Optional[float] = None
    time_in_force: str = "GTC"

    @property
    def estimated_value(self) -> Optional[float]:
        """Notional value when a price is known."""
        if self.price is None:
            return None
        return self.size * self.price


@dataclass
class Order:
    """
    Venue-tracked order.

    Attributes
    ----------
    id : str
        Identifier used for lookups against the venue
    exchange_order_id : str
        Venue-assigned identifier (equal to id for current connectors)
    status : OrderStatus
        Current lifecycle state
    filled_size : float
        Quantity filled so far
    average_fill_price : float, optional
        Volume-weighted fill price
    fees : float
        Fees paid in quote currency
    """
    id: str
    symbol: str
    side: OrderSide
    type: OrderType
    size: float
    status: OrderStatus
    exchange_order_id: str = ""
    price: Optional[float] = None
    filled_size: float = 0.0
    average_fill_price: Optional[float] = None
    fees: float = 0.0
    client_order_id: Optional[str] = None
    time_in_force: str = "GTC"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.exchange_order_id:
            self.exchange_order_id = self.id

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_open(self) -> bool:
        return self.status in (OrderStatus.OPEN, OrderStatus.PENDING)

    def copy(self) -> "Order":
        return replace(self)


@dataclass(frozen=True)
class OrderFill:
    """Single execution against an order."""
    fill_id: str
    order_id: str
    symbol: str
    side: OrderSide
    price: float
    size: float
    fees: float = 0.0
    liquidity: str = "taker"
    timestamp: datetime = field(default_factory=utc_now)


def order_from_request(
    request: OrderRequest,
    order_id: str,
    status: OrderStatus = OrderStatus.PENDING,
    fill_price: Optional[float] = None,
) -> Order:
    """
    Build an Order from a request.

    A FILLED status marks the full size as filled at ``fill_price``
    (falling back to the request price).

    Parameters
    ----------
    request : OrderRequest
        Originating request
    order_id : str
        Identifier to assign
    status : OrderStatus
        Initial status (default PENDING)
    fill_price : float, optional
        Execution price for immediately filled orders

    Returns
    -------
    Order
    """
    filled = status == OrderStatus.FILLED
    return Order(
        id=order_id,
        exchange_order_id=order_id,
        symbol=request.symbol,
        side=request.side,
        type=request.type,
        size=request.size,
        price=request.price if request.price is not None else fill_price,
        status=status,
        filled_size=request.size if filled else 0.0,
        average_fill_price=(fill_price if fill_price is not None else request.price) if filled else None,
        client_order_id=request.client_order_id,
        time_in_force=request.time_in_force,
    )
