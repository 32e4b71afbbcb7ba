"""
Trading signal type.

A signal is a strategy's directional recommendation, not yet an order.
Strength and confidence are clamped by the producing strategy, so a
constructed signal always satisfies 0 <= strength <= 1 and
0 <= confidence <= 100.

"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from .types import OrderSide


@dataclass(frozen=True)
class TradingSignal:
    """
    Directional trading recommendation.

    Attributes
    ----------
    symbol : str
        Product id the signal refers to
    side : OrderSide
        BUY or SELL
    strength : float
        Signal strength 0.0-1.0
    confidence : float
        Confidence 0-100
    reason : str
        Human-readable rationale (e.g., "RSI oversold at 21.40, below 30")
    strategy_id : str
        Originating strategy
    timestamp : datetime
        When the signal was generated
    indicator_values : dict
        Snapshot of the indicator values used
    target_price, stop_loss, take_profit : float, optional
        Price levels implied by the strategy

    Examples
    --------
    >>> TradingSignal(
    ...     symbol="BTC-USD",
    ...     side=OrderSide.BUY,
    ...     strength=0.4,
    ...     confidence=84.0,
    ...     reason="RSI oversold at 18.00, below 30",
    ...     strategy_id="rsi-1",
    ...     timestamp=now,
    ...     indicator_values={"rsi": 18.0},
    ...     stop_loss=42750.0,
    ... )
    """
    symbol: str
    side: OrderSide
    strength: float
    confidence: float
    reason: str
    strategy_id: str
    timestamp: datetime
    indicator_values: Dict[str, float] = field(default_factory=dict)
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def __post_init__(self):
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError(f"strength must be in [0, 1], got {self.strength}")
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(f"confidence must be in [0, 100], got {self.confidence}")

    @property
    def is_buy(self) -> bool:
        return self.side is OrderSide.BUY
