"""
RSI threshold strategy.

BUY when RSI is classified oversold and sits at or below the oversold level;
SELL when overbought and at or above the overbought level. Confidence grows
with the distance past the threshold; direction reversals inside the
cooldown window are suppressed.
"""

from datetime import timedelta
from typing import Dict, Optional

from trading_core.indicators.base import BaseIndicator
from trading_core.indicators.rsi import OVERBOUGHT, OVERSOLD, RSIIndicator
from trading_core.interfaces.orders import OrderRequest
from trading_core.interfaces.signal import TradingSignal
from trading_core.interfaces.types import OrderSide, OrderType, StrategyType
from trading_core.logging_config import get_logger

from .base import BaseStrategy, StrategyContext
from .registry import register_strategy

logger = get_logger(__name__)

TREND_WINDOW = 10
DIVERGENCE_MIN_POINTS = 20
DIVERGENCE_MIN_RSI_MOVE = 5.0


@register_strategy(StrategyType.RSI_OVERSOLD_OVERBOUGHT)
class RSIStrategy(BaseStrategy):
    """
    Oversold/overbought RSI strategy.

    Parameters (``config.parameters``)
    ----------------------------------
    rsi_period : int
        RSI period (default 14)
    oversold : float
        Oversold level (default 30)
    overbought : float
        Overbought level (default 70)
    min_confidence : float
        Signals below this confidence are dropped (default 70)
    cooldown_minutes : float
        Minimum time before a reversal of the last signal's side (default 30)
    """

    DEFAULT_PARAMETERS = {
        "rsi_period": 14,
        "oversold": 30.0,
        "overbought": 70.0,
        "min_confidence": 70.0,
        "cooldown_minutes": 30.0,
    }

    @property
    def rsi_indicator(self) -> Optional[RSIIndicator]:
        return self.context.indicators.get("rsi")

    def _build_indicators(self) -> Dict[str, BaseIndicator]:
        return {
            "rsi": RSIIndicator(
                self.context.symbol,
                self.context.timeframe,
                period=int(self.parameters["rsi_period"]),
                overbought=float(self.parameters["overbought"]),
                oversold=float(self.parameters["oversold"]),
            )
        }

    def generate_signal(self, context: StrategyContext) -> Optional[TradingSignal]:
        if self.rsi_indicator is None:
            raise RuntimeError("RSI indicator not initialized")

        latest = self.rsi_indicator.latest_result()
        price = self.current_price()
        if latest is None or not price:
            return None

        rsi = latest.value
        classification = latest.metadata.get("signal")
        oversold = float(self.parameters["oversold"])
        overbought = float(self.parameters["overbought"])
        min_confidence = float(self.parameters["min_confidence"])

        if classification == OVERSOLD and rsi <= oversold:
            distance = oversold - rsi
            confidence = min(95.0, 60.0 + distance * 2)
            if confidence < min_confidence:
                return None
            return self.create_signal(
                OrderSide.BUY,
                strength=distance / oversold if oversold else 0.0,
                confidence=confidence,
                reason=f"RSI oversold at {rsi:.2f}, below {oversold:g}",
                indicator_values={"rsi": rsi},
                target_price=price * 1.05,
                stop_loss=price * 0.95,
                take_profit=price * 1.10,
            )

        if classification == OVERBOUGHT and rsi >= overbought:
            distance = rsi - overbought
            confidence = min(95.0, 60.0 + distance * 2)
            if confidence < min_confidence:
                return None
            headroom = 100.0 - overbought
            return self.create_signal(
                OrderSide.SELL,
                strength=distance / headroom if headroom else 1.0,
                confidence=confidence,
                reason=f"RSI overbought at {rsi:.2f}, above {overbought:g}",
                indicator_values={"rsi": rsi},
                target_price=price * 0.95,
                stop_loss=price * 1.05,
                take_profit=price * 0.90,
            )

        return None

    def validate_signal(self, signal: TradingSignal) -> bool:
        if signal.confidence < float(self.parameters["min_confidence"]):
            return False

        cooldown = timedelta(minutes=float(self.parameters["cooldown_minutes"]))
        if self.in_reversal_cooldown(signal, cooldown):
            logger.info(
                "signal_rejected",
                strategy_id=self.id,
                reason=(
                    f"Signal rejected due to cooldown. Last signal: "
                    f"{self.context.last_signal.side.value}, new: {signal.side.value}"
                ),
            )
            return False

        return self.check_risk_parameters(signal)

    def create_order_request(
        self, signal: TradingSignal, portfolio_value: Optional[float] = None
    ) -> OrderRequest:
        """Market order for immediate execution."""
        if not self.current_price():
            raise ValueError("Cannot create order request without current price")

        size = self.calculate_position_size(
            signal, portfolio_value if portfolio_value is not None else self.portfolio_value
        )
        return OrderRequest(
            symbol=signal.symbol,
            side=signal.side,
            type=OrderType.MARKET,
            size=size,
            client_order_id=self.client_order_id("rsi"),
            time_in_force="GTC",
        )

    # ------------------------------------------------------------------
    # Analysis helpers
    # ------------------------------------------------------------------

    def is_in_trend(self) -> bool:
        """True when the mean of the last 10 RSI values is above 60 or below 40."""
        if self.rsi_indicator is None or len(self.context.market_data) < DIVERGENCE_MIN_POINTS:
            return False
        results = self.rsi_indicator.results
        if len(results) < TREND_WINDOW:
            return False
        recent = results[-TREND_WINDOW:]
        avg_rsi = sum(r.value for r in recent) / len(recent)
        return avg_rsi > 60 or avg_rsi < 40

    def rsi_divergence(self) -> Optional[str]:
        """
        Detect a simple price/RSI divergence over the last 10 points.

        Returns "bullish" when price falls while RSI rises by more than 5,
        "bearish" for the mirror case, otherwise None.
        """
        if self.rsi_indicator is None:
            return None
        results = self.rsi_indicator.results
        data = self.context.market_data
        if len(results) < DIVERGENCE_MIN_POINTS or len(data) < DIVERGENCE_MIN_POINTS:
            return None

        rsi_trend = results[-1].value - results[-TREND_WINDOW].value
        price_trend = data[-1].close - data[-TREND_WINDOW].close

        if price_trend < 0 and rsi_trend > DIVERGENCE_MIN_RSI_MOVE:
            return "bullish"
        if price_trend > 0 and rsi_trend < -DIVERGENCE_MIN_RSI_MOVE:
            return "bearish"
        return None
