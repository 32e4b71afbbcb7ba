"""
MACD crossover strategy.

BUY on a bullish histogram crossover, SELL on a bearish one, provided the
histogram clears a noise threshold. Signals must agree with the short-term
histogram trend and keep MACD away from the zero line.
"""

from typing import Dict, Optional

from trading_core.indicators.base import BaseIndicator
from trading_core.indicators.macd import BEARISH, BULLISH, MACDIndicator
from trading_core.indicators.math_utils import round_to
from trading_core.interfaces.orders import OrderRequest
from trading_core.interfaces.signal import TradingSignal
from trading_core.interfaces.types import OrderSide, OrderType, StrategyType
from trading_core.logging_config import get_logger

from .base import BaseStrategy, StrategyContext
from .registry import register_strategy

logger = get_logger(__name__)


def crossover_confidence(direction: str, histogram: float, macd: float, signal: float) -> float:
    """
    Confidence for a crossover signal, capped at 95.

    50 base, up to +25 for histogram magnitude, up to +15 for MACD/signal
    separation, +10 when the cross happens on the far side of zero.
    """
    confidence = 50.0
    confidence += min(25.0, abs(histogram) * 10000)
    confidence += min(15.0, abs(macd - signal) * 5000)

    if direction == BULLISH:
        if signal < macd < 0:
            confidence += 10
    elif 0 < macd < signal:
        confidence += 10

    return min(95.0, confidence)


@register_strategy(StrategyType.MACD_CROSSOVER)
class MACDStrategy(BaseStrategy):
    """
    Histogram crossover strategy using limit orders.

    Parameters (``config.parameters``)
    ----------------------------------
    fast_period, slow_period, signal_period : int
        MACD periods (defaults 12, 26, 9)
    min_histogram_threshold : float
        Minimum |histogram| for a crossover to count (default 0.001)
    min_confidence : float
        Signals below this confidence are dropped (default 70)
    trend_lookback : int
        Histogram points used for trend confirmation (default 5)
    """

    DEFAULT_PARAMETERS = {
        "fast_period": 12,
        "slow_period": 26,
        "signal_period": 9,
        "min_histogram_threshold": 0.001,
        "min_confidence": 70.0,
        "trend_lookback": 5,
    }

    @property
    def macd_indicator(self) -> Optional[MACDIndicator]:
        return self.context.indicators.get("macd")

    def _build_indicators(self) -> Dict[str, BaseIndicator]:
        return {
            "macd": MACDIndicator(
                self.context.symbol,
                self.context.timeframe,
                fast_period=int(self.parameters["fast_period"]),
                slow_period=int(self.parameters["slow_period"]),
                signal_period=int(self.parameters["signal_period"]),
            )
        }

    def generate_signal(self, context: StrategyContext) -> Optional[TradingSignal]:
        if self.macd_indicator is None:
            raise RuntimeError("MACD indicator not initialized")

        results = self.macd_indicator.results
        price = self.current_price()
        if len(results) < 2 or not price:
            return None

        meta = results[-1].metadata
        histogram = meta["histogram"]
        macd = meta["macd"]
        signal_line = meta["signal"]
        crossover = meta["crossover"]
        threshold = float(self.parameters["min_histogram_threshold"])

        if crossover is None or abs(histogram) <= threshold:
            return None

        strength = min(1.0, abs(histogram) / (price * 0.01))
        confidence = crossover_confidence(crossover, histogram, macd, signal_line)
        if confidence < float(self.parameters["min_confidence"]):
            return None

        values = {"macd": macd, "signal": signal_line, "histogram": histogram}

        if crossover == BULLISH:
            return self.create_signal(
                OrderSide.BUY,
                strength=strength,
                confidence=confidence,
                reason=f"MACD bullish crossover: MACD({macd:.4f}) > Signal({signal_line:.4f})",
                indicator_values=values,
                target_price=price * 1.03,
                stop_loss=price * 0.98,
                take_profit=price * 1.06,
            )

        if crossover == BEARISH:
            return self.create_signal(
                OrderSide.SELL,
                strength=strength,
                confidence=confidence,
                reason=f"MACD bearish crossover: MACD({macd:.4f}) < Signal({signal_line:.4f})",
                indicator_values=values,
                target_price=price * 0.97,
                stop_loss=price * 1.02,
                take_profit=price * 0.94,
            )

        return None

    def validate_signal(self, signal: TradingSignal) -> bool:
        if signal.confidence < float(self.parameters["min_confidence"]):
            return False

        if not self.is_trend_confirmed(signal.side):
            logger.info(
                "signal_rejected",
                strategy_id=self.id,
                reason="MACD signal not confirmed by overall trend",
            )
            return False

        macd = signal.indicator_values.get("macd")
        threshold = float(self.parameters["min_histogram_threshold"])
        if macd is not None and abs(macd) < threshold * 0.5:
            logger.info("signal_rejected", strategy_id=self.id, reason="MACD too close to zero line")
            return False

        return self.check_risk_parameters(signal)

    def is_trend_confirmed(self, side: OrderSide) -> bool:
        """
        Compare the newest and oldest histogram of the last ``trend_lookback`` results.

        BUY needs a rising histogram, SELL a falling one.
        """
        if self.macd_indicator is None:
            return False
        lookback = int(self.parameters["trend_lookback"])
        results = self.macd_indicator.results
        if len(results) < lookback:
            return False

        recent = results[-lookback:]
        trend = recent[-1].metadata["histogram"] - recent[0].metadata["histogram"]
        if side is OrderSide.BUY:
            return trend > 0
        return trend < 0

    def create_order_request(
        self, signal: TradingSignal, portfolio_value: Optional[float] = None
    ) -> OrderRequest:
        """
        Limit order placed just inside the market.

        Sized against the limit price so the order notional stays within
        the position cap.
        """
        price = self.current_price()
        if not price:
            raise ValueError("Cannot create order request without current price")

        offset = 0.999 if signal.side is OrderSide.BUY else 1.001
        limit_price = round_to(price * offset, 2)
        size = self.calculate_position_size(
            signal,
            portfolio_value if portfolio_value is not None else self.portfolio_value,
            price=limit_price,
        )
        return OrderRequest(
            symbol=signal.symbol,
            side=signal.side,
            type=OrderType.LIMIT,
            size=size,
            price=limit_price,
            client_order_id=self.client_order_id("macd"),
            time_in_force="GTC",
        )

    # ------------------------------------------------------------------
    # Analysis helpers
    # ------------------------------------------------------------------

    def macd_snapshot(self) -> Optional[Dict[str, float]]:
        """Latest MACD, signal and histogram values."""
        if self.macd_indicator is None:
            return None
        latest = self.macd_indicator.latest_result()
        if latest is None:
            return None
        return {
            "macd": latest.metadata["macd"],
            "signal": latest.metadata["signal"],
            "histogram": latest.metadata["histogram"],
        }

    def is_macd_above_zero(self) -> bool:
        snapshot = self.macd_snapshot()
        return snapshot is not None and snapshot["macd"] > 0

    def histogram_trend(self, periods: int = 5) -> str:
        """'rising', 'falling' or 'flat' using a 10% of first-value threshold."""
        if self.macd_indicator is None:
            return "flat"
        results = self.macd_indicator.results
        if len(results) < periods:
            return "flat"

        first = results[-periods].metadata["histogram"]
        last = results[-1].metadata["histogram"]
        change = last - first
        threshold = abs(first * 0.1)

        if change > threshold:
            return "rising"
        if change < -threshold:
            return "falling"
        return "flat"
