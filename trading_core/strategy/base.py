"""
Base strategy.

A strategy owns a mutable context (symbol, price window, indicator
instances, last emitted signal) and turns indicator state into an optional,
self-validated TradingSignal. Position sizing uses the strategy's
RiskParameters.

Lifecycle:
1. initialize(symbol, history)   build indicators, run once over seed data
2. add_market_data / update_market_data   recompute all indicators
3. run()                          generate -> validate -> record last_signal
4. create_order_request(signal)   size and shape the order
"""
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence

from trading_core.config_schemas import StrategyConfig
from trading_core.indicators.base import BaseIndicator, closes
from trading_core.indicators.math_utils import clamp
from trading_core.interfaces.orders import OrderRequest
from trading_core.interfaces.signal import TradingSignal
from trading_core.interfaces.types import OrderSide, PriceObservation, TimeFrame, utc_now
from trading_core.logging_config import get_logger, summarize_prices

logger = get_logger(__name__)

DEFAULT_PORTFOLIO_VALUE = 10000.0
SIZE_DECIMALS = 8


@dataclass
class StrategyContext:
    """Mutable per-strategy working state."""
    timeframe: TimeFrame
    symbol: str = ""
    market_data: List[PriceObservation] = field(default_factory=list)
    indicators: Dict[str, BaseIndicator] = field(default_factory=dict)
    last_signal: Optional[TradingSignal] = None


def floor_size(size: float, decimals: int = SIZE_DECIMALS) -> float:
    """Truncate an order size so the sized value never exceeds its cap."""
    factor = 10 ** decimals
    return math.floor(size * factor) / factor


class BaseStrategy(ABC):
    """
    Abstract base class for signal-generating strategies.

    Subclasses set ``DEFAULT_PARAMETERS`` and implement ``_build_indicators``,
    ``generate_signal``, ``validate_signal`` and ``create_order_request``.

    Parameters
    ----------
    config : StrategyConfig
        Declarative strategy record (a private copy is kept)
    clock : callable, optional
        Returns the current time; used for signal timestamps and cooldowns
    portfolio_value : float
        Portfolio value used for sizing when none is passed explicitly
    """

    DEFAULT_PARAMETERS: ClassVar[Dict[str, Any]] = {}

    def __init__(
        self,
        config: StrategyConfig,
        clock: Optional[Callable[[], datetime]] = None,
        portfolio_value: float = DEFAULT_PORTFOLIO_VALUE,
    ):
        self.config = config.model_copy(deep=True)
        self.parameters = self._resolve_parameters(self.config.parameters)
        self.context = StrategyContext(timeframe=self.config.timeframe)
        # Invalid indicator parameters raise here; initialize() rebuilds per symbol
        self._build_indicators()
        self.portfolio_value = portfolio_value
        self._clock = clock or utc_now

    @classmethod
    def _resolve_parameters(cls, overrides: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(cls.DEFAULT_PARAMETERS)
        for key, value in overrides.items():
            # Unset values fall back to defaults
            if value is not None:
                params[key] = value
        return params

    # ------------------------------------------------------------------
    # Identity / state
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def symbols(self) -> List[str]:
        return list(self.config.symbols)

    @property
    def is_active(self) -> bool:
        return self.config.is_active

    def set_active(self, active: bool) -> None:
        self.config.is_active = active
        logger.info("strategy_status_changed", strategy_id=self.id, is_active=active)

    @property
    def last_signal(self) -> Optional[TradingSignal]:
        return self.context.last_signal

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, symbol: str, history: Sequence[PriceObservation] = ()) -> None:
        """
        Bind to a symbol, build indicators and run them over any seed history.

        Indicators whose minimum length exceeds the seed history are left
        empty until enough data arrives.
        """
        self.context.symbol = symbol
        self.context.market_data = list(history)
        self.context.indicators = self._build_indicators()
        for indicator in self.context.indicators.values():
            if len(self.context.market_data) >= indicator.min_length:
                indicator.calculate(self.context.market_data)
        logger.info(
            "strategy_initialized",
            strategy_id=self.id,
            symbol=symbol,
            history=len(self.context.market_data),
        )

    def update_market_data(self, window: Sequence[PriceObservation]) -> None:
        """Replace the price window and recompute every indicator."""
        self.context.market_data = list(window)
        self._recalculate()

    def add_market_data(self, point: PriceObservation) -> None:
        """Append one observation and recompute every indicator."""
        self.context.market_data.append(point)
        self._recalculate()

    def _recalculate(self) -> None:
        # Raises InsufficientDataError for a short window; the point stays
        # in the window so the next call can succeed.
        for indicator in self.context.indicators.values():
            indicator.calculate(self.context.market_data)
        logger.debug(
            "indicators_recalculated",
            strategy_id=self.id,
            prices=summarize_prices(closes(self.context.market_data)),
        )

    def run(self) -> Optional[TradingSignal]:
        """
        Produce a validated signal for the current context, if any.

        Returns None when inactive, without data, or when no signal
        passes validation. A returned signal becomes ``last_signal``.
        """
        if not self.is_active or not self.context.market_data:
            return None

        signal = self.generate_signal(self.context)
        if signal is None:
            return None
        if not self.validate_signal(signal):
            return None

        self.context.last_signal = signal
        logger.info(
            "signal_generated",
            strategy_id=self.id,
            symbol=signal.symbol,
            side=signal.side.value,
            confidence=signal.confidence,
            reason=signal.reason,
        )
        return signal

    # ------------------------------------------------------------------
    # Abstract policy hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _build_indicators(self) -> Dict[str, BaseIndicator]:
        pass

    @abstractmethod
    def generate_signal(self, context: StrategyContext) -> Optional[TradingSignal]:
        pass

    @abstractmethod
    def validate_signal(self, signal: TradingSignal) -> bool:
        pass

    @abstractmethod
    def create_order_request(
        self, signal: TradingSignal, portfolio_value: Optional[float] = None
    ) -> OrderRequest:
        pass

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def current_price(self) -> Optional[float]:
        if not self.context.market_data:
            return None
        return self.context.market_data[-1].close

    def create_signal(
        self,
        side: OrderSide,
        strength: float,
        confidence: float,
        reason: str,
        indicator_values: Optional[Dict[str, float]] = None,
        target_price: Optional[float] = None,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> TradingSignal:
        """Build a signal with strength clamped to [0, 1] and confidence to [0, 100]."""
        return TradingSignal(
            symbol=self.context.symbol,
            side=side,
            strength=clamp(strength, 0.0, 1.0),
            confidence=clamp(confidence, 0.0, 100.0),
            reason=reason,
            strategy_id=self.id,
            timestamp=self.now(),
            indicator_values=dict(indicator_values or {}),
            target_price=target_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )

    def check_risk_parameters(self, signal: TradingSignal) -> bool:
        """
        Reject signals whose stop-loss or take-profit distance exceeds the limits.

        Distances are measured from the current price as a percentage.
        """
        risk = self.config.risk_parameters
        price = self.current_price()
        if not price:
            return False

        if signal.stop_loss is not None and risk.stop_loss_percentage is not None:
            stop_pct = abs(price - signal.stop_loss) / price
            if stop_pct > risk.stop_loss_percentage / 100:
                logger.warning(
                    "risk_violation",
                    strategy_id=self.id,
                    kind="stop_loss",
                    violation=f"Stop loss {stop_pct * 100:.2f}% exceeds limit {risk.stop_loss_percentage}%",
                )
                return False

        if signal.take_profit is not None and risk.take_profit_percentage is not None:
            take_pct = abs(signal.take_profit - price) / price
            if take_pct > risk.take_profit_percentage / 100:
                logger.warning(
                    "risk_violation",
                    strategy_id=self.id,
                    kind="take_profit",
                    violation=f"Take profit {take_pct * 100:.2f}% exceeds limit {risk.take_profit_percentage}%",
                )
                return False

        return True

    def calculate_position_size(
        self, signal: TradingSignal, portfolio_value: float, price: Optional[float] = None
    ) -> float:
        """
        Size a position from the risk parameters.

        min(max_position_size% * portfolio / price,
            max_daily_loss / |price - stop_loss|)   when a stop and budget exist,
        otherwise only the percentage cap. Truncated to 8 decimals, never negative.

        ``price`` is the entry price the order will carry (a limit price);
        the current price is used when omitted.
        """
        risk = self.config.risk_parameters
        price = price or self.current_price()
        if not price:
            return 0.0

        size = portfolio_value * (risk.max_position_size / 100) / price

        if signal.stop_loss is not None and risk.max_daily_loss is not None:
            risk_per_unit = abs(price - signal.stop_loss)
            if risk_per_unit > 0:
                size = min(size, risk.max_daily_loss / risk_per_unit)

        return max(0.0, floor_size(size))

    def in_reversal_cooldown(self, signal: TradingSignal, cooldown: timedelta) -> bool:
        """True when ``signal`` reverses the last signal's side within ``cooldown``."""
        last = self.context.last_signal
        if last is None or last.side == signal.side:
            return False
        return signal.timestamp - last.timestamp < cooldown

    def client_order_id(self, prefix: str) -> str:
        epoch_ms = int(self.now().timestamp() * 1000)
        return f"{prefix}_{self.id}_{epoch_ms}"

    def indicator_value(self, key: str) -> Optional[float]:
        indicator = self.context.indicators.get(key)
        if indicator is None:
            return None
        latest = indicator.latest_result()
        return latest.value if latest else None

    def indicator_values(self) -> Dict[str, float]:
        values = {}
        for key, indicator in self.context.indicators.items():
            latest = indicator.latest_result()
            if latest is not None:
                values[key] = latest.value
        return values

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, symbol={self.context.symbol!r})"
