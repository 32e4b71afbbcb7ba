"""
Safety Engine.

Stateless validator that gates signals on portfolio- and activity-level
limits, independently of a strategy's own validation:
- Position size vs. portfolio value
- Daily trade count
- Drawdown kill switch (critical)
- Signal confidence floor
- Conflicting open orders

Failures are routine outcomes reported in the result, never raised.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from trading_core.interfaces.orders import Order
from trading_core.interfaces.signal import TradingSignal
from trading_core.interfaces.types import OrderStatus, SafetyCheckType, Severity
from trading_core.logging_config import get_logger

logger = get_logger(__name__)

BLOCKING_SEVERITIES = frozenset({Severity.HIGH, Severity.CRITICAL})
KELLY_CAP = 0.25


@dataclass(frozen=True)
class SafetyCheck:
    """Outcome of one check."""
    type: SafetyCheckType
    is_valid: bool
    message: str
    severity: Severity


@dataclass(frozen=True)
class SafetyContext:
    """
    Snapshot the checks run against.

    Attributes
    ----------
    active_orders : sequence of Order
        Orders currently tracked by the engine
    daily_trades : int
        Trades executed today
    max_daily_trades : int
        Daily trade limit
    portfolio_value : float
        Current portfolio value
    current_drawdown : float
        Current drawdown as a fraction (0.05 = 5%)
    order_value : float, optional
        Notional value of the order the signal would produce
    """
    active_orders: Sequence[Order] = ()
    daily_trades: int = 0
    max_daily_trades: int = 50
    portfolio_value: float = 10000.0
    current_drawdown: float = 0.0
    order_value: Optional[float] = None


@dataclass(frozen=True)
class SafetyValidationResult:
    is_valid: bool
    checks: List[SafetyCheck]
    reasons: List[str]

    @property
    def has_critical_failure(self) -> bool:
        return any(not c.is_valid and c.severity is Severity.CRITICAL for c in self.checks)


def aggregate_validity(checks: Sequence[SafetyCheck]) -> bool:
    """Valid unless some failing check is HIGH or CRITICAL."""
    return not any(not c.is_valid and c.severity in BLOCKING_SEVERITIES for c in checks)


@dataclass
class SafetyEngine:
    """
    Signal safety gate with configurable limits.

    Parameters
    ----------
    max_position_size : float
        Max order value as a fraction of portfolio (default 0.1 = 10%)
    max_drawdown : float
        Max tolerated drawdown fraction (default 0.2 = 20%)
    min_confidence : float
        Minimum signal confidence 0-100 (default 60)
    max_daily_loss : float
        Daily loss fraction reserved for callers (default 0.05 = 5%)

    Examples
    --------
    >>> engine = SafetyEngine(max_position_size=0.05)
    >>> result = engine.validate_signal(signal, SafetyContext(order_value=400.0))
    >>> result.is_valid, result.reasons
    """

    max_position_size: float = 0.1
    max_drawdown: float = 0.2
    min_confidence: float = 60.0
    max_daily_loss: float = 0.05

    def validate_signal(self, signal: TradingSignal, context: SafetyContext) -> SafetyValidationResult:
        """
        Run every check and aggregate.

        Checks run in a fixed order; all of them run even after a failure,
        so the result always lists the full battery.
        """
        checks = [
            self.check_position_size(context),
            self.check_daily_trade_limit(context),
            self.check_drawdown(context),
            self.check_confidence(signal),
            self.check_order_conflicts(signal, context),
        ]
        is_valid = aggregate_validity(checks)
        reasons = [c.message for c in checks if not c.is_valid]

        if not is_valid:
            logger.info(
                "safety_validation_failed",
                strategy_id=signal.strategy_id,
                symbol=signal.symbol,
                reasons=reasons,
            )
        return SafetyValidationResult(is_valid=is_valid, checks=checks, reasons=reasons)

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def check_position_size(self, context: SafetyContext) -> SafetyCheck:
        order_value = context.order_value if context.order_value is not None else 0.0
        if context.portfolio_value <= 0:
            ratio = float("inf") if order_value > 0 else 0.0
        else:
            ratio = order_value / context.portfolio_value

        is_valid = ratio <= self.max_position_size
        if is_valid:
            message = f"Position size {ratio * 100:.2f}% within limit"
        else:
            message = (
                f"Position size {ratio * 100:.2f}% exceeds maximum "
                f"{self.max_position_size * 100:g}%"
            )
        return SafetyCheck(
            SafetyCheckType.POSITION_SIZE,
            is_valid,
            message,
            Severity.LOW if is_valid else Severity.HIGH,
        )

    def check_daily_trade_limit(self, context: SafetyContext) -> SafetyCheck:
        is_valid = context.daily_trades < context.max_daily_trades
        if is_valid:
            message = f"Daily trades {context.daily_trades}/{context.max_daily_trades} within limit"
        else:
            message = f"Daily trade limit exceeded: {context.daily_trades}/{context.max_daily_trades}"
        return SafetyCheck(
            SafetyCheckType.DAILY_TRADE_LIMIT,
            is_valid,
            message,
            Severity.LOW if is_valid else Severity.MEDIUM,
        )

    def check_drawdown(self, context: SafetyContext) -> SafetyCheck:
        drawdown = context.current_drawdown or 0.0
        is_valid = drawdown <= self.max_drawdown
        if is_valid:
            message = f"Drawdown {drawdown * 100:.2f}% within limit"
        else:
            message = f"Drawdown {drawdown * 100:.2f}% exceeds maximum {self.max_drawdown * 100:g}%"
        return SafetyCheck(
            SafetyCheckType.DRAWDOWN_LIMIT,
            is_valid,
            message,
            Severity.LOW if is_valid else Severity.CRITICAL,
        )

    def check_confidence(self, signal: TradingSignal) -> SafetyCheck:
        is_valid = signal.confidence >= self.min_confidence
        if is_valid:
            message = f"Signal confidence {signal.confidence:g}% acceptable"
        else:
            message = f"Signal confidence {signal.confidence:g}% below minimum {self.min_confidence:g}%"
        return SafetyCheck(
            SafetyCheckType.CONFIDENCE,
            is_valid,
            message,
            Severity.LOW if is_valid else Severity.MEDIUM,
        )

    def check_order_conflicts(self, signal: TradingSignal, context: SafetyContext) -> SafetyCheck:
        conflicting = [
            o for o in context.active_orders
            if o.symbol == signal.symbol
            and o.status == OrderStatus.OPEN
            and o.side != signal.side
        ]
        is_valid = not conflicting
        if is_valid:
            message = f"No conflicting orders found for {signal.symbol}"
        else:
            message = f"Found {len(conflicting)} conflicting orders for {signal.symbol}"
        return SafetyCheck(
            SafetyCheckType.ORDER_CONFLICT,
            is_valid,
            message,
            Severity.LOW if is_valid else Severity.HIGH,
        )

    # ------------------------------------------------------------------
    # Risk scoring and sizing helpers
    # ------------------------------------------------------------------

    def calculate_risk_score(self, signal: TradingSignal, context: SafetyContext) -> float:
        """Heuristic 0-100 risk score (higher is riskier)."""
        score = (1 - signal.strength) * 30
        score += (100 - signal.confidence) * 0.5
        score += len(context.active_orders) * 5
        score += (context.current_drawdown or 0.0) * 100
        return min(100.0, max(0.0, score))

    @staticmethod
    def calculate_safe_position_size(
        portfolio_value: float, risk_per_trade: float, stop_loss_distance: float
    ) -> float:
        """
        Units such that hitting the stop loses ``risk_per_trade`` percent.

        Returns 0 for a non-positive stop distance.
        """
        if stop_loss_distance <= 0:
            return 0.0
        return portfolio_value * (risk_per_trade / 100) / stop_loss_distance

    @staticmethod
    def calculate_kelly_position_size(win_rate: float, average_win: float, average_loss: float) -> float:
        """
        Kelly fraction, clamped to [0, 0.25].

        Args:
            win_rate: Win rate in percent (0-100)
            average_win: Mean winning trade
            average_loss: Mean losing trade (positive)
        """
        if average_loss <= 0 or average_win <= 0:
            return 0.0
        b = average_win / average_loss
        p = win_rate / 100
        q = 1 - p
        kelly = (b * p - q) / b
        return max(0.0, min(KELLY_CAP, kelly))
