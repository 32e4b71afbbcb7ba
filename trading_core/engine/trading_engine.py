"""
Trading Engine - Orchestrates strategies, safety checks and venues.

Flow per market-data update:
    strategy.run() -> signal -> order request -> SafetyEngine -> venue

Design principles:
- Registries (strategies, connectors, active orders) are engine-owned and
  mutated only under the engine lock
- Failures inside the pipeline become events; they never escape to the
  market-data caller
- Every active order remembers the strategy and connector that placed it
- Terminal orders leave the active registry and never come back
"""

import asyncio
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from trading_core.config_schemas import EngineConfig, StrategyConfig
from trading_core.interfaces.exchange import IExchangeConnector
from trading_core.interfaces.orders import Order, OrderRequest, order_from_request
from trading_core.interfaces.signal import TradingSignal
from trading_core.interfaces.types import OrderStatus, PriceObservation, utc_now
from trading_core.logging_config import get_logger, get_memory_usage
from trading_core.risk.safety_engine import SafetyContext, SafetyEngine
from trading_core.strategy.base import BaseStrategy
from trading_core.strategy.factory import create_strategy

from .events import EventChannel, EventType
from .scheduler import PeriodicTask

logger = get_logger(__name__)


class EngineStateError(RuntimeError):
    """Engine lifecycle operation invalid in the current state."""


@dataclass
class EngineMetrics:
    """
    Engine counters.

    ``success_rate`` is executed_trades / total_signals as a ratio, 0.0
    before the first signal.
    """
    total_signals: int = 0
    executed_trades: int = 0
    rejected_signals: int = 0
    active_strategies: int = 0
    total_pnl: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_signals == 0:
            return 0.0
        return self.executed_trades / self.total_signals

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success_rate"] = self.success_rate
        return data


class _OrderRoute(NamedTuple):
    strategy_id: str
    connector: IExchangeConnector


class TradingEngine:
    """
    Asynchronous trading orchestrator.

    Parameters
    ----------
    config : EngineConfig, optional
        Engine limits and behaviour (defaults when omitted)
    safety_engine : SafetyEngine, optional
        Signal gate; defaults to one whose drawdown limit is
        ``config.emergency_stop_loss``
    clock : callable, optional
        Current-time source used for paper order ids and the daily reset
    events : EventChannel, optional
        Outbound event channel (created from ``config.event_queue_size``)

    Examples
    --------
    >>> engine = TradingEngine(EngineConfig(enable_paper_trading=True))
    >>> await engine.add_strategy(config, SimulatorExchange(seed=1))
    >>> await engine.start()
    >>> await engine.add_market_data("BTC-USD", observation)
    >>> engine.get_metrics().success_rate
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        safety_engine: Optional[SafetyEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
        events: Optional[EventChannel] = None,
    ):
        self.config = config or EngineConfig()
        self.safety_engine = safety_engine or SafetyEngine(max_drawdown=self.config.emergency_stop_loss)
        self.events = events or EventChannel(queue_size=self.config.event_queue_size)
        self._clock = clock or utc_now

        self._strategies: Dict[str, BaseStrategy] = {}
        self._connectors: Dict[str, IExchangeConnector] = {}
        self._active_orders: Dict[str, Order] = {}
        self._order_routes: Dict[str, _OrderRoute] = {}
        self._lock = asyncio.Lock()

        self._metrics = EngineMetrics()
        self._running = False
        self._monitor = PeriodicTask("order-monitor", self.config.monitor_interval, self.monitor_orders)

        self.portfolio_value = self.config.portfolio_value
        self.current_drawdown = 0.0
        self._daily_trades = 0
        self._trading_day: date = self._clock().date()

    # ------------------------------------------------------------------
    # Strategy registry
    # ------------------------------------------------------------------

    async def add_strategy(
        self,
        config: StrategyConfig,
        connector: IExchangeConnector,
        history: Sequence[PriceObservation] = (),
    ) -> BaseStrategy:
        """
        Build, initialize and register a strategy with its connector.

        Raises
        ------
        NotImplementedError
            If the strategy type has no implementation
        ValueError
            If the id is already registered or parameters are invalid
        """
        strategy = create_strategy(config, clock=self._clock, portfolio_value=self.portfolio_value)
        if strategy.symbols:
            strategy.initialize(strategy.symbols[0], history)

        async with self._lock:
            if config.id in self._strategies:
                raise ValueError(f"Strategy {config.id} already registered")
            self._strategies[config.id] = strategy
            self._connectors[config.id] = connector
            self._metrics.active_strategies = len(self._strategies)

        logger.info("strategy_added", strategy_id=config.id, type=config.type.value)
        self.events.publish(EventType.STRATEGY_ADDED, strategy_id=config.id, type=config.type.value)
        return strategy

    async def remove_strategy(self, strategy_id: str) -> bool:
        """Deactivate and unregister; the strategy's open orders are left alone."""
        async with self._lock:
            strategy = self._strategies.pop(strategy_id, None)
            if strategy is None:
                return False
            self._connectors.pop(strategy_id, None)
            self._metrics.active_strategies = len(self._strategies)
        strategy.set_active(False)

        logger.info("strategy_removed", strategy_id=strategy_id)
        self.events.publish(EventType.STRATEGY_REMOVED, strategy_id=strategy_id)
        return True

    def get_strategy(self, strategy_id: str) -> Optional[BaseStrategy]:
        return self._strategies.get(strategy_id)

    def get_active_strategies(self) -> List[BaseStrategy]:
        return list(self._strategies.values())

    def get_active_orders(self) -> List[Order]:
        return [order.copy() for order in self._active_orders.values()]

    def order_owner(self, order_id: str) -> Optional[str]:
        route = self._order_routes.get(order_id)
        return route.strategy_id if route else None

    def is_running(self) -> bool:
        return self._running

    def get_metrics(self) -> EngineMetrics:
        return replace(self._metrics)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        async with self._lock:
            if self._running:
                raise EngineStateError("Trading engine is already running")
            self._running = True
        self._monitor.start()
        logger.info("engine_started", strategies=len(self._strategies), paper=self.config.enable_paper_trading)
        self.events.publish(EventType.ENGINE_STARTED)

    async def stop(self) -> None:
        """Cancel tracked orders, halt the monitor and flip to stopped (no-op when stopped)."""
        if not self._running:
            return
        self._running = False
        await self._cancel_active_orders()
        await self._monitor.stop()
        logger.info(
            "engine_stopped",
            active_orders=len(self._active_orders),
            memory_mb=round(get_memory_usage(), 1),
        )
        self.events.publish(EventType.ENGINE_STOPPED)

    async def emergency_stop(self, reason: str = "manual") -> int:
        """
        Cancel every open order on every connector, deactivate all strategies
        and stop the engine.

        Returns
        -------
        int
            Number of orders cancelled
        """
        logger.critical("emergency_stop", reason=reason)
        async with self._lock:
            strategies = list(self._strategies.values())
            connectors = list({id(c): c for c in self._connectors.values()}.values())
            for route in self._order_routes.values():
                if all(route.connector is not c for c in connectors):
                    connectors.append(route.connector)

        for strategy in strategies:
            strategy.set_active(False)

        cancelled = 0
        listings = await asyncio.gather(
            *(connector.get_open_orders() for connector in connectors), return_exceptions=True
        )
        cancellations = []
        for connector, listing in zip(connectors, listings):
            if isinstance(listing, BaseException) or not listing.success:
                error = str(listing) if isinstance(listing, BaseException) else listing.error
                self.events.publish(EventType.ORDER_CANCEL_ERROR, order_id=None, error=error)
                continue
            cancellations.extend((connector, order) for order in listing.data or [])

        results = await asyncio.gather(
            *(connector.cancel_order(order.exchange_order_id) for connector, order in cancellations),
            return_exceptions=True,
        )
        for (_, order), result in zip(cancellations, results):
            if self._cancel_succeeded(order.id, result):
                cancelled += 1
                await self._forget_order(order.id)

        if self._running:
            await self.stop()

        self.events.publish(EventType.EMERGENCY_STOP, reason=reason, cancelled_orders=cancelled)
        return cancelled

    # ------------------------------------------------------------------
    # Accounting hooks
    # ------------------------------------------------------------------

    def record_pnl(self, amount: float) -> float:
        self._metrics.total_pnl += amount
        self.events.publish(EventType.PNL_UPDATED, pnl=amount, total_pnl=self._metrics.total_pnl)
        return self._metrics.total_pnl

    def set_drawdown(self, drawdown: float) -> None:
        """Current drawdown as a fraction of peak equity (0.05 = 5%)."""
        if not 0 <= drawdown <= 1:
            raise ValueError(f"drawdown must be within [0, 1], got {drawdown}")
        self.current_drawdown = drawdown

    def set_portfolio_value(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"portfolio value must be positive, got {value}")
        self.portfolio_value = value
        for strategy in self._strategies.values():
            strategy.portfolio_value = value

    @property
    def daily_trades(self) -> int:
        self._roll_trading_day()
        return self._daily_trades

    def _roll_trading_day(self) -> None:
        today = self._clock().date()
        if today != self._trading_day:
            logger.info("daily_counters_reset", previous_day=str(self._trading_day), trades=self._daily_trades)
            self._trading_day = today
            self._daily_trades = 0

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def process_market_data(self, symbol: str, points: Sequence[PriceObservation]) -> None:
        """Replace each interested strategy's window with ``points`` and run it."""
        await self._dispatch(symbol, lambda strategy: strategy.update_market_data(points))

    async def add_market_data(self, symbol: str, point: PriceObservation) -> None:
        """Append one observation to each interested strategy and run it."""
        await self._dispatch(symbol, lambda strategy: strategy.add_market_data(point))

    async def _dispatch(self, symbol: str, feed: Callable[[BaseStrategy], None]) -> None:
        if not self._running:
            return

        async with self._lock:
            strategies = [
                s for s in self._strategies.values() if s.is_active and symbol in s.symbols
            ]

        for strategy in strategies:
            # Removed while an earlier strategy awaited its venue
            if self._strategies.get(strategy.id) is not strategy:
                continue
            try:
                feed(strategy)
                signal = strategy.run()
            except Exception as exc:
                self._strategy_error(strategy.id, symbol, exc)
                continue

            if signal is not None:
                await self._process_signal(signal, strategy)

    def _strategy_error(self, strategy_id: str, symbol: str, exc: Exception) -> None:
        logger.error("strategy_error", strategy_id=strategy_id, symbol=symbol, error=str(exc))
        self.events.publish(EventType.STRATEGY_ERROR, strategy_id=strategy_id, symbol=symbol, error=str(exc))

    # ------------------------------------------------------------------
    # Signal pipeline
    # ------------------------------------------------------------------

    async def _process_signal(self, signal: TradingSignal, strategy: BaseStrategy) -> None:
        self._roll_trading_day()
        self._metrics.total_signals += 1
        self.events.publish(EventType.SIGNAL_GENERATED, signal=signal, strategy_id=strategy.id)

        try:
            request = strategy.create_order_request(signal, self.portfolio_value)
        except ValueError as exc:
            self._reject_signal(signal, strategy, [f"Order request failed: {exc}"])
            return

        result = self.safety_engine.validate_signal(
            signal,
            SafetyContext(
                active_orders=list(self._active_orders.values()),
                daily_trades=self._daily_trades,
                max_daily_trades=self.config.max_daily_trades,
                portfolio_value=self.portfolio_value,
                current_drawdown=self.current_drawdown,
                order_value=self._order_value(request, strategy),
            ),
        )
        reasons = list(result.reasons)
        is_valid = result.is_valid

        if not self.config.enable_paper_trading and len(self._active_orders) >= self.config.max_concurrent_orders:
            is_valid = False
            reasons.append(
                f"Maximum concurrent orders reached: "
                f"{len(self._active_orders)}/{self.config.max_concurrent_orders}"
            )

        if not is_valid:
            self._reject_signal(signal, strategy, reasons)
            if self.config.auto_emergency_stop and result.has_critical_failure:
                await self.emergency_stop(reason="; ".join(result.reasons))
            return

        if self.config.enable_paper_trading:
            self._execute_paper_trade(signal, request, strategy)
        else:
            await self._execute_live_trade(signal, request, strategy)

    @staticmethod
    def _order_value(request: OrderRequest, strategy: BaseStrategy) -> float:
        if request.estimated_value is not None:
            return request.estimated_value
        price = strategy.current_price() or 0.0
        return request.size * price

    def _reject_signal(self, signal: TradingSignal, strategy: BaseStrategy, reasons: List[str]) -> None:
        self._metrics.rejected_signals += 1
        logger.info("signal_rejected", strategy_id=strategy.id, symbol=signal.symbol, reasons=reasons)
        self.events.publish(EventType.SIGNAL_REJECTED, signal=signal, strategy_id=strategy.id, reasons=reasons)

    def _count_execution(self) -> None:
        self._metrics.executed_trades += 1
        self._daily_trades += 1

    def _execute_paper_trade(self, signal: TradingSignal, request: OrderRequest, strategy: BaseStrategy) -> None:
        order_id = f"paper_{int(self._clock().timestamp() * 1000)}"
        order = order_from_request(
            request, order_id, OrderStatus.FILLED, fill_price=strategy.current_price()
        )
        self._count_execution()
        logger.info(
            "paper_trade_executed",
            strategy_id=strategy.id,
            order_id=order_id,
            symbol=order.symbol,
            side=order.side.value,
            size=order.size,
        )
        self.events.publish(EventType.PAPER_TRADE_EXECUTED, signal=signal, order=order, strategy_id=strategy.id)

    async def _execute_live_trade(
        self, signal: TradingSignal, request: OrderRequest, strategy: BaseStrategy
    ) -> None:
        connector = self._connectors.get(strategy.id)
        if connector is None:
            self._reject_signal(signal, strategy, [f"No exchange configured for strategy {strategy.id}"])
            return

        try:
            response = await connector.place_order(request)
        except Exception as exc:
            logger.exception("trade_execution_error", strategy_id=strategy.id, symbol=request.symbol)
            self.events.publish(
                EventType.TRADE_EXECUTION_ERROR,
                signal=signal,
                order_request=request,
                strategy_id=strategy.id,
                error=str(exc),
            )
            return

        if not response.success or response.data is None:
            self._metrics.rejected_signals += 1
            logger.warning("trade_rejected", strategy_id=strategy.id, error=response.error)
            self.events.publish(
                EventType.TRADE_REJECTED, signal=signal, strategy_id=strategy.id, error=response.error
            )
            return

        order = response.data
        self._count_execution()
        if not order.is_terminal:
            async with self._lock:
                # Removal leaves open orders alone, including one whose
                # placement was still in flight
                if strategy.id not in self._strategies:
                    logger.warning("order_placed_after_removal", strategy_id=strategy.id, order_id=order.id)
                self._active_orders[order.id] = order
                self._order_routes[order.id] = _OrderRoute(strategy.id, connector)

        logger.info(
            "trade_executed",
            strategy_id=strategy.id,
            order_id=order.id,
            symbol=order.symbol,
            side=order.side.value,
            status=order.status.value,
        )
        self.events.publish(EventType.TRADE_EXECUTED, signal=signal, order=order, strategy_id=strategy.id)
        if order.is_terminal:
            self._complete_order(order, strategy.id)

    # ------------------------------------------------------------------
    # Order monitoring
    # ------------------------------------------------------------------

    async def monitor_orders(self) -> None:
        """Refresh every active order from its owning connector once."""
        async with self._lock:
            tracked = [
                (order_id, order.exchange_order_id, self._order_routes[order_id])
                for order_id, order in self._active_orders.items()
            ]
        if not tracked:
            return

        results = await asyncio.gather(
            *(route.connector.get_order(exchange_id) for _, exchange_id, route in tracked),
            return_exceptions=True,
        )

        completed = []
        for (order_id, _, route), result in zip(tracked, results):
            if isinstance(result, BaseException):
                self._order_update_error(order_id, str(result))
                continue
            if not result.success or result.data is None:
                self._order_update_error(order_id, result.error)
                continue

            updated = result.data
            async with self._lock:
                if order_id not in self._active_orders:
                    continue
                if updated.is_terminal:
                    del self._active_orders[order_id]
                    del self._order_routes[order_id]
                    completed.append((updated, route.strategy_id))
                else:
                    self._active_orders[order_id] = updated

        for order, strategy_id in completed:
            self._complete_order(order, strategy_id)

    def _order_update_error(self, order_id: str, error: Optional[str]) -> None:
        logger.warning("order_update_error", order_id=order_id, error=error)
        self.events.publish(EventType.ORDER_UPDATE_ERROR, order_id=order_id, error=error)

    def _complete_order(self, order: Order, strategy_id: str) -> None:
        logger.info("order_completed", order_id=order.id, strategy_id=strategy_id, status=order.status.value)
        self.events.publish(EventType.ORDER_COMPLETED, order=order, strategy_id=strategy_id)
        if order.status is OrderStatus.FILLED:
            notional = order.filled_size * (order.average_fill_price or order.price or 0.0)
            self.events.publish(
                EventType.PNL_UPDATED,
                order_id=order.id,
                pnl=0.0,
                notional=notional,
                total_pnl=self._metrics.total_pnl,
            )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def _cancel_active_orders(self) -> None:
        async with self._lock:
            tracked = [
                (order_id, order.exchange_order_id, self._order_routes[order_id].connector)
                for order_id, order in self._active_orders.items()
            ]
        if not tracked:
            return

        results = await asyncio.gather(
            *(connector.cancel_order(exchange_id) for _, exchange_id, connector in tracked),
            return_exceptions=True,
        )
        for (order_id, _, _), result in zip(tracked, results):
            if self._cancel_succeeded(order_id, result):
                await self._forget_order(order_id)

    def _cancel_succeeded(self, order_id: str, result: Any) -> bool:
        if isinstance(result, BaseException):
            error = str(result)
        elif not result.success:
            error = result.error
        else:
            return True
        logger.warning("order_cancel_error", order_id=order_id, error=error)
        self.events.publish(EventType.ORDER_CANCEL_ERROR, order_id=order_id, error=error)
        return False

    async def _forget_order(self, order_id: str) -> None:
        async with self._lock:
            self._active_orders.pop(order_id, None)
            self._order_routes.pop(order_id, None)
