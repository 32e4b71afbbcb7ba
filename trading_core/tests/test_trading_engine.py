"""
Tests for the trading engine pipeline, order tracking, lifecycle and the
event/scheduling primitives it is built on.
"""

import asyncio
from datetime import timedelta

import pytest

from trading_core.config_schemas import EngineConfig
from trading_core.engine import EngineStateError, EventChannel, EventType, PeriodicTask, TradingEngine
from trading_core.exchanges import SimulatorExchange
from trading_core.interfaces.exchange import ApiResponse
from trading_core.interfaces.types import OrderSide, OrderStatus, OrderType
from trading_core.strategy.base import floor_size

from .helpers import START, decline_then_rally, make_series, rally_then_decline, rising_closes

RSI_SERIES = make_series(rising_closes(20))
MACD_SERIES = make_series(decline_then_rally(decline=45, rally=1))
BEAR_SERIES = make_series(rally_then_decline(rally=45, decline=1))


class BrokenExchange(SimulatorExchange):
    async def place_order(self, request):
        raise RuntimeError("venue down")


class FlakyExchange(SimulatorExchange):
    async def get_order(self, order_id):
        return ApiResponse.fail("timeout")


class GatedExchange(SimulatorExchange):
    """Parks the calls named in ``hold`` until ``release`` is set."""

    def __init__(self, *args, hold=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.hold = set(hold)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def _gate(self, name):
        if name in self.hold:
            self.entered.set()
            await self.release.wait()

    async def place_order(self, request):
        await self._gate("place_order")
        return await super().place_order(request)

    async def get_order(self, order_id):
        # Fetched before parking, so the caller sees a stale copy
        response = await super().get_order(order_id)
        await self._gate("get_order")
        return response


class Recorder:
    """Collects every published engine event."""

    def __init__(self, engine):
        self.events = []
        engine.events.subscribe(self.events.append)

    @property
    def types(self):
        return [e.type for e in self.events]

    def of(self, event_type):
        return [e for e in self.events if e.type is event_type]


def make_engine(clock, **settings):
    return TradingEngine(EngineConfig(**settings), clock=clock)


async def rsi_setup(engine, rsi_config, exchange):
    """RSI strategy seeded so the next observation (close 119) triggers a SELL."""
    await engine.add_strategy(rsi_config, exchange, history=RSI_SERIES[:19])
    await engine.start()


async def macd_setup(engine, macd_config, exchange):
    """MACD strategy seeded so the next observation (close 109) triggers a limit BUY."""
    await engine.add_strategy(macd_config, exchange, history=MACD_SERIES[:45])
    await engine.start()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, clock):
        engine = make_engine(clock)
        await engine.start()
        assert engine.is_running()
        with pytest.raises(EngineStateError):
            await engine.start()
        await engine.stop()
        assert not engine.is_running()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self, clock):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        await engine.stop()
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_start_stop_events(self, clock):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        await engine.start()
        await engine.stop()
        assert recorder.types == [EventType.ENGINE_STARTED, EventType.ENGINE_STOPPED]

    @pytest.mark.asyncio
    async def test_data_ignored_while_stopped(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True)
        strategy = await engine.add_strategy(rsi_config, SimulatorExchange(), history=RSI_SERIES[:19])

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        assert len(strategy.context.market_data) == 19
        assert engine.get_metrics().total_signals == 0


class TestStrategyRegistry:

    @pytest.mark.asyncio
    async def test_add_and_remove(self, clock, rsi_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)

        strategy = await engine.add_strategy(rsi_config, SimulatorExchange())
        assert engine.get_strategy("rsi-btc") is strategy
        assert strategy.context.symbol == "BTC-USD"
        assert engine.get_metrics().active_strategies == 1

        assert await engine.remove_strategy("rsi-btc")
        assert not strategy.is_active
        assert engine.get_active_strategies() == []
        assert engine.get_metrics().active_strategies == 0
        assert not await engine.remove_strategy("rsi-btc")

        assert recorder.types == [EventType.STRATEGY_ADDED, EventType.STRATEGY_REMOVED]
        assert recorder.events[0].payload == {"strategy_id": "rsi-btc", "type": "rsi_oversold_overbought"}

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, clock, rsi_config):
        engine = make_engine(clock)
        await engine.add_strategy(rsi_config, SimulatorExchange())
        with pytest.raises(ValueError, match="already registered"):
            await engine.add_strategy(rsi_config, SimulatorExchange())

    @pytest.mark.asyncio
    async def test_portfolio_value_propagates(self, clock, rsi_config):
        engine = make_engine(clock)
        strategy = await engine.add_strategy(rsi_config, SimulatorExchange())
        engine.set_portfolio_value(25000.0)
        assert strategy.portfolio_value == 25000.0
        with pytest.raises(ValueError):
            engine.set_portfolio_value(0)
        with pytest.raises(ValueError):
            engine.set_drawdown(1.5)


class TestPaperTrading:

    @pytest.mark.asyncio
    async def test_paper_trade(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True)
        recorder = Recorder(engine)
        exchange = SimulatorExchange(prices={"BTC-USD": 119.0})
        await rsi_setup(engine, rsi_config, exchange)

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        assert EventType.SIGNAL_GENERATED in recorder.types
        paper = recorder.of(EventType.PAPER_TRADE_EXECUTED)
        assert len(paper) == 1
        order = paper[0].payload["order"]
        assert order.id == f"paper_{int(START.timestamp() * 1000)}"
        assert order.status is OrderStatus.FILLED
        assert order.side is OrderSide.SELL
        assert order.average_fill_price == 119.0

        # Paper trades never touch the venue or the active registry
        assert (await exchange.get_order_history()).data == []
        assert engine.get_active_orders() == []

        metrics = engine.get_metrics()
        assert metrics.total_signals == 1
        assert metrics.executed_trades == 1
        assert metrics.success_rate == 1.0
        assert engine.daily_trades == 1

    @pytest.mark.asyncio
    async def test_bearish_crossover_paper_trade(self, clock, macd_config):
        engine = make_engine(clock, enable_paper_trading=True)
        recorder = Recorder(engine)
        await engine.add_strategy(macd_config, SimulatorExchange(), history=BEAR_SERIES[:45])
        await engine.start()

        await engine.add_market_data("BTC-USD", BEAR_SERIES[45])

        assert recorder.of(EventType.SIGNAL_REJECTED) == []
        paper = recorder.of(EventType.PAPER_TRADE_EXECUTED)
        assert len(paper) == 1
        order = paper[0].payload["order"]
        assert order.side is OrderSide.SELL
        assert order.price == 91.09
        assert order.size == floor_size(1000.0 / 91.09)
        assert order.average_fill_price == 91.0
        assert engine.get_metrics().executed_trades == 1
        await engine.stop()

    @pytest.mark.asyncio
    async def test_failing_strategy_is_isolated(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True)
        recorder = Recorder(engine)
        exchange = SimulatorExchange()

        # No seed history: the first observation is too short a window
        await engine.add_strategy(rsi_config.model_copy(update={"id": "rsi-empty"}), exchange)
        await rsi_setup(engine, rsi_config, exchange)

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        errors = recorder.of(EventType.STRATEGY_ERROR)
        assert [e.payload["strategy_id"] for e in errors] == ["rsi-empty"]
        assert errors[0].payload["symbol"] == "BTC-USD"
        assert [e.payload["strategy_id"] for e in recorder.of(EventType.PAPER_TRADE_EXECUTED)] == ["rsi-btc"]

    @pytest.mark.asyncio
    async def test_other_symbols_not_dispatched(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True)
        strategy = await engine.add_strategy(rsi_config, SimulatorExchange(), history=RSI_SERIES[:19])
        await engine.start()

        await engine.process_market_data("ETH-USD", RSI_SERIES)

        assert len(strategy.context.market_data) == 19

    @pytest.mark.asyncio
    async def test_daily_counter_resets(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True)
        await rsi_setup(engine, rsi_config, SimulatorExchange())
        await engine.add_market_data("BTC-USD", RSI_SERIES[19])
        assert engine.daily_trades == 1

        clock.advance(timedelta(days=1))
        assert engine.daily_trades == 0


class TestLiveTrading:

    @pytest.mark.asyncio
    async def test_market_order_completes_immediately(self, clock, rsi_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        await rsi_setup(engine, rsi_config, SimulatorExchange(prices={"BTC-USD": 119.0}))

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        executed = recorder.of(EventType.TRADE_EXECUTED)
        assert len(executed) == 1
        order = executed[0].payload["order"]
        assert order.type is OrderType.MARKET
        assert order.status is OrderStatus.FILLED

        assert engine.get_active_orders() == []
        completed = recorder.of(EventType.ORDER_COMPLETED)
        assert completed[0].payload["strategy_id"] == "rsi-btc"
        pnl = recorder.of(EventType.PNL_UPDATED)[0].payload
        assert pnl["pnl"] == 0.0
        assert pnl["notional"] == pytest.approx(order.size * 119.0)

    @pytest.mark.asyncio
    async def test_limit_order_tracked_until_filled(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = SimulatorExchange(prices={"BTC-USD": 109.0})
        await macd_setup(engine, macd_config, exchange)

        await engine.add_market_data("BTC-USD", MACD_SERIES[45])

        active = engine.get_active_orders()
        assert len(active) == 1
        order = active[0]
        assert order.status is OrderStatus.OPEN
        assert order.price == round(109.0 * 0.999, 2)
        assert engine.order_owner(order.id) == "macd-btc"

        # Still open: refreshed in place
        await engine.monitor_orders()
        assert [o.id for o in engine.get_active_orders()] == [order.id]
        assert recorder.of(EventType.ORDER_COMPLETED) == []

        exchange.fill_order(order.id)
        await engine.monitor_orders()
        assert engine.get_active_orders() == []
        assert engine.order_owner(order.id) is None
        completed = recorder.of(EventType.ORDER_COMPLETED)
        assert len(completed) == 1
        assert completed[0].payload["order"].status is OrderStatus.FILLED

        # Terminal orders never return
        await engine.monitor_orders()
        assert engine.get_active_orders() == []
        assert len(recorder.of(EventType.ORDER_COMPLETED)) == 1

    @pytest.mark.asyncio
    async def test_bearish_crossover_places_sell_limit(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = SimulatorExchange(prices={"BTC-USD": 91.0})
        await engine.add_strategy(macd_config, exchange, history=BEAR_SERIES[:45])
        await engine.start()

        await engine.add_market_data("BTC-USD", BEAR_SERIES[45])

        assert recorder.of(EventType.SIGNAL_REJECTED) == []
        active = engine.get_active_orders()
        assert len(active) == 1
        assert active[0].side is OrderSide.SELL
        assert active[0].status is OrderStatus.OPEN
        assert active[0].price == 91.09
        assert active[0].size * active[0].price <= 1000.0
        await engine.stop()

    @pytest.mark.asyncio
    async def test_monitor_failure_keeps_order(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        await macd_setup(engine, macd_config, FlakyExchange(prices={"BTC-USD": 109.0}))
        await engine.add_market_data("BTC-USD", MACD_SERIES[45])

        await engine.monitor_orders()

        assert len(engine.get_active_orders()) == 1
        errors = recorder.of(EventType.ORDER_UPDATE_ERROR)
        assert errors[0].payload["error"] == "timeout"

    @pytest.mark.asyncio
    async def test_venue_rejection(self, clock, rsi_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        await rsi_setup(engine, rsi_config, SimulatorExchange(prices={"ETH-USD": 3000.0}))

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        rejected = recorder.of(EventType.TRADE_REJECTED)
        assert rejected[0].payload["error"] == "Symbol BTC-USD not found"
        metrics = engine.get_metrics()
        assert metrics.executed_trades == 0
        assert metrics.rejected_signals == 1
        assert metrics.success_rate == 0.0

    @pytest.mark.asyncio
    async def test_venue_exception(self, clock, rsi_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        await rsi_setup(engine, rsi_config, BrokenExchange())

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        errors = recorder.of(EventType.TRADE_EXECUTION_ERROR)
        assert errors[0].payload["error"] == "venue down"
        assert errors[0].payload["order_request"].side is OrderSide.SELL
        assert engine.get_active_orders() == []

    @pytest.mark.asyncio
    async def test_concurrent_order_limit(self, clock, macd_config):
        engine = make_engine(clock, max_concurrent_orders=1)
        recorder = Recorder(engine)
        exchange = SimulatorExchange(prices={"BTC-USD": 109.0})
        await engine.add_strategy(
            macd_config.model_copy(update={"id": "macd-2"}), exchange, history=MACD_SERIES[:45]
        )
        await macd_setup(engine, macd_config, exchange)

        await engine.add_market_data("BTC-USD", MACD_SERIES[45])

        assert len(engine.get_active_orders()) == 1
        rejected = recorder.of(EventType.SIGNAL_REJECTED)
        assert len(rejected) == 1
        assert "Maximum concurrent orders reached: 1/1" in rejected[0].payload["reasons"]


class TestSafetyGate:

    @pytest.mark.asyncio
    async def test_drawdown_rejects_signal(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True)
        recorder = Recorder(engine)
        await rsi_setup(engine, rsi_config, SimulatorExchange())
        engine.set_drawdown(0.5)

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        rejected = recorder.of(EventType.SIGNAL_REJECTED)
        assert rejected[0].payload["reasons"] == ["Drawdown 50.00% exceeds maximum 10%"]
        assert recorder.of(EventType.PAPER_TRADE_EXECUTED) == []
        assert engine.get_metrics().rejected_signals == 1
        assert engine.is_running()

    @pytest.mark.asyncio
    async def test_critical_failure_triggers_emergency_stop(self, clock, rsi_config):
        engine = make_engine(clock, enable_paper_trading=True, auto_emergency_stop=True)
        recorder = Recorder(engine)
        await rsi_setup(engine, rsi_config, SimulatorExchange())
        engine.set_drawdown(0.5)

        await engine.add_market_data("BTC-USD", RSI_SERIES[19])

        assert not engine.is_running()
        assert not engine.get_strategy("rsi-btc").is_active
        stop = recorder.of(EventType.EMERGENCY_STOP)[0]
        assert "Drawdown 50.00%" in stop.payload["reason"]
        assert stop.payload["cancelled_orders"] == 0


class TestShutdown:

    @pytest.mark.asyncio
    async def test_stop_cancels_tracked_orders(self, clock, macd_config):
        engine = make_engine(clock)
        exchange = SimulatorExchange(prices={"BTC-USD": 109.0})
        await macd_setup(engine, macd_config, exchange)
        await engine.add_market_data("BTC-USD", MACD_SERIES[45])
        order_id = engine.get_active_orders()[0].id

        await engine.stop()

        assert engine.get_active_orders() == []
        assert (await exchange.get_order(order_id)).data.status is OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_failed_cancel_reported(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = SimulatorExchange(prices={"BTC-USD": 109.0})
        await macd_setup(engine, macd_config, exchange)
        await engine.add_market_data("BTC-USD", MACD_SERIES[45])
        order_id = engine.get_active_orders()[0].id
        exchange.fill_order(order_id)

        await engine.stop()

        errors = recorder.of(EventType.ORDER_CANCEL_ERROR)
        assert errors[0].payload["order_id"] == order_id
        assert "already filled" in errors[0].payload["error"]

    @pytest.mark.asyncio
    async def test_emergency_stop(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = SimulatorExchange(prices={"BTC-USD": 109.0})
        await macd_setup(engine, macd_config, exchange)
        await engine.add_market_data("BTC-USD", MACD_SERIES[45])

        cancelled = await engine.emergency_stop("operator halt")

        assert cancelled == 1
        assert not engine.is_running()
        assert engine.get_active_orders() == []
        assert all(not s.is_active for s in engine.get_active_strategies())
        assert (await exchange.get_open_orders()).data == []
        stop = recorder.of(EventType.EMERGENCY_STOP)[0]
        assert stop.payload == {"reason": "operator halt", "cancelled_orders": 1}


class TestConcurrentMutation:

    @pytest.mark.asyncio
    async def test_strategy_removed_mid_dispatch_is_skipped(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = GatedExchange(prices={"BTC-USD": 109.0}, hold={"place_order"})
        await macd_setup(engine, macd_config, exchange)
        second = await engine.add_strategy(
            macd_config.model_copy(update={"id": "macd-2"}), exchange, history=MACD_SERIES[:45]
        )

        async def remove_while_placing():
            await exchange.entered.wait()
            removed = await engine.remove_strategy("macd-2")
            exchange.release.set()
            return removed

        _, removed = await asyncio.gather(
            engine.add_market_data("BTC-USD", MACD_SERIES[45]), remove_while_placing()
        )

        assert removed
        assert len(second.context.market_data) == 45
        assert [e.payload["strategy_id"] for e in recorder.of(EventType.SIGNAL_GENERATED)] == ["macd-btc"]
        assert [engine.order_owner(o.id) for o in engine.get_active_orders()] == ["macd-btc"]
        await engine.stop()

    @pytest.mark.asyncio
    async def test_order_in_flight_when_owner_removed(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = GatedExchange(prices={"BTC-USD": 109.0}, hold={"place_order"})
        await macd_setup(engine, macd_config, exchange)

        async def remove_while_placing():
            await exchange.entered.wait()
            removed = await engine.remove_strategy("macd-btc")
            exchange.release.set()
            return removed

        _, removed = await asyncio.gather(
            engine.add_market_data("BTC-USD", MACD_SERIES[45]), remove_while_placing()
        )

        assert removed
        assert engine.get_strategy("macd-btc") is None
        # The venue accepted the order, so it stays tracked like any open order
        active = engine.get_active_orders()
        assert len(active) == 1
        assert engine.order_owner(active[0].id) == "macd-btc"
        assert len(recorder.of(EventType.TRADE_EXECUTED)) == 1

        # No further dispatch to the removed strategy
        await engine.add_market_data("BTC-USD", MACD_SERIES[45])
        assert engine.get_metrics().total_signals == 1

        await engine.stop()
        assert engine.get_active_orders() == []
        assert (await exchange.get_order(active[0].id)).data.status is OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_stop_during_order_refresh(self, clock, macd_config):
        engine = make_engine(clock)
        recorder = Recorder(engine)
        exchange = GatedExchange(prices={"BTC-USD": 109.0})
        await macd_setup(engine, macd_config, exchange)
        await engine.add_market_data("BTC-USD", MACD_SERIES[45])
        order_id = engine.get_active_orders()[0].id
        exchange.hold.add("get_order")

        async def stop_while_refreshing():
            await exchange.entered.wait()
            await engine.stop()
            exchange.release.set()

        await asyncio.gather(engine.monitor_orders(), stop_while_refreshing())

        # The refresh returned a stale OPEN copy after the sweep cancelled it
        assert engine.get_active_orders() == []
        assert engine.order_owner(order_id) is None
        assert recorder.of(EventType.ORDER_COMPLETED) == []
        assert recorder.of(EventType.ORDER_CANCEL_ERROR) == []
        assert (await exchange.get_order(order_id)).data.status is OrderStatus.CANCELLED
        assert not engine.is_running()


class TestMetrics:

    def test_success_rate_without_signals(self):
        engine = TradingEngine()
        assert engine.get_metrics().success_rate == 0.0
        assert engine.get_metrics().to_dict()["success_rate"] == 0.0

    def test_metrics_are_snapshots(self):
        engine = TradingEngine()
        snapshot = engine.get_metrics()
        snapshot.total_signals = 99
        assert engine.get_metrics().total_signals == 0

    def test_record_pnl(self):
        engine = TradingEngine()
        recorder = Recorder(engine)
        engine.record_pnl(12.5)
        assert engine.record_pnl(-2.5) == 10.0
        assert recorder.events[-1].payload == {"pnl": -2.5, "total_pnl": 10.0}


class TestEventChannel:

    def test_queue_drops_oldest(self):
        channel = EventChannel(queue_size=2)
        for i in range(3):
            channel.publish(EventType.PNL_UPDATED, pnl=float(i))
        assert channel.dropped == 1
        assert channel.published == 3
        assert [e.payload["pnl"] for e in channel.drain()] == [1.0, 2.0]
        assert channel.drain() == []

    def test_filtered_subscription_and_unsubscribe(self):
        channel = EventChannel()
        seen = []
        unsubscribe = channel.subscribe(seen.append, EventType.ENGINE_STARTED)
        channel.publish(EventType.ENGINE_STOPPED)
        channel.publish(EventType.ENGINE_STARTED)
        unsubscribe()
        channel.publish(EventType.ENGINE_STARTED)
        assert [e.type for e in seen] == [EventType.ENGINE_STARTED]
        assert channel.queue is None

    def test_failing_subscriber_does_not_block_others(self):
        channel = EventChannel()
        seen = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        channel.publish(EventType.ENGINE_STARTED)
        assert len(seen) == 1


class TestPeriodicTask:

    def test_interval_must_be_positive(self):
        async def noop():
            pass

        with pytest.raises(ValueError):
            PeriodicTask("bad", 0, noop)

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        calls = []

        async def tick():
            calls.append(1)

        task = PeriodicTask("tick", 0.01, tick, run_immediately=True)
        task.start()
        task.start()
        assert task.is_running
        await asyncio.sleep(0.05)
        await task.stop()

        assert not task.is_running
        assert len(calls) >= 1
        assert task.iterations == len(calls)
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self):
        async def boom():
            raise RuntimeError("boom")

        task = PeriodicTask("boom", 1.0, boom)
        await task.run_once()
        await task.run_once()
        assert task.iterations == 2
