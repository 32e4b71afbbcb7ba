"""
CLI for trading_core.
Provides commands for paper sessions against the simulator and for
inspecting the available strategies.
"""

import asyncio
import json
import sys
from typing import Optional

import click

from trading_core.config_schemas import AppConfig, load_config
from trading_core.engine import EngineEvent, TradingEngine
from trading_core.exchanges import SimulatorExchange
from trading_core.interfaces.types import ExchangeType, PriceObservation
from trading_core.logging_config import configure_structlog, get_logger
from trading_core.strategy import default_parameters, supported_types

logger = get_logger(__name__)


@click.group()
@click.option('--debug/--no-debug', default=False, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """Trading Core CLI - Run paper sessions and inspect strategies."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug


async def _run_session(config: AppConfig, ticks: int, history: int) -> TradingEngine:
    settings = config.exchange.simulator
    exchange = SimulatorExchange(
        initial_balance=settings.initial_balance,
        seed=settings.seed,
        tick_interval=settings.tick_interval,
        prices=settings.prices,
    )
    engine = TradingEngine(config.engine)

    def echo_event(event: EngineEvent) -> None:
        click.echo(f"{event.timestamp.isoformat()} {event.type.value}")

    engine.events.subscribe(echo_event)

    for strategy_config in config.strategies:
        symbol = strategy_config.symbols[0]
        candles = await exchange.get_candles(symbol, strategy_config.timeframe, limit=history)
        seed = candles.data.candles if candles.success else []
        await engine.add_strategy(strategy_config, exchange, history=seed)

    symbols = sorted({s for c in config.strategies for s in c.symbols})
    await engine.start()
    try:
        for _ in range(ticks):
            exchange.tick()
            for symbol in symbols:
                response = await exchange.get_ticker(symbol)
                if not response.success:
                    click.echo(f"Skipping {symbol}: {response.error}", err=True)
                    continue
                ticker = response.data
                point = PriceObservation(
                    timestamp=ticker.timestamp,
                    open=ticker.price,
                    high=ticker.price,
                    low=ticker.price,
                    close=ticker.price,
                    volume=ticker.volume_24h,
                )
                await engine.add_market_data(symbol, point)
    finally:
        await engine.stop()
        await exchange.close()
    return engine


@cli.command()
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), help='YAML configuration file')
@click.option('--ticks', default=100, show_default=True, help='Number of simulated price ticks')
@click.option('--history', default=100, show_default=True, help='Seed candles per strategy')
@click.option('--seed', type=int, default=None, help='Override the simulator seed')
@click.option('--live/--paper', default=False, help='Route orders to the simulator instead of paper fills')
@click.pass_context
def run(ctx, config_path: Optional[str], ticks: int, history: int, seed: Optional[int], live: bool):
    """Run a session against the simulator and print engine metrics."""
    try:
        config = load_config(config_path) if config_path else AppConfig()
    except Exception as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)

    level = 'DEBUG' if ctx.obj.get('debug') else config.logging.level
    configure_structlog(log_level=level, log_file=config.logging.file, json_output=config.logging.json_output)

    if config.exchange.type is not ExchangeType.SIMULATOR:
        click.echo("Only the simulator is supported for CLI sessions", err=True)
        sys.exit(1)
    if not config.strategies:
        click.echo("No strategies configured", err=True)
        sys.exit(1)

    if seed is not None:
        config.exchange.simulator.seed = seed
    config.engine.enable_paper_trading = not live

    engine = asyncio.run(_run_session(config, ticks, history))
    click.echo(json.dumps(engine.get_metrics().to_dict(), indent=2))


@cli.command()
def strategies():
    """List supported strategy types and their default parameters."""
    for strategy_type in supported_types():
        click.echo(f"{strategy_type.value}")
        for key, value in default_parameters(strategy_type).items():
            click.echo(f"  {key}: {value}")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
