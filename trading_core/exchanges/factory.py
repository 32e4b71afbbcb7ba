"""
Exchange Factory - Resolves venue settings to connectors.

Entry point for building IExchangeConnector instances from an
ExchangeType plus credentials. Venues without an implementation raise
NotImplementedError.
"""

from typing import List, Optional

from trading_core.config_schemas import ExchangeCredentials, SimulatorSettings
from trading_core.interfaces.exchange import IExchangeConnector
from trading_core.interfaces.types import ExchangeType
from trading_core.logging_config import get_logger

from .coinbase import DEFAULT_TIMEOUT, CoinbaseExchange
from .simulator import SimulatorExchange

logger = get_logger(__name__)

SUPPORTED_EXCHANGES = (ExchangeType.COINBASE_PRO, ExchangeType.SIMULATOR)
NOT_IMPLEMENTED = (ExchangeType.BINANCE, ExchangeType.KRAKEN, ExchangeType.BITTREX)


def create_exchange(
    exchange_type: ExchangeType,
    credentials: Optional[ExchangeCredentials] = None,
    simulator: Optional[SimulatorSettings] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> IExchangeConnector:
    """
    Build a connector for a venue.

    Parameters
    ----------
    exchange_type : ExchangeType
        Venue to connect to
    credentials : ExchangeCredentials, optional
        API credentials (ignored by the simulator)
    simulator : SimulatorSettings, optional
        Simulator balance, seed, tick interval and starting prices
    timeout : float
        HTTP timeout for REST venues

    Returns
    -------
    IExchangeConnector

    Raises
    ------
    NotImplementedError
        If the venue is known but not implemented
    ValueError
        If required credentials are missing

    Examples
    --------
    >>> exchange = create_exchange(ExchangeType.SIMULATOR)
    >>> isinstance(exchange, SimulatorExchange)
    True
    """
    exchange_type = ExchangeType(exchange_type)
    credentials = credentials or ExchangeCredentials()

    if exchange_type in NOT_IMPLEMENTED:
        raise NotImplementedError(f"Exchange {exchange_type.value} not implemented yet")

    if exchange_type is ExchangeType.SIMULATOR:
        settings = simulator or SimulatorSettings()
        logger.info("exchange_created", exchange=exchange_type.value, seed=settings.seed)
        return SimulatorExchange(
            initial_balance=settings.initial_balance,
            seed=settings.seed,
            tick_interval=settings.tick_interval,
            prices=settings.prices,
        )

    if not validate_credentials(exchange_type, credentials):
        missing = [f for f in required_credentials(exchange_type) if not getattr(credentials, f)]
        raise ValueError(f"Missing credentials for {exchange_type.value}: {missing}")

    logger.info("exchange_created", exchange=exchange_type.value, sandbox=credentials.sandbox)
    return CoinbaseExchange(
        api_key=credentials.api_key,
        api_secret=credentials.api_secret,
        passphrase=credentials.passphrase or "",
        sandbox=credentials.sandbox,
        timeout=timeout,
    )


def supported_exchanges() -> List[ExchangeType]:
    return list(SUPPORTED_EXCHANGES)


def is_supported(exchange_type: ExchangeType) -> bool:
    return ExchangeType(exchange_type) in SUPPORTED_EXCHANGES


def required_credentials(exchange_type: ExchangeType) -> List[str]:
    """Credential fields a venue needs (none for the simulator)."""
    exchange_type = ExchangeType(exchange_type)
    if exchange_type is ExchangeType.COINBASE_PRO:
        return ["api_key", "api_secret", "passphrase"]
    if exchange_type is ExchangeType.SIMULATOR:
        return []
    return ["api_key", "api_secret"]


def validate_credentials(exchange_type: ExchangeType, credentials: ExchangeCredentials) -> bool:
    return all(getattr(credentials, f, None) for f in required_credentials(exchange_type))
