"""
Venue connectors.

In-memory simulator, Coinbase Exchange REST connector and the factory
that builds them from ExchangeType plus credentials.
"""

from .simulator import SimulatorExchange
from .coinbase import CoinbaseExchange, map_order_status, granularity_for
from .factory import (
    create_exchange,
    supported_exchanges,
    is_supported,
    required_credentials,
    validate_credentials,
)

__all__ = [
    "SimulatorExchange",
    "CoinbaseExchange",
    "map_order_status",
    "granularity_for",
    "create_exchange",
    "supported_exchanges",
    "is_supported",
    "required_credentials",
    "validate_credentials",
]
