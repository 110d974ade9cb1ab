"""Exchange - Connectivity layer for live and demo exchanges."""

from dcaflow.config import Settings
from dcaflow.exchange.adapter import (
    ExchangeAdapter,
    OrderExecutor,
    OrderFill,
    OrderSizing,
    Ticker,
)
from dcaflow.exchange.client import CcxtExchangeClient
from dcaflow.exchange.demo import DemoExchangeClient, get_demo_client

__all__ = [
    "CcxtExchangeClient",
    "DemoExchangeClient",
    "ExchangeAdapter",
    "OrderExecutor",
    "OrderFill",
    "OrderSizing",
    "Ticker",
    "get_demo_client",
    "get_exchange_adapter",
]


def get_exchange_adapter(settings: Settings, sandbox: bool = False) -> ExchangeAdapter:
    """Get the exchange adapter for the configured mode.

    Demo mode returns the synthetic demo client singleton; live mode builds a
    CCXT client for ``settings.system.exchange``.

    Args:
        settings: Application settings
        sandbox: Whether to use sandbox/testnet mode for live clients

    Returns:
        An ExchangeAdapter instance.
    """
    if settings.is_demo_mode:
        return get_demo_client()
    return CcxtExchangeClient(settings, sandbox=sandbox)
