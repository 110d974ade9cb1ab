"""Tests for the CCXT exchange client."""

from unittest.mock import AsyncMock, MagicMock, patch

import ccxt.async_support as ccxt
import pytest
from pydantic import SecretStr

from dcaflow.config import Settings, SystemSettings
from dcaflow.core.errors import MarketDataUnavailable, OrderRejected
from dcaflow.exchange.adapter import OrderSizing
from dcaflow.exchange.client import CcxtExchangeClient

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    return Settings(
        exchange_api_key=SecretStr("key"),
        exchange_api_secret=SecretStr("secret"),
        system=SystemSettings(mode="live", exchange="upbit"),
    )


@pytest.fixture
def mock_exchange():
    """Create a mock CCXT exchange instance."""
    exchange = AsyncMock(spec=ccxt.upbit)
    exchange.close = AsyncMock()
    exchange.set_sandbox_mode = MagicMock()
    return exchange


@pytest.fixture
def client(settings, mock_exchange):
    """Return a pre-connected client with a mocked exchange."""
    c = CcxtExchangeClient(settings)
    c._exchange = mock_exchange
    return c


# ---------------------------------------------------------------------------
# Connect / Disconnect
# ---------------------------------------------------------------------------


class TestConnect:
    """Tests for connect() and disconnect()."""

    @patch("dcaflow.exchange.client.ccxt.upbit")
    async def test_connect_passes_credentials(self, mock_upbit_cls, settings):
        mock_ex = AsyncMock()
        mock_upbit_cls.return_value = mock_ex

        c = CcxtExchangeClient(settings)
        assert await c.connect() is True
        assert c.is_connected

        config = mock_upbit_cls.call_args[0][0]
        assert config["apiKey"] == "key"
        assert config["secret"] == "secret"
        assert config["enableRateLimit"] is True
        mock_ex.load_markets.assert_awaited_once()

    @patch("dcaflow.exchange.client.ccxt.upbit")
    async def test_connect_without_credentials(self, mock_upbit_cls):
        mock_upbit_cls.return_value = AsyncMock()
        c = CcxtExchangeClient(Settings(system=SystemSettings(mode="live")))

        assert await c.connect() is True
        assert "apiKey" not in mock_upbit_cls.call_args[0][0]

    @patch("dcaflow.exchange.client.ccxt.upbit")
    async def test_connect_sandbox(self, mock_upbit_cls, settings):
        mock_ex = AsyncMock()
        mock_ex.set_sandbox_mode = MagicMock()
        mock_upbit_cls.return_value = mock_ex

        c = CcxtExchangeClient(settings, sandbox=True)
        await c.connect()

        mock_ex.set_sandbox_mode.assert_called_once_with(True)

    @patch("dcaflow.exchange.client.ccxt.upbit")
    async def test_connect_network_error(self, mock_upbit_cls, settings):
        mock_ex = AsyncMock()
        mock_ex.load_markets.side_effect = ccxt.NetworkError("down")
        mock_upbit_cls.return_value = mock_ex

        c = CcxtExchangeClient(settings)
        assert await c.connect() is False
        assert not c.is_connected
        mock_ex.close.assert_awaited_once()

    async def test_connect_unknown_exchange(self):
        c = CcxtExchangeClient(Settings(system=SystemSettings(exchange="no-such-exchange")))
        assert await c.connect() is False

    async def test_disconnect(self, client, mock_exchange):
        await client.disconnect()
        mock_exchange.close.assert_awaited_once()
        assert not client.is_connected

    async def test_requires_connection(self, settings):
        c = CcxtExchangeClient(settings)
        with pytest.raises(RuntimeError):
            await c.get_ticker("BTC/KRW")


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


class TestMarketData:
    """Tests for get_ticker(), get_ohlcv() and list_markets()."""

    async def test_get_ticker(self, client, mock_exchange):
        mock_exchange.fetch_ticker.return_value = {"last": 95_000_000, "percentage": -1.25}

        ticker = await client.get_ticker("BTC/KRW")

        assert ticker.price == 95_000_000.0
        assert ticker.change_rate_pct == -1.25

    async def test_get_ticker_without_percentage(self, client, mock_exchange):
        mock_exchange.fetch_ticker.return_value = {"last": 100.0, "percentage": None}
        ticker = await client.get_ticker("BTC/KRW")
        assert ticker.change_rate_pct == 0.0

    async def test_get_ticker_without_price(self, client, mock_exchange):
        mock_exchange.fetch_ticker.return_value = {"last": None}
        with pytest.raises(MarketDataUnavailable):
            await client.get_ticker("BTC/KRW")

    async def test_get_ticker_exchange_error(self, client, mock_exchange):
        mock_exchange.fetch_ticker.side_effect = ccxt.NetworkError("timeout")
        with pytest.raises(MarketDataUnavailable):
            await client.get_ticker("BTC/KRW")

    async def test_get_ohlcv_sorted(self, client, mock_exchange, sample_ohlcv_data):
        mock_exchange.fetch_ohlcv.return_value = list(reversed(sample_ohlcv_data))

        candles = await client.get_ohlcv("BTC/KRW", "1d", limit=5)

        assert candles == sample_ohlcv_data
        mock_exchange.fetch_ohlcv.assert_awaited_once_with("BTC/KRW", "1d", since=None, limit=5)

    async def test_list_markets_filters_by_quote(self, client, mock_exchange):
        mock_exchange.load_markets.return_value = {
            "XRP/KRW": {"quote": "KRW", "spot": True, "active": True},
            "BTC/KRW": {"quote": "KRW", "spot": True, "active": True},
            "BTC/USDT": {"quote": "USDT", "spot": True, "active": True},
            "DEAD/KRW": {"quote": "KRW", "spot": True, "active": False},
        }

        markets = await client.list_markets("krw")

        assert markets == ["BTC/KRW", "XRP/KRW"]
        mock_exchange.load_markets.assert_awaited_once()

    async def test_list_markets_exchange_error(self, client, mock_exchange):
        mock_exchange.load_markets.side_effect = ccxt.NetworkError("timeout")
        with pytest.raises(MarketDataUnavailable):
            await client.list_markets()


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class TestOrders:
    """Tests for create_market_order()."""

    async def test_quote_sized_buy(self, client, mock_exchange):
        mock_exchange.create_market_buy_order_with_cost.return_value = {
            "id": "abc",
            "average": 50.0,
            "filled": 200.0,
            "cost": 10000.0,
        }

        fill = await client.create_market_order(
            "BTC/KRW", "buy", 10000.0, OrderSizing.QUOTE_AMOUNT
        )

        mock_exchange.create_market_buy_order_with_cost.assert_awaited_once_with(
            "BTC/KRW", 10000.0
        )
        assert fill.order_id == "abc"
        assert fill.fill_price(0.0) == 50.0
        assert fill.quantity == 200.0

    async def test_base_sized_sell(self, client, mock_exchange):
        mock_exchange.create_market_order.return_value = {
            "id": "xyz",
            "average": None,
            "price": None,
            "filled": 2.0,
            "cost": 110.0,
        }

        fill = await client.create_market_order("BTC/KRW", "sell", 2.0)

        mock_exchange.create_market_order.assert_awaited_once_with("BTC/KRW", "sell", 2.0)
        assert fill.fill_price(0.0) == 55.0

    async def test_quote_sized_sell_rejected(self, client):
        with pytest.raises(OrderRejected):
            await client.create_market_order("BTC/KRW", "sell", 100.0, OrderSizing.QUOTE_AMOUNT)

    async def test_exchange_error_becomes_rejection(self, client, mock_exchange):
        mock_exchange.create_market_order.side_effect = ccxt.InsufficientFunds("no money")

        with pytest.raises(OrderRejected) as exc_info:
            await client.create_market_order("BTC/KRW", "sell", 2.0)

        assert exc_info.value.side == "sell"
        assert "no money" in exc_info.value.reason
