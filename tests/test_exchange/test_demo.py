"""Tests for DemoExchangeClient and demo mode integration."""

import pytest

from dcaflow.config import Settings, SystemSettings
from dcaflow.core.errors import MarketDataUnavailable, OrderRejected
from dcaflow.exchange import get_exchange_adapter
from dcaflow.exchange.adapter import ExchangeAdapter, OrderSizing
from dcaflow.exchange.client import CcxtExchangeClient
from dcaflow.exchange.demo import DemoExchangeClient, get_demo_client


class TestDemoExchangeClientInterface:
    """DemoExchangeClient implements ExchangeAdapter."""

    def test_is_subclass_of_exchange_adapter(self):
        assert issubclass(DemoExchangeClient, ExchangeAdapter)

    def test_instance_is_exchange_adapter(self):
        client = DemoExchangeClient()
        assert isinstance(client, ExchangeAdapter)


class TestDemoSingleton:
    """get_demo_client singleton behavior."""

    def test_returns_same_instance(self):
        c1 = get_demo_client()
        c2 = get_demo_client()
        assert c1 is c2

    def test_returns_demo_exchange_client(self):
        client = get_demo_client()
        assert isinstance(client, DemoExchangeClient)


class TestDemoConnectDisconnect:
    """Connection lifecycle."""

    async def test_connect(self):
        client = DemoExchangeClient()
        assert not client.is_connected
        result = await client.connect()
        assert result is True
        assert client.is_connected

    async def test_disconnect(self):
        client = DemoExchangeClient()
        await client.connect()
        await client.disconnect()
        assert not client.is_connected


class TestDemoTicker:
    """Synthetic prices."""

    async def test_default_price(self):
        client = DemoExchangeClient(seed=3)
        ticker = await client.get_ticker("BTC/KRW")
        assert ticker.symbol == "BTC/KRW"
        assert ticker.price == pytest.approx(95_000_000.0, rel=0.05)

    async def test_unknown_symbol_uses_fallback(self):
        client = DemoExchangeClient(seed=3)
        ticker = await client.get_ticker("FOO/BAR")
        assert ticker.price == pytest.approx(100.0, rel=0.05)

    async def test_seeded_walk_is_reproducible(self):
        a = DemoExchangeClient(seed=11)
        b = DemoExchangeClient(seed=11)
        prices_a = [(await a.get_ticker("ETH/KRW")).price for _ in range(5)]
        prices_b = [(await b.get_ticker("ETH/KRW")).price for _ in range(5)]
        assert prices_a == prices_b

    async def test_change_rate_follows_previous_price(self):
        client = DemoExchangeClient(seed=5)
        first = await client.get_ticker("BTC/KRW")
        second = await client.get_ticker("BTC/KRW")
        expected = (second.price - first.price) / first.price * 100
        assert second.change_rate_pct == pytest.approx(expected)

    async def test_pinned_price(self):
        client = DemoExchangeClient()
        client.set_price("BTC/KRW", 123.0)
        assert (await client.get_ticker("BTC/KRW")).price == 123.0
        assert (await client.get_ticker("BTC/KRW")).price == 123.0

    async def test_released_price_walks_again(self):
        client = DemoExchangeClient(seed=9)
        client.set_price("BTC/KRW", 123.0)
        client.release_price("BTC/KRW")
        assert (await client.get_ticker("BTC/KRW")).price != 123.0

    async def test_missing_price(self):
        client = DemoExchangeClient()
        client.set_price("BTC/KRW", None)
        with pytest.raises(MarketDataUnavailable):
            await client.get_ticker("BTC/KRW")


class TestDemoOrders:
    """Immediate fills and failure injection."""

    async def test_quote_sized_buy(self):
        client = DemoExchangeClient()
        client.set_price("BTC/KRW", 50.0)

        fill = await client.create_market_order(
            "BTC/KRW", "buy", 1000.0, OrderSizing.QUOTE_AMOUNT
        )

        assert fill.price == 50.0
        assert fill.quantity == pytest.approx(20.0)
        assert fill.cost == 1000.0
        assert client.orders == [fill]

    async def test_base_sized_sell(self):
        client = DemoExchangeClient()
        client.set_price("BTC/KRW", 50.0)

        fill = await client.create_market_order("BTC/KRW", "sell", 2.0)

        assert fill.quantity == 2.0
        assert fill.cost == pytest.approx(100.0)

    async def test_injected_failures(self):
        client = DemoExchangeClient()
        client.set_price("BTC/KRW", 50.0)
        client.fail_next_orders(2)

        for _ in range(2):
            with pytest.raises(OrderRejected):
                await client.create_market_order("BTC/KRW", "buy", 1.0)

        fill = await client.create_market_order("BTC/KRW", "buy", 1.0)
        assert fill.quantity == 1.0
        assert len(client.orders) == 1

    async def test_order_without_price_rejected(self):
        client = DemoExchangeClient()
        client.set_price("BTC/KRW", None)
        with pytest.raises(OrderRejected):
            await client.create_market_order("BTC/KRW", "buy", 1.0)


class TestDemoOHLCV:
    """Synthetic candles."""

    async def test_candle_shape(self):
        client = DemoExchangeClient(seed=1)
        candles = await client.get_ohlcv("BTC/KRW", timeframe="1h", limit=10)

        assert len(candles) == 10
        for ts, open_, high, low, close, volume in candles:
            assert low <= min(open_, close)
            assert high >= max(open_, close)
            assert volume > 0
        assert candles[1][0] - candles[0][0] == 3_600_000

    async def test_since(self):
        client = DemoExchangeClient(seed=1)
        candles = await client.get_ohlcv("BTC/KRW", limit=3, since=1_000)
        assert candles[0][0] == 1_000


class TestDemoMarkets:
    """Symbols listed by quote currency."""

    async def test_krw_markets(self):
        client = DemoExchangeClient()
        assert await client.list_markets() == ["BTC/KRW", "ETH/KRW", "XRP/KRW"]

    async def test_pinned_symbol_is_listed(self):
        client = DemoExchangeClient()
        client.set_price("SOL/USDT", 150.0)
        assert await client.list_markets("usdt") == ["BTC/USDT", "ETH/USDT", "SOL/USDT"]


class TestAdapterFactory:
    """get_exchange_adapter picks the client for the mode."""

    def test_demo_mode(self):
        settings = Settings(system=SystemSettings(mode="demo"))
        assert get_exchange_adapter(settings) is get_demo_client()

    def test_live_mode(self):
        settings = Settings(system=SystemSettings(mode="live", exchange="upbit"))
        adapter = get_exchange_adapter(settings)
        assert isinstance(adapter, CcxtExchangeClient)
        assert adapter.exchange_id == "upbit"
