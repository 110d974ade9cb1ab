"""Demo exchange client with synthetic data for zero-risk trading runs."""

import random
import time
import uuid

from dcaflow.core.errors import MarketDataUnavailable, OrderRejected
from dcaflow.core.logging import get_logger
from dcaflow.exchange.adapter import ExchangeAdapter, OrderFill, OrderSizing, Ticker

logger = get_logger(__name__)

# Default seed prices for common symbols
_DEFAULT_PRICES: dict[str, float] = {
    "BTC/KRW": 95_000_000.0,
    "ETH/KRW": 4_500_000.0,
    "XRP/KRW": 800.0,
    "BTC/USDT": 65_000.0,
    "ETH/USDT": 3_000.0,
}

_DEFAULT_FALLBACK_PRICE = 100.0

_TIMEFRAME_MS: dict[str, int] = {
    "1m": 60_000,
    "5m": 300_000,
    "15m": 900_000,
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
}


class DemoExchangeClient(ExchangeAdapter):
    """Exchange client returning synthetic data without network calls.

    Prices follow a small gaussian random walk on every ticker request and
    market orders fill immediately at the current synthetic price. Tests can
    pin prices with set_price() and make orders fail with fail_next_orders().
    """

    def __init__(self, seed: int | None = None, volatility: float = 0.002) -> None:
        self._connected = False
        self._rng = random.Random(seed)
        self._volatility = volatility
        self._prices: dict[str, float] = {}
        self._frozen: set[str] = set()
        self._failures_pending = 0
        self.orders: list[OrderFill] = []

    async def connect(self) -> bool:
        """Connect (always succeeds; no network needed)."""
        self._connected = True
        logger.info("demo_exchange_connected")
        return True

    async def disconnect(self) -> None:
        """Disconnect from the demo exchange."""
        self._connected = False
        logger.info("demo_exchange_disconnected")

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._connected

    def set_price(self, symbol: str, price: float | None) -> None:
        """Pin the price of a symbol; None makes its market data unavailable."""
        if price is None:
            self._prices.pop(symbol, None)
            self._frozen.add(symbol)
            return
        self._prices[symbol] = price
        self._frozen.add(symbol)

    def release_price(self, symbol: str) -> None:
        """Let a pinned symbol resume its random walk."""
        self._frozen.discard(symbol)

    def fail_next_orders(self, count: int = 1) -> None:
        """Reject the next `count` market orders."""
        self._failures_pending = count

    def _get_price(self, symbol: str) -> float:
        if symbol not in self._prices:
            if symbol in self._frozen:
                raise MarketDataUnavailable(symbol)
            self._prices[symbol] = _DEFAULT_PRICES.get(symbol, _DEFAULT_FALLBACK_PRICE)
        return self._prices[symbol]

    def _tick_price(self, symbol: str) -> float:
        price = self._get_price(symbol)
        if symbol in self._frozen:
            return price
        price *= 1 + self._rng.gauss(0, self._volatility)
        price = max(price, 0.01)
        self._prices[symbol] = price
        return price

    async def get_ticker(self, symbol: str) -> Ticker:
        """Get a synthetic ticker, advancing the random walk."""
        previous = self._prices.get(symbol)
        price = self._tick_price(symbol)
        change = (price - previous) / previous * 100 if previous else 0.0
        return Ticker(symbol=symbol, price=price, change_rate_pct=change)

    async def get_ohlcv(
        self,
        symbol: str,
        timeframe: str = "1d",
        limit: int = 200,
        since: int | None = None,
    ) -> list[list[float]]:
        """Generate synthetic OHLCV candles ending near the current price."""
        interval = _TIMEFRAME_MS.get(timeframe, 86_400_000)
        now_ms = int(time.time() * 1000)
        start_ts = since if since is not None else now_ms - limit * interval

        candles: list[list[float]] = []
        price = self._get_price(symbol) * 0.98

        for i in range(limit):
            ts = start_ts + i * interval
            open_price = price
            close_price = open_price * (1 + self._rng.gauss(0, self._volatility * 5))
            wick = abs(open_price * self._rng.gauss(0, self._volatility * 5))
            high_price = max(open_price, close_price) + wick
            low_price = max(min(open_price, close_price) - wick, 0.01)
            volume = self._rng.uniform(50, 2000)

            candles.append([ts, open_price, high_price, low_price, close_price, volume])
            price = close_price

        return candles

    async def list_markets(self, quote: str = "KRW") -> list[str]:
        """List the built-in and pinned symbols quoted in quote."""
        suffix = f"/{quote.upper()}"
        return sorted(s for s in set(_DEFAULT_PRICES) | set(self._prices) if s.endswith(suffix))

    async def create_market_order(
        self,
        symbol: str,
        side: str,
        amount: float,
        sizing: OrderSizing = OrderSizing.BASE_QUANTITY,
    ) -> OrderFill:
        """Fill a market order at the current synthetic price."""
        if self._failures_pending > 0:
            self._failures_pending -= 1
            logger.warning("demo_order_rejected", symbol=symbol, side=side, amount=amount)
            raise OrderRejected(symbol, side, "demo failure injected")

        try:
            price = self._get_price(symbol)
        except MarketDataUnavailable as e:
            raise OrderRejected(symbol, side, "no market price") from e

        if sizing == OrderSizing.QUOTE_AMOUNT:
            quantity = amount / price
            cost = amount
        else:
            quantity = amount
            cost = amount * price

        fill = OrderFill(
            order_id=uuid.uuid4().hex[:8],
            symbol=symbol,
            side=side,
            price=price,
            quantity=quantity,
            cost=cost,
        )
        self.orders.append(fill)
        logger.info(
            "demo_market_order",
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            order_id=fill.order_id,
        )
        return fill


# Global demo client instance
_demo_client: DemoExchangeClient | None = None


def get_demo_client() -> DemoExchangeClient:
    """Get the global demo client instance."""
    global _demo_client
    if _demo_client is None:
        _demo_client = DemoExchangeClient()
    return _demo_client
