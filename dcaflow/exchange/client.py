"""CCXT async wrapper for spot exchange connectivity."""

from typing import Any

import ccxt.async_support as ccxt

from dcaflow.config import Settings
from dcaflow.core.errors import MarketDataUnavailable, OrderRejected
from dcaflow.core.logging import LogMessages, get_logger
from dcaflow.exchange.adapter import ExchangeAdapter, OrderFill, OrderSizing, Ticker

logger = get_logger(__name__)


class CcxtExchangeClient(ExchangeAdapter):
    """
    Async spot exchange client via CCXT.

    Credentials and exchange choice come from the Settings passed to the
    constructor; the client never reads configuration on its own. Timeouts
    and rate limiting are left to CCXT.
    """

    def __init__(self, settings: Settings, sandbox: bool = False):
        """Initialize the client.

        Args:
            settings: Application settings (exchange id and API keys)
            sandbox: Whether to use the exchange's sandbox/testnet mode
        """
        self.settings = settings
        self.exchange_id = settings.system.exchange.lower()
        self._exchange: Any = None
        self._sandbox = sandbox

    async def connect(self) -> bool:
        """Connect to the exchange.

        Returns:
            True if connection successful, False otherwise
        """
        exchange_class = getattr(ccxt, self.exchange_id, None)
        if exchange_class is None:
            logger.error("exchange_not_supported", exchange=self.exchange_id)
            return False

        config: dict[str, Any] = {
            "enableRateLimit": True,
            "options": {"defaultType": "spot"},
        }
        if self.settings.has_exchange_credentials:
            config["apiKey"] = self.settings.exchange_api_key.get_secret_value()
            config["secret"] = self.settings.exchange_api_secret.get_secret_value()

        try:
            self._exchange = exchange_class(config)
            if self._sandbox:
                self._exchange.set_sandbox_mode(True)
                logger.info("exchange_sandbox_mode_enabled")
            await self._exchange.load_markets()
        except ccxt.NetworkError as e:
            logger.error("exchange_network_error", error=str(e))
            await self._close()
            return False
        except ccxt.ExchangeError as e:
            logger.error("exchange_error", error=str(e))
            await self._close()
            return False

        msg = LogMessages.connection_status(self.exchange_id, connected=True)
        logger.info(msg.technical)
        return True

    async def disconnect(self) -> None:
        """Disconnect from the exchange."""
        if self._exchange:
            await self._close()
            msg = LogMessages.connection_status(self.exchange_id, connected=False)
            logger.info(msg.technical)

    async def _close(self) -> None:
        if self._exchange is not None:
            await self._exchange.close()
            self._exchange = None

    @property
    def is_connected(self) -> bool:
        """Check if connected to exchange."""
        return self._exchange is not None

    async def get_ticker(self, symbol: str) -> Ticker:
        """Get current price and 24h change for a symbol."""
        self._ensure_connected()

        try:
            ticker = await self._exchange.fetch_ticker(symbol)
        except ccxt.BaseError as e:
            raise MarketDataUnavailable(symbol, str(e)) from e

        price = ticker.get("last")
        if not price:
            raise MarketDataUnavailable(symbol, "ticker has no last price")

        return Ticker(
            symbol=symbol,
            price=float(price),
            change_rate_pct=float(ticker.get("percentage") or 0.0),
        )

    async def get_ohlcv(
        self,
        symbol: str,
        timeframe: str = "1d",
        limit: int = 200,
        since: int | None = None,
    ) -> list[list[float]]:
        """Get OHLCV (candlestick) data, oldest first."""
        self._ensure_connected()

        try:
            ohlcv = await self._exchange.fetch_ohlcv(symbol, timeframe, since=since, limit=limit)
        except ccxt.BaseError as e:
            raise MarketDataUnavailable(symbol, str(e)) from e

        return sorted(ohlcv, key=lambda candle: candle[0])

    async def list_markets(self, quote: str = "KRW") -> list[str]:
        """List active spot symbols quoted in quote."""
        self._ensure_connected()

        try:
            markets = await self._exchange.load_markets()
        except ccxt.BaseError as e:
            raise MarketDataUnavailable(quote, str(e)) from e

        quote = quote.upper()
        return sorted(
            symbol
            for symbol, market in markets.items()
            if market.get("quote") == quote
            and market.get("spot", True)
            and market.get("active") is not False
        )

    async def create_market_order(
        self,
        symbol: str,
        side: str,
        amount: float,
        sizing: OrderSizing = OrderSizing.BASE_QUANTITY,
    ) -> OrderFill:
        """Create a market order.

        Quote-sized buys go through CCXT's create_market_buy_order_with_cost,
        which maps to the exchange's "spend this much" order type.
        """
        self._ensure_connected()

        try:
            if sizing == OrderSizing.QUOTE_AMOUNT:
                if side != "buy":
                    raise OrderRejected(symbol, side, "quote-sized orders are buy-only")
                order = await self._exchange.create_market_buy_order_with_cost(symbol, amount)
            else:
                order = await self._exchange.create_market_order(symbol, side, amount)
        except ccxt.BaseError as e:
            logger.error("market_order_failed", symbol=symbol, side=side, error=str(e))
            raise OrderRejected(symbol, side, str(e)) from e

        logger.info(
            "market_order_created",
            symbol=symbol,
            side=side,
            amount=amount,
            sizing=sizing.value,
            order_id=order.get("id"),
        )
        return OrderFill(
            order_id=str(order.get("id")),
            symbol=symbol,
            side=side,
            price=order.get("average") or order.get("price"),
            quantity=order.get("filled"),
            cost=order.get("cost"),
        )
