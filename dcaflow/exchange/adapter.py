"""Abstract base class for exchange adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class OrderSizing(str, Enum):
    """How the value of a market order is interpreted."""

    QUOTE_AMOUNT = "quote_amount"  # spend this much quote currency
    BASE_QUANTITY = "base_quantity"  # trade this much of the base asset


@dataclass(frozen=True)
class Ticker:
    """Current price of a symbol."""

    symbol: str
    price: float
    change_rate_pct: float = 0.0


@dataclass(frozen=True)
class OrderFill:
    """Result of an executed market order."""

    order_id: str
    symbol: str
    side: str
    price: float | None
    quantity: float | None
    cost: float | None

    def fill_price(self, fallback: float) -> float:
        """Executed price, or the quoted price when the exchange did not report one."""
        if self.price:
            return self.price
        if self.cost and self.quantity:
            return self.cost / self.quantity
        return fallback


class OrderExecutor(Protocol):
    """The narrow contract the position engine needs from an exchange."""

    async def get_ticker(self, symbol: str) -> Ticker: ...

    async def create_market_order(
        self,
        symbol: str,
        side: str,
        amount: float,
        sizing: OrderSizing = OrderSizing.BASE_QUANTITY,
    ) -> OrderFill: ...


class ExchangeAdapter(ABC):
    """
    Abstract base class for exchange adapters.

    The contract every exchange adapter implements for market data and
    order execution.
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if connected to exchange."""
        ...

    @abstractmethod
    async def connect(self) -> bool:
        """
        Connect to the exchange.

        Returns:
            True if connection successful, False otherwise
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the exchange."""
        ...

    @abstractmethod
    async def get_ticker(self, symbol: str) -> Ticker:
        """
        Get current price for a symbol.

        Raises:
            MarketDataUnavailable: If no price could be obtained
        """
        ...

    @abstractmethod
    async def get_ohlcv(
        self,
        symbol: str,
        timeframe: str = "1d",
        limit: int = 200,
        since: int | None = None,
    ) -> list[list[float]]:
        """
        Get OHLCV (candlestick) data, oldest first.

        Args:
            symbol: Trading pair
            timeframe: Candle timeframe (1m, 5m, 15m, 1h, 4h, 1d)
            limit: Number of candles to fetch
            since: Timestamp in milliseconds for start time (optional)

        Returns:
            List of [timestamp, open, high, low, close, volume]
        """
        ...

    @abstractmethod
    async def list_markets(self, quote: str = "KRW") -> list[str]:
        """
        List the symbols quoted in a currency.

        Args:
            quote: Quote currency (e.g., "KRW")

        Returns:
            Sorted BASE/QUOTE symbols
        """
        ...

    @abstractmethod
    async def create_market_order(
        self,
        symbol: str,
        side: str,
        amount: float,
        sizing: OrderSizing = OrderSizing.BASE_QUANTITY,
    ) -> OrderFill:
        """
        Create a market order.

        Args:
            symbol: Trading pair
            side: "buy" or "sell"
            amount: Quote amount or base quantity, depending on sizing
            sizing: How amount is interpreted

        Returns:
            The executed fill

        Raises:
            OrderRejected: If the exchange refused or failed the order
        """
        ...

    def _ensure_connected(self) -> None:
        """Raise error if not connected."""
        if not self.is_connected:
            raise RuntimeError("Not connected to exchange. Call connect() first.")
