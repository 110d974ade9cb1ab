"""Data loading utilities for backtesting."""

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import ccxt.async_support as ccxt
import pandas as pd

from dcaflow.core.logging import get_logger
from dcaflow.exchange.adapter import ExchangeAdapter

logger = get_logger(__name__)


@dataclass(frozen=True)
class PriceBar:
    """One historical bar. high and low default to close when unknown."""

    timestamp: datetime
    close: float
    high: float | None = None
    low: float | None = None

    def __post_init__(self):
        if self.close <= 0:
            raise ValueError(f"close must be positive, got {self.close}")
        if self.high is None:
            object.__setattr__(self, "high", self.close)
        if self.low is None:
            object.__setattr__(self, "low", self.close)
        if not (self.low <= self.close <= self.high):
            raise ValueError(
                f"bar at {self.timestamp} violates low <= close <= high "
                f"({self.low}, {self.close}, {self.high})"
            )

    @property
    def price(self) -> float:
        """Representative price of the bar."""
        return self.close


class DataLoader:
    """Loads historical OHLCV data for backtesting."""

    REQUIRED_COLUMNS = ["datetime", "close"]
    OPTIONAL_PRICE_COLUMNS = ["high", "low"]

    def __init__(self, exchange_client: ExchangeAdapter | None = None, batch_size: int = 200):
        """
        Initialize the data loader.

        Args:
            exchange_client: Adapter used by load_from_exchange
            batch_size: Candles requested per exchange call
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.exchange = exchange_client
        self.batch_size = batch_size

    async def load_from_exchange(
        self,
        symbol: str,
        timeframe: str = "1d",
        limit: int = 200,
        since: datetime | None = None,
    ) -> pd.DataFrame:
        """
        Load OHLCV data from the exchange, paging through batches.

        Exchanges cap the candles returned per request (Upbit returns at most
        200), so the range is walked forward from the start in batches of
        batch_size until limit candles are collected or the exchange runs out.

        Args:
            symbol: Trading pair (e.g., "BTC/KRW")
            timeframe: Candle timeframe (e.g., "1m", "1h", "1d")
            limit: Number of candles
            since: Optional start datetime (UTC). Defaults to limit candles
                before now.

        Returns:
            DataFrame with OHLCV data sorted by datetime
        """
        if self.exchange is None:
            raise ValueError("Exchange client required for loading from exchange")

        interval_ms = ccxt.Exchange.parse_timeframe(timeframe) * 1000
        if since is not None:
            current_start = int(since.timestamp() * 1000)
        else:
            current_start = int(datetime.now(UTC).timestamp() * 1000) - limit * interval_ms

        logger.info(
            "loading_historical_data",
            symbol=symbol,
            timeframe=timeframe,
            limit=limit,
            start=datetime.fromtimestamp(current_start / 1000, tz=UTC).isoformat(),
        )

        all_candles: list[list[float]] = []

        while len(all_candles) < limit:
            batch = min(self.batch_size, limit - len(all_candles))
            candles = await self.exchange.get_ohlcv(
                symbol=symbol,
                timeframe=timeframe,
                limit=batch,
                since=current_start,
            )

            if not candles:
                break

            all_candles.extend(candles)

            # Move to next batch
            last_timestamp = candles[-1][0]
            if last_timestamp < current_start:
                break
            current_start = last_timestamp + 1

            if len(candles) < batch:
                break

        if not all_candles:
            raise ValueError(f"No data found for {symbol}")

        df = pd.DataFrame(
            all_candles,
            columns=["timestamp", "open", "high", "low", "close", "volume"],
        )
        df["datetime"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
        df = df.drop(columns=["timestamp"])
        df = df.drop_duplicates(subset="datetime").sort_values("datetime")
        df = df.head(limit).reset_index(drop=True)

        logger.info("data_loaded", symbol=symbol, candles=len(df))

        return df

    def load_from_csv(self, path: str | Path) -> pd.DataFrame:
        """
        Load OHLCV data from CSV file.

        Expected CSV format (only datetime and close are required; high and
        low default to close):
        datetime,open,high,low,close,volume
        2024-01-01 00:00:00,42000.0,42100.0,41900.0,42050.0,100.5

        Args:
            path: Path to CSV file

        Returns:
            DataFrame with OHLCV data sorted by datetime
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {path}")

        logger.info("loading_csv", path=str(path))

        df = pd.read_csv(path)

        if not self.validate_data(df):
            raise ValueError(f"Invalid CSV format. Required columns: {self.REQUIRED_COLUMNS}")

        df["datetime"] = pd.to_datetime(df["datetime"], utc=True)
        df = df.sort_values("datetime").reset_index(drop=True)

        logger.info("csv_loaded", candles=len(df))

        return df

    def validate_data(self, df: pd.DataFrame) -> bool:
        """
        Validate that DataFrame has the columns a replay needs.

        Args:
            df: DataFrame to validate

        Returns:
            True if valid, False otherwise
        """
        missing = set(self.REQUIRED_COLUMNS) - set(df.columns)
        if missing:
            logger.warning("missing_columns", columns=sorted(missing))
            return False

        optional = [col for col in self.OPTIONAL_PRICE_COLUMNS if col in df.columns]

        for col in self.REQUIRED_COLUMNS + optional:
            if df[col].isna().any():
                logger.warning("null_values_found", column=col)
                return False

        for col in ["close", *optional]:
            if not pd.api.types.is_numeric_dtype(df[col]):
                logger.warning("non_numeric_column", column=col)
                return False

        return True

    @staticmethod
    def to_bars(df: pd.DataFrame) -> list[PriceBar]:
        """
        Convert an OHLCV DataFrame into PriceBars, oldest first.

        Missing high/low columns fall back to close.
        """
        df = df.sort_values("datetime")
        has_high = "high" in df.columns
        has_low = "low" in df.columns

        bars = []
        for row in df.itertuples(index=False):
            timestamp = pd.Timestamp(row.datetime)
            if timestamp.tzinfo is None:
                timestamp = timestamp.tz_localize(UTC)
            bars.append(
                PriceBar(
                    timestamp=timestamp.to_pydatetime(),
                    close=float(row.close),
                    high=float(row.high) if has_high else None,
                    low=float(row.low) if has_low else None,
                )
            )
        return bars
