"""CLI runner for backtesting."""

from __future__ import annotations

import argparse
import asyncio
from datetime import UTC, datetime
from pathlib import Path

from dcaflow.backtester.data import DataLoader, PriceBar
from dcaflow.backtester.engine import BacktestSimulator
from dcaflow.backtester.report import BacktestReporter, BacktestResult
from dcaflow.config import Settings, get_settings
from dcaflow.core.logging import get_logger, setup_logging
from dcaflow.exchange import get_exchange_adapter
from dcaflow.strategies.dca import StrategyRules

logger = get_logger(__name__)


async def load_bars(
    symbol: str,
    settings: Settings,
    data_source: str | None = None,
    timeframe: str | None = None,
    limit: int | None = None,
    since: datetime | None = None,
) -> list[PriceBar]:
    """
    Load bars from a CSV file or from the configured exchange.

    Args:
        symbol: Trading pair
        settings: Application settings (exchange and backtest defaults)
        data_source: CSV file path, or a directory holding BASE_QUOTE.csv
        timeframe: Candle timeframe (defaults to settings.backtest.timeframe)
        limit: Number of candles (defaults to settings.backtest.limit)
        since: Optional start datetime for exchange data

    Returns:
        Bars ordered oldest first
    """
    if data_source:
        path = Path(data_source)
        if path.is_dir():
            path = path / (symbol.replace("/", "_") + ".csv")
        loader = DataLoader()
        return loader.to_bars(loader.load_from_csv(path))

    exchange = get_exchange_adapter(settings)
    if not await exchange.connect():
        raise RuntimeError(f"Failed to connect to {settings.system.exchange}")

    try:
        loader = DataLoader(exchange_client=exchange)
        df = await loader.load_from_exchange(
            symbol=symbol,
            timeframe=timeframe or settings.backtest.timeframe,
            limit=limit or settings.backtest.limit,
            since=since,
        )
    finally:
        await exchange.disconnect()

    return loader.to_bars(df)


async def run_backtest(
    symbol: str,
    rules: StrategyRules,
    settings: Settings,
    data_source: str | None = None,
    timeframe: str | None = None,
    limit: int | None = None,
    since: datetime | None = None,
    initial_capital: float | None = None,
) -> BacktestResult:
    """
    Load data and run a complete backtest.

    Returns:
        BacktestResult with metrics
    """
    bars = await load_bars(
        symbol,
        settings,
        data_source=data_source,
        timeframe=timeframe,
        limit=limit,
        since=since,
    )
    if not bars:
        raise ValueError(f"No data loaded for {symbol}")

    logger.info("backtest_data_ready", symbol=symbol, bars=len(bars))
    return BacktestSimulator(rules, initial_capital=initial_capital).run(bars)


def parse_date(date_str: str) -> datetime:
    """Parse date string to datetime."""
    return datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=UTC)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    """Build the argument parser with defaults taken from settings."""
    strategy = settings.strategy

    parser = argparse.ArgumentParser(
        description="DCAFlow Backtesting Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Backtest the configured ladder on recent daily candles
  %(prog)s --symbol BTC/KRW

  # Tighter ladder with growing rungs
  %(prog)s --symbol BTC/KRW --max-steps 5 --interval 3 --premium 10

  # Backtest from a CSV file
  %(prog)s --symbol BTC/KRW --data ./historical_data/BTC_KRW.csv --trades 20
        """,
    )

    parser.add_argument(
        "--symbol",
        "-s",
        default=settings.system.symbol,
        help=f"Trading pair (default: {settings.system.symbol})",
    )
    parser.add_argument(
        "--timeframe",
        "-t",
        default=settings.backtest.timeframe,
        help=f"Candle timeframe (default: {settings.backtest.timeframe})",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.backtest.limit,
        help=f"Number of candles to load (default: {settings.backtest.limit})",
    )
    parser.add_argument("--since", help="Start date for exchange data (YYYY-MM-DD)")
    parser.add_argument(
        "--data",
        "-d",
        help="CSV file or directory with BASE_QUOTE.csv files (optional)",
    )

    parser.add_argument("--max-steps", type=int, default=strategy.max_steps)
    parser.add_argument("--interval", type=float, default=strategy.buy_interval_pct)
    parser.add_argument("--target", type=float, default=strategy.target_profit_pct)
    parser.add_argument("--stop-loss", type=float, default=strategy.stop_loss_pct)
    parser.add_argument("--amount", type=float, default=strategy.initial_amount)
    parser.add_argument("--premium", type=float, default=strategy.premium_rate_pct)
    parser.add_argument(
        "--capital",
        type=float,
        help="Equity base for drawdown (default: the initial amount)",
    )

    parser.add_argument(
        "--output",
        "-o",
        help="Output directory for CSV reports",
    )
    parser.add_argument(
        "--trades",
        type=int,
        default=0,
        help="Show last N trades (default: 0 = none)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for backtesting."""
    settings = get_settings()
    setup_logging(level=settings.system.log_level)

    args = build_parser(settings).parse_args(argv)

    try:
        rules = StrategyRules(
            max_steps=args.max_steps,
            buy_interval_pct=args.interval,
            target_profit_pct=args.target,
            stop_loss_pct=args.stop_loss,
            initial_amount=args.amount,
            premium_rate_pct=args.premium,
        )
    except ValueError as e:
        print(f"\nInvalid strategy: {e}")
        return 2

    print("\nDCAFlow Backtest")
    print(f"Symbol: {args.symbol}")
    print(f"Source: {args.data or settings.system.exchange} ({args.timeframe})")
    print("\nLoading data and running backtest...")

    try:
        result = asyncio.run(
            run_backtest(
                symbol=args.symbol,
                rules=rules,
                settings=settings,
                data_source=args.data,
                timeframe=args.timeframe,
                limit=args.limit,
                since=parse_date(args.since) if args.since else None,
                initial_capital=args.capital,
            )
        )
    except Exception as e:
        logger.error("backtest_failed", error=str(e))
        print(f"\nError: {e}")
        return 1

    print(BacktestReporter.print_summary(result, rules))

    if args.trades > 0:
        print(BacktestReporter.format_trade_list(result, limit=args.trades))

    if args.output:
        output_dir = Path(args.output)
        trades_path = output_dir / "trades.csv"
        BacktestReporter.save_trades_csv(result, trades_path)
        print(f"\nTrades saved to: {trades_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
