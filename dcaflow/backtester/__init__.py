"""Backtesting module for ladder validation."""

from dcaflow.backtester.data import DataLoader, PriceBar
from dcaflow.backtester.engine import BacktestSimulator, BacktestTrade, run_backtest
from dcaflow.backtester.report import BacktestReporter, BacktestResult

__all__ = [
    "BacktestReporter",
    "BacktestResult",
    "BacktestSimulator",
    "BacktestTrade",
    "DataLoader",
    "PriceBar",
    "run_backtest",
]
