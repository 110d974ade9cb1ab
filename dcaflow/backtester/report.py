"""Backtesting report and metrics."""

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dcaflow.backtester.engine import BacktestTrade
    from dcaflow.strategies.dca import StrategyRules


@dataclass(frozen=True)
class BacktestResult:
    """Result of a backtest run."""

    # Performance
    total_profit: float
    profit_rate: float  # percent of initial_amount (15.0 = 15%)

    # Trade statistics
    total_trades: int
    win_count: int
    loss_count: int

    # Risk metrics
    max_drawdown_pct: float

    # Supplementary
    initial_capital: float = 0.0
    final_equity: float = 0.0
    open_position: bool = False
    trades: tuple["BacktestTrade", ...] = field(default_factory=tuple)
    equity_curve: tuple[float, ...] = field(default_factory=tuple)

    @property
    def win_rate(self) -> float:
        """Fraction of completed trades that hit the profit target."""
        return self.win_count / self.total_trades if self.total_trades else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "performance": {
                "total_profit": self.total_profit,
                "profit_rate": self.profit_rate,
                "profit_rate_pct": f"{self.profit_rate:.2f}%",
                "initial_capital": self.initial_capital,
                "final_equity": self.final_equity,
            },
            "trades": {
                "total": self.total_trades,
                "wins": self.win_count,
                "losses": self.loss_count,
                "win_rate": self.win_rate,
                "open_position": self.open_position,
            },
            "risk": {
                "max_drawdown_pct": self.max_drawdown_pct,
            },
        }


class BacktestReporter:
    """Generates reports from backtest results."""

    @staticmethod
    def print_summary(result: BacktestResult, rules: "StrategyRules | None" = None) -> str:
        """
        Generate a formatted summary report.

        Returns:
            Formatted string for terminal output
        """
        sign = "+" if result.total_profit >= 0 else ""

        lines = [
            "",
            "=" * 50,
            "             BACKTEST REPORT",
            "=" * 50,
            "",
        ]

        if rules is not None:
            lines += [
                "STRATEGY",
                "-" * 50,
                f"  Max Steps:          {rules.max_steps}",
                f"  Buy Interval:       {rules.buy_interval_pct:.2f}%",
                f"  Target Profit:      {rules.target_profit_pct:.2f}%",
                f"  Stop Loss:          {rules.stop_loss_pct:.2f}%",
                f"  Initial Amount:     {rules.initial_amount:,.2f}",
                f"  Premium Rate:       {rules.premium_rate_pct:.2f}%",
                f"  Full Ladder Cost:   {rules.required_capital():,.2f}",
                "",
            ]

        lines += [
            "PERFORMANCE",
            "-" * 50,
            f"  Total Profit:       {sign}{result.total_profit:,.2f}",
            f"  Profit Rate:        {sign}{result.profit_rate:.2f}%",
            f"  Final Equity:       {result.final_equity:,.2f}",
            "",
            "TRADES",
            "-" * 50,
            f"  Total Trades:       {result.total_trades}",
            f"  Wins:               {result.win_count}",
            f"  Losses:             {result.loss_count}",
            f"  Win Rate:           {result.win_rate * 100:.1f}%",
            f"  Open at End:        {'yes' if result.open_position else 'no'}",
            "",
            "RISK",
            "-" * 50,
            f"  Max Drawdown:       {result.max_drawdown_pct:.2f}%",
            "",
            "=" * 50,
        ]

        return "\n".join(lines)

    @staticmethod
    def format_trade_list(result: BacktestResult, limit: int = 10) -> str:
        """
        Format recent trades as a table.

        Args:
            result: Backtest result
            limit: Maximum trades to show

        Returns:
            Formatted string
        """
        if not result.trades:
            return "No trades"

        lines = [
            "",
            "RECENT TRADES",
            "-" * 78,
            f"{'Exit Time':<20} {'Type':<7} {'Steps':>5} {'Avg':>12} {'Exit':>12} {'PnL':>14}",
            "-" * 78,
        ]

        for trade in result.trades[-limit:]:
            lines.append(
                f"{trade.exit_time:%Y-%m-%d %H:%M}     "
                f"{trade.exit_type.value:<7} "
                f"{trade.final_step:>5} "
                f"{trade.average_price:>12,.2f} "
                f"{trade.exit_price:>12,.2f} "
                f"{trade.pnl:>+14,.2f}"
            )

        lines.append("-" * 78)

        return "\n".join(lines)

    @staticmethod
    def save_trades_csv(result: BacktestResult, path: str | Path) -> None:
        """
        Save trades to CSV file.

        Args:
            result: Backtest result
            path: Output file path
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(
                [
                    "entry_time",
                    "exit_time",
                    "exit_type",
                    "final_step",
                    "average_price",
                    "exit_price",
                    "quantity",
                    "invested",
                    "pnl",
                    "pnl_pct",
                ]
            )
            for trade in result.trades:
                writer.writerow(
                    [
                        trade.entry_time.isoformat(),
                        trade.exit_time.isoformat(),
                        trade.exit_type.value,
                        trade.final_step,
                        trade.average_price,
                        trade.exit_price,
                        trade.quantity,
                        trade.invested,
                        trade.pnl,
                        trade.pnl_percentage,
                    ]
                )
