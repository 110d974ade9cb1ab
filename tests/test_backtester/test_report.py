"""Tests for backtest reporting."""

import csv

from dcaflow.backtester.engine import run_backtest
from dcaflow.backtester.report import BacktestReporter, BacktestResult


def _empty_result() -> BacktestResult:
    return BacktestResult(
        total_profit=0.0,
        profit_rate=0.0,
        total_trades=0,
        win_count=0,
        loss_count=0,
        max_drawdown_pct=0.0,
    )


class TestBacktestResult:
    """Tests for BacktestResult."""

    def test_win_rate_without_trades(self):
        assert _empty_result().win_rate == 0.0

    def test_to_dict(self, rules, make_bars):
        result = run_backtest(rules, make_bars([100.0, 95.0, 90.25, 100.0]))
        data = result.to_dict()

        assert data["trades"]["total"] == 1
        assert data["trades"]["win_rate"] == 1.0
        assert data["performance"]["profit_rate_pct"] == "16.07%"
        assert data["risk"]["max_drawdown_pct"] == result.max_drawdown_pct


class TestBacktestReporter:
    """Tests for BacktestReporter."""

    def test_print_summary(self, rules, make_bars):
        result = run_backtest(rules, make_bars([100.0, 95.0, 90.25, 100.0]))
        summary = BacktestReporter.print_summary(result, rules)

        assert "BACKTEST REPORT" in summary
        assert "Max Steps:          3" in summary
        assert "+16.07%" in summary
        assert "14.75%" in summary

    def test_print_summary_without_rules(self):
        summary = BacktestReporter.print_summary(_empty_result())
        assert "STRATEGY" not in summary
        assert "Total Trades:       0" in summary

    def test_format_trade_list_empty(self):
        assert BacktestReporter.format_trade_list(_empty_result()) == "No trades"

    def test_format_trade_list(self, rules, make_bars):
        result = run_backtest(rules, make_bars([100.0, 106.0, 106.0, 112.0]))
        table = BacktestReporter.format_trade_list(result, limit=1)

        assert "RECENT TRADES" in table
        assert table.count("PROFIT") == 1
        assert "2024-01-04" in table

    def test_save_trades_csv(self, rules, make_bars, tmp_path):
        result = run_backtest(rules, make_bars([100.0, 98.0, (91.0, 92.0, 89.0)]))
        path = tmp_path / "out" / "trades.csv"

        BacktestReporter.save_trades_csv(result, path)

        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))

        assert len(rows) == 1
        assert rows[0]["exit_type"] == "LOSS"
        assert float(rows[0]["pnl"]) == -1000.0
