"""Backtesting simulator replaying a DCA ladder over historical bars."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from dcaflow.backtester.data import PriceBar
from dcaflow.backtester.report import BacktestResult
from dcaflow.core.logging import get_logger
from dcaflow.core.models import ExitType
from dcaflow.strategies.dca import (
    ExitDecision,
    PositionState,
    StrategyRules,
    apply_buy,
    exit_decision,
    next_buy_threshold,
    pnl_pct,
    scale_in_decision,
    size_for_step,
    stop_loss_price,
    take_profit_price,
    unrealized_pnl,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class BacktestTrade:
    """A ladder position closed during backtesting."""

    entry_time: datetime
    exit_time: datetime
    exit_type: ExitType
    final_step: int
    average_price: float
    exit_price: float
    quantity: float
    invested: float
    pnl: float
    pnl_percentage: float

    @property
    def is_winner(self) -> bool:
        """Check if the trade closed at the profit target."""
        return self.exit_type == ExitType.PROFIT


class BacktestSimulator:
    """
    Replays bars through the same decision functions the live engine uses.

    Per bar:
    1. With no position, open the first rung at the close and move on.
    2. Stop loss is tested against the low before take profit against the
       high. Exits fill at the trigger price clamped into the bar range, so a
       bar that gaps through a level fills at the nearest traded price.
    3. Otherwise every rung whose threshold the low reached is filled in
       order at its threshold, or at the high when the bar opened below it.
       Each following threshold compounds from the actual fill.
    4. Equity is marked at the close.

    The simulator holds no state between runs, so repeated runs over the same
    bars produce identical results.
    """

    def __init__(self, rules: StrategyRules, initial_capital: float | None = None):
        """
        Initialize the simulator.

        Args:
            rules: Ladder parameters
            initial_capital: Base of the equity curve. Defaults to
                rules.initial_amount.
        """
        self.rules = rules
        self.initial_capital = (
            initial_capital if initial_capital is not None else rules.initial_amount
        )

    def run(self, bars: Sequence[PriceBar]) -> BacktestResult:
        """
        Run the simulation.

        Args:
            bars: Bars in strictly increasing timestamp order

        Returns:
            BacktestResult with trades, equity curve and drawdown

        Raises:
            ValueError: If bars are out of order or share a timestamp
        """
        self._check_order(bars)

        rules = self.rules
        state = PositionState.empty()
        entry_time: datetime | None = None
        trades: list[BacktestTrade] = []
        banked = 0.0

        equity_curve = [self.initial_capital]
        peak = self.initial_capital
        max_drawdown = 0.0

        logger.info("backtest_starting", bars=len(bars), max_steps=rules.max_steps)

        for bar in bars:
            if not state.is_active:
                state = apply_buy(rules, state, bar.close, size_for_step(rules, 1))
                entry_time = bar.timestamp
                logger.debug("backtest_opened", timestamp=bar.timestamp, price=bar.close)
            else:
                exit_type, exit_price = self._check_exit(state, bar)
                if exit_type is not None:
                    trade = self._close(state, exit_type, exit_price, entry_time, bar.timestamp)
                    trades.append(trade)
                    banked += trade.pnl
                    state = PositionState.empty()
                    entry_time = None
                else:
                    while scale_in_decision(rules, state, bar.low):
                        price = min(next_buy_threshold(rules, state), bar.high)
                        state = apply_buy(
                            rules, state, price, size_for_step(rules, state.current_step + 1)
                        )
                        logger.debug(
                            "backtest_scaled_in",
                            timestamp=bar.timestamp,
                            price=price,
                            step=state.current_step,
                        )

            equity = self.initial_capital + banked
            if state.is_active:
                equity += unrealized_pnl(state, bar.close)
            equity_curve.append(equity)

            peak = max(peak, equity)
            if peak > 0:
                max_drawdown = max(max_drawdown, (peak - equity) / peak * 100)

        wins = sum(1 for t in trades if t.is_winner)

        result = BacktestResult(
            total_profit=banked,
            profit_rate=banked / rules.initial_amount * 100,
            total_trades=len(trades),
            win_count=wins,
            loss_count=len(trades) - wins,
            max_drawdown_pct=max_drawdown,
            initial_capital=self.initial_capital,
            final_equity=equity_curve[-1],
            open_position=state.is_active,
            trades=tuple(trades),
            equity_curve=tuple(equity_curve),
        )

        logger.info(
            "backtest_completed",
            trades=result.total_trades,
            total_profit=round(result.total_profit, 2),
            max_drawdown_pct=round(result.max_drawdown_pct, 2),
        )

        return result

    def _check_exit(
        self, state: PositionState, bar: PriceBar
    ) -> tuple[ExitType | None, float]:
        if exit_decision(self.rules, state, bar.low) == ExitDecision.LOSS:
            return ExitType.LOSS, min(stop_loss_price(self.rules, state), bar.high)
        if exit_decision(self.rules, state, bar.high) == ExitDecision.PROFIT:
            return ExitType.PROFIT, max(take_profit_price(self.rules, state), bar.low)
        return None, 0.0

    @staticmethod
    def _close(
        state: PositionState,
        exit_type: ExitType,
        exit_price: float,
        entry_time: datetime,
        exit_time: datetime,
    ) -> BacktestTrade:
        trade = BacktestTrade(
            entry_time=entry_time,
            exit_time=exit_time,
            exit_type=exit_type,
            final_step=state.current_step,
            average_price=state.average_price,
            exit_price=exit_price,
            quantity=state.total_quantity,
            invested=state.total_invested,
            pnl=state.total_quantity * exit_price - state.total_invested,
            pnl_percentage=pnl_pct(state, exit_price),
        )
        logger.debug(
            "backtest_closed",
            timestamp=exit_time,
            exit_type=exit_type.value,
            price=exit_price,
            pnl=trade.pnl,
        )
        return trade

    @staticmethod
    def _check_order(bars: Sequence[PriceBar]) -> None:
        for previous, current in zip(bars, bars[1:]):
            if current.timestamp <= previous.timestamp:
                raise ValueError(
                    f"bars must be in strictly increasing time order: "
                    f"{current.timestamp} follows {previous.timestamp}"
                )


def run_backtest(
    rules: StrategyRules,
    bars: Sequence[PriceBar],
    initial_capital: float | None = None,
) -> BacktestResult:
    """Run a single backtest over bars."""
    return BacktestSimulator(rules, initial_capital=initial_capital).run(bars)
