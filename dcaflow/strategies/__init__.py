"""Trading strategy implementations.

The DCA ladder kernel is shared by the live position engine and the
backtest simulator.
"""

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

__all__ = [
    "ExitDecision",
    "PositionState",
    "StrategyRules",
    "apply_buy",
    "exit_decision",
    "next_buy_threshold",
    "pnl_pct",
    "scale_in_decision",
    "size_for_step",
    "stop_loss_price",
    "take_profit_price",
    "unrealized_pnl",
]
