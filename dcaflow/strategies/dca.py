"""DCA (Dollar Cost Averaging) ladder rules and decision kernel.

Everything here is pure: functions take rules, a position state and a price,
and return a decision or a new state. The live PositionEngine and the
BacktestSimulator both drive a position exclusively through these functions.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dcaflow.config import StrategySettings


class ExitDecision(str, Enum):
    """Outcome of evaluating exit conditions at a price."""

    NONE = "NONE"
    PROFIT = "PROFIT"
    LOSS = "LOSS"


@dataclass(frozen=True)
class StrategyRules:
    """Martingale DCA ladder parameters.

    All percentages are in percent of the reference price (2.0 means 2%).
    """

    max_steps: int
    """Number of ladder rungs, including the initial buy."""

    buy_interval_pct: float
    """Drop from the last fill required before the next rung is bought."""

    target_profit_pct: float
    """Gain over the average price at which the whole position is sold."""

    stop_loss_pct: float
    """Loss below the average price at which the whole position is sold."""

    initial_amount: float
    """Quote currency spent on the first rung."""

    premium_rate_pct: float = 0.0
    """Geometric growth of each successive rung's size."""

    def __post_init__(self):
        """Validate ladder parameters."""
        if isinstance(self.max_steps, bool) or not isinstance(self.max_steps, int):
            raise ValueError(f"max_steps must be an integer, got {self.max_steps!r}")
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")
        if self.buy_interval_pct <= 0 or self.buy_interval_pct >= 100:
            raise ValueError(
                f"buy_interval_pct must be between 0 and 100, got {self.buy_interval_pct}"
            )
        if self.target_profit_pct <= 0:
            raise ValueError(f"target_profit_pct must be positive, got {self.target_profit_pct}")
        if self.stop_loss_pct <= 0 or self.stop_loss_pct >= 100:
            raise ValueError(f"stop_loss_pct must be between 0 and 100, got {self.stop_loss_pct}")
        if self.initial_amount <= 0:
            raise ValueError(f"initial_amount must be positive, got {self.initial_amount}")
        if self.premium_rate_pct < 0:
            raise ValueError(f"premium_rate_pct must be non-negative, got {self.premium_rate_pct}")

    @classmethod
    def from_settings(cls, settings: "StrategySettings") -> "StrategyRules":
        """Build rules from the strategy section of the settings."""
        return cls(
            max_steps=settings.max_steps,
            buy_interval_pct=settings.buy_interval_pct,
            target_profit_pct=settings.target_profit_pct,
            stop_loss_pct=settings.stop_loss_pct,
            initial_amount=settings.initial_amount,
            premium_rate_pct=settings.premium_rate_pct,
        )

    def size_for_step(self, step: int) -> float:
        """Quote amount spent on the given rung."""
        return size_for_step(self, step)

    def ladder_sizes(self) -> list[float]:
        """Sizes of every rung from 1 to max_steps."""
        return [size_for_step(self, step) for step in range(1, self.max_steps + 1)]

    def required_capital(self) -> float:
        """Total quote currency deployed if every rung fills."""
        return sum(self.ladder_sizes())


@dataclass(frozen=True)
class PositionState:
    """Snapshot of an open ladder position.

    While active, average_price always equals total_invested / total_quantity.
    An inactive state has every numeric field at zero.
    """

    is_active: bool = False
    current_step: int = 0
    average_price: float = 0.0
    total_quantity: float = 0.0
    total_invested: float = 0.0
    last_buy_price: float = 0.0

    @classmethod
    def empty(cls) -> "PositionState":
        """The idle, all-zero state."""
        return cls()

    def reset(self) -> "PositionState":
        """Return the idle state."""
        return PositionState.empty()


def size_for_step(rules: StrategyRules, step: int) -> float:
    """
    Quote amount for a ladder rung.

    size = initial_amount * (1 + premium_rate_pct / 100) ** (step - 1)

    Args:
        rules: Ladder parameters
        step: 1-based rung number

    Returns:
        Amount of quote currency to spend
    """
    if step < 1:
        raise ValueError(f"step must be at least 1, got {step}")
    if step == 1:
        return rules.initial_amount
    return rules.initial_amount * (1 + rules.premium_rate_pct / 100) ** (step - 1)


def next_buy_threshold(rules: StrategyRules, state: PositionState) -> float:
    """Price at or below which the next rung is bought.

    Measured from the last fill, so consecutive thresholds compound downward.
    """
    return state.last_buy_price * (1 - rules.buy_interval_pct / 100)


def apply_buy(
    rules: StrategyRules,
    state: PositionState,
    price: float,
    amount: float,
) -> PositionState:
    """
    Add a fill to the position.

    Args:
        rules: Ladder parameters
        state: Current position (may be idle for the first rung)
        price: Fill price
        amount: Quote currency spent

    Returns:
        The updated state, or the unchanged state when the ladder is full
    """
    if price <= 0:
        raise ValueError(f"fill price must be positive, got {price}")
    if amount <= 0:
        raise ValueError(f"fill amount must be positive, got {amount}")
    if state.current_step >= rules.max_steps:
        return state

    total_invested = state.total_invested + amount
    total_quantity = state.total_quantity + amount / price
    return replace(
        state,
        is_active=True,
        current_step=state.current_step + 1,
        total_invested=total_invested,
        total_quantity=total_quantity,
        average_price=total_invested / total_quantity,
        last_buy_price=price,
    )


def pnl_pct(state: PositionState, price: float) -> float:
    """Percent gain of price over the average entry; 0 with no position."""
    if state.average_price == 0:
        return 0.0
    return (price - state.average_price) / state.average_price * 100


def unrealized_pnl(state: PositionState, price: float) -> float:
    """Mark-to-market profit of the open position in quote currency."""
    return state.total_quantity * price - state.total_invested


def take_profit_price(rules: StrategyRules, state: PositionState) -> float:
    """Price at which the profit target is reached."""
    return state.average_price * (1 + rules.target_profit_pct / 100)


def stop_loss_price(rules: StrategyRules, state: PositionState) -> float:
    """Price at which the stop loss is reached."""
    return state.average_price * (1 - rules.stop_loss_pct / 100)


def exit_decision(rules: StrategyRules, state: PositionState, price: float) -> ExitDecision:
    """Decide whether price closes the position. PROFIT is checked first."""
    if not state.is_active:
        return ExitDecision.NONE

    pnl = pnl_pct(state, price)
    if pnl >= rules.target_profit_pct:
        return ExitDecision.PROFIT
    if pnl <= -rules.stop_loss_pct:
        return ExitDecision.LOSS
    return ExitDecision.NONE


def scale_in_decision(rules: StrategyRules, state: PositionState, price: float) -> bool:
    """Whether price has fallen far enough to buy the next rung."""
    return (
        state.is_active
        and state.current_step < rules.max_steps
        and price <= next_buy_threshold(rules, state)
    )
