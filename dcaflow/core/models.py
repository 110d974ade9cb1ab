"""Value objects emitted by the position engine."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ExitType(str, Enum):
    """Why a position was closed."""

    PROFIT = "PROFIT"
    LOSS = "LOSS"


class TickAction(str, Enum):
    """What the engine did with a price tick."""

    IDLE = "idle"
    HOLD = "hold"
    SCALE_IN = "scale_in"
    EXIT_PROFIT = "exit_profit"
    EXIT_LOSS = "exit_loss"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TradeRecord:
    """A completed position, appended to the trade history on exit."""

    coin: str
    exit_type: ExitType
    pnl_percentage: float
    pnl_amount: float
    total_invested: float
    final_step: int
    exit_price: float
    total_quantity: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_winner(self) -> bool:
        """Check if the trade closed at the profit target."""
        return self.exit_type == ExitType.PROFIT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "coin": self.coin,
            "exit_type": self.exit_type.value,
            "pnl_percentage": self.pnl_percentage,
            "pnl_amount": self.pnl_amount,
            "total_invested": self.total_invested,
            "final_step": self.final_step,
            "exit_price": self.exit_price,
            "total_quantity": self.total_quantity,
        }


@dataclass(frozen=True)
class PositionSnapshot:
    """Read-only view of an engine for rendering."""

    symbol: str
    is_active: bool
    current_step: int
    max_steps: int
    average_price: float
    total_quantity: float
    total_invested: float
    last_buy_price: float
    last_price: float | None
    change_rate_pct: float | None
    pnl_pct: float


@dataclass(frozen=True)
class TickResult:
    """Outcome of a single on_tick call."""

    action: TickAction
    price: float
    snapshot: PositionSnapshot
    trade: TradeRecord | None = None
    error: str | None = None
