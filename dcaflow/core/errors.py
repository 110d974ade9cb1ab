"""Error kinds raised by the position engine and its collaborators."""


class DCAFlowError(Exception):
    """Base class for all DCAFlow errors."""


class AlreadyActive(DCAFlowError):
    """start() was called while a position is open."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Position on {symbol} is already active")


class NotActive(DCAFlowError):
    """A scale-in or exit was attempted with no open position."""

    def __init__(self, symbol: str, action: str):
        self.symbol = symbol
        self.action = action
        super().__init__(f"Cannot {action}: no active position on {symbol}")


class MarketDataUnavailable(DCAFlowError):
    """No price could be obtained for a required decision."""

    def __init__(self, symbol: str, reason: str = "no price available"):
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Market data unavailable for {symbol}: {reason}")


class OrderRejected(DCAFlowError):
    """The exchange signaled a failure placing an order."""

    def __init__(self, symbol: str, side: str, reason: str):
        self.symbol = symbol
        self.side = side
        self.reason = reason
        super().__init__(f"{side.upper()} order on {symbol} rejected: {reason}")
