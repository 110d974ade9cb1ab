"""Structured logging configuration using structlog."""

import logging
import sys

import structlog
from structlog.types import Processor


def get_log_level(level: str) -> int:
    """Convert string log level to logging constant."""
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    return levels.get(level.upper(), logging.INFO)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Whether to use JSON format (for production)
    """
    log_level = get_log_level(level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # ccxt and aiohttp log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    logging.getLogger("ccxt").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """
    Get a logger instance.

    Args:
        name: Optional logger name (module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class LogMessages:
    """
    Centralized log messages with beginner-friendly and technical versions.

    Usage:
        msg = LogMessages.order_filled("BTC/KRW", "buy", 0.001, 95_000_000)
        logger.info(msg.simple)  # For beginners
        logger.debug(msg.technical)  # For advanced users
    """

    class Message:
        """A log message with simple and technical versions."""

        def __init__(self, simple: str, technical: str):
            self.simple = simple
            self.technical = technical

        def __str__(self) -> str:
            return self.simple

    @staticmethod
    def order_filled(
        symbol: str, side: str, quantity: float, price: float
    ) -> "LogMessages.Message":
        """Order filled message."""
        action = "Bought" if side == "buy" else "Sold"
        return LogMessages.Message(
            simple=f"{action} {quantity:.8f} {symbol.split('/')[0]} at {price:,.2f}",
            technical=f"Order filled: {side.upper()} {quantity} {symbol} @ {price}",
        )

    @staticmethod
    def order_rejected(symbol: str, side: str, reason: str) -> "LogMessages.Message":
        """Order rejected message."""
        return LogMessages.Message(
            simple=f"Could not {side} {symbol.split('/')[0]}: {reason}",
            technical=f"Order rejected: {side.upper()} {symbol} | reason={reason}",
        )

    @staticmethod
    def step_added(symbol: str, step: int, max_steps: int, average: float) -> "LogMessages.Message":
        """Ladder scale-in message."""
        return LogMessages.Message(
            simple=f"Bought the dip on {symbol} (step {step}/{max_steps}), average now {average:,.2f}",
            technical=f"Scale-in: {symbol} step={step}/{max_steps} avg={average}",
        )

    @staticmethod
    def position_closed(
        symbol: str, exit_type: str, pnl_pct: float, pnl_amount: float
    ) -> "LogMessages.Message":
        """Position exit message."""
        if exit_type == "PROFIT":
            simple = f"Took profit on {symbol}: {pnl_pct:+.2f}% ({pnl_amount:+,.2f})"
        else:
            simple = f"Stopped out of {symbol}: {pnl_pct:+.2f}% ({pnl_amount:+,.2f})"
        return LogMessages.Message(
            simple=simple,
            technical=f"Exit: {symbol} type={exit_type} pnl_pct={pnl_pct:.4f} pnl={pnl_amount:.4f}",
        )

    @staticmethod
    def connection_status(exchange: str, connected: bool) -> "LogMessages.Message":
        """Connection status message."""
        if connected:
            return LogMessages.Message(
                simple=f"Connected to {exchange}",
                technical=f"Exchange connection established: {exchange}",
            )
        return LogMessages.Message(
            simple=f"Disconnected from {exchange}",
            technical=f"Exchange connection closed: {exchange}",
        )
