"""DCAFlow main entrypoint."""

import argparse
import asyncio
import signal
from datetime import datetime

from dcaflow import __version__
from dcaflow.config import Settings, get_settings
from dcaflow.core.engine import PositionEngine
from dcaflow.core.errors import AlreadyActive, MarketDataUnavailable, OrderRejected
from dcaflow.core.events import (
    Event,
    EventType,
    get_event_bus,
    price_update_event,
    system_event,
)
from dcaflow.core.logging import LogMessages, get_logger, setup_logging
from dcaflow.core.models import TickAction, TickResult
from dcaflow.exchange import ExchangeAdapter, get_exchange_adapter
from dcaflow.strategies.dca import StrategyRules

logger = get_logger(__name__)


BANNER = """
  ┌─────────────────────────────────────────────┐
  │   DCAFlow - martingale DCA ladder trader    │
  └─────────────────────────────────────────────┘
"""


class DCAFlow:
    """Main application class."""

    def __init__(
        self,
        settings: Settings | None = None,
        exchange: ExchangeAdapter | None = None,
        auto_start: bool = False,
    ):
        """
        Initialize the application.

        Args:
            settings: Application settings (global settings when None)
            exchange: Exchange adapter (built from settings when None)
            auto_start: Open the position as soon as the exchange is connected
        """
        self.settings = settings or get_settings()
        self.event_bus = get_event_bus()
        self.symbol = self.settings.system.symbol
        self.auto_start = auto_start
        self._running = False
        self._subscribed = False
        self._shutdown_event = asyncio.Event()
        self.trade_log: list[str] = []
        self._client = exchange or get_exchange_adapter(self.settings)

        self.rules = StrategyRules.from_settings(self.settings.strategy)
        self.engine = PositionEngine(
            symbol=self.symbol,
            rules=self.rules,
            executor=self._client,
            event_bus=self.event_bus,
            retry_failed_exit=self.settings.system.retry_failed_exit,
        )

    async def startup(self) -> None:
        """Connect the exchange and start the event bus."""
        print(BANNER)
        print(f"  Version: {__version__}")
        print(f"  Mode: {self.settings.system.mode.upper()}")
        print(f"  Exchange: {self.settings.system.exchange}")
        print(f"  Symbol: {self.symbol}")
        print(
            f"  Ladder: {self.rules.max_steps} steps, "
            f"every -{self.rules.buy_interval_pct}%, "
            f"TP +{self.rules.target_profit_pct}%, SL -{self.rules.stop_loss_pct}%"
        )
        print()

        connected = await self._client.connect()
        msg = LogMessages.connection_status(self.settings.system.exchange, connected)
        if not connected:
            logger.error(msg.technical)
            raise RuntimeError(f"Failed to connect to {self.settings.system.exchange}")
        logger.info(msg.technical)
        print(f"  {msg.simple}")

        self._subscribe_handlers()
        await self.event_bus.start()
        await self.event_bus.publish(
            system_event(EventType.SYSTEM_STARTED, f"DCAFlow {__version__} started")
        )

        self._running = True
        logger.info("dcaflow_started", mode=self.settings.system.mode, symbol=self.symbol)

        if self.auto_start:
            await self.start_position()

        print()
        print("  Press Ctrl+C to stop")
        print()

    async def start_position(self) -> None:
        """Open the ladder at the current price."""
        try:
            snapshot = await self.engine.start()
        except (AlreadyActive, MarketDataUnavailable, OrderRejected) as e:
            logger.warning("start_failed", symbol=self.symbol, error=str(e))
            return
        logger.info("position_started", symbol=self.symbol, price=snapshot.average_price)

    def _subscribe_handlers(self) -> None:
        """Route position and order events to the console trade log."""
        if self._subscribed:
            return

        self.event_bus.subscribe(EventType.POSITION_OPENED, self._on_position_opened)
        self.event_bus.subscribe(EventType.POSITION_SCALED, self._on_position_scaled)
        self.event_bus.subscribe(EventType.POSITION_CLOSED, self._on_position_closed)
        self.event_bus.subscribe(EventType.ORDER_REJECTED, self._on_order_rejected)

        self._subscribed = True
        logger.debug("trade_log_subscribed")

    def _record(self, line: str) -> None:
        now = datetime.now().strftime("%H:%M:%S")
        entry = f"[{now}] {line}"
        self.trade_log.append(entry)
        print(f"  {entry}")

    async def _on_position_opened(self, event: Event) -> None:
        """Handle position opened events."""
        data = event.data
        price = data.get("price", 0.0)
        quantity = data.get("amount", 0.0) / price if price else 0.0
        msg = LogMessages.order_filled(data.get("symbol", self.symbol), "buy", quantity, price)
        self._record(f"OPENED  {msg.simple}")

    async def _on_position_scaled(self, event: Event) -> None:
        """Handle scale-in events."""
        data = event.data
        msg = LogMessages.step_added(
            data.get("symbol", self.symbol),
            data.get("step", 0),
            self.rules.max_steps,
            data.get("average_price", 0.0),
        )
        self._record(f"SCALED  {msg.simple}")

    async def _on_position_closed(self, event: Event) -> None:
        """Handle position closed events."""
        data = event.data
        msg = LogMessages.position_closed(
            data.get("coin", self.symbol),
            data.get("exit_type", ""),
            data.get("pnl_percentage", 0.0),
            data.get("pnl_amount", 0.0),
        )
        self._record(f"CLOSED  {msg.simple}")
        logger.info(
            "trade_recorded",
            symbol=data.get("coin"),
            exit_type=data.get("exit_type"),
            final_step=data.get("final_step"),
            pnl=data.get("pnl_amount"),
        )

    async def _on_order_rejected(self, event: Event) -> None:
        """Handle order rejected events."""
        data = event.data
        msg = LogMessages.order_rejected(
            data.get("symbol", self.symbol), data.get("side", "buy"), data.get("reason", "unknown")
        )
        self._record(f"FAILED  {msg.simple}")

    async def shutdown(self) -> None:
        """Gracefully shutdown all components."""
        if not self._running:
            return

        print("\n  Shutting down...")
        logger.info("shutting_down", position_active=self.engine.is_active)
        self._running = False

        await self._client.disconnect()

        await self.event_bus.publish_sync(
            system_event(EventType.SYSTEM_STOPPED, "DCAFlow shutting down")
        )
        await self.event_bus.stop()

        logger.info("dcaflow_stopped", trades=len(self.engine.history))

    async def poll_once(self) -> TickResult | None:
        """
        Fetch one ticker and feed it to the engine.

        Market data and order failures are logged and the tick is skipped.
        """
        try:
            ticker = await self._client.get_ticker(self.symbol)
        except MarketDataUnavailable as e:
            logger.warning("price_fetch_error", symbol=self.symbol, error=e.reason)
            return None

        await self.event_bus.publish(
            price_update_event(self.symbol, ticker.price, ticker.change_rate_pct)
        )

        try:
            result = await self.engine.on_tick(ticker.price, ticker.change_rate_pct)
        except MarketDataUnavailable as e:
            logger.warning("tick_rejected", symbol=self.symbol, error=e.reason)
            return None
        except OrderRejected as e:
            logger.warning("tick_order_failed", symbol=self.symbol, side=e.side, error=e.reason)
            return None

        self._display(result)
        return result

    async def price_loop(self) -> None:
        """Main price monitoring loop."""
        interval = self.settings.system.poll_interval

        while self._running and not self._shutdown_event.is_set():
            await self.poll_once()

            try:
                await asyncio.wait_for(
                    asyncio.shield(self._shutdown_event.wait()),
                    timeout=interval,
                )
                break
            except TimeoutError:
                continue

    def _display(self, result: TickResult) -> None:
        now = datetime.now().strftime("%H:%M:%S")
        snap = result.snapshot
        change = f"{snap.change_rate_pct:+.2f}%" if snap.change_rate_pct is not None else "-"
        line = f"  [{now}] {self.symbol}: {result.price:>14,.2f}  │  24h: {change:>8}"
        if snap.is_active:
            line += (
                f"  │  step {snap.current_step}/{snap.max_steps}"
                f"  avg {snap.average_price:,.2f}  PnL {snap.pnl_pct:+.2f}%"
            )
        if result.action not in (TickAction.HOLD, TickAction.IDLE):
            line += f"  │  {result.action.value.upper()}"
        print(line)

    async def run(self) -> None:
        """Run the main application loop."""
        try:
            await self.startup()
            await self.price_loop()

        except asyncio.CancelledError:
            logger.info("received_cancel")
        except Exception as e:
            logger.error("runtime_error", error=str(e))
            raise
        finally:
            await self.shutdown()

    def handle_signal(self, sig: signal.Signals) -> None:
        """Handle OS signals."""
        logger.info("received_signal", signal=sig.name)
        self._shutdown_event.set()


async def async_main(auto_start: bool = False) -> None:
    """Async main function."""
    app = DCAFlow(auto_start=auto_start)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: app.handle_signal(s))

    await app.run()


async def list_markets(
    settings: Settings, quote: str, exchange: ExchangeAdapter | None = None
) -> list[str]:
    """Connect, list the symbols quoted in quote and disconnect."""
    client = exchange or get_exchange_adapter(settings)
    if not await client.connect():
        raise RuntimeError(f"Failed to connect to {settings.system.exchange}")
    try:
        return await client.list_markets(quote)
    finally:
        await client.disconnect()


def run(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="DCAFlow DCA ladder trader")
    parser.add_argument(
        "--start",
        action="store_true",
        help="Open the position at the current price on startup",
    )
    parser.add_argument(
        "--list-markets",
        nargs="?",
        const="",
        default=None,
        metavar="QUOTE",
        help="Print the markets quoted in QUOTE (default: the symbol's quote) and exit",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(
        level=settings.system.log_level,
        json_format=settings.env == "production",
    )

    if args.list_markets is not None:
        quote = args.list_markets or settings.system.symbol.split("/")[1]
        for symbol in asyncio.run(list_markets(settings, quote)):
            print(symbol)
        return

    try:
        asyncio.run(async_main(auto_start=args.start))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
