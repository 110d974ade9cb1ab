"""Live position engine driving one DCA ladder from price ticks."""

import asyncio

from dcaflow.core.errors import AlreadyActive, MarketDataUnavailable, NotActive, OrderRejected
from dcaflow.core.events import (
    Event,
    EventBus,
    EventType,
    order_rejected_event,
    position_event,
)
from dcaflow.core.logging import LogMessages, get_logger
from dcaflow.core.models import ExitType, PositionSnapshot, TickAction, TickResult, TradeRecord
from dcaflow.exchange.adapter import OrderExecutor, OrderSizing
from dcaflow.strategies.dca import (
    ExitDecision,
    PositionState,
    StrategyRules,
    apply_buy,
    exit_decision,
    pnl_pct,
    scale_in_decision,
    size_for_step,
)

logger = get_logger(__name__)


class PositionEngine:
    """
    State machine for a single ladder position.

    IDLE -> start() -> ACTIVE(step 1..max_steps) -> exit -> IDLE

    on_tick() is the only entry point for price updates and is serialized:
    a tick that arrives while another tick or start() is still waiting on
    the exchange is dropped. A position that has used every rung stays
    ACTIVE until a price triggers an exit.
    """

    def __init__(
        self,
        symbol: str,
        rules: StrategyRules,
        executor: OrderExecutor,
        event_bus: EventBus | None = None,
        retry_failed_exit: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            symbol: Trading pair (e.g., "BTC/KRW")
            rules: Ladder parameters
            executor: Exchange used for tickers and market orders
            event_bus: Optional bus for position lifecycle events
            retry_failed_exit: Keep the position open and retry on the next
                tick when an exit sell fails. When False, a failed exit
                still closes the position and records the trade.
        """
        self.symbol = symbol
        self.rules = rules
        self.executor = executor
        self.event_bus = event_bus
        self.retry_failed_exit = retry_failed_exit

        self._state = PositionState.empty()
        self._history: list[TradeRecord] = []
        self._last_price: float | None = None
        self._change_rate_pct: float | None = None
        self._lock = asyncio.Lock()
        # Bumped by stop() so fills that land afterwards are discarded
        self._epoch = 0

    @property
    def state(self) -> PositionState:
        """Current position state."""
        return self._state

    @property
    def is_active(self) -> bool:
        """Check if a position is open."""
        return self._state.is_active

    @property
    def history(self) -> list[TradeRecord]:
        """Trades closed by this engine, oldest first."""
        return list(self._history)

    def snapshot(self) -> PositionSnapshot:
        """Read-only view of the position and the last seen price."""
        state = self._state
        pnl = pnl_pct(state, self._last_price) if self._last_price and state.is_active else 0.0
        return PositionSnapshot(
            symbol=self.symbol,
            is_active=state.is_active,
            current_step=state.current_step,
            max_steps=self.rules.max_steps,
            average_price=state.average_price,
            total_quantity=state.total_quantity,
            total_invested=state.total_invested,
            last_buy_price=state.last_buy_price,
            last_price=self._last_price,
            change_rate_pct=self._change_rate_pct,
            pnl_pct=pnl,
        )

    async def start(self, current_price: float | None = None) -> PositionSnapshot:
        """
        Open the position with the first rung.

        Args:
            current_price: Quoted price; fetched from the exchange when None

        Returns:
            Snapshot of the opened position

        Raises:
            AlreadyActive: If a position is already open
            MarketDataUnavailable: If no price could be obtained
            OrderRejected: If the initial buy failed (state stays idle)
        """
        async with self._lock:
            if self._state.is_active:
                raise AlreadyActive(self.symbol)

            if current_price is None:
                current_price = await self._fetch_price()
            elif current_price <= 0:
                raise MarketDataUnavailable(self.symbol, f"invalid price {current_price}")

            self._last_price = current_price
            epoch = self._epoch
            amount = size_for_step(self.rules, 1)

            logger.info("position_starting", symbol=self.symbol, price=current_price, amount=amount)
            fill_price = await self._buy(amount, current_price, step=1)

            if epoch != self._epoch:
                logger.warning("start_fill_after_stop", symbol=self.symbol, price=fill_price)
                return self.snapshot()

            self._state = apply_buy(self.rules, PositionState.empty(), fill_price, amount)
            await self._publish(
                position_event(
                    EventType.POSITION_OPENED,
                    self.symbol,
                    {"price": fill_price, "amount": amount, "step": 1},
                )
            )
            return self.snapshot()

    async def on_tick(self, price: float | None, change_rate_pct: float | None = None) -> TickResult:
        """
        Evaluate one price update.

        Exit conditions are checked before scale-in.

        Raises:
            MarketDataUnavailable: If price is missing or not positive
            OrderRejected: If a scale-in buy failed (state untouched), or an
                exit sell failed while retry_failed_exit is set
        """
        if price is None or price <= 0:
            raise MarketDataUnavailable(self.symbol, f"invalid tick price {price}")

        if self._lock.locked():
            logger.debug("tick_skipped", symbol=self.symbol, price=price)
            return TickResult(action=TickAction.SKIPPED, price=price, snapshot=self.snapshot())

        async with self._lock:
            self._last_price = price
            if change_rate_pct is not None:
                self._change_rate_pct = change_rate_pct

            if not self._state.is_active:
                return TickResult(action=TickAction.IDLE, price=price, snapshot=self.snapshot())

            decision = exit_decision(self.rules, self._state, price)
            if decision != ExitDecision.NONE:
                return await self._exit(decision, price)

            if scale_in_decision(self.rules, self._state, price):
                return await self._scale_in(price)

            return TickResult(action=TickAction.HOLD, price=price, snapshot=self.snapshot())

    def stop(self) -> None:
        """Abandon the position without placing any order.

        Any order already sent to the exchange is not cancelled; its fill is
        ignored when it arrives.
        """
        was_active = self._state.is_active
        self._state = PositionState.empty()
        self._epoch += 1
        logger.info("position_stopped", symbol=self.symbol, was_active=was_active)

    async def _fetch_price(self) -> float:
        try:
            ticker = await self.executor.get_ticker(self.symbol)
        except MarketDataUnavailable:
            raise
        except Exception as e:
            raise MarketDataUnavailable(self.symbol, str(e)) from e

        if not ticker.price or ticker.price <= 0:
            raise MarketDataUnavailable(self.symbol, "ticker has no price")

        self._change_rate_pct = ticker.change_rate_pct
        return ticker.price

    async def _buy(self, amount: float, quoted_price: float, step: int) -> float:
        """Place a quote-sized market buy and return the fill price."""
        try:
            fill = await self.executor.create_market_order(
                self.symbol, "buy", amount, OrderSizing.QUOTE_AMOUNT
            )
        except OrderRejected as e:
            msg = LogMessages.order_rejected(self.symbol, "buy", e.reason)
            logger.warning(msg.technical, step=step)
            await self._publish(order_rejected_event(self.symbol, "buy", e.reason, step))
            raise

        fill_price = fill.fill_price(quoted_price)
        msg = LogMessages.order_filled(self.symbol, "buy", amount / fill_price, fill_price)
        logger.info(msg.technical, step=step)
        return fill_price

    async def _scale_in(self, price: float) -> TickResult:
        if not self._state.is_active:
            raise NotActive(self.symbol, "scale in")

        epoch = self._epoch
        step = self._state.current_step + 1
        amount = size_for_step(self.rules, step)
        fill_price = await self._buy(amount, price, step=step)

        if epoch != self._epoch:
            logger.warning("scale_in_fill_after_stop", symbol=self.symbol, price=fill_price)
            return TickResult(action=TickAction.IDLE, price=price, snapshot=self.snapshot())

        self._state = apply_buy(self.rules, self._state, fill_price, amount)
        msg = LogMessages.step_added(
            self.symbol, self._state.current_step, self.rules.max_steps, self._state.average_price
        )
        logger.info(msg.technical)
        await self._publish(
            position_event(
                EventType.POSITION_SCALED,
                self.symbol,
                {
                    "price": fill_price,
                    "amount": amount,
                    "step": self._state.current_step,
                    "average_price": self._state.average_price,
                },
            )
        )
        return TickResult(action=TickAction.SCALE_IN, price=price, snapshot=self.snapshot())

    async def _exit(self, decision: ExitDecision, price: float) -> TickResult:
        if not self._state.is_active:
            raise NotActive(self.symbol, "exit")

        state = self._state
        exit_type = ExitType(decision.value)
        action = TickAction.EXIT_PROFIT if exit_type == ExitType.PROFIT else TickAction.EXIT_LOSS

        try:
            fill = await self.executor.create_market_order(
                self.symbol, "sell", state.total_quantity, OrderSizing.BASE_QUANTITY
            )
        except OrderRejected as e:
            await self._publish(
                order_rejected_event(self.symbol, "sell", e.reason, state.current_step)
            )
            if self.retry_failed_exit:
                logger.warning(
                    "exit_order_failed_will_retry",
                    symbol=self.symbol,
                    exit_type=exit_type.value,
                    reason=e.reason,
                )
                raise

            logger.error(
                "exit_order_failed_position_closed",
                symbol=self.symbol,
                exit_type=exit_type.value,
                reason=e.reason,
            )
            trade = self._close(exit_type, state, price)
            return TickResult(
                action=action, price=price, snapshot=self.snapshot(), trade=trade, error=str(e)
            )

        trade = self._close(exit_type, state, fill.fill_price(price))
        await self._publish(
            position_event(EventType.POSITION_CLOSED, self.symbol, trade.to_dict())
        )
        return TickResult(action=action, price=price, snapshot=self.snapshot(), trade=trade)

    def _close(self, exit_type: ExitType, state: PositionState, exit_price: float) -> TradeRecord:
        """Record the trade and reset to idle."""
        pnl_amount = state.total_quantity * exit_price - state.total_invested
        trade = TradeRecord(
            coin=self.symbol,
            exit_type=exit_type,
            pnl_percentage=pnl_pct(state, exit_price),
            pnl_amount=pnl_amount,
            total_invested=state.total_invested,
            final_step=state.current_step,
            exit_price=exit_price,
            total_quantity=state.total_quantity,
        )
        self._history.append(trade)
        self._state = PositionState.empty()

        msg = LogMessages.position_closed(
            self.symbol, exit_type.value, trade.pnl_percentage, trade.pnl_amount
        )
        logger.info(msg.technical, final_step=trade.final_step)
        return trade

    async def _publish(self, event: Event) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event)
