"""Event bus for async pub/sub communication between modules."""

import asyncio
import contextlib
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from dcaflow.core.logging import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Types of events in the system."""

    # Price events
    PRICE_UPDATE = "price_update"

    # Position lifecycle
    POSITION_OPENED = "position_opened"
    POSITION_SCALED = "position_scaled"
    POSITION_CLOSED = "position_closed"

    # Order events
    ORDER_REJECTED = "order_rejected"

    # System events
    SYSTEM_STARTED = "system_started"
    SYSTEM_STOPPED = "system_stopped"


@dataclass
class Event:
    """Base event class."""

    type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Ensure type is EventType."""
        if isinstance(self.type, str):
            self.type = EventType(self.type)


# Type alias for event handlers
EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """
    Async event bus for publish/subscribe pattern.

    Usage:
        bus = EventBus()

        async def on_closed(event: Event):
            print(f"Position closed: {event.data}")

        bus.subscribe(EventType.POSITION_CLOSED, on_closed)
        await bus.publish(position_event(EventType.POSITION_CLOSED, "BTC/KRW", {...}))
    """

    def __init__(self, max_queue_size: int = 1000):
        """
        Initialize the event bus.

        Args:
            max_queue_size: Maximum number of events in the queue
        """
        self._subscribers: dict[EventType, list[EventHandler]] = {}
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue_size)
        self._running = False
        self._processor_task: asyncio.Task | None = None

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe a handler to an event type."""
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("handler_subscribed", event_type=event_type.value)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Remove a handler from an event type."""
        if event_type in self._subscribers and handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)
            logger.debug("handler_unsubscribed", event_type=event_type.value)

    async def publish(self, event: Event) -> None:
        """
        Queue an event for delivery by the processor task.

        A full queue drops the event with a warning rather than blocking the
        publisher.
        """
        try:
            self._queue.put_nowait(event)
            logger.debug(
                "event_published",
                event_type=event.type.value,
                queue_size=self._queue.qsize(),
            )
        except asyncio.QueueFull:
            logger.warning("event_queue_full", event_type=event.type.value)

    async def publish_sync(self, event: Event) -> None:
        """Publish an event and wait for all handlers to complete."""
        await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        handlers = self._subscribers.get(event.type, [])

        if not handlers:
            logger.debug("no_handlers", event_type=event.type.value)
            return

        await asyncio.gather(*(self._safe_call(handler, event) for handler in handlers))

    async def _safe_call(self, handler: EventHandler, event: Event) -> None:
        """Call a handler, logging instead of propagating its exceptions."""
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                "handler_error",
                event_type=event.type.value,
                handler=getattr(handler, "__name__", repr(handler)),
                error=str(e),
            )

    async def _process_events(self) -> None:
        """Process events from the queue."""
        while self._running:
            try:
                # Timeout lets the loop notice _running going False
                event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
                await self._dispatch(event)
                self._queue.task_done()
            except TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    async def start(self) -> None:
        """Start the event processor."""
        if self._running:
            return

        self._running = True
        self._processor_task = asyncio.create_task(self._process_events())
        logger.info("event_bus_started")

    async def stop(self) -> None:
        """Stop the event processor."""
        if not self._running:
            return

        self._running = False

        if self._processor_task:
            self._processor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._processor_task
            self._processor_task = None

        logger.info("event_bus_stopped")

    @property
    def is_running(self) -> bool:
        """Check if the event bus is running."""
        return self._running

    @property
    def queue_size(self) -> int:
        """Get the current queue size."""
        return self._queue.qsize()


# Global event bus instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def price_update_event(symbol: str, price: float, change_rate_pct: float | None = None) -> Event:
    """Create a price update event."""
    return Event(
        type=EventType.PRICE_UPDATE,
        data={"symbol": symbol, "price": price, "change_rate_pct": change_rate_pct},
    )


def position_event(event_type: EventType, symbol: str, data: dict[str, Any]) -> Event:
    """Create a position lifecycle event."""
    return Event(type=event_type, data={"symbol": symbol, **data})


def order_rejected_event(symbol: str, side: str, reason: str, step: int) -> Event:
    """Create an order rejected event."""
    return Event(
        type=EventType.ORDER_REJECTED,
        data={"symbol": symbol, "side": side, "reason": reason, "step": step},
    )


def system_event(event_type: EventType, message: str | None = None) -> Event:
    """Create a system event."""
    return Event(
        type=event_type,
        data={"message": message} if message else {},
    )
