"""
DataSov Bridge - Event Bus

Two outbound streams for external listeners:
- bridge events (lifecycle / observability)
- cross-chain events (one per handled ledger event)

Listeners may be plain callables or coroutine functions. A failing listener
is logged and never reaches the emitter.
"""

import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional, Union

from datasov.core.clock import Clock, utc_now
from datasov.models.events import BridgeEvent, BridgeEventType, CrossChainEvent

logger = logging.getLogger(__name__)

BridgeEventListener = Callable[[BridgeEvent], Union[None, Awaitable[None]]]
CrossChainEventListener = Callable[[CrossChainEvent], Union[None, Awaitable[None]]]


def _discard(listeners: list, listener: Callable) -> None:
    # Unsubscribing twice is a no-op.
    if listener in listeners:
        listeners.remove(listener)


class BridgeEventBus:
    """In-process fan-out with a bounded log of recent events."""

    def __init__(self, log_size: int = 500, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._bridge_listeners: list[BridgeEventListener] = []
        self._cross_chain_listeners: list[CrossChainEventListener] = []
        self._log: deque[Union[BridgeEvent, CrossChainEvent]] = deque(maxlen=log_size)

    def on_bridge_event(self, listener: BridgeEventListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._bridge_listeners.append(listener)
        return lambda: _discard(self._bridge_listeners, listener)

    def on_cross_chain_event(self, listener: CrossChainEventListener) -> Callable[[], None]:
        self._cross_chain_listeners.append(listener)
        return lambda: _discard(self._cross_chain_listeners, listener)

    async def emit_bridge_event(
        self,
        event_type: BridgeEventType,
        details: Optional[dict[str, Any]] = None,
    ) -> BridgeEvent:
        event = BridgeEvent(type=event_type, timestamp=self._clock(), details=details or {})
        self._log.append(event)
        await self._notify(list(self._bridge_listeners), event)
        return event

    async def emit_cross_chain_event(self, event: CrossChainEvent) -> CrossChainEvent:
        self._log.append(event)
        await self._notify(list(self._cross_chain_listeners), event)
        return event

    def recent(self, limit: int = 50) -> list[Union[BridgeEvent, CrossChainEvent]]:
        """Most recent events, oldest first."""
        if limit <= 0:
            return []
        return list(self._log)[-limit:]

    async def _notify(self, listeners: list[Callable], event: Any) -> None:
        for listener in listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"[BUS] Listener {listener!r} failed on {type(event).__name__}")
