# ledger_system/events/event_bus.py
"""
In-process event bus for ledger change notifications.

Committed changes to commission balances, commission transactions and
receipts are published here by models/listeners/change_feed.py.
Subscribers are plain callables or coroutine functions.
"""
import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class LedgerEvents:
    """Event names published on the bus."""
    COMMISSION_BALANCE_CHANGED = "commission_balance_changed"
    COMMISSION_TRANSACTION_ADDED = "commission_transaction_added"
    RECEIPT_CHANGED = "receipt_changed"


class EventBus:
    """Simple publish/subscribe dispatcher."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = defaultdict(list)

    def subscribe(self, event: str, handler: Callable) -> None:
        self._handlers[event].append(handler)
        logger.debug(f"Handler {getattr(handler, '__name__', handler)} subscribed to {event}")

    def unsubscribe(self, event: str, handler: Callable) -> None:
        """Remove handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"Handler {getattr(handler, '__name__', handler)} unsubscribed from {event}")

    def handlerCount(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def clear(self) -> None:
        """Drop every subscription (tests, shutdown)."""
        self._handlers.clear()

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        """Deliver event to all handlers, awaiting coroutine handlers."""
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in handler for {event}: {e}", exc_info=True)

    def emitNow(self, event: str, data: Dict[str, Any]) -> None:
        """
        Deliver event synchronously.

        Used from SQLAlchemy session hooks where awaiting is impossible.
        Coroutine results are scheduled on the running loop when there is one.
        """
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.error(f"Error in handler for {event}: {e}", exc_info=True)

    @staticmethod
    def _schedule(event: str, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop, async handler for {event} dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        loop.create_task(awaitable)


eventBus = EventBus()
