"""
Ledger event notifications.

The ledger announces every committed operation, and every rejection, on an
EventBus. Listeners receive keyword arguments:

    caller, result, tx_hash                      committed operations
    operation, caller, reason, error, tx_hash    operation_rejected
"""
from typing import Dict, List, Callable, Any
import logging
import threading

logger = logging.getLogger(__name__)

POOL_INITIALIZED = "pool_initialized"
POSITION_OPENED = "position_opened"
RESERVE_DEPOSITED = "reserve_deposited"
REWARD_CLAIMED = "reward_claimed"
POSITION_CLOSED = "position_closed"
TRANSFER_COMPLETED = "transfer_completed"
OPERATION_REJECTED = "operation_rejected"


class EventBus:
    """
    Synchronous pub/sub for ledger events.

    Callbacks run in the emitting thread, after the operation they describe
    has been committed. The listener table is guarded so subscribers may come
    and go while other threads emit.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, callback: Callable) -> None:
        with self._lock:
            self.listeners.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        with self._lock:
            callbacks = self.listeners.get(event_type)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
                return
        logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        """
        Deliver an event to its subscribers.

        A listener that raises is logged and skipped; it cannot undo or block
        the operation that was already committed.
        """
        with self._lock:
            callbacks = list(self.listeners.get(event_type, ()))

        if not callbacks:
            logger.debug(f"No listeners for event: {event_type}")
            return

        for callback in callbacks:
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def clear(self, event_type: str = None) -> None:
        """Drop listeners for one event type, or all of them."""
        with self._lock:
            if event_type:
                self.listeners.pop(event_type, None)
            else:
                self.listeners.clear()


# Global event bus instance
event_bus = EventBus()
