"""
Minimal synchronous event emitter used by the wallet client.
"""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

BALANCE_CHANGED = "balance_changed"
DEPLOY_CONFIRMED = "deploy_confirmed"
DEPLOY_FAILED = "deploy_failed"
HISTORY_UPDATED = "history_updated"
POLLING_STOPPED = "polling_stopped"

EVENTS = frozenset({BALANCE_CHANGED, DEPLOY_CONFIRMED, DEPLOY_FAILED, HISTORY_UPDATED, POLLING_STOPPED})

Listener = Callable[..., Any]


class EventEmitter:
    """
    Calls listeners on the emitting thread.

    A failing listener is logged and does not prevent the others from running.
    """

    def __init__(self):
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.RLock()

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Subscribe to an event.

        Returns:
            A function that removes the subscription

        Raises:
            ValueError: If the event name is unknown
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'. Known events: {', '.join(sorted(EVENTS))}")
        with self._lock:
            self._listeners[event].append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners.get(event, []):
                self._listeners[event].remove(listener)

    def emit(self, event: str, **payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(**payload)
            except Exception:
                logger.exception(f"Listener for '{event}' failed")
