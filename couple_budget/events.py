"""Minimal publish/subscribe bus used to notify observers of state changes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple

logger = logging.getLogger(__name__)

__all__ = [
    'Event', 'EventBus', 'Handler',
    'TRANSACTIONS_CHANGED', 'RECURRING_CHANGED', 'GOALS_CHANGED',
    'SETTINGS_CHANGED', 'DATA_LOADED', 'ERROR_RAISED',
]

TRANSACTIONS_CHANGED = 'TRANSACTIONS_CHANGED'
RECURRING_CHANGED = 'RECURRING_CHANGED'
GOALS_CHANGED = 'GOALS_CHANGED'
SETTINGS_CHANGED = 'SETTINGS_CHANGED'
DATA_LOADED = 'DATA_LOADED'
ERROR_RAISED = 'ERROR_RAISED'


class Event(NamedTuple):
    name: str
    ts: str
    payload: Dict[str, Any]


Handler = Callable[[Event], None]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._subscribers.clear()

    def publish(self, name: str, **payload: Any) -> int:
        """Deliver an event to every subscriber. Returns how many were called.

        A failing observer is logged and does not stop delivery to the others.
        """
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return 0
        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Observer %r failed on %s", handler, name)
        return len(handlers)
