"""Job lifecycle events and a small synchronous event bus.

The scheduler and job processor publish events; the API layer subscribes to
forward per-session progress to clients. Subscribers run inline on the
event loop and must not block.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """Base class for all events."""

    job_id: str
    session_id: str = ""


class JobQueued(Event):
    priority: int = 0
    file_count: int = 0


class JobStarted(Event):
    attempt: int


class JobProgress(Event):
    """Emitted after every file batch."""

    parent_name: str
    processed: int
    total: int
    succeeded: int
    failed: int

    @property
    def percent(self) -> int:
        return round(self.processed / self.total * 100) if self.total else 100


class JobRetrying(Event):
    attempt: int
    error: str


class JobCompleted(Event):
    parent_id: Optional[str] = None
    succeeded: int = 0
    failed: int = 0


class JobFailed(Event):
    error: str


class EventBus:
    """A simple synchronous event bus for decoupled communication."""

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to an event type. Can be used as a decorator.

        Subscribing to ``Event`` receives every event.
        """
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        self._subscribers.setdefault(event_type, []).append(callback)
        return callback

    def unsubscribe(self, event_type: Type[Event], callback: Callable[[Any], None]) -> None:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event: Event) -> None:
        """Publishes an event to subscribers of its type and of ``Event``.

        A failing subscriber is logged and does not stop delivery.
        """
        targets = list(self._subscribers.get(type(event), []))
        if type(event) is not Event:
            targets += self._subscribers.get(Event, [])
        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Event subscriber failed for {type(event).__name__}")
