"""
In-process domain event bus

Services publish after their transaction commits, so a handler only ever sees
persisted state. Handlers subscribe to an exact event type ("folio.closed"),
to a topic ("folio.*") or to everything ("*").
"""
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from itertools import count
from typing import Any, Callable, Deque, Dict, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], None]

_sequence = count(1)


@dataclass
class Event:
    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str
    sequence: int = field(default_factory=lambda: next(_sequence))

    @property
    def topic(self) -> str:
        return self.event_type.split(".", 1)[0]


def _patterns_for(event_type: str) -> List[str]:
    return [event_type, f"{event_type.split('.', 1)[0]}.*", "*"]


class EventBus:
    """Synchronous publish/subscribe with a bounded replay buffer"""

    def __init__(self, history_size: int = 200):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, pattern: str, handler: Handler) -> None:
        with self._lock:
            if handler not in self._handlers[pattern]:
                self._handlers[pattern].append(handler)

    def unsubscribe(self, pattern: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(pattern, []):
                self._handlers[pattern].remove(handler)

    def publish(self, event: Event) -> int:
        """
        Deliver an event to every matching handler; returns how many ran cleanly.

        A failing handler is logged and skipped. The publishing service has
        already committed, so the failure must not reach its caller.
        """
        with self._lock:
            self._history.append(event)
            handlers = [h for p in _patterns_for(event.event_type) for h in self._handlers.get(p, [])]

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.error(
                    f"Handler {getattr(handler, '__name__', handler)!r} failed on "
                    f"{event.event_type} from {event.source}",
                    exc_info=True
                )
        return delivered

    def history(self, pattern: str = "*", limit: Optional[int] = None) -> List[Event]:
        """Buffered events matching the pattern, newest first"""
        with self._lock:
            events = [e for e in reversed(self._history) if pattern in _patterns_for(e.event_type)]
        return events[:limit] if limit is not None else events

    def reset(self) -> None:
        with self._lock:
            self._handlers.clear()
            self._history.clear()


event_bus = EventBus()
