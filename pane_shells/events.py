from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Set
from asyncio import Queue as AsyncQueue
import logging
import time

logger = logging.getLogger(__name__)


class EventType(Enum):
    PANE_SPAWNED = "pane.spawned"
    PANE_OUTPUT = "pane.output"
    PANE_INPUT = "pane.input"
    PANE_EXITED = "pane.exited"


@dataclass
class PaneEvent:
    type: EventType
    pane_id: int
    timestamp: float = field(default_factory=time.time)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "pane_id": self.pane_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }


EventHandler = Callable[[PaneEvent], Any]


class EventBus:
    """In-process event bus for pane output and lifecycle events.

    Two subscription styles are offered: `subscribe()` hands out a queue
    (for websocket pumps and other async consumers), `listen()` registers a
    synchronous handler and returns a callable that removes it. Handlers run
    inline on the event loop and must not block.
    """

    def __init__(self):
        self._subscribers: Set[AsyncQueue[PaneEvent]] = set()
        self._handlers: List[EventHandler] = []

    def subscribe(self) -> AsyncQueue[PaneEvent]:
        q: AsyncQueue[PaneEvent] = AsyncQueue()
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: AsyncQueue[PaneEvent]) -> None:
        self._subscribers.discard(q)

    def listen(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unlisten() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

        return _unlisten

    async def publish(self, event: PaneEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.type.value)
        for q in list(self._subscribers):
            try:
                await q.put(event)
            except Exception:
                self._subscribers.discard(q)
