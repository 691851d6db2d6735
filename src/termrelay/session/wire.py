"""Wire protocol — in-process broadcast of session events.

The orchestrator publishes every lifecycle change, output record and
completed line on the wire. Local consumers (the CLI, tests, embedding
applications) subscribe and render events without holding references
into the session table.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_CREATED = "session_created"
    SESSION_STARTED = "session_started"
    SESSION_REMOVED = "session_removed"
    STATUS = "status"
    OUTPUT = "output"
    LINE = "line"
    INPUT = "input"
    ERROR = "error"
    OBSERVER_ATTACHED = "observer_attached"
    OBSERVER_DETACHED = "observer_detached"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: orchestrator -> local subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_status(self, session_id: str, status: str, **extra: Any) -> None:
        self.send(WireEvent(EventType.STATUS, session_id, {"status": status, **extra}))

    def send_error(self, session_id: str, error: str) -> None:
        self.send(WireEvent(EventType.ERROR, session_id, {"error": error}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
