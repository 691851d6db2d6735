"""Remote observer messages and best-effort fan-out."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Literal, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputEcho:
    """Input another observer sent to the session."""

    session_id: str
    input: str
    sender: str | None = None
    timestamp: float = field(default_factory=time.time)
    type: Literal["input"] = "input"


@dataclass(frozen=True)
class OutputMessage:
    session_id: str
    source: str
    text: str
    ansi: str
    sequence: int
    output_timestamp: float
    timestamp: float = field(default_factory=time.time)
    type: Literal["output"] = "output"


@dataclass(frozen=True)
class StatusMessage:
    session_id: str
    status: str
    exit_code: int | None = None
    signal: str | None = None
    timestamp: float = field(default_factory=time.time)
    type: Literal["status"] = "status"


@dataclass(frozen=True)
class ErrorMessage:
    session_id: str
    error: str
    kind: str = "internal"
    timestamp: float = field(default_factory=time.time)
    type: Literal["error"] = "error"


RemoteMessage = InputEcho | OutputMessage | StatusMessage | ErrorMessage


def message_to_dict(message: RemoteMessage) -> dict[str, Any]:
    return asdict(message)


@runtime_checkable
class RemoteTransport(Protocol):
    """Out-of-process delivery to one observer.

    ``deliver`` may be a plain function or return an awaitable; either way
    the caller does not wait for it.
    """

    def deliver(
        self, observer_id: str, message: RemoteMessage
    ) -> None | Awaitable[None]: ...


class LoggingTransport:
    """Default transport: records deliveries in the debug log only."""

    def deliver(self, observer_id: str, message: RemoteMessage) -> None:
        logger.debug(
            "Would send %s for session %s to observer %s",
            message.type,
            message.session_id,
            observer_id,
        )


class FanOut:
    """Broadcasts remote messages to a session's observers.

    Each delivery is isolated: a failing observer is logged and skipped,
    never blocking the others or propagating into session state.
    """

    def __init__(self, transport: RemoteTransport | None = None) -> None:
        self.transport: RemoteTransport = transport or LoggingTransport()
        self._pending: set[asyncio.Task] = set()
        self.delivered: int = 0
        self.failed: int = 0

    def broadcast(
        self,
        observers: set[str],
        message: RemoteMessage,
        exclude: str | None = None,
    ) -> None:
        for observer_id in list(observers):
            if observer_id == exclude:
                continue
            self._deliver_one(observer_id, message)

    def _deliver_one(self, observer_id: str, message: RemoteMessage) -> None:
        try:
            result = self.transport.deliver(observer_id, message)
        except Exception as e:
            self.failed += 1
            logger.warning(
                "Delivery of %s to observer %s failed: %s", message.type, observer_id, e
            )
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(
                lambda t: self._on_delivered(t, observer_id, message.type)
            )
        else:
            self.delivered += 1

    def _on_delivered(self, task: asyncio.Future, observer_id: str, kind: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            self.failed += 1
            return
        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.warning("Delivery of %s to observer %s failed: %s", kind, observer_id, exc)
        else:
            self.delivered += 1

    async def drain(self, timeout: float = 1.0) -> None:
        """Wait briefly for in-flight async deliveries."""
        if self._pending:
            await asyncio.wait(list(self._pending), timeout=timeout)
