"""Notifications emitted by the process supervisor."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from termrelay.channel import Channel
from termrelay.errors import RelayError


@dataclass(frozen=True)
class OutputChunk:
    process_id: str
    channel: Channel
    data: bytes
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ProcessExited:
    process_id: str
    exit_code: int | None
    signal: str | None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ProcessFailed:
    process_id: str
    error: RelayError
    timestamp: float = field(default_factory=time.time)


ProcessEvent = OutputChunk | ProcessExited | ProcessFailed
