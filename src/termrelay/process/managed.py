"""Managed process records."""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass, field

from pydantic import BaseModel, Field


class ProcessStatus(enum.StrEnum):
    """Lifecycle states for a managed process."""

    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"
    ERROR = "error"

    @property
    def is_final(self) -> bool:
        return self in (ProcessStatus.TERMINATED, ProcessStatus.ERROR)


class ProcessConfig(BaseModel):
    """How to launch one process."""

    command: str = Field(description="Executable (or shell command line when use_shell)")
    args: list[str] = Field(default_factory=list)
    cwd: str | None = Field(default=None, description="Working directory")
    env: dict[str, str] = Field(
        default_factory=dict, description="Overrides on top of the current environment"
    )
    timeout: float | None = Field(
        default=None, description="Seconds before a graceful kill is triggered"
    )
    use_shell: bool | None = Field(
        default=None,
        description="Run through the system shell; None uses the supervisor default",
    )


@dataclass
class ManagedProcess:
    """One OS process under supervision."""

    id: str
    config: ProcessConfig
    start_time: float = field(default_factory=time.time)
    status: ProcessStatus = ProcessStatus.STARTING
    pid: int | None = None
    pgid: int | None = None
    exit_code: int | None = None
    signal: str | None = None

    # Internal state
    _proc: asyncio.subprocess.Process | None = field(default=None, init=False, repr=False)
    _readers: list[asyncio.Task] = field(default_factory=list, init=False, repr=False)
    _watcher: asyncio.Task | None = field(default=None, init=False, repr=False)
    _timeout_handle: asyncio.TimerHandle | None = field(default=None, init=False, repr=False)
    _exited: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def alive(self) -> bool:
        return self.status in (ProcessStatus.RUNNING, ProcessStatus.PAUSED)

    @property
    def uptime(self) -> float:
        return time.time() - self.start_time
