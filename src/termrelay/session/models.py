"""Session data types and the session state machine."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from termrelay.format.engine import TerminalOutput
from termrelay.stream.lines import LineLog


class SessionStatus(enum.StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"
    ERROR = "error"

    @property
    def is_final(self) -> bool:
        return self in (SessionStatus.TERMINATED, SessionStatus.ERROR)


# Allowed status edges. ERROR is reachable from every non-final state.
TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset(
        {SessionStatus.RUNNING, SessionStatus.TERMINATED, SessionStatus.ERROR}
    ),
    SessionStatus.RUNNING: frozenset(
        {SessionStatus.PAUSED, SessionStatus.TERMINATED, SessionStatus.ERROR}
    ),
    SessionStatus.PAUSED: frozenset(
        {SessionStatus.RUNNING, SessionStatus.TERMINATED, SessionStatus.ERROR}
    ),
    SessionStatus.TERMINATED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}


def can_transition(current: SessionStatus, new: SessionStatus) -> bool:
    return new in TRANSITIONS[current]


class SessionSpec(BaseModel):
    """Caller request for a new session."""

    command: str = Field(description="Program to run")
    args: list[str] = Field(default_factory=list)
    tool: str | None = Field(
        default=None, description="Tool label; auto-detected when omitted"
    )
    cwd: str | None = Field(default=None)
    env: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = Field(
        default=None, description="Kill the process after this many seconds"
    )
    use_shell: bool | None = Field(default=None)
    auto_start: bool = Field(default=True)


def _gen_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Session:
    """One wrapped command plus its accumulated state and observers.

    Only the orchestrator mutates a Session; callers get ``SessionSnapshot``.
    """

    command: str
    id: str = field(default_factory=_gen_id)
    tool: str = "generic"
    args: list[str] = field(default_factory=list)
    status: SessionStatus = SessionStatus.IDLE
    start_time: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    cwd: str = ""
    env: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    use_shell: bool | None = None
    output_history: list[TerminalOutput] = field(default_factory=list)
    input_history: list[str] = field(default_factory=list)
    observers: set[str] = field(default_factory=set)
    lines: LineLog = field(default_factory=LineLog)
    pid: int | None = None
    exit_code: int | None = None
    signal: str | None = None
    error: str | None = None
    ended_at: float | None = None

    def touch(self) -> None:
        self.last_activity = time.time()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            id=self.id,
            tool=self.tool,
            command=self.command,
            args=tuple(self.args),
            status=self.status,
            start_time=self.start_time,
            last_activity=self.last_activity,
            cwd=self.cwd,
            pid=self.pid,
            exit_code=self.exit_code,
            signal=self.signal,
            error=self.error,
            observers=frozenset(self.observers),
            output_count=len(self.output_history),
            input_count=len(self.input_history),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session at one point in time."""

    id: str
    tool: str
    command: str
    args: tuple[str, ...]
    status: SessionStatus
    start_time: float
    last_activity: float
    cwd: str
    pid: int | None
    exit_code: int | None
    signal: str | None
    error: str | None
    observers: frozenset[str]
    output_count: int
    input_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "tool": self.tool,
            "command": self.command,
            "args": list(self.args),
            "status": self.status.value,
            "start_time": self.start_time,
            "last_activity": self.last_activity,
            "cwd": self.cwd,
            "pid": self.pid,
            "exit_code": self.exit_code,
            "signal": self.signal,
            "error": self.error,
            "observers": sorted(self.observers),
            "output_count": self.output_count,
            "input_count": self.input_count,
        }
