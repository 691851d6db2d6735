"""Session orchestrator — the top-level coordinator.

Creates a supervised process per session, routes its output through the
stream assembler and format engine, keeps bounded history, publishes
events on the wire and fans them out to remote observers, and garbage
collects stale sessions.

All state lives on one event loop. The session table is only mutated
here, and the only way in from the supervisor is its event queue.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from typing import Any

from termrelay.channel import Channel
from termrelay.config import RelayConfig
from termrelay.errors import (
    InvalidState,
    ProcessNotFound,
    RelayError,
    ResourceExhausted,
    SessionNotFound,
)
from termrelay.format.engine import FormatEngine, OutputFormat, TerminalOutput
from termrelay.process.events import OutputChunk, ProcessEvent, ProcessExited, ProcessFailed
from termrelay.process.managed import ProcessConfig, ProcessStatus
from termrelay.process.supervisor import ProcessSupervisor
from termrelay.session.models import (
    Session,
    SessionSnapshot,
    SessionSpec,
    SessionStatus,
    can_transition,
)
from termrelay.session.remote import (
    ErrorMessage,
    FanOut,
    InputEcho,
    OutputMessage,
    RemoteTransport,
    StatusMessage,
)
from termrelay.session.tools import GENERIC_TOOL, BuiltinToolRegistry, ToolRegistry
from termrelay.session.wire import EventType, Wire, WireEvent
from termrelay.stream.assembler import ParsedLine, StreamAssembler
from termrelay.stream.lines import LineLog

logger = logging.getLogger(__name__)


class SessionOrchestrator:
    """Manages sessions end to end.

    Usage:
        async with SessionOrchestrator() as relay:
            sid = await relay.create_session(SessionSpec(command="git", args=["status"]))
            await relay.wait_for_exit(sid)
            print(relay.get_history(sid, "text"))
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        tool_registry: ToolRegistry | None = None,
        transport: RemoteTransport | None = None,
        supervisor: ProcessSupervisor | None = None,
        wire: Wire | None = None,
    ) -> None:
        self.config = config or RelayConfig()
        self.supervisor = supervisor or ProcessSupervisor(self.config.supervisor)
        self.assembler = StreamAssembler(
            max_buffer_bytes=self.config.stream.max_buffer_bytes,
            max_line_length=self.config.stream.max_line_length,
            line_timeout=self.config.stream.line_timeout,
            on_forced_line=self._on_forced_line,
        )
        self.engine = FormatEngine()
        self.tools: ToolRegistry = tool_registry or BuiltinToolRegistry()
        self.fanout = FanOut(transport)
        self.wire = wire or Wire()

        self._sessions: dict[str, Session] = {}
        self._finished: dict[str, asyncio.Event] = {}
        self._removals: dict[str, asyncio.TimerHandle] = {}
        self._pump_task: asyncio.Task | None = None
        self._gc_task: asyncio.Task | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle of the orchestrator itself
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the event pump and the garbage collection loop."""
        self._ensure_started()

    def _ensure_started(self) -> None:
        if self._closed:
            raise InvalidState("Session orchestrator has been shut down")
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())
        if self._gc_task is None:
            self._gc_task = asyncio.create_task(self._gc_loop())

    async def __aenter__(self) -> SessionOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    async def shutdown(self) -> None:
        """Terminate every session, stop background work, close the wire."""
        if self._closed:
            return
        self._closed = True

        if self._gc_task is not None:
            self._gc_task.cancel()
            await asyncio.gather(self._gc_task, return_exceptions=True)

        session_ids = [
            sid for sid, s in self._sessions.items() if not s.status.is_final
        ]
        results = await asyncio.gather(
            *(self.terminate_session(sid, force=True) for sid in session_ids),
            return_exceptions=True,
        )
        for session_id, result in zip(session_ids, results):
            if isinstance(result, Exception):
                logger.warning("Failed to terminate session %s: %s", session_id, result)

        await self.supervisor.close()

        if self._pump_task is not None:
            self._pump_task.cancel()
            await asyncio.gather(self._pump_task, return_exceptions=True)
        self._drain_events()

        for handle in self._removals.values():
            handle.cancel()
        self._removals.clear()
        for session_id in self._sessions:
            self.assembler.clear_session(session_id)

        await self.fanout.drain()
        self.wire.close()
        logger.info("Session orchestrator shutdown complete")

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def create_session(self, spec: SessionSpec | None = None, **kwargs: Any) -> str:
        """Create a session and, unless ``auto_start`` is off, start it.

        Raises:
            ResourceExhausted: the session cap is reached.
            SpawnFailed: auto-start could not launch the process.
        """
        if spec is None:
            spec = SessionSpec(**kwargs)
        self._ensure_started()

        if len(self._sessions) >= self.config.session.max_sessions:
            raise ResourceExhausted(
                f"Maximum number of sessions ({self.config.session.max_sessions}) reached"
            )

        tool = self._resolve_tool(spec)
        session = Session(
            command=spec.command,
            tool=tool,
            args=list(spec.args),
            cwd=spec.cwd or os.getcwd(),
            env={**os.environ, **self._tool_env(tool), **spec.env},
            timeout=spec.timeout,
            use_shell=spec.use_shell,
            lines=LineLog(self.config.session.line_log_size),
        )
        self._sessions[session.id] = session
        self._finished[session.id] = asyncio.Event()
        logger.info("Session %s created: tool=%s cmd=%s", session.id, tool, spec.command)
        self.wire.send(
            WireEvent(
                EventType.SESSION_CREATED,
                session.id,
                {"tool": tool, "command": spec.command, "args": list(spec.args)},
            )
        )

        if spec.auto_start:
            await self.start_session(session.id)
        return session.id

    def _resolve_tool(self, spec: SessionSpec) -> str:
        if spec.tool:
            return spec.tool
        try:
            detected = self.tools.detect(spec.command)
        except Exception as e:
            logger.warning("Tool detection failed for %s: %s", spec.command, e)
            detected = None
        return detected or GENERIC_TOOL

    def _tool_env(self, tool: str) -> dict[str, str]:
        try:
            profile = self.tools.get(tool)
        except Exception as e:
            logger.warning("Tool lookup failed for %s: %s", tool, e)
            return {}
        return dict(profile.env) if profile else {}

    async def start_session(self, session_id: str) -> None:
        """Spawn the session's process. Only valid from ``idle``."""
        session = self._require(session_id)
        if session.status is not SessionStatus.IDLE:
            raise InvalidState(
                f"Session {session_id} is not idle (current status: {session.status})"
            )

        process_config = ProcessConfig(
            command=session.command,
            args=session.args,
            cwd=session.cwd,
            env=session.env,
            timeout=session.timeout,
            use_shell=session.use_shell,
        )
        try:
            managed = await self.supervisor.spawn(session_id, process_config)
        except RelayError as e:
            session.error = str(e)
            self._set_status(session, SessionStatus.ERROR)
            self._report_error(session, str(e), e.code)
            raise

        session.pid = managed.pid
        if session.status is not SessionStatus.IDLE:
            # Terminated while the spawn was in flight.
            logger.warning("Session %s ended during spawn, killing process", session_id)
            await self.supervisor.kill(session_id, signal.SIGKILL)
            return

        self._set_status(session, SessionStatus.RUNNING)
        self.wire.send(
            WireEvent(EventType.SESSION_STARTED, session_id, {"pid": managed.pid})
        )

    async def send_input(
        self, session_id: str, text: str, observer_id: str | None = None
    ) -> None:
        """Write input to the session's process and echo it to other observers."""
        session = self._require(session_id)
        if session.status is not SessionStatus.RUNNING:
            raise InvalidState(
                f"Session {session_id} is not running (status: {session.status})"
            )

        await self.supervisor.send(session_id, text)

        inputs = session.input_history
        inputs.append(text)
        if len(inputs) > self.config.session.history_limit:
            del inputs[: len(inputs) - self.config.session.history_keep]
        session.touch()

        self.wire.send(
            WireEvent(EventType.INPUT, session_id, {"input": text, "observer": observer_id})
        )
        self.fanout.broadcast(
            session.observers,
            InputEcho(session_id=session_id, input=text, sender=observer_id),
            exclude=observer_id,
        )

    async def end_input(self, session_id: str) -> None:
        """Close the session's stdin."""
        session = self._require(session_id)
        if session.status not in (SessionStatus.RUNNING, SessionStatus.PAUSED):
            raise InvalidState(f"Session {session_id} has no live process")
        await self.supervisor.close_input(session_id)
        session.touch()

    async def pause_session(self, session_id: str) -> None:
        session = self._require(session_id)
        if session.status is not SessionStatus.RUNNING:
            raise InvalidState(f"Session {session_id} is not running")
        await self.supervisor.pause(session_id)
        self._set_status(session, SessionStatus.PAUSED)

    async def resume_session(self, session_id: str) -> None:
        session = self._require(session_id)
        if session.status is not SessionStatus.PAUSED:
            raise InvalidState(f"Session {session_id} is not paused")
        await self.supervisor.resume(session_id)
        self._set_status(session, SessionStatus.RUNNING)

    async def terminate_session(self, session_id: str, force: bool = False) -> None:
        """Kill the session's process and mark it terminated.

        Graceful by default (SIGTERM, then SIGKILL after the grace period);
        ``force`` sends SIGKILL straight away. The session stays queryable
        for ``cleanup_delay`` seconds before it is removed. Terminating a
        terminated session is a no-op.
        """
        session = self._require(session_id)
        if session.status is SessionStatus.TERMINATED:
            return

        managed = self.supervisor.get(session_id)
        if managed is not None and managed.status is not ProcessStatus.TERMINATED:
            await self.supervisor.kill(
                session_id, signal.SIGKILL if force else signal.SIGTERM
            )
            if force:
                try:
                    await self.supervisor.wait_for_exit(
                        session_id, self.config.supervisor.kill_grace
                    )
                except ProcessNotFound:
                    pass
        if managed is not None and managed.status is ProcessStatus.TERMINATED:
            session.exit_code = managed.exit_code
            session.signal = managed.signal

        if not session.status.is_final:
            self._set_status(session, SessionStatus.TERMINATED)
        self._schedule_removal(session_id, self.config.session.cleanup_delay)

    async def wait_for_exit(self, session_id: str, timeout: float | None = None) -> bool:
        """Wait until the session reaches ``terminated`` or ``error``."""
        self._require(session_id)
        try:
            await asyncio.wait_for(self._finished[session_id].wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Remote observers
    # ------------------------------------------------------------------

    def attach_observer(self, session_id: str, observer_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.observers.add(observer_id)
        session.touch()
        self.wire.send(
            WireEvent(EventType.OBSERVER_ATTACHED, session_id, {"observer": observer_id})
        )
        return True

    def detach_observer(self, session_id: str, observer_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or observer_id not in session.observers:
            return False
        session.observers.discard(observer_id)
        self.wire.send(
            WireEvent(EventType.OBSERVER_DETACHED, session_id, {"observer": observer_id})
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> SessionSnapshot | None:
        session = self._sessions.get(session_id)
        return session.snapshot() if session else None

    def list_sessions(self) -> list[SessionSnapshot]:
        return [s.snapshot() for s in self._sessions.values()]

    def get_history(
        self,
        session_id: str,
        fmt: OutputFormat | str | None = None,
        limit: int | None = None,
    ) -> list[str]:
        """Serialized output history, oldest first, optionally the last ``limit``."""
        session = self._require(session_id)
        fmt = OutputFormat(fmt or self.config.session.default_format)
        history = session.output_history
        if limit and limit > 0:
            history = history[-limit:]
        return [self.engine.serialize(output, fmt) for output in history]

    def get_outputs(self, session_id: str) -> list[TerminalOutput]:
        return list(self._require(session_id).output_history)

    def get_lines(
        self, session_id: str, limit: int = 100, channel: Channel | None = None
    ) -> list[ParsedLine]:
        """Most recent completed lines, including flushed partial lines."""
        return self._require(session_id).lines.read_tail(limit, channel)

    def get_input_history(self, session_id: str) -> list[str]:
        return list(self._require(session_id).input_history)

    def get_stats(self) -> dict[str, Any]:
        counts = {status: 0 for status in SessionStatus}
        observers = 0
        for session in self._sessions.values():
            counts[session.status] += 1
            observers += len(session.observers)
        return {
            "total_sessions": len(self._sessions),
            "idle_sessions": counts[SessionStatus.IDLE],
            "running_sessions": counts[SessionStatus.RUNNING],
            "paused_sessions": counts[SessionStatus.PAUSED],
            "terminated_sessions": counts[SessionStatus.TERMINATED],
            "error_sessions": counts[SessionStatus.ERROR],
            "total_remote_observers": observers,
            "process_stats": self.supervisor.get_stats(),
            "stream_stats": self.assembler.get_stats(),
            "deliveries": {
                "delivered": self.fanout.delivered,
                "failed": self.fanout.failed,
            },
        }

    # ------------------------------------------------------------------
    # Process events
    # ------------------------------------------------------------------

    async def _pump(self) -> None:
        while True:
            event = await self.supervisor.events.get()
            self._dispatch(event)

    def _drain_events(self) -> None:
        while not self.supervisor.events.empty():
            self._dispatch(self.supervisor.events.get_nowait())

    def _dispatch(self, event: ProcessEvent) -> None:
        try:
            if isinstance(event, OutputChunk):
                self._on_output(event)
            elif isinstance(event, ProcessExited):
                self._on_exit(event)
            elif isinstance(event, ProcessFailed):
                self._on_failure(event)
        except Exception:
            logger.exception("Error handling %s for %s", type(event).__name__, event.process_id)

    def _on_output(self, event: OutputChunk) -> None:
        session = self._sessions.get(event.process_id)
        if session is None:
            return
        session.touch()

        chunk = self.assembler.create_chunk(session.id, event.channel, event.data)
        assembled = self.assembler.process_stream(session.id, event.channel, event.data)
        for line in assembled.complete_lines:
            self._record_line(session, line)

        output = self.engine.process(event.data, event.channel)
        self._append_history(session, output)

        self.wire.send(
            WireEvent(
                EventType.OUTPUT,
                session.id,
                {
                    "output": output,
                    "sequence": chunk.sequence,
                    "has_progress": assembled.has_progress,
                },
            )
        )
        self.fanout.broadcast(
            session.observers,
            OutputMessage(
                session_id=session.id,
                source=event.channel.value,
                text=output.text,
                ansi=output.ansi,
                sequence=chunk.sequence,
                output_timestamp=output.timestamp,
            ),
        )

    def _append_history(self, session: Session, output: TerminalOutput) -> None:
        session.output_history.append(output)
        if len(session.output_history) > self.config.session.history_limit:
            drop = len(session.output_history) - self.config.session.history_keep
            del session.output_history[:drop]
            logger.debug("Compacted history for %s, dropped %d records", session.id, drop)

    def _record_line(self, session: Session, line: ParsedLine) -> None:
        session.lines.append(line)
        self.wire.send(
            WireEvent(
                EventType.LINE,
                session.id,
                {"content": line.content, "channel": line.channel.value},
            )
        )

    def _on_forced_line(self, session_id: str, line: ParsedLine) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._record_line(session, line)

    def _on_exit(self, event: ProcessExited) -> None:
        session = self._sessions.get(event.process_id)
        if session is None:
            return
        session.exit_code = event.exit_code
        session.signal = event.signal
        for line in self.assembler.flush_pending_lines(session.id):
            self._record_line(session, line)
        if not session.status.is_final:
            self._set_status(session, SessionStatus.TERMINATED)

    def _on_failure(self, event: ProcessFailed) -> None:
        session = self._sessions.get(event.process_id)
        if session is None or session.status.is_final:
            return
        session.error = str(event.error)
        self._set_status(session, SessionStatus.ERROR)
        self._report_error(session, session.error, kind=event.error.code)

    # ------------------------------------------------------------------
    # State and fan-out helpers
    # ------------------------------------------------------------------

    def _set_status(self, session: Session, status: SessionStatus) -> None:
        """Single writer of ``Session.status``; rejects illegal edges."""
        if session.status is status:
            return
        if not can_transition(session.status, status):
            raise InvalidState(
                f"Session {session.id} cannot go from {session.status} to {status}"
            )
        session.status = status
        session.touch()
        if status.is_final:
            session.ended_at = time.time()
            self._finished[session.id].set()

        logger.debug("Session %s -> %s", session.id, status)
        self.wire.send_status(
            session.id, status.value, exit_code=session.exit_code, signal=session.signal
        )
        self.fanout.broadcast(
            session.observers,
            StatusMessage(
                session_id=session.id,
                status=status.value,
                exit_code=session.exit_code,
                signal=session.signal,
            ),
        )

    def _report_error(self, session: Session, error: str, kind: str = "internal") -> None:
        self.wire.send_error(session.id, error)
        self.fanout.broadcast(
            session.observers,
            ErrorMessage(session_id=session.id, error=error, kind=kind),
        )

    # ------------------------------------------------------------------
    # Garbage collection
    # ------------------------------------------------------------------

    def _schedule_removal(self, session_id: str, delay: float) -> None:
        handle = self._removals.pop(session_id, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._removals[session_id] = loop.call_later(
            delay, self._remove_session, session_id
        )

    def _remove_session(self, session_id: str) -> None:
        handle = self._removals.pop(session_id, None)
        if handle is not None:
            handle.cancel()
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        self._finished.pop(session_id, None)
        self.assembler.clear_session(session_id)
        self.wire.send(WireEvent(EventType.SESSION_REMOVED, session_id))
        logger.debug("Cleaned up session: %s", session_id)

    async def sweep(self, now: float | None = None) -> list[str]:
        """Purge expired finished sessions and terminate stale idle ones.

        Returns the ids removed from the table.
        """
        now = time.time() if now is None else now
        session_config = self.config.session
        removed: list[str] = []
        stale_idle: list[str] = []

        for session_id, session in list(self._sessions.items()):
            if session.status.is_final:
                ended = session.ended_at or session.last_activity
                if now - ended > session_config.terminated_grace:
                    self._remove_session(session_id)
                    removed.append(session_id)
            elif (
                session.status is SessionStatus.IDLE
                and now - session.last_activity > session_config.session_timeout
            ):
                stale_idle.append(session_id)

        for session_id in stale_idle:
            logger.warning("Terminating old idle session: %s", session_id)
            try:
                await self.terminate_session(session_id, force=True)
            except RelayError as e:
                logger.error("Failed to terminate old session %s: %s", session_id, e)

        return removed

    async def _gc_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.session.gc_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session garbage collection failed")

    def __len__(self) -> int:
        return len(self._sessions)
