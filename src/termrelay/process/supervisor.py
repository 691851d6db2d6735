"""Process supervisor — spawn, signal and watch wrapped programs."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
from typing import Any

from termrelay.channel import Channel
from termrelay.config import SupervisorConfig
from termrelay.errors import (
    DuplicateId,
    InternalError,
    InvalidState,
    NotRunning,
    ProcessNotFound,
    RelayError,
    ResourceExhausted,
    SpawnFailed,
    WriteFailed,
)
from termrelay.process.events import OutputChunk, ProcessEvent, ProcessExited, ProcessFailed
from termrelay.process.managed import ManagedProcess, ProcessConfig, ProcessStatus

logger = logging.getLogger(__name__)

UTF8_LOCALE = "en_US.UTF-8"


def build_environment(overrides: dict[str, str]) -> dict[str, str]:
    """Current environment overlaid with ``overrides``, with a UTF-8 locale."""
    env = {**os.environ, **overrides}
    for key in ("LANG", "LC_ALL"):
        value = env.get(key, "").lower().replace("utf8", "utf-8")
        if "utf-8" not in value:
            env[key] = UTF8_LOCALE
    return env


class ProcessSupervisor:
    """Owns the lifecycle of every wrapped OS process.

    Each process runs in its own process group (``start_new_session``) so
    signals reach the whole tree. Output, exit and failure notifications
    are put on ``events``, an ``asyncio.Queue`` read by exactly one
    consumer. All chunks of a process are queued before its exit event.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self.config = config or SupervisorConfig()
        self.events: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        self._processes: dict[str, ManagedProcess] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------

    async def spawn(self, process_id: str, config: ProcessConfig) -> ManagedProcess:
        """Launch a process and start delivering its output.

        Raises:
            DuplicateId: ``process_id`` is already tracked.
            ResourceExhausted: the live process cap is reached.
            SpawnFailed: the OS refused the spawn or did not confirm it in time.
        """
        if process_id in self._processes:
            raise DuplicateId(f"Process with ID {process_id} already exists")

        live = sum(1 for p in self._processes.values() if not p.status.is_final)
        if live >= self.config.max_processes:
            raise ResourceExhausted(
                f"Maximum number of processes ({self.config.max_processes}) reached"
            )

        managed = ManagedProcess(id=process_id, config=config)
        self._processes[process_id] = managed

        try:
            proc = await asyncio.wait_for(
                self._launch(config), timeout=self.config.spawn_timeout
            )
        except asyncio.TimeoutError as e:
            self._abandon(managed)
            raise SpawnFailed(
                f"Process {process_id} failed to spawn within "
                f"{self.config.spawn_timeout}s"
            ) from e
        except (OSError, ValueError) as e:
            self._abandon(managed)
            raise SpawnFailed(f"Process {process_id} failed to spawn: {e}") from e

        managed._proc = proc
        managed.pid = proc.pid
        managed.pgid = proc.pid  # group leader of its own session
        managed.status = ProcessStatus.RUNNING

        managed._readers = [
            self._start_task(self._read_loop(managed, proc.stdout, Channel.STDOUT)),
            self._start_task(self._read_loop(managed, proc.stderr, Channel.STDERR)),
        ]
        managed._watcher = self._start_task(self._watch(managed))

        if config.timeout and config.timeout > 0:
            loop = asyncio.get_running_loop()
            managed._timeout_handle = loop.call_later(
                config.timeout, self._on_timeout, process_id
            )

        logger.info(
            "Process %s started: pid=%d cmd=%s",
            process_id,
            proc.pid,
            shlex.join([config.command, *config.args]),
        )
        return managed

    async def _launch(self, config: ProcessConfig) -> asyncio.subprocess.Process:
        env = build_environment(config.env)
        use_shell = (
            config.use_shell if config.use_shell is not None else self.config.use_shell
        )
        pipes: dict[str, Any] = dict(
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=config.cwd,
            env=env,
            start_new_session=True,
        )
        if use_shell:
            # Shell resolution trades argument isolation for alias/script lookup.
            cmdline = " ".join([config.command, *map(shlex.quote, config.args)])
            return await asyncio.create_subprocess_shell(cmdline, **pipes)
        return await asyncio.create_subprocess_exec(
            config.command, *config.args, **pipes
        )

    def _abandon(self, managed: ManagedProcess) -> None:
        managed.status = ProcessStatus.ERROR
        if self._processes.get(managed.id) is managed:
            del self._processes[managed.id]
        logger.warning("Spawn failed for process %s", managed.id)

    def _start_task(self, coro: Any) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Background readers
    # ------------------------------------------------------------------

    async def _read_loop(
        self,
        managed: ManagedProcess,
        stream: asyncio.StreamReader | None,
        channel: Channel,
    ) -> None:
        if stream is None:
            return
        try:
            while True:
                data = await stream.read(self.config.read_size)
                if not data:
                    break
                self.events.put_nowait(OutputChunk(managed.id, channel, data))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("%s reader for process %s failed: %s", channel, managed.id, e)
            self._fail(managed, e)

    async def _watch(self, managed: ManagedProcess) -> None:
        proc = managed._proc
        assert proc is not None
        returncode = await proc.wait()

        # Let readers drain what the process wrote before exiting.
        pending = [r for r in managed._readers if not r.done()]
        if pending:
            await asyncio.wait(pending, timeout=self.config.reap_delay)
            for reader in pending:
                reader.cancel()

        if managed._timeout_handle is not None:
            managed._timeout_handle.cancel()
            managed._timeout_handle = None

        if returncode < 0:
            managed.exit_code = None
            managed.signal = _signal_name(-returncode)
        else:
            managed.exit_code = returncode
            managed.signal = None

        if not managed.status.is_final:
            managed.status = ProcessStatus.TERMINATED
        managed._exited.set()
        if proc.stdin is not None:
            proc.stdin.close()

        logger.info(
            "Process %s exited (code=%s, signal=%s)",
            managed.id,
            managed.exit_code,
            managed.signal,
        )
        self.events.put_nowait(
            ProcessExited(managed.id, managed.exit_code, managed.signal)
        )

        asyncio.get_running_loop().call_later(
            self.config.reap_delay, self._reap, managed
        )

    def _reap(self, managed: ManagedProcess) -> None:
        if self._processes.get(managed.id) is managed:
            del self._processes[managed.id]

    def _fail(self, managed: ManagedProcess, error: Exception) -> None:
        if managed.status.is_final:
            return
        managed.status = ProcessStatus.ERROR
        if not isinstance(error, RelayError):
            wrapped = InternalError(f"Process {managed.id} failed: {error}")
            wrapped.__cause__ = error
            error = wrapped
        self.events.put_nowait(ProcessFailed(managed.id, error))

    def _on_timeout(self, process_id: str) -> None:
        managed = self._processes.get(process_id)
        if managed is None or not managed.alive:
            return
        managed._timeout_handle = None
        logger.warning("Process %s timed out, terminating", process_id)
        task = self._start_task(self.kill(process_id))
        task.add_done_callback(_log_task_failure)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _require(self, process_id: str) -> ManagedProcess:
        managed = self._processes.get(process_id)
        if managed is None:
            raise ProcessNotFound(process_id)
        return managed

    async def send(self, process_id: str, text: str) -> None:
        """Write text (UTF-8) to the process's stdin."""
        await self.send_raw(process_id, text.encode("utf-8"))

    async def send_raw(self, process_id: str, data: bytes) -> None:
        managed = self._require(process_id)
        if managed.status is not ProcessStatus.RUNNING:
            raise NotRunning(process_id, managed.status.value)

        stdin = managed._proc.stdin if managed._proc else None
        if stdin is None:
            raise WriteFailed(f"Process {process_id} stdin is not available")
        try:
            stdin.write(data)
            await stdin.drain()
        except (ConnectionError, OSError) as e:
            raise WriteFailed(f"Failed to write to process {process_id}: {e}") from e

    async def close_input(self, process_id: str) -> None:
        """Close the process's stdin so it sees end of input."""
        managed = self._require(process_id)
        stdin = managed._proc.stdin if managed._proc else None
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _deliver(self, managed: ManagedProcess, sig: int) -> None:
        """Signal the process group, raising ProcessLookupError if it is gone."""
        assert managed.pgid is not None
        os.killpg(managed.pgid, sig)

    def _deliver_quietly(self, managed: ManagedProcess, sig: int) -> None:
        try:
            self._deliver(managed, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %s", managed.pgid)

    async def kill(self, process_id: str, sig: int = signal.SIGTERM) -> None:
        """Terminate a process.

        With the default SIGTERM the process gets ``kill_grace`` seconds to
        exit before SIGKILL. Any other signal is delivered as-is without
        waiting. Killing a terminated process is a no-op.
        """
        managed = self._require(process_id)
        if managed.status is ProcessStatus.TERMINATED or managed._exited.is_set():
            return
        if managed._proc is None:
            return

        if sig == signal.SIGTERM:
            was_paused = managed.status is ProcessStatus.PAUSED
            self._deliver_quietly(managed, signal.SIGTERM)
            if was_paused:
                # Stopped processes only act on SIGTERM once continued.
                self._deliver_quietly(managed, signal.SIGCONT)
            if not await self._wait_exited(managed, self.config.kill_grace):
                logger.warning(
                    "Process %s did not terminate gracefully, force killing", process_id
                )
                self._deliver_quietly(managed, signal.SIGKILL)
                await self._wait_exited(managed, self.config.kill_grace)
        else:
            self._deliver_quietly(managed, sig)

    async def pause(self, process_id: str) -> None:
        managed = self._require(process_id)
        if managed.status is not ProcessStatus.RUNNING:
            raise InvalidState(
                f"Process {process_id} is not running (status: {managed.status})"
            )
        try:
            self._deliver(managed, signal.SIGSTOP)
        except ProcessLookupError as e:
            raise InvalidState(f"Process {process_id} has already exited") from e
        managed.status = ProcessStatus.PAUSED

    async def resume(self, process_id: str) -> None:
        managed = self._require(process_id)
        if managed.status is not ProcessStatus.PAUSED:
            raise InvalidState(
                f"Process {process_id} is not paused (status: {managed.status})"
            )
        try:
            self._deliver(managed, signal.SIGCONT)
        except ProcessLookupError as e:
            raise InvalidState(f"Process {process_id} has already exited") from e
        managed.status = ProcessStatus.RUNNING

    async def kill_all(self) -> None:
        """Kill every tracked process concurrently; failures are logged."""
        process_ids = list(self._processes)
        results = await asyncio.gather(
            *(self.kill(pid) for pid in process_ids), return_exceptions=True
        )
        for process_id, result in zip(process_ids, results):
            if isinstance(result, Exception):
                logger.warning("Failed to kill process %s: %s", process_id, result)

    # ------------------------------------------------------------------
    # Waiting and inspection
    # ------------------------------------------------------------------

    async def _wait_exited(self, managed: ManagedProcess, timeout: float) -> bool:
        try:
            await asyncio.wait_for(managed._exited.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_for_exit(self, process_id: str, timeout: float = 10.0) -> bool:
        """Wait for a process to exit. Returns False on timeout."""
        return await self._wait_exited(self._require(process_id), timeout)

    def get(self, process_id: str) -> ManagedProcess | None:
        return self._processes.get(process_id)

    def list_processes(self) -> list[ManagedProcess]:
        return list(self._processes.values())

    def running_count(self) -> int:
        return sum(1 for p in self._processes.values() if p.status is ProcessStatus.RUNNING)

    def is_running(self, process_id: str) -> bool:
        managed = self._processes.get(process_id)
        return managed is not None and managed.status is ProcessStatus.RUNNING

    def cleanup(self) -> None:
        """Drop terminated and failed entries."""
        for process_id, managed in list(self._processes.items()):
            if managed.status.is_final:
                del self._processes[process_id]

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {"total": len(self._processes)}
        for status in ProcessStatus:
            stats[status.value] = 0
        uptime: dict[str, float] = {}
        for managed in self._processes.values():
            stats[managed.status.value] += 1
            uptime[managed.id] = managed.uptime
        stats["uptime"] = uptime
        return stats

    async def close(self) -> None:
        """Kill everything and stop background tasks."""
        await self.kill_all()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("All processes cleaned up")

    def __len__(self) -> int:
        return len(self._processes)


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Background kill failed: %s", exc)
