"""Stream assembler — rebuild logical lines from chunked process output.

Output arrives in arbitrary chunks per (session, channel). The assembler
keeps a pending partial line for each pair, completes lines on newline,
and treats a bare carriage return as an in-place rewrite (progress bars,
spinners): the text after the last ``\\r`` replaces the pending line
instead of extending it. Blank lines are kept as empty completed lines.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable

from termrelay.channel import Channel

logger = logging.getLogger(__name__)

MAX_BUFFER_BYTES = 1024 * 1024
MAX_LINE_LENGTH = 100_000
LINE_TIMEOUT = 5.0

_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_CR_RE = re.compile(r"\r+$")


@dataclass(frozen=True)
class StreamChunk:
    """Raw data tagged with its channel and per-channel sequence number."""

    channel: Channel
    data: bytes
    sequence: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ParsedLine:
    content: str
    complete: bool
    channel: Channel
    timestamp: float = field(default_factory=time.time)


@dataclass
class AssemblyResult:
    complete_lines: list[ParsedLine] = field(default_factory=list)
    partial_line: ParsedLine | None = None
    has_progress: bool = False


@dataclass
class StreamBuffer:
    """Per (session, channel) assembly state."""

    raw: bytearray = field(default_factory=bytearray)
    pending: str = ""
    held_cr: bool = False
    sequence: int = 0
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


def normalize_line(line: str) -> str:
    """Trim, collapse whitespace runs, drop BEL and trailing CRs."""
    normalized = line.strip()
    normalized = normalized.replace("\x07", "")
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return _TRAILING_CR_RE.sub("", normalized)


class StreamAssembler:
    """Line reconstruction for every (session, channel) pair.

    Forced completions (line timeout) are reported to a single subscriber,
    ``on_forced_line(session_id, line)``, since they happen outside any
    caller's ``process_stream`` call.
    """

    def __init__(
        self,
        max_buffer_bytes: int = MAX_BUFFER_BYTES,
        max_line_length: int = MAX_LINE_LENGTH,
        line_timeout: float = LINE_TIMEOUT,
        on_forced_line: Callable[[str, ParsedLine], None] | None = None,
    ) -> None:
        self._buffers: dict[tuple[str, Channel], StreamBuffer] = {}
        self.max_buffer_bytes = max_buffer_bytes
        self.max_line_length = max_line_length
        self.line_timeout = line_timeout
        self._on_forced_line = on_forced_line

    def set_on_forced_line(self, callback: Callable[[str, ParsedLine], None]) -> None:
        self._on_forced_line = callback

    def _buffer(self, session_id: str, channel: Channel) -> StreamBuffer:
        key = (session_id, channel)
        buf = self._buffers.get(key)
        if buf is None:
            buf = self._buffers[key] = StreamBuffer()
        return buf

    def create_chunk(self, session_id: str, channel: Channel, data: bytes) -> StreamChunk:
        """Tag ``data`` with the next sequence number for its channel."""
        buf = self._buffer(session_id, channel)
        buf.sequence += 1
        return StreamChunk(channel=channel, data=data, sequence=buf.sequence)

    # ------------------------------------------------------------------
    # Byte-boundary path
    # ------------------------------------------------------------------

    def process_chunk(
        self, session_id: str, channel: Channel, data: bytes
    ) -> list[ParsedLine]:
        """Append raw bytes and return the lines they complete.

        The trailing partial line stays buffered as bytes, so multi-byte
        characters split across chunks decode correctly.
        """
        buf = self._buffer(session_id, channel)
        buf.raw.extend(data)
        if len(buf.raw) > self.max_buffer_bytes:
            logger.warning(
                "Buffer overflow for %s:%s, keeping last %d bytes",
                session_id,
                channel,
                self.max_buffer_bytes,
            )
            del buf.raw[: len(buf.raw) - self.max_buffer_bytes]

        *complete, rest = bytes(buf.raw).split(b"\n")
        buf.raw[:] = rest
        lines = []
        for raw_line in complete:
            text = raw_line.decode("utf-8", errors="replace")
            lines.append(ParsedLine(normalize_line(text), True, channel))
        return lines

    # ------------------------------------------------------------------
    # Real-time path
    # ------------------------------------------------------------------

    def process_stream(
        self, session_id: str, channel: Channel, data: bytes
    ) -> AssemblyResult:
        """Feed a chunk into line reconstruction.

        Returns the lines this chunk completed and the current partial line.
        A ``\\r`` at the very end of a chunk is held back until the next
        chunk shows whether it starts a ``\\r\\n`` or a rewrite.
        """
        buf = self._buffer(session_id, channel)
        buf.cancel_timer()

        text = buf.pending + ("\r" if buf.held_cr else "")
        text += data.decode("utf-8", errors="replace")
        buf.held_cr = text.endswith("\r")
        if buf.held_cr:
            text = text[:-1]
        text = text.replace("\r\n", "\n")

        rewrite = "\r" in text
        if rewrite:
            completed, pending = self._split_rewrite(text)
        else:
            *completed, pending = text.split("\n")

        result = AssemblyResult(has_progress=rewrite)
        for line in completed:
            result.complete_lines.append(ParsedLine(normalize_line(line), True, channel))

        buf.pending = pending
        if len(pending) > self.max_line_length:
            logger.debug(
                "Pending line for %s:%s exceeded %d chars, completing",
                session_id,
                channel,
                self.max_line_length,
            )
            result.complete_lines.append(ParsedLine(normalize_line(pending), True, channel))
            buf.pending = ""
            buf.held_cr = False
        elif pending or buf.held_cr:
            if pending:
                result.partial_line = ParsedLine(normalize_line(pending), False, channel)
            self._arm_timer(session_id, channel, buf)
        return result

    @staticmethod
    def _split_rewrite(text: str) -> tuple[list[str], str]:
        """Split text containing in-place rewrites.

        Every segment closed by ``\\r`` contributes its lines as completed;
        an empty segment (``\\r\\r``) contributes nothing. The segment after
        the last ``\\r`` supersedes the pending line.
        """
        *closed, last = text.split("\r")
        completed: list[str] = []
        for segment in closed:
            if segment:
                completed.extend(segment.split("\n"))
        *tail_lines, new_pending = last.split("\n")
        completed.extend(tail_lines)
        return completed, new_pending

    def _arm_timer(self, session_id: str, channel: Channel, buf: StreamBuffer) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: synchronous callers flush with flush_pending_lines().
            return
        buf.timer = loop.call_later(
            self.line_timeout, self._force_complete, session_id, channel
        )

    def _force_complete(self, session_id: str, channel: Channel) -> None:
        buf = self._buffers.get((session_id, channel))
        if buf is None:
            return
        buf.timer = None
        buf.held_cr = False
        if not buf.pending:
            return
        line = ParsedLine(normalize_line(buf.pending), True, channel)
        buf.pending = ""
        logger.debug("Forced completion for %s:%s: %s", session_id, channel, line.content)
        if self._on_forced_line is not None:
            try:
                self._on_forced_line(session_id, line)
            except Exception:
                logger.exception("Error in forced line callback for %s", session_id)

    # ------------------------------------------------------------------
    # Inspection and cleanup
    # ------------------------------------------------------------------

    def buffer_status(self, session_id: str) -> dict[str, dict[str, object]]:
        status: dict[str, dict[str, object]] = {}
        for channel in Channel:
            buf = self._buffers.get((session_id, channel))
            status[channel.value] = {
                "size": len(buf.raw) if buf else 0,
                "has_partial_line": bool(buf and buf.pending),
                "sequence": buf.sequence if buf else 0,
            }
        return status

    def pending_partial_lines(self, session_id: str) -> dict[Channel, str]:
        return {
            channel: buf.pending
            for channel in Channel
            if (buf := self._buffers.get((session_id, channel))) and buf.pending
        }

    def flush_pending_lines(self, session_id: str) -> list[ParsedLine]:
        """Complete and clear any partial lines for a session."""
        flushed = []
        for channel in Channel:
            buf = self._buffers.get((session_id, channel))
            if buf is None:
                continue
            buf.cancel_timer()
            buf.held_cr = False
            if buf.pending:
                flushed.append(ParsedLine(normalize_line(buf.pending), True, channel))
                buf.pending = ""
        return flushed

    def clear_session(self, session_id: str) -> None:
        for channel in Channel:
            buf = self._buffers.pop((session_id, channel), None)
            if buf is not None:
                buf.cancel_timer()

    def get_stats(self) -> dict[str, int]:
        sessions = {session_id for session_id, _ in self._buffers}
        return {
            "active_sessions": len(sessions),
            "total_buffer_size": sum(len(b.raw) for b in self._buffers.values()),
            "pending_timeouts": sum(
                1 for b in self._buffers.values() if b.timer is not None
            ),
        }
