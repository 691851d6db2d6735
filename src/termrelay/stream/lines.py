"""Rolling log of completed lines for one session."""

from __future__ import annotations

import asyncio
import re
from collections import deque

from termrelay.channel import Channel
from termrelay.stream.assembler import ParsedLine


class LineLog:
    """Bounded log of completed lines, oldest dropped first.

    Holds both channels in arrival order. Lives on the event loop thread;
    ``wait_for_data()`` lets consumers await new lines instead of polling.
    """

    def __init__(self, max_lines: int = 10_000) -> None:
        self._lines: deque[ParsedLine] = deque(maxlen=max_lines)
        self._total_lines: int = 0
        self._data_event = asyncio.Event()

    def append(self, line: ParsedLine) -> None:
        self._lines.append(line)
        self._total_lines += 1
        self._data_event.set()

    def extend(self, lines: list[ParsedLine]) -> None:
        if not lines:
            return
        self._lines.extend(lines)
        self._total_lines += len(lines)
        self._data_event.set()

    async def wait_for_data(self, timeout: float | None = None) -> bool:
        """Wait until new lines are appended (or timeout).

        Returns True if data arrived, False on timeout.
        Resets the event so the next call blocks again.
        """
        try:
            await asyncio.wait_for(self._data_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        self._data_event.clear()
        return True

    def _select(self, channel: Channel | None) -> list[ParsedLine]:
        if channel is None:
            return list(self._lines)
        return [line for line in self._lines if line.channel == channel]

    def read(
        self, offset: int = 0, limit: int = 500, channel: Channel | None = None
    ) -> list[ParsedLine]:
        """Read lines starting at a 0-based offset within the current log."""
        lines = self._select(channel)
        start = min(offset, len(lines))
        return lines[start : start + limit]

    def read_tail(self, n: int = 100, channel: Channel | None = None) -> list[ParsedLine]:
        lines = self._select(channel)
        return lines[-n:] if len(lines) > n else lines

    def read_text(self, channel: Channel | None = None) -> str:
        return "\n".join(line.content for line in self._select(channel))

    def search(self, pattern: str, limit: int = 50) -> list[tuple[int, ParsedLine]]:
        """Return (index, line) pairs whose content matches ``pattern``.

        An invalid regex matches nothing.
        """
        try:
            compiled = re.compile(pattern)
        except re.error:
            return []

        results = []
        for i, line in enumerate(self._lines):
            if compiled.search(line.content):
                results.append((i, line))
                if len(results) >= limit:
                    break
        return results

    @property
    def line_count(self) -> int:
        return len(self._lines)

    @property
    def total_lines(self) -> int:
        """Total number of lines ever added."""
        return self._total_lines

    def clear(self) -> None:
        self._lines.clear()
        self._total_lines = 0
