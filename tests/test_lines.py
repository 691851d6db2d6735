"""Tests for termrelay.stream.lines.LineLog."""

from __future__ import annotations

import asyncio

from termrelay.channel import Channel
from termrelay.stream.assembler import ParsedLine
from termrelay.stream.lines import LineLog


def line(content: str, channel: Channel = Channel.STDOUT) -> ParsedLine:
    return ParsedLine(content, True, channel)


class TestLineLogBasics:
    def test_empty(self) -> None:
        log = LineLog()
        assert log.line_count == 0
        assert log.total_lines == 0
        assert log.read_text() == ""

    def test_append(self) -> None:
        log = LineLog()
        log.append(line("hello"))
        log.append(line("world"))
        assert log.line_count == 2
        assert log.total_lines == 2

    def test_extend(self) -> None:
        log = LineLog()
        log.extend([line("a"), line("b"), line("c")])
        assert log.read_text() == "a\nb\nc"

    def test_extend_empty(self) -> None:
        log = LineLog()
        log.extend([])
        assert log.total_lines == 0


class TestLineLogOverflow:
    def test_maxlen_enforced(self) -> None:
        log = LineLog(max_lines=5)
        for i in range(10):
            log.append(line(f"line {i}"))
        assert log.line_count == 5
        assert log.total_lines == 10
        assert [entry.content for entry in log.read()] == [f"line {i}" for i in range(5, 10)]


class TestLineLogRead:
    def test_read_with_offset(self) -> None:
        log = LineLog()
        for i in range(10):
            log.append(line(f"line {i}"))
        assert [entry.content for entry in log.read(offset=5, limit=3)] == [
            "line 5",
            "line 6",
            "line 7",
        ]

    def test_read_beyond_end(self) -> None:
        log = LineLog()
        log.append(line("only line"))
        assert log.read(offset=5, limit=10) == []

    def test_read_tail(self) -> None:
        log = LineLog()
        for i in range(10):
            log.append(line(f"line {i}"))
        assert [entry.content for entry in log.read_tail(3)] == ["line 7", "line 8", "line 9"]

    def test_read_tail_more_than_available(self) -> None:
        log = LineLog()
        log.extend([line("a"), line("b")])
        assert len(log.read_tail(10)) == 2

    def test_channel_filter(self) -> None:
        log = LineLog()
        log.append(line("out 1"))
        log.append(line("err 1", Channel.STDERR))
        log.append(line("out 2"))
        assert log.read_text(Channel.STDOUT) == "out 1\nout 2"
        assert [entry.content for entry in log.read_tail(5, Channel.STDERR)] == ["err 1"]


class TestLineLogSearch:
    def test_search_regex(self) -> None:
        log = LineLog()
        log.append(line("error: something failed"))
        log.append(line("info: all good"))
        log.append(line("error: another failure"))
        results = log.search(r"^error")
        assert [i for i, _ in results] == [0, 2]

    def test_search_invalid_regex(self) -> None:
        log = LineLog()
        log.append(line("hello"))
        assert log.search("[invalid") == []

    def test_search_limit(self) -> None:
        log = LineLog()
        for i in range(10):
            log.append(line(f"match {i}"))
        assert len(log.search("match", limit=3)) == 3


class TestLineLogWait:
    async def test_wait_returns_on_append(self) -> None:
        log = LineLog()

        async def producer() -> None:
            await asyncio.sleep(0.05)
            log.append(line("late"))

        task = asyncio.create_task(producer())
        assert await log.wait_for_data(timeout=1.0)
        await task

    async def test_wait_times_out(self) -> None:
        log = LineLog()
        assert not await log.wait_for_data(timeout=0.05)

    async def test_wait_resets(self) -> None:
        log = LineLog()
        log.append(line("x"))
        assert await log.wait_for_data(timeout=0.05)
        assert not await log.wait_for_data(timeout=0.05)


class TestLineLogClear:
    def test_clear(self) -> None:
        log = LineLog()
        for i in range(5):
            log.append(line(f"line {i}"))
        log.clear()
        assert log.line_count == 0
        assert log.total_lines == 0
