"""Tests for termrelay.format.engine.FormatEngine."""

from __future__ import annotations

import base64
import json

import pytest

from termrelay.channel import Channel
from termrelay.format.ansi import SequenceType
from termrelay.format.engine import FormatEngine, OutputFormat, TerminalOutput


@pytest.fixture
def engine() -> FormatEngine:
    return FormatEngine()


# ---------------------------------------------------------------------------
# process
# ---------------------------------------------------------------------------


class TestProcess:
    def test_red_example(self, engine: FormatEngine) -> None:
        output = engine.process(b"\x1b[31mRed\x1b[0m")
        assert output.text == "Red"
        assert output.ansi == "\x1b[31mRed\x1b[0m"
        red = [
            s for s in output.formatted if s.type is SequenceType.COLOR and 31 in s.params
        ]
        assert len(red) == 1

    def test_keeps_raw_bytes(self, engine: FormatEngine) -> None:
        data = b"\xff\xfe partial \xe2\x82"
        output = engine.process(data)
        assert output.raw == data
        assert "�" in output.text

    def test_source_recorded(self, engine: FormatEngine) -> None:
        output = engine.process(b"oops", Channel.STDERR)
        assert output.source is Channel.STDERR

    def test_text_drops_control_garbage(self, engine: FormatEngine) -> None:
        assert engine.process(b"a\x00b\x07c").text == "abc"

    def test_to_dict(self, engine: FormatEngine) -> None:
        d = engine.process(b"\x1b[1mhi").to_dict()
        assert d["text"] == "hi"
        assert d["source"] == "stdout"
        assert d["formatted"][0]["description"] == "bold"
        assert "raw" not in d


# ---------------------------------------------------------------------------
# serialize
# ---------------------------------------------------------------------------


class TestSerialize:
    @pytest.mark.parametrize(
        "data",
        [b"", b"plain", b"\x1b[31mRed\x1b[0m", bytes(range(256)), "日本語".encode()],
    )
    def test_raw_round_trip(self, engine: FormatEngine, data: bytes) -> None:
        encoded = engine.serialize(engine.process(data), OutputFormat.RAW)
        assert base64.b64decode(encoded) == data

    def test_text(self, engine: FormatEngine) -> None:
        output = engine.process(b"\x1b[31mRed\x1b[0m")
        assert engine.serialize(output, "text") == "Red"

    def test_html(self, engine: FormatEngine) -> None:
        output = engine.process(b"\x1b[31mRed\x1b[0m after")
        assert (
            engine.serialize(output, OutputFormat.HTML)
            == '<span style="color: #cd0000">Red</span> after'
        )

    def test_json(self, engine: FormatEngine) -> None:
        output = engine.process("\x1b[32mé\x1b[0m".encode())
        serialized = engine.serialize(output, "json")
        assert "\n  " in serialized  # indented
        assert "é" in serialized
        d = json.loads(serialized)
        assert d["text"] == "é"
        assert d["source"] == "stdout"
        assert [f["params"] for f in d["formatted"]] == [[32], [0]]

    def test_unknown_format(self, engine: FormatEngine) -> None:
        with pytest.raises(ValueError):
            engine.serialize(engine.process(b"x"), "xml")

    def test_output_is_immutable(self, engine: FormatEngine) -> None:
        output = engine.process(b"x")
        assert isinstance(output, TerminalOutput)
        with pytest.raises(AttributeError):
            output.text = "y"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Progress indicators
# ---------------------------------------------------------------------------


class TestProgress:
    def test_detects_percent(self, engine: FormatEngine) -> None:
        assert engine.contains_progress_indicators("Downloading 45%")

    def test_detects_block_bar(self, engine: FormatEngine) -> None:
        assert engine.contains_progress_indicators("[███░░░]")

    def test_detects_carriage_return(self, engine: FormatEngine) -> None:
        assert engine.contains_progress_indicators("a\rb")

    def test_plain_text(self, engine: FormatEngine) -> None:
        assert not engine.contains_progress_indicators("hello world")

    def test_strip_percent_rewrite(self, engine: FormatEngine) -> None:
        assert engine.strip_progress_indicators("done\r 50%\n") == "done\n"

    def test_strip_leaves_plain_text(self, engine: FormatEngine) -> None:
        assert engine.strip_progress_indicators("line one\nline two") == "line one\nline two"
