"""Format engine — turn captured bytes into terminal output records."""

from __future__ import annotations

import base64
import enum
import json
import logging
import re
import time
from dataclasses import dataclass, field

from termrelay.channel import Channel
from termrelay.format.ansi import EscapeSequence, parse_ansi, sanitize_control, strip_ansi
from termrelay.format.html import ansi_to_html

logger = logging.getLogger(__name__)


class OutputFormat(enum.StrEnum):
    RAW = "raw"
    TEXT = "text"
    HTML = "html"
    JSON = "json"


@dataclass(frozen=True)
class TerminalOutput:
    """One captured unit of output in every representation we serve."""

    raw: bytes
    text: str
    ansi: str
    formatted: tuple[EscapeSequence, ...]
    source: Channel = Channel.STDOUT
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, object]:
        return {
            "text": self.text,
            "ansi": self.ansi,
            "formatted": [seq.to_dict() for seq in self.formatted],
            "source": self.source.value,
            "timestamp": self.timestamp,
        }


PROGRESS_CHARS = ("█", "▓", "▒", "░", "⠁", "⠂", "⠄", "|", "\\", "/", "-")

_PROGRESS_PATTERNS = [
    re.compile(r"\r[^\n]*[█-▏▐][^\n]*"),  # block bars
    re.compile(r"\r[^\n]*[░▒▓█][^\n]*"),
    re.compile(r"\r[^\n]*[⠁⠂⠄⡀⢀⠠⠐⠈][^\n]*"),  # braille spinners
    re.compile(r"\r[^\n]*[|\-/\\][^\n]*"),  # ascii spinners
    re.compile(r"\r[^\n]*\d+%[^\n]*"),
    re.compile(r"\r.*?[\r\n]"),
]


class FormatEngine:
    """Stateless translator between bytes, text, escape descriptors and
    serialized output formats."""

    def process(self, data: bytes, source: Channel = Channel.STDOUT) -> TerminalOutput:
        ansi = data.decode("utf-8", errors="replace")
        return TerminalOutput(
            raw=bytes(data),
            text=strip_ansi(sanitize_control(ansi)),
            ansi=ansi,
            formatted=tuple(parse_ansi(ansi)),
            source=source,
        )

    def serialize(self, output: TerminalOutput, fmt: OutputFormat | str) -> str:
        """Serialize a record for transmission.

        ``raw`` is base64 of the original bytes and decodes back losslessly;
        ``json`` carries everything except the raw bytes.
        """
        fmt = OutputFormat(fmt)
        if fmt is OutputFormat.RAW:
            return base64.b64encode(output.raw).decode("ascii")
        if fmt is OutputFormat.HTML:
            return ansi_to_html(output.ansi)
        if fmt is OutputFormat.JSON:
            return json.dumps(output.to_dict(), indent=2, ensure_ascii=False)
        return output.text

    def contains_progress_indicators(self, text: str) -> bool:
        return (
            any(ch in text for ch in PROGRESS_CHARS) or "%" in text or "\r" in text
        )

    def strip_progress_indicators(self, text: str) -> str:
        result = text
        for pattern in _PROGRESS_PATTERNS:
            result = pattern.sub("", result)
        return result
