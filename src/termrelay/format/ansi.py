"""ANSI escape sequence parsing, stripping and description."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

# Only well-formed CSI sequences match; anything else stays in the text.
CSI_RE = re.compile(r"\x1b\[([0-9;]*)([a-zA-Z])")


class SequenceType(enum.StrEnum):
    COLOR = "color"
    CURSOR = "cursor"
    ERASE = "erase"
    STYLE = "style"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class EscapeSequence:
    """One CSI escape sequence found in a text."""

    type: SequenceType
    code: str
    params: tuple[int, ...]
    description: str
    position: int

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "code": self.code,
            "params": list(self.params),
            "description": self.description,
            "position": self.position,
        }


# name, hex
COLOR_CODES: dict[int, tuple[str, str]] = {
    30: ("black", "#000000"),
    31: ("red", "#cd0000"),
    32: ("green", "#00cd00"),
    33: ("yellow", "#cdcd00"),
    34: ("blue", "#0000ee"),
    35: ("magenta", "#cd00cd"),
    36: ("cyan", "#00cdcd"),
    37: ("white", "#e5e5e5"),
    90: ("bright-black", "#7f7f7f"),
    91: ("bright-red", "#ff0000"),
    92: ("bright-green", "#00ff00"),
    93: ("bright-yellow", "#ffff00"),
    94: ("bright-blue", "#5c5cff"),
    95: ("bright-magenta", "#ff00ff"),
    96: ("bright-cyan", "#00ffff"),
    97: ("bright-white", "#ffffff"),
    40: ("bg-black", "#000000"),
    41: ("bg-red", "#cd0000"),
    42: ("bg-green", "#00cd00"),
    43: ("bg-yellow", "#cdcd00"),
    44: ("bg-blue", "#0000ee"),
    45: ("bg-magenta", "#cd00cd"),
    46: ("bg-cyan", "#00cdcd"),
    47: ("bg-white", "#e5e5e5"),
    100: ("bg-bright-black", "#7f7f7f"),
    101: ("bg-bright-red", "#ff0000"),
    102: ("bg-bright-green", "#00ff00"),
    103: ("bg-bright-yellow", "#ffff00"),
    104: ("bg-bright-blue", "#5c5cff"),
    105: ("bg-bright-magenta", "#ff00ff"),
    106: ("bg-bright-cyan", "#00ffff"),
    107: ("bg-bright-white", "#ffffff"),
}

STYLE_CODES: dict[int, str] = {
    0: "reset",
    1: "bold",
    2: "dim",
    3: "italic",
    4: "underline",
    5: "blink",
    7: "reverse",
    8: "hidden",
    9: "strikethrough",
    22: "normal-intensity",
    23: "no-italic",
    24: "no-underline",
    25: "no-blink",
    27: "no-reverse",
    28: "no-hidden",
    29: "no-strikethrough",
    39: "default-foreground",
    49: "default-background",
}

_CURSOR_FINALS = frozenset("HfABCDSTsu")
_ERASE_FINALS = frozenset("JK")
_MODE_FINALS = frozenset("hl")


def strip_ansi(text: str) -> str:
    """Strip ANSI CSI escape sequences from text."""
    return CSI_RE.sub("", text)


def sanitize_control(text: str) -> str:
    """Remove binary garbage and stray control characters.

    Keeps printable chars, tabs, newlines, carriage returns and ESC (so
    escape sequences survive for later parsing).
    """
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if ch in ("\t", "\n", "\r", "\x1b"):
            cleaned.append(ch)
        elif cp >= 32 and cp not in range(0x7F, 0xA0):
            if cp not in range(0xFFF9, 0xFFFC):
                cleaned.append(ch)
    return "".join(cleaned)


def parse_params(raw: str) -> tuple[int, ...]:
    """Parse the ``;``-separated parameter string, dropping empty tokens."""
    return tuple(int(p) for p in raw.split(";") if p.isdigit())


def classify(final: str) -> SequenceType:
    if final == "m":
        return SequenceType.COLOR
    if final in _CURSOR_FINALS:
        return SequenceType.CURSOR
    if final in _ERASE_FINALS:
        return SequenceType.ERASE
    if final in _MODE_FINALS:
        return SequenceType.STYLE
    return SequenceType.UNKNOWN


def describe_sgr(params: tuple[int, ...]) -> str:
    if not params:
        return "Reset all formatting"
    if params == (0,):
        return "Reset all formatting"

    descriptions: list[str] = []
    for param in params:
        if param in STYLE_CODES:
            descriptions.append(STYLE_CODES[param])
        elif param in COLOR_CODES:
            descriptions.append(COLOR_CODES[param][0])
        else:
            descriptions.append(f"code-{param}")
    return ", ".join(descriptions)


def describe_cursor(final: str, params: tuple[int, ...]) -> str:
    n = params[0] if params and params[0] else 1
    if final in ("H", "f"):
        row = params[0] if len(params) > 0 and params[0] else 1
        col = params[1] if len(params) > 1 and params[1] else 1
        return f"Move cursor to row {row}, column {col}"
    if final == "A":
        return f"Move cursor up {n} lines"
    if final == "B":
        return f"Move cursor down {n} lines"
    if final == "C":
        return f"Move cursor right {n} columns"
    if final == "D":
        return f"Move cursor left {n} columns"
    if final == "S":
        return f"Scroll up {n} lines"
    if final == "T":
        return f"Scroll down {n} lines"
    if final == "s":
        return "Save cursor position"
    if final == "u":
        return "Restore cursor position"
    return f"Cursor command: {final}"


def describe_erase(final: str, params: tuple[int, ...]) -> str:
    mode = params[0] if params else 0
    if final == "J":
        return {
            0: "Erase from cursor to end of screen",
            1: "Erase from cursor to beginning of screen",
            2: "Erase entire screen",
            3: "Erase entire screen and scrollback buffer",
        }.get(mode, f"Erase screen (mode {mode})")
    return {
        0: "Erase from cursor to end of line",
        1: "Erase from cursor to beginning of line",
        2: "Erase entire line",
    }.get(mode, f"Erase line (mode {mode})")


def describe(code: str, final: str, params: tuple[int, ...], kind: SequenceType) -> str:
    """Human-readable description of one sequence."""
    if kind is SequenceType.COLOR:
        return describe_sgr(params)
    if kind is SequenceType.CURSOR:
        return describe_cursor(final, params)
    if kind is SequenceType.ERASE:
        return describe_erase(final, params)
    if kind is SequenceType.STYLE:
        action = "Set" if final == "h" else "Reset"
        return f"{action} mode [{', '.join(str(p) for p in params)}]"
    return f"Unknown sequence: {code!r}"


def parse_ansi(text: str) -> list[EscapeSequence]:
    """Find every CSI sequence in ``text`` and describe it."""
    sequences = []
    for match in CSI_RE.finditer(text):
        code = match.group(0)
        final = match.group(2)
        params = parse_params(match.group(1))
        kind = classify(final)
        sequences.append(
            EscapeSequence(
                type=kind,
                code=code,
                params=params,
                description=describe(code, final, params, kind),
                position=match.start(),
            )
        )
    return sequences
