"""Format engine — ANSI parsing and output serialization.

Raw bytes captured from a process become a ``TerminalOutput`` carrying
plain text, ANSI-preserving text and structured escape descriptors, and
can be served as raw (base64), text, HTML or JSON.
"""

from termrelay.format.ansi import EscapeSequence, SequenceType, parse_ansi, strip_ansi
from termrelay.format.engine import FormatEngine, OutputFormat, TerminalOutput
from termrelay.format.html import ansi_to_html

__all__ = [
    "EscapeSequence",
    "SequenceType",
    "FormatEngine",
    "OutputFormat",
    "TerminalOutput",
    "ansi_to_html",
    "parse_ansi",
    "strip_ansi",
]
