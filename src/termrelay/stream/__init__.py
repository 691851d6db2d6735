"""Stream assembly — line reconstruction from chunked process output."""

from termrelay.stream.assembler import (
    AssemblyResult,
    ParsedLine,
    StreamAssembler,
    StreamChunk,
    normalize_line,
)
from termrelay.stream.lines import LineLog

__all__ = [
    "AssemblyResult",
    "LineLog",
    "ParsedLine",
    "StreamAssembler",
    "StreamChunk",
    "normalize_line",
]
