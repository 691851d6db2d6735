"""ANSI-to-HTML conversion with balanced markup."""

from __future__ import annotations

import html

from termrelay.format.ansi import COLOR_CODES, CSI_RE, parse_params

_FOREGROUND = set(range(30, 38)) | set(range(90, 98))
_BACKGROUND = set(range(40, 48)) | set(range(100, 108))

# SGR parameter -> (scope kind, opening tag, tag name)
_TOGGLES: dict[int, tuple[str, str, str]] = {
    1: ("bold", "<strong>", "strong"),
    3: ("italic", "<em>", "em"),
    4: ("underline", "<u>", "u"),
}

# SGR parameter -> scope kind it ends
_OFF: dict[int, str] = {
    22: "bold",
    23: "italic",
    24: "underline",
    39: "fg",
    49: "bg",
}


class _ScopeStack:
    """Open style scopes, innermost last."""

    def __init__(self) -> None:
        self._stack: list[tuple[str, str, str]] = []  # (kind, open_tag, tag_name)

    def _index(self, kind: str) -> int:
        for i, (k, _, _) in enumerate(self._stack):
            if k == kind:
                return i
        return -1

    def open(self, kind: str, open_tag: str, name: str) -> str:
        i = self._index(kind)
        if i >= 0 and self._stack[i][1] == open_tag:
            return ""
        out = self.close(kind) if i >= 0 else ""
        self._stack.append((kind, open_tag, name))
        return out + open_tag

    def close(self, kind: str) -> str:
        """Close ``kind``, reopening scopes nested inside it."""
        i = self._index(kind)
        if i < 0:
            return ""
        above = self._stack[i + 1 :]
        out = "".join(f"</{name}>" for _, _, name in reversed(self._stack[i:]))
        del self._stack[i:]
        for entry in above:
            self._stack.append(entry)
            out += entry[1]
        return out

    def close_all(self) -> str:
        out = "".join(f"</{name}>" for _, _, name in reversed(self._stack))
        self._stack.clear()
        return out


def _apply_sgr(scopes: _ScopeStack, params: tuple[int, ...]) -> str:
    if not params:
        return scopes.close_all()

    out = ""
    for param in params:
        if param == 0:
            out += scopes.close_all()
        elif param in _TOGGLES:
            out += scopes.open(*_TOGGLES[param])
        elif param in _OFF:
            out += scopes.close(_OFF[param])
        elif param in _FOREGROUND:
            hex_color = COLOR_CODES[param][1]
            out += scopes.open("fg", f'<span style="color: {hex_color}">', "span")
        elif param in _BACKGROUND:
            hex_color = COLOR_CODES[param][1]
            out += scopes.open(
                "bg", f'<span style="background-color: {hex_color}">', "span"
            )
    return out


def _escape(segment: str) -> str:
    return html.escape(segment, quote=True).replace("\n", "<br>")


def ansi_to_html(ansi: str) -> str:
    """Convert ANSI-styled text to HTML.

    Text is escaped, newlines become ``<br>``, SGR sequences become nested
    ``<strong>``/``<em>``/``<u>``/``<span>`` scopes. Non-SGR CSI sequences are
    dropped. Every scope opened is closed before the result is returned.
    """
    scopes = _ScopeStack()
    parts: list[str] = []
    last = 0
    for match in CSI_RE.finditer(ansi):
        parts.append(_escape(ansi[last : match.start()]))
        if match.group(2) == "m":
            parts.append(_apply_sgr(scopes, parse_params(match.group(1))))
        last = match.end()
    parts.append(_escape(ansi[last:]))
    parts.append(scopes.close_all())
    return "".join(parts)
