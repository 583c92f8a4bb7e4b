"""Deterministic lexical scanning helpers for Pascal source text.

Every helper takes decoded source text plus a start offset and returns an end
offset. Sources are decoded as latin-1 so one character maps to one byte and
offsets stay valid against the raw file bytes.
"""

from __future__ import annotations

_WHITESPACE = " \t\n\r"
_DIRECTIVE_WHITESPACE = " \t\n\r\f\v"
_INCLUDE_DIRECTIVES = ("i", "include")


def decode_source(data: bytes) -> str:
    """Decode raw bytes so that character offsets equal byte offsets."""
    return data.decode("latin-1")


def decode_literal(value: str) -> str:
    """Re-decode a latin-1 slice as UTF-8, replacing invalid sequences."""
    return value.encode("latin-1").decode("utf-8", errors="replace")


def skip_brace_comment(text: str, index: int) -> int:
    end = text.find("}", index)
    return len(text) if end < 0 else end + 1


def skip_paren_comment(text: str, index: int) -> int:
    end = text.find("*)", index)
    return len(text) if end < 0 else end + 2


def skip_line_comment(text: str, index: int) -> int:
    end = text.find("\n", index)
    return len(text) if end < 0 else end + 1


def skip_string(text: str, index: int) -> int:
    """Skip past a string body; ``index`` points just after the opening quote."""
    length = len(text)
    while index < length:
        if text[index] == "'":
            if index + 1 < length and text[index + 1] == "'":
                index += 2
                continue
            return index + 1
        index += 1
    return length


def read_string_literal(text: str, start: int) -> tuple[str, int] | None:
    """Read a quoted literal at ``start`` and return its unescaped value."""
    if start >= len(text) or text[start] != "'":
        return None
    parts: list[str] = []
    index = start + 1
    length = len(text)
    while index < length:
        char = text[index]
        if char == "'":
            if index + 1 < length and text[index + 1] == "'":
                parts.append("'")
                index += 2
                continue
            return decode_literal("".join(parts)), index + 1
        parts.append(char)
        index += 1
    return None


def is_ident_start(char: str) -> bool:
    return ("a" <= char <= "z") or ("A" <= char <= "Z") or char == "_"


def is_ident_continue(char: str) -> bool:
    return is_ident_start(char) or ("0" <= char <= "9") or char == "."


def read_ident(text: str, index: int) -> tuple[str, int]:
    start = index
    index += 1
    length = len(text)
    while index < length and is_ident_continue(text[index]):
        index += 1
    return text[start:index], index


def read_ident_with_dots(text: str, index: int) -> tuple[str, int]:
    """Dotted names such as ``Vcl.Forms`` are single identifiers."""
    return read_ident(text, index)


def peek_ident(text: str, index: int) -> tuple[str, int] | None:
    if index < len(text) and is_ident_start(text[index]):
        return read_ident(text, index)
    return None


def starts_paren_comment(text: str, index: int) -> bool:
    return text.startswith("(*", index)


def starts_line_comment(text: str, index: int) -> bool:
    return text.startswith("//", index)


def skip_comment_at(text: str, index: int) -> int | None:
    """Skip a comment starting at ``index`` or return None when there is none."""
    char = text[index]
    if char == "{":
        return skip_brace_comment(text, index + 1)
    if starts_paren_comment(text, index):
        return skip_paren_comment(text, index + 2)
    if starts_line_comment(text, index):
        return skip_line_comment(text, index + 2)
    return None


def skip_ws_and_comments(text: str, index: int, *, strings: bool = True) -> int:
    """Skip whitespace, comments and (unless disabled) string literals."""
    length = len(text)
    while index < length:
        char = text[index]
        if char in _WHITESPACE:
            index += 1
            continue
        skipped = skip_comment_at(text, index)
        if skipped is not None:
            index = skipped
            continue
        if strings and char == "'":
            index = skip_string(text, index + 1)
            continue
        break
    return index


def parse_include_directive(text: str, start: int) -> tuple[str, int] | None:
    """Return ``(filename, end)`` when a comment at ``start`` is ``{$I file}``."""
    if start >= len(text):
        return None
    if text[start] == "{":
        return _parse_include_inner(text, start + 1, "}")
    if starts_paren_comment(text, start):
        return _parse_include_inner(text, start + 2, "*)")
    return None


def _parse_include_inner(text: str, index: int, closer: str) -> tuple[str, int] | None:
    index = _skip_directive_ws(text, index)
    if index >= len(text) or text[index] != "$":
        return None
    index = _skip_directive_ws(text, index + 1)
    if index >= len(text) or not is_ident_start(text[index]):
        return None
    token, index = read_ident(text, index)
    if token.lower() not in _INCLUDE_DIRECTIVES:
        return None
    index = _skip_directive_ws(text, index)
    filename = _read_directive_filename(text, index, closer)
    if filename is None:
        return None
    value, index = filename
    index = _skip_directive_ws(text, index)
    end = text.find(closer, index)
    if end < 0:
        return None
    return value, end + len(closer)


def _read_directive_filename(text: str, index: int, closer: str) -> tuple[str, int] | None:
    if index >= len(text):
        return None
    if text[index] == "'":
        literal = read_string_literal(text, index)
        if literal is None or not literal[0].strip():
            return None
        return literal
    start = index
    length = len(text)
    while (
        index < length
        and text[index] not in _DIRECTIVE_WHITESPACE
        and not text.startswith(closer, index)
    ):
        index += 1
    value = decode_literal(text[start:index]).strip()
    if not value or value in ("+", "-"):
        return None
    return value, index


def _skip_directive_ws(text: str, index: int) -> int:
    length = len(text)
    while index < length and text[index] in _DIRECTIVE_WHITESPACE:
        index += 1
    return index
