"""Parsing of a project file's ``uses`` clause into offset-annotated entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fixdpr.pascal import lexer
from fixdpr.pascal.includes import with_include_bytes
from fixdpr.paths import canonicalize_if_exists


@dataclass(slots=True, frozen=True)
class UsesEntry:
    """One unit listed in a ``uses`` clause.

    Offsets index the buffer the clause was parsed from. Entries expanded from
    an include fragment carry the offset of the directive that pulled them in
    and no delimiter offset, so they can anchor decisions but are never edited.
    """

    name: str
    in_path: str | None
    start: int
    delimiter: str | None
    delimiter_pos: int | None
    from_include: bool = False


@dataclass(slots=True, frozen=True)
class UsesList:
    """Parsed ``uses`` clause, valid only against the exact bytes it came from."""

    entries: tuple[UsesEntry, ...]
    semicolon: int
    multiline: bool
    indent: str
    has_backslash: bool
    has_slash: bool

    def contains(self, unit_name: str) -> bool:
        key = unit_name.lower()
        return any(entry.name.lower() == key for entry in self.entries)

    def position_of(self, unit_name: str) -> int | None:
        """Index of the first editable entry named ``unit_name``."""
        key = unit_name.lower()
        for position, entry in enumerate(self.entries):
            if not entry.from_include and entry.name.lower() == key:
                return position
        return None


@dataclass(slots=True)
class _ParseState:
    warnings: list[str]
    include_stack: list[Path]
    has_backslash: bool = False
    has_slash: bool = False
    include_semicolon: bool = False
    entries: list[UsesEntry] = field(default_factory=list)


def parse_dpr_uses(dpr_path: Path, data: bytes, warnings: list[str]) -> UsesList | None:
    """Parse the first top-level ``uses`` clause; None when absent or malformed."""
    text = lexer.decode_source(data)
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        skipped = lexer.skip_comment_at(text, index)
        if skipped is not None:
            index = skipped
            continue
        if char == "'":
            index = lexer.skip_string(text, index + 1)
            continue
        if lexer.is_ident_start(char):
            token, index = lexer.read_ident(text, index)
            if token.lower() == "uses":
                return _parse_uses_clause(dpr_path, text, index, warnings)
            continue
        index += 1
    return None


def _parse_uses_clause(
    dpr_path: Path, text: str, list_start: int, warnings: list[str]
) -> UsesList | None:
    state = _ParseState(
        warnings=warnings,
        include_stack=[canonicalize_if_exists(dpr_path)],
    )
    semicolon = _parse_fragment(text, list_start, dpr_path, state, anchor=None)
    if semicolon is None or state.include_semicolon or not state.entries:
        return None
    multiline = "\n" in text[list_start:semicolon]
    indent = _infer_indent(text, state.entries[0].start) if multiline else ""
    return UsesList(
        entries=tuple(state.entries),
        semicolon=semicolon,
        multiline=multiline,
        indent=indent,
        has_backslash=state.has_backslash,
        has_slash=state.has_slash,
    )


def _parse_fragment(
    text: str,
    index: int,
    source_path: Path,
    state: _ParseState,
    anchor: int | None,
) -> int | None:
    """Parse entries up to the closing ``;``.

    ``anchor`` is set while parsing an include fragment: it is the offset of
    the directive in the project file, and a ``;`` inside the fragment is an
    error.
    """
    length = len(text)
    while index < length:
        index = _skip_ws_comments_and_includes(text, index, source_path, state, anchor)
        if index >= length:
            return None
        if text[index] == ";":
            if anchor is not None:
                _flag_include_semicolon(source_path, state)
            return index
        if not lexer.is_ident_start(text[index]):
            index += 1
            continue

        entry_start = index
        name, index = lexer.read_ident_with_dots(text, index)
        index = lexer.skip_ws_and_comments(text, index)

        in_path: str | None = None
        peeked = lexer.peek_ident(text, index)
        if peeked is not None and peeked[0].lower() == "in":
            index = lexer.skip_ws_and_comments(text, peeked[1], strings=False)
            if index < length and text[index] == "'":
                literal = lexer.read_string_literal(text, index)
                if literal is not None:
                    in_path, index = literal
                else:
                    index = lexer.skip_string(text, index + 1)
        if in_path is not None:
            state.has_backslash = state.has_backslash or "\\" in in_path
            state.has_slash = state.has_slash or "/" in in_path

        position = len(state.entries)
        delimiter_pos, delimiter = _scan_to_delimiter(text, index, source_path, state, anchor)
        state.entries.insert(
            position,
            UsesEntry(
                name=name,
                in_path=in_path,
                start=entry_start if anchor is None else anchor,
                delimiter=delimiter,
                delimiter_pos=delimiter_pos if anchor is None and delimiter else None,
                from_include=anchor is not None,
            ),
        )
        if delimiter == ",":
            index = delimiter_pos + 1
        elif delimiter == ";":
            if anchor is not None:
                _flag_include_semicolon(source_path, state)
            return delimiter_pos
        else:
            return None
    return None


def _skip_ws_comments_and_includes(
    text: str,
    index: int,
    source_path: Path,
    state: _ParseState,
    anchor: int | None,
) -> int:
    length = len(text)
    while index < length:
        char = text[index]
        if char in " \t\n\r":
            index += 1
            continue
        include_end = _expand_include(text, index, source_path, state, anchor)
        if include_end is not None:
            index = include_end
            continue
        skipped = lexer.skip_comment_at(text, index)
        if skipped is not None:
            index = skipped
            continue
        if char == "'":
            index = lexer.skip_string(text, index + 1)
            continue
        break
    return index


def _scan_to_delimiter(
    text: str,
    index: int,
    source_path: Path,
    state: _ParseState,
    anchor: int | None,
) -> tuple[int, str | None]:
    length = len(text)
    while index < length:
        char = text[index]
        if char in ",;":
            return index, char
        include_end = _expand_include(text, index, source_path, state, anchor)
        if include_end is not None:
            index = include_end
            continue
        skipped = lexer.skip_comment_at(text, index)
        if skipped is not None:
            index = skipped
            continue
        if char == "'":
            index = lexer.skip_string(text, index + 1)
            continue
        index += 1
    return index, None


def _expand_include(
    text: str,
    index: int,
    source_path: Path,
    state: _ParseState,
    anchor: int | None,
) -> int | None:
    if text[index] not in "{(":
        return None
    directive = lexer.parse_include_directive(text, index)
    if directive is None:
        return None
    include_name, end = directive
    fragment_anchor = index if anchor is None else anchor

    def parse_fragment(include_path: Path, data: bytes) -> None:
        _parse_fragment(lexer.decode_source(data), 0, include_path, state, fragment_anchor)

    with_include_bytes(
        include_name, source_path, state.warnings, state.include_stack, parse_fragment
    )
    return end


def _flag_include_semicolon(source_path: Path, state: _ParseState) -> None:
    state.warnings.append(f"warning: include file {source_path} contains ';' in uses list")
    state.include_semicolon = True


def _infer_indent(text: str, entry_start: int) -> str:
    line_start = text.rfind("\n", 0, entry_start) + 1
    indent = []
    for char in text[line_start:entry_start]:
        if char not in " \t":
            break
        indent.append(char)
    return "".join(indent)
