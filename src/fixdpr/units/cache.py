"""Unit resolution cache: unit names and flattened uses lists per ``.pas`` file."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from fixdpr.pascal import lexer
from fixdpr.pascal.includes import with_include_bytes
from fixdpr.paths import canonicalize_if_exists
from fixdpr.units.models import UnitCache, UnitRecord

_SECTION_KEYWORDS = ("interface", "implementation")


def build_unit_cache(paths: Iterable[Path], warnings: list[str]) -> UnitCache:
    """Load every path once into a fresh cache."""
    cache = UnitCache()
    for path in paths:
        canonical = canonicalize_if_exists(path)
        if canonical in cache.by_path:
            continue
        record = load_unit_file(canonical, warnings)
        if record is not None:
            cache.insert(record)
    return cache


def get_or_load(cache: UnitCache, path: Path, warnings: list[str]) -> UnitRecord | None:
    """Return the cached record for ``path``, loading and inserting it on a miss."""
    canonical = canonicalize_if_exists(path)
    cached = cache.by_path.get(canonical)
    if cached is not None:
        return cached
    record = load_unit_file(canonical, warnings)
    if record is not None:
        cache.insert(record)
    return record


def load_unit_file(path: Path, warnings: list[str]) -> UnitRecord | None:
    """Parse one unit file; unreadable or nameless files yield None and a warning."""
    try:
        data = path.read_bytes()
    except OSError as error:
        warnings.append(f"warning: failed to read unit {path}: {error}")
        return None
    text = lexer.decode_source(data)
    name = _determine_unit_name(path, text, warnings)
    if name is None:
        return None
    include_stack = [canonicalize_if_exists(path)]
    uses = parse_unit_uses(text, path, warnings, include_stack)
    return UnitRecord(name=name, path=path, uses=tuple(uses))


def parse_unit_name(text: str) -> str | None:
    """Find the first ``unit <Name>`` outside comments and strings."""
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
            if token.lower() == "unit":
                name = _unit_name_after(text, index)
                if name is not None:
                    return name
            continue
        index += 1
    return None


def parse_unit_uses(
    text: str,
    source_path: Path | None = None,
    warnings: list[str] | None = None,
    include_stack: list[Path] | None = None,
) -> list[str]:
    """Collect unit names from every ``uses`` clause after interface/implementation."""
    sink = warnings if warnings is not None else []
    stack = include_stack if include_stack is not None else []
    deps: list[str] = []
    section: str | None = None
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
            lowered = token.lower()
            if lowered in _SECTION_KEYWORDS:
                section = lowered
            elif lowered == "uses" and section is not None:
                index = _parse_uses_list(text, index, source_path, deps, sink, stack)
            continue
        index += 1
    return deps


def _parse_uses_list(
    text: str,
    index: int,
    source_path: Path | None,
    deps: list[str],
    warnings: list[str],
    include_stack: list[Path],
) -> int:
    length = len(text)
    while True:
        index = _skip_ws_comments_and_includes(
            text, index, source_path, deps, warnings, include_stack
        )
        if index >= length:
            return index
        if text[index] == ";":
            return index + 1
        if not lexer.is_ident_start(text[index]):
            index += 1
            continue
        name, index = lexer.read_ident_with_dots(text, index)
        deps.append(name)
        index = lexer.skip_ws_and_comments(text, index)

        peeked = lexer.peek_ident(text, index)
        if peeked is not None and peeked[0].lower() == "in":
            index = lexer.skip_ws_and_comments(text, peeked[1], strings=False)
            if index < length and text[index] == "'":
                index = lexer.skip_string(text, index + 1)

        index, delimiter = _skip_to_delimiter(
            text, index, source_path, deps, warnings, include_stack
        )
        if delimiter == ",":
            index += 1
        elif delimiter == ";":
            return index + 1
        else:
            return index


def _skip_ws_comments_and_includes(
    text: str,
    index: int,
    source_path: Path | None,
    deps: list[str],
    warnings: list[str],
    include_stack: list[Path],
) -> int:
    length = len(text)
    while index < length:
        char = text[index]
        if char in " \t\n\r":
            index += 1
            continue
        include_end = _expand_include(text, index, source_path, deps, warnings, include_stack)
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


def _skip_to_delimiter(
    text: str,
    index: int,
    source_path: Path | None,
    deps: list[str],
    warnings: list[str],
    include_stack: list[Path],
) -> tuple[int, str | None]:
    length = len(text)
    while index < length:
        char = text[index]
        if char in ",;":
            return index, char
        include_end = _expand_include(text, index, source_path, deps, warnings, include_stack)
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
    source_path: Path | None,
    deps: list[str],
    warnings: list[str],
    include_stack: list[Path],
) -> int | None:
    """Splice the names of an ``{$I file}`` fragment into ``deps``; return the end offset."""
    if source_path is None or text[index] not in "{(":
        return None
    directive = lexer.parse_include_directive(text, index)
    if directive is None:
        return None
    include_name, end = directive

    def parse_fragment(include_path: Path, data: bytes) -> None:
        _parse_uses_list(
            lexer.decode_source(data), 0, include_path, deps, warnings, include_stack
        )

    with_include_bytes(include_name, source_path, warnings, include_stack, parse_fragment)
    return end


def _determine_unit_name(path: Path, text: str, warnings: list[str]) -> str | None:
    name = parse_unit_name(text)
    if name is not None:
        return name
    fallback = _unit_name_from_stem(path)
    if fallback is not None:
        warnings.append(f"warning: fallback to filename stem for unit name: {path}")
        return fallback
    warnings.append(f"warning: unable to determine unit name: {path}")
    return None


def _unit_name_from_stem(path: Path) -> str | None:
    stem = path.stem.strip()
    return stem or None


def _unit_name_after(text: str, index: int) -> str | None:
    index = lexer.skip_ws_and_comments(text, index)
    if index >= len(text) or not lexer.is_ident_start(text[index]):
        return None
    name, _ = lexer.read_ident_with_dots(text, index)
    return name or None
