"""Formatting-preserving insertion of new ``uses`` entries and atomic rewrites."""

from __future__ import annotations

from pathlib import Path

from fixdpr.dpr.uses import UsesList
from fixdpr.paths import relative_path
from fixdpr.units.models import UnitRecord

_ASCII_WHITESPACE = b" \t\n\r\f"


def detect_line_ending(data: bytes) -> str:
    return "\r\n" if b"\r\n" in data else "\n"


def path_separator(uses_list: UsesList) -> str:
    """Backslash wins when both separators are present; backslash is also the default."""
    if uses_list.has_backslash:
        return "\\"
    if uses_list.has_slash:
        return "/"
    return "\\"


def format_entry(dpr_path: Path, uses_list: UsesList, unit: UnitRecord) -> str:
    """Build ``Name in 'relative\\path.pas'`` using the clause's separator convention."""
    separator = path_separator(uses_list)
    rel_path = relative_path(unit.path, dpr_path.parent)
    rel_path = rel_path.replace("\\", separator).replace("/", separator)
    return f"{unit.name} in '{rel_path}'"


def insert_new_unit(
    data: bytes,
    dpr_path: Path,
    uses_list: UsesList,
    unit: UnitRecord,
    insert_after: int | None = None,
) -> None:
    """Splice ``unit`` into the clause and rewrite ``dpr_path`` atomically.

    ``uses_list`` must have been parsed from ``data``. When ``insert_after``
    names an editable comma-delimited entry, the new entry goes right after
    it; otherwise it is appended before the closing semicolon.
    """
    entry_text = format_entry(dpr_path, uses_list, unit).encode("utf-8")
    splice = None
    if insert_after is not None:
        splice = build_insertion_after(data, uses_list, insert_after, entry_text)
    if splice is None:
        splice = build_insertion_at_end(data, uses_list, entry_text)
    insert_at, insert_bytes = splice
    write_atomic(dpr_path, data[:insert_at] + insert_bytes + data[insert_at:])


def build_insertion_after(
    data: bytes,
    uses_list: UsesList,
    insert_after: int,
    entry_text: bytes,
) -> tuple[int, bytes] | None:
    """Offset and bytes for inserting right after the comma of entry ``insert_after``."""
    entries = uses_list.entries
    if not 0 <= insert_after < len(entries) - 1:
        return None
    entry = entries[insert_after]
    if entry.from_include or entry.delimiter != "," or entry.delimiter_pos is None:
        return None
    next_start = entries[insert_after + 1].start
    after_comma = entry.delimiter_pos + 1
    if after_comma > next_start or next_start > len(data):
        return None

    separator_after = data[after_comma:next_start]
    separator = _separator_before_new_entry(data, uses_list, separator_after)
    return after_comma, separator + entry_text + b","


def build_insertion_at_end(
    data: bytes, uses_list: UsesList, entry_text: bytes
) -> tuple[int, bytes]:
    """Offset and bytes for appending a new last entry."""
    last_delimiter = uses_list.entries[-1].delimiter if uses_list.entries else None
    has_trailing_comma = last_delimiter == ","
    if uses_list.multiline:
        line_ending = detect_line_ending(data).encode("ascii")
        prefix = b"" if has_trailing_comma else b","
        insertion = prefix + line_ending + uses_list.indent.encode("latin-1") + entry_text
    else:
        prefix = b" " if has_trailing_comma else b", "
        insertion = prefix + entry_text

    insert_at = uses_list.semicolon
    if uses_list.multiline and not has_trailing_comma:
        while insert_at > 0 and data[insert_at - 1] in _ASCII_WHITESPACE:
            insert_at -= 1
    return insert_at, insertion


def write_atomic(path: Path, contents: bytes) -> None:
    """Write through a sibling ``.tmp`` file and rename it over ``path``."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(contents)
    try:
        tmp.rename(path)
    except FileExistsError:
        path.unlink()
        tmp.rename(path)


def _separator_before_new_entry(
    data: bytes, uses_list: UsesList, separator_after: bytes
) -> bytes:
    stripped = separator_after.lstrip(_ASCII_WHITESPACE)
    if not stripped:
        return separator_after
    leading = len(separator_after) - len(stripped)
    if leading > 0:
        return separator_after[:leading]
    if uses_list.multiline:
        return detect_line_ending(data).encode("ascii") + uses_list.indent.encode("latin-1")
    return b" "
