"""Deterministic discovery of ``.pas`` and ``.dpr`` files under search roots."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from fixdpr.paths import (
    canonicalize_if_exists,
    has_extension,
    is_path_prefix,
    normalize_for_glob_match,
    normalize_for_prefix_match,
)


class SearchRootError(ValueError):
    """Raised when no usable search root can be derived from the inputs."""


@dataclass(slots=True, frozen=True)
class FsScan:
    """Sorted, deduplicated source files found under the search roots."""

    pas_files: tuple[Path, ...]
    dpr_files: tuple[Path, ...]


@dataclass(slots=True, frozen=True)
class SearchRootsResolution:
    """Resolved root directories plus the patterns that matched nothing."""

    roots: tuple[Path, ...]
    unmatched_patterns: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class DprFilterResult:
    included_files: tuple[Path, ...]
    ignored_files: tuple[Path, ...]


@dataclass(slots=True, frozen=True)
class IgnoreMatcher:
    """Folder prefixes to skip, compared case-insensitively on component boundaries."""

    prefixes: tuple[str, ...] = ()

    def is_ignored(self, path: Path) -> bool:
        if not self.prefixes:
            return False
        normalized = normalize_for_prefix_match(path)
        return any(is_path_prefix(normalized, prefix) for prefix in self.prefixes)


@dataclass(slots=True, frozen=True)
class DprIgnoreMatcher:
    """Globs matched against absolute ``.dpr`` paths."""

    normalized_patterns: tuple[str, ...] = ()
    _compiled: tuple[re.Pattern[str], ...] = field(default=(), repr=False)

    def is_empty(self) -> bool:
        return not self.normalized_patterns

    def is_ignored(self, absolute_path: str) -> bool:
        normalized = normalize_for_glob_match(absolute_path)
        return any(pattern.fullmatch(normalized) for pattern in self._compiled)


def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a glob where ``*`` and ``?`` stay within one segment and ``**`` does not."""
    parts: list[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            run = 1
            while index + run < length and pattern[index + run] == "*":
                run += 1
            parts.append(".*" if run >= 2 else "[^/]*")
            index += run
            continue
        if char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("".join(parts), re.DOTALL)


def contains_glob_chars(value: str) -> bool:
    return "*" in value or "?" in value


def resolve_search_roots(raw_values: list[str], cwd: Path) -> SearchRootsResolution:
    """Expand directory paths and directory globs into canonical, sorted roots."""
    roots: list[Path] = []
    seen: set[str] = set()
    unmatched: list[str] = []

    for raw in raw_values:
        trimmed = raw.strip()
        if not trimmed:
            continue
        absolute = Path(trimmed) if Path(trimmed).is_absolute() else cwd / trimmed
        matched = False
        if contains_glob_chars(trimmed):
            walk_root = _glob_walk_root(absolute)
            if walk_root.is_dir():
                pattern = compile_glob(normalize_for_glob_match(str(absolute)))
                for directory in _walk_directories(walk_root):
                    if pattern.fullmatch(normalize_for_glob_match(str(directory))):
                        matched = True
                        _push_unique_root(roots, seen, directory)
        elif absolute.is_dir():
            matched = True
            _push_unique_root(roots, seen, absolute)
        if not matched:
            unmatched.append(trimmed)

    if not roots:
        raise SearchRootError("--search-path did not match any directories")
    roots.sort(key=normalize_for_prefix_match)
    return SearchRootsResolution(roots=tuple(roots), unmatched_patterns=tuple(unmatched))


def resolve_optional_roots(raw_values: list[str], cwd: Path, flag: str) -> list[Path]:
    """Resolve plain directory inputs; a missing directory is an invocation error."""
    roots: list[Path] = []
    seen: set[str] = set()
    for raw in raw_values:
        trimmed = raw.strip()
        if not trimmed:
            continue
        absolute = Path(trimmed) if Path(trimmed).is_absolute() else cwd / trimmed
        if not absolute.is_dir():
            raise SearchRootError(f"{flag} is not a directory: {absolute}")
        _push_unique_root(roots, seen, absolute)
    roots.sort(key=normalize_for_prefix_match)
    return roots


def build_ignore_matcher(raw_values: list[str], search_roots: tuple[Path, ...]) -> IgnoreMatcher:
    """Absolute values are used as is; relative values apply under every search root."""
    prefixes: set[str] = set()
    for raw in raw_values:
        trimmed = raw.strip()
        if not trimmed:
            continue
        path = Path(trimmed)
        candidates = [path] if path.is_absolute() else [root / path for root in search_roots]
        for candidate in candidates:
            normalized = normalize_for_prefix_match(canonicalize_if_exists(candidate))
            if normalized:
                prefixes.add(normalized)
    return IgnoreMatcher(prefixes=tuple(sorted(prefixes)))


def build_dpr_ignore_matcher(raw_values: list[str], cwd: Path) -> DprIgnoreMatcher:
    """Relative patterns are anchored to ``cwd`` so every pattern is absolute."""
    normalized: list[str] = []
    for raw in raw_values:
        trimmed = raw.strip()
        if not trimmed:
            continue
        absolute = trimmed if Path(trimmed).is_absolute() else str(cwd / trimmed)
        normalized.append(normalize_for_glob_match(absolute))
    return DprIgnoreMatcher(
        normalized_patterns=tuple(normalized),
        _compiled=tuple(compile_glob(pattern) for pattern in normalized),
    )


def scan_files(search_roots: tuple[Path, ...] | list[Path], ignore: IgnoreMatcher) -> FsScan:
    """Walk every root, pruning ignored folders, and collect ``.pas`` and ``.dpr`` files."""
    pas_files: list[Path] = []
    dpr_files: list[Path] = []
    seen_pas: set[str] = set()
    seen_dpr: set[str] = set()

    for root in search_roots:
        for path in _walk_files(root, ignore):
            key = normalize_for_prefix_match(path)
            if has_extension(path, "pas"):
                if key not in seen_pas:
                    seen_pas.add(key)
                    pas_files.append(path)
            elif has_extension(path, "dpr") and key not in seen_dpr:
                seen_dpr.add(key)
                dpr_files.append(path)

    pas_files.sort()
    dpr_files.sort()
    return FsScan(pas_files=tuple(pas_files), dpr_files=tuple(dpr_files))


def filter_ignored_dpr_files(
    dpr_files: tuple[Path, ...] | list[Path], matcher: DprIgnoreMatcher
) -> DprFilterResult:
    if matcher.is_empty():
        return DprFilterResult(included_files=tuple(dpr_files), ignored_files=())
    included: list[Path] = []
    ignored: list[Path] = []
    for path in dpr_files:
        if matcher.is_ignored(str(path)):
            ignored.append(path)
        else:
            included.append(path)
    return DprFilterResult(included_files=tuple(included), ignored_files=tuple(ignored))


def _walk_files(root: Path, ignore: IgnoreMatcher) -> list[Path]:
    """Depth-first walk without following symlinks; unreadable directories raise OSError."""
    output: list[Path] = []
    if ignore.is_ignored(root):
        return output
    stack: list[Path] = [root]
    while stack:
        current = stack.pop()
        with os.scandir(current) as entries:
            ordered_entries = sorted(entries, key=lambda item: item.name)
        for entry in reversed(ordered_entries):
            full_path = Path(entry.path)
            if ignore.is_ignored(full_path):
                continue
            if entry.is_dir(follow_symlinks=False):
                stack.append(full_path)
            elif entry.is_file(follow_symlinks=False):
                output.append(full_path)
    return output


def _walk_directories(root: Path) -> list[Path]:
    output: list[Path] = [root]
    stack: list[Path] = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                children = sorted(
                    (Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=False)),
                    key=lambda item: item.name,
                )
        except OSError:
            continue
        output.extend(children)
        stack.extend(reversed(children))
    return output


def _glob_walk_root(absolute_pattern: Path) -> Path:
    root = Path(absolute_pattern.anchor)
    for part in absolute_pattern.parts[1:] if absolute_pattern.anchor else absolute_pattern.parts:
        if contains_glob_chars(part):
            break
        root = root / part
    return root


def _push_unique_root(roots: list[Path], seen: set[str], path: Path) -> None:
    canonical = canonicalize_if_exists(path)
    key = normalize_for_prefix_match(canonical)
    if key not in seen:
        seen.add(key)
        roots.append(canonical)
