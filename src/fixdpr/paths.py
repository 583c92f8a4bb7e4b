"""Path normalization helpers shared by discovery, caching and editing."""

from __future__ import annotations

import os
from pathlib import Path


def canonicalize_if_exists(path: Path) -> Path:
    """Resolve symlinks and ``..`` when the path exists; otherwise return it unchanged."""
    try:
        return path.resolve(strict=True)
    except (OSError, RuntimeError):
        return path


def normalize_for_prefix_match(path: Path | str) -> str:
    """Lowercase, backslash-separated form used for prefix comparisons and dedupe."""
    normalized = str(path).replace("/", "\\").lower()
    while normalized.endswith("\\") and len(normalized) > 2:
        normalized = normalized[:-1]
    return normalized


def normalize_for_glob_match(value: str) -> str:
    """Lowercase, forward-slash form used for glob matching."""
    normalized = value.replace("\\", "/").lower()
    if normalized.startswith("//?/unc/"):
        return "//" + normalized[len("//?/unc/") :]
    if normalized.startswith("//?/") or normalized.startswith("//./"):
        return normalized[4:]
    return normalized


def is_path_prefix(path: str, prefix: str) -> bool:
    """Return True when ``prefix`` covers ``path`` on a component boundary."""
    if not prefix or not path.startswith(prefix):
        return False
    if len(path) == len(prefix):
        return True
    return path[len(prefix)] == "\\"


def relative_path(target: Path, base: Path) -> str:
    """Relative path from ``base`` to ``target``, or ``target`` when none exists."""
    try:
        return os.path.relpath(target, base)
    except ValueError:
        return str(target)


def has_extension(path: Path, extension: str) -> bool:
    return path.suffix.lower() == f".{extension.lower()}"


def dedupe_paths(paths: list[Path]) -> list[Path]:
    """Deduplicate by normalized form and sort deterministically."""
    seen: set[str] = set()
    output: list[Path] = []
    for path in paths:
        key = normalize_for_prefix_match(path)
        if key in seen:
            continue
        seen.add(key)
        output.append(path)
    output.sort(key=normalize_for_prefix_match)
    return output
