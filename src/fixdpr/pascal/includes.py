"""Resolution of ``{$I file}`` include directives with cycle protection."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from fixdpr.paths import canonicalize_if_exists

T = TypeVar("T")


def resolve_include_path(source_path: Path, include_name: str) -> Path:
    """Resolve an include name relative to the directory of the including file."""
    candidate = Path(include_name)
    if candidate.is_absolute():
        return candidate
    return source_path.parent / candidate


def with_include_bytes(
    include_name: str,
    source_path: Path,
    warnings: list[str],
    include_stack: list[Path],
    callback: Callable[[Path, bytes], T],
) -> T | None:
    """Load an include file and hand its bytes to ``callback``.

    ``include_stack`` holds the canonical paths currently being expanded. The
    callback may recurse into further includes with the same stack.
    """
    include_path = resolve_include_path(source_path, include_name)
    canonical = canonicalize_if_exists(include_path)
    if canonical in include_stack:
        warnings.append(
            f"warning: include cycle detected for {include_path} (from {source_path})"
        )
        return None
    try:
        data = include_path.read_bytes()
    except OSError as error:
        warnings.append(
            f"warning: failed to read include {include_path} referenced by {source_path}: {error}"
        )
        return None

    include_stack.append(canonical)
    try:
        return callback(include_path, data)
    finally:
        include_stack.pop()
