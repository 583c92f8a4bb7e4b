"""Source file discovery and ignore filters."""

from .discovery import (
    DprFilterResult,
    DprIgnoreMatcher,
    FsScan,
    IgnoreMatcher,
    SearchRootError,
    SearchRootsResolution,
    build_dpr_ignore_matcher,
    build_ignore_matcher,
    filter_ignored_dpr_files,
    resolve_optional_roots,
    resolve_search_roots,
    scan_files,
)

__all__ = [
    "DprFilterResult",
    "DprIgnoreMatcher",
    "FsScan",
    "IgnoreMatcher",
    "SearchRootError",
    "SearchRootsResolution",
    "build_dpr_ignore_matcher",
    "build_ignore_matcher",
    "filter_ignored_dpr_files",
    "resolve_optional_roots",
    "resolve_search_roots",
    "scan_files",
]
