"""Project file (``.dpr``) uses-clause parsing and editing."""

from .engine import (
    DprEditError,
    DprUpdateSummary,
    build_project_map,
    find_direct_introducer_index,
    fix_dpr_file,
    update_dpr_files,
)
from .splice import build_insertion_after, build_insertion_at_end, insert_new_unit, write_atomic
from .uses import UsesEntry, UsesList, parse_dpr_uses

__all__ = [
    "DprEditError",
    "DprUpdateSummary",
    "UsesEntry",
    "UsesList",
    "build_insertion_after",
    "build_insertion_at_end",
    "build_project_map",
    "find_direct_introducer_index",
    "fix_dpr_file",
    "insert_new_unit",
    "parse_dpr_uses",
    "update_dpr_files",
    "write_atomic",
]
