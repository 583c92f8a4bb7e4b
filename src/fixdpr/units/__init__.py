"""Unit resolution cache and dependency analysis."""

from .cache import (
    build_unit_cache,
    get_or_load,
    load_unit_file,
    parse_unit_name,
    parse_unit_uses,
)
from .models import UnitCache, UnitRecord
from .resolver import (
    Ambiguous,
    NotFound,
    ProjectDependents,
    Resolution,
    ResolutionSource,
    Unique,
    collect_introduced_dependencies,
    collect_missing_dpr_dependencies,
    compute_project_dependents,
    resolve_by_name,
)

__all__ = [
    "Ambiguous",
    "NotFound",
    "ProjectDependents",
    "Resolution",
    "ResolutionSource",
    "UnitCache",
    "UnitRecord",
    "Unique",
    "build_unit_cache",
    "collect_introduced_dependencies",
    "collect_missing_dpr_dependencies",
    "compute_project_dependents",
    "get_or_load",
    "load_unit_file",
    "parse_unit_name",
    "parse_unit_uses",
    "resolve_by_name",
]
