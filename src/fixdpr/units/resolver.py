"""Name resolution across the project and fallback caches, and reachability analysis."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from fixdpr.paths import canonicalize_if_exists
from fixdpr.units.cache import get_or_load
from fixdpr.units.models import UnitCache, UnitRecord


class ResolutionSource(Enum):
    """Which cache satisfied a name lookup."""

    PROJECT = "project"
    FALLBACK = "fallback"

    @property
    def label(self) -> str:
        if self is ResolutionSource.PROJECT:
            return "project"
        return "--delphi-path"


@dataclass(slots=True, frozen=True)
class NotFound:
    """No cache knows the unit name."""


@dataclass(slots=True, frozen=True)
class Unique:
    """Exactly one path declares the unit name."""

    path: Path
    source: ResolutionSource


@dataclass(slots=True, frozen=True)
class Ambiguous:
    """Several paths declare the unit name; callers must not pick one."""

    count: int
    source: ResolutionSource


Resolution = NotFound | Unique | Ambiguous


@dataclass(slots=True)
class ProjectDependents:
    """Per-unit flags for one resolution pass, indexed by unit id."""

    direct: list[bool] = field(default_factory=list)
    dependents: list[bool] = field(default_factory=list)
    id_by_path: dict[Path, int] = field(default_factory=dict)

    def is_direct(self, path: Path) -> bool:
        unit_id = self.id_by_path.get(path)
        return unit_id is not None and self.direct[unit_id]

    def is_dependent(self, path: Path) -> bool:
        unit_id = self.id_by_path.get(path)
        return unit_id is not None and self.dependents[unit_id]


def resolve_by_name(
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    unit_name: str,
) -> Resolution:
    """Look a unit name up in the project cache first, then the fallback cache."""
    key = unit_name.lower()
    for cache, source in (
        (project_cache, ResolutionSource.PROJECT),
        (fallback_cache, ResolutionSource.FALLBACK),
    ):
        if cache is None:
            continue
        paths = cache.by_name.get(key)
        if not paths:
            continue
        if cache.is_ambiguous(unit_name):
            return Ambiguous(count=len(paths), source=source)
        return Unique(path=paths[0], source=source)
    return NotFound()


def has_unit_path(
    project_cache: UnitCache, fallback_cache: UnitCache | None, path: Path
) -> bool:
    if path in project_cache.by_path:
        return True
    return fallback_cache is not None and path in fallback_cache.by_path


def lookup_unit(
    project_cache: UnitCache, fallback_cache: UnitCache | None, path: Path
) -> UnitRecord | None:
    record = project_cache.by_path.get(path)
    if record is not None:
        return record
    if fallback_cache is None:
        return None
    return fallback_cache.by_path.get(path)


def load_unit_uses(
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    unit_path: Path,
    warnings: list[str],
) -> tuple[str, ...] | None:
    """Uses list for a path; paths unknown to both caches are loaded into the project cache."""
    canonical = canonicalize_if_exists(unit_path)
    record = lookup_unit(project_cache, fallback_cache, canonical)
    if record is None:
        record = get_or_load(project_cache, canonical, warnings)
    return None if record is None else record.uses


def resolve_dep_path(
    project_map: Mapping[str, Path],
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    dep_name: str,
    source_path: Path,
    warnings: list[str],
) -> Path | None:
    """Resolve a referenced unit, preferring the project's own declared paths."""
    declared = project_map.get(dep_name.lower())
    if declared is not None:
        return declared
    resolution = resolve_by_name(project_cache, fallback_cache, dep_name)
    if isinstance(resolution, Unique):
        return resolution.path
    if isinstance(resolution, Ambiguous):
        warnings.append(
            f"warning: ambiguous unit {dep_name} referenced by {source_path} "
            f"({resolution.count} {resolution.source.label} matches)"
        )
    return None


def compute_project_dependents(
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    project_map: Mapping[str, Path],
    target_name: str,
    warnings: list[str],
) -> ProjectDependents:
    """Mark units that import ``target_name`` directly and every unit depending on those."""
    result = ProjectDependents()
    reverse: list[list[int]] = []
    queue: deque[Path] = deque()

    def register(path: Path) -> int:
        unit_id = len(result.id_by_path)
        result.id_by_path[path] = unit_id
        reverse.append([])
        result.direct.append(False)
        queue.append(path)
        return unit_id

    for path in project_map.values():
        if path not in result.id_by_path:
            register(path)

    while queue:
        unit_path = queue.popleft()
        uses = load_unit_uses(project_cache, fallback_cache, unit_path, warnings)
        if uses is None:
            warnings.append(f"warning: failed to read unit at {unit_path}")
            continue
        source_id = result.id_by_path[unit_path]
        for dep in uses:
            if dep.lower() == target_name.lower():
                result.direct[source_id] = True
                continue
            dep_path = resolve_dep_path(
                project_map, project_cache, fallback_cache, dep, unit_path, warnings
            )
            if dep_path is None:
                continue
            target_id = result.id_by_path.get(dep_path)
            if target_id is None:
                target_id = register(dep_path)
            reverse[target_id].append(source_id)

    result.dependents = list(result.direct)
    backward: deque[int] = deque(
        unit_id for unit_id, is_direct in enumerate(result.direct) if is_direct
    )
    while backward:
        current = backward.popleft()
        for previous in reverse[current]:
            if not result.dependents[previous]:
                result.dependents[previous] = True
                backward.append(previous)
    return result


def collect_introduced_dependencies(
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    project_map: Mapping[str, Path],
    new_unit: UnitRecord,
    warnings: list[str],
) -> list[UnitRecord]:
    """Transitive closure of the new unit's own uses, excluding the new unit itself."""
    root_path = canonicalize_if_exists(new_unit.path)
    seen_paths = {root_path}
    seen_names: set[str] = set()
    queue: deque[Path] = deque([root_path])
    introduced: list[UnitRecord] = []

    while queue:
        unit_path = queue.popleft()
        uses = load_unit_uses(project_cache, fallback_cache, unit_path, warnings)
        if uses is None:
            warnings.append(f"warning: failed to read unit at {unit_path}")
            continue
        for dep in uses:
            if dep.lower() == new_unit.name.lower():
                continue
            dep_path = resolve_dep_path(
                project_map, project_cache, fallback_cache, dep, unit_path, warnings
            )
            if dep_path is None:
                continue
            dep_path = canonicalize_if_exists(dep_path)
            if dep_path == root_path:
                continue
            if dep_path not in seen_paths:
                seen_paths.add(dep_path)
                queue.append(dep_path)
            key = dep.lower()
            if key in seen_names:
                continue
            seen_names.add(key)
            introduced.append(UnitRecord(name=dep, path=dep_path))
    return introduced


def collect_missing_dpr_dependencies(
    root_paths: Iterable[Path],
    existing_names: set[str],
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    warnings: list[str],
) -> list[UnitRecord]:
    """Units reachable from ``root_paths`` through known caches and not yet declared."""
    queue: deque[Path] = deque()
    seen_paths: set[Path] = set()
    missing_names: set[str] = set()
    missing: list[UnitRecord] = []

    for path in root_paths:
        if path not in seen_paths:
            seen_paths.add(path)
            queue.append(path)

    while queue:
        unit_path = queue.popleft()
        record = lookup_unit(project_cache, fallback_cache, unit_path)
        if record is None:
            continue
        for dep in record.uses:
            resolution = resolve_by_name(project_cache, fallback_cache, dep)
            if isinstance(resolution, Ambiguous):
                warnings.append(
                    f"warning: ambiguous unit {dep} referenced by {unit_path} "
                    f"({resolution.count} {resolution.source.label} matches)"
                )
                continue
            if not isinstance(resolution, Unique):
                continue
            dep_path = canonicalize_if_exists(resolution.path)
            if not has_unit_path(project_cache, fallback_cache, dep_path):
                continue
            if dep_path not in seen_paths:
                seen_paths.add(dep_path)
                queue.append(dep_path)
            key = dep.lower()
            if key in existing_names or key in missing_names:
                continue
            missing_names.add(key)
            dep_record = lookup_unit(project_cache, fallback_cache, dep_path)
            if dep_record is not None:
                missing.append(dep_record)
    return missing
