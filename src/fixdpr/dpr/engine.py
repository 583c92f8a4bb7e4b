"""Add-dependency and fix-dpr modes over project files."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fixdpr.dpr.splice import insert_new_unit
from fixdpr.dpr.uses import UsesList, parse_dpr_uses
from fixdpr.paths import canonicalize_if_exists
from fixdpr.units.models import UnitCache, UnitRecord
from fixdpr.units.resolver import (
    Ambiguous,
    ProjectDependents,
    ResolutionSource,
    Unique,
    collect_introduced_dependencies,
    collect_missing_dpr_dependencies,
    compute_project_dependents,
    has_unit_path,
    resolve_by_name,
)


@dataclass(slots=True)
class DprUpdateSummary:
    """Outcome of one editing run over one or more project files."""

    scanned: int = 0
    updated: int = 0
    updated_paths: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: int = 0

    @property
    def unchanged(self) -> int:
        return max(self.scanned - self.updated - self.failures, 0)


class DprEditError(Exception):
    """Raised when a project file cannot be read, parsed or rewritten."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(slots=True)
class _DprState:
    """Current bytes and parsed clause of one project file."""

    path: Path
    data: bytes
    uses: UsesList

    @classmethod
    def load(cls, path: Path, warnings: list[str]) -> _DprState:
        try:
            data = path.read_bytes()
        except OSError as error:
            raise DprEditError(f"warning: failed to read dpr {path}: {error}") from error
        uses = parse_dpr_uses(path, data, warnings)
        if uses is None:
            raise DprEditError(f"warning: no uses list found in {path}")
        return cls(path=path, data=data, uses=uses)

    def insert(self, unit: UnitRecord, insert_after: int | None, warnings: list[str]) -> None:
        """Insert ``unit`` and re-read the file so offsets match the new bytes."""
        try:
            insert_new_unit(self.data, self.path, self.uses, unit, insert_after)
        except OSError as error:
            raise DprEditError(f"warning: failed to update dpr {self.path}: {error}") from error
        reloaded = _DprState.load(self.path, warnings)
        self.data = reloaded.data
        self.uses = reloaded.uses


def update_dpr_files(
    dpr_paths: list[Path],
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    new_unit: UnitRecord,
    add_introduced_dependencies: bool = True,
) -> DprUpdateSummary:
    """Add ``new_unit`` to every project whose declared units would pull it in."""
    summary = DprUpdateSummary()
    for path in dpr_paths:
        summary.scanned += 1
        try:
            updated = _add_dependency_to_dpr(
                canonicalize_if_exists(path),
                project_cache,
                fallback_cache,
                new_unit,
                add_introduced_dependencies,
                summary.warnings,
            )
        except DprEditError as error:
            summary.warnings.append(error.message)
            summary.failures += 1
            continue
        if updated:
            summary.updated += 1
            summary.updated_paths.append(path)
    return summary


def fix_dpr_file(
    dpr_path: Path,
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
) -> DprUpdateSummary:
    """Declare every unit reachable from the project's own entries that it is missing."""
    dpr_path = canonicalize_if_exists(dpr_path)
    summary = DprUpdateSummary(scanned=1)
    try:
        updated = _fix_dpr(dpr_path, project_cache, fallback_cache, summary.warnings)
    except DprEditError as error:
        summary.warnings.append(error.message)
        summary.failures += 1
        return summary
    if updated:
        summary.updated += 1
        summary.updated_paths.append(dpr_path)
    return summary


def _add_dependency_to_dpr(
    path: Path,
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    new_unit: UnitRecord,
    add_introduced_dependencies: bool,
    warnings: list[str],
) -> bool:
    state = _DprState.load(path, warnings)
    project_map = build_project_map(path, state.uses, project_cache, fallback_cache, warnings)
    has_new_unit = state.uses.contains(new_unit.name)

    needs_new_unit = False
    insert_after: int | None = None
    if not has_new_unit:
        if not project_map:
            return False
        dependents = compute_project_dependents(
            project_cache, fallback_cache, project_map, new_unit.name, warnings
        )
        needs_new_unit = any(
            dependents.is_dependent(project_map[entry.name.lower()])
            for entry in state.uses.entries
            if entry.name.lower() in project_map
        )
        if not needs_new_unit:
            return False
        insert_after = find_direct_introducer_index(state.uses, project_map, dependents)

    dpr_updated = False
    last_inserted: str | None = None
    if needs_new_unit:
        state.insert(new_unit, insert_after, warnings)
        dpr_updated = True
        last_inserted = new_unit.name

    if not add_introduced_dependencies:
        return dpr_updated

    introduced = collect_introduced_dependencies(
        project_cache, fallback_cache, project_map, new_unit, warnings
    )
    if has_new_unit:
        last_inserted = new_unit.name
    for dep_unit in introduced:
        if state.uses.contains(dep_unit.name):
            continue
        anchor = state.uses.position_of(last_inserted) if last_inserted else None
        state.insert(dep_unit, anchor, warnings)
        dpr_updated = True
        last_inserted = dep_unit.name
    return dpr_updated


def _fix_dpr(
    dpr_path: Path,
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    warnings: list[str],
) -> bool:
    state = _DprState.load(dpr_path, warnings)
    existing_names = {entry.name.lower() for entry in state.uses.entries}
    project_map = build_project_map(
        dpr_path, state.uses, project_cache, fallback_cache, warnings
    )
    root_paths = _collect_fix_root_paths(
        dpr_path, state.uses, project_map, project_cache, fallback_cache, warnings
    )
    if not root_paths:
        return False
    missing = collect_missing_dpr_dependencies(
        root_paths, existing_names, project_cache, fallback_cache, warnings
    )

    dpr_updated = False
    last_inserted: str | None = None
    for dep_unit in missing:
        anchor = state.uses.position_of(last_inserted) if last_inserted else None
        state.insert(dep_unit, anchor, warnings)
        dpr_updated = True
        last_inserted = dep_unit.name
    return dpr_updated


def build_project_map(
    dpr_path: Path,
    uses_list: UsesList,
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    warnings: list[str],
) -> dict[str, Path]:
    """Map each declared unit name (lowercased) to the file it resolves to."""
    project_map: dict[str, Path] = {}
    for entry in uses_list.entries:
        if entry.in_path is None:
            resolution = resolve_by_name(project_cache, fallback_cache, entry.name)
            if isinstance(resolution, Unique):
                if resolution.source is ResolutionSource.PROJECT:
                    warnings.append(
                        f"warning: missing in-path for unit {entry.name} in {dpr_path} "
                        "(resolved via scan)"
                    )
                _insert_project_entry(project_map, entry.name, resolution.path, dpr_path, warnings)
            elif isinstance(resolution, Ambiguous):
                warnings.append(
                    f"warning: missing in-path for unit {entry.name} in {dpr_path} "
                    f"({resolution.count} {resolution.source.label} matches)"
                )
            continue

        resolved = resolve_dpr_unit_path(dpr_path, entry.in_path)
        if resolved.is_file():
            _insert_project_entry(project_map, entry.name, resolved, dpr_path, warnings)
            continue

        warnings.append(
            f"warning: dpr uses path not found for unit {entry.name} in {dpr_path}: {resolved}"
        )
        resolution = resolve_by_name(project_cache, fallback_cache, entry.name)
        if isinstance(resolution, Unique):
            _insert_project_entry(project_map, entry.name, resolution.path, dpr_path, warnings)
        elif isinstance(resolution, Ambiguous):
            warnings.append(
                f"warning: unit {entry.name} referenced in {dpr_path} is ambiguous "
                f"({resolution.count} {resolution.source.label} matches)"
            )
    return project_map


def resolve_dpr_unit_path(dpr_path: Path, raw: str) -> Path:
    """Resolve an ``in '...'`` value written with either separator style."""
    candidate = Path(raw.replace("\\", "/"))
    if not candidate.is_absolute():
        candidate = dpr_path.parent / candidate
    return canonicalize_if_exists(candidate)


def find_direct_introducer_index(
    uses_list: UsesList,
    project_map: dict[str, Path],
    dependents: ProjectDependents,
) -> int | None:
    """First editable declared entry that names the new unit in its own uses clause."""
    for position, entry in enumerate(uses_list.entries):
        if entry.from_include:
            continue
        path = project_map.get(entry.name.lower())
        if path is not None and dependents.is_direct(path):
            return position
    return None


def _insert_project_entry(
    project_map: dict[str, Path],
    name: str,
    resolved: Path,
    dpr_path: Path,
    warnings: list[str],
) -> None:
    key = name.lower()
    existing = project_map.get(key)
    if existing is None:
        project_map[key] = resolved
        return
    if existing != resolved:
        warnings.append(f"warning: duplicate unit name {name} in {dpr_path} with multiple paths")


def _collect_fix_root_paths(
    dpr_path: Path,
    uses_list: UsesList,
    project_map: dict[str, Path],
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    warnings: list[str],
) -> list[Path]:
    roots: list[Path] = []
    for entry in uses_list.entries:
        path = project_map.get(entry.name.lower())
        if path is None:
            continue
        canonical = canonicalize_if_exists(path)
        if not has_unit_path(project_cache, fallback_cache, canonical):
            warnings.append(
                f"warning: unit {entry.name} in {dpr_path} resolved outside known unit caches "
                "and will be ignored"
            )
            continue
        if canonical not in roots:
            roots.append(canonical)
    return roots
