"""Command-line entrypoint for adding or repairing Delphi project dependencies."""

from __future__ import annotations

import argparse
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from fixdpr.config import CliOverrides, FixDprConfig, load_effective_config
from fixdpr.delphi import resolve_source_roots
from fixdpr.dpr import DprUpdateSummary, fix_dpr_file, update_dpr_files
from fixdpr.index import (
    IgnoreMatcher,
    build_dpr_ignore_matcher,
    build_ignore_matcher,
    filter_ignored_dpr_files,
    resolve_optional_roots,
    resolve_search_roots,
    scan_files,
)
from fixdpr.logging import AuditEvent, JsonlAuditLogger, summarize_warnings, utc_timestamp
from fixdpr.paths import canonicalize_if_exists, dedupe_paths, has_extension, relative_path
from fixdpr.units import (
    Ambiguous,
    NotFound,
    UnitCache,
    UnitRecord,
    build_unit_cache,
    load_unit_file,
    resolve_by_name,
)
from fixdpr.units.resolver import lookup_unit

VERSION = "0.1.0"

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_INVOCATION = 2

MODE_ADD = "new-dependency"
MODE_FIX = "fix-dpr"

_UNIT_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


class InvocationError(ValueError):
    """Raised for command-line input that cannot start a run."""


@dataclass(slots=True, frozen=True)
class DependencyPath:
    """``--new-dependency`` given as a ``.pas`` file path."""

    path: Path


@dataclass(slots=True, frozen=True)
class DependencyUnitName:
    """``--new-dependency`` given as a bare unit name."""

    name: str


NewDependency = DependencyPath | DependencyUnitName


@dataclass(slots=True)
class RunOutcome:
    mode: str
    target: str
    exit_code: int
    pas_scanned: int = 0
    dpr_ignored: int = 0
    summary: DprUpdateSummary | None = None
    warnings: list[str] = field(default_factory=list)


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for both operating modes."""
    parser = argparse.ArgumentParser(
        prog="fixdpr",
        description="Update Delphi .dpr files to add missing unit dependencies",
    )
    parser.add_argument("--version", action="version", version=f"fixdpr {VERSION}")
    parser.add_argument(
        "--search-path",
        action="append",
        default=[],
        metavar="PATH",
        help="Root folder (or directory glob) to scan for .dpr and .pas files (repeatable)",
    )
    parser.add_argument(
        "--delphi-path",
        action="append",
        default=[],
        metavar="PATH",
        help="Delphi/VCL source root used only for fallback unit resolution (repeatable)",
    )
    parser.add_argument(
        "--delphi-version",
        action="append",
        default=[],
        metavar="VERSION",
        help="Delphi version whose registry source root is used as fallback (repeatable)",
    )
    parser.add_argument(
        "--ignore-path",
        action="append",
        default=[],
        metavar="PATH",
        help="Folder to skip recursively (repeatable)",
    )
    parser.add_argument(
        "--ignore-dpr",
        action="append",
        default=[],
        metavar="GLOB",
        help="Glob over absolute .dpr paths to leave untouched (repeatable)",
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--new-dependency",
        metavar="VALUE",
        default=None,
        help="Path to a .pas file, or a unit name found in the scanned sources",
    )
    mode.add_argument(
        "--fix-dpr",
        metavar="PATH",
        default=None,
        help="Single .dpr file to complete with every unit its declared units reach",
    )
    parser.add_argument(
        "--disable-introduced-dependencies",
        action="store_true",
        help="Do not add the units the new dependency itself pulls in",
    )
    parser.add_argument("--show-infos", action="store_true", help="Show detailed info list")
    parser.add_argument(
        "--show-warnings", action="store_true", help="Show detailed warnings list"
    )
    parser.add_argument(
        "--audit-log",
        metavar="PATH",
        default=None,
        help="Append a JSONL summary of this run to PATH",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> CliOverrides:
    return CliOverrides(
        search_paths=tuple(args.search_path),
        ignore_paths=tuple(args.ignore_path),
        ignore_dpr=tuple(args.ignore_dpr),
        delphi_paths=tuple(args.delphi_path),
        delphi_versions=tuple(args.delphi_version),
        add_introduced_dependencies=False if args.disable_introduced_dependencies else None,
        show_infos=True if args.show_infos else None,
        show_warnings=True if args.show_warnings else None,
        audit_log=Path(args.audit_log) if args.audit_log is not None else None,
    )


def classify_new_dependency(value: str, cwd: Path) -> NewDependency:
    """Decide whether ``value`` names a file or a unit.

    Anything with a path separator or a ``.pas`` suffix is a path and must be an
    existing ``.pas`` file. Otherwise it must look like a (dotted) identifier.
    """
    trimmed = value.strip()
    if not trimmed:
        raise InvocationError("--new-dependency cannot be empty")
    if "/" in trimmed or "\\" in trimmed or trimmed.lower().endswith(".pas"):
        path = Path(trimmed)
        if not path.is_absolute():
            path = cwd / path
        if not path.is_file():
            raise InvocationError(f"--new-dependency path not found: {path}")
        if not has_extension(path, "pas"):
            raise InvocationError(f"--new-dependency must point to a .pas file: {path}")
        return DependencyPath(path=path)
    if _UNIT_NAME_PATTERN.match(trimmed):
        return DependencyUnitName(name=trimmed)
    raise InvocationError(
        f"--new-dependency must be a .pas path or a unit name: {trimmed}"
    )


def resolve_fix_target(value: str, cwd: Path) -> Path:
    trimmed = value.strip()
    if not trimmed:
        raise InvocationError("--fix-dpr cannot be empty")
    path = Path(trimmed)
    if not path.is_absolute():
        path = cwd / path
    if not path.is_file():
        raise InvocationError(f"--fix-dpr path not found: {path}")
    if not has_extension(path, "dpr"):
        raise InvocationError(f"--fix-dpr must point to a .dpr file: {path}")
    return canonicalize_if_exists(path)


def resolve_new_unit(
    dependency: NewDependency,
    project_cache: UnitCache,
    fallback_cache: UnitCache | None,
    warnings: list[str],
) -> UnitRecord:
    """Load the unit being introduced, from disk or by name through the caches."""
    if isinstance(dependency, DependencyPath):
        path = canonicalize_if_exists(dependency.path)
        record = load_unit_file(path, warnings)
        if record is None:
            raise InvocationError(
                f"unable to determine unit name from new dependency: {path}"
            )
        return record
    resolution = resolve_by_name(project_cache, fallback_cache, dependency.name)
    if isinstance(resolution, NotFound):
        raise InvocationError(f"--new-dependency unit not found: {dependency.name}")
    if isinstance(resolution, Ambiguous):
        raise InvocationError(
            f"--new-dependency unit is ambiguous: {dependency.name} "
            f"({resolution.count} {resolution.source.label} matches)"
        )
    record = lookup_unit(project_cache, fallback_cache, resolution.path)
    if record is None:
        raise InvocationError(f"--new-dependency unit not found: {dependency.name}")
    return record


def display_path(path: Path, roots: tuple[Path, ...] | list[Path]) -> str:
    """Show ``path`` relative to the first search root that contains it."""
    for root in roots:
        if path == root or root in path.parents:
            return relative_path(path, root)
    return str(path)


def format_values(values: tuple[str, ...] | list[str]) -> str:
    return ", ".join(value.strip() for value in values if value.strip())


def run(
    config: FixDprConfig,
    new_dependency: str | None,
    fix_dpr: str | None,
    out: TextIO,
) -> RunOutcome:
    """Execute one run and write the human-readable report to ``out``."""
    cwd = config.cwd
    mode = MODE_FIX if fix_dpr is not None else MODE_ADD
    target = fix_dpr if fix_dpr is not None else (new_dependency or "")

    dependency: NewDependency | None = None
    fix_target: Path | None = None
    if fix_dpr is not None:
        fix_target = resolve_fix_target(fix_dpr, cwd)
    else:
        dependency = classify_new_dependency(new_dependency or "", cwd)

    search_values = list(config.scan.search_paths)
    if not search_values and fix_target is not None:
        search_values = [str(fix_target.parent)]
    search = resolve_search_roots(search_values, cwd)
    search_roots = search.roots
    delphi_roots = resolve_optional_roots(list(config.fallback.delphi_paths), cwd, "--delphi-path")
    delphi_roots.extend(resolve_source_roots(list(config.fallback.delphi_versions)))
    delphi_roots = dedupe_paths(delphi_roots)
    ignore_matcher = build_ignore_matcher(list(config.scan.ignore_paths), search_roots)
    ignore_dpr_matcher = build_dpr_ignore_matcher(list(config.scan.ignore_dpr), cwd)

    print(f"fixdpr {VERSION}", file=out)
    print(f"Scanning {len(search_roots)} root(s):", file=out)
    for root in search_roots:
        print(f"  {root}", file=out)
    if delphi_roots:
        print(f"Delphi fallback roots ({len(delphi_roots)}):", file=out)
        for root in delphi_roots:
            print(f"  {root}", file=out)
    if format_values(config.fallback.delphi_versions):
        print(f"Delphi version lookup: {format_values(config.fallback.delphi_versions)}", file=out)
    if format_values(config.scan.ignore_paths):
        print(f"Ignoring: {format_values(config.scan.ignore_paths)}", file=out)
    if ignore_dpr_matcher.normalized_patterns:
        print(
            f"Ignoring dpr (absolute): {format_values(ignore_dpr_matcher.normalized_patterns)}",
            file=out,
        )

    warnings: list[str] = []
    infos: list[str] = []
    for pattern in search.unmatched_patterns:
        warnings.append(f"warning: --search-path did not match any directories: {pattern}")

    scan = scan_files(search_roots, ignore_matcher)
    dpr_filter = filter_ignored_dpr_files(scan.dpr_files, ignore_dpr_matcher)
    for path in dpr_filter.ignored_files:
        infos.append(f"info: ignored dpr {path}")
    print(f"Found {len(scan.pas_files)} .pas, {len(scan.dpr_files)} .dpr", file=out)
    print("Building unit cache...", file=out)
    project_cache = build_unit_cache(scan.pas_files, warnings)
    print(f"Unit cache ready ({len(scan.pas_files)} units)", file=out)

    fallback_cache: UnitCache | None = None
    if delphi_roots:
        print("Scanning Delphi fallback roots...", file=out)
        fallback_scan = scan_files(delphi_roots, IgnoreMatcher(prefixes=()))
        print(f"Found {len(fallback_scan.pas_files)} fallback .pas", file=out)
        print("Building Delphi fallback unit cache...", file=out)
        fallback_cache = build_unit_cache(fallback_scan.pas_files, warnings)
        print(f"Delphi fallback unit cache ready ({len(fallback_cache)} units)", file=out)

    if dependency is not None:
        new_unit = resolve_new_unit(dependency, project_cache, fallback_cache, warnings)
        print(f"New dependency: {new_unit.name} ({new_unit.path})", file=out)
        print(f"Updating .dpr files... {len(dpr_filter.included_files)}", file=out)
        summary = update_dpr_files(
            list(dpr_filter.included_files),
            project_cache,
            fallback_cache,
            new_unit,
            config.edit.add_introduced_dependencies,
        )
    elif fix_target is not None:
        print(f"Fixing {fix_target}...", file=out)
        summary = fix_dpr_file(fix_target, project_cache, fallback_cache)
    else:
        raise InvocationError("one of --new-dependency or --fix-dpr is required")
    warnings.extend(summary.warnings)

    print("", file=out)
    print(f"Infos: {len(infos)}", file=out)
    if config.report.show_infos and infos:
        print("Infos list:", file=out)
        for info in infos:
            print(f"  {info}", file=out)
    print(f"Warnings: {len(warnings)}", file=out)
    if config.report.show_warnings and warnings:
        print("Warnings list:", file=out)
        for warning in warnings:
            print(f"  {warning}", file=out)
    print("", file=out)
    print("Report:", file=out)
    print(f"  pas scanned: {len(scan.pas_files)}", file=out)
    print(f"  dpr scanned: {summary.scanned}", file=out)
    print(f"  dpr ignored: {len(dpr_filter.ignored_files)}", file=out)
    print(f"  dpr updated: {summary.updated}", file=out)
    print(f"  dpr unchanged: {summary.unchanged}", file=out)
    print(f"  dpr failures: {summary.failures}", file=out)
    print(f"Updated dpr files ({summary.updated}):", file=out)
    if not summary.updated_paths:
        print("  (none)", file=out)
    for path in summary.updated_paths:
        print(f"  {display_path(path, search_roots)}", file=out)

    return RunOutcome(
        mode=mode,
        target=target,
        exit_code=EXIT_FAILURES if summary.failures > 0 else EXIT_OK,
        pas_scanned=len(scan.pas_files),
        dpr_ignored=len(dpr_filter.ignored_files),
        summary=summary,
        warnings=warnings,
    )


def write_run_log(path: Path, outcome: RunOutcome, config: FixDprConfig) -> None:
    metadata: dict[str, object] = {"config": config.to_public_dict()}
    summary = outcome.summary
    if summary is not None:
        metadata.update(
            {
                "pas_scanned": outcome.pas_scanned,
                "dpr_scanned": summary.scanned,
                "dpr_ignored": outcome.dpr_ignored,
                "dpr_updated": summary.updated,
                "dpr_unchanged": summary.unchanged,
                "dpr_failures": summary.failures,
                "updated_paths": [str(item) for item in summary.updated_paths],
            }
        )
        metadata.update(summarize_warnings(outcome.warnings))
    JsonlAuditLogger(path=path).append(
        AuditEvent(
            timestamp=utc_timestamp(),
            mode=outcome.mode,
            target=outcome.target,
            ok=outcome.exit_code == EXIT_OK,
            exit_code=outcome.exit_code,
            metadata=metadata,
        )
    )


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    """Entrypoint for the fixdpr command."""
    stream = out if out is not None else sys.stdout
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    cwd = canonicalize_if_exists(Path(os.getcwd()))
    try:
        config = load_effective_config(cwd, overrides=overrides_from_args(args))
    except (ValueError, OSError) as error:
        print(f"error: {error}", file=sys.stderr)
        return EXIT_INVOCATION

    try:
        outcome = run(config, args.new_dependency, args.fix_dpr, stream)
    except ValueError as error:
        # InvocationError, SearchRootError and DelphiLookupError all land here.
        print(f"error: {error}", file=sys.stderr)
        return EXIT_INVOCATION
    except OSError as error:
        print(f"error: {error}", file=sys.stderr)
        return EXIT_FAILURES

    if config.report.audit_log is not None:
        write_run_log(config.report.audit_log, outcome, config)
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
