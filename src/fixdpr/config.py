"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

CONFIG_FILE_NAME = "fixdpr.toml"


@dataclass(slots=True, frozen=True)
class ScanConfig:
    """Where to look for sources and what to skip."""

    search_paths: tuple[str, ...]
    ignore_paths: tuple[str, ...]
    ignore_dpr: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class FallbackConfig:
    """Read-only vendor source roots used only for name resolution."""

    delphi_paths: tuple[str, ...]
    delphi_versions: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class EditConfig:
    """Editing behaviour toggles."""

    add_introduced_dependencies: bool


@dataclass(slots=True, frozen=True)
class ReportConfig:
    """Report verbosity and optional JSONL run log."""

    show_infos: bool
    show_warnings: bool
    audit_log: Path | None


@dataclass(slots=True, frozen=True)
class FixDprConfig:
    """Fully merged run configuration."""

    cwd: Path
    scan: ScanConfig
    fallback: FallbackConfig
    edit: EditConfig
    report: ReportConfig

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for the run log."""
        return {
            "cwd": str(self.cwd),
            "scan": {
                "search_paths": list(self.scan.search_paths),
                "ignore_paths": list(self.scan.ignore_paths),
                "ignore_dpr": list(self.scan.ignore_dpr),
            },
            "fallback": {
                "delphi_paths": list(self.fallback.delphi_paths),
                "delphi_versions": list(self.fallback.delphi_versions),
            },
            "edit": {
                "add_introduced_dependencies": self.edit.add_introduced_dependencies,
            },
            "report": {
                "show_infos": self.report.show_infos,
                "show_warnings": self.report.show_warnings,
                "audit_log": str(self.report.audit_log) if self.report.audit_log else None,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Command-line values applied at highest precedence.

    List options extend the configured lists; scalar options replace them.
    """

    search_paths: tuple[str, ...] = ()
    ignore_paths: tuple[str, ...] = ()
    ignore_dpr: tuple[str, ...] = ()
    delphi_paths: tuple[str, ...] = ()
    delphi_versions: tuple[str, ...] = ()
    add_introduced_dependencies: bool | None = None
    show_infos: bool | None = None
    show_warnings: bool | None = None
    audit_log: Path | None = None


def default_config(cwd: Path) -> FixDprConfig:
    """Build default config for a working directory."""
    return FixDprConfig(
        cwd=cwd.resolve(),
        scan=ScanConfig(search_paths=(), ignore_paths=(), ignore_dpr=()),
        fallback=FallbackConfig(delphi_paths=(), delphi_versions=()),
        edit=EditConfig(add_introduced_dependencies=True),
        report=ReportConfig(show_infos=False, show_warnings=False, audit_log=None),
    )


def load_config_file(cwd: Path) -> dict[str, object]:
    """Load optional fixdpr.toml from the working directory."""
    config_path = cwd / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        try:
            payload = tomllib.load(handle)
        except tomllib.TOMLDecodeError as error:
            raise ValueError(f"{CONFIG_FILE_NAME} is not valid TOML: {error}") from error
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, section: str, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{section}.{field}' must contain only strings.")
        output.append(item)
    return tuple(output)


def _optional_bool(payload: dict[str, object], section: str, field: str, default: bool) -> bool:
    if field not in payload:
        return default
    value = payload[field]
    if not isinstance(value, bool):
        raise ValueError(f"Config field '{section}.{field}' must be a boolean.")
    return value


def _strings_or_default(
    payload: dict[str, object], section: str, field: str, default: tuple[str, ...]
) -> tuple[str, ...]:
    if field not in payload:
        return default
    return _tuple_of_strings(payload[field], section, field)


def merge_config(
    base: FixDprConfig, file_payload: dict[str, object], overrides: CliOverrides
) -> FixDprConfig:
    """Merge defaults, config file, then command-line overrides."""
    scan_payload = _get_table(file_payload, "scan")
    fallback_payload = _get_table(file_payload, "fallback")
    edit_payload = _get_table(file_payload, "edit")
    report_payload = _get_table(file_payload, "report")

    audit_log = base.report.audit_log
    if "audit_log" in report_payload:
        raw_audit_log = report_payload["audit_log"]
        if not isinstance(raw_audit_log, str) or not raw_audit_log.strip():
            raise ValueError("Config field 'report.audit_log' must be a non-empty string.")
        audit_log = base.cwd / raw_audit_log

    merged = FixDprConfig(
        cwd=base.cwd,
        scan=ScanConfig(
            search_paths=_strings_or_default(
                scan_payload, "scan", "search_paths", base.scan.search_paths
            ),
            ignore_paths=_strings_or_default(
                scan_payload, "scan", "ignore_paths", base.scan.ignore_paths
            ),
            ignore_dpr=_strings_or_default(
                scan_payload, "scan", "ignore_dpr", base.scan.ignore_dpr
            ),
        ),
        fallback=FallbackConfig(
            delphi_paths=_strings_or_default(
                fallback_payload, "fallback", "delphi_paths", base.fallback.delphi_paths
            ),
            delphi_versions=_strings_or_default(
                fallback_payload, "fallback", "delphi_versions", base.fallback.delphi_versions
            ),
        ),
        edit=EditConfig(
            add_introduced_dependencies=_optional_bool(
                edit_payload,
                "edit",
                "add_introduced_dependencies",
                base.edit.add_introduced_dependencies,
            ),
        ),
        report=ReportConfig(
            show_infos=_optional_bool(
                report_payload, "report", "show_infos", base.report.show_infos
            ),
            show_warnings=_optional_bool(
                report_payload, "report", "show_warnings", base.report.show_warnings
            ),
            audit_log=audit_log,
        ),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: FixDprConfig, overrides: CliOverrides) -> FixDprConfig:
    """Apply command-line overrides at highest precedence."""
    return FixDprConfig(
        cwd=config.cwd,
        scan=ScanConfig(
            search_paths=config.scan.search_paths + overrides.search_paths,
            ignore_paths=config.scan.ignore_paths + overrides.ignore_paths,
            ignore_dpr=config.scan.ignore_dpr + overrides.ignore_dpr,
        ),
        fallback=FallbackConfig(
            delphi_paths=config.fallback.delphi_paths + overrides.delphi_paths,
            delphi_versions=config.fallback.delphi_versions + overrides.delphi_versions,
        ),
        edit=EditConfig(
            add_introduced_dependencies=(
                overrides.add_introduced_dependencies
                if overrides.add_introduced_dependencies is not None
                else config.edit.add_introduced_dependencies
            ),
        ),
        report=ReportConfig(
            show_infos=(
                overrides.show_infos
                if overrides.show_infos is not None
                else config.report.show_infos
            ),
            show_warnings=(
                overrides.show_warnings
                if overrides.show_warnings is not None
                else config.report.show_warnings
            ),
            audit_log=(
                overrides.audit_log.resolve()
                if overrides.audit_log is not None
                else config.report.audit_log
            ),
        ),
    )


def load_effective_config(cwd: Path, overrides: CliOverrides | None = None) -> FixDprConfig:
    """Load effective config using merge order defaults -> fixdpr.toml -> overrides."""
    base = default_config(cwd)
    payload = load_config_file(base.cwd)
    return merge_config(base, payload, overrides or CliOverrides())
