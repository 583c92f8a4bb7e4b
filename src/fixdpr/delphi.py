"""Locate Delphi RTL/VCL source trees through the Windows registry."""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

from fixdpr.paths import canonicalize_if_exists, normalize_for_prefix_match

SOURCE_DIR_NAME = "source"
REGISTRY_BASES = (
    r"HKCU\Software\Embarcadero\BDS",
    r"HKLM\Software\Embarcadero\BDS",
    r"HKLM\Software\WOW6432Node\Embarcadero\BDS",
)

BdsLookup = Callable[[str], Path | None]


class DelphiLookupError(ValueError):
    """Raised when a requested Delphi version cannot be turned into a source root."""


def resolve_source_roots(raw_versions: list[str]) -> list[Path]:
    """Source roots for every requested version; only supported on Windows."""
    if sys.platform != "win32":
        if any(value.strip() for value in raw_versions):
            raise DelphiLookupError("--delphi-version is only supported on Windows")
        return []
    return resolve_source_roots_with_lookup(raw_versions, lookup_bds_root_from_registry)


def resolve_source_roots_with_lookup(raw_versions: list[str], lookup: BdsLookup) -> list[Path]:
    roots: list[Path] = []
    seen: set[str] = set()
    for raw in raw_versions:
        version = raw.strip()
        if not version:
            continue
        bds_root = lookup(version)
        if bds_root is None:
            raise DelphiLookupError(f"--delphi-version not found in registry: {version}")
        source_root = bds_root / SOURCE_DIR_NAME
        if not source_root.exists():
            raise DelphiLookupError(
                f"Delphi source path not found for --delphi-version {version}: {source_root}"
            )
        if not source_root.is_dir():
            raise DelphiLookupError(
                f"Delphi source path is not a directory for --delphi-version {version}: "
                f"{source_root}"
            )
        canonical = canonicalize_if_exists(source_root)
        key = normalize_for_prefix_match(canonical)
        if key not in seen:
            seen.add(key)
            roots.append(canonical)
    roots.sort(key=normalize_for_prefix_match)
    return roots


def lookup_bds_root_from_registry(version: str) -> Path | None:
    for candidate in version_candidates(version):
        for base in REGISTRY_BASES:
            key_path = f"{base}\\{candidate}"
            try:
                root_dir = query_registry_value(key_path, "RootDir")
            except OSError as error:
                raise DelphiLookupError(
                    f"failed to query registry key {key_path}: {error}"
                ) from error
            if root_dir is None:
                continue
            trimmed = root_dir.strip().strip('"')
            if trimmed:
                return Path(trimmed)
    return None


def query_registry_value(key_path: str, value_name: str) -> str | None:
    completed = subprocess.run(
        ["reg", "query", key_path, "/v", value_name],
        capture_output=True,
        text=True,
        check=False,
    )
    if completed.returncode != 0:
        return None
    return parse_reg_query_value(completed.stdout, value_name)


def parse_reg_query_value(output: str, value_name: str) -> str | None:
    """Extract a value from ``reg query`` output (``Name  REG_SZ  Value``)."""
    for line in output.splitlines():
        parts = line.split(None, 2)
        if len(parts) < 3 or parts[0].lower() != value_name.lower():
            continue
        return parts[2].rstrip()
    return None


def version_candidates(version: str) -> list[str]:
    """``22`` also tries ``22.0``; ``22.0`` also tries ``22``."""
    trimmed = version.strip()
    if not trimmed:
        return []
    candidates = [trimmed]
    if "." not in trimmed:
        candidates.append(f"{trimmed}.0")
    if trimmed.endswith(".0") and trimmed[:-2]:
        candidates.append(trimmed[:-2])
    seen: set[str] = set()
    output: list[str] = []
    for candidate in candidates:
        if candidate.lower() not in seen:
            seen.add(candidate.lower())
            output.append(candidate)
    return output
