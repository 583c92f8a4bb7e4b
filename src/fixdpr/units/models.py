"""Typed models for unit resolution state."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True, frozen=True)
class UnitRecord:
    """One parsed ``.pas`` file: declared unit name and referenced unit names."""

    name: str
    path: Path
    uses: tuple[str, ...] = ()


@dataclass(slots=True)
class UnitCache:
    """Units indexed by canonical path and by lowercased unit name.

    A name whose bucket holds more than one path is ambiguous.
    """

    by_path: dict[Path, UnitRecord] = field(default_factory=dict)
    by_name: dict[str, list[Path]] = field(default_factory=dict)

    def insert(self, record: UnitRecord) -> None:
        self.by_path[record.path] = record
        self.by_name.setdefault(record.name.lower(), []).append(record.path)

    def is_ambiguous(self, name: str) -> bool:
        return len(self.by_name.get(name.lower(), ())) > 1

    def __len__(self) -> int:
        return len(self.by_path)
