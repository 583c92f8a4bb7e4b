"""Structured JSONL run log utilities."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path


@dataclass(slots=True, frozen=True)
class AuditEvent:
    """Summary of a single fixdpr invocation."""

    timestamp: str
    mode: str
    target: str
    ok: bool
    exit_code: int
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def summarize_warnings(warnings: list[str], limit: int = 50) -> dict[str, object]:
    """Return a bounded view of collected warnings for the run log."""
    kept = warnings[:limit] if limit > 0 else []
    return {
        "warning_count": len(warnings),
        "warnings": list(kept),
        "warnings_truncated": len(kept) < len(warnings),
    }


class JsonlAuditLogger:
    """Append-only JSONL run logger."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: AuditEvent) -> None:
        """Append an event as one JSON object per line."""
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True))
            handle.write("\n")
