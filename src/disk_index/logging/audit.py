"""Structured JSONL scan history."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path


@dataclass(slots=True, frozen=True)
class ScanEvent:
    """Outcome of one finished scan."""

    timestamp: str
    scan_id: str
    outcome: str
    roots: list[str]
    skipped_roots: list[str]
    item_count: int
    aggregation_passes: int
    converged: bool | None
    duration_ms: int
    error: str | None
    directories: int = 0
    files: int = 0
    skipped_entries: int = 0
    hidden_excluded: int = 0
    packages_excluded: int = 0


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JsonlScanLog:
    """Append-only JSONL scan log and bounded reader."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: ScanEvent) -> None:
        """Append one event as a single JSON object per line."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True))
            handle.write("\n")

    def read(self, since: str | None = None, limit: int = 50) -> list[dict[str, object]]:
        """Return the newest ``limit`` events, oldest first.

        ``since`` drops events stamped before it. Lines that are not JSON
        objects are skipped.
        """
        if limit < 1 or not self._path.exists():
            return []
        recent: deque[dict[str, object]] = deque(maxlen=limit)
        with self._path.open("r", encoding="utf-8") as handle:
            for event in filter(None, map(_decode_line, handle)):
                if since is not None and str(event.get("timestamp", "")) < since:
                    continue
                recent.append(event)
        return list(recent)


def _decode_line(line: str) -> dict[str, object] | None:
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None
