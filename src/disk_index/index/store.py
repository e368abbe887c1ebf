"""Authoritative in-memory index with scan lifecycle state and persistence."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event, Lock

from disk_index.index.models import MetadataRecord
from disk_index.index.snapshot import SnapshotFile
from disk_index.logging import utc_timestamp

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class IndexStatus:
    """Current index status snapshot."""

    index_status: str
    indexed_item_count: int
    last_commit_timestamp: str | None
    snapshot_path: str


@dataclass(slots=True)
class ScanHandle:
    """Cancellation token for one in-flight scan."""

    scan_id: str
    roots: tuple[str, ...]
    started: float = field(default_factory=time.perf_counter)
    cancel_event: Event = field(default_factory=Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()


class IndexStore:
    """Owns the path -> record map; every access holds one lock.

    Readers always observe the last committed map. A scan builds its own
    working map and only hands it over through ``commit_scan``. Snapshot
    writes run outside the map lock, ordered by a separate write lock.
    """

    def __init__(self, snapshot_path: Path) -> None:
        self._lock = Lock()
        self._write_lock = Lock()
        self._snapshot = SnapshotFile(snapshot_path)
        self._entries: dict[str, MetadataRecord] = self._snapshot.load()
        self._active_scan: ScanHandle | None = None
        self._last_commit_timestamp: str | None = None

    @property
    def snapshot_path(self) -> Path:
        return self._snapshot.path

    def get_all(self) -> list[MetadataRecord]:
        """Return every indexed record."""
        with self._lock:
            return list(self._entries.values())

    def get_by_path(self, path: str) -> MetadataRecord | None:
        """Return the record for ``path`` if indexed."""
        with self._lock:
            return self._entries.get(path)

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_scanning(self) -> bool:
        with self._lock:
            return self._active_scan is not None

    @property
    def active_scan(self) -> ScanHandle | None:
        with self._lock:
            return self._active_scan

    def status(self) -> IndexStatus:
        """Return status derived from in-memory state."""
        with self._lock:
            if self._active_scan is not None:
                index_status = "scanning"
            elif self._entries:
                index_status = "ready"
            else:
                index_status = "empty"
            return IndexStatus(
                index_status=index_status,
                indexed_item_count=len(self._entries),
                last_commit_timestamp=self._last_commit_timestamp,
                snapshot_path=str(self._snapshot.path),
            )

    def clear(self) -> None:
        """Empty the index and delete its snapshot."""
        with self._write_lock:
            with self._lock:
                self._entries = {}
            self._snapshot.delete()
        logger.info("File index and snapshot cleared.")

    def commit(self, new_map: dict[str, MetadataRecord]) -> None:
        """Replace the whole index and persist it."""
        with self._write_lock:
            with self._lock:
                entries = self._swap_locked(new_map)
            self._snapshot.save(entries)

    def begin_scan(self, handle: ScanHandle) -> bool:
        """Mark ``handle`` active unless another scan already is."""
        with self._lock:
            if self._active_scan is not None:
                return False
            self._active_scan = handle
            return True

    def commit_scan(self, handle: ScanHandle, new_map: dict[str, MetadataRecord]) -> bool:
        """Commit a scan result unless it was cancelled or superseded."""
        with self._write_lock:
            with self._lock:
                if self._active_scan is not handle or handle.cancelled:
                    return False
                entries = self._swap_locked(new_map)
            self._snapshot.save(entries)
            return True

    def cancel_active(self) -> bool:
        """Signal the active scan; return False when none is running."""
        with self._lock:
            if self._active_scan is None:
                return False
            self._active_scan.cancel()
            return True

    def end_scan(self, handle: ScanHandle) -> None:
        """Clear scanning state if ``handle`` is still the active scan."""
        with self._lock:
            if self._active_scan is handle:
                self._active_scan = None

    def _swap_locked(self, new_map: dict[str, MetadataRecord]) -> dict[str, MetadataRecord]:
        # The committed map is never mutated in place, so it can be saved unlocked.
        self._entries = dict(new_map)
        self._last_commit_timestamp = utc_timestamp()
        return self._entries
