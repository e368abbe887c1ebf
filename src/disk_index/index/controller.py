"""Scan orchestration: per-root crawl fan-out, aggregation and commit."""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from threading import Thread

from disk_index.config import IndexerConfig
from disk_index.index.aggregation import aggregate_directory_sizes
from disk_index.index.crawler import ScanCancelledError, crawl_root, is_readable_root
from disk_index.index.models import MetadataRecord
from disk_index.index.store import IndexStatus, IndexStore, ScanHandle
from disk_index.logging import JsonlScanLog, ScanEvent, utc_timestamp

logger = logging.getLogger(__name__)

CRAWL_COUNTERS = (
    "directories",
    "files",
    "skipped_entries",
    "hidden_excluded",
    "packages_excluded",
)


@dataclass(slots=True, frozen=True)
class ScanReport:
    """Summary of the most recently finished scan."""

    scan_id: str
    outcome: str
    roots: tuple[str, ...]
    skipped_roots: tuple[str, ...]
    item_count: int
    aggregation_passes: int
    converged: bool | None
    duration_ms: int
    error: str | None = None
    directories: int = 0
    files: int = 0
    skipped_entries: int = 0
    hidden_excluded: int = 0
    packages_excluded: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "scan_id": self.scan_id,
            "outcome": self.outcome,
            "roots": list(self.roots),
            "skipped_roots": list(self.skipped_roots),
            "item_count": self.item_count,
            "aggregation_passes": self.aggregation_passes,
            "converged": self.converged,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "directories": self.directories,
            "files": self.files,
            "skipped_entries": self.skipped_entries,
            "hidden_excluded": self.hidden_excluded,
            "packages_excluded": self.packages_excluded,
        }


class ScanController:
    """Runs at most one scan at a time against an ``IndexStore``.

    Scan failures never reach the caller; they are logged, rolled back and
    summarized in ``last_report``.
    """

    def __init__(
        self,
        store: IndexStore,
        config: IndexerConfig,
        scan_log: JsonlScanLog | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._scan_log = scan_log
        self._last_report: ScanReport | None = None

    @property
    def last_report(self) -> ScanReport | None:
        return self._last_report

    def start_scan(self, roots: Iterable[str | os.PathLike[str]] | None) -> bool:
        """Start a background scan; return False when the request is ignored."""
        if self._store.is_scanning():
            logger.info("Indexing already in progress. Ignoring new request.")
            return False
        root_list = [os.fspath(root) for root in roots or ()]
        if not root_list:
            logger.warning("No roots provided for indexing. Scan will not start.")
            return False
        handle = ScanHandle(scan_id=uuid.uuid4().hex, roots=tuple(root_list))
        if not self._store.begin_scan(handle):
            logger.info("Indexing already in progress. Ignoring new request.")
            return False
        logger.info("Starting file indexing for roots: %s", ", ".join(root_list))
        thread = Thread(
            target=self._run_scan,
            args=(handle,),
            name=f"disk-index-scan-{handle.scan_id[:8]}",
            daemon=True,
        )
        thread.start()
        return True

    def cancel_scan(self) -> bool:
        """Signal the active scan to stop; no-op when idle."""
        if not self._store.cancel_active():
            logger.info("No indexing in progress to cancel.")
            return False
        logger.info("Cancellation requested for active scan.")
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Poll until no scan is active; return False if ``timeout`` elapses first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._store.is_scanning():
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self._config.scan.poll_interval_seconds)
        return True

    def get_all(self) -> list[MetadataRecord]:
        return self._store.get_all()

    def get_by_path(self, path: str) -> MetadataRecord | None:
        return self._store.get_by_path(path)

    def count(self) -> int:
        return self._store.count()

    def is_scanning(self) -> bool:
        return self._store.is_scanning()

    def clear(self) -> None:
        self._store.clear()

    def status(self) -> IndexStatus:
        return self._store.status()

    def history(self, since: str | None = None, limit: int = 50) -> list[dict[str, object]]:
        """Return recent scan outcomes from the scan log."""
        if self._scan_log is None:
            return []
        return self._scan_log.read(since=since, limit=limit)

    def _run_scan(self, handle: ScanHandle) -> None:
        readable: list[str] = []
        skipped: list[str] = []
        outcome = "failed"
        error_text: str | None = None
        passes = 0
        converged: bool | None = None
        counters = dict.fromkeys(CRAWL_COUNTERS, 0)
        try:
            readable, skipped = _partition_roots(handle.roots)
            if not readable:
                logger.warning("None of the requested roots are readable; keeping previous index.")
                error_text = "no readable roots"
                return
            working = self._crawl_all(handle, readable, counters)
            result = aggregate_directory_sizes(
                working,
                max_passes=self._config.scan.max_aggregation_passes,
                cancel_event=handle.cancel_event,
            )
            passes = result.passes
            converged = result.converged
            if not self._store.commit_scan(handle, result.records):
                raise ScanCancelledError()
            outcome = "completed"
            logger.info("File indexing finished. Total items indexed: %d", len(result.records))
        except ScanCancelledError:
            outcome = "cancelled"
            logger.info("File indexing cancelled; previous index left unchanged.")
        except Exception as error:
            error_text = f"{type(error).__name__}: {error}"
            logger.exception("File indexing failed: %s", error_text)
        finally:
            report = ScanReport(
                scan_id=handle.scan_id,
                outcome=outcome,
                roots=tuple(readable),
                skipped_roots=tuple(skipped),
                item_count=self._store.count(),
                aggregation_passes=passes,
                converged=converged,
                duration_ms=int((time.perf_counter() - handle.started) * 1000),
                error=error_text,
                **counters,
            )
            self._last_report = report
            self._record_history(report)
            self._store.end_scan(handle)

    def _crawl_all(
        self,
        handle: ScanHandle,
        roots: list[str],
        counters: dict[str, int],
    ) -> dict[str, MetadataRecord]:
        working: dict[str, MetadataRecord] = {}
        profiles: dict[str, dict[str, object]] = {root: {} for root in roots}
        workers = min(self._config.scan.max_workers, len(roots))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="disk-index-crawl")
        try:
            futures = {
                executor.submit(
                    crawl_root, root, self._config.crawl, handle.cancel_event, profiles[root]
                ): root
                for root in roots
            }
            for future in as_completed(futures):
                records = future.result()
                if handle.cancelled:
                    raise ScanCancelledError()
                root = futures[future]
                merge_records(working, records)
                for name in CRAWL_COUNTERS:
                    counters[name] += int(profiles[root].get(name, 0))
                logger.debug("Merged %d records from %s", len(records), root)
        except BaseException:
            # Stop sibling crawls before joining them.
            handle.cancel()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return working

    def _record_history(self, report: ScanReport) -> None:
        if self._scan_log is None:
            return
        event = ScanEvent(
            timestamp=utc_timestamp(),
            scan_id=report.scan_id,
            outcome=report.outcome,
            roots=list(report.roots),
            skipped_roots=list(report.skipped_roots),
            item_count=report.item_count,
            aggregation_passes=report.aggregation_passes,
            converged=report.converged,
            duration_ms=report.duration_ms,
            error=report.error,
            directories=report.directories,
            files=report.files,
            skipped_entries=report.skipped_entries,
            hidden_excluded=report.hidden_excluded,
            packages_excluded=report.packages_excluded,
        )
        try:
            self._scan_log.append(event)
        except OSError as error:
            logger.error("Failed to append scan history to %s: %s", self._scan_log.path, error)


def merge_records(working: dict[str, MetadataRecord], records: list[MetadataRecord]) -> None:
    """Merge one crawl's records; a child record beats a root record for the same path."""
    for record in records:
        existing = working.get(record.path)
        if existing is None or (existing.parent_path is None and record.parent_path is not None):
            working[record.path] = record


def open_index(config: IndexerConfig) -> ScanController:
    """Build a store restored from the configured snapshot plus its controller."""
    store = IndexStore(snapshot_path=config.snapshot_path)
    return ScanController(store, config, scan_log=JsonlScanLog(config.scan_log_path))


def _partition_roots(roots: tuple[str, ...]) -> tuple[list[str], list[str]]:
    readable: list[str] = []
    skipped: list[str] = []
    seen: set[str] = set()
    for root in roots:
        if not is_readable_root(root):
            logger.warning("No read access to %s, skipping this root.", root)
            skipped.append(root)
            continue
        resolved = os.path.realpath(root)
        if resolved in seen:
            continue
        seen.add(resolved)
        readable.append(resolved)
    return readable, skipped
