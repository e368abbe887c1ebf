"""Bottom-up directory size aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from threading import Event

from disk_index.index.crawler import ScanCancelledError
from disk_index.index.models import MetadataRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 10


@dataclass(slots=True, frozen=True)
class AggregationResult:
    """Records with resolved directory sizes plus convergence diagnostics."""

    records: dict[str, MetadataRecord]
    passes: int
    converged: bool


def build_children_index(records: Iterable[MetadataRecord]) -> dict[str, list[str]]:
    """Map each parent path to the paths of its immediate children."""
    children: dict[str, list[str]] = {}
    for record in records:
        if record.parent_path is None or record.parent_path == record.path:
            continue
        children.setdefault(record.parent_path, []).append(record.path)
    return children


def aggregate_directory_sizes(
    records: dict[str, MetadataRecord],
    max_passes: int = DEFAULT_MAX_PASSES,
    cancel_event: Event | None = None,
) -> AggregationResult:
    """Resolve directory sizes by iterating until a pass changes nothing.

    Each pass sets every directory's size to the sum of its immediate
    children's current sizes. Directories are visited deepest path first, so a
    well-formed tree settles in one pass and the next pass confirms it. Input
    whose parent links form a cycle never settles; after ``max_passes`` the
    last computed sizes are returned with ``converged=False``.
    """
    if max_passes < 1:
        raise ValueError("max_passes must be a positive integer.")
    children = build_children_index(records.values())
    sizes = {path: record.size for path, record in records.items()}
    directory_order = sorted(
        (path for path, record in records.items() if record.is_directory),
        key=lambda path: (-_path_depth(path), path),
    )

    passes = 0
    changed = True
    while changed and passes < max_passes:
        if cancel_event is not None and cancel_event.is_set():
            raise ScanCancelledError()
        passes += 1
        changed = False
        for path in directory_order:
            total = sum(sizes[child] for child in children.get(path, ()))
            if sizes[path] != total:
                sizes[path] = total
                changed = True

    converged = not changed
    if not converged:
        logger.warning(
            "Directory size aggregation did not converge after %d passes; "
            "committing best-effort sizes.",
            max_passes,
        )

    resolved: dict[str, MetadataRecord] = {}
    for path, record in records.items():
        size = sizes[path]
        resolved[path] = record if record.size == size else replace(record, size=size)
    return AggregationResult(records=resolved, passes=passes, converged=converged)


def _path_depth(path: str) -> int:
    return len([part for part in path.replace("\\", "/").split("/") if part])
