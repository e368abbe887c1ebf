"""Per-root directory crawl producing flat metadata records."""

from __future__ import annotations

import logging
import mimetypes
import os
import stat
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from threading import Event

from disk_index.config import CrawlConfig
from disk_index.index.models import MetadataRecord

logger = logging.getLogger(__name__)

_BLOCK_BYTES = 512


class ScanCancelledError(Exception):
    """Raised when a crawl or aggregation observes a cancellation request."""


@dataclass(slots=True, frozen=True)
class CrawlProfile:
    """Diagnostics for one root crawl."""

    root: str
    directories: int
    files: int
    skipped_entries: int
    hidden_excluded: int
    packages_excluded: int
    total_seconds: float


def is_readable_root(root: str | os.PathLike[str]) -> bool:
    """Return True when a root exists and can be listed or read."""
    path = os.fspath(root)
    if not os.path.exists(path):
        return False
    if os.path.isdir(path):
        return os.access(path, os.R_OK | os.X_OK)
    return os.access(path, os.R_OK)


def crawl_root(
    root: str | os.PathLike[str],
    config: CrawlConfig,
    cancel_event: Event | None = None,
    profile: dict[str, object] | None = None,
) -> list[MetadataRecord]:
    """Walk one root and return records for it and every descendant.

    Directory records carry a zero size; aggregation fills them in later.
    Entries that cannot be read are logged and skipped. Symlinks are recorded
    but never followed.
    """
    started = time.perf_counter()
    resolved = os.path.realpath(os.fspath(root))
    directories = 0
    files = 0
    skipped = 0
    hidden_excluded = 0
    packages_excluded = 0

    _raise_if_cancelled(cancel_event)
    try:
        root_stat = os.stat(resolved)
    except OSError as error:
        logger.warning("Cannot read root %s: %s. Skipping root.", resolved, error)
        return []

    root_is_directory = stat.S_ISDIR(root_stat.st_mode)
    records = [
        build_record(
            path=resolved,
            name=os.path.basename(resolved) or resolved,
            entry_stat=root_stat,
            is_directory=root_is_directory,
            parent_path=None,
            config=config,
        )
    ]
    if root_is_directory:
        directories += 1
    else:
        files += 1

    stack: list[str] = [resolved] if root_is_directory else []
    while stack:
        _raise_if_cancelled(cancel_event)
        current = stack.pop()
        try:
            with os.scandir(current) as iterator:
                entries = sorted(iterator, key=lambda item: item.name)
        except OSError as error:
            logger.warning("Cannot list %s: %s. Skipping its contents.", current, error)
            skipped += 1
            continue
        for entry in entries:
            _raise_if_cancelled(cancel_event)
            if config.skip_hidden and entry.name.startswith("."):
                hidden_excluded += 1
                continue
            try:
                is_directory = entry.is_dir(follow_symlinks=False)
                entry_stat = entry.stat(follow_symlinks=False)
            except OSError as error:
                logger.warning("Cannot stat %s: %s. Skipping item.", entry.path, error)
                skipped += 1
                continue
            if config.skip_hidden and has_hidden_flag(entry_stat):
                hidden_excluded += 1
                continue
            if is_directory and config.skip_packages and is_package_name(
                entry.name, config.package_suffixes
            ):
                packages_excluded += 1
                continue
            records.append(
                build_record(
                    path=entry.path,
                    name=entry.name,
                    entry_stat=entry_stat,
                    is_directory=is_directory,
                    parent_path=current,
                    config=config,
                )
            )
            if is_directory:
                directories += 1
                stack.append(entry.path)
            else:
                files += 1

    if profile is not None:
        payload = CrawlProfile(
            root=resolved,
            directories=directories,
            files=files,
            skipped_entries=skipped,
            hidden_excluded=hidden_excluded,
            packages_excluded=packages_excluded,
            total_seconds=time.perf_counter() - started,
        )
        profile.update(asdict(payload))
    logger.debug(
        "Crawled %s: %d directories, %d files, %d skipped",
        resolved,
        directories,
        files,
        skipped,
    )
    return records


def build_record(
    path: str,
    name: str,
    entry_stat: os.stat_result,
    is_directory: bool,
    parent_path: str | None,
    config: CrawlConfig,
) -> MetadataRecord:
    """Build a record from stat data; directory sizes start at zero."""
    creation_time = _creation_time(entry_stat)
    modification_time = getattr(entry_stat, "st_mtime", None)
    if modification_time is None:
        modification_time = creation_time
    type_tag: str | None = None
    if not is_directory and config.detect_type_tags:
        type_tag, _ = mimetypes.guess_type(name, strict=False)
    return MetadataRecord(
        path=path,
        name=name,
        is_directory=is_directory,
        size=0 if is_directory else entry_size(entry_stat, config.size_mode),
        modification_time=modification_time,
        creation_time=creation_time,
        type_tag=type_tag,
        parent_path=parent_path,
    )


def entry_size(entry_stat: os.stat_result, size_mode: str) -> int:
    """Return allocated bytes when requested and reported, else logical size."""
    if size_mode == "allocated":
        blocks = getattr(entry_stat, "st_blocks", None)
        if blocks is not None:
            return blocks * _BLOCK_BYTES
    return entry_stat.st_size


def is_package_name(name: str, package_suffixes: tuple[str, ...]) -> bool:
    """Return True for opaque bundle-style directory names."""
    return Path(name).suffix.lower() in package_suffixes


def _creation_time(entry_stat: os.stat_result) -> float:
    birth = getattr(entry_stat, "st_birthtime", None)
    if birth is not None:
        return birth
    return entry_stat.st_ctime


def has_hidden_flag(entry_stat: os.stat_result) -> bool:
    """Return True for entries the platform flags hidden (BSD flags or Windows attributes)."""
    flags = getattr(entry_stat, "st_flags", 0)
    attributes = getattr(entry_stat, "st_file_attributes", 0)
    return bool(flags & stat.UF_HIDDEN or attributes & stat.FILE_ATTRIBUTE_HIDDEN)


def _raise_if_cancelled(cancel_event: Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ScanCancelledError()
