"""On-disk JSON snapshot of the index."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from disk_index.index.models import MetadataRecord

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1


class SnapshotFormatError(ValueError):
    """Raised when a snapshot file cannot be decoded into records."""


class SnapshotFile:
    """Reads, atomically writes and deletes one snapshot file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Return on-disk snapshot path."""
        return self._path

    def load(self) -> dict[str, MetadataRecord]:
        """Load records, discarding the file when it cannot be decoded.

        A missing file yields an empty mapping. A corrupt file is deleted and
        also yields an empty mapping; partial decodes are never returned.
        """
        if not self._path.exists():
            logger.info("No snapshot found at %s. Starting with an empty index.", self._path)
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
            entries = decode_snapshot(payload)
        except (
            OSError,
            UnicodeDecodeError,
            RecursionError,
            json.JSONDecodeError,
            SnapshotFormatError,
        ) as error:
            logger.error(
                "Failed to load snapshot from %s: %s. Deleting corrupted snapshot.",
                self._path,
                error,
            )
            self.delete()
            return {}
        logger.info("Loaded snapshot with %d items from %s.", len(entries), self._path)
        return entries

    def save(self, entries: dict[str, MetadataRecord]) -> bool:
        """Persist entries; an empty mapping removes the file instead.

        Returns True when the on-disk state now matches ``entries``.
        """
        if not entries:
            logger.info("Index is empty. Removing snapshot instead of writing one.")
            return self.delete()
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(encode_snapshot(entries), handle, sort_keys=True, indent=2)
                handle.write("\n")
            tmp.replace(self._path)
        except OSError as error:
            logger.error("Failed to persist snapshot to %s: %s", self._path, error)
            tmp.unlink(missing_ok=True)
            return False
        logger.info("Persisted snapshot with %d items to %s.", len(entries), self._path)
        return True

    def delete(self) -> bool:
        """Remove the snapshot file; a missing file is not an error."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as error:
            logger.error("Failed to delete snapshot at %s: %s", self._path, error)
            return False
        return True


def encode_snapshot(entries: dict[str, MetadataRecord]) -> dict[str, object]:
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "entries": {path: record.to_dict() for path, record in entries.items()},
    }


def decode_snapshot(payload: object) -> dict[str, MetadataRecord]:
    """Decode a parsed snapshot payload, all or nothing."""
    if not isinstance(payload, dict):
        raise SnapshotFormatError("Snapshot must contain a top-level object.")
    schema = payload.get("schema_version")
    if not isinstance(schema, int) or schema != SNAPSHOT_SCHEMA_VERSION:
        raise SnapshotFormatError(
            f"Snapshot schema {schema!r} is unsupported; expected {SNAPSHOT_SCHEMA_VERSION}."
        )
    raw_entries = payload.get("entries")
    if not isinstance(raw_entries, dict):
        raise SnapshotFormatError("Snapshot field 'entries' must be an object.")
    entries: dict[str, MetadataRecord] = {}
    for path, raw_record in raw_entries.items():
        try:
            record = MetadataRecord.from_dict(raw_record)
        except ValueError as error:
            raise SnapshotFormatError(f"Invalid record for {path!r}: {error}") from error
        if record.path != path:
            raise SnapshotFormatError(f"Record path {record.path!r} does not match key {path!r}.")
        entries[path] = record
    return entries
