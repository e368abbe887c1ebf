from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from disk_index.index import SNAPSHOT_SCHEMA_VERSION, IndexStore, MetadataRecord, SnapshotFile


def _records() -> dict[str, MetadataRecord]:
    records = [
        MetadataRecord(
            path="/a",
            name="a",
            is_directory=True,
            size=150,
            modification_time=1_700_000_000.123456,
            creation_time=1_690_000_000.5,
            type_tag=None,
            parent_path=None,
        ),
        MetadataRecord(
            path="/a/f",
            name="f",
            is_directory=False,
            size=100,
            modification_time=1_700_000_001.0,
            creation_time=1_700_000_001.0,
            type_tag="application/octet-stream",
            parent_path="/a",
        ),
        MetadataRecord(
            path="/a/b",
            name="b",
            is_directory=True,
            size=50,
            modification_time=1_700_000_002.75,
            creation_time=1_700_000_002.75,
            parent_path="/a",
        ),
        MetadataRecord(
            path="/a/b/g",
            name="g",
            is_directory=False,
            size=50,
            modification_time=1_700_000_003.0,
            creation_time=1_700_000_003.0,
            parent_path="/a/b",
        ),
    ]
    return {record.path: record for record in records}


def test_commit_then_reload_restores_identical_records(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "snapshots" / "index.snapshot.json"
    store = IndexStore(snapshot_path)
    store.commit(_records())

    reloaded = IndexStore(snapshot_path)

    assert reloaded.count() == 4
    assert {record.path: record for record in reloaded.get_all()} == _records()


def test_snapshot_is_human_diffable_json(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    IndexStore(snapshot_path).commit(_records())

    text = snapshot_path.read_text(encoding="utf-8")
    payload = json.loads(text)

    assert payload["schema_version"] == SNAPSHOT_SCHEMA_VERSION
    assert sorted(payload["entries"]) == ["/a", "/a/b", "/a/b/g", "/a/f"]
    assert payload["entries"]["/a/b"]["size"] == 50
    assert "\n  " in text


def test_missing_snapshot_starts_empty(tmp_path: Path) -> None:
    store = IndexStore(tmp_path / "absent.json")

    assert store.count() == 0
    assert store.get_all() == []


def test_corrupted_snapshot_is_deleted_and_store_starts_empty(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    snapshot_path.write_bytes(b"\x00\xff\xfe garbage {{{")

    with caplog.at_level(logging.ERROR, logger="disk_index.index.snapshot"):
        store = IndexStore(snapshot_path)

    assert store.count() == 0
    assert not snapshot_path.exists()
    assert any("Deleting corrupted snapshot" in message for message in caplog.messages)


def test_deeply_nested_snapshot_is_deleted_and_store_starts_empty(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    snapshot_path.write_text("[" * 200_000, encoding="utf-8")

    with caplog.at_level(logging.ERROR, logger="disk_index.index.snapshot"):
        store = IndexStore(snapshot_path)

    assert store.count() == 0
    assert not snapshot_path.exists()
    assert any("Deleting corrupted snapshot" in message for message in caplog.messages)


def test_snapshot_with_one_malformed_record_is_discarded_entirely(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    IndexStore(snapshot_path).commit(_records())
    payload = json.loads(snapshot_path.read_text(encoding="utf-8"))
    payload["entries"]["/a/f"]["size"] = "large"
    snapshot_path.write_text(json.dumps(payload), encoding="utf-8")

    store = IndexStore(snapshot_path)

    assert store.count() == 0
    assert not snapshot_path.exists()


def test_snapshot_with_mismatched_key_is_discarded(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    record = _records()["/a/f"].to_dict()
    payload = {"schema_version": SNAPSHOT_SCHEMA_VERSION, "entries": {"/elsewhere": record}}
    snapshot_path.write_text(json.dumps(payload), encoding="utf-8")

    assert IndexStore(snapshot_path).count() == 0
    assert not snapshot_path.exists()


def test_snapshot_with_unsupported_schema_is_discarded(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    snapshot_path.write_text(
        json.dumps({"schema_version": SNAPSHOT_SCHEMA_VERSION + 1, "entries": {}}),
        encoding="utf-8",
    )

    assert IndexStore(snapshot_path).count() == 0
    assert not snapshot_path.exists()


def test_empty_commit_removes_existing_snapshot(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    store = IndexStore(snapshot_path)
    store.commit(_records())
    assert snapshot_path.exists()

    store.commit({})

    assert not snapshot_path.exists()
    assert store.count() == 0


def test_failed_write_keeps_previous_snapshot(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    store = IndexStore(snapshot_path)
    store.commit(_records())
    before = snapshot_path.read_bytes()

    def failing_dump(*args: object, **kwargs: object) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(json, "dump", failing_dump)
    smaller = {"/a/f": _records()["/a/f"]}
    store.commit(smaller)

    assert snapshot_path.read_bytes() == before
    assert not snapshot_path.with_suffix(".json.tmp").exists()
    assert store.count() == 1


def test_clear_is_idempotent_and_tolerates_missing_file(tmp_path: Path) -> None:
    snapshot_path = tmp_path / "index.snapshot.json"
    store = IndexStore(snapshot_path)
    store.commit(_records())

    store.clear()
    store.clear()

    assert store.count() == 0
    assert not snapshot_path.exists()


def test_snapshot_file_save_reports_success(tmp_path: Path) -> None:
    snapshot = SnapshotFile(tmp_path / "nested" / "dir" / "index.snapshot.json")

    assert snapshot.save(_records()) is True
    assert snapshot.path.exists()
    assert snapshot.load() == _records()
    assert snapshot.delete() is True
    assert snapshot.delete() is True
