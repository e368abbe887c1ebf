from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from disk_index.config import IndexerConfig, default_config
from disk_index.index import open_index


def _config(tmp_path: Path) -> IndexerConfig:
    base = default_config(tmp_path / "state")
    return replace(
        base,
        crawl=replace(base.crawl, size_mode="logical"),
        scan=replace(base.scan, poll_interval_seconds=0.01),
    )


def test_restart_restores_last_committed_index(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    (root / "2025" / "june").mkdir(parents=True)
    (root / "2025" / "june" / "beach.jpg").write_bytes(b"j" * 900)
    (root / "2025" / "cover.png").write_bytes(b"p" * 100)
    root = Path(os.path.realpath(root))
    config = _config(tmp_path)

    first = open_index(config)
    first.start_scan([root])
    assert first.wait(timeout=10)
    committed = {record.path: record for record in first.get_all()}

    restarted = open_index(config)

    assert restarted.count() == len(committed) == 5
    assert {record.path: record for record in restarted.get_all()} == committed
    assert restarted.get_by_path(str(root)).size == 1000
    assert restarted.get_by_path(str(root / "2025" / "cover.png")).type_tag == "image/png"
    assert restarted.status().index_status == "ready"


def test_rescan_replaces_index_wholesale(tmp_path: Path) -> None:
    root = tmp_path / "work"
    root.mkdir()
    (root / "old.log").write_bytes(b"o" * 10)
    root = Path(os.path.realpath(root))
    controller = open_index(_config(tmp_path))
    controller.start_scan([root])
    controller.wait(timeout=10)

    (root / "old.log").unlink()
    (root / "new.log").write_bytes(b"n" * 4)
    controller.start_scan([root])
    controller.wait(timeout=10)

    assert controller.get_by_path(str(root / "old.log")) is None
    assert controller.get_by_path(str(root / "new.log")).size == 4
    assert controller.get_by_path(str(root)).size == 4


def test_clear_removes_snapshot_so_restart_is_empty(tmp_path: Path) -> None:
    root = tmp_path / "work"
    root.mkdir()
    (root / "data.bin").write_bytes(b"d" * 3)
    config = _config(tmp_path)
    controller = open_index(config)
    controller.start_scan([root])
    controller.wait(timeout=10)
    assert config.snapshot_path.exists()

    controller.clear()

    assert not config.snapshot_path.exists()
    assert open_index(config).count() == 0
