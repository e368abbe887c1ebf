from __future__ import annotations

import io
import json
import os
from pathlib import Path

from disk_index.cli import main


def _run(state_dir: Path, *args: str) -> tuple[int, object]:
    out = io.StringIO()
    code = main(["--state-dir", str(state_dir), "--size-mode", "logical", *args], out_stream=out)
    return code, json.loads(out.getvalue())


def _tree(tmp_path: Path) -> Path:
    root = tmp_path / "volume"
    (root / "music").mkdir(parents=True)
    (root / "music" / "song.mp3").write_bytes(b"m" * 300)
    (root / "readme.txt").write_bytes(b"r" * 20)
    return Path(os.path.realpath(root))


def test_scan_lookup_list_history_clear_workflow(tmp_path: Path) -> None:
    root = _tree(tmp_path)
    state_dir = tmp_path / "state"

    code, report = _run(state_dir, "scan", str(root))
    assert code == 0
    assert report["outcome"] == "completed"
    assert report["item_count"] == 4

    code, record = _run(state_dir, "lookup", str(root / "music"))
    assert code == 0
    assert record["size"] == 300
    assert record["is_directory"] is True

    code, records = _run(state_dir, "list", "--limit", "2")
    assert code == 0
    assert [item["path"] for item in records] == [str(root), str(root / "music")]

    code, status = _run(state_dir, "status")
    assert code == 0
    assert status["index_status"] == "ready"
    assert status["indexed_item_count"] == 4
    assert status["effective_config"]["crawl"]["size_mode"] == "logical"

    code, history = _run(state_dir, "history")
    assert code == 0
    assert [entry["outcome"] for entry in history] == ["completed"]

    code, cleared = _run(state_dir, "clear")
    assert code == 0
    assert cleared == {"cleared": True}

    code, missing = _run(state_dir, "lookup", str(root / "music"))
    assert code == 1
    assert missing["found"] is False


def test_scan_requires_permission(tmp_path: Path) -> None:
    root = _tree(tmp_path)
    state_dir = tmp_path / "state"

    code, payload = _run(state_dir, "scan", "--no-permitted", str(root))

    assert code == 2
    assert payload == {"started": False, "reason": "not_permitted"}
    _, status = _run(state_dir, "status")
    assert status["index_status"] == "empty"


def test_scan_without_roots_is_ignored(tmp_path: Path) -> None:
    code, payload = _run(tmp_path / "state", "scan")

    assert code == 1
    assert payload == {"started": False, "reason": "ignored"}
