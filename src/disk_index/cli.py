"""Command line entrypoint for scanning and querying the index."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TextIO

from disk_index.config import SIZE_MODES, CliOverrides, IndexerConfig, load_effective_config
from disk_index.index import ScanController, open_index

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for indexer commands and startup configuration."""
    parser = argparse.ArgumentParser(prog="disk-index")
    parser.add_argument("--state-dir", required=False, default=None)
    parser.add_argument("--config", required=False, default=None)
    parser.add_argument("--max-workers", type=int, required=False, default=None)
    parser.add_argument("--size-mode", choices=SIZE_MODES, required=False, default=None)
    parser.add_argument("--include-hidden", action="store_true", default=False)
    parser.add_argument("-v", "--verbose", action="store_true", default=False)
    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Scan roots and replace the index.")
    scan.add_argument("roots", nargs="*")
    scan.add_argument(
        "--permitted",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Whether the host has granted permission to scan.",
    )

    commands.add_parser("status", help="Show index status and effective config.")

    lookup = commands.add_parser("lookup", help="Show one indexed record.")
    lookup.add_argument("path")

    listing = commands.add_parser("list", help="Show the largest indexed records.")
    listing.add_argument("--limit", type=int, default=20)

    commands.add_parser("clear", help="Clear the index and delete its snapshot.")

    history = commands.add_parser("history", help="Show recent scan outcomes.")
    history.add_argument("--limit", type=int, default=10)
    history.add_argument("--since", default=None)
    return parser


def main(argv: list[str] | None = None, out_stream: TextIO | None = None) -> int:
    """Entrypoint for the disk-index command."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    out = out_stream or sys.stdout
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    overrides = CliOverrides(
        state_dir=Path(args.state_dir).resolve() if args.state_dir is not None else None,
        max_workers=args.max_workers,
        size_mode=args.size_mode,
        skip_hidden=False if args.include_hidden else None,
    )
    config = load_effective_config(
        config_path=Path(args.config) if args.config is not None else None,
        overrides=overrides,
    )
    controller = open_index(config)

    if args.command == "scan":
        return _run_scan(controller, args.roots, args.permitted, out)
    if args.command == "status":
        return _run_status(controller, config, out)
    if args.command == "lookup":
        record = controller.get_by_path(str(Path(args.path).resolve()))
        if record is None:
            _write_json(out, {"path": args.path, "found": False})
            return 1
        _write_json(out, record.to_dict())
        return 0
    if args.command == "list":
        records = sorted(controller.get_all(), key=lambda item: (-item.size, item.path))
        _write_json(out, [record.to_dict() for record in records[: max(args.limit, 0)]])
        return 0
    if args.command == "clear":
        controller.clear()
        _write_json(out, {"cleared": True})
        return 0
    if args.command == "history":
        _write_json(out, controller.history(since=args.since, limit=args.limit))
        return 0
    parser.error(f"unknown command {args.command!r}")
    return 2


def _run_scan(controller: ScanController, roots: list[str], permitted: bool, out: TextIO) -> int:
    if not permitted:
        logger.warning("Scanning is not permitted; no scan started.")
        _write_json(out, {"started": False, "reason": "not_permitted"})
        return 2
    if not controller.start_scan(roots):
        _write_json(out, {"started": False, "reason": "ignored"})
        return 1
    try:
        controller.wait()
    except KeyboardInterrupt:
        controller.cancel_scan()
        controller.wait()
    report = controller.last_report
    payload = report.to_dict() if report is not None else {}
    _write_json(out, payload)
    return 0 if payload.get("outcome") == "completed" else 1


def _run_status(controller: ScanController, config: IndexerConfig, out: TextIO) -> int:
    status = controller.status()
    _write_json(
        out,
        {
            "index_status": status.index_status,
            "indexed_item_count": status.indexed_item_count,
            "last_commit_timestamp": status.last_commit_timestamp,
            "snapshot_path": status.snapshot_path,
            "effective_config": config.to_public_dict(),
        },
    )
    return 0


def _write_json(out: TextIO, payload: object) -> None:
    out.write(f"{json.dumps(payload, sort_keys=True, indent=2)}\n")
    out.flush()


if __name__ == "__main__":
    raise SystemExit(main())
