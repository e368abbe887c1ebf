"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

CONFIG_FILE_NAME = "disk_index.toml"
MAX_WORKERS_CAP = 64
MAX_AGGREGATION_PASSES_CAP = 1_000
MAX_POLL_INTERVAL_SECONDS = 1.0
SIZE_MODES = ("allocated", "logical")

DEFAULT_PACKAGE_SUFFIXES = (
    ".app",
    ".bundle",
    ".framework",
    ".plugin",
    ".kext",
    ".photoslibrary",
    ".xcodeproj",
)


@dataclass(slots=True, frozen=True)
class CrawlConfig:
    """Per-entry crawl policy settings."""

    skip_hidden: bool = True
    skip_packages: bool = True
    package_suffixes: tuple[str, ...] = DEFAULT_PACKAGE_SUFFIXES
    size_mode: str = "allocated"
    detect_type_tags: bool = True


@dataclass(slots=True, frozen=True)
class ScanConfig:
    """Scan orchestration settings."""

    max_workers: int = 8
    max_aggregation_passes: int = 10
    poll_interval_seconds: float = 0.2


@dataclass(slots=True, frozen=True)
class IndexerConfig:
    """Fully merged indexer configuration."""

    state_dir: Path
    crawl: CrawlConfig
    scan: ScanConfig

    @property
    def snapshot_path(self) -> Path:
        """Return the on-disk snapshot location."""
        return self.state_dir / "snapshots" / "index.snapshot.json"

    @property
    def scan_log_path(self) -> Path:
        """Return the JSONL scan history location."""
        return self.state_dir / "scans.jsonl"

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for status output."""
        return {
            "state_dir": str(self.state_dir),
            "crawl": {
                "skip_hidden": self.crawl.skip_hidden,
                "skip_packages": self.crawl.skip_packages,
                "package_suffixes": list(self.crawl.package_suffixes),
                "size_mode": self.crawl.size_mode,
                "detect_type_tags": self.crawl.detect_type_tags,
            },
            "scan": {
                "max_workers": self.scan.max_workers,
                "max_aggregation_passes": self.scan.max_aggregation_passes,
                "poll_interval_seconds": self.scan.poll_interval_seconds,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    state_dir: Path | None = None
    max_workers: int | None = None
    size_mode: str | None = None
    skip_hidden: bool | None = None


def default_state_dir() -> Path:
    """Resolve the application-owned state directory from the environment."""
    explicit = os.getenv("DISK_INDEX_STATE_DIR", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    xdg_state = os.getenv("XDG_STATE_HOME", "").strip()
    if xdg_state:
        return Path(xdg_state).expanduser() / "disk-index"
    return Path.home() / ".local" / "state" / "disk-index"


def default_config(state_dir: Path | None = None) -> IndexerConfig:
    """Build default config, optionally rooted at a given state directory."""
    return IndexerConfig(
        state_dir=(state_dir or default_state_dir()).resolve(),
        crawl=CrawlConfig(),
        scan=ScanConfig(),
    )


def load_config_file(config_path: Path) -> dict[str, object]:
    """Load an optional TOML config file."""
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{config_path.name} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{name}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{name}' must contain only strings.")
        output.append(item)
    return tuple(output)


def _optional_bool(value: object, name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Config field '{name}' must be a boolean.")
    return value


def _optional_size_mode(value: object, name: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or value not in SIZE_MODES:
        raise ValueError(f"Config field '{name}' must be one of {', '.join(SIZE_MODES)}.")
    return value


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ValueError(f"Config field '{name}' must be <= {cap}.")
    return value


def _optional_poll_interval(value: object, name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Config field '{name}' must be a number of seconds.")
    if value <= 0 or value > MAX_POLL_INTERVAL_SECONDS:
        raise ValueError(
            f"Config field '{name}' must be > 0 and <= {MAX_POLL_INTERVAL_SECONDS}."
        )
    return float(value)


def merge_config(
    base: IndexerConfig, file_payload: dict[str, object], overrides: CliOverrides
) -> IndexerConfig:
    """Merge defaults, config file, then CLI/startup overrides."""
    crawl_payload = _get_table(file_payload, "crawl")
    scan_payload = _get_table(file_payload, "scan")

    package_suffixes = base.crawl.package_suffixes
    if "package_suffixes" in crawl_payload:
        package_suffixes = _tuple_of_strings(
            crawl_payload["package_suffixes"], "crawl.package_suffixes"
        )

    merged = IndexerConfig(
        state_dir=base.state_dir,
        crawl=CrawlConfig(
            skip_hidden=_optional_bool(
                crawl_payload.get("skip_hidden"), "crawl.skip_hidden", base.crawl.skip_hidden
            ),
            skip_packages=_optional_bool(
                crawl_payload.get("skip_packages"),
                "crawl.skip_packages",
                base.crawl.skip_packages,
            ),
            package_suffixes=tuple(suffix.lower() for suffix in package_suffixes),
            size_mode=_optional_size_mode(
                crawl_payload.get("size_mode"), "crawl.size_mode", base.crawl.size_mode
            ),
            detect_type_tags=_optional_bool(
                crawl_payload.get("detect_type_tags"),
                "crawl.detect_type_tags",
                base.crawl.detect_type_tags,
            ),
        ),
        scan=ScanConfig(
            max_workers=_optional_positive_int_with_cap(
                scan_payload.get("max_workers"),
                "scan.max_workers",
                base.scan.max_workers,
                MAX_WORKERS_CAP,
            ),
            max_aggregation_passes=_optional_positive_int_with_cap(
                scan_payload.get("max_aggregation_passes"),
                "scan.max_aggregation_passes",
                base.scan.max_aggregation_passes,
                MAX_AGGREGATION_PASSES_CAP,
            ),
            poll_interval_seconds=_optional_poll_interval(
                scan_payload.get("poll_interval_seconds"),
                "scan.poll_interval_seconds",
                base.scan.poll_interval_seconds,
            ),
        ),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: IndexerConfig, overrides: CliOverrides) -> IndexerConfig:
    """Apply startup overrides at highest precedence."""
    crawl = CrawlConfig(
        skip_hidden=_optional_bool(
            overrides.skip_hidden, "overrides.skip_hidden", config.crawl.skip_hidden
        ),
        skip_packages=config.crawl.skip_packages,
        package_suffixes=config.crawl.package_suffixes,
        size_mode=_optional_size_mode(
            overrides.size_mode, "overrides.size_mode", config.crawl.size_mode
        ),
        detect_type_tags=config.crawl.detect_type_tags,
    )
    scan = ScanConfig(
        max_workers=_optional_positive_int_with_cap(
            overrides.max_workers,
            "overrides.max_workers",
            config.scan.max_workers,
            MAX_WORKERS_CAP,
        ),
        max_aggregation_passes=config.scan.max_aggregation_passes,
        poll_interval_seconds=config.scan.poll_interval_seconds,
    )
    state_dir = overrides.state_dir or config.state_dir
    return IndexerConfig(state_dir=state_dir.resolve(), crawl=crawl, scan=scan)


def load_effective_config(
    state_dir: Path | None = None,
    config_path: Path | None = None,
    overrides: CliOverrides | None = None,
) -> IndexerConfig:
    """Load effective config using merge order defaults -> config file -> overrides."""
    effective_overrides = overrides or CliOverrides()
    base = default_config(effective_overrides.state_dir or state_dir)
    payload = load_config_file(config_path or base.state_dir / CONFIG_FILE_NAME)
    return merge_config(base, payload, effective_overrides)
