"""Filesystem crawl, aggregation and index storage package."""

from .aggregation import AggregationResult, aggregate_directory_sizes, build_children_index
from .controller import ScanController, ScanReport, merge_records, open_index
from .crawler import CrawlProfile, ScanCancelledError, crawl_root, is_readable_root
from .models import MetadataRecord, record_map
from .snapshot import SNAPSHOT_SCHEMA_VERSION, SnapshotFile, SnapshotFormatError
from .store import IndexStatus, IndexStore, ScanHandle

__all__ = [
    "AggregationResult",
    "CrawlProfile",
    "IndexStatus",
    "IndexStore",
    "MetadataRecord",
    "SNAPSHOT_SCHEMA_VERSION",
    "ScanCancelledError",
    "ScanController",
    "ScanHandle",
    "ScanReport",
    "SnapshotFile",
    "SnapshotFormatError",
    "aggregate_directory_sizes",
    "build_children_index",
    "crawl_root",
    "is_readable_root",
    "merge_records",
    "open_index",
    "record_map",
]
