"""Structured logging utilities."""

from .audit import JsonlScanLog, ScanEvent, utc_timestamp

__all__ = ["JsonlScanLog", "ScanEvent", "utc_timestamp"]
