"""Typed models for indexed filesystem entries."""

from __future__ import annotations

from dataclasses import asdict, dataclass

_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "path": (str,),
    "name": (str,),
    "is_directory": (bool,),
    "size": (int,),
    "modification_time": (int, float),
    "creation_time": (int, float),
}


@dataclass(slots=True, frozen=True)
class MetadataRecord:
    """Represents one file or directory tracked by the index.

    Directory sizes are the total of everything beneath the directory once
    aggregation has run; the crawler emits them as zero.
    """

    path: str
    name: str
    is_directory: bool
    size: int
    modification_time: float
    creation_time: float
    type_tag: str | None = None
    parent_path: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable payload."""
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: object) -> MetadataRecord:
        """Build a record from a snapshot payload, rejecting malformed input."""
        if not isinstance(payload, dict):
            raise ValueError("Record payload must be an object.")
        for key, types in _FIELD_TYPES.items():
            value = payload.get(key)
            # bool is an int subclass; only is_directory may be a bool.
            if isinstance(value, bool) and key != "is_directory":
                raise ValueError(f"Record field '{key}' has an invalid type.")
            if not isinstance(value, types):
                raise ValueError(f"Record field '{key}' is missing or has an invalid type.")
        if payload["size"] < 0:
            raise ValueError("Record field 'size' must be non-negative.")
        type_tag = payload.get("type_tag")
        parent_path = payload.get("parent_path")
        if type_tag is not None and not isinstance(type_tag, str):
            raise ValueError("Record field 'type_tag' must be a string or null.")
        if parent_path is not None and not isinstance(parent_path, str):
            raise ValueError("Record field 'parent_path' must be a string or null.")
        return cls(
            path=payload["path"],
            name=payload["name"],
            is_directory=payload["is_directory"],
            size=payload["size"],
            modification_time=float(payload["modification_time"]),
            creation_time=float(payload["creation_time"]),
            type_tag=type_tag,
            parent_path=parent_path,
        )


def record_map(records: list[MetadataRecord]) -> dict[str, MetadataRecord]:
    """Map records by absolute path."""
    return {record.path: record for record in records}
