"""Snapshot history and metadata cache persistence."""

from .metadata_store import MetadataStore, MissingMetadataError, reconcile
from .snapshot_store import Snapshot, SnapshotFormatError, SnapshotHistory, load_history

__all__ = [
    "MetadataStore",
    "MissingMetadataError",
    "Snapshot",
    "SnapshotFormatError",
    "SnapshotHistory",
    "load_history",
    "reconcile",
]
