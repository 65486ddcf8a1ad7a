"""Filesystem-backed cache of catalog metadata keyed by item id."""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Iterable, Iterator

from listlens.models import ItemId, MetadataFormatError, MetadataRecord
from listlens.storage.snapshot_store import SnapshotHistory

LOGGER = logging.getLogger(__name__)


class MissingMetadataError(RuntimeError):
    """Raised when list entries lack metadata and cannot be fetched from the catalog."""

    def __init__(self, message: str, *, item_ids: Iterable[ItemId] = ()) -> None:
        super().__init__(message)
        self.item_ids = tuple(item_ids)


class MetadataStore:
    """Mapping from item id to metadata record, persisted as a JSON list.

    Records are only ever added during a run.  Every mutation rewrites the
    whole file.
    """

    def __init__(self, path: Path | str, records: Iterable[MetadataRecord] = ()) -> None:
        self._path = Path(path)
        self._records: dict[ItemId, MetadataRecord] = {}
        for record in records:
            self._records[record.id] = record

    @property
    def path(self) -> Path:
        return self._path

    @classmethod
    def load(cls, path: Path | str, template_path: Path | str | None = None) -> "MetadataStore":
        """Read the cache, seeding it from the template when it does not exist yet."""

        cache_path = Path(path)
        LOGGER.info("Loading metadata from %s", cache_path)
        if not cache_path.exists():
            template = Path(template_path) if template_path is not None else None
            if template is not None and template.exists():
                LOGGER.info("Seeding metadata cache from template %s", template)
                cache_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(template, cache_path)
            else:
                LOGGER.info("No metadata cache or template found; starting empty")
                return cls(cache_path)
        try:
            payload = json.loads(cache_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MetadataFormatError(f"Invalid JSON in {cache_path}: {exc}") from exc
        store = cls.from_json(cache_path, payload)
        LOGGER.info("Loaded metadata for %d items", len(store))
        return store

    @classmethod
    def from_json(cls, path: Path | str, payload: Any) -> "MetadataStore":
        if not isinstance(payload, list):
            raise MetadataFormatError("Metadata cache must be a list of records")
        records = [MetadataRecord.from_dict(entry) for entry in payload]
        store = cls(path, records)
        if len(store) != len(records):
            seen: set[ItemId] = set()
            repeated: set[ItemId] = set()
            for record in records:
                if record.id in seen:
                    repeated.add(record.id)
                seen.add(record.id)
            duplicates = sorted(repeated, key=ItemId.sort_key)
            # later entries win
            LOGGER.warning(
                "Metadata cache %s contains duplicate ids %s; keeping the last occurrence",
                path,
                ", ".join(str(item) for item in duplicates),
            )
        return store

    def to_json(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.records()]

    def save(self) -> Path:
        """Rewrite the cache file with every record."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        serialized = json.dumps(self.to_json(), indent=2, ensure_ascii=False)
        temp_path.write_text(serialized + "\n", encoding="utf-8")
        temp_path.replace(self._path)
        return self._path

    def merge(self, new_records: Iterable[MetadataRecord]) -> int:
        """Insert fetched records keyed by their own id and persist the store.

        Records for ids already present are ignored.  Returns the number of
        records added.
        """

        added = 0
        for record in new_records:
            if record.id in self._records:
                continue
            self._records[record.id] = record
            added += 1
        self.save()
        return added

    def records(self) -> list[MetadataRecord]:
        """All records in deterministic id order."""

        return [self._records[item_id] for item_id in self.ids()]

    def ids(self) -> list[ItemId]:
        return sorted(self._records, key=ItemId.sort_key)

    def get(self, item_id: ItemId) -> MetadataRecord | None:
        return self._records.get(item_id)

    def __getitem__(self, item_id: ItemId) -> MetadataRecord:
        return self._records[item_id]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._records

    def __iter__(self) -> Iterator[ItemId]:
        return iter(self.ids())

    def __len__(self) -> int:
        return len(self._records)


def reconcile(history: SnapshotHistory, store: MetadataStore) -> set[ItemId]:
    """Return the catalog ids in the latest snapshot that the store lacks.

    Raises ``MissingMetadataError`` if any missing id cannot be resolved
    through the catalog, before anything is fetched.
    """

    latest = history.latest()
    if latest is None:
        raise MissingMetadataError("Snapshot history is empty; there is no latest list to reconcile")
    missing = {item_id for item_id in latest if item_id not in store}
    unresolvable = sorted((item_id for item_id in missing if not item_id.is_catalog), key=ItemId.sort_key)
    if unresolvable:
        names = ", ".join(f'"{item_id}"' for item_id in unresolvable)
        raise MissingMetadataError(f"Missing metadata for {names}", item_ids=unresolvable)
    return missing


__all__ = ["MetadataStore", "MissingMetadataError", "reconcile"]
