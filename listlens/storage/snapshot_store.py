"""Loader for the dated history of ranked-list snapshots."""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterator, Mapping

from listlens.models import ItemId, MetadataFormatError
from listlens.timestamps import parse_iso_date

LOGGER = logging.getLogger(__name__)

Snapshot = tuple[ItemId, ...]


class SnapshotFormatError(ValueError):
    """Raised when the snapshot history file is malformed."""


class SnapshotHistory:
    """Immutable mapping from observation date to the ranking observed that day."""

    def __init__(self, snapshots: Mapping[date, Snapshot]) -> None:
        self._snapshots: dict[date, Snapshot] = {day: tuple(items) for day, items in snapshots.items()}
        self._dates: tuple[date, ...] = tuple(sorted(self._snapshots))

    @classmethod
    def from_json(cls, payload: Any) -> "SnapshotHistory":
        if not isinstance(payload, Mapping):
            raise SnapshotFormatError("Snapshot history must be an object keyed by ISO-8601 date")
        snapshots: dict[date, Snapshot] = {}
        for key, entries in payload.items():
            try:
                day = parse_iso_date(key)
            except (TypeError, ValueError) as exc:
                raise SnapshotFormatError(str(exc)) from exc
            if day in snapshots:
                raise SnapshotFormatError(f"Snapshot for {day.isoformat()} appears more than once")
            if not isinstance(entries, list):
                raise SnapshotFormatError(f"Snapshot for {key} must be a list of item ids")
            try:
                snapshots[day] = tuple(ItemId.from_json(token) for token in entries)
            except MetadataFormatError as exc:
                raise SnapshotFormatError(f"Snapshot for {key}: {exc}") from exc
        return cls(snapshots)

    def to_json(self) -> dict[str, list[int | str | None]]:
        return {day.isoformat(): [item.to_json() for item in self._snapshots[day]] for day in self._dates}

    def dates(self) -> list[date]:
        """All observation dates, ascending."""

        return list(self._dates)

    def latest(self) -> Snapshot | None:
        if not self._dates:
            return None
        return self._snapshots[self._dates[-1]]

    def penultimate(self) -> Snapshot | None:
        if len(self._dates) < 2:
            return None
        return self._snapshots[self._dates[-2]]

    def items(self) -> Iterator[tuple[date, Snapshot]]:
        for day in self._dates:
            yield day, self._snapshots[day]

    def __getitem__(self, day: date) -> Snapshot:
        return self._snapshots[day]

    def __contains__(self, day: object) -> bool:
        return day in self._snapshots

    def __iter__(self) -> Iterator[date]:
        return iter(self._dates)

    def __len__(self) -> int:
        return len(self._dates)


def load_history(path: Path | str) -> SnapshotHistory:
    """Read the snapshot history file."""

    history_path = Path(path)
    if not history_path.exists():
        raise FileNotFoundError(f"Snapshot history not found at {history_path}")
    LOGGER.info("Loading lists from %s", history_path)
    try:
        payload = json.loads(history_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SnapshotFormatError(f"Invalid JSON in {history_path}: {exc}") from exc
    history = SnapshotHistory.from_json(payload)
    LOGGER.info("Loaded %d lists", len(history))
    return history


__all__ = ["Snapshot", "SnapshotFormatError", "SnapshotHistory", "load_history"]
