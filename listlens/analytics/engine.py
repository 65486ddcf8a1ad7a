"""Read-only analytics over a reconciled snapshot history and metadata store."""

from __future__ import annotations

from collections.abc import Hashable
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Sequence, Tuple, TypeVar

import pandas as pd

from listlens.models import ItemId, MetadataRecord, RatingKind
from listlens.storage.metadata_store import MetadataStore
from listlens.storage.snapshot_store import Snapshot, SnapshotHistory

T = TypeVar("T")


class RankingMismatchError(RuntimeError):
    """Raised when the catalog ranking references items missing from the latest list."""


def _positions(snapshot: Sequence[ItemId]) -> Dict[ItemId, int]:
    index: Dict[ItemId, int] = {}
    for position, item_id in enumerate(snapshot):
        index.setdefault(item_id, position)
    return index


class ListAnalytics:
    """Derived views consumed by the rendering layer.

    Nothing here mutates the history or the store, so one instance can be
    shared by any number of concurrent readers.  Ties are broken by item id so
    every view is deterministic.
    """

    def __init__(self, history: SnapshotHistory, store: MetadataStore) -> None:
        self.history = history
        self.store = store

    def dates(self) -> List[date]:
        """All dates when the list was observed, ascending."""

        return self.history.dates()

    def latest(self) -> Snapshot | None:
        return self.history.latest()

    def penultimate(self) -> Snapshot | None:
        return self.history.penultimate()

    def extrema(self, top: bool) -> List[Tuple[ItemId, timedelta]]:
        """Time each item spent at the top (or bottom) of the list.

        Every interval between consecutive observations is credited to the
        item holding the extreme rank at the start of the interval.
        """

        dates = self.dates()
        totals: Dict[ItemId, timedelta] = {}
        for start, end in zip(dates, dates[1:]):
            snapshot = self.history[start]
            if not snapshot:
                continue
            holder = snapshot[0] if top else snapshot[-1]
            totals[holder] = totals.get(holder, timedelta(0)) + (end - start)
        return sorted(totals.items(), key=lambda entry: (-entry[1], entry[0].sort_key()))

    def ranked_by_metric(self, kind: RatingKind) -> List[Tuple[float, MetadataRecord]]:
        """Records carrying the *kind* rating, best first."""

        ranked: List[Tuple[float, MetadataRecord]] = []
        for record in self.store.records():
            value = record.rating_for(kind)
            if value is not None:
                ranked.append((value, record))
        ranked.sort(key=lambda entry: (-entry[0], entry[1].id.sort_key()))
        return ranked

    def most_common(
        self,
        extract: Callable[[MetadataRecord], Iterable[T]],
        key: Callable[[T], Hashable],
    ) -> List[Tuple[int, T]]:
        """Count values of a nested collection across all records.

        Values are grouped by ``key``; the first value seen for a group (in id
        order) represents it.  Sorted by count descending, then by group key.
        """

        groups: Dict[Hashable, Tuple[int, T]] = {}
        for record in self.store.records():
            for value in extract(record):
                group = key(value)
                count, representative = groups.get(group, (0, value))
                groups[group] = (count + 1, representative)
        ordered = sorted(groups.items(), key=lambda entry: (-entry[1][0], str(entry[0])))
        return [counted for _, counted in ordered]

    def rank_diffs(self) -> List[Tuple[int, MetadataRecord]] | None:
        """Signed position difference between the latest list and the catalog ranking.

        Positive values mean the list ranks the item lower than the catalog
        does.  Returns ``None`` when a catalog-ranked item is not on the latest
        list.
        """

        latest = self.latest()
        if latest is None:
            return None
        positions = _positions(latest)
        diffs: List[Tuple[int, MetadataRecord]] = []
        for metric_position, (_, record) in enumerate(self.ranked_by_metric(RatingKind.TOTAL)):
            list_position = positions.get(record.id)
            if list_position is None:
                return None
            diffs.append((list_position - metric_position, record))
        diffs.sort(key=lambda entry: (entry[0], entry[1].id.sort_key()))
        return diffs

    def overrated(self, count: int) -> List[Tuple[int, MetadataRecord]]:
        """Items the list ranks furthest above the catalog."""

        return self._require_rank_diffs()[:count]

    def underrated(self, count: int) -> List[Tuple[int, MetadataRecord]]:
        """Items the list ranks furthest below the catalog, most extreme first."""

        diffs = self._require_rank_diffs()
        if count <= 0:
            return []
        return list(reversed(diffs[-count:]))

    def release_date_range(self) -> Tuple[datetime, datetime] | None:
        releases = [record.first_release_date for record in self.store.records()]
        if not releases:
            return None
        return min(releases), max(releases)

    def position_history(self) -> Dict[ItemId, List[Tuple[date, int | None]]]:
        """Position on every observation date for each item on the latest list."""

        latest = self.latest()
        if latest is None:
            return {}
        by_date = [(day, _positions(snapshot)) for day, snapshot in self.history.items()]
        history: Dict[ItemId, List[Tuple[date, int | None]]] = {}
        for item_id in latest:
            if item_id in history:
                continue
            history[item_id] = [(day, positions.get(item_id)) for day, positions in by_date]
        return history

    def position_frame(self) -> pd.DataFrame:
        """``position_history`` as a table: one row per date, one column per item."""

        columns = {
            item_id.to_json(): [position for _, position in series]
            for item_id, series in self.position_history().items()
        }
        frame = pd.DataFrame(columns, index=pd.Index(self.dates(), name="date"))
        return frame.astype("Int64")

    def metric_positions(self, kind: RatingKind) -> List[Tuple[ItemId, int, int | None]]:
        """For each latest-list item: its list position and its catalog-ranking position."""

        latest = self.latest()
        if latest is None:
            return []
        metric_index = {record.id: position for position, (_, record) in enumerate(self.ranked_by_metric(kind))}
        return [(item_id, position, metric_index.get(item_id)) for position, item_id in enumerate(latest)]

    def _require_rank_diffs(self) -> List[Tuple[int, MetadataRecord]]:
        diffs = self.rank_diffs()
        if diffs is None:
            raise RankingMismatchError("Could not generate IGDB rating differences.")
        return diffs


__all__ = ["ListAnalytics", "RankingMismatchError"]
