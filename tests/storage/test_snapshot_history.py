from __future__ import annotations

import json
from datetime import date

import pytest

from listlens.models import ItemId
from listlens.storage.snapshot_store import SnapshotFormatError, SnapshotHistory, load_history


def _write(tmp_path, payload):
    path = tmp_path / "list.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_history_orders_dates_and_decodes_ids(tmp_path):
    path = _write(
        tmp_path,
        {
            "2024-03-01": [3, "custom", None],
            "2024-01-01": [1, 2],
            "2024-02-01": [],
        },
    )

    history = load_history(path)

    assert history.dates() == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
    assert history.latest() == (ItemId.catalog(3), ItemId.other("custom"), ItemId.none())
    assert history.penultimate() == ()
    assert len(history) == 3
    assert date(2024, 2, 1) in history
    assert [day for day, _ in history.items()] == history.dates()


def test_empty_history_has_no_latest():
    history = SnapshotHistory.from_json({})

    assert history.dates() == []
    assert history.latest() is None
    assert history.penultimate() is None


def test_single_snapshot_has_no_penultimate():
    history = SnapshotHistory.from_json({"2024-01-01": [1]})

    assert history.latest() == (ItemId.catalog(1),)
    assert history.penultimate() is None


def test_to_json_round_trips(tmp_path):
    payload = {"2024-01-01": [1, "x"], "2024-01-02": [None, 1]}

    assert load_history(_write(tmp_path, payload)).to_json() == payload


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_history(tmp_path / "list.json")


@pytest.mark.parametrize(
    "payload, message",
    [
        ([1, 2, 3], "object keyed by ISO-8601 date"),
        ({"01/02/2024": [1]}, "Invalid ISO-8601 date"),
        ({"2024-01-01": 1}, "must be a list"),
        ({"2024-01-01": [True]}, "boolean"),
        ({"2024-01-01": [1.5]}, "float"),
    ],
)
def test_malformed_history_rejected(tmp_path, payload, message):
    with pytest.raises(SnapshotFormatError, match=message):
        load_history(_write(tmp_path, payload))


def test_invalid_json_rejected(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(SnapshotFormatError, match="Invalid JSON"):
        load_history(path)


def test_week_dates_do_not_alias_calendar_dates():
    with pytest.raises(SnapshotFormatError, match="Invalid ISO-8601 date"):
        SnapshotHistory.from_json({"2024-01-01": [1, 2], "2024-W01-1": [2, 1]})


def test_repeated_observation_date_rejected():
    with pytest.raises(SnapshotFormatError, match="2024-01-01 appears more than once"):
        SnapshotHistory.from_json({"2024-01-01": [1, 2], date(2024, 1, 1): [2, 1]})
