from __future__ import annotations

import datetime as dt
import json
from unittest.mock import patch

import pytest

from slotbot.domain import Event, PersistenceError
from slotbot.normalize import TIMEZONE
from slotbot.state_file import EventStore


def _event(event_id: str, start: str, *, capacity: int | None = None, title: str = "Lesson") -> Event:
    return Event(
        id=event_id,
        title=title,
        start_time=dt.datetime.fromisoformat(start).replace(tzinfo=TIMEZONE),
        location="Bane 1",
        available_capacity=capacity,
        class_info=("Træner: Anna",),
    )


def _assert_same_mapping(a: EventStore, b: EventStore) -> None:
    assert a.events.keys() == b.events.keys()
    for event_id, event in a.events.items():
        other = b.events[event_id]
        assert other == event
        assert other.title == event.title
        assert other.start_time == event.start_time
        assert other.location == event.location
        assert other.available_capacity == event.available_capacity
        assert other.class_info == event.class_info


def test_load_missing_file_gives_fresh_empty_store(tmp_path) -> None:
    store = EventStore.load(str(tmp_path / "events.json"))
    assert len(store) == 0
    assert store.fresh is True


@pytest.mark.parametrize("content", ["{not json", "[]", "null", '{"events": []}', '{"other": {}}'])
def test_load_corrupt_file_gives_empty_store(tmp_path, content: str) -> None:
    path = tmp_path / "events.json"
    path.write_text(content, encoding="utf-8")

    store = EventStore.load(str(path))

    assert len(store) == 0
    assert store.fresh is False


def test_load_skips_unreadable_entries(tmp_path) -> None:
    path = tmp_path / "events.json"
    path.write_text(
        json.dumps(
            {
                "events": {
                    "good": {"title": "Lesson", "start_time": "2021-07-10T10:00:00+02:00", "available_capacity": 2},
                    "no_title": {"start_time": "2021-07-10T10:00:00+02:00"},
                    "bad_time": {"title": "Lesson", "start_time": "tomorrow"},
                }
            }
        ),
        encoding="utf-8",
    )

    store = EventStore.load(str(path))

    assert store.ids() == {"good"}
    assert store.get("good").available_capacity == 2


def test_persist_then_load_round_trips(tmp_path) -> None:
    path = str(tmp_path / "events.json")
    store = EventStore(path)
    store.merge([_event("1", "2021-07-10T10:00", capacity=3), _event("2", "2021-07-12T09:00")])

    store.persist()
    loaded = EventStore.load(path)

    _assert_same_mapping(store, loaded)
    assert loaded.fresh is False


def test_persist_creates_missing_folder_and_leaves_no_temp_files(tmp_path) -> None:
    path = tmp_path / "state" / "events.json"
    store = EventStore(str(path))
    store.merge([_event("1", "2021-07-10T10:00")])

    store.persist()

    assert path.exists()
    assert [p.name for p in path.parent.iterdir()] == ["events.json"]


def test_persist_failure_keeps_previous_file_and_raises(tmp_path) -> None:
    path = tmp_path / "events.json"
    path.write_text('{"events": {}}', encoding="utf-8")
    store = EventStore(str(path))
    store.merge([_event("1", "2021-07-10T10:00")])

    with patch("slotbot.state_file.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(PersistenceError, match="disk full"):
            store.persist()

    assert path.read_text(encoding="utf-8") == '{"events": {}}'
    assert [p.name for p in tmp_path.iterdir()] == ["events.json"]
    assert "1" in store


def test_merge_scenario_a(tmp_path) -> None:
    store = EventStore(str(tmp_path / "events.json"))
    store.merge([_event("1", "2021-07-10T10:00", capacity=3, title="Beginner Lesson")])

    added = store.merge(
        [
            _event("1", "2021-07-10T10:00", capacity=1, title="Beginner Lesson"),
            _event("2", "2021-07-12T09:00", capacity=5, title="Advanced Lesson"),
        ]
    )

    assert {e.id for e in added} == {"2"}
    assert store.get("1").available_capacity == 1
    assert store.get("2").available_capacity == 5


def test_merge_never_removes_and_keeps_descriptive_fields(tmp_path) -> None:
    store = EventStore(str(tmp_path / "events.json"))
    store.merge([_event("1", "2021-07-10T10:00", capacity=3, title="Beginner Lesson"), _event("2", "2021-07-12T09:00")])

    added = store.merge([_event("1", "2021-07-10T10:00", capacity=0, title="Renamed Lesson")])

    assert added == set()
    assert store.ids() == {"1", "2"}
    assert store.get("1").title == "Beginner Lesson"
    assert store.get("1").available_capacity == 0
