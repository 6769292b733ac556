from __future__ import annotations

import datetime as dt

import pytest

from slotbot.composer import HEADING, MAX_MESSAGE_LENGTH, TITLE, compose
from slotbot.domain import Event
from slotbot.normalize import TIMEZONE


def _event(event_id: str, title: str, start: dt.datetime, location: str = "") -> Event:
    return Event(id=event_id, title=title, start_time=start.replace(tzinfo=TIMEZONE), location=location)


def test_compose_lists_events_in_given_order() -> None:
    events = [
        _event("3", "Beginner Lesson", dt.datetime(2021, 7, 10, 10, 0), "Bane 3"),
        _event("5", "Advanced Lesson", dt.datetime(2021, 8, 2, 9, 5)),
    ]

    message = compose(events)

    assert message.title == TITLE
    assert message.html is True
    assert message.text.splitlines() == [
        HEADING,
        "- <b>Beginner Lesson</b>: lør 10. jul 2021 10:00, Bane 3",
        "- <b>Advanced Lesson</b>: man 2. aug 2021 09:05",
    ]


def test_compose_escapes_markup_in_titles() -> None:
    message = compose([_event("1", "Mor & Barn <3", dt.datetime(2021, 7, 10, 10, 0))])
    assert "<b>Mor &amp; Barn &lt;3</b>" in message.text


def test_compose_is_deterministic() -> None:
    events = [_event("1", "Lesson", dt.datetime(2021, 7, 10, 10, 0))]
    assert compose(events) == compose(events)


def test_compose_refuses_empty_list() -> None:
    with pytest.raises(ValueError):
        compose([])


def test_compose_cuts_long_batches_to_pushover_limit() -> None:
    events = [
        _event(str(i), f"Weekend Lesson number {i}", dt.datetime(2021, 7, 10, 10, 0) + dt.timedelta(hours=i), "Bane 3")
        for i in range(60)
    ]

    message = compose(events)
    lines = message.text.splitlines()

    assert len(message.text) <= MAX_MESSAGE_LENGTH
    assert lines[0] == HEADING
    shown = lines[1:-1]
    assert shown == [compose([e]).text.splitlines()[1] for e in events[: len(shown)]]
    assert lines[-1] == f"… og {len(events) - len(shown)} flere"
    assert 0 < len(shown) < len(events)


def test_compose_does_not_cut_batches_that_fit() -> None:
    events = [_event(str(i), "Lesson", dt.datetime(2021, 7, 10, 10 + i, 0)) for i in range(5)]

    lines = compose(events).text.splitlines()

    assert len(lines) == 6
    assert not any("flere" in line for line in lines)


def test_compose_single_oversized_event_still_fits() -> None:
    message = compose([_event("1", "x" * 2000, dt.datetime(2021, 7, 10, 10, 0))])

    assert len(message.text) <= MAX_MESSAGE_LENGTH
    assert message.text.splitlines() == [HEADING, "… og 1 flere"]
