from __future__ import annotations

from typing import AbstractSet, Iterable

from slotbot.domain import Event


def sort_key(event: Event) -> tuple:
    return (event.start_time, event.id)


def diff(previous_ids: AbstractSet[str], fetched: Iterable[Event]) -> list[Event]:
    """Events from ``fetched`` whose id has not been seen before.

    Only id membership counts: a known slot whose capacity changed is not new.
    The result is ordered by start time, then id, whatever order ``fetched``
    came in.
    """
    new: dict[str, Event] = {}
    for event in fetched:
        if event.id in previous_ids or event.id in new:
            continue
        new[event.id] = event
    return sorted(new.values(), key=sort_key)
