from __future__ import annotations

import datetime as dt
import json
import logging
import os
import tempfile
from dataclasses import replace
from typing import Any, Iterable

from slotbot.domain import Event, PersistenceError

logger = logging.getLogger(__name__)


def _event_to_json(event: Event) -> dict[str, Any]:
    return {
        "title": event.title,
        "start_time": event.start_time.isoformat(),
        "location": event.location,
        "available_capacity": event.available_capacity,
        "class_info": list(event.class_info),
    }


def _event_from_json(event_id: str, item: dict[str, Any]) -> Event:
    capacity = item.get("available_capacity")
    return Event(
        id=str(event_id),
        title=str(item["title"]),
        start_time=dt.datetime.fromisoformat(item["start_time"]),
        location=str(item.get("location", "")),
        available_capacity=None if capacity is None else int(capacity),
        class_info=tuple(str(line) for line in item.get("class_info", [])),
    )


class EventStore:
    """Every event seen so far, keyed by id, backed by a JSON file.

    ``fresh`` is True when no events file existed at load time, i.e. this is
    the very first run against this path.
    """

    def __init__(self, path: str, events: dict[str, Event] | None = None, *, fresh: bool = False):
        self.path = path
        self.events: dict[str, Event] = dict(events or {})
        self.fresh = fresh

    @classmethod
    def load(cls, path: str) -> EventStore:
        if not os.path.exists(path):
            logger.info("No events file at %s, starting with an empty list", path)
            return cls(path, fresh=True)

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            items = raw["events"]
            if not isinstance(items, dict):
                raise TypeError("'events' is not an object")
        except (OSError, ValueError, KeyError, TypeError) as e:
            # A lost cache costs one round of repeated notifications; crashing costs more.
            logger.warning("Failed to load events from %s (%s: %s), starting empty", path, type(e).__name__, e)
            return cls(path)

        events: dict[str, Event] = {}
        for event_id, item in items.items():
            try:
                events[str(event_id)] = _event_from_json(event_id, item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable stored event %s (%s: %s)", event_id, type(e).__name__, e)

        logger.info("Loaded %d events from %s", len(events), path)
        return cls(path, events)

    def ids(self) -> frozenset[str]:
        return frozenset(self.events)

    def get(self, event_id: str) -> Event | None:
        return self.events.get(event_id)

    def __len__(self) -> int:
        return len(self.events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self.events

    def merge(self, fetched: Iterable[Event]) -> set[Event]:
        """Fold a fetched snapshot in and return the events that were unknown.

        Known ids only get their mutable fields refreshed. Nothing is removed:
        a slot vanishing from the list says nothing about new slots.
        """
        added: set[Event] = set()
        for event in fetched:
            known = self.events.get(event.id)
            if known is None:
                self.events[event.id] = event
                added.add(event)
                continue
            self.events[event.id] = replace(
                known,
                available_capacity=event.available_capacity,
                class_info=event.class_info,
            )
        return added

    def persist(self) -> None:
        data = {
            "events": {event_id: _event_to_json(e) for event_id, e in sorted(self.events.items())},
        }

        folder = os.path.dirname(os.path.abspath(self.path))
        tmp_name: str | None = None
        try:
            if folder and not os.path.exists(folder):
                os.makedirs(folder, exist_ok=True)

            # Atomic write
            with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
                tmp_name = tf.name
                json.dump(data, tf, ensure_ascii=False, indent=2)

            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.remove(tmp_name)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_name, exc_info=True)
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e
