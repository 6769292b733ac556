from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Event:
    """A single bookable slot on the club's event list.

    Identity is the booking system's row token. Capacity and class info change
    as people register, so they take no part in equality or hashing.
    """

    id: str
    title: str
    start_time: dt.datetime
    location: str = ""
    available_capacity: int | None = field(default=None, compare=False)
    class_info: tuple[str, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class RawEventRecord:
    """Field values as they were found in the listing markup, unvalidated."""

    token: str | None
    title: str | None = None
    date_text: str | None = None
    time_text: str | None = None
    location: str | None = None
    capacity_text: str | None = None
    class_info: tuple[str, ...] = ()


class SlotBotError(RuntimeError):
    pass


class FetchError(SlotBotError):
    """The listing could not be retrieved (network, timeout, bad status)."""


class ExtractError(SlotBotError):
    """The retrieved markup is not an event listing at all."""


class MalformedRecord(SlotBotError):
    """A single listing row could not be turned into an Event.

    Recoverable: the row is dropped and the rest of the page is kept.
    """

    def __init__(self, message: str, *, token: str | None = None):
        super().__init__(message)
        self.token = token


class PersistenceError(SlotBotError):
    """Reading or writing the events file failed."""
