from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Iterable
from zoneinfo import ZoneInfo

from slotbot.domain import Event, MalformedRecord, RawEventRecord

logger = logging.getLogger(__name__)

TIMEZONE = ZoneInfo("Europe/Copenhagen")

# Danish three-letter month abbreviations as printed on the list.
_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "maj": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "okt": 10,
    "nov": 11,
    "dec": 12,
}

# "Lør 10. jul 2021", "Man 2. aug 2021"
_DATE_RE = re.compile(r"(\d{1,2})\.?\s*([a-zæøå]{3})[a-zæøå]*\.?\s+(\d{4})", re.IGNORECASE)
# "10:00 - 11:00", "9.30"
_TIME_RE = re.compile(r"^\s*(\d{1,2})[:.](\d{2})")
_CAPACITY_RE = re.compile(r"^\s*(\d+)\s*$")


def _parse_date(text: str, token: str) -> dt.date:
    m = _DATE_RE.search(text)
    if not m:
        raise MalformedRecord(f"Unrecognised date: {text!r}", token=token)

    day, month_name, year = m.groups()
    month = _MONTHS.get(month_name.lower())
    if month is None:
        raise MalformedRecord(f"No month matching: {month_name!r}", token=token)

    try:
        return dt.date(int(year), month, int(day))
    except ValueError as e:
        raise MalformedRecord(f"Invalid date {text!r}: {e}", token=token) from e


def _parse_time(text: str, token: str) -> dt.time:
    m = _TIME_RE.match(text)
    if not m:
        raise MalformedRecord(f"Unrecognised time: {text!r}", token=token)

    try:
        return dt.time(int(m.group(1)), int(m.group(2)))
    except ValueError as e:
        raise MalformedRecord(f"Invalid time {text!r}: {e}", token=token) from e


def _parse_capacity(text: str | None, token: str) -> int | None:
    if text is None or not text.strip():
        return None
    m = _CAPACITY_RE.match(text)
    if not m:
        raise MalformedRecord(f"Capacity is not a non-negative integer: {text!r}", token=token)
    return int(m.group(1))


def normalize(record: RawEventRecord) -> Event:
    """Turn one extracted row into an Event or raise MalformedRecord."""
    token = (record.token or "").strip()
    if not token:
        raise MalformedRecord("Row has no identifying token")

    title = (record.title or "").strip()
    if not title:
        raise MalformedRecord("Row has no title", token=token)

    if not record.date_text or not record.time_text:
        raise MalformedRecord("Row is missing date or time", token=token)

    date = _parse_date(record.date_text, token)
    time = _parse_time(record.time_text, token)

    return Event(
        id=token,
        title=title,
        start_time=dt.datetime.combine(date, time, tzinfo=TIMEZONE),
        location=(record.location or "").strip(),
        available_capacity=_parse_capacity(record.capacity_text, token),
        class_info=tuple(record.class_info),
    )


def normalize_records(records: Iterable[RawEventRecord]) -> tuple[list[Event], list[MalformedRecord]]:
    """Normalize a page worth of rows, dropping the bad ones.

    Rows sharing a token are collapsed; the first one wins.
    """
    events: list[Event] = []
    errors: list[MalformedRecord] = []
    seen: set[str] = set()

    for record in records:
        try:
            event = normalize(record)
        except MalformedRecord as e:
            logger.warning("Dropping malformed row (token=%s): %s", e.token, e)
            errors.append(e)
            continue

        if event.id in seen:
            logger.debug("Duplicate row for token=%s ignored", event.id)
            continue
        seen.add(event.id)
        events.append(event)

    return events, errors
