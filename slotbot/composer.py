from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Sequence

from slotbot.domain import Event

TITLE = "Nye tider lagt op!"
HEADING = "<u>Der er blevet lagt nye tider op</u>:"
# Pushover's limit for the message body.
MAX_MESSAGE_LENGTH = 1024

_WEEKDAYS = ("man", "tir", "ons", "tor", "fre", "lør", "søn")
_MONTHS = ("jan", "feb", "mar", "apr", "maj", "jun", "jul", "aug", "sep", "okt", "nov", "dec")


@dataclass(frozen=True)
class Message:
    title: str
    text: str
    html: bool = True


def _format_start(event: Event) -> str:
    start = event.start_time
    return f"{_WEEKDAYS[start.weekday()]} {start.day}. {_MONTHS[start.month - 1]} {start.year} {start:%H:%M}"


def _format_event(event: Event) -> str:
    line = f"- <b>{escape(event.title)}</b>: {_format_start(event)}"
    if event.location:
        line += f", {escape(event.location)}"
    return line


def _more_line(count: int) -> str:
    return f"… og {count} flere"


def compose(new_events: Sequence[Event]) -> Message:
    """Render new events, in the order given, as one Pushover message.

    Pushover rejects messages over ``MAX_MESSAGE_LENGTH`` characters, so a
    long batch is cut off after the last event that fits and ends with a
    line counting the ones left out.
    """
    if not new_events:
        raise ValueError("compose() needs at least one event")

    lines = [HEADING]
    length = len(HEADING)
    for i, event in enumerate(new_events):
        line = _format_event(event)
        left_after = len(new_events) - i - 1
        reserve = 1 + len(_more_line(left_after)) if left_after else 0
        if length + 1 + len(line) + reserve > MAX_MESSAGE_LENGTH:
            lines.append(_more_line(len(new_events) - i))
            break
        lines.append(line)
        length += 1 + len(line)

    return Message(title=TITLE, text="\n".join(lines))
