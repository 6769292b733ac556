from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from slotbot.composer import Message

PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"


@dataclass(frozen=True)
class PushoverResult:
    """Raw outcome of one POST to the Pushover messages API.

    ``status_code`` is None when no HTTP response arrived at all.
    """

    status_code: int | None
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


def send_pushover_message(
    *,
    api_key: str,
    group_key: str,
    message: Message,
    timeout_seconds: float = 20.0,
    transport: httpx.BaseTransport | None = None,
) -> PushoverResult:
    form = {
        "token": api_key,
        "user": group_key,
        "title": message.title,
        "message": message.text,
    }
    if message.html:
        form["html"] = "1"

    try:
        with httpx.Client(timeout=timeout_seconds, transport=transport) as client:
            r = client.post(PUSHOVER_API_URL, data=form)
    except httpx.HTTPError as e:
        return PushoverResult(status_code=None, error=f"{type(e).__name__}: {e}")

    try:
        data = r.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    return PushoverResult(status_code=r.status_code, payload=data)
