from __future__ import annotations

import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv

from slotbot.halbooking_provider import BASE_URL

_PUSHOVER_KEY_RE = re.compile(r"^[a-z0-9]{30}$")

_LOG_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
}


def _parse_pushover_key(name: str, raw: str) -> str:
    value = raw.strip()
    if not _PUSHOVER_KEY_RE.match(value):
        raise RuntimeError(f"Invalid {name}: must consist of 30 lowercase alphanumeric characters")
    return value


def _parse_int(name: str, default: str, *, minimum: int) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    return raw not in {"0", "false", "no"}


@dataclass(frozen=True)
class Settings:
    pushover_api_key: str
    pushover_group_key: str

    events_file: str = "events.json"
    fetch_interval_seconds: int = 120

    # How many times one fetch of the listing is attempted before the cycle gives up.
    fetch_retry_attempts: int = 2
    http_timeout_seconds: float = 20.0
    max_pages: int = 20
    listing_url: str = BASE_URL

    log_level: str = "INFO"
    # Empty string disables file logging.
    log_directory: str = "logs"

    # Record everything silently on the very first run instead of announcing the whole list.
    seed_on_first_run: bool = True


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    raw_level = os.getenv("LOG_LEVEL", "info").strip().lower()
    if raw_level not in _LOG_LEVELS:
        raise RuntimeError(f"Invalid LOG_LEVEL value: {raw_level!r}. Expected one of: debug, info, warning, error")

    raw_timeout = os.getenv("HTTP_TIMEOUT_SECONDS", "20")
    try:
        http_timeout_seconds = float(raw_timeout)
    except ValueError as e:
        raise RuntimeError(f"Invalid HTTP_TIMEOUT_SECONDS value: {raw_timeout!r}") from e
    if http_timeout_seconds <= 0:
        raise RuntimeError("HTTP_TIMEOUT_SECONDS must be > 0")

    return Settings(
        pushover_api_key=_parse_pushover_key("PUSHOVER_API_KEY", _require("PUSHOVER_API_KEY")),
        pushover_group_key=_parse_pushover_key("PUSHOVER_GROUP_KEY", _require("PUSHOVER_GROUP_KEY")),
        events_file=os.getenv("EVENTS_FILE", "events.json"),
        fetch_interval_seconds=_parse_int("FETCH_INTERVAL_SECONDS", "120", minimum=1),
        fetch_retry_attempts=_parse_int("FETCH_RETRY_ATTEMPTS", "2", minimum=1),
        http_timeout_seconds=http_timeout_seconds,
        max_pages=_parse_int("MAX_PAGES", "20", minimum=1),
        listing_url=os.getenv("LISTING_URL", BASE_URL),
        log_level=_LOG_LEVELS[raw_level],
        log_directory=os.getenv("LOG_DIRECTORY", "logs"),
        seed_on_first_run=_parse_bool("SEED_ON_FIRST_RUN", "1"),
    )
