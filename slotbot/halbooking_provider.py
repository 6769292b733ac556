from __future__ import annotations

import logging
import re
from typing import Iterable

import httpx
from bs4 import BeautifulSoup, Tag

from slotbot.domain import ExtractError, FetchError, RawEventRecord

logger = logging.getLogger(__name__)

BASE_URL = "https://ktk-tennis.halbooking.dk/newlook/proc_liste.asp"

_MAIN_INFO_CLASSES = ["liste_wide", "min992"]
_CAPACITY_RE = re.compile(r"ledige(?:\s+pladser)?\s*:?\s*(\d+)", re.IGNORECASE)
# "3 ledige pladser"
_CAPACITY_BEFORE_RE = re.compile(r"(\d+)\s+ledige", re.IGNORECASE)
_FULL_RE = re.compile(r"ingen\s+ledige|fuldt?\s*booket|udsolgt", re.IGNORECASE)


def build_page_url(base_url: str, index: int) -> str:
    # The list is paged through "infinite scroll" requests that rely on the
    # session cookie set by the first page.
    if index == 0:
        return f"{base_url}?pid=01"
    return f"{base_url}?liste=liste1&forrigetype=203&seson=0&scroll={index - 1}&pid=01"


def _rows(soup: BeautifulSoup) -> list[Tag]:
    return soup.find_all("tr", class_="infinite-item")


def _lines(cell: Tag) -> list[str]:
    return list(cell.stripped_strings)


def _capacity_text(line: str) -> str | None:
    if _FULL_RE.search(line):
        return "0"
    m = _CAPACITY_RE.search(line) or _CAPACITY_BEFORE_RE.search(line)
    return m.group(1) if m else None


def _parse_row(row: Tag) -> RawEventRecord:
    token = row.get("id")

    title = date_text = time_text = location = None
    class_info: tuple[str, ...] = ()
    capacity_text = None

    for cell in row.find_all("td"):
        classes = cell.get("class") or []
        if classes == _MAIN_INFO_CLASSES:
            text = _lines(cell)
            if len(text) == 3:
                title, date_text, time_text = text
            elif len(text) == 5:
                title, location, _, date_text, time_text = text
            else:
                logger.debug("Row %s: expected 3 or 5 main info lines, found %r", token, text)
                title = text[0] if text else None
        elif "holdinfo" in classes:
            class_info = tuple(_lines(cell))

    for line in class_info:
        capacity_text = _capacity_text(line)
        if capacity_text is not None:
            break

    return RawEventRecord(
        token=token if isinstance(token, str) else None,
        title=title,
        date_text=date_text,
        time_text=time_text,
        location=location,
        capacity_text=capacity_text,
        class_info=class_info,
    )


def extract_records(pages: Iterable[str]) -> list[RawEventRecord]:
    """Pull every listing row out of the fetched pages.

    Rows are returned even when fields are missing; validation happens later.
    Raises ExtractError only when there is no event list to read at all.
    """
    pages = list(pages)
    if not pages:
        raise ExtractError("Nothing to extract: no pages were fetched")

    records: list[RawEventRecord] = []
    for index, markup in enumerate(pages):
        soup = BeautifulSoup(markup, "html.parser")
        if index == 0 and soup.find("table") is None:
            raise ExtractError("No event table found on the listing page")
        records.extend(_parse_row(row) for row in _rows(soup))
    return records


def row_ids(markup: str) -> set[str]:
    soup = BeautifulSoup(markup, "html.parser")
    return {row["id"] for row in _rows(soup) if row.get("id")}


class HalbookingClient:
    """Retrieves the club's event list, following its scroll pages."""

    def __init__(
        self,
        *,
        base_url: str = BASE_URL,
        timeout_seconds: float = 20.0,
        max_pages: int = 20,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_pages = max_pages
        self._transport = transport

    def fetch(self) -> list[str]:
        pages: list[str] = []
        seen: set[str] = set()

        # A fresh client per fetch gives a fresh session cookie.
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport, follow_redirects=True) as client:
                for index in range(self.max_pages):
                    url = build_page_url(self.base_url, index)
                    r = client.get(url)
                    r.raise_for_status()

                    ids = row_ids(r.text)
                    if index > 0 and ids <= seen:
                        break
                    pages.append(r.text)
                    seen |= ids
                else:
                    logger.warning("Stopped paging after %d pages", self.max_pages)
        except httpx.HTTPError as e:
            raise FetchError(f"{type(e).__name__}: {e}") from e

        logger.info("Fetched %d page(s) with %d rows", len(pages), len(seen))
        return pages
