from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Sequence

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from slotbot.composer import Message, compose
from slotbot.config import Settings
from slotbot.differ import diff
from slotbot.dispatch import DispatchOutcome, Dispatcher
from slotbot.domain import Event, ExtractError, FetchError, PersistenceError, RawEventRecord
from slotbot.halbooking_provider import HalbookingClient, extract_records
from slotbot.normalize import normalize_records
from slotbot.pushover_notifier import PushoverResult, send_pushover_message
from slotbot.state_file import EventStore

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Sequence[str]]
ExtractFn = Callable[[Sequence[str]], Sequence[RawEventRecord]]


@dataclass
class CycleOutcome:
    failed_stage: str | None = None
    fetched: int = 0
    dropped: int = 0
    new_events: list[Event] = field(default_factory=list)
    seeded: bool = False
    dispatch: DispatchOutcome | None = None
    persisted: bool = False

    @property
    def ok(self) -> bool:
        return self.failed_stage is None


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    # Type and message only, no traceback between attempts.
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.info("Fetch attempt %s: start", retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        reason = _short_exc(retry_state)
        if reason:
            logger.warning("Fetch attempt %s: failed (%s)", retry_state.attempt_number, reason)
        else:
            logger.warning("Fetch attempt %s: failed", retry_state.attempt_number)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    next_attempt = retry_state.attempt_number + 1

    if sleep_seconds is None:
        logger.info("Waiting before the next fetch attempt...")
        return

    logger.info("Fetch attempt %s in %.0f s", next_attempt, sleep_seconds)


def _fetch_with_retry(fetch: FetchFn, settings: Settings) -> list[str]:
    decorated = retry(
        stop=stop_after_attempt(settings.fetch_retry_attempts),
        wait=wait_exponential(multiplier=2, min=2, max=4),
        retry=retry_if_exception_type(FetchError),
        before=_log_before_attempt,
        after=_log_after_attempt,
        before_sleep=_log_before_sleep,
        reraise=True,
    )(fetch)

    return list(decorated())


def run_cycle(
    store: EventStore,
    *,
    fetch: FetchFn,
    extract: ExtractFn,
    dispatcher: Dispatcher,
    settings: Settings,
) -> CycleOutcome:
    """One fetch, extract, diff, notify, persist pass over ``store``.

    Failures are caught at the stage that raised them and recorded in the
    returned outcome. A failed fetch or extract leaves the store untouched
    and skips the persist.
    """
    outcome = CycleOutcome()

    try:
        pages = _fetch_with_retry(fetch, settings)
    except FetchError as e:
        logger.error("Fetching events failed, skipping this cycle (%s)", e)
        outcome.failed_stage = "fetch"
        return outcome
    except Exception as e:
        logger.error("Fetching events failed unexpectedly (%s: %s)", type(e).__name__, e, exc_info=True)
        outcome.failed_stage = "fetch"
        return outcome

    try:
        records = extract(pages)
    except ExtractError as e:
        logger.error("Reading the event list failed, skipping this cycle (%s)", e)
        outcome.failed_stage = "extract"
        return outcome
    except Exception as e:
        logger.error("Reading the event list failed unexpectedly (%s: %s)", type(e).__name__, e, exc_info=True)
        outcome.failed_stage = "extract"
        return outcome

    events, errors = normalize_records(records)
    outcome.fetched = len(events)
    outcome.dropped = len(errors)
    if records and not events:
        logger.error("None of the %d rows on the event list could be read, skipping this cycle", len(records))
        outcome.failed_stage = "extract"
        return outcome

    new_events = diff(store.ids(), events)
    outcome.new_events = new_events
    logger.info(
        "Events: fetched=%d dropped=%d known=%d new=%d",
        len(events),
        len(errors),
        len(store),
        len(new_events),
    )

    if store.fresh and settings.seed_on_first_run:
        logger.info("First run: recording %d events without notifying", len(events))
        outcome.seeded = True
    elif new_events:
        try:
            outcome.dispatch = dispatcher.dispatch(compose(new_events))
        except Exception as e:
            logger.error("Sending push notification failed (%s: %s)", type(e).__name__, e, exc_info=True)
            outcome.dispatch = DispatchOutcome.TRANSPORT_ERROR
    else:
        logger.info("There are no new events.")

    store.merge(events)
    store.fresh = False

    try:
        store.persist()
        outcome.persisted = True
        logger.info("Events saved to %s", store.path)
    except PersistenceError as e:
        logger.error("%s; keeping events in memory only", e)

    return outcome


def build_dispatcher(settings: Settings) -> Dispatcher:
    def _send(message: Message) -> PushoverResult:
        return send_pushover_message(
            api_key=settings.pushover_api_key,
            group_key=settings.pushover_group_key,
            message=message,
            timeout_seconds=settings.http_timeout_seconds,
        )

    return Dispatcher(_send)


def build_fetcher(settings: Settings) -> FetchFn:
    client = HalbookingClient(
        base_url=settings.listing_url,
        timeout_seconds=settings.http_timeout_seconds,
        max_pages=settings.max_pages,
    )
    return client.fetch


def run_check_once(
    settings: Settings,
    *,
    fetch: FetchFn | None = None,
    extract: ExtractFn = extract_records,
    dispatcher: Dispatcher | None = None,
) -> CycleOutcome:
    store = EventStore.load(settings.events_file)
    return run_cycle(
        store,
        fetch=fetch or build_fetcher(settings),
        extract=extract,
        dispatcher=dispatcher or build_dispatcher(settings),
        settings=settings,
    )


def run_forever(
    settings: Settings,
    stop_event: threading.Event,
    *,
    fetch: FetchFn | None = None,
    extract: ExtractFn = extract_records,
    dispatcher: Dispatcher | None = None,
) -> None:
    """Poll until ``stop_event`` is set.

    The event is only looked at between cycles, so a cycle that has started
    always gets to write the events file. Setting it cuts the sleep short.
    """
    fetch = fetch or build_fetcher(settings)
    dispatcher = dispatcher or build_dispatcher(settings)
    store = EventStore.load(settings.events_file)

    logger.info("Worker started. Interval=%ss", settings.fetch_interval_seconds)
    while not stop_event.is_set():
        try:
            run_cycle(store, fetch=fetch, extract=extract, dispatcher=dispatcher, settings=settings)
        except Exception as e:
            logger.error("Cycle failed in run_forever (%s: %s)", type(e).__name__, e, exc_info=True)

        if stop_event.wait(settings.fetch_interval_seconds):
            break

    logger.info("Stop requested, shutting down")
