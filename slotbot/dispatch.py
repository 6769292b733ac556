from __future__ import annotations

import enum
import logging
from typing import Callable

from slotbot.composer import Message
from slotbot.pushover_notifier import PushoverResult

logger = logging.getLogger(__name__)


class DispatchOutcome(enum.Enum):
    DELIVERED = "delivered"
    RATE_LIMITED = "rate_limited"
    INVALID_CREDENTIALS = "invalid_credentials"
    TRANSPORT_ERROR = "transport_error"
    MALFORMED_REQUEST = "malformed_request"
    # Credentials were rejected earlier; nothing was sent.
    SUPPRESSED = "suppressed"


def _errors(result: PushoverResult) -> str:
    errors = result.payload.get("errors")
    if isinstance(errors, list) and errors:
        return "; ".join(str(e) for e in errors)
    return result.error or f"HTTP {result.status_code}"


def classify(result: PushoverResult) -> DispatchOutcome:
    """Map a raw Pushover response onto what the loop should do about it."""
    status = result.status_code
    if status is None:
        return DispatchOutcome.TRANSPORT_ERROR

    if 200 <= status < 300:
        if result.payload.get("status") == 1:
            return DispatchOutcome.DELIVERED
        return DispatchOutcome.TRANSPORT_ERROR

    if status == 429:
        return DispatchOutcome.RATE_LIMITED

    if status in (401, 403):
        return DispatchOutcome.INVALID_CREDENTIALS

    if 400 <= status < 500:
        # Pushover flags the offending parameter with the value "invalid".
        if result.payload.get("token") == "invalid" or result.payload.get("user") == "invalid":
            return DispatchOutcome.INVALID_CREDENTIALS
        return DispatchOutcome.MALFORMED_REQUEST

    return DispatchOutcome.TRANSPORT_ERROR


class Dispatcher:
    """Sends each message once and remembers if the credentials were refused.

    After the first INVALID_CREDENTIALS nothing more is sent until the process
    restarts; detection and the events file keep going regardless.
    """

    def __init__(self, send: Callable[[Message], PushoverResult]):
        self._send = send
        self.suppressed = False

    def dispatch(self, message: Message) -> DispatchOutcome:
        if self.suppressed:
            logger.warning("Notifications suppressed after rejected credentials; not sending")
            return DispatchOutcome.SUPPRESSED

        result = self._send(message)
        outcome = classify(result)

        if outcome is DispatchOutcome.DELIVERED:
            logger.info("Push notification delivered (request=%s)", result.payload.get("request"))
        elif outcome is DispatchOutcome.RATE_LIMITED:
            logger.warning("Pushover rate limit reached, notification dropped (%s)", _errors(result))
        elif outcome is DispatchOutcome.INVALID_CREDENTIALS:
            logger.critical(
                "Pushover rejected the API/group key (%s). Notifications are disabled until restart.",
                _errors(result),
            )
            self.suppressed = True
        elif outcome is DispatchOutcome.MALFORMED_REQUEST:
            logger.error("Pushover rejected the request as malformed (%s)", _errors(result))
        else:
            logger.warning("Failed to send push notification (%s)", _errors(result))

        return outcome
