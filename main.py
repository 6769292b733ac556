import argparse
import logging
import os
import signal
import sys
import threading
from logging.handlers import TimedRotatingFileHandler

from slotbot.config import load_settings
from slotbot.worker import run_check_once, run_forever

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _setup_logging(level: str = "INFO", directory: str = "") -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if directory:
        os.makedirs(directory, exist_ok=True)
        # New file every day, keep a week's worth.
        handlers.append(
            TimedRotatingFileHandler(
                os.path.join(directory, "slotbot.log"),
                when="midnight",
                backupCount=7,
                encoding="utf-8",
            )
        )

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, frame):
        logging.getLogger(__name__).info("Received signal %s, finishing the current cycle...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main() -> int:
    parser = argparse.ArgumentParser(description="SlotBot: new event slot watcher")
    parser.add_argument("--once", action="store_true", help="Run single check and exit")
    args = parser.parse_args()

    settings = load_settings()
    _setup_logging(settings.log_level, settings.log_directory)

    logger = logging.getLogger(__name__)
    logger.info(
        "SlotBot starting (mode=%s, interval=%ss, events_file=%s)",
        "once" if args.once else "forever",
        settings.fetch_interval_seconds,
        settings.events_file,
    )

    if args.once:
        outcome = run_check_once(settings)
        logger.info("Single check finished (ok=%s, new=%d)", outcome.ok, len(outcome.new_events))
        return 0

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    run_forever(settings, stop_event)
    logger.info("SlotBot stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
