# Background sweeper that releases unpaid holds once the configured hold window has passed.
# Runs on a daemon thread started with the API; all mutation still goes through the orchestrator.
from __future__ import annotations

import logging
import threading

from .orchestrator import BookingOrchestrator

logger = logging.getLogger("booking_engine.sweeper")


def sweep_expired_bookings(orchestrator: BookingOrchestrator) -> int:
    """
    Cancel pending bookings whose hold expired (cancel_reason='expired').

    Idempotent across repeated runs. Returns the number of bookings released.
    """
    released = orchestrator.release_expired_holds()
    if released:
        logger.info("sweeper.released", extra={"count": released})
    return released


def start_expiry_sweeper(orchestrator: BookingOrchestrator, interval_seconds: int, stop: threading.Event) -> threading.Thread:
    """
    Launch a daemon thread that calls sweep_expired_bookings() every `interval_seconds`.

    Errors are logged and the sweep is retried on the next interval; setting `stop` ends the loop.
    """
    def _loop() -> None:
        while not stop.is_set():
            try:
                sweep_expired_bookings(orchestrator)
            except Exception:
                logger.exception("sweeper.failed")
            stop.wait(interval_seconds)

    t = threading.Thread(target=_loop, name="booking-expiry-sweeper", daemon=True)
    t.start()
    return t
