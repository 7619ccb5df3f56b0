"""Runs the poll cycle on a fixed interval until a stop is requested."""

import logging
import threading
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class PollScheduler:
    """Interval scheduler for the poll cycle.

    At most one cycle runs at a time and late ticks are coalesced. A stop
    request prevents further ticks from starting; a cycle already in
    progress runs to completion before run_forever() returns.
    """

    def __init__(self, job, interval: float, stop_event: threading.Event | None = None):
        self._job = job
        self._interval = interval
        self._stop = stop_event or threading.Event()
        self._scheduler = BackgroundScheduler()
        self._started = False

    @property
    def stop_event(self) -> threading.Event:
        return self._stop

    def _tick(self) -> None:
        if self._stop.is_set():
            return
        try:
            self._job()
        except Exception:
            logger.exception("Poll cycle failed")

    def start(self) -> None:
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=self._interval,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
            id="poll_cycle",
        )
        self._scheduler.start()
        self._started = True
        logger.debug("Scheduler started, interval=%ss", self._interval)

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        """Start ticking and block until stop() is called."""
        self.start()
        try:
            while not self._stop.wait(1.0):
                pass
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=True)
            self._started = False
            logger.debug("Scheduler stopped")
