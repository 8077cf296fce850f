"""Fixed-interval trigger for pipeline cycles, never running two at once."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from tenderwatch.utils.logging import get_logger

LOGGER = get_logger(__name__)

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440


def validate_interval(minutes: int) -> int:
    if not MIN_INTERVAL_MINUTES <= minutes <= MAX_INTERVAL_MINUTES:
        raise ValueError(
            f"interval must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes, got {minutes}"
        )
    return minutes


class Scheduler:
    """
    Runs `cycle` once on start() and then every `interval_minutes`.

    The running flag is set under a lock before a cycle starts and cleared when
    it ends, whatever the outcome. A trigger that finds the flag set is skipped
    and logged. stop() prevents further triggers; an in-flight cycle finishes.
    """

    def __init__(
        self,
        cycle: Callable[[], Any],
        interval_minutes: int,
        interval_s: Optional[float] = None,
    ) -> None:
        self.cycle = cycle
        self.interval_minutes = validate_interval(interval_minutes)
        # interval_s overrides the minute interval (tests)
        self.interval_s = interval_s if interval_s is not None else interval_minutes * 60.0

        self.last_summary: Any = None
        self.cycles_run = 0
        self.cycles_skipped = 0

        self._lock = threading.Lock()
        self._running = False
        self._stop = threading.Event()
        self._timer: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def started(self) -> bool:
        return self._timer is not None and self._timer.is_alive()

    def _acquire(self) -> bool:
        with self._lock:
            if self._running:
                self.cycles_skipped += 1
                LOGGER.warning("previous cycle still running, trigger skipped")
                return False
            self._running = True
            return True

    def _execute(self) -> None:
        try:
            self.last_summary = self.cycle()
            self.cycles_run += 1
        except Exception:
            LOGGER.exception("cycle raised; next trigger proceeds")
        finally:
            with self._lock:
                self._running = False

    def run_now(self) -> bool:
        """Run one guarded cycle on the calling thread. False if one is already running."""
        if not self._acquire():
            return False
        self._execute()
        return True

    def fire(self) -> bool:
        """Trigger entry point: start a cycle in the background unless one is running."""
        if not self._acquire():
            return False
        self._worker = threading.Thread(target=self._execute, name="tenderwatch-cycle", daemon=True)
        self._worker.start()
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_s):
            self.fire()

    def start(self) -> None:
        if self.started:
            return
        self._stop.clear()
        LOGGER.info("scheduler started", extra={"interval_minutes": self.interval_minutes})
        self.fire()
        self._timer = threading.Thread(target=self._loop, name="tenderwatch-scheduler", daemon=True)
        self._timer.start()

    def stop(self) -> None:
        self._stop.set()
        if self._timer is not None:
            self._timer.join()
            self._timer = None
        LOGGER.info("scheduler stopped")

    def wait_for_cycle(self, timeout: Optional[float] = None) -> bool:
        """Block until the in-flight cycle (if any) is done. True when idle."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return not self.running

    def wait_stopped(self) -> None:
        """Block the caller until stop() is called (CLI foreground mode)."""
        while not self._stop.wait(1.0):
            pass
