from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class JobSchedule:
    enabled: bool = False
    interval_seconds: float = 900.0
    run_on_start: bool = False


class PeriodicJob:
    """
    Runs `fn` every `interval_seconds` on a daemon thread.

    At most one run is in flight per job: a tick (or `run_now`) that arrives
    while a run is still going is skipped and reported as None.
    """

    def __init__(self, *, name: str, fn: Callable[[], Any], schedule: JobSchedule, logger: Optional[logging.Logger] = None):
        self.name = name
        self.fn = fn
        self.schedule = schedule
        self.logger = logger or logging.getLogger("gdprkv.jobs")
        self._stop = threading.Event()
        self._running = threading.Lock()
        self._thread = threading.Thread(target=self._loop, name=f"job-{name}", daemon=True)
        self.runs = 0
        self.skipped = 0
        self.last_result: Any = None
        self.last_error: Optional[str] = None

    def start(self) -> None:
        if not self.schedule.enabled:
            return
        if self._thread.is_alive():
            return
        self._stop.clear()
        self._thread.start()
        self.logger.info(f"job {self.name} scheduled every {self.schedule.interval_seconds}s")

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout=2.0)

    def is_running(self) -> bool:
        return self._running.locked()

    def run_now(self) -> Any:
        if not self._running.acquire(blocking=False):
            self.skipped += 1
            self.logger.warning(f"job {self.name} already running; skipping overlapping run")
            return None
        try:
            result = self.fn()
            self.runs += 1
            self.last_result = result
            self.last_error = None
            return result
        finally:
            self._running.release()

    def _loop(self) -> None:
        interval = max(0.01, float(self.schedule.interval_seconds))
        if not self.schedule.run_on_start:
            if self._stop.wait(interval):
                return
        while not self._stop.is_set():
            try:
                self.run_now()
            except Exception as e:  # noqa: BLE001
                self.last_error = str(e)
                self.logger.warning(f"job {self.name} failed: {e}")
            self._stop.wait(interval)
