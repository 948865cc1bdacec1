from __future__ import annotations

import logging
import threading
from datetime import datetime, time, timedelta
from typing import Any, Callable, List, Optional

import pytz

from .core.config import parse_time_string
from .core.errors import ConfigurationError
from .core.models import RunSummary, ScheduleConfig
from .store import as_utc, utc_now

LOGGER = logging.getLogger(__name__)


def ensure_store_reachable(store: Any) -> None:
    """Probe the store once; an unreachable store must keep the trigger disarmed."""
    ping = getattr(store, "ping", None)
    if ping is None:
        return
    try:
        ping()
    except Exception as exc:
        raise ConfigurationError(f"Task store is unreachable: {exc}") from exc


class SingleFlightRunner:
    """
    Guards ``dispatcher.run_once`` so that only one run is active at a time.

    Policies when a trigger arrives during an active run:
    - ``skip``: the trigger is dropped with a warning.
    - ``queue``: the trigger waits for the active run; only one waiter is kept,
      any further trigger is dropped.

    After ``shutdown`` every trigger is dropped, including one already queued.
    """

    def __init__(self, dispatcher: Any, policy: str = "skip"):
        if policy not in ("skip", "queue"):
            raise ValueError(f"Unknown overlap policy: {policy}")
        self.dispatcher = dispatcher
        self.policy = policy
        self.cancel_event = threading.Event()
        self._run_lock = threading.Lock()
        self._waiter_lock = threading.Lock()
        self._active = False
        self._stopping = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def stopping(self) -> bool:
        return self._stopping

    def trigger(self, now: Optional[datetime] = None, **kwargs: Any) -> Optional[RunSummary]:
        """
        Run now unless another run is active.

        Returns None when the trigger was dropped. An exception raised by the
        run propagates to the caller once the guard is released.
        """
        if self._stopping:
            LOGGER.warning("Reminder runner is shutting down, trigger skipped")
            return None
        if not self._run_lock.acquire(blocking=False):
            if self.policy == "skip":
                LOGGER.warning("Reminder run already in progress, trigger skipped")
                return None
            if not self._waiter_lock.acquire(blocking=False):
                LOGGER.warning("Reminder run already in progress and one trigger queued, trigger skipped")
                return None
            try:
                LOGGER.info("Reminder run in progress, trigger queued")
                self._run_lock.acquire()
            finally:
                self._waiter_lock.release()

        try:
            if self._stopping:
                LOGGER.warning("Reminder runner is shutting down, queued trigger skipped")
                return None
            self._active = True
            self.cancel_event.clear()
            return self.dispatcher.run_once(now=now, cancel_event=self.cancel_event, **kwargs)
        finally:
            self._active = False
            self._run_lock.release()

    def cancel(self) -> None:
        """Ask the active run to stop before its next dispatch."""
        self.cancel_event.set()

    def shutdown(self) -> None:
        """Cancel the active run and refuse every later trigger."""
        self._stopping = True
        self.cancel_event.set()

    def resume(self) -> None:
        self._stopping = False


class DailyTrigger:
    """Fires ``runner.trigger`` once per calendar day at a fixed local time."""

    def __init__(
        self,
        runner: SingleFlightRunner,
        schedule: ScheduleConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.runner = runner
        self.hour, self.minute = parse_time_string(schedule.time)
        self.tz = pytz.timezone(schedule.timezone)
        self.clock = clock or utc_now
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._workers: List[threading.Thread] = []
        self._workers_lock = threading.Lock()
        self._last_fire_at: Optional[datetime] = None

    @property
    def armed(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_fire_time(self, after: datetime) -> datetime:
        local_now = as_utc(after).astimezone(self.tz)
        fire_at = time(self.hour, self.minute)
        candidate = self.tz.localize(datetime.combine(local_now.date(), fire_at))
        if candidate <= local_now:
            candidate = self.tz.localize(datetime.combine(local_now.date() + timedelta(days=1), fire_at))
        return candidate.astimezone(pytz.UTC)

    def start(self) -> None:
        if self.armed:
            raise RuntimeError("Daily trigger is already armed")
        ensure_store_reachable(self.runner.dispatcher.task_store)

        self._stop.clear()
        self.runner.resume()
        self._thread = threading.Thread(target=self._loop, name="reminder-trigger", daemon=True)
        self._thread.start()
        LOGGER.info("Daily reminder trigger armed for %02d:%02d %s", self.hour, self.minute, self.tz.zone)

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Disarm, cancel the active run and wait for the timer and run threads."""
        self._stop.set()
        self.runner.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        with self._workers_lock:
            workers, self._workers = self._workers, []
        for worker in workers:
            worker.join(timeout=timeout)
            if worker.is_alive():
                LOGGER.warning("Reminder run thread %s did not finish within %ss", worker.name, timeout)

    def _loop(self) -> None:
        while not self._stop.is_set():
            now = as_utc(self.clock())
            reference = max(now, self._last_fire_at) if self._last_fire_at else now
            fire_at = self.next_fire_time(reference)
            delay = max((fire_at - now).total_seconds(), 0.0)
            LOGGER.info("Next reminder run at %s", fire_at.astimezone(self.tz).isoformat())
            if self._stop.wait(delay):
                break
            self._last_fire_at = fire_at
            self.fire()

    def fire(self) -> threading.Thread:
        # Runs off the timer thread so a slow run cannot delay the next trigger;
        # overlap is resolved by the runner's guard.
        worker = threading.Thread(target=self._run, name="reminder-run", daemon=True)
        with self._workers_lock:
            self._workers = [thread for thread in self._workers if thread.is_alive()]
            self._workers.append(worker)
        worker.start()
        return worker

    def _run(self) -> None:
        try:
            self.runner.trigger()
        except Exception:
            LOGGER.exception("Scheduled reminder run crashed")
