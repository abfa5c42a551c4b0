"""Drivers that call ModeSessionManager.tick on a timer."""

import logging
import threading
from typing import Optional

from mosque_display.session import ModeSessionManager
from mosque_display.windows import seconds_between

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_SLEEP = 3600.0
MIN_SLEEP = 0.05


class SchedulerHandle:
    """Returned by start(); cancel() stops the scheduler. Usable as a context manager."""

    def __init__(self, scheduler: "BaseScheduler"):
        self._scheduler = scheduler

    @property
    def active(self) -> bool:
        return self._scheduler.running

    def cancel(self) -> None:
        self._scheduler.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
        return False


class BaseScheduler:
    """Tick, then re-arm a daemon threading.Timer for the next delay."""

    # Re-arm when the manager reports a change made outside tick().
    follows_changes = False

    def __init__(self, manager: ModeSessionManager):
        self.manager = manager
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._running = False
        self._remove_hook = None

    @property
    def running(self) -> bool:
        return self._running

    def next_delay(self) -> float:
        raise NotImplementedError

    def start(self) -> SchedulerHandle:
        with self._lock:
            if self._running:
                raise RuntimeError(f"{type(self).__name__} already started")
            self._running = True
        if self.follows_changes:
            self._remove_hook = self.manager.add_wake_hook(self.reschedule)
        logger.debug("%s started", type(self).__name__)
        self._run()
        return SchedulerHandle(self)

    def stop(self) -> None:
        with self._lock:
            was_running = self._running
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            remove_hook, self._remove_hook = self._remove_hook, None
        if remove_hook is not None:
            remove_hook()
        if was_running:
            logger.debug("%s cancelled", type(self).__name__)

    def _run(self) -> None:
        if not self._running:
            return
        try:
            self.manager.tick()
        except Exception:
            logger.exception("Scheduled mode tick failed")
        self._arm(self.next_delay())

    def reschedule(self, evaluate_now: bool = False) -> None:
        """Replace the pending timer: tick almost at once, or at next_delay()."""
        if not self._running:
            return
        self._arm(MIN_SLEEP if evaluate_now else self.next_delay())

    def _arm(self, delay: float) -> None:
        with self._lock:
            if not self._running:
                return
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(delay, self._run)
            timer.daemon = True
            self._timer = timer
            timer.start()


class PollingScheduler(BaseScheduler):
    """Re-evaluate at a fixed interval."""

    def __init__(self, manager: ModeSessionManager, interval_seconds: float = DEFAULT_POLL_INTERVAL):
        super().__init__(manager)
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds

    def next_delay(self) -> float:
        return self.interval_seconds


class TransitionScheduler(BaseScheduler):
    """
    Sleep until the next interesting instant (a mode boundary or just past the
    session's expiry) instead of polling. Manual overrides and new prayers or
    config re-arm the timer through the manager's wake hook. Sleeps are capped
    by max_sleep_seconds so a new day is picked up eventually.
    """

    follows_changes = True

    def __init__(self, manager: ModeSessionManager, max_sleep_seconds: float = DEFAULT_MAX_SLEEP):
        super().__init__(manager)
        self.max_sleep_seconds = max_sleep_seconds

    def next_delay(self) -> float:
        now = self.manager.now()
        wake = self.manager.next_wakeup(now)
        if wake is None:
            return self.max_sleep_seconds
        return min(max(seconds_between(now, wake), MIN_SLEEP), self.max_sleep_seconds)


SCHEDULERS = {
    "polling": PollingScheduler,
    "event": TransitionScheduler,
}


def create_scheduler(kind: str, manager: ModeSessionManager, **kwargs) -> BaseScheduler:
    """Build a scheduler by strategy name: "polling" or "event"."""
    try:
        cls = SCHEDULERS[kind]
    except KeyError:
        raise ValueError(f"Unknown scheduler strategy: {kind}") from None
    return cls(manager, **kwargs)
