"""
Ownership of the displayed mode.

ModeSessionManager is the only writer of the current ModeSession. Each tick it
asks the pure scheduling functions what should be shown, commits the answer,
and hands immutable snapshots to subscribers.
"""

import datetime
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from mosque_display.modes import (
    DEFAULT_WINDOW_CONFIG,
    DisplayMode,
    ModeWindowConfig,
    PrayerName,
    PrayerSlot,
    can_transition,
    get_mode_duration,
    has_mode_expired,
    next_mode_boundary,
    should_transition_mode,
)

logger = logging.getLogger(__name__)

# Expiry is a strict inequality; wake one second after the nominal end.
EXPIRY_GRACE = datetime.timedelta(seconds=1)


@dataclass(frozen=True)
class ModeSession:
    mode: DisplayMode = DisplayMode.DEFAULT
    started_at: Optional[datetime.datetime] = None
    duration_seconds: int = 0
    active_prayer: Optional[PrayerName] = None
    previous_mode: DisplayMode = DisplayMode.DEFAULT
    reason: str = "initial"

    @property
    def expires_at(self) -> Optional[datetime.datetime]:
        if self.mode is DisplayMode.DEFAULT or self.started_at is None:
            return None
        return self.started_at + datetime.timedelta(seconds=self.duration_seconds)


class ModeSessionManager:
    def __init__(
        self,
        prayers: Sequence[PrayerSlot] = (),
        config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        self._prayers = tuple(prayers)
        self._config = config
        self._clock = clock or datetime.datetime.now
        self._lock = threading.Lock()
        self._session = ModeSession()
        self._subscribers: List[Callable] = []
        self._wake_hooks: List[Callable] = []

    @property
    def session(self) -> ModeSession:
        return self._session

    @property
    def prayers(self) -> tuple:
        return self._prayers

    @property
    def config(self) -> ModeWindowConfig:
        return self._config

    def now(self) -> datetime.datetime:
        return self._clock()

    def subscribe(self, callback: Callable[[ModeSession], None]) -> Callable[[], None]:
        """Register callback(session) for every committed change. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def add_wake_hook(self, hook: Callable[[bool], None]) -> Callable[[], None]:
        """
        Register hook(evaluate_now) for changes made outside tick().

        Schedulers use it to re-arm their timer: evaluate_now is True when the
        inputs changed (prayers or config) and False after a manual override,
        which should stand until the next wake-up. Returns a remove function.
        """
        with self._lock:
            self._wake_hooks.append(hook)

        def remove():
            with self._lock:
                if hook in self._wake_hooks:
                    self._wake_hooks.remove(hook)

        return remove

    def update_prayers(self, prayers: Sequence[PrayerSlot]) -> None:
        with self._lock:
            self._prayers = tuple(prayers)
            hooks = list(self._wake_hooks)
        logger.info("Prayer list updated: %s", ", ".join(
            f"{p.name.value} {p.time_of_day.strftime('%H:%M')}" for p in prayers
        ))
        self._wake(hooks, True)

    def update_config(self, config: ModeWindowConfig) -> None:
        with self._lock:
            self._config = config
            hooks = list(self._wake_hooks)
        logger.info("Mode window config updated: %s", config)
        self._wake(hooks, True)

    def tick(self, now: Optional[datetime.datetime] = None) -> ModeSession:
        """
        Evaluate once: commit a transition if the calculated mode differs from
        the shown one, then force DEFAULT if the shown mode outlived its
        duration. Returns the resulting snapshot.
        """
        if now is None:
            now = self.now()

        changes = []
        with self._lock:
            decision = should_transition_mode(
                self._session.mode, self._prayers, now, self._config
            )
            if decision.should_transition:
                changes.append(self._commit(decision.new_mode, decision.active_prayer, now, "scheduled"))

            if has_mode_expired(self._session.mode, self._session.started_at, now, self._config):
                logger.info(
                    "Mode %s expired after %ss",
                    self._session.mode.value,
                    self._session.duration_seconds,
                )
                changes.append(self._commit(DisplayMode.DEFAULT, None, now, "expired"))

            session = self._session
            subscribers = list(self._subscribers)

        for snapshot in changes:
            self._publish(subscribers, snapshot)
        return session

    def set_mode(
        self,
        mode: DisplayMode,
        prayer: Optional[PrayerName] = None,
        now: Optional[datetime.datetime] = None,
    ) -> ModeSession:
        """Manual override; the next tick re-evaluates as usual."""
        if now is None:
            now = self.now()
        with self._lock:
            session = self._commit(mode, prayer, now, "manual")
            subscribers = list(self._subscribers)
            hooks = list(self._wake_hooks)
        self._publish(subscribers, session)
        self._wake(hooks, False)
        return session

    def force_default(self) -> ModeSession:
        with self._lock:
            session = ModeSession(reason="manual")
            self._session = session
            subscribers = list(self._subscribers)
            hooks = list(self._wake_hooks)
        logger.info("Display forced back to default")
        self._publish(subscribers, session)
        self._wake(hooks, False)
        return session

    def next_wakeup(self, now: Optional[datetime.datetime] = None) -> Optional[datetime.datetime]:
        """
        Earliest instant worth evaluating at: the next point where the
        calculated mode can change, or just past the current session's
        expiry, whichever is sooner.
        """
        if now is None:
            now = self.now()
        with self._lock:
            boundary = next_mode_boundary(self._prayers, now, self._config)
            expires_at = self._session.expires_at

        candidates = []
        if boundary is not None:
            candidates.append(boundary)
        if expires_at is not None:
            candidates.append(expires_at + EXPIRY_GRACE)
        return min(candidates) if candidates else None

    def _commit(self, mode, prayer, now, reason) -> ModeSession:
        # Caller holds self._lock.
        previous = self._session.mode
        if not can_transition(previous, mode) and reason != "manual":
            logger.warning("Unusual mode transition %s -> %s", previous.value, mode.value)

        if mode is DisplayMode.DEFAULT:
            session = ModeSession(previous_mode=previous, reason=reason)
        else:
            session = ModeSession(
                mode=mode,
                started_at=now,
                duration_seconds=get_mode_duration(mode, self._config),
                active_prayer=prayer,
                previous_mode=previous,
                reason=reason,
            )
        self._session = session
        logger.info(
            "Display mode %s -> %s (%s%s)",
            previous.value,
            mode.value,
            reason,
            f", {prayer.value}" if prayer else "",
        )
        return session

    def _publish(self, subscribers, session: ModeSession) -> None:
        for callback in subscribers:
            try:
                callback(session)
            except Exception:
                logger.exception("Mode subscriber %r failed", callback)

    def _wake(self, hooks, evaluate_now: bool) -> None:
        for hook in hooks:
            try:
                hook(evaluate_now)
            except Exception:
                logger.exception("Wake hook %r failed", hook)
