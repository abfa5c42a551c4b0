"""Tests for the session module."""

import datetime
import unittest
from unittest.mock import MagicMock

from mosque_display.modes import (
    DisplayMode,
    ModeWindowConfig,
    PrayerName,
    PrayerSlot,
    calculate_display_mode,
)
from mosque_display.session import ModeSession, ModeSessionManager

PRAYERS = [
    PrayerSlot(PrayerName.FAJR, datetime.time(5, 0)),
    PrayerSlot(PrayerName.DHUHR, datetime.time(12, 30)),
    PrayerSlot(PrayerName.ASR, datetime.time(15, 45)),
    PrayerSlot(PrayerName.MAGHRIB, datetime.time(18, 30)),
    PrayerSlot(PrayerName.ISHA, datetime.time(19, 45)),
]

CONFIG = ModeWindowConfig(2, 3, 4)


def at(hour, minute, second=0):
    return datetime.datetime(2025, 3, 1, hour, minute, second)


class TestModeSessionManager(unittest.TestCase):
    def setUp(self):
        self.manager = ModeSessionManager(PRAYERS, CONFIG)

    def test_starts_in_default(self):
        session = self.manager.session
        self.assertEqual(session.mode, DisplayMode.DEFAULT)
        self.assertIsNone(session.started_at)
        self.assertIsNone(session.active_prayer)

    def test_tick_commits_transition(self):
        session = self.manager.tick(at(12, 29))
        self.assertEqual(session.mode, DisplayMode.PRE_PRAYER)
        self.assertEqual(session.active_prayer, PrayerName.DHUHR)
        self.assertEqual(session.started_at, at(12, 29))
        self.assertEqual(session.duration_seconds, 120)
        self.assertEqual(session.previous_mode, DisplayMode.DEFAULT)

    def test_full_prayer_cycle(self):
        seen = []
        self.manager.subscribe(seen.append)
        now = at(12, 27)
        while now <= at(12, 40):
            self.manager.tick(now)
            now += datetime.timedelta(seconds=1)
        self.assertEqual(
            [s.mode for s in seen],
            [DisplayMode.PRE_PRAYER, DisplayMode.ADHAN, DisplayMode.POST_PRAYER, DisplayMode.DEFAULT],
        )
        self.assertEqual(seen[1].previous_mode, DisplayMode.PRE_PRAYER)
        self.assertEqual(seen[-1].previous_mode, DisplayMode.POST_PRAYER)
        self.assertTrue(all(s.reason == "scheduled" for s in seen))

    def test_same_mode_does_not_republish(self):
        callback = MagicMock()
        self.manager.subscribe(callback)
        self.manager.tick(at(12, 30))
        self.manager.tick(at(12, 31))
        self.manager.tick(at(12, 32))
        callback.assert_called_once()

    def test_expiration_resets_stuck_mode(self):
        self.manager.tick(at(12, 28))
        # Shrinking the window leaves 12:29:30 inside it but the session is now too old
        self.manager.update_config(ModeWindowConfig(1, 3, 4))
        session = self.manager.tick(at(12, 29, 30))
        self.assertEqual(session.mode, DisplayMode.DEFAULT)
        self.assertEqual(session.reason, "expired")
        self.assertEqual(session.previous_mode, DisplayMode.PRE_PRAYER)

    def test_manual_override_and_force_default(self):
        callback = MagicMock()
        self.manager.subscribe(callback)
        session = self.manager.set_mode(DisplayMode.ADHAN, PrayerName.ASR, now=at(9, 0))
        self.assertEqual(session.mode, DisplayMode.ADHAN)
        self.assertEqual(session.reason, "manual")
        self.assertEqual(self.manager.session.active_prayer, PrayerName.ASR)

        session = self.manager.force_default()
        self.assertEqual(session, ModeSession(reason="manual"))
        self.assertEqual(callback.call_count, 2)

    def test_next_tick_overrides_manual_mode(self):
        self.manager.set_mode(DisplayMode.ADHAN, PrayerName.ASR, now=at(9, 0))
        session = self.manager.tick(at(9, 0, 1))
        self.assertEqual(session.mode, DisplayMode.DEFAULT)

    def test_unsubscribe(self):
        callback = MagicMock()
        unsubscribe = self.manager.subscribe(callback)
        unsubscribe()
        self.manager.tick(at(12, 30))
        callback.assert_not_called()

    def test_failing_subscriber_does_not_stop_others(self):
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        self.manager.subscribe(broken)
        self.manager.subscribe(healthy)
        with self.assertLogs("mosque_display.session", level="ERROR"):
            self.manager.tick(at(12, 30))
        healthy.assert_called_once()
        self.assertEqual(self.manager.session.mode, DisplayMode.ADHAN)

    def test_uses_clock_when_now_omitted(self):
        manager = ModeSessionManager(PRAYERS, CONFIG, clock=lambda: at(18, 31))
        session = manager.tick()
        self.assertEqual(session.mode, DisplayMode.ADHAN)
        self.assertEqual(session.started_at, at(18, 31))

    def test_update_prayers(self):
        manager = ModeSessionManager([], CONFIG)
        self.assertEqual(manager.tick(at(12, 30)).mode, DisplayMode.DEFAULT)
        manager.update_prayers(PRAYERS)
        self.assertEqual(manager.tick(at(12, 30)).mode, DisplayMode.ADHAN)


class TestNextWakeup(unittest.TestCase):
    def test_forecast_when_default(self):
        manager = ModeSessionManager(PRAYERS, CONFIG)
        manager.tick(at(13, 0))
        self.assertEqual(manager.next_wakeup(at(13, 0)), at(15, 43))

    def test_wakes_just_past_adhan_end(self):
        manager = ModeSessionManager(PRAYERS, CONFIG)
        manager.tick(at(12, 30))
        # The adhan window ends at 12:33:00 inclusive; post-prayer starts a second later
        self.assertEqual(manager.next_wakeup(at(12, 30)), at(12, 33, 1))

    def test_none_at_end_of_day(self):
        manager = ModeSessionManager(PRAYERS, CONFIG)
        manager.tick(at(22, 0))
        self.assertIsNone(manager.next_wakeup(at(22, 0)))

    def test_manual_override_wakes_at_its_expiry(self):
        manager = ModeSessionManager(PRAYERS, CONFIG)
        manager.set_mode(DisplayMode.ADHAN, PrayerName.DHUHR, now=at(9, 0))
        self.assertEqual(manager.next_wakeup(at(9, 0)), at(9, 3, 1))

    def test_event_loop_follows_calculator_from_mid_adhan(self):
        manager = ModeSessionManager(PRAYERS, CONFIG)
        now = at(12, 31)
        manager.tick(now)
        wake = manager.next_wakeup(now)
        while now <= at(12, 40):
            if wake is not None and now >= wake:
                manager.tick(now)
                wake = manager.next_wakeup(now)
            expected = calculate_display_mode(PRAYERS, now, CONFIG).mode
            self.assertEqual(manager.session.mode, expected, now)
            now += datetime.timedelta(seconds=1)

    def test_event_loop_follows_calculator_after_config_change(self):
        manager = ModeSessionManager(PRAYERS, CONFIG)
        now = at(12, 30)
        manager.tick(now)
        manager.update_config(ModeWindowConfig(2, 1, 2))
        wake = manager.next_wakeup(now)
        while now <= at(12, 40):
            if wake is not None and now >= wake:
                manager.tick(now)
                wake = manager.next_wakeup(now)
            expected = calculate_display_mode(PRAYERS, now, manager.config).mode
            self.assertEqual(manager.session.mode, expected, now)
            now += datetime.timedelta(seconds=1)


class TestWakeHooks(unittest.TestCase):
    def setUp(self):
        self.manager = ModeSessionManager(PRAYERS, CONFIG)
        self.hook = MagicMock()
        self.remove = self.manager.add_wake_hook(self.hook)

    def test_inputs_changed_asks_for_prompt_evaluation(self):
        self.manager.update_prayers(PRAYERS[:2])
        self.manager.update_config(ModeWindowConfig(3, 3, 4))
        self.assertEqual([c.args for c in self.hook.call_args_list], [(True,), (True,)])

    def test_manual_override_keeps_schedule(self):
        self.manager.set_mode(DisplayMode.ADHAN, PrayerName.ASR, now=at(9, 0))
        self.manager.force_default()
        self.assertEqual([c.args for c in self.hook.call_args_list], [(False,), (False,)])

    def test_tick_does_not_wake(self):
        self.manager.tick(at(12, 30))
        self.hook.assert_not_called()

    def test_remove(self):
        self.remove()
        self.manager.force_default()
        self.hook.assert_not_called()

    def test_failing_hook_is_logged(self):
        self.hook.side_effect = RuntimeError("boom")
        with self.assertLogs("mosque_display.session", level="ERROR"):
            self.manager.force_default()
        self.assertEqual(self.manager.session.reason, "manual")


if __name__ == "__main__":
    unittest.main()
