"""Tests for the scheduler module."""

import datetime
import threading
import unittest
from unittest.mock import MagicMock, patch

from mosque_display.modes import DisplayMode, ModeWindowConfig, PrayerName, PrayerSlot
from mosque_display.scheduler import (
    MIN_SLEEP,
    PollingScheduler,
    TransitionScheduler,
    create_scheduler,
)
from mosque_display.session import ModeSessionManager


def at(hour, minute, second=0):
    return datetime.datetime(2025, 3, 1, hour, minute, second)


class TestPollingScheduler(unittest.TestCase):
    def test_start_ticks_and_arms_timer(self):
        manager = MagicMock()
        with patch("mosque_display.scheduler.threading.Timer") as mock_timer_cls:
            mock_timer = MagicMock()
            mock_timer_cls.return_value = mock_timer
            scheduler = PollingScheduler(manager, interval_seconds=1.0)
            handle = scheduler.start()

        manager.tick.assert_called_once()
        mock_timer_cls.assert_called_once_with(1.0, scheduler._run)
        self.assertTrue(mock_timer.daemon)
        mock_timer.start.assert_called_once()
        self.assertTrue(handle.active)

    def test_cancel_stops_pending_timer(self):
        manager = MagicMock()
        with patch("mosque_display.scheduler.threading.Timer") as mock_timer_cls:
            mock_timer = MagicMock()
            mock_timer_cls.return_value = mock_timer
            scheduler = PollingScheduler(manager)
            handle = scheduler.start()
            handle.cancel()
            scheduler._run()

        mock_timer.cancel.assert_called_once()
        self.assertFalse(handle.active)
        manager.tick.assert_called_once()

    def test_handle_as_context_manager(self):
        with patch("mosque_display.scheduler.threading.Timer"):
            scheduler = PollingScheduler(MagicMock())
            with scheduler.start() as handle:
                self.assertTrue(handle.active)
        self.assertFalse(scheduler.running)

    def test_cannot_start_twice(self):
        with patch("mosque_display.scheduler.threading.Timer"):
            scheduler = PollingScheduler(MagicMock())
            scheduler.start()
            with self.assertRaises(RuntimeError):
                scheduler.start()
            scheduler.stop()

    def test_failed_tick_is_logged_and_rearmed(self):
        manager = MagicMock()
        manager.tick.side_effect = RuntimeError("bad prayer list")
        with patch("mosque_display.scheduler.threading.Timer") as mock_timer_cls:
            scheduler = PollingScheduler(manager)
            with self.assertLogs("mosque_display.scheduler", level="ERROR"):
                scheduler.start()
            mock_timer_cls.assert_called_once()
            scheduler.stop()

    def test_rejects_non_positive_interval(self):
        with self.assertRaises(ValueError):
            PollingScheduler(MagicMock(), interval_seconds=0)

    def test_real_timer_keeps_ticking(self):
        ticked = threading.Event()
        manager = MagicMock()
        manager.tick.side_effect = lambda: ticked.set() if manager.tick.call_count >= 3 else None
        handle = PollingScheduler(manager, interval_seconds=0.01).start()
        try:
            self.assertTrue(ticked.wait(5))
        finally:
            handle.cancel()


class TestTransitionScheduler(unittest.TestCase):
    def _manager(self, now, wake):
        manager = MagicMock()
        manager.now.return_value = now
        manager.next_wakeup.return_value = wake
        return manager

    def test_sleeps_until_next_wakeup(self):
        scheduler = TransitionScheduler(self._manager(at(12, 29), at(12, 30)))
        self.assertEqual(scheduler.next_delay(), 60)

    def test_sleep_is_capped(self):
        scheduler = TransitionScheduler(self._manager(at(6, 0), at(12, 28)), max_sleep_seconds=3600)
        self.assertEqual(scheduler.next_delay(), 3600)

    def test_no_wakeup_uses_max_sleep(self):
        scheduler = TransitionScheduler(self._manager(at(22, 0), None), max_sleep_seconds=900)
        self.assertEqual(scheduler.next_delay(), 900)

    def test_overdue_wakeup_uses_minimum_sleep(self):
        scheduler = TransitionScheduler(self._manager(at(12, 33, 5), at(12, 33, 1)))
        self.assertEqual(scheduler.next_delay(), MIN_SLEEP)

    def test_with_real_session_manager(self):
        prayers = [PrayerSlot(PrayerName.DHUHR, datetime.time(12, 30))]
        manager = ModeSessionManager(prayers, ModeWindowConfig(2, 3, 4), clock=lambda: at(12, 30))
        with patch("mosque_display.scheduler.threading.Timer") as mock_timer_cls:
            scheduler = TransitionScheduler(manager)
            scheduler.start()
            scheduler.stop()

        self.assertEqual(manager.session.mode, DisplayMode.ADHAN)
        delay = mock_timer_cls.call_args[0][0]
        self.assertEqual(delay, 181)


class TestRescheduleOnChanges(unittest.TestCase):
    PRAYERS = [
        PrayerSlot(PrayerName.FAJR, datetime.time(5, 0)),
        PrayerSlot(PrayerName.DHUHR, datetime.time(12, 30)),
    ]

    def setUp(self):
        self.manager = ModeSessionManager(self.PRAYERS, ModeWindowConfig(2, 3, 4), clock=lambda: at(9, 0))
        patcher = patch("mosque_display.scheduler.threading.Timer")
        self.mock_timer_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.timers = []

        def make_timer(delay, function):
            timer = MagicMock()
            self.timers.append(timer)
            return timer

        self.mock_timer_cls.side_effect = make_timer

    def delays(self):
        return [c.args[0] for c in self.mock_timer_cls.call_args_list]

    def test_manual_override_rearms_event_scheduler(self):
        scheduler = TransitionScheduler(self.manager)
        scheduler.start()
        self.manager.set_mode(DisplayMode.ADHAN, PrayerName.DHUHR)
        scheduler.stop()

        self.assertEqual(self.delays(), [3600.0, 181.0])
        self.timers[0].cancel.assert_called_once()
        self.assertEqual(self.manager.session.mode, DisplayMode.ADHAN)

    def test_new_prayers_are_evaluated_promptly(self):
        scheduler = TransitionScheduler(self.manager)
        scheduler.start()
        self.manager.update_prayers([PrayerSlot(PrayerName.DHUHR, datetime.time(9, 1))])
        scheduler.stop()

        self.assertEqual(self.delays(), [3600.0, MIN_SLEEP])

    def test_stopped_scheduler_ignores_changes(self):
        scheduler = TransitionScheduler(self.manager)
        scheduler.start()
        scheduler.stop()
        self.manager.set_mode(DisplayMode.ADHAN, PrayerName.DHUHR)
        self.assertEqual(len(self.delays()), 1)

    def test_polling_scheduler_keeps_its_interval(self):
        scheduler = PollingScheduler(self.manager)
        scheduler.start()
        self.manager.set_mode(DisplayMode.ADHAN, PrayerName.DHUHR)
        scheduler.stop()
        self.assertEqual(self.delays(), [1.0])


class TestCreateScheduler(unittest.TestCase):
    def test_by_name(self):
        manager = MagicMock()
        self.assertIsInstance(create_scheduler("polling", manager), PollingScheduler)
        self.assertIsInstance(create_scheduler("event", manager), TransitionScheduler)

    def test_passes_options(self):
        scheduler = create_scheduler("polling", MagicMock(), interval_seconds=5)
        self.assertEqual(scheduler.interval_seconds, 5)

    def test_unknown_name(self):
        with self.assertRaises(ValueError):
            create_scheduler("cron", MagicMock())


if __name__ == "__main__":
    unittest.main()
