"""Tests for the display app's data-load retry handling."""

import datetime
import unittest
from unittest.mock import MagicMock, patch

import pytz

try:
    import mosque_display_app
except ImportError:  # interpreter built without tkinter
    mosque_display_app = None


def make_app():
    """An app object with mocked widgets; no Tk window is created."""
    app = mosque_display_app.MosqueDisplayApp.__new__(mosque_display_app.MosqueDisplayApp)
    app.root = MagicMock()
    app.root.after.side_effect = lambda ms, func: f"after#{ms}"
    app.lbl_location = MagicMock()
    app.lbl_clock = MagicMock()
    app.lbl_date = MagicMock()
    app.numerals = "western"
    app.tz = pytz.utc
    app.location = {"city": "Mecca", "country": "SA"}
    app.prayers = []
    app._load_error = "offline"
    app._loading = True
    app._loaded_date = None
    app._retry_ms = mosque_display_app.RETRY_MIN_MS
    app._retry_job = None
    app._scheduler_handle = None
    return app


@unittest.skipIf(mosque_display_app is None, "tkinter is not available")
class TestLoadRetry(unittest.TestCase):
    def test_failed_boot_load_schedules_retry(self):
        app = make_app()
        app._on_data_error()

        app.root.after.assert_called_once_with(60_000, app._retry_load)
        self.assertFalse(app._loading)
        self.assertEqual(app._retry_job, "after#60000")

    def test_only_one_retry_pending(self):
        app = make_app()
        app._on_data_error()
        app._on_data_error()
        app.root.after.assert_called_once()

    def test_retry_delay_doubles_up_to_cap(self):
        app = make_app()
        delays = []
        with patch.object(app, "_reload_data"):
            for _ in range(7):
                app._on_data_error()
                delays.append(app.root.after.call_args[0][0])
                app._retry_load()
        self.assertEqual(delays, [60_000, 120_000, 240_000, 480_000, 900_000, 900_000, 900_000])

    def test_retry_reloads(self):
        app = make_app()
        app._on_data_error()
        with patch.object(app, "_reload_data") as mock_reload:
            app._retry_load()
        mock_reload.assert_called_once()
        self.assertIsNone(app._retry_job)

    def test_success_resets_backoff(self):
        app = make_app()
        app._retry_ms = 480_000
        app._scheduler_handle = MagicMock()
        app._on_data_loaded()
        self.assertEqual(app._retry_ms, mosque_display_app.RETRY_MIN_MS)

    def test_date_change_waits_for_pending_retry(self):
        app = make_app()
        app._loading = False
        app._loaded_date = datetime.date(2000, 1, 1)
        app._retry_job = "after#60000"
        with patch.object(app, "_reload_data") as mock_reload:
            app._tick()
        mock_reload.assert_not_called()

        app._retry_job = None
        with patch.object(app, "_reload_data") as mock_reload:
            app._tick()
        mock_reload.assert_called_once()

    def test_close_cancels_pending_retry(self):
        app = make_app()
        app._on_data_error()
        app.close()
        app.root.after_cancel.assert_called_once_with("after#60000")
        app.root.destroy.assert_called_once()


if __name__ == "__main__":
    unittest.main()
