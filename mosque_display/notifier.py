"""Desktop notifications when the display enters an alerting mode."""

import logging
from typing import Callable, Optional

from plyer import notification as plyer_notification

from mosque_display.modes import DisplayMode, ModeWindowConfig
from mosque_display.prayer_api import prayer_display_name
from mosque_display.session import ModeSession

logger = logging.getLogger(__name__)

APP_NAME = "Mosque Display"
APP_ICON = ""  # Path to icon file; empty = default


def _send_plyer(title: str, message: str, timeout: int = 10) -> None:
    """Send a desktop notification via plyer (cross-platform)."""
    kwargs = dict(
        app_name=APP_NAME,
        title=title,
        message=message,
        timeout=timeout,
    )
    if APP_ICON:
        kwargs["app_icon"] = APP_ICON
    try:
        plyer_notification.notify(**kwargs)
    except (NotImplementedError, OSError) as exc:
        # No notification backend on this host (headless display, no dbus).
        logger.warning("Desktop notification unavailable: %s", exc)


def notify_pre_prayer(prayer_display: str, minutes: int, callback=None) -> tuple:
    """Notify that prayer_display starts in `minutes` minutes."""
    title = f"🕌 {prayer_display} in {minutes} minutes"
    message = f"{prayer_display} prayer starts in {minutes} minutes. Prepare for prayer."
    _send_plyer(title, message, timeout=15)
    if callback:
        callback(title, message)
    return title, message


def notify_adhan(prayer_display: str, callback=None) -> tuple:
    """Notify that the adhan for prayer_display is being called."""
    title = f"🕌 {prayer_display} — Time to Pray!"
    message = f"It is now time for {prayer_display} prayer. Allahu Akbar!"
    _send_plyer(title, message, timeout=30)
    if callback:
        callback(title, message)
    return title, message


def notify_mode_change(
    session: ModeSession,
    config: ModeWindowConfig,
    language: str = "en",
    callback=None,
) -> Optional[tuple]:
    """
    Send the notification matching a newly committed session.

    Only PRE_PRAYER and ADHAN entries alert; returns (title, message) or None.
    """
    if session.active_prayer is None:
        return None
    name = prayer_display_name(session.active_prayer, language)
    if session.mode is DisplayMode.PRE_PRAYER:
        return notify_pre_prayer(name, config.pre_prayer_window_minutes, callback)
    if session.mode is DisplayMode.ADHAN:
        return notify_adhan(name, callback)
    return None


class ModeNotifier:
    """Session subscriber forwarding mode entries to desktop notifications."""

    def __init__(self, config_getter: Callable[[], ModeWindowConfig], language: str = "en", gui_callback=None):
        self._config_getter = config_getter
        self.language = language
        self.gui_callback = gui_callback

    def __call__(self, session: ModeSession) -> None:
        if session.reason == "manual":
            return
        notify_mode_change(session, self._config_getter(), self.language, self.gui_callback)
