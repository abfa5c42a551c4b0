#!/usr/bin/env python3
"""
Mosque Display
Full-screen style window for a mosque prayer-times screen showing:
  - Current location and date
  - Today's prayer and iqama times
  - Countdown to the next prayer and its iqama
  - The active display mode (pre-prayer alert, adhan, post-prayer) driven by
    the mode scheduler, with desktop notifications on pre-prayer and adhan
"""

import argparse
import datetime
import logging
import sys
import threading
import tkinter as tk

import pytz

from mosque_display.countdown import (
    format_countdown,
    format_countdown_words,
    get_current_prayer,
    localize_digits,
    prayer_countdowns,
    seconds_until_iqama,
)
from mosque_display.modes import DisplayMode, PrayerName
from mosque_display.notifier import ModeNotifier
from mosque_display.prayer_api import (
    build_prayer_slots,
    fetch_prayer_times,
    load_manual_timetable,
    manual_times_for_date,
    prayer_display_name,
)
from mosque_display.scheduler import create_scheduler
from mosque_display.session import ModeSession, ModeSessionManager
from mosque_display.settings import (
    load_settings,
    resolve_location,
    window_config_from_settings,
)

logger = logging.getLogger("mosque_display")

# ──────────────────────────────────────────────────────────────────────────────
# Theme constants
# ──────────────────────────────────────────────────────────────────────────────
BG_DARK = "#222222"
BG_CARD = "#2c2c2c"
BG_HIGHLIGHT = "#123d33"
BORDER_COLOR = "#1DCD9F"
ACCENT_PRIMARY = "#1DCD9F"
ACCENT_SAND = "#D4C9BE"
TEXT_LIGHT = "#F1EFEC"
TEXT_DIM = "#8b949e"
TEXT_RED = "#ff6b6b"

FONT_TEXT = ("Courier", 11, "bold")
FONT_TEXT_SM = ("Courier", 9)
FONT_TEXT_LG = ("Courier", 16, "bold")
FONT_CLOCK = ("Courier", 34, "bold")
FONT_COUNTDOWN = ("Courier", 26, "bold")
FONT_MODE = ("Courier", 22, "bold")

WINDOW_W = 640
WINDOW_H = 760

REFRESH_MS = 1000  # redraw clock and countdowns every second
RETRY_MIN_MS = 60_000  # first retry after a failed load, doubled per failure
RETRY_MAX_MS = 15 * 60_000

MODE_BANNERS = {
    DisplayMode.DEFAULT: ("", BG_DARK, TEXT_LIGHT),
    DisplayMode.PRE_PRAYER: ("PREPARE FOR {prayer}", "#3d2f12", ACCENT_SAND),
    DisplayMode.ADHAN: ("ADHAN — {prayer}", BG_HIGHLIGHT, ACCENT_PRIMARY),
    DisplayMode.POST_PRAYER: ("{prayer} — REMEMBRANCE", "#1f2a3d", TEXT_LIGHT),
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Send log records to stdout."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


# ──────────────────────────────────────────────────────────────────────────────
# Main App
# ──────────────────────────────────────────────────────────────────────────────
class MosqueDisplayApp:
    def __init__(self, root: tk.Tk, scheduler_kind: str = None):
        self.root = root
        self._drag_x = 0
        self._drag_y = 0

        self.settings = load_settings()
        display = self.settings["display"]
        self.language = display["language"]
        self.numerals = display["numerals"]
        self.scheduler_kind = scheduler_kind or display["scheduler"]

        self.location = {}
        self.tz = None
        self.prayers = []
        self._loaded_date = None
        self._load_error = ""
        self._loading = False
        self._retry_ms = RETRY_MIN_MS
        self._retry_job = None

        self.manager = ModeSessionManager(
            config=window_config_from_settings(self.settings),
            clock=self._now,
        )
        self.manager.subscribe(self._on_session_change)
        self.manager.subscribe(ModeNotifier(
            lambda: self.manager.config,
            language=self.language,
            gui_callback=self._on_notification,
        ))
        self._scheduler_handle = None

        self._setup_window()
        self._build_ui()
        self._start_data_load()

    def _now(self) -> datetime.datetime:
        return datetime.datetime.now(self.tz or pytz.utc)

    def _digits(self, text: str) -> str:
        return localize_digits(text, self.numerals)

    # ──────────────────────────────────────────────────────────────────────
    # Window setup
    # ──────────────────────────────────────────────────────────────────────
    def _setup_window(self):
        root = self.root
        root.title("Mosque Display")
        root.configure(bg=BG_DARK)
        root.resizable(False, False)
        root.overrideredirect(True)

        screen_w = root.winfo_screenwidth()
        screen_h = root.winfo_screenheight()
        x = (screen_w - WINDOW_W) // 2
        y = (screen_h - WINDOW_H) // 2
        root.geometry(f"{WINDOW_W}x{WINDOW_H}+{x}+{y}")

        root.bind("<ButtonPress-1>", self._on_drag_start)
        root.bind("<B1-Motion>", self._on_drag_motion)
        root.bind("<Key-d>", lambda _e: self.manager.force_default())
        root.bind("<Key-a>", lambda _e: self._preview_mode(DisplayMode.ADHAN))
        root.bind("<Key-p>", lambda _e: self._preview_mode(DisplayMode.PRE_PRAYER))
        root.bind("<Escape>", lambda _e: self.close())
        root.protocol("WM_DELETE_WINDOW", self.close)

    def _on_drag_start(self, event):
        self._drag_x = event.x_root - self.root.winfo_x()
        self._drag_y = event.y_root - self.root.winfo_y()

    def _on_drag_motion(self, event):
        self.root.geometry(f"+{event.x_root - self._drag_x}+{event.y_root - self._drag_y}")

    def _preview_mode(self, mode: DisplayMode):
        """Manual override for checking a mode's look; the scheduler takes over on its next tick."""
        slot, _ = self._next_slot()
        self.manager.set_mode(mode, slot.name if slot else PrayerName.DHUHR)

    # ──────────────────────────────────────────────────────────────────────
    # UI construction
    # ──────────────────────────────────────────────────────────────────────
    def _build_ui(self):
        outer = tk.Frame(self.root, bg=BORDER_COLOR, bd=0)
        outer.pack(fill=tk.BOTH, expand=True, padx=2, pady=2)
        inner = tk.Frame(outer, bg=BG_DARK, bd=0)
        inner.pack(fill=tk.BOTH, expand=True, padx=1, pady=1)

        title_bar = tk.Frame(inner, bg=BG_CARD, height=32)
        title_bar.pack(fill=tk.X, side=tk.TOP)
        title_bar.pack_propagate(False)
        tk.Label(
            title_bar, text="  🕌  MOSQUE DISPLAY", font=FONT_TEXT,
            fg=ACCENT_SAND, bg=BG_CARD,
        ).pack(side=tk.LEFT, padx=6)
        tk.Button(
            title_bar, text=" ✕ ", font=FONT_TEXT_SM, fg=TEXT_RED, bg=BG_CARD,
            activeforeground=TEXT_LIGHT, activebackground="#3a1a1a",
            bd=0, cursor="hand2", command=self.close,
        ).pack(side=tk.RIGHT, padx=4, pady=4)

        self.lbl_location = tk.Label(
            inner, text="📍 Loading prayer times…", font=FONT_TEXT,
            fg=TEXT_DIM, bg=BG_DARK,
        )
        self.lbl_location.pack(pady=(8, 0))

        self.lbl_date = tk.Label(inner, text="", font=FONT_TEXT, fg=TEXT_LIGHT, bg=BG_DARK)
        self.lbl_date.pack()

        self.lbl_clock = tk.Label(inner, text="00:00:00", font=FONT_CLOCK, fg=ACCENT_SAND, bg=BG_DARK)
        self.lbl_clock.pack(pady=4)

        # ── mode banner (empty in default mode) ───────────────────────────
        self.mode_frame = tk.Frame(inner, bg=BG_DARK, height=70)
        self.mode_frame.pack(fill=tk.X, padx=14, pady=4)
        self.mode_frame.pack_propagate(False)
        self.lbl_mode = tk.Label(self.mode_frame, text="", font=FONT_MODE, fg=TEXT_LIGHT, bg=BG_DARK)
        self.lbl_mode.pack(expand=True)

        # ── prayer times grid ─────────────────────────────────────────────
        self.prayer_frame = tk.Frame(inner, bg=BG_DARK)
        self.prayer_frame.pack(fill=tk.X, padx=14, pady=4)
        self.prayer_rows: dict = {}
        self._build_prayer_rows()

        # ── next prayer / iqama countdown ─────────────────────────────────
        tk.Label(inner, text="NEXT PRAYER", font=FONT_TEXT, fg=TEXT_DIM, bg=BG_DARK).pack(pady=(10, 0))
        self.lbl_next_name = tk.Label(inner, text="—", font=FONT_TEXT_LG, fg=ACCENT_PRIMARY, bg=BG_DARK)
        self.lbl_next_name.pack()
        self.lbl_countdown = tk.Label(inner, text="--:--", font=FONT_COUNTDOWN, fg=ACCENT_SAND, bg=BG_DARK)
        self.lbl_countdown.pack()
        self.lbl_countdown_words = tk.Label(inner, text="", font=FONT_TEXT_SM, fg=TEXT_DIM, bg=BG_DARK)
        self.lbl_countdown_words.pack()
        self.lbl_iqama = tk.Label(inner, text="", font=FONT_TEXT, fg=TEXT_LIGHT, bg=BG_DARK)
        self.lbl_iqama.pack(pady=(4, 0))

        # ── notification banner (hidden by default) ───────────────────────
        self.notif_frame = tk.Frame(inner, bg="#2d1b00", bd=1, relief=tk.RIDGE)
        self.lbl_notif_title = tk.Label(self.notif_frame, text="", font=FONT_TEXT, fg=ACCENT_SAND, bg="#2d1b00")
        self.lbl_notif_title.pack(pady=2)
        self.lbl_notif_msg = tk.Label(
            self.notif_frame, text="", font=FONT_TEXT_SM, fg=TEXT_LIGHT,
            bg="#2d1b00", wraplength=580,
        )
        self.lbl_notif_msg.pack(pady=(0, 4))

    def _build_prayer_rows(self):
        header = tk.Frame(self.prayer_frame, bg=BG_CARD)
        header.pack(fill=tk.X, pady=(0, 2))
        for text, side in (("Prayer", tk.LEFT), ("Iqama", tk.RIGHT), ("Adhan", tk.RIGHT)):
            tk.Label(header, text=text, font=FONT_TEXT, fg=TEXT_DIM, bg=BG_CARD, width=10).pack(side=side, padx=4)

        for prayer in PrayerName:
            row = tk.Frame(self.prayer_frame, bg=BG_CARD, pady=3)
            row.pack(fill=tk.X, pady=1)
            lbl_name = tk.Label(
                row, text=prayer_display_name(prayer, self.language), font=FONT_TEXT_LG,
                fg=TEXT_LIGHT, bg=BG_CARD, anchor="w", width=14,
            )
            lbl_name.pack(side=tk.LEFT, padx=4)
            lbl_iqama = tk.Label(row, text="--:--", font=FONT_TEXT_LG, fg=TEXT_DIM, bg=BG_CARD, width=8)
            lbl_iqama.pack(side=tk.RIGHT, padx=4)
            lbl_time = tk.Label(row, text="--:--", font=FONT_TEXT_LG, fg=TEXT_LIGHT, bg=BG_CARD, width=8)
            lbl_time.pack(side=tk.RIGHT, padx=4)
            self.prayer_rows[prayer] = {
                "row": row,
                "labels": (lbl_name, lbl_time, lbl_iqama),
            }

    # ──────────────────────────────────────────────────────────────────────
    # Data loading (runs in background thread)
    # ──────────────────────────────────────────────────────────────────────
    def _start_data_load(self):
        self._loading = True
        t = threading.Thread(target=self._load_data, daemon=True)
        t.start()
        self._tick()

    def _load_data(self):
        """Resolve location and today's prayer slots in a background thread."""
        try:
            self.location = resolve_location()
            try:
                self.tz = pytz.timezone(self.location["timezone"])
            except pytz.UnknownTimeZoneError:
                logger.warning("Unknown timezone %r, using UTC", self.location["timezone"])
                self.tz = pytz.utc

            today = datetime.datetime.now(self.tz).date()
            prayer_settings = self.settings["prayer"]
            if prayer_settings["use_manual_times"]:
                timetable = load_manual_timetable(prayer_settings["manual_timetable"])
                timings = manual_times_for_date(timetable, today)
                if timings is None:
                    raise ValueError(f"No manual prayer times for {today:%Y-%m-%d}")
            else:
                result = fetch_prayer_times(
                    self.location["lat"],
                    self.location["lon"],
                    today,
                    prayer_settings["calculation_method"],
                )
                timings = result["timings"]

            self.prayers = build_prayer_slots(timings, prayer_settings["iqama_adjustments"])
            self._loaded_date = today
            self.manager.update_prayers(self.prayers)
            self.root.after(0, self._on_data_loaded)
        except Exception as exc:
            logger.exception("Could not load prayer times")
            self._load_error = str(exc)
            self.root.after(0, self._on_data_error)

    def _on_data_loaded(self):
        """Called in main thread once data is ready."""
        self._loading = False
        self._retry_ms = RETRY_MIN_MS
        loc = self.location
        self.lbl_location.config(
            text=f"📍 {loc.get('city', '')}, {loc.get('country', '')}",
            fg=ACCENT_PRIMARY,
        )
        for slot in self.prayers:
            _, lbl_time, lbl_iqama = self.prayer_rows[slot.name]["labels"]
            lbl_time.config(text=self._digits(slot.time_of_day.strftime("%H:%M")))
            if slot.iqama_time is not None:
                lbl_iqama.config(text=self._digits(slot.iqama_time.strftime("%H:%M")))

        if self._scheduler_handle is None:
            scheduler = create_scheduler(self.scheduler_kind, self.manager)
            self._scheduler_handle = scheduler.start()
            logger.info("Mode scheduler started (%s)", self.scheduler_kind)

    def _on_data_error(self):
        self._loading = False
        self.lbl_location.config(
            text=f"⚠ Could not load data: {self._load_error[:60]}",
            fg=TEXT_RED,
        )
        if self._retry_job is None:
            logger.info("Retrying prayer times in %ds", self._retry_ms // 1000)
            self._retry_job = self.root.after(self._retry_ms, self._retry_load)
            self._retry_ms = min(self._retry_ms * 2, RETRY_MAX_MS)

    def _retry_load(self):
        self._retry_job = None
        self._reload_data()

    # ──────────────────────────────────────────────────────────────────────
    # Mode changes (published by the session manager)
    # ──────────────────────────────────────────────────────────────────────
    def _on_session_change(self, session: ModeSession):
        """Called from the scheduler thread; render in the main thread."""
        self.root.after(0, lambda: self._render_session(session))

    def _render_session(self, session: ModeSession):
        template, bg, fg = MODE_BANNERS[session.mode]
        prayer = ""
        if session.active_prayer is not None:
            prayer = prayer_display_name(session.active_prayer, self.language, self._now().date())
        self.mode_frame.config(bg=bg)
        self.lbl_mode.config(text=template.format(prayer=prayer.upper()), bg=bg, fg=fg)

        for name, widgets in self.prayer_rows.items():
            active = name is session.active_prayer
            row_bg = bg if active else BG_CARD
            widgets["row"].config(bg=row_bg)
            for label in widgets["labels"]:
                label.config(bg=row_bg)

    def _on_notification(self, title: str, message: str):
        self.root.after(0, lambda: self._show_notif_banner(title, message))

    def _show_notif_banner(self, title: str, message: str):
        self.lbl_notif_title.config(text=title)
        self.lbl_notif_msg.config(text=message)
        self.notif_frame.pack(fill=tk.X, padx=14, pady=4)
        self.root.after(15000, self.notif_frame.pack_forget)

    # ──────────────────────────────────────────────────────────────────────
    # Live clock + countdown tick
    # ──────────────────────────────────────────────────────────────────────
    def _tick(self):
        """Called every second to update the clock and countdowns."""
        now = self._now()
        self.lbl_clock.config(text=self._digits(now.strftime("%H:%M:%S")))
        self.lbl_date.config(text=f"📅 {now.strftime('%A, %d %B %Y')}")

        if self.prayers:
            self._update_countdown(now)

        if (
            self._loaded_date
            and now.date() != self._loaded_date
            and not self._loading
            and self._retry_job is None
        ):
            logger.info("Date changed to %s, reloading prayer times", now.date())
            self._reload_data()

        self.root.after(REFRESH_MS, self._tick)

    def _next_slot(self):
        info = prayer_countdowns(self.prayers, self._now())
        return info["next_prayer"], info

    def _update_countdown(self, now):
        info = prayer_countdowns(self.prayers, now)
        slot = info["next_prayer"]
        if slot is None:
            return
        secs = info["time_until_next"]
        self.lbl_next_name.config(text=prayer_display_name(slot.name, self.language, info["next_prayer_time"].date()))
        self.lbl_countdown.config(
            text=self._digits(format_countdown(secs)),
            fg=TEXT_RED if secs < 300 else ACCENT_SAND,
        )
        self.lbl_countdown_words.config(text=format_countdown_words(secs, language=self.language))

        current = get_current_prayer(self.prayers, now)
        if current is not None:
            iqama_secs = seconds_until_iqama(current, now)
            self.lbl_iqama.config(
                text=f"Iqama {prayer_display_name(current.name, self.language)} in "
                     f"{self._digits(format_countdown(iqama_secs))}"
            )
        else:
            self.lbl_iqama.config(text="")

    def _reload_data(self):
        self._loading = True
        self.lbl_location.config(text="📍 Refreshing prayer times…", fg=TEXT_DIM)
        t = threading.Thread(target=self._load_data, daemon=True)
        t.start()

    def close(self):
        if self._retry_job is not None:
            self.root.after_cancel(self._retry_job)
            self._retry_job = None
        if self._scheduler_handle is not None:
            self._scheduler_handle.cancel()
            self._scheduler_handle = None
        self.root.destroy()


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────
def main(argv=None):
    parser = argparse.ArgumentParser(description="Mosque prayer-times display")
    parser.add_argument("--scheduler", choices=("polling", "event"),
                        help="Mode scheduling strategy (default: from settings)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    root = tk.Tk()
    MosqueDisplayApp(root, scheduler_kind=args.scheduler)
    root.mainloop()


if __name__ == "__main__":
    main()
