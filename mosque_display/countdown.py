"""Countdown arithmetic and formatting for the display layer."""

import datetime
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from mosque_display.modes import PrayerSlot
from mosque_display.windows import prayer_time_on, seconds_between

DIGIT_SETS = {
    "western": "0123456789",
    "arabic": "٠١٢٣٤٥٦٧٨٩",
    "persian": "۰۱۲۳۴۵۶۷۸۹",
}

_WORDS = {
    "en": {
        "hour": ("hour", "hours"),
        "minute": ("minute", "minutes"),
        "joiner": " and ",
        "now": "now",
        "under_minute": "less than a minute",
        "past": "{} ago",
        "digits": "western",
    },
    "ar": {
        "hour": ("ساعة", "ساعات"),
        "minute": ("دقيقة", "دقائق"),
        "joiner": " و ",
        "now": "الآن",
        "under_minute": "أقل من دقيقة",
        "past": "منذ {}",
        "digits": "arabic",
    },
}


@dataclass(frozen=True)
class CountdownInfo:
    total_seconds: int
    hours: int
    minutes: int
    seconds: int
    is_past: bool
    formatted: str
    formatted_words: str


def _split(total_seconds: int) -> tuple:
    return total_seconds // 3600, (total_seconds % 3600) // 60, total_seconds % 60


def format_countdown(total_seconds: float) -> str:
    """Format seconds as MM:SS, or HH:MM:SS from one hour up. Negatives show as zero."""
    total = max(0, int(total_seconds))
    h, m, s = _split(total)
    if h > 0:
        return f"{h:02d}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"


def localize_digits(text: str, digits: str = "arabic") -> str:
    """Replace ASCII digits in text with the glyphs of another digit set."""
    if digits not in DIGIT_SETS:
        raise ValueError(f"Unknown digit set: {digits}")
    return text.translate(str.maketrans(DIGIT_SETS["western"], DIGIT_SETS[digits]))


def format_countdown_words(total_seconds: float, is_past: bool = False, language: str = "en") -> str:
    """
    Render a duration as words, e.g. "2 hours and 5 minutes".

    Collapses to "now" for zero and to "less than a minute" when only seconds
    remain. Arabic output uses Arabic-Indic digits.
    """
    words = _WORDS[language]
    h, m, s = _split(max(0, int(total_seconds)))

    def unit(count, key):
        singular, plural = words[key]
        number = localize_digits(str(count), words["digits"])
        return f"{number} {singular if count == 1 else plural}"

    parts = []
    if h > 0:
        parts.append(unit(h, "hour"))
    if m > 0:
        parts.append(unit(m, "minute"))

    if not parts and s > 0:
        return words["under_minute"]

    text = words["joiner"].join(parts) if parts else words["now"]
    if is_past:
        return words["past"].format(text)
    return text


def calculate_countdown(
    target: datetime.datetime,
    now: datetime.datetime,
    language: str = "en",
) -> CountdownInfo:
    """Countdown from now to target; past targets report is_past and absolute parts."""
    total = math.floor(seconds_between(now, target))
    is_past = total < 0
    h, m, s = _split(abs(total))
    return CountdownInfo(
        total_seconds=total,
        hours=h,
        minutes=m,
        seconds=s,
        is_past=is_past,
        formatted=format_countdown(abs(total)),
        formatted_words=format_countdown_words(abs(total), is_past, language),
    )


def get_next_prayer(prayers: Sequence[PrayerSlot], now: datetime.datetime) -> tuple:
    """
    Return (slot, prayer_datetime) of the next prayer after now.

    When every prayer today has passed, the first slot is returned resolved
    on the following day. Returns (None, None) for an empty list.
    """
    for slot in prayers:
        prayer_dt = prayer_time_on(slot.time_of_day, now)
        if prayer_dt > now:
            return slot, prayer_dt
    if not prayers:
        return None, None
    first = prayers[0]
    return first, prayer_time_on(first.time_of_day, now) + datetime.timedelta(days=1)


def get_current_prayer(prayers: Sequence[PrayerSlot], now: datetime.datetime) -> Optional[PrayerSlot]:
    """The prayer whose adhan has been called but whose iqama has not yet started."""
    for slot in prayers:
        if slot.iqama_time is None:
            continue
        prayer_dt = prayer_time_on(slot.time_of_day, now)
        if prayer_dt <= now < _iqama_on(slot, prayer_dt):
            return slot
    return None


def _iqama_on(slot: PrayerSlot, prayer_dt: datetime.datetime) -> datetime.datetime:
    if slot.iqama_time is None:
        return prayer_dt
    iqama_dt = prayer_time_on(slot.iqama_time, prayer_dt)
    if iqama_dt < prayer_dt:
        iqama_dt += datetime.timedelta(days=1)
    return iqama_dt


def prayer_countdowns(prayers: Sequence[PrayerSlot], now: datetime.datetime) -> dict:
    """
    Countdowns to the next prayer and its iqama, both clamped to >= 0 seconds.

    Returns a dict with:
        next_prayer: PrayerSlot or None
        next_prayer_time: datetime or None
        time_until_next: int seconds
        time_until_iqama: int seconds
    """
    slot, prayer_dt = get_next_prayer(prayers, now)
    if slot is None:
        return {
            "next_prayer": None,
            "next_prayer_time": None,
            "time_until_next": 0,
            "time_until_iqama": 0,
        }
    iqama_dt = _iqama_on(slot, prayer_dt)
    return {
        "next_prayer": slot,
        "next_prayer_time": prayer_dt,
        "time_until_next": max(0, math.floor(seconds_between(now, prayer_dt))),
        "time_until_iqama": max(0, math.floor(seconds_between(now, iqama_dt))),
    }


def seconds_until_iqama(slot: PrayerSlot, now: datetime.datetime) -> int:
    """Seconds from now until today's iqama of slot, clamped to >= 0."""
    iqama_dt = _iqama_on(slot, prayer_time_on(slot.time_of_day, now))
    return max(0, math.floor(seconds_between(now, iqama_dt)))
