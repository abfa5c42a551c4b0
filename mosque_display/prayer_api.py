"""Fetch and parse today's prayer times (Aladhan API or a manual timetable)."""

import datetime
import json
import logging
import re
from typing import Optional

import requests

from mosque_display.modes import PrayerName, PrayerSlot

logger = logging.getLogger(__name__)

ALADHAN_BASE = "https://api.aladhan.com/v1"

PRAYER_NAMES = [p.value for p in PrayerName]
PRAYER_DISPLAY = {
    "en": {
        "Fajr": "Fajr",
        "Dhuhr": "Dhuhr",
        "Asr": "Asr",
        "Maghrib": "Maghrib",
        "Isha": "Isha",
    },
    "ar": {
        "Fajr": "الفجر",
        "Dhuhr": "الظهر",
        "Asr": "العصر",
        "Maghrib": "المغرب",
        "Isha": "العشاء",
    },
}
JUMUAH_DISPLAY = {"en": "Jumu'ah", "ar": "الجمعة"}

# Aladhan method ids: 2 = ISNA, 3 = MWL, 4 = Makkah, 5 = Egypt, 1 = Karachi
DEFAULT_METHOD = 3

DEFAULT_IQAMA_ADJUSTMENTS = {
    "Fajr": 10,
    "Dhuhr": 10,
    "Asr": 10,
    "Maghrib": 5,
    "Isha": 10,
}

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_TZ_SUFFIX_RE = re.compile(r"\s*\([^)]*\)\s*$")


def fetch_prayer_times(lat: float, lon: float, date: datetime.date = None, method: int = DEFAULT_METHOD) -> dict:
    """
    Fetch prayer times for given coordinates and date.

    Returns a dict with:
        timings: {prayer_name: "HH:MM"} for the five prayers
        gregorian: {date_str, weekday}
        timezone: IANA name reported by the API ("" if absent)
    Raises requests.RequestException or ValueError on failure.
    """
    if date is None:
        date = datetime.date.today()
    date_str = date.strftime("%d-%m-%Y")
    url = f"{ALADHAN_BASE}/timings/{date_str}"
    params = {
        "latitude": lat,
        "longitude": lon,
        "method": method,
    }
    logger.info("Fetching prayer times for %s (%s, %s) method=%s", date_str, lat, lon, method)
    resp = requests.get(url, params=params, timeout=10)
    resp.raise_for_status()
    body = resp.json()
    if body.get("code") != 200:
        raise ValueError(f"Aladhan API error: {body.get('status')}")

    data = body["data"]
    raw_timings = data["timings"]

    timings = {}
    for name in PRAYER_NAMES:
        if name not in raw_timings:
            raise ValueError(f"Aladhan response is missing {name}")
        timings[name] = clean_time_str(raw_timings[name])

    greg_data = data.get("date", {}).get("gregorian", {})
    gregorian = {
        "date_str": greg_data.get("date", date_str),
        "weekday": greg_data.get("weekday", {}).get("en", ""),
    }
    timezone = data.get("meta", {}).get("timezone", "")

    return {"timings": timings, "gregorian": gregorian, "timezone": timezone}


def clean_time_str(raw: str) -> str:
    """Strip a trailing zone marker such as " (EET)" from an API time string."""
    return _TZ_SUFFIX_RE.sub("", raw).strip()


def parse_time_of_day(time_str: str) -> datetime.time:
    """Parse 'HH:MM' (24-hour) into a time. Raises ValueError for anything else."""
    match = _TIME_RE.match(clean_time_str(str(time_str)))
    if not match:
        raise ValueError(f"Invalid time of day: {time_str!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time of day: {time_str!r}")
    return datetime.time(hour, minute)


def calculate_iqama_time(prayer_time: datetime.time, adjustment_minutes: int) -> datetime.time:
    """Prayer time shifted by adjustment_minutes, wrapping around midnight."""
    base = datetime.datetime.combine(datetime.date(2000, 1, 1), prayer_time)
    return (base + datetime.timedelta(minutes=adjustment_minutes)).time()


def build_prayer_slots(timings: dict, iqama_adjustments: Optional[dict] = None) -> list:
    """
    Turn {prayer_name: "HH:MM"} into today's ordered PrayerSlot list.

    All five prayers are required and must be strictly increasing in time.
    Raises ValueError otherwise.
    """
    if iqama_adjustments is None:
        iqama_adjustments = DEFAULT_IQAMA_ADJUSTMENTS

    slots = []
    for prayer in PrayerName:
        if prayer.value not in timings:
            raise ValueError(f"Missing time for {prayer.value}")
        time_of_day = parse_time_of_day(timings[prayer.value])
        adjustment = iqama_adjustments.get(prayer.value)
        iqama = calculate_iqama_time(time_of_day, adjustment) if adjustment is not None else None
        slots.append(PrayerSlot(prayer, time_of_day, iqama))

    for earlier, later in zip(slots, slots[1:]):
        if later.time_of_day <= earlier.time_of_day:
            raise ValueError(
                f"{later.name.value} ({later.time_of_day:%H:%M}) is not after "
                f"{earlier.name.value} ({earlier.time_of_day:%H:%M})"
            )
    return slots


def load_manual_timetable(path: str) -> list:
    """
    Load a manual timetable: a JSON list of
    {"date": "YYYY-MM-DD", "prayers": {"Fajr": "HH:MM", ...}}.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Failed to parse manual prayer times: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError("Manual prayer times must be a list")
    logger.info("Loaded manual timetable with %d days from %s", len(data), path)
    return data


def manual_times_for_date(timetable: list, date: datetime.date) -> Optional[dict]:
    """Return the {prayer_name: "HH:MM"} entry for date, or None."""
    date_str = date.strftime("%Y-%m-%d")
    for entry in timetable:
        if isinstance(entry, dict) and entry.get("date") == date_str:
            return entry.get("prayers")
    return None


def prayer_display_name(prayer: PrayerName, language: str = "en", date: datetime.date = None) -> str:
    """Display name of a prayer; Dhuhr on a Friday is shown as Jumu'ah."""
    if prayer is PrayerName.DHUHR and date is not None and date.weekday() == 4:
        return JUMUAH_DISPLAY[language]
    return PRAYER_DISPLAY[language][prayer.value]
