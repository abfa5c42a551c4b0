"""User settings (location, prayer source, display windows) stored as JSON."""

import copy
import json
import logging
import os
from typing import Optional

import requests

from mosque_display.countdown import DIGIT_SETS
from mosque_display.modes import ModeWindowConfig
from mosque_display.prayer_api import DEFAULT_IQAMA_ADJUSTMENTS, DEFAULT_METHOD, PRAYER_NAMES

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = {
    "city": "Mecca",
    "region": "Makkah",
    "country": "SA",
    "lat": 21.4225,
    "lon": 39.8262,
    "timezone": "Asia/Riyadh",
}

DEFAULT_SETTINGS = {
    "location": DEFAULT_LOCATION,
    "prayer": {
        "calculation_method": DEFAULT_METHOD,
        "iqama_adjustments": DEFAULT_IQAMA_ADJUSTMENTS,
        "use_manual_times": False,
        "manual_timetable": None,
    },
    "display": {
        "pre_prayer_window_minutes": 2,
        "adhan_duration_minutes": 3,
        "post_prayer_duration_minutes": 4,
        "numerals": "western",
        "language": "en",
        "scheduler": "polling",
    },
}

WINDOW_KEYS = (
    "pre_prayer_window_minutes",
    "adhan_duration_minutes",
    "post_prayer_duration_minutes",
)
LANGUAGES = ("en", "ar")
SCHEDULER_KINDS = ("polling", "event")

LOCATION_KEYS = tuple(DEFAULT_LOCATION)

IPAPI_URL = "http://ip-api.com/json/"
# location key -> ip-api.com field
IPAPI_FIELDS = {
    "city": "city",
    "region": "regionName",
    "country": "country",
    "lat": "lat",
    "lon": "lon",
    "timezone": "timezone",
}

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".mosque_display")
CONFIG_FILE = os.path.join(CONFIG_DIR, "settings.json")


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_settings(settings: dict) -> dict:
    """
    Check a full settings dict. Returns it unchanged, or raises ValueError
    naming the first offending key.
    """
    for section in DEFAULT_SETTINGS:
        if not isinstance(settings.get(section), dict):
            raise ValueError(f"{section} must be an object, got {settings.get(section)!r}")

    display = settings["display"]
    for key in WINDOW_KEYS:
        value = display.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"display.{key} must be a non-negative integer, got {value!r}")
    if display.get("numerals") not in DIGIT_SETS:
        raise ValueError(f"display.numerals must be one of {sorted(DIGIT_SETS)}")
    if display.get("language") not in LANGUAGES:
        raise ValueError(f"display.language must be one of {LANGUAGES}")
    if display.get("scheduler") not in SCHEDULER_KINDS:
        raise ValueError(f"display.scheduler must be one of {SCHEDULER_KINDS}")

    location = settings["location"]
    try:
        lat = float(location["lat"])
        lon = float(location["lon"])
    except (KeyError, TypeError, ValueError):
        raise ValueError("location.lat and location.lon must be numbers") from None
    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        raise ValueError(f"Coordinates out of range: {lat}, {lon}")

    prayer = settings["prayer"]
    adjustments = prayer.get("iqama_adjustments", {})
    if not isinstance(adjustments, dict):
        raise ValueError("prayer.iqama_adjustments must be an object")
    for name, minutes in adjustments.items():
        if name not in PRAYER_NAMES:
            raise ValueError(f"Unknown prayer in iqama_adjustments: {name}")
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise ValueError(f"prayer.iqama_adjustments.{name} must be an integer")
    if prayer.get("use_manual_times") and not prayer.get("manual_timetable"):
        raise ValueError("prayer.manual_timetable is required when use_manual_times is set")
    return settings


def has_saved_settings() -> bool:
    return os.path.isfile(CONFIG_FILE)


def _read_saved() -> dict:
    """The saved document as written, or {} when it is missing or unreadable."""
    if not has_saved_settings():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", CONFIG_FILE, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: root must be an object", CONFIG_FILE)
        return {}
    return data


def load_settings() -> dict:
    """
    Load settings merged over DEFAULT_SETTINGS.

    A missing or unreadable file yields the defaults; a readable file with
    invalid values raises ValueError.
    """
    return validate_settings(_merge(DEFAULT_SETTINGS, _read_saved()))


def save_settings(settings: dict) -> None:
    """Validate and write settings to the config file."""
    validate_settings(_merge(DEFAULT_SETTINGS, settings))
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_FILE, "w", encoding="utf-8") as f:
        json.dump(settings, f, indent=2, ensure_ascii=False)
    logger.info("Settings saved to %s", CONFIG_FILE)


def clear_settings() -> None:
    """Remove the saved settings file."""
    if os.path.isfile(CONFIG_FILE):
        os.remove(CONFIG_FILE)


def window_config_from_settings(settings: dict) -> ModeWindowConfig:
    display = settings["display"]
    return ModeWindowConfig(**{key: display[key] for key in WINDOW_KEYS})


def detect_location(timeout: int = 5) -> Optional[dict]:
    """
    Look up the current location via IP geolocation.

    Returns the LOCATION_KEYS the service reported, or None when the lookup
    fails.
    """
    fields = ",".join(list(IPAPI_FIELDS.values()) + ["status", "message"])
    try:
        resp = requests.get(IPAPI_URL, params={"fields": fields}, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
        if data.get("status") != "success":
            logger.warning("IP geolocation failed: %s", data.get("message"))
            return None
        location = {key: data[field] for key, field in IPAPI_FIELDS.items() if field in data}
        for key in ("lat", "lon"):
            if key in location:
                location[key] = float(location[key])
    except (requests.RequestException, ValueError, TypeError) as exc:
        logger.warning("IP geolocation unavailable: %s", exc)
        return None
    return location


def resolve_location(timeout: int = 5) -> dict:
    """
    The location to compute prayer times for.

    Fields saved under "location" win, and a complete saved location skips
    the network. Anything missing is filled from IP geolocation, then from
    DEFAULT_LOCATION.
    """
    saved = _read_saved().get("location")
    if not isinstance(saved, dict):
        saved = {}
    saved = {key: saved[key] for key in LOCATION_KEYS if key in saved}
    if len(saved) == len(LOCATION_KEYS):
        return saved

    detected = detect_location(timeout) or {}
    location = dict(DEFAULT_LOCATION)
    location.update(detected)
    location.update(saved)
    logger.info(
        "Using location %s (%s saved, %s detected)",
        location["city"],
        ", ".join(sorted(saved)) or "none",
        ", ".join(sorted(set(detected) - set(saved))) or "none",
    )
    return location
