"""
Display-mode scheduling for the mosque screen.

Given today's prayer slots and the current time, decide which display mode
should be shown, whether the shown mode must change, whether a timed mode has
run past its allotted duration, and when the next mode change will happen.
Everything here is pure: no clock reads, no I/O, no shared state.
"""

import datetime
import enum
from dataclasses import dataclass
from typing import Optional, Sequence

from mosque_display.windows import (
    is_in_adhan_window,
    is_in_post_prayer_window,
    is_in_pre_prayer_window,
    prayer_time_on,
    seconds_between,
)


class PrayerName(enum.Enum):
    FAJR = "Fajr"
    DHUHR = "Dhuhr"
    ASR = "Asr"
    MAGHRIB = "Maghrib"
    ISHA = "Isha"


class DisplayMode(enum.Enum):
    DEFAULT = "default"
    PRE_PRAYER = "pre-prayer"
    ADHAN = "adhan"
    POST_PRAYER = "post-prayer"


# Forecast kinds, one per candidate instant computed for a prayer
PRE_PRAYER_START = "pre-prayer-start"
ADHAN_START = "adhan-start"
POST_PRAYER_END = "post-prayer-end"

_TIE_RANK = {ADHAN_START: 0, PRE_PRAYER_START: 1, POST_PRAYER_END: 2}

# Windows are inclusive at their end; the calculated mode changes one second later.
PAST_EDGE = datetime.timedelta(seconds=1)


@dataclass(frozen=True)
class PrayerSlot:
    name: PrayerName
    time_of_day: datetime.time
    iqama_time: Optional[datetime.time] = None


@dataclass(frozen=True)
class ModeWindowConfig:
    pre_prayer_window_minutes: int = 2
    adhan_duration_minutes: int = 3
    post_prayer_duration_minutes: int = 4


DEFAULT_WINDOW_CONFIG = ModeWindowConfig()


@dataclass(frozen=True)
class ModeCalculation:
    mode: DisplayMode
    active_prayer: Optional[PrayerName]
    reason: str


@dataclass(frozen=True)
class TransitionDecision:
    should_transition: bool
    new_mode: Optional[DisplayMode]
    active_prayer: Optional[PrayerName]


@dataclass(frozen=True)
class ModeTransition:
    time: datetime.datetime
    mode: DisplayMode
    prayer: Optional[PrayerName]
    kind: str


ALLOWED_TRANSITIONS = {
    DisplayMode.DEFAULT: (DisplayMode.PRE_PRAYER, DisplayMode.ADHAN),
    DisplayMode.PRE_PRAYER: (DisplayMode.ADHAN, DisplayMode.DEFAULT),
    DisplayMode.ADHAN: (DisplayMode.POST_PRAYER, DisplayMode.DEFAULT),
    DisplayMode.POST_PRAYER: (DisplayMode.DEFAULT,),
}


def can_transition(current: DisplayMode, target: DisplayMode) -> bool:
    """Whether the state machine lists current -> target as a normal transition."""
    return target in ALLOWED_TRANSITIONS.get(current, ())


def calculate_display_mode(
    prayers: Sequence[PrayerSlot],
    now: datetime.datetime,
    config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
) -> ModeCalculation:
    """
    Decide the single display mode for `now`.

    Prayers are scanned in list order. For each prayer the adhan window is
    tested first, then the pre-prayer window, then the post-prayer window; the
    first match wins. If nothing matches the result is DEFAULT.
    """
    for prayer in prayers:
        name = prayer.name.value
        if is_in_adhan_window(prayer.time_of_day, now, config.adhan_duration_minutes):
            return ModeCalculation(
                DisplayMode.ADHAN, prayer.name, f"In adhan window for {name}"
            )
        if is_in_pre_prayer_window(prayer.time_of_day, now, config.pre_prayer_window_minutes):
            return ModeCalculation(
                DisplayMode.PRE_PRAYER, prayer.name, f"In pre-prayer window for {name}"
            )
        if is_in_post_prayer_window(
            prayer.time_of_day,
            now,
            config.adhan_duration_minutes,
            config.post_prayer_duration_minutes,
        ):
            return ModeCalculation(
                DisplayMode.POST_PRAYER, prayer.name, f"In post-prayer window for {name}"
            )

    return ModeCalculation(DisplayMode.DEFAULT, None, "Normal operation")


def should_transition_mode(
    current_mode: DisplayMode,
    prayers: Sequence[PrayerSlot],
    now: datetime.datetime,
    config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
) -> TransitionDecision:
    """Compare the calculated mode with `current_mode`; never mutates anything."""
    calculation = calculate_display_mode(prayers, now, config)
    if calculation.mode != current_mode:
        return TransitionDecision(True, calculation.mode, calculation.active_prayer)
    return TransitionDecision(False, None, None)


def get_mode_duration(mode: DisplayMode, config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG) -> int:
    """Nominal duration of a mode in seconds (0 for DEFAULT)."""
    if mode is DisplayMode.PRE_PRAYER:
        return config.pre_prayer_window_minutes * 60
    if mode is DisplayMode.ADHAN:
        return config.adhan_duration_minutes * 60
    if mode is DisplayMode.POST_PRAYER:
        return config.post_prayer_duration_minutes * 60
    return 0


def has_mode_expired(
    mode: DisplayMode,
    mode_start_time: Optional[datetime.datetime],
    now: datetime.datetime,
    config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
) -> bool:
    """
    True iff a non-default mode has been shown for strictly longer than its
    configured duration. DEFAULT never expires, and neither does a mode with
    no recorded start.
    """
    if mode is DisplayMode.DEFAULT or mode_start_time is None:
        return False
    return seconds_between(mode_start_time, now) > get_mode_duration(mode, config)


def list_mode_transitions(
    prayers: Sequence[PrayerSlot],
    now: datetime.datetime,
    config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
) -> list:
    """
    All of today's transition instants strictly after `now`, earliest first.

    Three candidates are produced per prayer: pre-prayer start, adhan start and
    post-prayer end. A post-prayer end is labelled DEFAULT, the mode the screen
    hands back to, even though the inclusive window edge itself still shows
    POST_PRAYER for that one instant.

    Instants shared by several candidates are reported once. A window start
    beats a post-prayer end at the same instant (adhan before pre-prayer), and
    among equals the earlier-listed prayer is kept. So when Dhuhr's post-prayer
    window ends exactly as Asr's pre-prayer window opens, the entry is
    PRE_PRAYER for Asr.
    """
    pre_delta = datetime.timedelta(minutes=config.pre_prayer_window_minutes)
    end_delta = datetime.timedelta(
        minutes=config.adhan_duration_minutes + config.post_prayer_duration_minutes
    )

    transitions = []
    for prayer in prayers:
        prayer_dt = prayer_time_on(prayer.time_of_day, now)
        candidates = (
            (prayer_dt - pre_delta, DisplayMode.PRE_PRAYER, PRE_PRAYER_START),
            (prayer_dt, DisplayMode.ADHAN, ADHAN_START),
            (prayer_dt + end_delta, DisplayMode.DEFAULT, POST_PRAYER_END),
        )
        for when, mode, kind in candidates:
            if kind == PRE_PRAYER_START and not pre_delta:
                continue  # an empty pre-prayer window never shows
            if when > now:
                transitions.append(ModeTransition(when, mode, prayer.name, kind))

    # Stable sort: within a kind the earlier-listed prayer stays first.
    transitions.sort(key=lambda t: (t.time, _TIE_RANK[t.kind]))
    unique = []
    for transition in transitions:
        if unique and unique[-1].time == transition.time:
            continue
        unique.append(transition)
    return unique


def get_next_mode_transition(
    prayers: Sequence[PrayerSlot],
    now: datetime.datetime,
    config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
) -> Optional[ModeTransition]:
    """Earliest future transition, or None once every window today has closed."""
    transitions = list_mode_transitions(prayers, now, config)
    return transitions[0] if transitions else None


def next_mode_boundary(
    prayers: Sequence[PrayerSlot],
    now: datetime.datetime,
    config: ModeWindowConfig = DEFAULT_WINDOW_CONFIG,
) -> Optional[datetime.datetime]:
    """
    Earliest instant after `now` at which calculate_display_mode can answer
    differently, or None once today's windows are over.

    Unlike the forecaster this includes the adhan-to-post-prayer change, and
    end edges are placed one second past the inclusive window end.
    """
    pre_delta = datetime.timedelta(minutes=config.pre_prayer_window_minutes)
    adhan_end = datetime.timedelta(minutes=config.adhan_duration_minutes) + PAST_EDGE
    post_end = adhan_end + datetime.timedelta(minutes=config.post_prayer_duration_minutes)

    boundaries = []
    for prayer in prayers:
        prayer_dt = prayer_time_on(prayer.time_of_day, now)
        for when in (prayer_dt - pre_delta, prayer_dt, prayer_dt + adhan_end, prayer_dt + post_end):
            if when > now:
                boundaries.append(when)
    return min(boundaries) if boundaries else None
