"""Time-window checks around a single prayer time."""

import datetime


def prayer_time_on(time_of_day: datetime.time, now: datetime.datetime) -> datetime.datetime:
    """
    Resolve a prayer's time-of-day against the calendar day of `now`.

    The result carries the same tzinfo as `now` (naive stays naive), so it can
    always be compared with `now` directly.
    """
    return now.replace(
        hour=time_of_day.hour,
        minute=time_of_day.minute,
        second=0,
        microsecond=0,
    )


def seconds_between(start: datetime.datetime, end: datetime.datetime) -> float:
    """Return seconds from start to end (negative if end is earlier)."""
    return (end - start).total_seconds()


def is_in_pre_prayer_window(
    prayer_time: datetime.time,
    now: datetime.datetime,
    window_minutes: int,
) -> bool:
    """True while the prayer is still ahead and at most `window_minutes` away."""
    remaining = seconds_between(now, prayer_time_on(prayer_time, now))
    return 0 < remaining <= window_minutes * 60


def is_in_adhan_window(
    prayer_time: datetime.time,
    now: datetime.datetime,
    duration_minutes: int,
) -> bool:
    """True from the prayer instant itself until `duration_minutes` after it."""
    elapsed = seconds_between(prayer_time_on(prayer_time, now), now)
    return 0 <= elapsed <= duration_minutes * 60


def is_in_post_prayer_window(
    prayer_time: datetime.time,
    now: datetime.datetime,
    adhan_duration_minutes: int,
    post_prayer_duration_minutes: int,
) -> bool:
    """
    True once the adhan duration has elapsed, for `post_prayer_duration_minutes`.

    Both edges are inclusive, so the adhan end instant also satisfies
    is_in_adhan_window; callers check adhan first.
    """
    elapsed = seconds_between(prayer_time_on(prayer_time, now), now)
    start = adhan_duration_minutes * 60
    end = (adhan_duration_minutes + post_prayer_duration_minutes) * 60
    return start <= elapsed <= end
