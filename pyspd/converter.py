"""Functions converting between calendar dates, MJD and time strings."""

from datetime import date, timedelta
import math
import re
from typing import Final

MJD_EPOCH: Final[date] = date(1858, 11, 17)
"""Calendar date at MJD 0."""

SECONDS_PER_DAY: Final[float] = 86400.0
"""Number of seconds in a day."""

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{1,2})(?::(\d{1,2}(?:\.\d*)?))?$')
_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
_MINUTES_PATTERN = re.compile(r'^(\d+(?:\.\d*)?|\.\d+)([smhd]?)$')


def cal2mjd(day: int, month: int, year: int, ut_seconds: float = 0.0) -> float:
    """Converts a calendar date and UT seconds into an MJD.

    Raises:
        ValueError: If the date does not exist.
    """
    days = (date(year, month, day) - MJD_EPOCH).days
    return days + ut_seconds / SECONDS_PER_DAY


def date2mjd(obs_date: str, ut_seconds: float = 0.0) -> float:
    """Converts an observation date string YYYY-MM-DD and UT seconds into an MJD."""
    year, month, day = parse_date(obs_date)
    return cal2mjd(day, month, year, ut_seconds)


def mjd2cal(mjd: float) -> tuple[int, int, int, float]:
    """Converts an MJD into (year, month, day, ut_seconds)."""
    whole_days = math.floor(mjd)
    cal_date = MJD_EPOCH + timedelta(days=whole_days)
    ut_seconds = (mjd - whole_days) * SECONDS_PER_DAY
    return cal_date.year, cal_date.month, cal_date.day, ut_seconds


def mjd_to_string(mjd: float) -> str:
    """Returns an MJD as 'YYYY-MM-DD HH:MM:SS'."""
    year, month, day, ut_seconds = mjd2cal(mjd)
    return f'{year:04d}-{month:02d}-{day:02d} {seconds_to_hourlabel(ut_seconds)}'


def seconds_to_hourlabel(seconds: float) -> str:
    """Formats seconds since midnight as HH:MM:SS."""
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f'{hours:02d}:{minutes:02d}:{secs:02d}'


def parse_date(date_string: str) -> tuple[int, int, int]:
    """Parses YYYY-MM-DD into (year, month, day).

    Raises:
        ValueError: If the string is not a valid date.
    """
    match = _DATE_PATTERN.match(date_string.strip())
    if match is None:
        raise ValueError(f'Invalid date "{date_string}"')
    year, month, day = (int(g) for g in match.groups())
    # Validates day and month.
    date(year, month, day)
    return year, month, day


def string_to_seconds(time_string: str) -> float:
    """Parses HH:MM[:SS] into seconds since midnight.

    Raises:
        ValueError: If the string is not a valid time of day.
    """
    match = _TIME_PATTERN.match(time_string.strip())
    if match is None:
        raise ValueError(f'Invalid time "{time_string}"')
    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = float(match.group(3)) if match.group(3) else 0.0
    if hours > 23 or minutes > 59 or seconds >= 60:
        raise ValueError(f'Invalid time "{time_string}"')
    return hours * 3600.0 + minutes * 60.0 + seconds


def string_to_minutes(duration: str) -> float:
    """Parses a duration into minutes.

    A bare number is interpreted as minutes, otherwise the suffix
    s, m, h or d selects seconds, minutes, hours or days.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    match = _MINUTES_PATTERN.match(duration.strip().lower())
    if match is None:
        raise ValueError(f'Invalid duration "{duration}"')
    value = float(match.group(1))
    unit = match.group(2) or 'm'
    factor = {'s': 1 / 60, 'm': 1.0, 'h': 60.0, 'd': 1440.0}[unit]
    return value * factor


def minutes_representation(minutes: float) -> str:
    """Returns a compact human representation of a number of minutes."""
    if minutes < 1:
        return f'{minutes * 60:.0f}s'
    if minutes < 60:
        return f'{minutes:.0f}m' if minutes == int(minutes) else f'{minutes:.1f}m'
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f'{hours:.0f}h'
    return f'{hours:.0f}h {rest:.0f}m'
