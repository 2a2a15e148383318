"""Conversion of Composite Document File timestamps.

Timestamps count 100-nanosecond units since 1601-01-01 and are taken to
be UTC.
"""

from __future__ import annotations

import time

CDF_BASE_YEAR = 1601
CDF_TIME_PREC = 10_000_000

_MASK64 = (1 << 64) - 1
_MDAYS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def _isleap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def _cdivmod(a: int, b: int) -> tuple[int, int]:
    """Division truncating toward zero, with a matching remainder."""
    q = abs(a) // b
    if a < 0:
        q = -q
    return q, a - q * b


def _getdays(year: int) -> int:
    """Days between 1601-01-01 and January 1st of year."""
    return sum(365 + _isleap(y) for y in range(CDF_BASE_YEAR, year))


def _getday(year: int, days: int) -> int:
    for m, length in enumerate(_MDAYS):
        sub = length + (m == 1 and _isleap(year))
        if days < sub:
            return days
        days -= sub
    return days


def _getmonth(year: int, days: int) -> int:
    for m, length in enumerate(_MDAYS):
        days -= length
        if m == 1 and _isleap(year):
            days -= 1
        if days <= 0:
            return m
    return len(_MDAYS)


def _days_from_civil(year: int, month: int, day: int) -> int:
    """Days since 1970-01-01 of a proleptic Gregorian date."""
    year -= month <= 2
    era = year // 400
    yoe = year - era * 400
    doy = (153 * (month + (-3 if month > 2 else 9)) + 2) // 5 + day - 1
    doe = yoe * 365 + yoe // 4 - yoe // 100 + doy
    return era * 146097 + doe - 719468


def timestamp_to_timespec(t: int) -> tuple[int, int]:
    """Convert a timestamp to (seconds since the Unix epoch, nanoseconds)."""
    t, frac = _cdivmod(t, CDF_TIME_PREC)
    nsec = frac * 100
    t, sec = _cdivmod(t, 60)
    t, minute = _cdivmod(t, 60)
    t, hour = _cdivmod(t, 24)

    # The year is an approximation; the day count below corrects it.
    year = CDF_BASE_YEAR + _cdivmod(t, 365)[0]
    t -= _getdays(year) - 1
    mday = _getday(year, t)
    mon = _getmonth(year, t)

    year += mon // 12
    mon %= 12
    days = _days_from_civil(year, mon + 1, 1) + mday - 1
    seconds = days * 86400 + hour * 3600 + minute * 60 + sec
    return seconds, nsec


def cdf_ctime(seconds: int) -> str:
    """Format seconds since the epoch like ctime(3), newline included.

    A time that cannot be represented is shown as ``*Bad*`` and its hex
    value.
    """
    try:
        return time.asctime(time.gmtime(seconds)) + "\n"
    except (OverflowError, OSError, ValueError):
        return f"*Bad* 0x{seconds & _MASK64:016x}\n"[:25]