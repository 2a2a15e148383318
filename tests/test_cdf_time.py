import calendar
from datetime import datetime

import pytest

from fileident.cdf_time import CDF_TIME_PREC, cdf_ctime, timestamp_to_timespec

EPOCH_OFFSET = 11644473600


def to_timestamp(unix_seconds, units=0):
    return (unix_seconds + EPOCH_OFFSET) * CDF_TIME_PREC + units


def test_epoch():
    assert timestamp_to_timespec(EPOCH_OFFSET * CDF_TIME_PREC) == (0, 0)


def test_fraction_becomes_nanoseconds():
    seconds, nsec = timestamp_to_timespec(to_timestamp(0, 1234))
    assert seconds == 0
    assert nsec == 1234 * 100


@pytest.mark.parametrize("when", [
    datetime(1977, 4, 23, 1, 30, 0),
    datetime(1999, 2, 14, 12, 0, 0),
    datetime(2000, 3, 2, 23, 59, 59),
    datetime(2004, 2, 27, 6, 7, 8),
    datetime(2021, 12, 6, 15, 33, 0),
    datetime(1970, 1, 2, 0, 0, 1),
    datetime(2038, 7, 19, 3, 14, 7),
])
def test_mid_month_dates_round_trip(when):
    unix = calendar.timegm(when.timetuple())
    assert timestamp_to_timespec(to_timestamp(unix)) == (unix, 0)


def test_seconds_advance_with_timestamp():
    base = calendar.timegm(datetime(1990, 6, 10).timetuple())
    first, _ = timestamp_to_timespec(to_timestamp(base))
    later, _ = timestamp_to_timespec(to_timestamp(base + 86400 + 61))
    assert later - first == 86400 + 61


def test_ctime_epoch():
    assert cdf_ctime(0) == "Thu Jan  1 00:00:00 1970\n"


def test_ctime_matches_timespec():
    unix = calendar.timegm(datetime(2010, 5, 15, 8, 9, 10).timetuple())
    seconds, _ = timestamp_to_timespec(to_timestamp(unix))
    text = cdf_ctime(seconds)
    assert text.endswith("2010\n")
    assert "08:09:10" in text


def test_ctime_bad_value():
    text = cdf_ctime(2 ** 62)
    assert text == "*Bad* 0x4000000000000000\n"
    assert len(text) <= 25