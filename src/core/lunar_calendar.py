"""Lunar calendar converter — pure date arithmetic.

Converts between solar (Gregorian/Julian) dates and the East-Asian lunar
calendar evaluated at a fixed UTC offset. The astronomy follows Ho Ngoc Duc's
port of the algorithms in Jean Meeus, "Astronomical Algorithms" (1998):

    Copyright (c) 2006 Ho Ngoc Duc. All Rights Reserved.
    Permission to use, copy, modify, and redistribute this software and its
    documentation for personal, non-commercial use is hereby granted provided
    that this copyright notice and appropriate documentation appears in all
    copies.

Coefficients and normalization steps must stay exactly as published; results
are compared against almanac dates in the tests.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

logger = logging.getLogger(__name__)

DEFAULT_TIME_ZONE = 7.0

_JD_GREGORIAN_START = 2299161
_JD_1900_NEW_MOON = 2415021.076998695
_SYNODIC_MONTH = 29.530588853


@dataclass(frozen=True)
class LunarDate:
    day: int
    month: int
    year: int
    is_leap: bool = False


@dataclass(frozen=True)
class LunarMonth:
    """One lunation: its first solar day and length in days (29 or 30)."""

    year: int
    month: int
    is_leap: bool
    start: date
    days: int

    @property
    def last_day(self) -> date:
        return self.start + timedelta(days=self.days - 1)


# ---------------------------------------------------------------------------
# Julian day numbers
# ---------------------------------------------------------------------------


def _int(d: float) -> int:
    return math.floor(d)


def jd_from_date(dd: int, mm: int, yy: int) -> int:
    """Julian day number of dd/mm/yyyy (Julian calendar before 15 Oct 1582)."""
    a = _int((14 - mm) / 12)
    y = yy + 4800 - a
    m = mm + 12 * a - 3
    jd = dd + _int((153 * m + 2) / 5) + 365 * y + _int(y / 4) - _int(y / 100) + _int(y / 400) - 32045
    if jd < _JD_GREGORIAN_START:
        jd = dd + _int((153 * m + 2) / 5) + 365 * y + _int(y / 4) - 32083
    return jd


def jd_to_date(jd: int) -> tuple[int, int, int]:
    """Inverse of jd_from_date. Returns (day, month, year)."""
    if jd > _JD_GREGORIAN_START - 1:
        a = jd + 32044
        b = _int((4 * a + 3) / 146097)
        c = a - _int((b * 146097) / 4)
    else:
        b = 0
        c = jd + 32082
    d = _int((4 * c + 3) / 1461)
    e = c - _int((1461 * d) / 4)
    m = _int((5 * e + 2) / 153)
    day = e - _int((153 * m + 2) / 5) + 1
    month = m + 3 - 12 * _int(m / 10)
    year = b * 100 + d - 4800 + _int(m / 10)
    return day, month, year


# ---------------------------------------------------------------------------
# Astronomy
# ---------------------------------------------------------------------------


def new_moon(k: int) -> float:
    """Julian date of the k-th new moon after 1900-01-01 12:00 UT."""
    T = k / 1236.85  # Julian centuries from 1900-01-0.5
    T2 = T * T
    T3 = T2 * T
    dr = math.pi / 180

    jd1 = 2415020.75933 + 29.53058868 * k + 0.0001178 * T2 - 0.000000155 * T3
    jd1 = jd1 + 0.00033 * math.sin((166.56 + 132.87 * T - 0.009173 * T2) * dr)

    M = 359.2242 + 29.10535608 * k - 0.0000333 * T2 - 0.00000347 * T3      # sun's mean anomaly
    Mpr = 306.0253 + 385.81691806 * k + 0.0107306 * T2 + 0.00001236 * T3   # moon's mean anomaly
    F = 21.2964 + 390.67050646 * k - 0.0016528 * T2 - 0.00000239 * T3      # moon's argument of latitude

    C1 = (0.1734 - 0.000393 * T) * math.sin(M * dr) + 0.0021 * math.sin(2 * dr * M)
    C1 = C1 - 0.4068 * math.sin(Mpr * dr) + 0.0161 * math.sin(dr * 2 * Mpr)
    C1 = C1 - 0.0004 * math.sin(dr * 3 * Mpr)
    C1 = C1 + 0.0104 * math.sin(dr * 2 * F) - 0.0051 * math.sin(dr * (M + Mpr))
    C1 = C1 - 0.0074 * math.sin(dr * (M - Mpr)) + 0.0004 * math.sin(dr * (2 * F + M))
    C1 = C1 - 0.0004 * math.sin(dr * (2 * F - M)) - 0.0006 * math.sin(dr * (2 * F + Mpr))
    C1 = C1 + 0.0010 * math.sin(dr * (2 * F - Mpr)) + 0.0005 * math.sin(dr * (2 * Mpr + M))

    if T < -11:
        deltat = 0.001 + 0.000839 * T + 0.0002261 * T2 - 0.00000845 * T3 - 0.000000081 * T * T3
    else:
        deltat = -0.000278 + 0.000265 * T + 0.000262 * T2

    return jd1 + C1 - deltat


def sun_longitude(jdn: float) -> float:
    """Sun's apparent longitude in radians, normalized to [0, 2*pi)."""
    T = (jdn - 2451545.0) / 36525  # Julian centuries from 2000-01-01 12:00 UT
    T2 = T * T
    dr = math.pi / 180
    M = 357.52910 + 35999.05030 * T - 0.0001559 * T2 - 0.00000048 * T * T2  # mean anomaly, degrees
    L0 = 280.46645 + 36000.76983 * T + 0.0003032 * T2                      # mean longitude, degrees
    DL = (1.914600 - 0.004817 * T - 0.000014 * T2) * math.sin(dr * M)
    DL = DL + (0.019993 - 0.000101 * T) * math.sin(dr * 2 * M) + 0.000290 * math.sin(dr * 3 * M)
    L = (L0 + DL) * dr
    return L - math.pi * 2 * _int(L / (math.pi * 2))


def get_sun_longitude(day_number: int, time_zone: float) -> int:
    """Sun longitude sector (0..11) at local midnight of the given day."""
    return _int(sun_longitude(day_number - 0.5 - time_zone / 24) / math.pi * 6)


def get_new_moon_day(k: int, time_zone: float) -> int:
    """Local day number on which the k-th new moon falls."""
    return _int(new_moon(k) + 0.5 + time_zone / 24)


def get_lunar_month11(yy: int, time_zone: float) -> int:
    """Day number on which lunar month 11 of year yy begins."""
    off = jd_from_date(31, 12, yy) - 2415021
    k = _int(off / _SYNODIC_MONTH)
    nm = get_new_moon_day(k, time_zone)
    if get_sun_longitude(nm, time_zone) >= 9:
        nm = get_new_moon_day(k - 1, time_zone)
    return nm


def get_leap_month_offset(a11: int, time_zone: float) -> int:
    """Offset of the leap month counted from the month 11 starting at a11."""
    k = _int((a11 - _JD_1900_NEW_MOON) / _SYNODIC_MONTH + 0.5)
    i = 1
    arc = get_sun_longitude(get_new_moon_day(k + i, time_zone), time_zone)
    while True:
        last = arc
        i += 1
        arc = get_sun_longitude(get_new_moon_day(k + i, time_zone), time_zone)
        if arc == last or i >= 14:
            break
    return i - 1


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def solar_to_lunar(dd: int, mm: int, yy: int, time_zone: float) -> LunarDate:
    day_number = jd_from_date(dd, mm, yy)
    k = _int((day_number - _JD_1900_NEW_MOON) / _SYNODIC_MONTH)
    month_start = get_new_moon_day(k + 1, time_zone)
    if month_start > day_number:
        month_start = get_new_moon_day(k, time_zone)

    a11 = get_lunar_month11(yy, time_zone)
    b11 = a11
    if a11 >= month_start:
        lunar_year = yy
        a11 = get_lunar_month11(yy - 1, time_zone)
    else:
        lunar_year = yy + 1
        b11 = get_lunar_month11(yy + 1, time_zone)

    lunar_day = day_number - month_start + 1
    diff = _int((month_start - a11) / 29)
    is_leap = False
    lunar_month = diff + 11

    if b11 - a11 > 365:
        leap_month_diff = get_leap_month_offset(a11, time_zone)
        if diff >= leap_month_diff:
            lunar_month = diff + 10
            if diff == leap_month_diff:
                is_leap = True

    if lunar_month > 12:
        lunar_month -= 12
    if lunar_month >= 11 and diff < 4:
        lunar_year -= 1

    return LunarDate(lunar_day, lunar_month, lunar_year, is_leap)


def lunar_to_solar(
    lunar_day: int,
    lunar_month: int,
    lunar_year: int,
    is_leap: bool,
    time_zone: float,
) -> date | None:
    """Solar date of a lunar date, or None if the leap flag does not apply."""
    if lunar_month < 11:
        a11 = get_lunar_month11(lunar_year - 1, time_zone)
        b11 = get_lunar_month11(lunar_year, time_zone)
    else:
        a11 = get_lunar_month11(lunar_year, time_zone)
        b11 = get_lunar_month11(lunar_year + 1, time_zone)

    k = _int(0.5 + (a11 - _JD_1900_NEW_MOON) / _SYNODIC_MONTH)
    off = lunar_month - 11
    if off < 0:
        off += 12

    if b11 - a11 > 365:
        leap_off = get_leap_month_offset(a11, time_zone)
        leap_month = leap_off - 2
        if leap_month < 0:
            leap_month += 12
        if is_leap and lunar_month != leap_month:
            return None
        if is_leap or off >= leap_off:
            off += 1
    elif is_leap:
        return None

    month_start = get_new_moon_day(k + off, time_zone)
    day, month, year = jd_to_date(month_start + lunar_day - 1)
    return date(year, month, day)


class LunarCalendar:
    """Lunar calendar bound to a fixed UTC offset (hours)."""

    def __init__(self, time_zone: float = DEFAULT_TIME_ZONE) -> None:
        self.time_zone = time_zone
        self.tzinfo = timezone(timedelta(hours=time_zone))

    def _local_date(self, value: date | datetime) -> date:
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(self.tzinfo)
            return value.date()
        return value

    def solar_to_lunar(self, value: date | datetime) -> LunarDate:
        day = self._local_date(value)
        return solar_to_lunar(day.day, day.month, day.year, self.time_zone)

    def lunar_to_solar(
        self, year: int, month: int, day: int, is_leap: bool = False,
    ) -> date | None:
        return lunar_to_solar(day, month, year, is_leap, self.time_zone)

    def month_containing(self, value: date | datetime) -> LunarMonth:
        """Return the lunation that contains the given solar date."""
        day = self._local_date(value)
        day_number = jd_from_date(day.day, day.month, day.year)
        k = _int((day_number - _JD_1900_NEW_MOON) / _SYNODIC_MONTH) + 1
        start = get_new_moon_day(k, self.time_zone)
        if start > day_number:
            k -= 1
            start = get_new_moon_day(k, self.time_zone)
        end = get_new_moon_day(k + 1, self.time_zone)

        d, m, y = jd_to_date(start)
        lunar = solar_to_lunar(d, m, y, self.time_zone)
        return LunarMonth(
            year=lunar.year,
            month=lunar.month,
            is_leap=lunar.is_leap,
            start=date(y, m, d),
            days=end - start,
        )

    def next_month(self, lunar_month: LunarMonth) -> LunarMonth:
        return self.month_containing(lunar_month.start + timedelta(days=lunar_month.days))

    def lunar_month_days(
        self, year: int, month: int, is_leap: bool = False,
    ) -> int | None:
        """Number of days (29 or 30) in a lunar month, None if it doesn't exist."""
        first = self.lunar_to_solar(year, month, 1, is_leap)
        if first is None:
            return None
        return self.month_containing(first).days
