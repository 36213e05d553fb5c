"""Tests for src.core.lunar_calendar — solar/lunar conversion."""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.core.lunar_calendar import (
    LunarCalendar,
    LunarDate,
    get_sun_longitude,
    jd_from_date,
    jd_to_date,
    sun_longitude,
)


@pytest.fixture
def lc():
    return LunarCalendar()


# ---------------------------------------------------------------------------
# Julian day numbers
# ---------------------------------------------------------------------------


class TestJulianDayNumber:
    def test_j2000_epoch(self):
        assert jd_from_date(1, 1, 2000) == 2451545

    def test_first_gregorian_day(self):
        assert jd_from_date(15, 10, 1582) == 2299161

    def test_last_julian_day(self):
        assert jd_from_date(4, 10, 1582) == 2299160

    def test_inverse_gregorian(self):
        assert jd_to_date(2451545) == (1, 1, 2000)

    def test_inverse_at_calendar_switch(self):
        assert jd_to_date(2299161) == (15, 10, 1582)
        assert jd_to_date(2299160) == (4, 10, 1582)

    def test_inverse_over_a_range(self):
        start = jd_from_date(1, 1, 1990)
        for jd in range(start, start + 800, 7):
            d, m, y = jd_to_date(jd)
            assert jd_from_date(d, m, y) == jd


class TestSunLongitude:
    def test_normalized_to_full_circle(self):
        for jd in range(2451545, 2451545 + 400, 13):
            value = sun_longitude(jd)
            assert 0 <= value < 2 * 3.141592653589793

    def test_sector_range(self):
        day = jd_from_date(21, 12, 2024)
        assert 0 <= get_sun_longitude(day, 7.0) <= 11


# ---------------------------------------------------------------------------
# Solar -> lunar
# ---------------------------------------------------------------------------


class TestSolarToLunar:
    @pytest.mark.parametrize(
        "solar, expected",
        [
            (date(2025, 1, 29), LunarDate(1, 1, 2025)),    # Tet 2025
            (date(2024, 2, 10), LunarDate(1, 1, 2024)),    # Tet 2024
            (date(2025, 2, 12), LunarDate(15, 1, 2025)),   # first full moon 2025
            (date(2024, 3, 15), LunarDate(6, 2, 2024)),
            (date(2023, 12, 31), LunarDate(19, 11, 2023)),
            (date(2023, 1, 22), LunarDate(1, 1, 2023)),    # Tet 2023
            (date(2026, 2, 17), LunarDate(1, 1, 2026)),    # Tet 2026
        ],
    )
    def test_known_dates(self, lc, solar, expected):
        assert lc.solar_to_lunar(solar) == expected

    def test_leap_month_2023(self, lc):
        result = lc.solar_to_lunar(date(2023, 3, 22))
        assert result == LunarDate(1, 2, 2023, is_leap=True)

    def test_regular_month_before_leap(self, lc):
        result = lc.solar_to_lunar(date(2023, 2, 20))
        assert result == LunarDate(1, 2, 2023, is_leap=False)

    def test_datetime_converted_to_calendar_offset(self, lc):
        # 20:00 UTC on Jan 28 is already Jan 29 at UTC+7
        value = datetime(2025, 1, 28, 20, 0, tzinfo=timezone.utc)
        assert lc.solar_to_lunar(value) == LunarDate(1, 1, 2025)


# ---------------------------------------------------------------------------
# Lunar -> solar
# ---------------------------------------------------------------------------


class TestLunarToSolar:
    @pytest.mark.parametrize(
        "year, month, day, expected",
        [
            (2025, 1, 1, date(2025, 1, 29)),
            (2024, 1, 1, date(2024, 2, 10)),
            (2025, 1, 15, date(2025, 2, 12)),
            (2024, 2, 6, date(2024, 3, 15)),
        ],
    )
    def test_known_dates(self, lc, year, month, day, expected):
        assert lc.lunar_to_solar(year, month, day) == expected

    def test_leap_month(self, lc):
        assert lc.lunar_to_solar(2023, 2, 1, is_leap=True) == date(2023, 3, 22)
        assert lc.lunar_to_solar(2025, 6, 1, is_leap=True) == date(2025, 7, 25)

    def test_leap_flag_on_wrong_month_is_invalid(self, lc):
        assert lc.lunar_to_solar(2025, 5, 1, is_leap=True) is None

    def test_leap_flag_in_year_without_leap_is_invalid(self, lc):
        assert lc.lunar_to_solar(2024, 2, 1, is_leap=True) is None

    def test_round_trip(self, lc):
        day = date(2020, 1, 1)
        while day < date(2030, 12, 31):
            lunar = lc.solar_to_lunar(day)
            back = lc.lunar_to_solar(lunar.year, lunar.month, lunar.day, lunar.is_leap)
            assert back == day, f"{day} -> {lunar} -> {back}"
            day += timedelta(days=17)


# ---------------------------------------------------------------------------
# Lunations
# ---------------------------------------------------------------------------


class TestLunarMonths:
    def test_month_containing(self, lc):
        month = lc.month_containing(date(2025, 2, 12))
        assert month.start == date(2025, 1, 29)
        assert (month.year, month.month, month.is_leap) == (2025, 1, False)
        assert month.days in (29, 30)

    def test_next_month_follows_without_gap(self, lc):
        month = lc.month_containing(date(2024, 1, 15))
        following = lc.next_month(month)
        assert following.start == month.start + timedelta(days=month.days)
        assert (following.year, following.month) == (2024, 1)
        assert following.start == date(2024, 2, 10)

    def test_next_month_enters_leap_month(self, lc):
        month = lc.month_containing(date(2023, 3, 1))
        following = lc.next_month(month)
        assert following.month == 2
        assert following.is_leap is True

    def test_last_day(self, lc):
        month = lc.month_containing(date(2024, 1, 15))
        assert month.last_day == date(2024, 2, 9)

    @pytest.mark.parametrize("month", [1, 2, 6, 12])
    def test_month_lengths(self, lc, month):
        assert lc.lunar_month_days(2025, month) in (29, 30)

    def test_month_days_for_invalid_leap(self, lc):
        assert lc.lunar_month_days(2025, 5, is_leap=True) is None
