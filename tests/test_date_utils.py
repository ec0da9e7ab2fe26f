"""Tests for date, time zone and recurrence helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from ticktick_mcp.date_utils import (
    InvalidDateError,
    InvalidTimeZoneError,
    UnrecognizedDateFormatError,
    convert_between_zones,
    day_window,
    normalize_to_wire,
    parse_datetime,
    parse_flexible,
    timestamp_to_wire,
    validate_date_range,
    validate_datetime,
    validate_recurrence_rule,
    validate_time_zone,
    wire_to_timestamp,
)


class TestValidateDatetime:
    @pytest.mark.parametrize("value", [
        "2024-01-15T10:30:00+0000",
        "2024-01-15T10:30:00.123+0300",
        "2024-01-15T10:30:00-0500",
        "2024-01-15T10:30:00Z",
        "2024-01-15T10:30:00.5Z",
    ])
    def test_accepts_wire_format(self, value):
        assert validate_datetime(value)

    @pytest.mark.parametrize("value", [
        None,
        "",
        "2024-01-15",
        "2024-01-15 10:30:00",
        "2024-01-15T10:30:00+00:00",
        "2024-13-01T10:30:00+0000",
        "2024-02-30T10:30:00+0000",
        "2024-01-15T10:30:00.1234Z",
    ])
    def test_rejects_other_input(self, value):
        assert not validate_datetime(value)


class TestNormalizeToWire:
    def test_z_becomes_numeric_offset(self):
        assert normalize_to_wire("2024-01-15T10:30:00Z") == "2024-01-15T10:30:00+0000"
        assert normalize_to_wire("2024-01-15T10:30:00.250Z") == "2024-01-15T10:30:00.250+0000"

    def test_z_and_offset_forms_denote_same_instant(self):
        value = "2024-06-01T23:59:59.999Z"
        assert parse_datetime(normalize_to_wire(value)) == parse_datetime(value)

    def test_offset_kept_as_is(self):
        assert normalize_to_wire("2024-01-15T10:30:00+0300") == "2024-01-15T10:30:00+0300"

    def test_generic_string_is_converted_to_utc(self):
        assert normalize_to_wire("2024-01-15T10:30:00+02:00") == "2024-01-15T08:30:00.000+0000"
        assert normalize_to_wire("2024-01-15") == "2024-01-15T00:00:00.000+0000"

    def test_datetime_input(self):
        aware = datetime(2024, 1, 15, 10, 30, tzinfo=timezone(timedelta(hours=-5)))
        naive = datetime(2024, 1, 15, 10, 30, 0, 123456)
        assert normalize_to_wire(aware) == "2024-01-15T15:30:00.000+0000"
        assert normalize_to_wire(naive) == "2024-01-15T10:30:00.123+0000"

    @pytest.mark.parametrize("value", ["not a date", "", 12345])
    def test_unparsable_raises(self, value):
        with pytest.raises(InvalidDateError):
            normalize_to_wire(value)

    def test_out_of_range_after_utc_conversion(self):
        with pytest.raises(InvalidDateError):
            normalize_to_wire("9999-12-31T23:00:00-05:00")


class TestTimestamps:
    @pytest.mark.parametrize("ms", [0, 1, 1705314600123, -1, -86400001, 253402300799999])
    def test_round_trip(self, ms):
        assert wire_to_timestamp(timestamp_to_wire(ms)) == ms

    def test_known_value(self):
        assert timestamp_to_wire(1705314600000) == "2024-01-15T10:30:00.000+0000"
        assert wire_to_timestamp("2024-01-15T13:30:00+0300") == 1705314600000

    @pytest.mark.parametrize("value", [1.5, "100", True, None])
    def test_rejects_non_integers(self, value):
        with pytest.raises(InvalidDateError):
            timestamp_to_wire(value)

    def test_rejects_out_of_range(self):
        with pytest.raises(InvalidDateError):
            timestamp_to_wire(10 ** 18)

    def test_wire_to_timestamp_rejects_invalid(self):
        with pytest.raises(InvalidDateError):
            wire_to_timestamp("2024-01-15")


def test_validate_time_zone():
    assert validate_time_zone("America/Los_Angeles")
    assert validate_time_zone("UTC")
    assert not validate_time_zone("Mars/Olympus")
    assert not validate_time_zone("")
    assert not validate_time_zone(None)
    assert not validate_time_zone("../etc/passwd")


@pytest.mark.parametrize("name", ["Europe", "America", "Etc"])
def test_tz_database_directories_are_not_zones(name):
    assert not validate_time_zone(name)
    with pytest.raises(InvalidTimeZoneError):
        day_window(datetime(2024, 3, 10, tzinfo=timezone.utc), name)
    assert parse_flexible("2024-01-15 10:00", name) == "2024-01-15T10:00:00.000+0000"


class TestDateRange:
    def test_absent_dates_are_valid(self):
        assert validate_date_range(None, "2024-01-01T00:00:00+0000")
        assert validate_date_range("2024-01-01T00:00:00+0000", "")
        assert validate_date_range(None, None)

    def test_start_after_due(self):
        assert not validate_date_range("2024-01-02T00:00:00+0000", "2024-01-01T00:00:00+0000")

    def test_start_equal_or_before_due(self):
        assert validate_date_range("2024-01-01T00:00:00+0000", "2024-01-01T00:00:00+0000")
        assert validate_date_range("2024-01-01T05:00:00+0300", "2024-01-01T03:00:00Z")

    def test_unparsable_raises(self):
        with pytest.raises(InvalidDateError):
            validate_date_range("garbage", "2024-01-01T00:00:00+0000")


class TestParseFlexible:
    def test_wire_format_passthrough(self):
        assert parse_flexible("2024-01-15T10:30:00Z") == "2024-01-15T10:30:00+0000"

    def test_ambiguous_dotted_date_prefers_month_first(self):
        assert parse_flexible("05.06.2024") == "2024-05-06T00:00:00.000+0000"

    def test_day_first_when_first_segment_exceeds_twelve(self):
        assert parse_flexible("25.12.2024 14:30") == "2024-12-25T14:30:00.000+0000"

    def test_month_first_only_reading(self):
        assert parse_flexible("12.25.2024") == "2024-12-25T00:00:00.000+0000"

    def test_dash_format_with_time(self):
        assert parse_flexible("2024-3-5 9:05:07") == "2024-03-05T09:05:07.000+0000"

    def test_time_zone_applies_to_wall_clock(self):
        assert parse_flexible("2024-01-15 10:00", "Europe/Moscow") == "2024-01-15T07:00:00.000+0000"

    def test_unknown_time_zone_falls_back_to_utc(self):
        assert parse_flexible("2024-01-15 10:00", "Nowhere/City") == "2024-01-15T10:00:00.000+0000"

    def test_generic_fallback(self):
        assert parse_flexible("2024/01/15") == "2024-01-15T00:00:00.000+0000"
        assert parse_flexible("January 15, 2024") == "2024-01-15T00:00:00.000+0000"

    def test_unrecognized(self):
        with pytest.raises(UnrecognizedDateFormatError):
            parse_flexible("next tuesday-ish")

    def test_impossible_dotted_date(self):
        with pytest.raises(UnrecognizedDateFormatError):
            parse_flexible("31.31.2024")

    def test_empty(self):
        with pytest.raises(InvalidDateError):
            parse_flexible("")


class TestRecurrenceRule:
    @pytest.mark.parametrize("rule", [
        "RRULE:FREQ=DAILY;INTERVAL=1",
        "RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR",
        "RRULE:FREQ=MONTHLY;BYMONTHDAY=1,15,-1",
        "RRULE:FREQ=YEARLY;COUNT=5",
        "RRULE:FREQ=DAILY;UNTIL=20241231T235959Z",
    ])
    def test_valid(self, rule):
        assert validate_recurrence_rule(rule)

    @pytest.mark.parametrize("rule", [
        None,
        "",
        "FREQ=DAILY",
        "RRULE:INTERVAL=1",
        "RRULE:FREQ=HOURLY",
        "RRULE:FREQ=DAILY;INTERVAL=0",
        "RRULE:FREQ=DAILY;INTERVAL=abc",
        "RRULE:FREQ=DAILY;COUNT=-2",
        "RRULE:FREQ=DAILY;UNTIL=2024-12-31",
        "RRULE:FREQ=WEEKLY;BYDAY=MO,XX",
        "RRULE:FREQ=MONTHLY;BYMONTHDAY=0",
        "RRULE:FREQ=MONTHLY;BYMONTHDAY=32",
        "RRULE:FREQ=MONTHLY;BYMONTHDAY=first",
    ])
    def test_invalid(self, rule):
        assert not validate_recurrence_rule(rule)


class TestConvertBetweenZones:
    def test_shift_by_offset_difference(self):
        when = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        # Moscow is UTC+3, Los Angeles is UTC-8 in January
        shifted = convert_between_zones(when, "Europe/Moscow", "America/Los_Angeles")
        assert shifted == when - timedelta(hours=11)

    def test_dst_is_respected(self):
        summer = convert_between_zones("2024-07-01T12:00:00+0000", "UTC", "America/New_York")
        winter = convert_between_zones("2024-01-01T12:00:00+0000", "UTC", "America/New_York")
        assert summer.hour == 8
        assert winter.hour == 7

    def test_unknown_zone(self):
        with pytest.raises(InvalidTimeZoneError):
            convert_between_zones("2024-01-01T00:00:00+0000", "UTC", "Mars/Olympus")


class TestDayWindow:
    def test_utc_default(self):
        start, end = day_window(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))
        assert start == datetime(2024, 3, 10, tzinfo=timezone.utc)
        assert end - start == timedelta(days=1)

    def test_zone_shifts_the_day(self):
        now = datetime(2024, 3, 10, 20, 0, tzinfo=timezone.utc)
        start, _ = day_window(now, "Asia/Tokyo")
        assert start == datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)

    def test_unknown_zone(self):
        with pytest.raises(InvalidTimeZoneError):
            day_window(datetime.now(timezone.utc), "Mars/Olympus")
