"""
Date, time zone and recurrence-rule helpers for the TickTick Open API.

TickTick exchanges dates as ``YYYY-MM-DDTHH:mm:ss[.fff]+HHMM``. It rejects the
``Z`` suffix, so everything that leaves this module uses a numeric offset.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

WIRE_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,3})?([+-]\d{4}|Z)$"
)
DOT_PATTERN = re.compile(
    r"^(\d{1,2})\.(\d{1,2})\.(\d{4})(?:\s+(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$"
)
DASH_PATTERN = re.compile(
    r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:\s+(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$"
)
UNTIL_PATTERN = re.compile(r"^\d{8}T\d{6}Z$")

SUPPORTED_FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "YEARLY")
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MILLISECOND = timedelta(milliseconds=1)

# Formats tried after ISO 8601 when nothing more specific matched
_FALLBACK_FORMATS = (
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d, %Y %H:%M",
    "%b %d, %Y %H:%M",
    "%d %B %Y",
    "%d %b %Y",
    "%a, %d %b %Y %H:%M:%S %z",
)

DateInput = Union[str, datetime]


class InvalidDateError(ValueError):
    """Raised when a value cannot be read as a date."""


class UnrecognizedDateFormatError(InvalidDateError):
    """Raised when no known date format matches the input."""


class InvalidTimeZoneError(ValueError):
    """Raised when a time zone name is not a known IANA identifier."""


def _format_utc(value: datetime) -> str:
    """Render an aware datetime as UTC wire format with milliseconds."""
    try:
        utc = value.astimezone(timezone.utc)
    except OverflowError as e:
        raise InvalidDateError(f"Date out of range: {value.isoformat()}") from e
    return (
        f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}T"
        f"{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}."
        f"{utc.microsecond // 1000:03d}+0000"
    )


def _parse_wire(value: str) -> datetime:
    fmt = "%Y-%m-%dT%H:%M:%S.%f%z" if "." in value else "%Y-%m-%dT%H:%M:%S%z"
    return datetime.strptime(value, fmt)


def _generic_parse(value: str) -> Optional[datetime]:
    """Best-effort parse of a free-form date string; naive results are UTC."""
    text = value.strip()
    if not text:
        return None
    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _FALLBACK_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_datetime(value: Optional[str]) -> bool:
    """Return True if ``value`` is wire formatted and denotes a real instant."""
    if not value or not isinstance(value, str):
        return False
    if not WIRE_PATTERN.match(value):
        return False
    try:
        _parse_wire(value)
    except ValueError:
        return False
    return True


def parse_datetime(value: DateInput) -> datetime:
    """
    Read a wire string, free-form string or datetime as an aware datetime.

    Raises:
        InvalidDateError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        raise InvalidDateError(f"Invalid date: {value!r}")
    if validate_datetime(value):
        return _parse_wire(value)
    parsed = _generic_parse(value)
    if parsed is None:
        raise InvalidDateError(f"Invalid date: {value}")
    return parsed


def normalize_to_wire(value: DateInput) -> str:
    """
    Convert a datetime or date string into the wire format TickTick expects.

    Strings already in wire format keep their text, with a trailing ``Z``
    replaced by ``+0000``. Anything else is parsed and re-emitted in UTC.

    Args:
        value: Date string or datetime (naive datetimes are taken as UTC)

    Returns:
        Wire-formatted date string

    Raises:
        InvalidDateError: If the value cannot be parsed
    """
    if isinstance(value, str):
        if validate_datetime(value):
            return value[:-1] + "+0000" if value.endswith("Z") else value
        parsed = _generic_parse(value)
        if parsed is None:
            raise InvalidDateError(f"Invalid date: {value}")
        return _format_utc(parsed)

    if not isinstance(value, datetime):
        raise InvalidDateError("Date must be a datetime or a string")
    return _format_utc(parse_datetime(value))


def timestamp_to_wire(timestamp: int) -> str:
    """Convert a Unix timestamp in milliseconds to wire format."""
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise InvalidDateError(f"Invalid timestamp: {timestamp!r}")
    try:
        return _format_utc(EPOCH + timestamp * ONE_MILLISECOND)
    except OverflowError as e:
        raise InvalidDateError(f"Timestamp out of range: {timestamp}") from e


def wire_to_timestamp(value: str) -> int:
    """Convert a wire-formatted date to a Unix timestamp in milliseconds."""
    if not validate_datetime(value):
        raise InvalidDateError(f"Invalid wire date: {value}")
    return (_parse_wire(value) - EPOCH) // ONE_MILLISECOND


def validate_time_zone(name: Optional[str]) -> bool:
    """Return True if ``name`` is a recognized IANA time zone."""
    if not name or not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        # OSError: directory names such as "Europe" inside the tz database
        return False
    return True


def _zone(name: str) -> ZoneInfo:
    if not validate_time_zone(name):
        raise InvalidTimeZoneError(f"Invalid time zone: {name}")
    return ZoneInfo(name)


def validate_date_range(
    start_date: Optional[DateInput], due_date: Optional[DateInput]
) -> bool:
    """
    Check that the start date is not later than the due date.

    Returns True when either date is absent.

    Raises:
        InvalidDateError: If a present date cannot be parsed
    """
    if not start_date or not due_date:
        return True
    return parse_datetime(start_date) <= parse_datetime(due_date)


def _build(year: str, month: str, day: str, hours: str, minutes: str,
           seconds: str, tz) -> Optional[datetime]:
    try:
        return datetime(int(year), int(month), int(day), int(hours),
                        int(minutes), int(seconds), tzinfo=tz)
    except ValueError:
        return None


def parse_flexible(value: str, tz: Optional[str] = None) -> str:
    """
    Parse a date in one of several human formats and return wire format.

    Supported inputs, in order: wire format, ``DD.MM.YYYY`` or
    ``MM.DD.YYYY`` (optionally followed by ``HH:mm[:ss]``),
    ``YYYY-MM-DD[ HH:mm[:ss]]``, then anything ISO 8601 or a few common
    textual forms accept.

    Dotted dates are ambiguous. When both readings are valid and the first
    segment is 12 or less, the month-first reading wins, so ``05.06.2024``
    becomes May 6th. This is a heuristic and can pick the wrong day.

    Wall-clock inputs are read in ``tz`` when it is a known zone, else UTC.

    Raises:
        InvalidDateError: If the input is empty
        UnrecognizedDateFormatError: If no format matches
    """
    if not value or not isinstance(value, str):
        raise InvalidDateError("Date must not be empty")

    if validate_datetime(value):
        return normalize_to_wire(value)

    zone = ZoneInfo(tz) if validate_time_zone(tz) else timezone.utc
    text = value.strip()

    match = DOT_PATTERN.match(text)
    if match:
        first, second, year, hours, minutes, seconds = match.groups()
        clock = (hours or "0", minutes or "0", seconds or "0")
        day_first = _build(year, second, first, *clock, zone)
        month_first = _build(year, first, second, *clock, zone)
        if day_first and month_first:
            return normalize_to_wire(month_first if int(first) <= 12 else day_first)
        if day_first or month_first:
            return normalize_to_wire(day_first or month_first)

    match = DASH_PATTERN.match(text)
    if match:
        year, month, day, hours, minutes, seconds = match.groups()
        built = _build(year, month, day, hours or "0", minutes or "0",
                       seconds or "0", zone)
        if built:
            return normalize_to_wire(built)

    parsed = _generic_parse(text)
    if parsed is not None:
        return normalize_to_wire(parsed)

    raise UnrecognizedDateFormatError(f"Unrecognized date format: {value}")


def validate_recurrence_rule(rule: Optional[str]) -> bool:
    """
    Validate an ``RRULE:`` string against the subset TickTick supports.

    FREQ is required and limited to DAILY, WEEKLY, MONTHLY and YEARLY.
    INTERVAL and COUNT must be positive integers, UNTIL must look like
    ``YYYYMMDDTHHMMSSZ``, BYDAY takes weekday codes and BYMONTHDAY takes
    days in [-31, -1] or [1, 31].
    """
    if not rule or not isinstance(rule, str) or not rule.startswith("RRULE:"):
        return False

    parts = {}
    for part in rule[len("RRULE:"):].split(";"):
        if not part:
            continue
        key, sep, val = part.partition("=")
        if not sep:
            return False
        parts[key.upper()] = val

    if parts.get("FREQ") not in SUPPORTED_FREQUENCIES:
        return False

    for key in ("INTERVAL", "COUNT"):
        if key in parts and not (parts[key].isdigit() and int(parts[key]) >= 1):
            return False

    if "UNTIL" in parts and not UNTIL_PATTERN.match(parts["UNTIL"]):
        return False

    if "BYDAY" in parts:
        if any(day not in WEEKDAY_CODES for day in parts["BYDAY"].split(",")):
            return False

    if "BYMONTHDAY" in parts:
        for day in parts["BYMONTHDAY"].split(","):
            try:
                number = int(day)
            except ValueError:
                return False
            if number == 0 or not -31 <= number <= 31:
                return False

    return True


def convert_between_zones(when: DateInput, from_tz: str, to_tz: str) -> datetime:
    """
    Shift an instant by the difference between two zones' UTC offsets.

    The offsets are taken at ``when``, so DST transitions are respected.
    The result is an aware UTC datetime.

    Raises:
        InvalidTimeZoneError: If either zone is unknown
        InvalidDateError: If ``when`` cannot be parsed
    """
    source = _zone(from_tz)
    target = _zone(to_tz)
    instant = parse_datetime(when).astimezone(timezone.utc)
    from_offset = instant.astimezone(source).utcoffset()
    to_offset = instant.astimezone(target).utcoffset()
    return instant + (to_offset - from_offset)


def day_window(now: datetime, tz: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Return the ``[start, end)`` bounds of the calendar day containing ``now``.

    The day is taken in ``tz`` when given, otherwise in UTC.

    Raises:
        InvalidTimeZoneError: If ``tz`` is given but unknown
    """
    zone = _zone(tz) if tz else timezone.utc
    local = parse_datetime(now).astimezone(zone)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)
