"""Validation and formatting of fixed-width ISO-8601 date literals.

The only accepted shape is ``YYYY-MM-DDTHH:mm:ss.sssZ`` (24 characters, UTC),
which is what the encoder writes and what the decoder recognizes.
"""

from __future__ import annotations

import calendar
import datetime as dt
from typing import Any
from typing import Final

from ._chars import is_digit

ISO_LENGTH: Final = 24

# Offset -> required separator
_SEPARATORS: Final = {
    4: "-",
    7: "-",
    10: "T",
    13: ":",
    16: ":",
    19: ".",
    23: "Z",
}

# Field name -> (start, end, minimum, maximum); day is bounded separately
_FIELDS: Final = {
    "year": (0, 4, 0, 9999),
    "month": (5, 7, 1, 12),
    "day": (8, 10, 1, 31),
    "hour": (11, 13, 0, 23),
    "minute": (14, 16, 0, 59),
    "second": (17, 19, 0, 59),
    "millisecond": (20, 23, 0, 999),
}


def _days_in_month(month: int, year: int) -> int:
    # calendar.monthrange rejects year 0, which the literal format allows
    if month == 2:
        return 29 if calendar.isleap(year or 2000) else 28
    return calendar.monthrange(2001, month)[1]


def _split_fields(value: str) -> dict[str, int] | None:
    """Extracts the numeric fields of a candidate literal, or None."""
    if len(value) != ISO_LENGTH:
        return None

    for offset, separator in _SEPARATORS.items():
        if value[offset] != separator:
            return None

    fields = {}
    for name, (start, end, low, high) in _FIELDS.items():
        digits = value[start:end]
        if not all(is_digit(c) for c in digits):
            return None
        number = int(digits)
        if not low <= number <= high:
            return None
        fields[name] = number

    if fields["day"] > _days_in_month(fields["month"], fields["year"]):
        return None

    return fields


def is_iso_string(value: Any) -> bool:
    """
    Checks whether ``value`` is a 24-character ISO-8601 UTC literal.

    Every numeric field is range checked, including the day against the
    length of its month.
    """
    return isinstance(value, str) and _split_fields(value) is not None


def parse_iso_string(value: str) -> dt.datetime | None:
    """
    Converts a literal accepted by ``is_iso_string`` to an aware datetime.

    Returns None for invalid literals and for year 0000, which datetime
    cannot represent.
    """
    fields = _split_fields(value)
    if fields is None or fields["year"] < dt.MINYEAR:
        return None

    return dt.datetime(
        fields["year"],
        fields["month"],
        fields["day"],
        fields["hour"],
        fields["minute"],
        fields["second"],
        fields["millisecond"] * 1000,
        tzinfo=dt.UTC,
    )


def to_iso_string(value: dt.date) -> str | None:
    """
    Formats a date or datetime as a 24-character ISO-8601 UTC literal.

    Naive datetimes are taken to be UTC and plain dates are midnight UTC.
    Returns None when the instant falls outside the representable range
    after conversion to UTC.
    """
    if isinstance(value, dt.datetime):
        moment = value
    else:
        moment = dt.datetime(value.year, value.month, value.day)

    if moment.tzinfo is not None and moment.utcoffset() is not None:
        try:
            moment = moment.astimezone(dt.UTC)
        except OverflowError:
            return None

    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
        f".{moment.microsecond // 1000:03d}Z"
    )
