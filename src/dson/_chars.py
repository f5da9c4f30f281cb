"""Character classification and escape tables shared by the parser and encoder."""

from __future__ import annotations

from types import MappingProxyType
from typing import Final

# Characters skipped between tokens (includes form feed, unlike RFC 8259)
WHITESPACE: Final = frozenset(" \t\r\n\f")
DIGITS: Final = frozenset("0123456789")
HEX_DIGITS: Final = frozenset("0123456789abcdefABCDEF")

# Escape code following a backslash -> literal character
ESCAPES: Final = MappingProxyType(
    {
        '"': '"',
        "\\": "\\",
        "/": "/",
        "b": "\b",
        "f": "\f",
        "n": "\n",
        "r": "\r",
        "t": "\t",
    }
)

# Literal character -> escape sequence written by the encoder
ESCAPED: Final = MappingProxyType(
    {char: "\\" + code for code, char in ESCAPES.items() if code != "/"}
)

# Below this code point characters without a short escape become \u00XX
CONTROL_LIMIT: Final = 0x20

HIGH_SURROGATES: Final = range(0xD800, 0xDC00)
LOW_SURROGATES: Final = range(0xDC00, 0xE000)


def is_whitespace(char: str) -> bool:
    """Checks whether ``char`` is a single whitespace character."""
    return char in WHITESPACE


def is_digit(char: str) -> bool:
    """Checks whether ``char`` is a single ASCII digit."""
    return char in DIGITS


def is_hex_digit(char: str) -> bool:
    """Checks whether ``char`` is a single hexadecimal digit."""
    return char in HEX_DIGITS


def is_high_surrogate(char: str) -> bool:
    return len(char) == 1 and ord(char) in HIGH_SURROGATES


def is_low_surrogate(char: str) -> bool:
    return len(char) == 1 and ord(char) in LOW_SURROGATES


def join_surrogates(high: str, low: str) -> str:
    """Combines a UTF-16 surrogate pair into the character it encodes."""
    return chr(
        0x10000
        + ((ord(high) - HIGH_SURROGATES.start) << 10)
        + (ord(low) - LOW_SURROGATES.start)
    )


def escape_char(char: str) -> str:
    """Returns the JSON spelling of a single character inside a string."""
    escaped = ESCAPED.get(char)
    if escaped is not None:
        return escaped
    if ord(char) < CONTROL_LIMIT:
        return f"\\u{ord(char):04x}"
    return char
