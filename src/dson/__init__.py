"""
Date-aware JSON parsing and encoding without the standard library json module.

Provides a recursive-descent decoder that turns ISO-8601 date literals into
datetime values and an encoder that writes them back, truncates circular
references and drops values JSON cannot represent.

Escaped literals such as ``"\\2023-11-03T23:00:00.000Z"`` always decode to
datetimes. Plain strings holding only a literal do too, unless
``parse_dates=False`` is passed.
"""

import dataclasses
import datetime as dt
import logging
import math
import numbers
import os
import re
import threading
import time
import weakref
from collections import UserString
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Iterator
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import IO
from typing import Any
from typing import Final
from typing import TypeAlias
from typing import cast

from ._chars import ESCAPES
from ._chars import escape_char
from ._chars import is_digit
from ._chars import is_hex_digit
from ._chars import is_high_surrogate
from ._chars import is_low_surrogate
from ._chars import is_whitespace
from ._chars import join_surrogates
from ._dates import ISO_LENGTH
from ._dates import is_iso_string
from ._dates import parse_iso_string
from ._dates import to_iso_string

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


class _Undefined(Enum):
    """Marks the absence of a value, distinct from JSON null."""

    TOKEN = "undefined"

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED: Final = _Undefined.TOKEN

# Type aliases for domain concepts - recursive definition
JsonValue = (
    str
    | int
    | float
    | bool
    | None
    | dt.datetime
    | dict[str, "JsonValue"]
    | list["JsonValue"]
)
Position: TypeAlias = int

# Revive callbacks get string keys (list indices included) and may return
# anything, or UNDEFINED to drop the entry
ReviveHook = Callable[[str, Any], Any] | None

# Whitespace width of one nesting level in pretty output
INDENT_WIDTH: Final = 2

# Per-stage timing, collected only when DSON_PROFILE is set
PROFILE_HOT_PATHS = __debug__ and "DSON_PROFILE" in os.environ


@dataclass
class HotPathStats:
    """Timing totals for one parser or encoder stage."""

    stage: str
    calls: int = 0
    elapsed_ns: int = 0
    chars: int = 0

    @property
    def mean_ns(self) -> float:
        return self.elapsed_ns / self.calls if self.calls else 0.0

    def add(self, elapsed_ns: int, chars: int = 0) -> None:
        self.calls += 1
        self.elapsed_ns += elapsed_ns
        self.chars += chars


# Shared by every thread running a profiled call
_hot_path_stats: dict[str, HotPathStats] = {}
_hot_path_lock = threading.Lock()


@contextmanager
def _profiled(stage: str, chars: int = 0) -> Iterator[None]:
    """Adds the time spent in the block to the totals for ``stage``."""
    if not PROFILE_HOT_PATHS:
        yield
        return

    started = time.perf_counter_ns()
    try:
        yield
    finally:
        elapsed = time.perf_counter_ns() - started
        with _hot_path_lock:
            stats = _hot_path_stats.setdefault(stage, HotPathStats(stage))
            stats.add(elapsed, chars)


def get_hot_path_stats() -> dict[str, HotPathStats]:
    """Returns a snapshot of the per-stage totals, empty unless profiling."""
    with _hot_path_lock:
        return {
            stage: dataclasses.replace(stats)
            for stage, stats in _hot_path_stats.items()
        }


def clear_hot_path_stats() -> None:
    with _hot_path_lock:
        _hot_path_stats.clear()


class JSONDecodeError(ValueError):
    """
    Raised when a document cannot be decoded.

    ``pos`` is the offset of the offending character in ``doc``; ``lineno``
    and ``colno`` locate it for people and count from 1.
    """

    def __init__(self, msg: str, doc: str = "", pos: Position = 0) -> None:
        lineno, colno = _locate(doc, pos)
        super().__init__(f"{msg} at line {lineno}, column {colno}")
        self.msg = msg
        self.doc = doc
        self.pos = pos
        self.lineno = lineno
        self.colno = colno

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.msg, self.doc, self.pos)


def _locate(doc: str, pos: Position) -> tuple[int, int]:
    line_start = doc.rfind("\n", 0, pos) + 1
    return doc.count("\n", 0, pos) + 1, pos - line_start + 1


def _describe(char: str) -> str:
    """Renders the current character for diagnostics."""
    return repr(char) if char else "end of input"


@dataclass(frozen=True)
class ParseConfig:
    """
    Configures JSON parsing behavior with immutable settings.

    Holds the per-call revive callback so that nothing about an in-flight
    parse lives outside the call.
    """

    revive: ReviveHook = None
    parse_dates: bool = True

    def __post_init__(self) -> None:
        if self.revive is not None and not callable(self.revive):
            raise TypeError("revive must be callable")
        if not isinstance(self.parse_dates, bool):
            raise TypeError("parse_dates must be a boolean")


@dataclass(frozen=True)
class EncodeConfig:
    """Configures JSON encoding behavior with immutable settings."""

    pretty: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.pretty, bool):
            raise TypeError("pretty must be a boolean")


class JsonCursor:
    """
    Walks JSON text one character at a time.

    ``char`` always holds the character just consumed and under inspection,
    or the empty string once the input is exhausted. ``pos`` only grows.
    """

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.pos: Position = 0
        # A space makes the first whitespace skip load the real first character
        self.char = " "

    @property
    def index(self) -> Position:
        """Offset of ``char`` within the text."""
        return min(max(self.pos - 1, 0), self.length)

    def advance(self, expected: str | None = None) -> str:
        """Checks the current character if asked to, then moves to the next one."""
        if expected is not None and expected != self.char:
            raise self.error(
                f"Expected {expected!r} instead of {_describe(self.char)}"
            )
        self.char = self.text[self.pos] if self.pos < self.length else ""
        if self.pos <= self.length:
            self.pos += 1
        return self.char

    def peek(self, count: int) -> str:
        """Returns up to ``count`` characters following ``char``."""
        return self.text[self.pos : self.pos + count]

    def skip_whitespace(self) -> None:
        with _profiled("skip_whitespace"):
            while self.char and is_whitespace(self.char):
                self.advance()

    def error(self, msg: str, pos: Position | None = None) -> JSONDecodeError:
        return JSONDecodeError(msg, self.text, self.index if pos is None else pos)


_LITERALS: Final = {
    "t": ("true", True),
    "f": ("false", False),
    "n": ("null", None),
}


class JsonParser:
    """
    Recursive descent parser over a single ``JsonCursor``.

    One parser serves one call; sub-parsers are entered with the cursor on
    their first character and leave it on the first character after them.
    """

    def __init__(self, cursor: JsonCursor, config: ParseConfig):
        self.cursor = cursor
        self.config = config

    def parse(self) -> JsonValue:
        """Parses a complete document, rejecting anything after the value."""
        result = self.parse_value()
        self.cursor.skip_whitespace()
        if self.cursor.char:
            raise self.cursor.error("Extra data")
        return result

    def parse_value(self) -> JsonValue:
        """Parses any JSON value based on the current character."""
        cursor = self.cursor
        cursor.skip_whitespace()
        char = cursor.char

        if char == "{":
            return self.parse_object()
        elif char == "[":
            return self.parse_array()
        elif char == '"':
            return self.parse_string()
        elif char == "-" or is_digit(char):
            return self.parse_number()
        else:
            return self.parse_literal()

    def parse_object(self) -> dict[str, JsonValue]:
        with _profiled("parse_object"):
            cursor = self.cursor
            obj: dict[str, JsonValue] = {}

            cursor.advance("{")
            cursor.skip_whitespace()
            if cursor.char == "}":
                cursor.advance("}")
                return obj

            while cursor.char:
                key = self._parse_key()
                cursor.skip_whitespace()
                cursor.advance(":")
                obj[key] = self.parse_value()
                cursor.skip_whitespace()
                if cursor.char == "}":
                    cursor.advance("}")
                    return obj
                cursor.advance(",")
                cursor.skip_whitespace()

            raise cursor.error("Unterminated object")

    def parse_array(self) -> list[JsonValue]:
        with _profiled("parse_array"):
            cursor = self.cursor
            values: list[JsonValue] = []

            cursor.advance("[")
            cursor.skip_whitespace()
            if cursor.char == "]":
                cursor.advance("]")
                return values

            while cursor.char:
                values.append(self.parse_value())
                cursor.skip_whitespace()
                if cursor.char == "]":
                    cursor.advance("]")
                    return values
                cursor.advance(",")
                cursor.skip_whitespace()

            raise cursor.error("Unterminated array")

    def parse_string(self) -> str | dt.datetime:
        """
        Parses a string, or the date it spells.

        A backslash followed by a digit opens an escaped date literal such as
        ``"\\2023-11-03T23:00:00.000Z"``; with ``parse_dates`` a string whose
        whole content is such a literal becomes a date as well.
        """
        return self._read_string(dates=self.config.parse_dates, key=False)

    def _parse_key(self) -> str:
        # Keys never take the date paths
        return cast(str, self._read_string(dates=False, key=True))

    def _read_string(self, dates: bool, key: bool) -> str | dt.datetime:
        with _profiled("parse_string"):
            cursor = self.cursor
            start = cursor.index
            chunks: list[str] = []

            cursor.advance('"')
            while cursor.char:
                char = cursor.char
                if char == '"':
                    cursor.advance('"')
                    text = "".join(chunks)
                    if dates and is_iso_string(text):
                        return parse_iso_string(text) or text
                    return text

                if char == "\\":
                    code = cursor.advance()
                    if code == "u":
                        unit = self._read_unicode_escape()
                        if (
                            chunks
                            and is_low_surrogate(unit)
                            and is_high_surrogate(chunks[-1])
                        ):
                            chunks[-1] = join_surrogates(chunks[-1], unit)
                        else:
                            chunks.append(unit)
                    elif code in ESCAPES:
                        chunks.append(ESCAPES[code])
                    elif is_digit(code) and not key:
                        moment = self._read_date_literal(chunks)
                        if moment is None:
                            raise cursor.error(
                                f"Invalid escape sequence: \\{code}"
                            )
                        return moment
                    else:
                        raise cursor.error(
                            f"Invalid escape sequence: \\{code}"
                            if code
                            else "Unterminated escape sequence"
                        )
                else:
                    chunks.append(char)
                cursor.advance()

            raise cursor.error(f"Cannot parse string {''.join(chunks)!r}", start)

    def _read_unicode_escape(self) -> str:
        """
        Reads the digits of a ``\\uXXXX`` escape.

        Leaves the cursor on the last character read. A non-hex character
        ends the escape early and is dropped along with it.
        """
        cursor = self.cursor
        code = 0
        for _ in range(4):
            digit = cursor.advance()
            if not is_hex_digit(digit):
                logger.debug(
                    "Truncated unicode escape at offset %d", cursor.index
                )
                break
            code = code * 16 + int(digit, 16)
        return chr(code)

    def _read_date_literal(self, chunks: list[str]) -> dt.datetime | None:
        """
        Tries to read an escaped date literal starting at the current digit.

        Looks at the literal and its closing quote without consuming them;
        only a literal that fills the whole string is accepted. On success
        the cursor ends past the closing quote.
        """
        cursor = self.cursor
        lookahead = cursor.peek(ISO_LENGTH)
        literal = cursor.char + lookahead[:-1]
        closing = lookahead[-1:]

        moment = None
        if not chunks and closing == '"' and is_iso_string(literal):
            moment = parse_iso_string(literal)
        if moment is None:
            logger.debug(
                "Rejected date literal %r at offset %d", literal, cursor.index
            )
            return None

        for _ in range(ISO_LENGTH):
            cursor.advance()
        cursor.advance('"')
        return moment

    def parse_number(self) -> int | float:
        with _profiled("parse_number"):
            cursor = self.cursor
            start = cursor.index

            if cursor.char == "-":
                cursor.advance("-")
            self._skip_digits()
            if cursor.char == ".":
                cursor.advance(".")
                self._skip_digits()
            if cursor.char in ("e", "E"):
                cursor.advance()
                if cursor.char in ("-", "+"):
                    cursor.advance()
                self._skip_digits()

            text = cursor.text[start : cursor.index]
            try:
                if any(c in text for c in ".eE"):
                    return float(text)
                return int(text)
            except ValueError as e:
                raise cursor.error(
                    f"Cannot deserialize number {text!r}", start
                ) from e

    def _skip_digits(self) -> None:
        while is_digit(self.cursor.char):
            self.cursor.advance()

    def parse_literal(self) -> bool | None:
        """Parses ``true``, ``false`` or ``null`` character by character."""
        cursor = self.cursor
        entry = _LITERALS.get(cursor.char)
        if entry is None:
            if not cursor.char:
                raise cursor.error("Unexpected end of input")
            raise cursor.error(f"Unexpected character {cursor.char!r}")

        word, value = entry
        for expected in word:
            cursor.advance(expected)
        return value


def _revive(holder: Any, key: str | int, revive: Callable[..., Any]) -> Any:
    """
    Applies ``revive`` bottom-up to ``holder[key]`` and everything below it.

    Children are revived before their parent and collected into fresh
    containers. The callback always receives string keys, list indices
    included. Object entries revived to UNDEFINED are left out; list items
    revived to UNDEFINED keep their slot as None so later items keep their
    index.
    """
    value = holder[key]

    if isinstance(value, dict):
        fresh: dict[str, Any] = {}
        for name in value:
            revived = _revive(value, name, revive)
            if revived is not UNDEFINED:
                fresh[name] = revived
        value = fresh
    elif isinstance(value, list):
        items: list[Any] = []
        for index in range(len(value)):
            revived = _revive(value, index, revive)
            items.append(None if revived is UNDEFINED else revived)
        value = items

    return revive(str(key), value)


def _parse_document(s: str, config: ParseConfig) -> Any:
    """
    Main parser entry point.

    Builds a fresh cursor and parser for this document only, then runs the
    optional revive pass over the result.
    """
    with _profiled("parse_document", len(s)):
        # A leading BOM gets its own diagnostic
        if s.startswith("\ufeff"):
            raise JSONDecodeError("Unexpected byte order mark (BOM)", s, 0)

        parser = JsonParser(JsonCursor(s), config)
        result = parser.parse()

        if config.revive is None:
            return result
        return _revive({"": result}, "", config.revive)


def loads(s: str, revive: ReviveHook = None, **kwargs: Any) -> Any:
    """
    Parses a JSON string into Python objects.

    Strings holding nothing but an ISO-8601 literal such as
    ``"2023-11-03T23:00:00.000Z"`` decode to UTC datetimes by default, not
    only the escaped ``"\\2023-11-03T23:00:00.000Z"`` form. Pass
    ``parse_dates=False`` to keep plain literals as strings.

    ``revive(key, value)`` is called for every entry, children first and the
    document itself last under the key ``""``. Keys are always strings, list
    indices included. Its result replaces the value; returning ``UNDEFINED``
    removes an object entry and leaves None in a list slot.
    """
    if not isinstance(s, str):
        raise TypeError(
            f"the JSON object must be str, not {type(s).__name__}"
        )

    config = ParseConfig(revive=revive, **kwargs)
    return _parse_document(s, config)


def load(fp: IO[str], revive: ReviveHook = None, **kwargs: Any) -> Any:
    """Parses JSON from a file-like object."""
    if not hasattr(fp, "read"):
        raise TypeError("fp must have a read() method")

    return loads(fp.read(), revive, **kwargs)


class ValueKind(Enum):
    """Shape of a Python value as far as the encoder is concerned."""

    UNDEFINED = "undefined"
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    DATE = "date"
    OPAQUE = "opaque"
    OBJECT = "object"
    OTHER = "other"


# Containers JSON has no shape for; they encode as an empty object
_OPAQUE_TYPES: Final = (
    re.Pattern,
    set,
    frozenset,
    weakref.WeakSet,
    weakref.WeakKeyDictionary,
    weakref.WeakValueDictionary,
)


def classify(obj: Any) -> ValueKind:  # noqa: PLR0911
    """Decides once how ``obj`` is encoded."""
    if obj is UNDEFINED or callable(obj):
        return ValueKind.UNDEFINED
    elif obj is None:
        return ValueKind.NULL
    elif isinstance(obj, bool):
        return ValueKind.BOOLEAN
    elif isinstance(obj, int | float | Decimal | numbers.Real):
        return ValueKind.NUMBER
    elif isinstance(obj, str | UserString):
        return ValueKind.STRING
    elif isinstance(obj, list | tuple):
        return ValueKind.ARRAY
    elif isinstance(obj, dt.date):
        return ValueKind.DATE
    elif isinstance(obj, _OPAQUE_TYPES):
        return ValueKind.OPAQUE
    elif (
        isinstance(obj, Mapping)
        or dataclasses.is_dataclass(obj)
        or hasattr(obj, "__dict__")
    ):
        return ValueKind.OBJECT
    return ValueKind.OTHER


def _encode_string(s: str) -> str:
    """Encode string with proper escape sequences."""
    return '"' + "".join(escape_char(char) for char in s) + '"'


def _encode_number(n: Any) -> str:
    """Encode numeric values, unwrapping number objects to primitives."""
    if isinstance(n, numbers.Integral):
        return int.__repr__(int(n))
    if isinstance(n, Decimal):
        return str(n) if n.is_finite() else "null"

    value = float(n)
    if not math.isfinite(value):
        return "null"
    return float.__repr__(value)


def _encode_key(key: Any) -> str:
    if isinstance(key, str):
        name = key
    elif key is True:
        name = "true"
    elif key is False:
        name = "false"
    elif key is None:
        name = "null"
    else:
        name = str(key)
    return _encode_string(name)


def _object_items(obj: Any) -> Iterable[tuple[Any, Any]]:
    """Yields the entries of a mapping, dataclass or plain object."""
    if isinstance(obj, Mapping):
        return obj.items()
    if dataclasses.is_dataclass(obj):
        return (
            (field.name, getattr(obj, field.name))
            for field in dataclasses.fields(obj)
        )
    return ((k, v) for k, v in vars(obj).items() if not k.startswith("_"))


def _encode_array(
    arr: list[Any] | tuple[Any, ...],
    config: EncodeConfig,
    seen: set[int],
    level: int,
) -> str:
    """Encode array, keeping a slot for every item."""
    items = []
    for item in arr:
        encoded = _encode_value(item, config, seen, level + 1)
        items.append("null" if encoded is None else encoded)

    if not items:
        return "[]"
    if config.pretty:
        return _format_array_indented(items, level)
    return "[" + ",".join(items) + "]"


def _encode_object(
    obj: Any, config: EncodeConfig, seen: set[int], level: int
) -> str:
    """Encode object entries, leaving out values with no JSON form."""
    items = []
    for key, value in _object_items(obj):
        encoded = _encode_value(value, config, seen, level + 1)
        if encoded is not None:
            items.append((_encode_key(key), encoded))

    if not items:
        return "{}"
    if config.pretty:
        return _format_dict_indented(items, level)
    return "{" + ",".join(f"{key}:{value}" for key, value in items) + "}"


def _format_array_indented(items: list[str], level: int) -> str:
    """Format array with proper indentation."""
    indent_str = _get_indent_string(level)
    inner_indent = _get_indent_string(level + 1)

    lines = ["["]
    for i, item in enumerate(items):
        line = f"{inner_indent}{item}"
        if i < len(items) - 1:
            line += ","
        lines.append(line)

    lines.append(f"{indent_str}]")
    return "\n".join(lines)


def _format_dict_indented(items: list[tuple[str, str]], level: int) -> str:
    """Format dictionary with proper indentation."""
    indent_str = _get_indent_string(level)
    inner_indent = _get_indent_string(level + 1)

    lines = ["{"]
    for i, (key, value) in enumerate(items):
        line = f"{inner_indent}{key}: {value}"
        if i < len(items) - 1:
            line += ","
        lines.append(line)

    lines.append(f"{indent_str}}}")
    return "\n".join(lines)


def _get_indent_string(level: int) -> str:
    return " " * (INDENT_WIDTH * level)


def _encode_value(  # noqa: PLR0911
    obj: Any, config: EncodeConfig, seen: set[int], level: int
) -> str | None:
    """Encode any value; None means it has no JSON representation."""
    kind = classify(obj)

    if kind == ValueKind.UNDEFINED:
        return None
    elif kind == ValueKind.NULL:
        return "null"
    elif kind == ValueKind.BOOLEAN:
        return "true" if obj else "false"
    elif kind == ValueKind.NUMBER:
        return _encode_number(obj)
    elif kind == ValueKind.STRING:
        return _encode_string(obj.data if isinstance(obj, UserString) else obj)
    elif kind == ValueKind.DATE:
        iso = to_iso_string(obj)
        return "null" if iso is None else f'"{iso}"'
    elif kind == ValueKind.OPAQUE:
        return "{}"
    elif kind == ValueKind.OTHER:
        return _encode_string(str(obj))

    # Only arrays and objects can lead back to themselves
    marker = id(obj)
    if marker in seen:
        logger.debug(
            "Dropping circular reference to %s", type(obj).__name__
        )
        return None

    seen.add(marker)
    try:
        if kind == ValueKind.ARRAY:
            return _encode_array(obj, config, seen, level)
        return _encode_object(obj, config, seen, level)
    finally:
        seen.discard(marker)


def dumps(obj: Any, **kwargs: Any) -> str | None:
    """
    Serializes Python objects to a JSON string.

    Returns None when ``obj`` itself has no JSON form (``UNDEFINED`` or a
    callable).
    """
    config = EncodeConfig(**kwargs)
    with _profiled("dumps"):
        return _encode_value(obj, config, set(), 0)


def dump(obj: Any, fp: IO[str], **kwargs: Any) -> None:
    """Serializes Python objects to a file-like object."""
    if not hasattr(fp, "write"):
        raise TypeError("fp must have a write() method")

    text = dumps(obj, **kwargs)
    if text is not None:
        fp.write(text)


__all__ = [
    "INDENT_WIDTH",
    "UNDEFINED",
    "EncodeConfig",
    "HotPathStats",
    "JSONDecodeError",
    "JsonCursor",
    "JsonParser",
    "JsonValue",
    "ParseConfig",
    "ValueKind",
    "classify",
    "clear_hot_path_stats",
    "dump",
    "dumps",
    "get_hot_path_stats",
    "is_iso_string",
    "load",
    "loads",
]
