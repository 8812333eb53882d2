r"""
declargs value kinds (string token -> typed value).

Overview
- Kind: a scalar kind with a name, a parser (raw str -> value, raises ValueError),
  a formatter (value -> raw str that parses back to the same value) and a zero value.
- SliceKind: list[T] over a scalar kind; values accumulate in encounter order.
- OptionalKind: T | UnsetType over a scalar kind; absence leaves the field Unset.
- kindof(annotation): resolve a field annotation to its kind (cached).

Supported annotations
    bool                          "1 t T TRUE true True" / "0 f F FALSE false False"
    str                           verbatim
    int, Int8..Int64              [+-]?[0-9]+ within the signed width
    UInt, UInt8..UInt64           [0-9]+ within the unsigned width
    float, Float32                decimal/scientific/inf/nan, float32 overflow rejected
    datetime.timedelta            compound units: ns us µs μs ms s m h, e.g. "1h30m", "-1.5s", "0"
    URL (urllib.parse.ParseResult) structurally valid URI reference
    Port                          unsigned 16-bit integer, optional "lo-hi" range per flag
    list[T]                       slice of any scalar above
    T | UnsetType                 optional scalar

Durations keep microsecond precision (timedelta resolution); nanosecond
fractions are truncated toward zero.
"""
import datetime
import functools
import math
import re
import struct
import types
import typing
from decimal import Decimal, InvalidOperation
from typing import NewType
from urllib.parse import ParseResult, urlparse

from .utils import *

Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
UInt = NewType("UInt", int)
UInt8 = NewType("UInt8", int)
UInt16 = NewType("UInt16", int)
UInt32 = NewType("UInt32", int)
UInt64 = NewType("UInt64", int)
Float32 = NewType("Float32", float)
Port = NewType("Port", int)
Duration = datetime.timedelta
URL = ParseResult


class Kind:
    """
    A scalar value kind.

    Calling a kind parses a raw token; failures raise ValueError with a short
    reason (the binder wraps it into a ConversionError with flag context).
    """
    slice = False
    optional = False

    def __init__(self, name, parse, format, zero, /):
        self.name = name
        self._parse = parse
        self._format = format
        self._zero = zero

    @property
    def boolean(self):
        return self.name == "bool"

    @property
    def scalar(self):
        return self

    def __call__(self, raw, /):
        if not isinstance(raw, str):
            raise TypeError(f"{self.name} kind expects a string token")
        return self._parse(raw)

    def format(self, value, /):
        return self._format(value)

    def zero(self):
        return self._zero

    def __eq__(self, other):
        if not isinstance(other, Kind):
            return NotImplemented
        return type(self) is type(other) and self.name == other.name

    def __hash__(self):
        return hash((type(self), self.name))

    def __repr__(self):
        return f"kind({self.name!r})"


class SliceKind(Kind):
    """list[T]: each token parses one element; format joins with commas."""
    slice = True

    def __init__(self, item, /):
        super().__init__(f"list[{item.name}]", item._parse, item._format, Unset)
        self.item = item

    @property
    def boolean(self):
        return False

    @property
    def scalar(self):
        return self.item

    def split(self, raw, /):
        return [self.item(part) for part in raw.split(",")]

    def format(self, value, /):
        return ",".join(map(self.item.format, value))

    def zero(self):
        return []


class OptionalKind(Kind):
    """T | UnsetType: present values parse as T, absence stays Unset."""
    optional = True

    def __init__(self, item, /):
        super().__init__(f"optional[{item.name}]", item._parse, item._format, Unset)
        self.item = item

    @property
    def boolean(self):
        return self.item.boolean

    @property
    def scalar(self):
        return self.item

    def zero(self):
        return Unset


def parse_bool(raw, /):
    match raw:
        case "1" | "t" | "T" | "TRUE" | "true" | "True":
            return True
        case "0" | "f" | "F" | "FALSE" | "false" | "False":
            return False
    raise ValueError(f"invalid boolean {raw!r}")


def _integer(bits, signed, /):
    pattern = re.compile(r"[+-]?[0-9]+" if signed else r"[0-9]+")
    low, high = (-(1 << (bits - 1)), (1 << (bits - 1)) - 1) if signed else (0, (1 << bits) - 1)

    def parse(raw):
        if not pattern.fullmatch(raw):
            raise ValueError(f"invalid syntax {raw!r}")
        if not low <= (value := int(raw, 10)) <= high:
            raise OverflowError(f"value {raw!r} out of range [{low}, {high}]")
        return value

    return parse


def parse_float(raw, /):
    if not raw or raw != raw.strip() or "_" in raw:
        raise ValueError(f"invalid syntax {raw!r}")
    return float(raw)


def parse_float32(raw, /):
    value = parse_float(raw)
    try:
        narrowed = struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        raise OverflowError(f"value {raw!r} out of float32 range") from None
    # newer interpreters round to inf instead of raising
    if math.isinf(narrowed) and not math.isinf(value):
        raise OverflowError(f"value {raw!r} out of float32 range")
    return narrowed


_UNITS = {
    "ns": 1,
    "us": 10 ** 3,
    "µs": 10 ** 3,  # U+00B5 micro sign
    "μs": 10 ** 3,  # U+03BC greek mu
    "ms": 10 ** 6,
    "s": 10 ** 9,
    "m": 60 * 10 ** 9,
    "h": 3600 * 10 ** 9,
}

_SEGMENT = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(raw, /):
    """
    Parse a compound duration such as "300ms", "-1.5h" or "2h45m".

    A bare "0" is accepted without a unit; any other number needs one. The
    total must fit a signed 64-bit nanosecond count.
    """
    text = raw
    negative = False
    if text[:1] in ("+", "-"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return datetime.timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {raw!r}")

    total = Decimal(0)
    position = 0
    while position < len(text):
        if not (match := _SEGMENT.match(text, position)) or match[1] in ("", "."):
            raise ValueError(f"invalid duration {raw!r}")
        try:
            total += Decimal(match[1]) * _UNITS[match[2]]
        except InvalidOperation:
            raise ValueError(f"invalid duration {raw!r}") from None
        position = match.end()

    nanoseconds = int(-total if negative else total)
    if not -(1 << 63) <= nanoseconds <= (1 << 63) - 1:
        raise OverflowError(f"duration {raw!r} out of range")
    microseconds = abs(nanoseconds) // 1000
    return datetime.timedelta(microseconds=-microseconds if nanoseconds < 0 else microseconds)


def _decimal(value, scale, /):
    whole, fraction = divmod(value, scale)
    if not fraction:
        return str(whole)
    return f"{whole}.{str(fraction).rjust(len(str(scale)) - 1, "0").rstrip("0")}"


def format_duration(value, /):
    """
    Render a timedelta in compound unit form ("1h30m0s", "1.5s", "250ms", "0s").
    """
    nanoseconds = (value // datetime.timedelta(microseconds=1)) * 1000
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    nanoseconds = abs(nanoseconds)

    if nanoseconds < 10 ** 3:
        return f"{sign}{nanoseconds}ns"
    if nanoseconds < 10 ** 6:
        return f"{sign}{_decimal(nanoseconds, 10 ** 3)}µs"
    if nanoseconds < 10 ** 9:
        return f"{sign}{_decimal(nanoseconds, 10 ** 6)}ms"

    hours, nanoseconds = divmod(nanoseconds, 3600 * 10 ** 9)
    minutes, nanoseconds = divmod(nanoseconds, 60 * 10 ** 9)
    seconds = f"{_decimal(nanoseconds, 10 ** 9)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


def parse_url(raw, /):
    """
    Parse a URI reference with urllib, rejecting what urlparse lets through:
    whitespace/control characters, malformed percent escapes, a leading ':'
    (missing scheme) and a non-numeric or out-of-range port.
    """
    if any(character.isspace() or ord(character) < 0x20 or ord(character) == 0x7F for character in raw):
        raise ValueError(f"invalid control character in URL {raw!r}")
    if raw.startswith(":"):
        raise ValueError(f"missing protocol scheme in {raw!r}")
    if re.search(r"%(?![0-9A-Fa-f]{2})", raw):
        raise ValueError(f"invalid URL escape in {raw!r}")
    parsed = urlparse(raw)
    parsed.port  # raises ValueError on a bad port
    return parsed


def parse_range(raw, /):
    """
    Parse a closed port range "lo-hi" (0 <= lo <= hi <= 65535).
    """
    if not isinstance(raw, str) or not (match := re.fullmatch(r"([0-9]+)-([0-9]+)", raw.strip())):
        raise ValueError(f"malformed range {raw!r}, expected 'lo-hi'")
    low, high = int(match[1]), int(match[2])
    if not 0 <= low <= high <= 65535:
        raise ValueError(f"range {raw!r} must satisfy 0 <= lo <= hi <= 65535")
    return low, high


_SCALARS = {
    bool: Kind("bool", parse_bool, lambda value: "true" if value else "false", False),
    str: Kind("str", str, str, ""),
    int: Kind("int64", _integer(64, True), str, 0),
    Int8: Kind("int8", _integer(8, True), str, 0),
    Int16: Kind("int16", _integer(16, True), str, 0),
    Int32: Kind("int32", _integer(32, True), str, 0),
    Int64: Kind("int64", _integer(64, True), str, 0),
    UInt: Kind("uint64", _integer(64, False), str, 0),
    UInt8: Kind("uint8", _integer(8, False), str, 0),
    UInt16: Kind("uint16", _integer(16, False), str, 0),
    UInt32: Kind("uint32", _integer(32, False), str, 0),
    UInt64: Kind("uint64", _integer(64, False), str, 0),
    float: Kind("float64", parse_float, repr, 0.0),
    Float32: Kind("float32", parse_float32, repr, 0.0),
    datetime.timedelta: Kind("duration", parse_duration, format_duration, datetime.timedelta(0)),
    ParseResult: Kind("url", parse_url, ParseResult.geturl, urlparse("")),
    Port: Kind("port", _integer(16, False), str, 0),
}


@functools.cache
def kindof(annotation, /):
    """
    Resolve a field annotation to its Kind.

    Raises
    - TypeError: the annotation is not a supported scalar, list[scalar] or
      scalar | UnsetType.
    """
    try:
        return _SCALARS[annotation]
    except (KeyError, TypeError):
        pass

    origin = typing.get_origin(annotation)
    arguments = typing.get_args(annotation)

    if origin is list and len(arguments) == 1:
        if (item := kindof(arguments[0])).slice or item.optional:
            raise TypeError(f"unsupported slice item {arguments[0]!r}")
        return SliceKind(item)

    if origin in (types.UnionType, typing.Union) and UnsetType in arguments and len(arguments) == 2:
        other, = (argument for argument in arguments if argument is not UnsetType)
        if (item := kindof(other)).slice or item.optional:
            raise TypeError(f"unsupported optional item {other!r}")
        return OptionalKind(item)

    raise TypeError(f"unsupported annotation {annotation!r}")


__all__ = (
    # Types
    "Kind",
    "SliceKind",
    "OptionalKind",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "UInt",
    "UInt8",
    "UInt16",
    "UInt32",
    "UInt64",
    "Float32",
    "Port",
    "Duration",
    "URL",

    # Functions
    "kindof",
    "parse_bool",
    "parse_duration",
    "format_duration",
    "parse_url",
    "parse_range",
)
