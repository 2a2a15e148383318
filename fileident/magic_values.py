"""Parsing of the value field of a magic entry and of its printf format."""

from __future__ import annotations

import logging
import math
import re
import struct
import uuid
import warnings

from fileident.magic_types import (
    MASK64,
    MAXSTRING,
    Magic,
    MagicType,
    ValueFormat,
    pstring_length_size,
    sign_extend,
    type_size,
    value_format,
)

_log = logging.getLogger(__name__)

_SPACE = " \t\n\v\f\r"
_DIGITS = "0123456789"
_OCTAL = "01234567"
_HEX = "0123456789abcdefABCDEF"
_RELATIONS = "<>&^=!"
_REGEX_SPECIAL = "[]().*?^$|{}"
_SIMPLE_ESCAPES = {"a": 7, "b": 8, "f": 12, "n": 10, "r": 13, "t": 9, "v": 11}

_STRING_VALUE_TYPES = {
    MagicType.BESTRING16, MagicType.LESTRING16, MagicType.STRING,
    MagicType.PSTRING, MagicType.REGEX, MagicType.SEARCH, MagicType.NAME,
    MagicType.USE, MagicType.DER,
}
_FLOAT_TYPES = {MagicType.FLOAT, MagicType.BEFLOAT, MagicType.LEFLOAT}
_DOUBLE_TYPES = {MagicType.DOUBLE, MagicType.BEDOUBLE, MagicType.LEDOUBLE}

_BYTE_WIDTH = {MagicType.BYTE}
_SHORT_WIDTH = {MagicType.SHORT, MagicType.BESHORT, MagicType.LESHORT}
_LONG_WIDTH = {
    MagicType.LONG, MagicType.BELONG, MagicType.LELONG, MagicType.MELONG,
    MagicType.LEID3, MagicType.BEID3, MagicType.INDIRECT,
}

_GUID_LEN = 36
_GUID_RE = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-"
    r"[0-9a-fA-F]{12}"
)
_INT_RE = re.compile(
    r"[ \t\n\v\f\r]*([+-]?)"
    r"(?:0[xX]([0-9a-fA-F]+)|(0[0-7]*)|([1-9][0-9]*))"
)
_FLOAT_RE = re.compile(
    r"[ \t\n\v\f\r]*[+-]?"
    r"(?:0x(?:[0-9a-f]+(?:\.[0-9a-f]*)?|\.[0-9a-f]+)(?:p[+-]?[0-9]+)?"
    r"|(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:e[+-]?[0-9]+)?"
    r"|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


class MagicSyntaxError(ValueError):
    """A magic file line whose value or format cannot be used."""


def _char_bytes(c: str) -> bytes:
    code = ord(c)
    return bytes([code]) if code < 256 else c.encode("utf-8")


def hex_to_int(c: str) -> int | None:
    """Value of a single hex digit, or None if c is not one."""
    if len(c) != 1 or c not in _HEX:
        return None
    return int(c, 16)


def get_string(m: Magic, text: str, warn: bool) -> str:
    """Decode a C-escaped string up to the first unescaped whitespace.

    Stores the bytes in ``m.value`` and their length in ``m.vallen`` and
    returns the rest of text, starting at the whitespace that ended it.
    Characters below 256 stand for the byte of the same value.
    """
    out = bytearray()
    n = len(text)
    i = 0
    while i < n:
        c = text[i]
        if c in _SPACE:
            break
        i += 1
        if len(out) >= MAXSTRING - 1:
            raise MagicSyntaxError(f"string too long: `{text}'")
        if c != "\\":
            out += _char_bytes(c)
            continue
        if i >= n:
            if warn:
                _log.warning("incomplete escape")
            break
        c = text[i]
        i += 1
        if c in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[c])
        elif c in _OCTAL:
            val = int(c)
            for _ in range(2):
                if i < n and text[i] in _OCTAL:
                    val = (val << 3) | int(text[i])
                    i += 1
                else:
                    break
            out.append(val & 0xFF)
        elif c == "x":
            val = ord("x")
            first = hex_to_int(text[i]) if i < n else None
            if first is not None:
                i += 1
                val = first
                second = hex_to_int(text[i]) if i < n else None
                if second is not None:
                    i += 1
                    val = (val << 4) + second
            out.append(val)
        else:
            if warn and c != " " and c != "\\" and c not in _RELATIONS:
                if c == "\t":
                    _log.warning("escaped tab found, use \\t instead")
                    warn = False
                elif " " <= c <= "~":
                    if m.type is not MagicType.REGEX or c not in _REGEX_SPECIAL:
                        _log.warning("no need to escape `%s'", c)
                else:
                    _log.warning("unknown escape sequence: \\%03o", ord(c))
            out += _char_bytes(c)

    m.value = bytes(out)
    m.vallen = len(out)
    if m.type is MagicType.PSTRING:
        try:
            m.vallen += pstring_length_size(m)
        except ValueError as exc:
            raise MagicSyntaxError(str(exc)) from exc
    return text[i:]


def eat_size(text: str) -> str:
    """Skip a C integer size suffix such as ``UL`` or ``b``."""
    i = 1 if text[:1].lower() == "u" else 0
    c = text[i:i + 1].lower()
    if c and c in "lshbc":
        i += 1
    return text[i:]


def _check_regex(pattern: bytes) -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            re.compile(pattern)
        except re.error as exc:
            raise MagicSyntaxError(f"regex error: {exc}") from exc


def _strtod(text: str) -> tuple[float, int, bool]:
    """Parse a float like strtod: (value, characters used, range error)."""
    match = _FLOAT_RE.match(text)
    if match is None:
        return 0.0, 0, False
    literal = match.group().strip(_SPACE)
    body = literal.lstrip("+-").lower()
    try:
        if body.startswith("0x"):
            value = float.fromhex(literal)
        else:
            value = float(literal)
    except OverflowError:
        return (-math.inf if literal.startswith("-") else math.inf), match.end(), True
    overflow = math.isinf(value) and not body.startswith("inf")
    return value, match.end(), overflow


def _strtoull(text: str) -> tuple[int | None, int, bool]:
    """Parse an integer like strtoull with base 0.

    Returns (value or None if no digits, characters used, range error).
    """
    match = _INT_RE.match(text)
    if match is None:
        return None, 0, False
    sign, hexdigits, octdigits, decdigits = match.groups()
    if hexdigits is not None:
        value = int(hexdigits, 16)
    elif octdigits is not None:
        value = int(octdigits, 8)
    else:
        value = int(decdigits, 10)
    if value > MASK64:
        return MASK64, match.end(), True
    if sign == "-":
        value = -value & MASK64
    return value, match.end(), False


def _extend(m: Magic, value: int) -> int:
    try:
        return sign_extend(m, value)
    except ValueError as exc:
        raise MagicSyntaxError(str(exc)) from exc


def get_value(m: Magic, text: str) -> str:
    """Parse the value of an entry according to its type.

    Stores it in ``m.value`` and returns the rest of text.
    """
    if m.type in _STRING_VALUE_TYPES:
        rest = get_string(m, text, False)
        if m.type is MagicType.REGEX:
            _check_regex(m.value)
        return rest
    if m.reln == "x":
        return text

    if m.type in _FLOAT_TYPES or m.type in _DOUBLE_TYPES:
        value, used, overflow = _strtod(text)
        if m.type in _FLOAT_TYPES and not overflow and math.isfinite(value):
            try:
                value = struct.unpack("f", struct.pack("f", value))[0]
            except OverflowError:
                value = math.copysign(math.inf, value)
                overflow = True
        m.value = value
        return text if overflow else text[used:]

    if m.type is MagicType.GUID:
        match = _GUID_RE.match(text)
        if match is None:
            raise MagicSyntaxError(f"bad GUID `{text}'")
        m.value = uuid.UUID(match.group()).bytes_le
        return text[_GUID_LEN:]

    parsed, used, overflow = _strtoull(text)
    if parsed is None:
        m.value = _extend(m, 0)
        _log.warning("Unparsable number `%s'", text)
        return eat_size(text)

    m.value = _extend(m, parsed)
    size = type_size(m.type)
    if size is None:
        raise MagicSyntaxError(f"Expected numeric type got `{m.type.keyword}'")
    check = parsed
    if text.lstrip(_SPACE).startswith("-"):
        check = -check & MASK64
    if size < 8 and check >> (8 * size):
        _log.warning("Overflow for numeric type `%s' value %#x",
                     m.type.keyword, check)
    if overflow:
        return text
    return eat_size(text[used:])


class _Cursor:
    """Reads a printf conversion specification one character at a time."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def peek(self) -> str:
        return self.text[self.pos:self.pos + 1]

    def take(self) -> str:
        c = self.peek()
        self.pos += 1
        return c

    def accept(self, chars: str) -> bool:
        c = self.peek()
        if c and c in chars:
            self.pos += 1
            return True
        return False

    def skip_digits(self) -> str:
        start = self.pos
        while self.accept(_DIGITS):
            pass
        return self.text[start:self.pos]

    def width(self) -> None:
        digits = self.skip_digits()
        if len(digits) > 5 or (digits and int(digits) > 1024):
            raise MagicSyntaxError("too long")

    def rest(self) -> str:
        return self.text[self.pos:]


def _num_width(magic_type: MagicType) -> int:
    """How many 'h' modifiers a numeric type would tolerate."""
    if magic_type in _BYTE_WIDTH:
        return 2
    if magic_type in _SHORT_WIDTH:
        return 1
    if magic_type in _LONG_WIDTH:
        return 0
    raise ValueError(f"no numeric width for type {magic_type.keyword}")


def check_format_type(fmt: str, magic_type: MagicType) -> str:
    """Validate the conversion after a ``%`` against the entry type.

    Returns what follows the conversion; raises MagicSyntaxError when
    the conversion does not suit the type.
    """
    if not fmt:
        raise MagicSyntaxError("missing format spec")
    kind = value_format(magic_type)
    cur = _Cursor(fmt)

    if kind in (ValueFormat.NUM, ValueFormat.QUAD):
        quad = kind is ValueFormat.QUAD
        h = 0 if quad else _num_width(magic_type)
        while cur.accept("-.#"):
            pass
        cur.width()
        cur.accept(".")
        cur.width()
        if quad and (cur.take() != "l" or cur.take() != "l"):
            raise MagicSyntaxError("not valid")
        c = cur.take()
        if c == "c":
            if h == 2:
                return cur.rest()
        elif c and c in "iduoxX":
            return cur.rest()
        raise MagicSyntaxError("not valid")

    if kind in (ValueFormat.FLOAT, ValueFormat.DOUBLE):
        cur.accept("-")
        cur.accept(".")
        cur.width()
        cur.accept(".")
        cur.width()
        c = cur.take()
        if c and c in "eEfFgG":
            return cur.rest()
        raise MagicSyntaxError("not valid")

    if kind is ValueFormat.STR:
        cur.accept("-")
        cur.skip_digits()
        if cur.accept("."):
            cur.skip_digits()
        if cur.take() == "s":
            return cur.rest()
        raise MagicSyntaxError("not valid")

    raise ValueError(f"type {magic_type.keyword} takes no format")


def check_format(m: Magic) -> bool:
    """Check the printf format in an entry's description.

    Returns False when the description has no format, True when it has
    one valid format; raises MagicSyntaxError otherwise.
    """
    pct = m.desc.find("%")
    if pct < 0:
        return False
    name = m.type.keyword
    if value_format(m.type) is ValueFormat.NONE:
        raise MagicSyntaxError(
            f"No format string for `{name}' with description `{m.desc}'")
    after = m.desc[pct + 1:]
    try:
        check_format_type(after, m.type)
    except MagicSyntaxError as exc:
        raise MagicSyntaxError(
            f"Printf format is {exc} for type `{name}' in description "
            f"`{m.desc}'") from exc
    if "%" in after:
        raise MagicSyntaxError(
            "Too many format strings (should have at most one) for "
            f"`{name}' with description `{m.desc}'")
    return True