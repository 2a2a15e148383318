"""Core magic entry model: type table, flags and entry strength."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

MASK64 = (1 << 64) - 1

MAGIC_SETS = 2

# Sizes of the text fields of an entry.
MAXDESC = 64
MAXMIME = 80
MAXSTRING = 128
APPLE_LEN = 8
EXT_LEN = 64

# Entry flags.
INDIR = 0x01
OFFADD = 0x02
INDIROFFADD = 0x04
UNSIGNED = 0x08
NOSPACE = 0x10
BINTEST = 0x20
TEXTTEST = 0x40
OFFNEGATIVE = 0x80

# String modifier flags.
STRING_COMPACT_WHITESPACE = 1 << 0
STRING_COMPACT_OPTIONAL_WHITESPACE = 1 << 1
STRING_IGNORE_LOWERCASE = 1 << 2
STRING_IGNORE_UPPERCASE = 1 << 3
REGEX_OFFSET_START = 1 << 4
STRING_TEXTTEST = 1 << 5
STRING_BINTEST = 1 << 6
PSTRING_1_BE = 1 << 7
PSTRING_1_LE = 1 << 7
PSTRING_2_BE = 1 << 8
PSTRING_2_LE = 1 << 9
PSTRING_4_BE = 1 << 10
PSTRING_4_LE = 1 << 11
REGEX_LINE_COUNT = 1 << 11
PSTRING_LEN = PSTRING_1_BE | PSTRING_2_LE | PSTRING_2_BE | PSTRING_4_LE | PSTRING_4_BE
PSTRING_LENGTH_INCLUDES_ITSELF = 1 << 12
STRING_TRIM = 1 << 13
STRING_FULL_WORD = 1 << 14
INDIRECT_RELATIVE = 1 << 0

# Modifier characters as written in magic files.
CHAR_COMPACT_WHITESPACE = "W"
CHAR_COMPACT_OPTIONAL_WHITESPACE = "w"
CHAR_IGNORE_LOWERCASE = "c"
CHAR_IGNORE_UPPERCASE = "C"
CHAR_REGEX_OFFSET_START = "s"
CHAR_TEXTTEST = "t"
CHAR_TRIM = "T"
CHAR_FULL_WORD = "f"
CHAR_BINTEST = "b"
CHAR_PSTRING_1_LE = "B"
CHAR_PSTRING_2_BE = "H"
CHAR_PSTRING_2_LE = "h"
CHAR_PSTRING_4_BE = "L"
CHAR_PSTRING_4_LE = "l"
CHAR_PSTRING_LENGTH_INCLUDES_ITSELF = "J"
CHAR_INDIRECT_RELATIVE = "r"

STRING_DEFAULT_RANGE = 100

# Arithmetic operators for masks and indirect offsets.
OP_AND = 0
OP_OR = 1
OP_XOR = 2
OP_ADD = 3
OP_MINUS = 4
OP_MULTIPLY = 5
OP_DIVIDE = 6
OP_MODULO = 7
OPS_MASK = 0x07
OP_SIGNED = 0x20
OP_INVERSE = 0x40
OP_INDIRECT = 0x80

# Strength factor operators; the empty string means none.
FACTOR_OP_NONE = ""
FACTOR_OP_PLUS = "+"
FACTOR_OP_MINUS = "-"
FACTOR_OP_TIMES = "*"
FACTOR_OP_DIV = "/"

_MULT = 10


class MagicType(IntEnum):
    """Kinds of test a magic entry can perform."""

    INVALID = 0
    BYTE = 1
    SHORT = 2
    DEFAULT = 3
    LONG = 4
    STRING = 5
    DATE = 6
    BESHORT = 7
    BELONG = 8
    BEDATE = 9
    LESHORT = 10
    LELONG = 11
    LEDATE = 12
    PSTRING = 13
    LDATE = 14
    BELDATE = 15
    LELDATE = 16
    REGEX = 17
    BESTRING16 = 18
    LESTRING16 = 19
    SEARCH = 20
    MEDATE = 21
    MELDATE = 22
    MELONG = 23
    QUAD = 24
    LEQUAD = 25
    BEQUAD = 26
    QDATE = 27
    LEQDATE = 28
    BEQDATE = 29
    QLDATE = 30
    LEQLDATE = 31
    BEQLDATE = 32
    FLOAT = 33
    BEFLOAT = 34
    LEFLOAT = 35
    DOUBLE = 36
    BEDOUBLE = 37
    LEDOUBLE = 38
    LEID3 = 39
    BEID3 = 40
    INDIRECT = 41
    QWDATE = 42
    LEQWDATE = 43
    BEQWDATE = 44
    NAME = 45
    USE = 46
    CLEAR = 47
    DER = 48
    GUID = 49
    OFFSET = 50
    BEVARINT = 51
    LEVARINT = 52
    MSDOSDATE = 53
    LEMSDOSDATE = 54
    BEMSDOSDATE = 55
    MSDOSTIME = 56
    LEMSDOSTIME = 57
    BEMSDOSTIME = 58

    @property
    def keyword(self) -> str:
        """The name used for this type in magic files."""
        return self.name.lower()


class ValueFormat(Enum):
    """Kind of printf conversion a type's value supports."""

    NONE = 0
    NUM = 1
    STR = 2
    QUAD = 3
    FLOAT = 4
    DOUBLE = 5


T = MagicType
F = ValueFormat

_FORMATS: dict[MagicType, ValueFormat] = {
    T.INVALID: F.NONE, T.BYTE: F.NUM, T.SHORT: F.NUM, T.DEFAULT: F.NONE,
    T.LONG: F.NUM, T.STRING: F.STR, T.DATE: F.STR, T.BESHORT: F.NUM,
    T.BELONG: F.NUM, T.BEDATE: F.STR, T.LESHORT: F.NUM, T.LELONG: F.NUM,
    T.LEDATE: F.STR, T.PSTRING: F.STR, T.LDATE: F.STR, T.BELDATE: F.STR,
    T.LELDATE: F.STR, T.REGEX: F.STR, T.BESTRING16: F.STR,
    T.LESTRING16: F.STR, T.SEARCH: F.STR, T.MEDATE: F.STR, T.MELDATE: F.STR,
    T.MELONG: F.NUM, T.QUAD: F.QUAD, T.LEQUAD: F.QUAD, T.BEQUAD: F.QUAD,
    T.QDATE: F.STR, T.LEQDATE: F.STR, T.BEQDATE: F.STR, T.QLDATE: F.STR,
    T.LEQLDATE: F.STR, T.BEQLDATE: F.STR, T.FLOAT: F.FLOAT,
    T.BEFLOAT: F.FLOAT, T.LEFLOAT: F.FLOAT, T.DOUBLE: F.DOUBLE,
    T.BEDOUBLE: F.DOUBLE, T.LEDOUBLE: F.DOUBLE, T.LEID3: F.NUM,
    T.BEID3: F.NUM, T.INDIRECT: F.NUM, T.QWDATE: F.STR, T.LEQWDATE: F.STR,
    T.BEQWDATE: F.STR, T.NAME: F.NONE, T.USE: F.NONE, T.CLEAR: F.NONE,
    T.DER: F.STR, T.GUID: F.STR, T.OFFSET: F.QUAD, T.BEVARINT: F.STR,
    T.LEVARINT: F.STR, T.MSDOSDATE: F.STR, T.LEMSDOSDATE: F.STR,
    T.BEMSDOSDATE: F.STR, T.MSDOSTIME: F.STR, T.LEMSDOSTIME: F.STR,
    T.BEMSDOSTIME: F.STR,
}

# Table order matters: matching is by prefix, first hit wins.
_TYPE_TABLE = [t for t in MagicType if t is not T.INVALID]
_SPECIAL_TABLE = [T.DER, T.NAME, T.USE]

_SIZE_2 = {T.SHORT, T.LESHORT, T.BESHORT, T.MSDOSDATE, T.BEMSDOSDATE,
           T.LEMSDOSDATE, T.MSDOSTIME, T.BEMSDOSTIME, T.LEMSDOSTIME}
_SIZE_4 = {T.LONG, T.LELONG, T.BELONG, T.MELONG, T.DATE, T.LEDATE, T.BEDATE,
           T.MEDATE, T.LDATE, T.LELDATE, T.BELDATE, T.MELDATE, T.FLOAT,
           T.BEFLOAT, T.LEFLOAT}
_SIZE_8 = {T.QUAD, T.BEQUAD, T.LEQUAD, T.QDATE, T.LEQDATE, T.BEQDATE,
           T.QLDATE, T.LEQLDATE, T.BEQLDATE, T.QWDATE, T.LEQWDATE,
           T.BEQWDATE, T.DOUBLE, T.BEDOUBLE, T.LEDOUBLE, T.OFFSET,
           T.BEVARINT, T.LEVARINT}

_STRING_TYPES = {T.STRING, T.PSTRING, T.BESTRING16, T.LESTRING16, T.REGEX,
                 T.SEARCH, T.INDIRECT, T.NAME, T.USE}

_SIGN_NONE = {T.STRING, T.PSTRING, T.BESTRING16, T.LESTRING16, T.REGEX,
              T.SEARCH, T.DEFAULT, T.INDIRECT, T.NAME, T.USE, T.CLEAR,
              T.DER, T.GUID}
_SIGN_32 = (_SIZE_4 | {T.MSDOSDATE, T.BEMSDOSDATE, T.LEMSDOSDATE,
                       T.MSDOSTIME, T.BEMSDOSTIME, T.LEMSDOSTIME})

_OPS = {"&": OP_AND, "|": OP_OR, "^": OP_XOR, "+": OP_ADD, "-": OP_MINUS,
        "*": OP_MULTIPLY, "/": OP_DIVIDE, "%": OP_MODULO}

_SHOW_ESCAPES = {7: "a", 8: "b", 12: "f", 10: "n", 13: "r", 9: "t", 11: "v"}


@dataclass
class Magic:
    """One line of a magic file: a single test and its description."""

    cont_level: int = 0
    flag: int = 0
    factor: int = 0
    reln: str = "="
    vallen: int = 0
    type: MagicType = MagicType.INVALID
    in_type: MagicType = MagicType.INVALID
    in_op: int = 0
    mask_op: int = 0
    factor_op: str = FACTOR_OP_NONE
    offset: int = 0
    in_offset: int = 0
    lineno: int = 0
    num_mask: int = 0
    str_range: int = 0
    str_flags: int = 0
    value: int | float | bytes = 0
    desc: str = ""
    mimetype: str = ""
    apple: str = ""
    ext: str = ""


def _lookup(table: list[MagicType], text: str) -> tuple[MagicType, str]:
    for t in table:
        if text.startswith(t.keyword):
            return t, text[len(t.keyword):]
    return MagicType.INVALID, text


def get_type(text: str) -> tuple[MagicType, str]:
    """Match a type keyword at the start of text; return it and the rest."""
    return _lookup(_TYPE_TABLE, text)


def get_special_type(text: str) -> tuple[MagicType, str]:
    """Match a keyword that cannot carry the unsigned prefix."""
    return _lookup(_SPECIAL_TABLE, text)


def get_standard_integer_type(text: str) -> tuple[MagicType, str]:
    """Parse an SUS integer type such as ``d``, ``uC`` or ``d4``.

    text starts with ``d`` or ``u``.  Returns INVALID and text unchanged
    when it does not name a supported integer type.
    """
    second = text[1:2]
    if second.isascii() and second.isalpha():
        kinds = {"C": T.BYTE, "S": T.SHORT, "I": T.LONG, "L": T.LONG,
                 "Q": T.QUAD}
        if second not in kinds:
            return T.INVALID, text
        return kinds[second], text[2:]
    if second.isascii() and second.isdigit():
        third = text[2:3]
        if third.isascii() and third.isdigit():
            return T.INVALID, text
        sizes = {"1": T.BYTE, "2": T.SHORT, "4": T.LONG, "8": T.QUAD}
        if second not in sizes:
            return T.INVALID, text
        return sizes[second], text[2:]
    return T.LONG, text[1:]


def type_size(magic_type: MagicType) -> int | None:
    """Size in bytes of a fixed-size type, or None."""
    if magic_type is T.BYTE:
        return 1
    if magic_type in _SIZE_2:
        return 2
    if magic_type in _SIZE_4:
        return 4
    if magic_type in _SIZE_8:
        return 8
    if magic_type is T.GUID:
        return 16
    return None


def value_format(magic_type: MagicType) -> ValueFormat:
    """The printf conversion class accepted for this type's value."""
    return _FORMATS[MagicType(magic_type)]


def is_string_type(magic_type: MagicType) -> bool:
    """True for types whose value is a string rather than a number."""
    return magic_type in _STRING_TYPES


def nonmagic(pattern: str | bytes) -> int:
    """Count the characters of a regex that match literally (at least 1)."""
    if isinstance(pattern, bytes):
        pattern = pattern.decode("latin-1")
    pattern = pattern.split("\0", 1)[0]
    n = len(pattern)
    count = 0
    i = 0
    while i < n:
        c = pattern[i]
        if c == "\\":
            count += 1
            i = min(i + 2, n)
        elif c in "?*.+^$":
            i += 1
        elif c == "[":
            j = pattern.find("]", i)
            # The closing bracket itself is counted as one character.
            i = n if j == -1 else j
        elif c == "{":
            j = pattern.find("}", i)
            i = n if j == -1 else j + 1
        else:
            count += 1
            i += 1
    return count or 1


def _base_strength(m: Magic) -> int:
    val = 2 * _MULT
    t = m.type
    if t is T.DEFAULT:
        if m.factor_op != FACTOR_OP_NONE:
            raise ValueError("default entry cannot carry a strength factor")
        return 0
    size = type_size(t)
    if size is not None:
        val += size * _MULT
    elif t in (T.PSTRING, T.STRING):
        val += m.vallen * _MULT
    elif t in (T.BESTRING16, T.LESTRING16):
        val += m.vallen * _MULT // 2
    elif t is T.SEARCH:
        if m.vallen:
            val += m.vallen * max(_MULT // m.vallen, 1)
    elif t is T.REGEX:
        v = nonmagic(m.value if isinstance(m.value, (str, bytes)) else b"")
        val += v * max(_MULT // v, 1)
    elif t in (T.INDIRECT, T.NAME, T.USE, T.CLEAR):
        pass
    elif t is T.DER:
        val += _MULT
    else:
        raise ValueError(f"Bad type {int(t)}")

    if m.reln in ("x", "!"):
        val = 0
    elif m.reln == "=":
        val += _MULT
    elif m.reln in (">", "<"):
        val -= 2 * _MULT
    elif m.reln in ("^", "&"):
        val -= _MULT
    else:
        raise ValueError(f"Bad relation {m.reln}")
    return val


def magic_strength(m: Magic) -> int:
    """Sorting weight of an entry: higher means more specific."""
    val = _base_strength(m)
    op = m.factor_op
    if op == FACTOR_OP_PLUS:
        val += m.factor
    elif op == FACTOR_OP_MINUS:
        val -= m.factor
    elif op == FACTOR_OP_TIMES:
        val *= m.factor
    elif op == FACTOR_OP_DIV:
        q = abs(val) // m.factor
        val = q if val >= 0 else -q
    elif op != FACTOR_OP_NONE:
        raise ValueError(f"Bad factor op {op!r}")
    if val <= 0:
        val = 1
    if not m.desc:
        # Entries without a description rely on their continuations.
        val += 1
    return val


def sign_extend(m: Magic, value: int) -> int:
    """Sign-extend value to 64 bits unless the entry is unsigned.

    The result is kept as an unsigned 64-bit quantity.
    """
    value &= MASK64
    if m.flag & UNSIGNED:
        return value
    t = m.type
    if t is T.BYTE:
        bits = 8
    elif t in (T.SHORT, T.BESHORT, T.LESHORT):
        bits = 16
    elif t in _SIGN_32:
        bits = 32
    elif t in _SIZE_8:
        bits = 64
    elif t in _SIGN_NONE:
        return value
    else:
        raise ValueError(f"cannot happen: m->type={int(t)}")
    value &= (1 << bits) - 1
    if value & (1 << (bits - 1)):
        value -= 1 << bits
    return value & MASK64


def pstring_length_size(m: Magic) -> int:
    """Width in bytes of the length prefix of a pascal string entry."""
    kind = m.str_flags & PSTRING_LEN
    if kind == PSTRING_1_LE:
        return 1
    if kind in (PSTRING_2_LE, PSTRING_2_BE):
        return 2
    if kind in (PSTRING_4_LE, PSTRING_4_BE):
        return 4
    raise ValueError(f"corrupt magic file (bad pascal string length {kind})")


def pstring_get_length(m: Magic, data: bytes) -> int:
    """Decode the length prefix of a pascal string at the start of data."""
    size = pstring_length_size(m)
    if len(data) < size:
        raise ValueError("not enough data for pascal string length")
    kind = m.str_flags & PSTRING_LEN
    order = "big" if kind in (PSTRING_2_BE, PSTRING_4_BE) else "little"
    length = int.from_bytes(data[:size], order)
    if m.str_flags & PSTRING_LENGTH_INCLUDES_ITSELF:
        length -= size
    return length


def varint_to_int(data: bytes, magic_type: MagicType) -> tuple[int, int]:
    """Decode a 7-bit varint; return (value, bytes consumed).

    A zero byte or the end of data ends the number.
    """
    def at(i: int) -> int:
        return data[i] if i < len(data) else 0

    x = 0
    if magic_type is T.LEVARINT:
        c = 0
        while at(c) and at(c) & 0x80:
            c += 1
        consumed = c + 1
        for i in range(c, -1, -1):
            x |= at(i) & 0x7F
            x = (x << 7) & MASK64
    else:
        c = 0
        while at(c):
            x |= at(c) & 0x7F
            if not at(c) & 0x80:
                break
            x = (x << 7) & MASK64
            c += 1
        consumed = c + 1
    return x, consumed


def show_string(data: bytes) -> str:
    """Render bytes with C-style escapes for non-printable characters."""
    parts = []
    for b in data:
        if 0o40 <= b <= 0o176:
            parts.append(chr(b))
        elif b in _SHOW_ESCAPES:
            parts.append("\\" + _SHOW_ESCAPES[b])
        else:
            parts.append(f"\\{b:03o}")
    return "".join(parts)


def get_op(c: str) -> int | None:
    """Operator code for an operator character, or None."""
    return _OPS.get(c)