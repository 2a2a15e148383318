"""Parsing of magic file lines and of their ``!:`` annotation lines."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from fileident.magic_types import (
    APPLE_LEN,
    CHAR_BINTEST,
    CHAR_COMPACT_OPTIONAL_WHITESPACE,
    CHAR_COMPACT_WHITESPACE,
    CHAR_FULL_WORD,
    CHAR_IGNORE_LOWERCASE,
    CHAR_IGNORE_UPPERCASE,
    CHAR_INDIRECT_RELATIVE,
    CHAR_PSTRING_1_LE,
    CHAR_PSTRING_2_BE,
    CHAR_PSTRING_2_LE,
    CHAR_PSTRING_4_BE,
    CHAR_PSTRING_4_LE,
    CHAR_PSTRING_LENGTH_INCLUDES_ITSELF,
    CHAR_REGEX_OFFSET_START,
    CHAR_TEXTTEST,
    CHAR_TRIM,
    EXT_LEN,
    FACTOR_OP_DIV,
    FACTOR_OP_MINUS,
    FACTOR_OP_NONE,
    FACTOR_OP_PLUS,
    FACTOR_OP_TIMES,
    INDIR,
    INDIRECT_RELATIVE,
    INDIROFFADD,
    MASK64,
    MAXDESC,
    MAXMIME,
    NOSPACE,
    OFFADD,
    OFFNEGATIVE,
    OP_DIVIDE,
    OP_INDIRECT,
    OP_INVERSE,
    OP_SIGNED,
    PSTRING_1_LE,
    PSTRING_2_BE,
    PSTRING_2_LE,
    PSTRING_4_BE,
    PSTRING_4_LE,
    PSTRING_LEN,
    PSTRING_LENGTH_INCLUDES_ITSELF,
    REGEX_LINE_COUNT,
    REGEX_OFFSET_START,
    STRING_BINTEST,
    STRING_COMPACT_OPTIONAL_WHITESPACE,
    STRING_COMPACT_WHITESPACE,
    STRING_DEFAULT_RANGE,
    STRING_FULL_WORD,
    STRING_IGNORE_LOWERCASE,
    STRING_IGNORE_UPPERCASE,
    STRING_TEXTTEST,
    STRING_TRIM,
    UNSIGNED,
    Magic,
    MagicType,
    get_op,
    get_special_type,
    get_standard_integer_type,
    get_type,
    is_string_type,
    sign_extend,
)
from fileident.magic_values import (
    MagicSyntaxError,
    check_format,
    eat_size,
    get_value,
)

_log = logging.getLogger(__name__)

_SPACE = " \t\n\v\f\r"
_INT_RE = re.compile(
    r"[ \t\n\v\f\r]*([+-]?)"
    r"(?:0[xX]([0-9a-fA-F]+)|(0[0-7]*)|([1-9][0-9]*))"
)
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

T = MagicType

_IN_TYPES = {
    "l": T.LELONG, "L": T.BELONG, "m": T.MELONG,
    "h": T.LESHORT, "s": T.LESHORT, "H": T.BESHORT, "S": T.BESHORT,
    "c": T.BYTE, "b": T.BYTE, "C": T.BYTE, "B": T.BYTE,
    "e": T.LEDOUBLE, "f": T.LEDOUBLE, "g": T.LEDOUBLE,
    "E": T.BEDOUBLE, "F": T.BEDOUBLE, "G": T.BEDOUBLE,
    "i": T.LEID3, "I": T.BEID3, "q": T.LEQUAD, "Q": T.BEQUAD,
}

_STRING_FLAGS = {
    CHAR_COMPACT_WHITESPACE: STRING_COMPACT_WHITESPACE,
    CHAR_COMPACT_OPTIONAL_WHITESPACE: STRING_COMPACT_OPTIONAL_WHITESPACE,
    CHAR_IGNORE_LOWERCASE: STRING_IGNORE_LOWERCASE,
    CHAR_IGNORE_UPPERCASE: STRING_IGNORE_UPPERCASE,
    CHAR_REGEX_OFFSET_START: REGEX_OFFSET_START,
    CHAR_BINTEST: STRING_BINTEST,
    CHAR_TEXTTEST: STRING_TEXTTEST,
    CHAR_TRIM: STRING_TRIM,
    CHAR_FULL_WORD: STRING_FULL_WORD,
}

_PSTRING_LENGTHS = {
    CHAR_PSTRING_1_LE: (PSTRING_1_LE, {T.PSTRING}),
    CHAR_PSTRING_2_BE: (PSTRING_2_BE, {T.PSTRING}),
    CHAR_PSTRING_2_LE: (PSTRING_2_LE, {T.PSTRING}),
    CHAR_PSTRING_4_BE: (PSTRING_4_BE, {T.PSTRING}),
    CHAR_PSTRING_4_LE: (PSTRING_4_LE, {T.PSTRING, T.REGEX}),
}

_FACTOR_OPS = {FACTOR_OP_PLUS, FACTOR_OP_MINUS, FACTOR_OP_TIMES,
               FACTOR_OP_DIV}


def _isspace(c: str) -> bool:
    return c != "" and c in _SPACE


def _isdigit(c: str) -> bool:
    return c != "" and c in "0123456789"


def _goodchar(c: str, extra: str) -> bool:
    return (c.isascii() and c.isalnum()) or (c != "" and c in extra)


def _parse_int(text: str) -> tuple[int, int] | None:
    """Signed value and length of a C integer literal (base 0)."""
    match = _INT_RE.match(text)
    if match is None:
        return None
    sign, hexdigits, octdigits, decdigits = match.groups()
    if hexdigits is not None:
        value = int(hexdigits, 16)
    elif octdigits is not None:
        value = int(octdigits, 8)
    else:
        value = int(decdigits, 10)
    return (-value if sign == "-" else value), match.end()


def _strtol(text: str) -> tuple[int, int]:
    """Like strtol: (value clamped to 64 bits, characters used)."""
    parsed = _parse_int(text)
    if parsed is None:
        return 0, 0
    value, used = parsed
    return max(_INT64_MIN, min(_INT64_MAX, value)), used


def _strtoull(text: str) -> tuple[int, int]:
    """Like strtoull: (unsigned 64-bit value, characters used)."""
    parsed = _parse_int(text)
    if parsed is None:
        return 0, 0
    value, used = parsed
    if abs(value) > MASK64:
        return MASK64, used
    return value & MASK64, used


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


@dataclass
class MagicEntry:
    """A top-level magic test together with its continuation lines."""

    magics: list[Magic] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.magics)

    def __iter__(self) -> Iterator[Magic]:
        return iter(self.magics)


class MagicParser:
    """Turns magic file lines into entries.

    With ``check`` set, the stricter consistency checks on modifiers and
    description formats are applied as well.
    """

    def __init__(self, check: bool = True) -> None:
        self.check = check

    def parse_line(self, entry: MagicEntry, line: str, lineno: int) -> bool:
        """Parse one test line into entry.

        Returns True when the line was added.  Returns False, leaving
        entry untouched, when the line starts a new top-level test while
        entry already holds one; the caller then stores entry and parses
        the line again into a fresh one.  Raises MagicSyntaxError for a
        line that cannot be used.
        """
        s = line
        cont_level = 0
        while s.startswith(">"):
            s = s[1:]
            cont_level += 1

        if cont_level:
            if not entry.magics:
                raise MagicSyntaxError("No current entry for continuation")
            last = entry.magics[-1]
            if cont_level - last.cont_level > 1:
                _log.warning("New continuation level %d is more than one "
                             "larger than current level %d",
                             cont_level, last.cont_level)
        elif entry.magics:
            return False

        m = Magic(cont_level=cont_level, factor_op=FACTOR_OP_NONE)
        m.lineno = lineno

        s = self._parse_offset(m, s)
        s = s.lstrip(_SPACE)
        s = self._parse_type(m, s)

        if m.type is T.NAME and cont_level:
            raise MagicSyntaxError(
                f"`name{s}' entries can only be declared at top level")

        s = self._parse_mask(m, s)
        s = s.lstrip(_SPACE)
        s = self._parse_relation(m, s)

        if m.reln != "x":
            s = get_value(m, s)

        s = s.lstrip(_SPACE)
        if s.startswith("\b"):
            s = s[1:]
            m.flag |= NOSPACE
        elif s.startswith("\\b"):
            s = s[2:]
            m.flag |= NOSPACE
        m.desc = s[:MAXDESC - 1]
        if len(s) >= MAXDESC - 1 and self.check:
            _log.warning("description `%s' truncated", m.desc)

        if self.check:
            check_format(m)
        m.mimetype = ""
        entry.magics.append(m)
        return True

    def _parse_offset(self, m: Magic, s: str) -> str:
        if s.startswith("&"):
            s = s[1:]
            m.flag |= OFFADD
        if s.startswith("("):
            s = s[1:]
            m.flag |= INDIR
            if m.flag & OFFADD:
                m.flag = (m.flag & ~OFFADD) | INDIROFFADD
            if s.startswith("&"):
                s = s[1:]
                m.flag |= OFFADD
        if m.cont_level == 0 and m.flag & (OFFADD | INDIROFFADD):
            raise MagicSyntaxError("relative offset at level 0")

        if s.startswith("-"):
            s = s[1:]
            m.flag |= OFFNEGATIVE
        value, used = _strtol(s)
        if used == 0:
            raise MagicSyntaxError(f"offset `{s}' invalid")
        m.offset = _int32(value)
        s = s[used:]

        if m.flag & INDIR:
            s = self._parse_indirect_offset(m, s)
        return s

    def _parse_indirect_offset(self, m: Magic, s: str) -> str:
        m.in_type = T.LONG
        m.in_offset = 0
        m.in_op = 0
        if s[:1] in (".", ","):
            if s[0] == ",":
                m.in_op |= OP_SIGNED
            c = s[1:2]
            if c not in _IN_TYPES:
                raise MagicSyntaxError(f"indirect offset type `{c}' invalid")
            m.in_type = _IN_TYPES[c]
            s = s[2:]
        if s.startswith("~"):
            m.in_op |= OP_INVERSE
            s = s[1:]
        op = get_op(s[:1])
        if op is not None:
            m.in_op |= op
            s = s[1:]
        if s.startswith("("):
            m.in_op |= OP_INDIRECT
            s = s[1:]
        if _isdigit(s[:1]) or s.startswith("-"):
            value, used = _strtol(s)
            if used == 0:
                raise MagicSyntaxError(f"in_offset `{s}' invalid")
            m.in_offset = _int32(value)
            s = s[used:]
        if not s.startswith(")"):
            raise MagicSyntaxError("missing ')' in indirect offset")
        s = s[1:]
        if m.in_op & OP_INDIRECT:
            if not s.startswith(")"):
                raise MagicSyntaxError("missing ')' in indirect offset")
            s = s[1:]
        return s

    def _parse_type(self, m: Magic, s: str) -> str:
        rest = s
        if s.startswith("u"):
            t, rest = get_type(s[1:])
            if t is T.INVALID:
                t, rest = get_standard_integer_type(s)
            if t is not T.INVALID:
                m.flag |= UNSIGNED
            else:
                rest = s
        else:
            t, rest = get_type(s)
            if t is T.INVALID:
                if s.startswith("d"):
                    t, rest = get_standard_integer_type(s)
                elif s.startswith("s") and not (
                        s[1:2].isascii() and s[1:2].isalpha()):
                    t, rest = T.STRING, s[1:]
        if t is T.INVALID:
            t, rest = get_special_type(s)
        if t is T.INVALID:
            raise MagicSyntaxError(f"type `{s}' invalid")
        m.type = t
        return rest

    def _parse_mask(self, m: Magic, s: str) -> str:
        m.mask_op = 0
        if s.startswith("~"):
            if not is_string_type(m.type):
                m.mask_op |= OP_INVERSE
            elif self.check:
                _log.warning("'~' invalid for string types")
            s = s[1:]
        m.str_range = 0
        m.str_flags = PSTRING_1_LE if m.type is T.PSTRING else 0
        op = get_op(s[:1])
        if op is None:
            return s
        if not is_string_type(m.type):
            return self._parse_op_modifier(m, s, op)
        if op != OP_DIVIDE:
            raise MagicSyntaxError(f"invalid string/indirect op: `{s[0]}'")
        if m.type is T.INDIRECT:
            return self._parse_indirect_modifier(m, s)
        return self._parse_string_modifier(m, s)

    def _parse_op_modifier(self, m: Magic, s: str, op: int) -> str:
        s = s[1:]
        m.mask_op |= op
        value, used = _strtoull(s)
        try:
            m.num_mask = sign_extend(m, value)
        except ValueError as exc:
            if self.check:
                _log.warning("%s", exc)
            m.num_mask = MASK64
        return eat_size(s[used:])

    def _parse_indirect_modifier(self, m: Magic, s: str) -> str:
        j = 1
        while not _isspace(s[j:j + 1]):
            c = s[j:j + 1]
            if c != CHAR_INDIRECT_RELATIVE:
                raise MagicSyntaxError(f"indirect modifier `{c}' invalid")
            m.str_flags |= INDIRECT_RELATIVE
            j += 1
        return s[j:]

    def _parse_string_modifier(self, m: Magic, s: str) -> str:
        have_range = False
        j = 0
        while True:
            j += 1
            c = s[j:j + 1]
            if _isspace(c):
                break
            if _isdigit(c):
                if have_range and self.check:
                    _log.warning("multiple ranges")
                have_range = True
                value, used = _strtoull(s[j:])
                m.str_range = value & 0xFFFFFFFF
                if m.str_range == 0:
                    _log.warning("zero range")
                j += used - 1
            elif c in _STRING_FLAGS:
                m.str_flags |= _STRING_FLAGS[c]
            elif c in _PSTRING_LENGTHS:
                length, allowed = _PSTRING_LENGTHS[c]
                if m.type not in allowed:
                    raise MagicSyntaxError(f"string modifier `{c}' invalid")
                m.str_flags = (m.str_flags & ~PSTRING_LEN) | length
            elif c == CHAR_PSTRING_LENGTH_INCLUDES_ITSELF \
                    and m.type is T.PSTRING:
                m.str_flags |= PSTRING_LENGTH_INCLUDES_ITSELF
            else:
                raise MagicSyntaxError(f"string modifier `{c}' invalid")
            # Several '/' may separate modifiers for readability.
            if s[j + 1:j + 2] == "/" and not _isspace(s[j + 2:j + 3]):
                j += 1
        self._check_string_modifiers(m)
        return s[j:]

    def _check_string_modifiers(self, m: Magic) -> None:
        if not self.check:
            return
        t = m.type
        if (t is not T.REGEX or not m.str_flags & REGEX_LINE_COUNT) and (
                t is not T.PSTRING and m.str_flags & PSTRING_LEN):
            raise MagicSyntaxError(
                "'/BHhLl' modifiers are only allowed for pascal strings")
        if t in (T.BESTRING16, T.LESTRING16):
            if m.str_flags:
                raise MagicSyntaxError(
                    "no modifiers allowed for 16-bit strings")
        elif t in (T.STRING, T.PSTRING):
            if m.str_flags & REGEX_OFFSET_START:
                raise MagicSyntaxError(
                    f"'/{CHAR_REGEX_OFFSET_START}' only allowed on regex "
                    "and search")
        elif t is T.SEARCH:
            if m.str_range == 0:
                m.str_range = STRING_DEFAULT_RANGE
                raise MagicSyntaxError(
                    f"missing range; defaulting to {STRING_DEFAULT_RANGE}")
        elif t is T.REGEX:
            if m.str_flags & STRING_COMPACT_WHITESPACE:
                raise MagicSyntaxError(
                    f"'/{CHAR_COMPACT_WHITESPACE}' not allowed on regex")
            if m.str_flags & STRING_COMPACT_OPTIONAL_WHITESPACE:
                raise MagicSyntaxError(
                    f"'/{CHAR_COMPACT_OPTIONAL_WHITESPACE}' not allowed "
                    "on regex")
        else:
            raise MagicSyntaxError(f"coding error: m->type={int(t)}")

    def _parse_relation(self, m: Magic, s: str) -> str:
        c = s[:1]
        if c in ("<", ">"):
            m.reln = c
            s = s[1:]
            if s.startswith("="):
                if self.check:
                    raise MagicSyntaxError(f"{c}= not supported")
                s = s[1:]
        elif c in ("&", "^", "="):
            m.reln = c
            s = s[1:]
            if s.startswith("="):
                s = s[1:]
        elif c == "!":
            m.reln = c
            s = s[1:]
        else:
            m.reln = "="
            nxt = s[1:2]
            if c == "x" and (nxt == "" or _isspace(nxt)):
                m.reln = "x"
                s = s[1:]
        return s

    def parse_strength(self, entry: MagicEntry, text: str) -> None:
        """Apply a ``!:strength`` annotation to the entry's first test."""
        if not entry.magics:
            raise MagicSyntaxError("No current entry for :!strength type")
        m = entry.magics[0]
        if m.factor_op != FACTOR_OP_NONE:
            raise MagicSyntaxError(
                "Current entry already has a strength type: "
                f"{m.factor_op} {m.factor}")
        if m.type is T.NAME:
            raise MagicSyntaxError(
                f"{m.value!r}: Strength setting is not supported in "
                "\"name\" magic entries")
        s = text.lstrip(_SPACE)
        op = s[:1]
        if op and op not in _FACTOR_OPS:
            raise MagicSyntaxError(f"Unknown factor op `{op}'")
        s = s[1:].lstrip(_SPACE)
        m.factor_op = op
        factor, used = _strtoull(s)
        try:
            if factor > 255:
                raise MagicSyntaxError(f"Too large factor `{factor}'")
            end = s[used:used + 1]
            if end and not _isspace(end):
                raise MagicSyntaxError(f"Bad factor `{s}'")
            m.factor = factor
            if factor == 0 and op == FACTOR_OP_DIV:
                raise MagicSyntaxError(
                    f"Cannot have factor op `{op}' and factor {factor}")
        except MagicSyntaxError:
            m.factor_op = FACTOR_OP_NONE
            m.factor = 0
            raise

    def _parse_extra(self, entry: MagicEntry, text: str, attr: str,
                     size: int, name: str, extra: str,
                     terminated: bool) -> None:
        if not entry.magics:
            raise MagicSyntaxError(f"No current entry for :!{name} type")
        m = entry.magics[-1]
        current = getattr(m, attr)
        if current:
            raise MagicSyntaxError(
                f"Current entry already has a {name} type `{current}', "
                f"new type `{text}'")
        if not m.desc:
            raise MagicSyntaxError(
                "Current entry does not yet have a description for adding "
                f"a {name} type")
        s = text.lstrip(_SPACE)
        j = 0
        while j < len(s) and j < size and _goodchar(s[j], extra):
            j += 1
        value = s[:j]
        if j == size and j < len(s):
            if terminated:
                value = value[:size - 1]
            if self.check:
                _log.warning("%s type `%s' truncated %d", name, text, j)
        elif j < len(s) and not _isspace(s[j]) and not _goodchar(s[j], extra):
            _log.warning("%s type `%s' has bad char '%s'", name, text, s[j])
        if not value:
            raise MagicSyntaxError(f"Bad magic entry '{text}'")
        setattr(m, attr, value)

    def parse_mime(self, entry: MagicEntry, text: str) -> None:
        """Apply a ``!:mime`` annotation to the entry's last test."""
        self._parse_extra(entry, text, "mimetype", MAXMIME, "MIME",
                          "+-/.$?:{}", True)

    def parse_apple(self, entry: MagicEntry, text: str) -> None:
        """Apply a ``!:apple`` creator/type annotation."""
        self._parse_extra(entry, text, "apple", APPLE_LEN, "APPLE",
                          "!+-./?", False)

    def parse_ext(self, entry: MagicEntry, text: str) -> None:
        """Apply a ``!:ext`` list of file name extensions."""
        self._parse_extra(entry, text, "ext", EXT_LEN, "EXTENSION",
                          ",!+-/@?_$&", False)

    def parse_bang(self, entry: MagicEntry, line: str) -> None:
        """Dispatch a ``!:`` annotation line to its handler."""
        if not line.startswith("!:"):
            raise MagicSyntaxError(f"Unknown !: entry `{line}'")
        rest = line[2:]
        handlers = (
            ("mime", self.parse_mime),
            ("apple", self.parse_apple),
            ("ext", self.parse_ext),
            ("strength", self.parse_strength),
        )
        for name, handler in handlers:
            if rest.startswith(name):
                break
        else:
            raise MagicSyntaxError(f"Unknown !: entry `{line}'")
        if not entry.magics:
            raise MagicSyntaxError(f"No current entry for :!{name} type")
        handler(entry, rest[len(name):])