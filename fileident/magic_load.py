"""Loading magic files and directories into sorted sets of tests."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path

from fileident.magic_parse import MagicEntry, MagicParser
from fileident.magic_types import (
    BINTEST,
    MAGIC_SETS,
    STRING_BINTEST,
    STRING_TEXTTEST,
    TEXTTEST,
    Magic,
    MagicType,
    magic_strength,
)
from fileident.magic_values import MagicSyntaxError

_log = logging.getLogger(__name__)

T = MagicType

_BINARY_TYPES = {
    T.BYTE, T.SHORT, T.LONG, T.DATE, T.BESHORT, T.BELONG, T.BEDATE,
    T.LESHORT, T.LELONG, T.LEDATE, T.LDATE, T.BELDATE, T.LELDATE, T.MEDATE,
    T.MELDATE, T.MELONG, T.QUAD, T.LEQUAD, T.BEQUAD, T.QDATE, T.LEQDATE,
    T.BEQDATE, T.QLDATE, T.LEQLDATE, T.BEQLDATE, T.QWDATE, T.LEQWDATE,
    T.BEQWDATE, T.FLOAT, T.BEFLOAT, T.LEFLOAT, T.DOUBLE, T.BEDOUBLE,
    T.LEDOUBLE, T.BEVARINT, T.LEVARINT, T.DER, T.GUID, T.OFFSET,
    T.MSDOSDATE, T.BEMSDOSDATE, T.LEMSDOSDATE, T.MSDOSTIME, T.BEMSDOSTIME,
    T.LEMSDOSTIME,
}
_STRING_TYPES = {T.STRING, T.PSTRING, T.BESTRING16, T.LESTRING16}
_PATTERN_TYPES = {T.REGEX, T.SEARCH}

_TEXT_CONTROLS = {7, 8, 9, 10, 12, 13, 27}


def _looks_like_text(data: bytes) -> bool:
    """True when data is valid UTF-8 without odd control characters."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return all(
        not (ord(c) < 0x20 or ord(c) == 0x7F) or ord(c) in _TEXT_CONTROLS
        for c in text
    )


def set_test_type(start: Magic, m: Magic) -> None:
    """Mark start as a binary or text test according to the test m."""
    t = m.type
    if t in _BINARY_TYPES:
        start.flag |= BINTEST
    elif t in _STRING_TYPES:
        # Text overrides are allowed.
        if start.str_flags & STRING_TEXTTEST:
            start.flag |= TEXTTEST
        else:
            start.flag |= BINTEST
    elif t in _PATTERN_TYPES:
        if start.str_flags & STRING_BINTEST:
            start.flag |= BINTEST
        if start.str_flags & STRING_TEXTTEST:
            start.flag |= TEXTTEST
        if start.flag & (TEXTTEST | BINTEST):
            return
        value = m.value if isinstance(m.value, bytes) else b""
        if _looks_like_text(value[:m.vallen]):
            start.flag |= TEXTTEST
        else:
            start.flag |= BINTEST


class MagicSet:
    """The loaded magic database: two sets of tests, kept per source.

    Set 0 holds ordinary tests, set 1 the ``name`` entries that other
    tests can ``use``.
    """

    def __init__(self) -> None:
        self._chunks: list[tuple[list[Magic], ...]] = []
        self._parser = MagicParser(check=True)

    def load(self, path: str | os.PathLike[str]) -> None:
        """Load a list of magic files or directories separated by os.pathsep.

        Replaces what was loaded before.  Succeeds when at least one of
        the listed files or directories loads without error.
        """
        self._chunks = []
        last_error: Exception | None = None
        loaded = False
        for part in os.fspath(path).split(os.pathsep):
            if not part:
                break
            try:
                self._chunks.append(self._load_path(Path(part)))
                loaded = True
            except MagicSyntaxError as exc:
                last_error = exc
        if not loaded:
            self._chunks = []
            raise MagicSyntaxError(
                "could not find any valid magic files!") from last_error

    def load_lines(self, lines: Iterable[str], name: str = "<lines>") -> None:
        """Load magic from lines of text, replacing what was loaded before."""
        self._chunks = []
        errors: list[str] = []
        sets = self._new_sets()
        self._load_one(name, lines, sets, errors)
        self._chunks.append(self._finish(sets, errors))

    def entries(self, set_index: int) -> list[Magic]:
        """All tests of one set, in matching order."""
        if not 0 <= set_index < MAGIC_SETS:
            raise IndexError(f"no magic set {set_index}")
        return [m for chunk in self._chunks for m in chunk[set_index]]

    def find_name(self, name: str) -> list[Magic]:
        """The ``name`` entry called name followed by its continuations."""
        wanted = name.encode("latin-1")
        for chunk in self._chunks:
            magics = chunk[1]
            for i, m in enumerate(magics):
                if m.type is not T.NAME or m.value != wanted:
                    continue
                j = i + 1
                while j < len(magics) and magics[j].cont_level != 0:
                    j += 1
                return magics[i:j]
        raise KeyError(name)

    def listing(self) -> str:
        """The sorted patterns in the order used for matching."""
        lines: list[str] = []
        for i in range(MAGIC_SETS):
            lines.append(f"Set {i}:")
            lines.append("Binary patterns:")
            lines.extend(self._list(i, BINTEST))
            lines.append("Text patterns:")
            lines.extend(self._list(i, TEXTTEST))
        return "\n".join(lines) + "\n"

    def _list(self, set_index: int, mode: int) -> Iterator[str]:
        for chunk in self._chunks:
            magics = chunk[set_index]
            n = len(magics)
            k = 0
            while k < n:
                m = magics[k]
                if (m.flag & mode) != mode:
                    while k + 1 < n and magics[k + 1].cont_level != 0:
                        k += 1
                    k += 1
                    continue
                line = desc = mime = k
                k += 1
                while k < n and magics[k].cont_level != 0:
                    if not magics[desc].desc and magics[k].desc:
                        desc = k
                    if not magics[mime].mimetype and magics[k].mimetype:
                        mime = k
                    k += 1
                yield (f"Strength = {magic_strength(m):3d}"
                       f"@{magics[line].lineno}: {magics[desc].desc} "
                       f"[{magics[mime].mimetype}]")
                k += 1

    @staticmethod
    def _new_sets() -> list[list[MagicEntry]]:
        return [[] for _ in range(MAGIC_SETS)]

    def _load_path(self, path: Path) -> tuple[list[Magic], ...]:
        errors: list[str] = []
        sets = self._new_sets()
        if path.is_dir():
            try:
                names = sorted(
                    p for p in path.iterdir()
                    if not p.name.startswith(".") and p.is_file()
                )
            except OSError as exc:
                raise MagicSyntaxError(
                    f"cannot read magic directory `{path}'") from exc
            for file in names:
                self._load_file(file, sets, errors)
        else:
            self._load_file(path, sets, errors)
        return self._finish(sets, errors)

    def _load_file(self, path: Path, sets: list[list[MagicEntry]],
                   errors: list[str]) -> None:
        try:
            with open(path, encoding="latin-1", newline="") as f:
                self._load_one(str(path), f, sets, errors)
        except OSError:
            errors.append(f"cannot read magic file `{path}'")

    def _load_one(self, name: str, lines: Iterable[str],
                  sets: list[list[MagicEntry]], errors: list[str]) -> None:
        entry = MagicEntry()
        lineno = 0
        for raw in lines:
            if not raw:
                continue
            line = raw
            if line.endswith("\n"):
                lineno += 1
                line = line[:-1]
            if not line or line[0] in ("\0", "#"):
                continue
            try:
                if line.startswith("!:"):
                    self._parser.parse_bang(entry, line)
                    continue
                while not self._parser.parse_line(entry, line, lineno):
                    self._add_entry(entry, sets)
                    entry = MagicEntry()
            except ValueError as exc:
                message = f"{name}, {lineno}: {exc}"
                _log.warning("%s", message)
                errors.append(message)
        if entry.magics:
            self._add_entry(entry, sets)

    @staticmethod
    def _add_entry(entry: MagicEntry,
                   sets: list[list[MagicEntry]]) -> None:
        index = 1 if entry.magics[0].type is T.NAME else 0
        sets[index].append(entry)

    @staticmethod
    def _finish(sets: list[list[MagicEntry]],
                errors: list[str]) -> tuple[list[Magic], ...]:
        if errors:
            raise MagicSyntaxError("\n".join(errors))
        result = []
        for entries in sets:
            for entry in entries:
                first = entry.magics[0]
                set_test_type(first, first)
            entries.sort(key=lambda e: -magic_strength(e.magics[0]))
            _check_default_last(entries)
            result.append([m for entry in entries for m in entry.magics])
        return tuple(result)


def _check_default_last(entries: list[MagicEntry]) -> None:
    for i, entry in enumerate(entries):
        if entry.magics[0].type is T.DEFAULT:
            if i + 1 < len(entries):
                _log.warning("line %d: level 0 \"default\" did not sort last",
                             entries[i + 1].magics[0].lineno)
            return


def main(argv: list[str] | None = None) -> int:
    """Check a magic file and print its patterns in matching order."""
    args = sys.argv[1:] if argv is None else list(argv)
    progname = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] \
        else "fileident"
    if len(args) != 1:
        print(f"Usage: {progname} file", file=sys.stderr)
        return 1
    magic = MagicSet()
    try:
        magic.load(args[0])
    except MagicSyntaxError as exc:
        cause = exc.__cause__
        detail = f"{exc}" if cause is None else f"{exc}\n{cause}"
        print(f"{progname}: {detail}", file=sys.stderr)
        return 1
    sys.stdout.write(magic.listing())
    return 0


if __name__ == "__main__":
    sys.exit(main())