"""Describe text data: encoding name, line terminators and oddities."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

MAXLINELEN = 300
"""Longest sane line length; longer lines are reported."""

_NEL = 0x85
_ESC = 0x1B
_BACKSPACE = 0x08
_CR = 0x0D
_LF = 0x0A

# Upper bound, lead byte marker and total length of each UTF-8 form.
_UTF8_FORMS = (
    (0x7FF, 0xC0, 2),
    (0xFFFF, 0xE0, 3),
    (0x1FFFFF, 0xF0, 4),
    (0x3FFFFFF, 0xF8, 5),
    (0x7FFFFFFF, 0xFC, 6),
)


@dataclass
class TextReport:
    """What a scan of decoded text found out about it."""

    n_crlf: int = 0
    n_lf: int = 0
    n_cr: int = 0
    n_nel: int = 0
    has_escapes: bool = False
    has_backspace: bool = False
    long_lines: int = 0

    @property
    def terminators(self) -> list[str]:
        """Names of the line terminators seen, in reporting order."""
        kinds = (("CRLF", self.n_crlf), ("CR", self.n_cr),
                 ("LF", self.n_lf), ("NEL", self.n_nel))
        return [name for name, count in kinds if count]

    def terminator_phrase(self) -> str:
        """The line terminator remark, or "" when only LF was seen."""
        names = self.terminators
        if not names:
            return ", with no line terminators"
        if names == ["LF"]:
            return ""
        return ", with " + ", ".join(names) + " line terminators"


def trim_nuls(data: bytes) -> bytes:
    """Drop trailing NUL bytes, but keep at least one byte."""
    stripped = data.rstrip(b"\0")
    return stripped or data[:1]


def encode_utf8(codepoints: Iterable[int]) -> bytes:
    """Encode code points as (extended, up to 6-byte) UTF-8.

    Raises ValueError for a value that has no such encoding.
    """
    out = bytearray()
    for cp in codepoints:
        if cp < 0:
            raise ValueError(f"invalid character {cp:#x}")
        if cp <= 0x7F:
            out.append(cp)
            continue
        for limit, lead, length in _UTF8_FORMS:
            if cp <= limit:
                break
        else:
            raise ValueError(f"invalid character {cp:#x}")
        out.append((cp >> (6 * (length - 1))) + lead)
        for shift in range(length - 2, -1, -1):
            out.append(((cp >> (6 * shift)) & 0x3F) + 0x80)
    return bytes(out)


def analyze_text(codepoints: Sequence[int], nbytes: int,
                 bytes_max: int | None = None) -> TextReport:
    """Count line terminators and look for long lines and control codes.

    nbytes is the length of the raw data; when it reaches bytes_max the
    data may have been truncated, so a final CR is not counted.
    """
    report = TextReport()
    seen_cr = False
    last_line_end = -1
    for i, c in enumerate(codepoints):
        if c == _LF:
            if seen_cr:
                report.n_crlf += 1
            else:
                report.n_lf += 1
            last_line_end = i
        elif seen_cr:
            report.n_cr += 1

        seen_cr = c == _CR
        if seen_cr:
            last_line_end = i

        if c == _NEL:
            report.n_nel += 1
            last_line_end = i

        if i > last_line_end + MAXLINELEN:
            report.long_lines = max(report.long_lines, i - last_line_end)

        if c == _ESC:
            report.has_escapes = True
        if c == _BACKSPACE:
            report.has_backspace = True

    if seen_cr and (bytes_max is None or nbytes < bytes_max):
        report.n_cr += 1
    return report


def describe_text(codepoints: Sequence[int], data: bytes, code: str,
                  text_type: str, prior: str = "",
                  bytes_max: int | None = None) -> str | None:
    """Build the description of text data.

    codepoints is the decoded text, data the raw bytes, code the name of
    the encoding and text_type its kind ("text", or "binary" for data
    that is not text).  prior is what earlier tests already said about
    the data.  Returns the full description, or None when the data is
    not to be described as text.
    """
    nbytes = len(trim_nuls(data))
    if nbytes <= 1:
        return None
    report = analyze_text(codepoints, nbytes, bytes_max)
    if text_type == "binary":
        return None

    out = prior
    executable = False
    if prior:
        if prior.endswith(" text"):
            out = prior[:-len(" text")] + ", "
        elif prior.endswith(" text executable"):
            out = prior[:-len(" text executable")] + ", "
            executable = True
        else:
            out = prior + ", "

    parts = [out, code, " ", text_type]
    if executable:
        parts.append(" executable")
    if report.long_lines:
        parts.append(f", with very long lines ({report.long_lines})")
    parts.append(report.terminator_phrase())
    if report.has_escapes:
        parts.append(", with escape sequences")
    if report.has_backspace:
        parts.append(", with overstriking")
    return "".join(parts)