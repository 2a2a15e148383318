import pytest

from fileident.text import (
    MAXLINELEN,
    TextReport,
    analyze_text,
    describe_text,
    encode_utf8,
    trim_nuls,
)


def cps(s):
    return [ord(c) for c in s]


def describe(s, **kw):
    data = s.encode("latin-1")
    return describe_text(cps(s), data, "ASCII", "text", **kw)


def test_trim_nuls_strips_trailing_zeros():
    assert trim_nuls(b"ab\0\0") == b"ab"


def test_trim_nuls_keeps_one_byte():
    assert trim_nuls(b"\0\0\0") == b"\0"
    assert trim_nuls(b"") == b""


def test_trim_nuls_keeps_inner_zeros():
    assert trim_nuls(b"a\0b") == b"a\0b"


@pytest.mark.parametrize("s", ["hello", "caf\u00e9", "\u20ac uro", "\U0001F600"])
def test_encode_utf8_matches_standard_encoding(s):
    assert encode_utf8(cps(s)).decode("utf-8") == s


def test_encode_utf8_long_forms():
    encoded = encode_utf8([0x7FFFFFFF])
    assert len(encoded) == 6
    assert encoded[0] & 0xFE == 0xFC
    assert all(b & 0xC0 == 0x80 for b in encoded[1:])


def test_encode_utf8_rejects_out_of_range():
    with pytest.raises(ValueError):
        encode_utf8([0x80000000])


def test_analyze_counts_terminators():
    report = analyze_text(cps("a\r\nb\nc\rd"), 8)
    assert (report.n_crlf, report.n_lf, report.n_cr) == (1, 1, 1)
    assert report.terminators == ["CRLF", "CR", "LF"]


def test_analyze_final_cr_depends_on_truncation():
    text = cps("ab\r")
    assert analyze_text(text, 3, 100).n_cr == 1
    assert analyze_text(text, 3, 3).n_cr == 0


def test_analyze_long_lines():
    report = analyze_text(cps("x" * (MAXLINELEN + 1)), MAXLINELEN + 1)
    assert report.long_lines > MAXLINELEN
    short = analyze_text(cps("x" * 10 + "\n"), 11)
    assert short.long_lines == 0


def test_analyze_flags_controls():
    report = analyze_text(cps("a\x1b[0m b\x08_\n"), 11)
    assert report.has_escapes
    assert report.has_backspace


def test_report_lf_only_has_no_phrase():
    assert TextReport(n_lf=3).terminator_phrase() == ""


def test_describe_plain_text():
    assert describe("hello\nworld\n") == "ASCII text"


def test_describe_crlf():
    result = describe("hello\r\nworld\r\n")
    assert "CRLF" in result
    assert result.endswith(" line terminators")


def test_describe_no_terminators():
    assert describe("hello world").endswith("no line terminators")


def test_describe_replaces_prior_text():
    result = describe("print(1)\n", prior="Python script text executable")
    assert result == "Python script, ASCII text executable"


def test_describe_appends_to_other_prior():
    result = describe("abc\n", prior="Something")
    assert result.startswith("Something, ASCII")


def test_describe_escapes_and_overstriking():
    result = describe("a\x1b[1mb\x08c\n")
    assert "with escape sequences" in result
    assert "with overstriking" in result


def test_describe_very_long_lines():
    result = describe("y" * 400 + "\n")
    assert "with very long lines" in result


def test_describe_binary_is_not_text():
    data = b"ab\n"
    assert describe_text(cps("ab\n"), data, "ASCII", "binary") is None


def test_describe_too_short():
    assert describe_text(cps("a"), b"a\0\0", "ASCII", "text") is None