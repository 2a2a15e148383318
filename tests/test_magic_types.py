import pytest

from fileident.magic_types import (
    BINTEST,
    FACTOR_OP_DIV,
    FACTOR_OP_PLUS,
    OP_AND,
    OP_MODULO,
    PSTRING_1_LE,
    PSTRING_2_BE,
    PSTRING_2_LE,
    PSTRING_4_BE,
    PSTRING_4_LE,
    PSTRING_LENGTH_INCLUDES_ITSELF,
    UNSIGNED,
    Magic,
    MagicType,
    ValueFormat,
    get_op,
    get_special_type,
    get_standard_integer_type,
    get_type,
    is_string_type,
    magic_strength,
    nonmagic,
    pstring_get_length,
    pstring_length_size,
    show_string,
    sign_extend,
    type_size,
    value_format,
    varint_to_int,
)


def test_get_type_keyword_and_rest():
    assert get_type("lelong&0xff") == (MagicType.LELONG, "&0xff")
    assert get_type("string/c") == (MagicType.STRING, "/c")


def test_get_type_invalid_returns_input():
    assert get_type("bogus") == (MagicType.INVALID, "bogus")


@pytest.mark.parametrize("t", [t for t in MagicType if t is not MagicType.INVALID])
def test_every_keyword_round_trips(t):
    assert get_type(t.keyword + " rest") == (t, " rest")


def test_special_types():
    assert get_special_type("der x") == (MagicType.DER, " x")
    assert get_special_type("use foo") == (MagicType.USE, " foo")
    assert get_special_type("long")[0] is MagicType.INVALID


@pytest.mark.parametrize(
    "text, expected",
    [
        ("dC", MagicType.BYTE),
        ("uS", MagicType.SHORT),
        ("dI", MagicType.LONG),
        ("uL", MagicType.LONG),
        ("dQ", MagicType.QUAD),
        ("u1", MagicType.BYTE),
        ("d2", MagicType.SHORT),
        ("u4", MagicType.LONG),
        ("d8", MagicType.QUAD),
        ("d", MagicType.LONG),
    ],
)
def test_standard_integer_types(text, expected):
    assert get_standard_integer_type(text + " x") == (expected, " x")


@pytest.mark.parametrize("text", ["d16", "d3", "uZ"])
def test_standard_integer_type_invalid(text):
    assert get_standard_integer_type(text) == (MagicType.INVALID, text)


def test_type_sizes():
    assert type_size(MagicType.BYTE) == 1
    assert type_size(MagicType.GUID) == 16
    assert type_size(MagicType.STRING) is None
    assert type_size(MagicType.LESHORT) == type_size(MagicType.SHORT)
    assert type_size(MagicType.BEQUAD) == type_size(MagicType.LEDOUBLE)


def test_sized_types_have_value_formats():
    without_format = [
        t
        for t in MagicType
        if type_size(t) is not None and value_format(t) is ValueFormat.NONE
    ]
    assert without_format == []


def test_value_formats():
    assert value_format(MagicType.DEFAULT) is ValueFormat.NONE
    assert value_format(MagicType.QUAD) is ValueFormat.QUAD
    assert value_format(MagicType.BEFLOAT) is ValueFormat.FLOAT
    assert value_format(MagicType.STRING) is ValueFormat.STR


def test_is_string_type():
    assert is_string_type(MagicType.SEARCH)
    assert is_string_type(MagicType.INDIRECT)
    assert not is_string_type(MagicType.BELONG)
    assert not is_string_type(MagicType.DER)


def test_nonmagic_plain_text_counts_each_char():
    assert nonmagic("abc") == len("abc")
    assert nonmagic(b"abcd") == len(b"abcd")


def test_nonmagic_invariants():
    assert nonmagic("a.*b") == nonmagic("ab")
    assert nonmagic("[abc]d") == nonmagic("xd")
    assert nonmagic("x{2,3}") == nonmagic("x")
    assert nonmagic("\\.") == nonmagic("a")
    assert nonmagic("") == 1
    assert nonmagic(".*") == 1


def _string_magic(n, desc="d"):
    return Magic(type=MagicType.STRING, vallen=n, value=b"x" * n, desc=desc)


def test_strength_longer_string_is_stronger():
    assert magic_strength(_string_magic(8)) > magic_strength(_string_magic(2))


def test_strength_empty_description_bonus():
    assert magic_strength(_string_magic(4, "")) == magic_strength(_string_magic(4)) + 1


def test_strength_factor_plus():
    base = magic_strength(Magic(type=MagicType.BELONG, desc="d"))
    boosted = magic_strength(
        Magic(type=MagicType.BELONG, desc="d", factor_op=FACTOR_OP_PLUS, factor=7)
    )
    assert boosted == base + 7


def test_strength_relations_order():
    eq = magic_strength(Magic(type=MagicType.LELONG, reln="=", desc="d"))
    gt = magic_strength(Magic(type=MagicType.LELONG, reln=">", desc="d"))
    x = magic_strength(Magic(type=MagicType.LELONG, reln="x", desc="d"))
    assert eq > gt > 0
    assert x == 1


def test_strength_bad_relation_and_type():
    with pytest.raises(ValueError):
        magic_strength(Magic(type=MagicType.BYTE, reln="?"))
    with pytest.raises(ValueError):
        magic_strength(Magic(type=MagicType.INVALID))
    with pytest.raises(ValueError):
        magic_strength(Magic(type=MagicType.DEFAULT, factor_op=FACTOR_OP_DIV, factor=2))


def test_sign_extend():
    assert sign_extend(Magic(type=MagicType.BYTE), 0x7F) == 0x7F
    assert sign_extend(Magic(type=MagicType.BYTE, flag=UNSIGNED), 0x80) == 0x80
    minus_one = sign_extend(Magic(type=MagicType.QUAD), (1 << 64) - 1)
    assert sign_extend(Magic(type=MagicType.BYTE), 0xFF) == minus_one
    assert sign_extend(Magic(type=MagicType.LESHORT), 0xFFFF) == minus_one
    assert sign_extend(Magic(type=MagicType.LONG), 0xFFFFFFFF) == minus_one
    assert sign_extend(Magic(type=MagicType.STRING), 0xFF) == 0xFF


def test_sign_extend_invalid_type():
    with pytest.raises(ValueError):
        sign_extend(Magic(type=MagicType.LEID3), 1)


def test_pstring_length_size():
    assert pstring_length_size(Magic(str_flags=PSTRING_1_LE)) == 1
    assert pstring_length_size(Magic(str_flags=PSTRING_2_BE)) == 2
    assert pstring_length_size(Magic(str_flags=PSTRING_4_LE)) == 4
    with pytest.raises(ValueError):
        pstring_length_size(Magic(str_flags=0))


def test_pstring_get_length():
    assert pstring_get_length(Magic(str_flags=PSTRING_1_LE), b"\x05abc") == 5
    le = pstring_get_length(Magic(str_flags=PSTRING_2_LE), b"\x01\x02")
    be = pstring_get_length(Magic(str_flags=PSTRING_2_BE), b"\x02\x01")
    assert le == be
    le4 = pstring_get_length(Magic(str_flags=PSTRING_4_LE), b"\x01\x02\x03\x04")
    be4 = pstring_get_length(Magic(str_flags=PSTRING_4_BE), b"\x04\x03\x02\x01")
    assert le4 == be4


def test_pstring_length_includes_itself():
    plain = pstring_get_length(Magic(str_flags=PSTRING_2_BE), b"\x00\x10")
    incl = pstring_get_length(
        Magic(str_flags=PSTRING_2_BE | PSTRING_LENGTH_INCLUDES_ITSELF), b"\x00\x10"
    )
    assert incl == plain - 2


def test_pstring_short_data():
    with pytest.raises(ValueError):
        pstring_get_length(Magic(str_flags=PSTRING_4_BE), b"\x00")


def test_varint_big_endian():
    assert varint_to_int(b"\x05", MagicType.BEVARINT) == (5, 1)
    value, used = varint_to_int(b"\x81\x01\xff", MagicType.BEVARINT)
    assert used == 2
    assert value == (1 << 7) | 1


def test_varint_little_endian_length():
    assert varint_to_int(b"\x85\x05\x01", MagicType.LEVARINT)[1] == 2
    assert varint_to_int(b"\x05", MagicType.LEVARINT)[1] == 1


def test_show_string():
    assert show_string(b"abc") == "abc"
    assert show_string(b"\n\t") == "\\n\\t"
    assert show_string(b"\x01") == "\\001"
    assert show_string(b"\xff") == "\\377"


def test_get_op():
    assert get_op("&") == OP_AND
    assert get_op("%") == OP_MODULO
    assert get_op("z") is None


def test_magic_defaults():
    m = Magic()
    assert m.reln == "="
    assert m.flag & BINTEST == 0
    assert m.type is MagicType.INVALID