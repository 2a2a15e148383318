# fileident

`fileident` reads magic files, the line-oriented rule files that describe
how to recognise file types from their contents, and turns them into
ordered test entries. It also builds descriptions of text data (encoding
name, line terminators, long lines, escape sequences), converts the
timestamps used by Composite Document Files, and wraps the bytes of a file
under examination.

It is pure Python and uses only the standard library.

## Installing

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Checking a magic file

```
fileident-check /path/to/magic
```

The argument is a magic file, a directory of magic files, or several of
these separated by the platform's path separator. On success the command
prints the loaded patterns of both sets, binary and text patterns apart, in
matching order with their strength, line number, description and MIME
type, and exits with status 0. If no listed file or directory loads without
errors, it prints the problems it found to standard error and exits with
status 1. Called with anything other than one argument it prints a usage
line and exits with status 1.

## Using the library

### Loading rules

`fileident.magic_load.MagicSet` holds the parsed rules in two sets: set 0
for ordinary tests and set 1 for `name` entries that other tests `use`.

```python
from fileident.magic_load import MagicSet

rules = MagicSet()
rules.load("/path/to/magic")          # file(s) or directories, os.pathsep-separated

for m in rules.entries(0):            # Magic objects, strongest test first
    print(m.lineno, m.desc)

named = rules.find_name("my-subtest") # the name entry and its continuations
print(rules.listing())                # the text printed by fileident-check
```

`load` replaces what was loaded before and raises `MagicSyntaxError` when
nothing could be loaded. `find_name` raises `KeyError` for an unknown name,
and `entries` raises `IndexError` for a set other than 0 or 1.

Rules can also come from memory:

```python
rules = MagicSet()
rules.load_lines(
    [
        "0\tstring\t%PDF-\tPDF document",
        "!:mime\tapplication/pdf",
    ],
    "inline",
)
```

Any bad line makes `load_lines` raise `MagicSyntaxError` (defined in
`fileident.magic_values`) with all the problems found.

`set_test_type(start, m)` marks an entry as a binary or a text test; the
loader applies it to every top-level test.

### Parsing single lines

`fileident.magic_parse.MagicParser` parses one test line at a time into a
`MagicEntry` (a top-level test followed by its continuations).
`parse_line` returns `False` when the line starts a new top-level test and
the entry already has one. `parse_bang` handles the `!:mime`, `!:apple`,
`!:ext` and `!:strength` annotation lines, which are also available as
`parse_mime`, `parse_apple`, `parse_ext` and `parse_strength`. With
`check=True` (the default) modifiers and description formats are checked
strictly.

### Types, values and strength

`fileident.magic_types` has the `Magic` dataclass, the `MagicType` and
`ValueFormat` enums, type lookup (`get_type`, `get_special_type`,
`get_standard_integer_type`), `type_size`, `value_format`,
`is_string_type`, `get_op`, `sign_extend`, Pascal string helpers
(`pstring_length_size`, `pstring_get_length`), `varint_to_int`,
`show_string` for escaping bytes, and `nonmagic` and `magic_strength`, which
compute the weight used to order tests so that the most specific ones come
first.

`fileident.magic_values` reads the value field of a line: `get_string`
decodes C-style escapes, `get_value` reads numbers, floats, GUIDs and
strings according to the entry's type, `eat_size` skips integer size
suffixes, `hex_to_int` reads one hex digit, and `check_format` /
`check_format_type` verify that the printf-style format in a description
suits the entry's type.

### Describing text

```python
from fileident.text import describe_text

data = b"hello\r\nworld\r\n"
print(describe_text(list(data), data, "ASCII", "text"))
# ASCII text, with CRLF line terminators
```

The code points are given as integers; the encoding name and kind are
supplied by the caller. `describe_text` returns `None` for data of one byte
or less (after trailing NULs are dropped) and when the kind is `"binary"`.
A `prior` description is joined in front of the result. `analyze_text`
returns the underlying `TextReport` counts, and `encode_utf8` and
`trim_nuls` are available on their own.

### Document timestamps

`fileident.cdf_time.timestamp_to_timespec` converts a Composite Document
File timestamp (100-nanosecond units since 1601, taken as UTC) into seconds
since the Unix epoch and nanoseconds. `cdf_ctime` formats seconds in UTC in
the `ctime` style, newline included.

### Buffers

`fileident.buffer.Buffer` holds the leading bytes of a file together with
its path and size. `fill()` reads as many bytes from the end of the file as
the buffer holds, keeps them in `ebuf` with their offset in `eoff`, and
raises `OSError` when the end cannot be read.

## What it does not do

`fileident` does not run the loaded tests against file contents, so it does
not identify files by itself. It does not detect text encodings: the code
points, encoding name and kind given to `describe_text` must come from the
caller. It reads and writes no compiled rule databases, only magic source
files, and it does not parse Composite Document Files beyond converting
their timestamps.