import pytest

from fileident.buffer import Buffer

CONTENT = b"0123456789"


@pytest.fixture
def sample(tmp_path):
    path = tmp_path / "sample.bin"
    path.write_bytes(CONTENT)
    return path


def test_size_taken_from_file(sample):
    assert Buffer(CONTENT[:4], sample).size == len(CONTENT)


def test_fill_reads_tail(sample):
    buf = Buffer(CONTENT[:4], sample)
    assert buf.fill() == CONTENT[-4:]
    assert buf.eoff == len(CONTENT) - 4


def test_fill_whole_file_when_data_longer(sample):
    buf = Buffer(CONTENT + b"extra", sample)
    assert buf.fill() == CONTENT
    assert buf.eoff == 0


def test_fill_is_cached(sample):
    buf = Buffer(CONTENT[:3], sample)
    first = buf.fill()
    sample.write_bytes(b"changed!!!")
    assert buf.fill() == first


def test_explicit_size(sample):
    buf = Buffer(CONTENT[:2], sample, size=5)
    assert buf.fill() == CONTENT[3:5]
    assert buf.eoff == 3


def test_no_path_fails_and_stays_failed():
    buf = Buffer(b"abc")
    with pytest.raises(OSError):
        buf.fill()
    with pytest.raises(OSError):
        buf.fill()
    assert buf.ebuf is None


def test_directory_is_not_regular(tmp_path):
    buf = Buffer(b"abc", tmp_path)
    assert buf.size is None
    with pytest.raises(OSError):
        buf.fill()


def test_missing_file_fails(tmp_path):
    buf = Buffer(b"abc", tmp_path / "missing", size=3)
    with pytest.raises(OSError):
        buf.fill()
    with pytest.raises(OSError):
        buf.fill()