import io

import pytest

from media_service.ranges import (
    FULL_CONTENT,
    UNSATISFIABLE,
    BoundedReader,
    RangeSpec,
    RangeStatus,
    StreamableContent,
    resolve_range,
)


def test_absent_header_is_full_content():
    assert resolve_range(None, 1000) == FULL_CONTENT


@pytest.mark.parametrize("header", [
    "",
    "items=0-10",
    "bytes=",
    "bytes=-",
    "bytes=abc-10",
    "bytes=0-10,20-30",
    "0-10",
])
def test_malformed_header_is_treated_as_absent(header):
    assert resolve_range(header, 1000) == FULL_CONTENT


@pytest.mark.parametrize("total", [1, 2, 1000, 10 * 1024 * 1024])
def test_open_ended_from_zero_covers_whole_file(total):
    result = resolve_range("bytes=0-", total)
    assert result.status is RangeStatus.PARTIAL
    assert result.spec == RangeSpec(0, total - 1)


def test_explicit_range():
    result = resolve_range("bytes=0-1023", 5000)
    assert result.spec == RangeSpec(0, 1023)
    assert result.spec.length == 1024


def test_unit_is_case_insensitive_and_whitespace_tolerant():
    assert resolve_range(" BYTES=10-19 ", 100).spec == RangeSpec(10, 19)


def test_open_ended_range():
    assert resolve_range("bytes=1024-", 5000).spec == RangeSpec(1024, 4999)


def test_suffix_range():
    assert resolve_range("bytes=-500", 5000).spec == RangeSpec(4500, 4999)


def test_suffix_longer_than_file_clamps_to_start():
    assert resolve_range("bytes=-5000", 1000).spec == RangeSpec(0, 999)


def test_end_is_clamped_to_last_byte():
    assert resolve_range("bytes=900-1200", 1000).spec == RangeSpec(900, 999)


def test_start_after_end_is_unsatisfiable():
    assert resolve_range("bytes=500-100", 1000) == UNSATISFIABLE


def test_start_beyond_size_is_unsatisfiable():
    assert resolve_range("bytes=1000-", 1000) == UNSATISFIABLE
    assert resolve_range("bytes=2000-3000", 1000) == UNSATISFIABLE


def test_zero_suffix_is_unsatisfiable():
    assert resolve_range("bytes=-0", 1000) == UNSATISFIABLE


def test_huge_positions_never_raise():
    huge = "9" * 5000
    assert resolve_range(f"bytes={huge}-", 1000) == UNSATISFIABLE
    assert resolve_range(f"bytes={huge}-{huge}", 1000) == UNSATISFIABLE
    assert resolve_range(f"bytes=900-{huge}", 1000).spec == RangeSpec(900, 999)
    assert resolve_range(f"bytes=-{huge}", 1000).spec == RangeSpec(0, 999)
    assert resolve_range("bytes=" + "0" * 5000 + "7-9", 1000).spec == RangeSpec(7, 9)


def test_empty_file_has_no_satisfiable_range():
    assert resolve_range("bytes=0-", 0) == UNSATISFIABLE
    assert resolve_range(None, 0) == FULL_CONTENT


class GreedySource(io.BytesIO):
    """Всегда отдаёт больше, чем просили."""

    def read(self, size=-1):
        return b"x" * (max(size, 0) + 5)


def test_bounded_reader_never_over_sends():
    reader = BoundedReader(GreedySource(), 10)
    assert reader.read(4) == b"xxxx"
    assert reader.remaining == 6
    assert reader.read() == b"x" * 6
    assert reader.read() == b""


def test_bounded_reader_closes_source():
    source = io.BytesIO(b"abc")
    with BoundedReader(source, 2) as reader:
        assert reader.read() == b"ab"
    assert source.closed


def test_partial_streamable_content_headers_and_body():
    data = bytes(range(256)) * 4
    spec = RangeSpec(900, 999)

    def factory():
        source = io.BytesIO(data)
        source.seek(spec.start)
        return source

    content = StreamableContent("video/mp4", len(data), spec, factory)

    assert content.is_partial
    assert content.status_code == 206
    assert content.content_length == 100
    assert content.content_range == "bytes 900-999/1024"
    assert content.headers()["Content-Range"] == "bytes 900-999/1024"
    assert b"".join(content.iter_chunks(chunk_size=7)) == data[900:1000]


def test_full_streamable_content_is_lazy():
    opened = []

    def factory():
        opened.append(True)
        return io.BytesIO(b"hello")

    content = StreamableContent("text/plain", 5, None, factory)
    assert not opened
    assert content.status_code == 200
    assert content.content_range is None
    assert "Content-Range" not in content.headers()
    assert b"".join(content.iter_chunks()) == b"hello"
    assert opened == [True]
