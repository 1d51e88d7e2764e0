"""Tests for byte-range parsing and RangeStreamer bodies."""

from __future__ import annotations

import pytest

from mediashare.fs.exceptions import RangeNotSatisfiableError
from mediashare.streaming import ByteRange, RangeStreamer, parse_range


async def _collect(body) -> bytes:
    return b"".join([chunk async for chunk in body])


# ---------------------------------------------------------------------------
# parse_range
# ---------------------------------------------------------------------------


class TestParseRange:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            pytest.param("bytes=0-99", (0, 99), id="explicit"),
            pytest.param("bytes=10-", (10, 999), id="open-ended"),
            pytest.param("bytes=990-5000", (990, 999), id="clamped"),
            pytest.param("bytes=-100", (900, 999), id="suffix"),
            pytest.param("bytes=-5000", (0, 999), id="suffix-larger-than-file"),
            pytest.param("bytes=999-999", (999, 999), id="last-byte"),
        ],
    )
    def test_valid(self, header: str, expected: tuple[int, int]):
        byte_range = parse_range(header, 1000)
        assert byte_range is not None
        assert (byte_range.start, byte_range.end) == expected

    @pytest.mark.parametrize(
        "header",
        [
            pytest.param(None, id="none"),
            pytest.param("", id="empty"),
            pytest.param("items=0-10", id="wrong-unit"),
            pytest.param("bytes=0-10,20-30", id="multi-range"),
            pytest.param("bytes=-", id="no-numbers"),
            pytest.param("bytes=50-10", id="reversed"),
            pytest.param("bytes=abc-def", id="garbage"),
        ],
    )
    def test_full_content(self, header):
        assert parse_range(header, 1000) is None

    @pytest.mark.parametrize(
        ("header", "size"),
        [
            pytest.param("bytes=1000-", 1000, id="start-at-size"),
            pytest.param("bytes=5000-6000", 1000, id="start-past-end"),
            pytest.param("bytes=-0", 1000, id="zero-suffix"),
            pytest.param("bytes=0-", 0, id="empty-file"),
        ],
    )
    def test_unsatisfiable(self, header: str, size: int):
        with pytest.raises(RangeNotSatisfiableError) as excinfo:
            parse_range(header, size)
        assert excinfo.value.size == size
        assert excinfo.value.status_code == 416

    def test_content_range(self):
        byte_range = ByteRange(start=0, end=99, size=1000)
        assert byte_range.length == 100
        assert byte_range.content_range() == "bytes 0-99/1000"


# ---------------------------------------------------------------------------
# RangeStreamer
# ---------------------------------------------------------------------------


@pytest.fixture
def media_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(bytes(range(256)) * 4)
    return path


class TestServe:
    async def test_full_body(self, media_file):
        streamer = RangeStreamer(chunk_size=100)
        result = streamer.serve(media_file, 1024, None, media_type="video/mp4")
        assert result.status == 200
        assert result.headers["Content-Length"] == "1024"
        assert result.headers["Accept-Ranges"] == "bytes"
        assert "Content-Range" not in result.headers
        assert await _collect(result.body) == media_file.read_bytes()

    async def test_partial_body(self, media_file):
        streamer = RangeStreamer(chunk_size=7)
        result = streamer.serve(media_file, 1024, "bytes=100-199", cache_control="no-cache")
        assert result.status == 206
        assert result.headers["Content-Range"] == "bytes 100-199/1024"
        assert result.headers["Content-Length"] == "100"
        assert result.headers["Cache-Control"] == "no-cache"
        assert await _collect(result.body) == media_file.read_bytes()[100:200]

    async def test_chunks_are_bounded(self, media_file):
        streamer = RangeStreamer(chunk_size=64)
        result = streamer.serve(media_file, 1024, None)
        sizes = [len(chunk) async for chunk in result.body]
        assert max(sizes) <= 64
        assert sum(sizes) == 1024

    async def test_extra_headers(self, media_file):
        result = RangeStreamer().serve(
            media_file, 1024, None, extra_headers={"Content-Disposition": "attachment"}
        )
        assert result.headers["Content-Disposition"] == "attachment"
        await _collect(result.body)

    def test_unsatisfiable_raises_before_opening(self, tmp_path):
        with pytest.raises(RangeNotSatisfiableError):
            RangeStreamer().serve(tmp_path / "missing.mp4", 10, "bytes=20-")

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            RangeStreamer(chunk_size=0)


class TestServeBytes:
    async def test_suffix_range(self):
        result = RangeStreamer(chunk_size=3).serve_bytes(b"abcdefghij", "bytes=-4")
        assert result.status == 206
        assert result.headers["Content-Range"] == "bytes 6-9/10"
        assert await _collect(result.body) == b"ghij"

    async def test_full(self):
        result = RangeStreamer().serve_bytes(b"abc", None, media_type="audio/webm")
        assert result.status == 200
        assert result.media_type == "audio/webm"
        assert await _collect(result.body) == b"abc"
