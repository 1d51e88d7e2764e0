"""RangeStreamer: HTTP byte-range parsing and lazy partial-content bodies.

``serve`` never loads a file into memory: the body is an async generator
over an ``aiofiles`` handle that reads at most ``end - start + 1`` bytes in
bounded chunks.  Closing the generator (client disconnect) closes the
file handle.

Range handling:

- no header, a malformed header, or a multi-range header -> 200 full body
- ``bytes=<start>-[<end>]`` -> 206; ``end`` defaults to, and is clamped
  to, ``size - 1``
- ``bytes=-<n>`` -> 206 for the last ``n`` bytes
- ``start >= size`` -> ``RangeNotSatisfiableError`` (416)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import aiofiles

from mediashare.fs.exceptions import RangeNotSatisfiableError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


@dataclass(frozen=True, slots=True)
class ByteRange:
    """Inclusive byte range with ``start <= end < size``."""

    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def parse_range(header: str | None, size: int) -> ByteRange | None:
    """Parse a single ``Range`` header against a content of *size* bytes.

    Returns None when the full content should be served.

    Raises:
        RangeNotSatisfiableError: If the range starts at or past the end.
    """
    if not header:
        return None
    value = header.strip().replace(" ", "")
    if "," in value:
        return None
    match = _RANGE_RE.match(value)
    if match is None:
        return None

    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        return None

    if not raw_start:
        suffix = int(raw_end)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiableError(size)
        return ByteRange(start=max(0, size - suffix), end=size - 1, size=size)

    start = int(raw_start)
    if start >= size:
        raise RangeNotSatisfiableError(size)
    end = int(raw_end) if raw_end else size - 1
    if end < start:
        return None
    return ByteRange(start=start, end=min(end, size - 1), size=size)


@dataclass
class StreamResult:
    """Status, headers and a lazy body, ready to hand to an HTTP response."""

    status: int
    headers: dict[str, str]
    body: AsyncIterator[bytes]
    media_type: str
    byte_range: ByteRange | None = field(default=None)


def _headers(
    length: int,
    byte_range: ByteRange | None,
    cache_control: str | None,
    extra: dict[str, str] | None,
) -> dict[str, str]:
    headers = {"Accept-Ranges": "bytes", "Content-Length": str(length)}
    if byte_range is not None:
        headers["Content-Range"] = byte_range.content_range()
    if cache_control:
        headers["Cache-Control"] = cache_control
    if extra:
        headers.update(extra)
    return headers


class RangeStreamer:
    """Serves files (or small in-memory buffers) with byte-range support."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    async def _file_body(self, path: Path, start: int, length: int) -> AsyncIterator[bytes]:
        remaining = length
        async with aiofiles.open(path, "rb") as f:
            if start:
                await f.seek(start)
            while remaining > 0:
                data = await f.read(min(self.chunk_size, remaining))
                if not data:
                    logger.warning("File %s shrank while streaming", path.name)
                    break
                remaining -= len(data)
                yield data

    async def _bytes_body(self, data: bytes, start: int, length: int) -> AsyncIterator[bytes]:
        view = memoryview(data)[start : start + length]
        for offset in range(0, len(view), self.chunk_size):
            yield bytes(view[offset : offset + self.chunk_size])

    def serve(
        self,
        path: Path,
        size: int,
        range_header: str | None,
        *,
        media_type: str = "application/octet-stream",
        cache_control: str | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> StreamResult:
        """Prepare a 200 or 206 response for *path* of *size* bytes.

        Raises:
            RangeNotSatisfiableError: For a range starting past the end.
        """
        byte_range = parse_range(range_header, size)
        if byte_range is None:
            start, length, status = 0, size, 200
        else:
            start, length, status = byte_range.start, byte_range.length, 206
        return StreamResult(
            status=status,
            headers=_headers(length, byte_range, cache_control, extra_headers),
            body=self._file_body(path, start, length),
            media_type=media_type,
            byte_range=byte_range,
        )

    def serve_bytes(
        self,
        data: bytes,
        range_header: str | None,
        *,
        media_type: str = "application/octet-stream",
        cache_control: str | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> StreamResult:
        """Same framing as ``serve`` for content already buffered in memory.

        Only meant for small derived media (extracted audio tracks) whose
        length is unknown until fully produced.
        """
        size = len(data)
        byte_range = parse_range(range_header, size)
        if byte_range is None:
            start, length, status = 0, size, 200
        else:
            start, length, status = byte_range.start, byte_range.length, 206
        return StreamResult(
            status=status,
            headers=_headers(length, byte_range, cache_control, extra_headers),
            body=self._bytes_body(data, start, length),
            media_type=media_type,
            byte_range=byte_range,
        )
