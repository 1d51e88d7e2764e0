"""MediaTools: ffmpeg thumbnails and audio extraction, plus mutagen audio tags.

Every subprocess runs with an explicit wall-clock timeout.  Thumbnail
generation fails closed to a 1x1 transparent PNG; audio extraction
surfaces ``UpstreamToolError`` (501) because the user asked for it
explicitly.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import hashlib
import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import mutagen
from mutagen import MutagenError
from mutagen.flac import Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags

from mediashare.fs.exceptions import InvalidRequestError, UpstreamToolError

logger = logging.getLogger(__name__)

PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)
THUMBNAIL_CACHE_CONTROL = "public, max-age=31536000"
PLACEHOLDER_CACHE_CONTROL = "public, max-age=3600"
THUMBNAIL_FILTER = "thumbnail=n=100,scale='min(300,iw)':-1"
MAX_SEEK_SECONDS = 3.0


@dataclass(frozen=True)
class Thumbnail:
    data: bytes
    media_type: str
    cache_control: str

    @property
    def is_placeholder(self) -> bool:
        return self.data == PLACEHOLDER_PNG


def placeholder_thumbnail() -> Thumbnail:
    return Thumbnail(PLACEHOLDER_PNG, "image/png", PLACEHOLDER_CACHE_CONTROL)


class ToolTimeoutError(Exception):
    """A subprocess exceeded its wall-clock budget and was killed."""


async def _run(args: list[str], timeout: float) -> tuple[int, bytes, bytes]:
    """Run a subprocess to completion, killing it on timeout.

    Raises:
        FileNotFoundError: If the executable does not exist.
        ToolTimeoutError: If *timeout* seconds elapse first.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        raise ToolTimeoutError(f"{Path(args[0]).name} timed out after {timeout:g}s") from None
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        raise
    return await proc.wait(), stdout, stderr


class MediaTools:
    """Thin async wrappers around the external transcoder.

    ``ffmpeg`` availability is checked once and cached for the process
    lifetime.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        *,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        tool_timeout: float = 5.0,
        thumbnail_timeout: float = 15.0,
        extract_timeout: float = 300.0,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.tool_timeout = tool_timeout
        self.thumbnail_timeout = thumbnail_timeout
        self.extract_timeout = extract_timeout
        self._available: bool | None = None

    async def is_available(self) -> bool:
        if self._available is None:
            try:
                code, _, _ = await _run([self.ffmpeg, "-version"], self.tool_timeout)
                self._available = code == 0
            except (OSError, ToolTimeoutError):
                self._available = False
            if not self._available:
                logger.warning("ffmpeg not available; thumbnails will be placeholders")
        return self._available

    async def read_duration(self, path: Path) -> float:
        """Duration in seconds, or 0.0 when it cannot be determined."""
        args = [
            self.ffprobe,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            code, stdout, _ = await _run(args, self.tool_timeout)
        except (OSError, ToolTimeoutError) as e:
            logger.warning("Failed to read duration of %s: %s", path.name, e)
            return 0.0
        if code != 0:
            return 0.0
        try:
            return max(0.0, float(stdout.decode("utf-8", "replace").strip()))
        except ValueError:
            return 0.0

    # ------------------------------------------------------------------
    # Thumbnails
    # ------------------------------------------------------------------

    def cache_path(self, path: Path, mtime_ns: int) -> Path:
        key = hashlib.sha256(f"{path}-{mtime_ns}".encode()).hexdigest()
        return self.cache_dir / f"{key}.jpg"

    async def thumbnail(self, path: Path, mtime_ns: int) -> Thumbnail:
        """Representative frame of a video, cached by (path, mtime)."""
        cached = self.cache_path(path, mtime_ns)
        if await asyncio.to_thread(cached.is_file):
            return Thumbnail(await asyncio.to_thread(cached.read_bytes), "image/jpeg", THUMBNAIL_CACHE_CONTROL)

        if not await self.is_available():
            return placeholder_thumbnail()

        try:
            await self._generate(path, cached)
            data = await asyncio.to_thread(cached.read_bytes)
        except (OSError, ToolTimeoutError, UpstreamToolError) as e:
            logger.warning("Thumbnail generation failed for %s: %s", path.name, e)
            with contextlib.suppress(OSError):
                cached.unlink()
            return placeholder_thumbnail()
        return Thumbnail(data, "image/jpeg", THUMBNAIL_CACHE_CONTROL)

    async def _generate(self, path: Path, output: Path) -> None:
        await asyncio.to_thread(output.parent.mkdir, parents=True, exist_ok=True)
        duration = await self.read_duration(path)
        start = min(duration * 0.05, MAX_SEEK_SECONDS) if duration > 0 else MAX_SEEK_SECONDS
        args = [
            self.ffmpeg,
            "-ss",
            f"{start:.3f}",
            "-i",
            str(path),
            "-vf",
            THUMBNAIL_FILTER,
            "-frames:v",
            "1",
            "-y",
            str(output),
        ]
        code, _, stderr = await _run(args, self.thumbnail_timeout)
        if code != 0:
            raise UpstreamToolError(f"ffmpeg exited with code {code}: {stderr[-200:].decode('utf-8', 'replace')}")

    # ------------------------------------------------------------------
    # Audio extraction
    # ------------------------------------------------------------------

    async def extract_audio(self, path: Path) -> bytes:
        """Copy a video's audio stream into WebM, buffered in memory.

        Raises:
            UpstreamToolError: If ffmpeg is missing, fails, or times out.
        """
        args = [self.ffmpeg, "-i", str(path), "-vn", "-c:a", "copy", "-f", "webm", "pipe:1"]
        try:
            code, stdout, stderr = await _run(args, self.extract_timeout)
        except FileNotFoundError:
            raise UpstreamToolError("ffmpeg is not installed") from None
        except ToolTimeoutError as e:
            raise UpstreamToolError(str(e)) from None
        if code != 0:
            logger.warning(
                "ffmpeg audio extraction failed for %s (code %d): %s",
                path.name,
                code,
                stderr[-500:].decode("utf-8", "replace"),
            )
            raise UpstreamToolError("Audio extraction failed")
        return stdout

    # ------------------------------------------------------------------
    # Audio tags
    # ------------------------------------------------------------------

    async def audio_metadata(self, path: Path) -> AudioMetadata:
        """Tags, duration and embedded cover art of an audio file.

        Raises:
            InvalidRequestError: If the file's tags cannot be parsed.
        """
        try:
            return await asyncio.to_thread(read_audio_metadata, path)
        except MutagenError as e:
            logger.warning("Failed to read audio metadata of %s: %s", path.name, e)
            raise InvalidRequestError("Failed to read audio metadata") from None


# =============================================================================
# Audio tags
# =============================================================================


@dataclass(frozen=True)
class AudioMetadata:
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    genre: str | None = None
    duration: float | None = None
    cover_art: str | None = None
    track_number: int | None = None
    album_artist: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _first(tags: Any, key: str) -> str | None:
    values = tags.get(key) if tags is not None else None
    if not values:
        return None
    return str(values[0]) or None


def _leading_int(value: str | None) -> int | None:
    # "2004-05-01" -> 2004, "3/12" -> 3
    digits = re.match(r"\s*(\d+)", value or "")
    return int(digits.group(1)) if digits else None


def _data_url(mime: str, data: bytes) -> str:
    return f"data:{mime or 'image/jpeg'};base64,{base64.b64encode(data).decode('ascii')}"


def _cover_art(audio: Any) -> str | None:
    pictures = getattr(audio, "pictures", None)
    if pictures:
        return _data_url(pictures[0].mime, pictures[0].data)

    tags = getattr(audio, "tags", None)
    if isinstance(tags, ID3):
        frames = tags.getall("APIC")
        if frames:
            return _data_url(frames[0].mime, frames[0].data)
    elif isinstance(tags, MP4Tags):
        covers = tags.get("covr")
        if covers:
            mime = "image/png" if covers[0].imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
            return _data_url(mime, bytes(covers[0]))
    elif tags is not None:
        # Vorbis comments (Ogg, Opus) carry FLAC picture blocks in base64
        blocks = tags.get("metadata_block_picture")
        if blocks:
            try:
                picture = Picture(base64.b64decode(blocks[0]))
            except (ValueError, MutagenError):
                return None
            return _data_url(picture.mime, picture.data)
    return None


def read_audio_metadata(path: Path) -> AudioMetadata:
    """Blocking tag read; unknown formats yield empty metadata."""
    easy = mutagen.File(path, easy=True)
    if easy is None:
        return AudioMetadata()
    tags = easy.tags
    length = getattr(easy.info, "length", None)
    return AudioMetadata(
        title=_first(tags, "title"),
        artist=_first(tags, "artist"),
        album=_first(tags, "album"),
        year=_leading_int(_first(tags, "date")),
        genre=_first(tags, "genre"),
        duration=float(length) if length else None,
        cover_art=_cover_art(mutagen.File(path)),
        track_number=_leading_int(_first(tags, "tracknumber")),
        album_artist=_first(tags, "albumartist"),
    )
