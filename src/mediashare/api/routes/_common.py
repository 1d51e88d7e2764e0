"""Response builders shared by owner and share routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request, Response
from fastapi.responses import StreamingResponse

from mediashare.api.schemas import LONG_CACHE, NO_CACHE, content_disposition, stream_response
from mediashare.fs.exceptions import PathNotFoundError
from mediashare.fs.utils import base_name, get_extension, get_mime_type, is_text_extension
from mediashare.media import placeholder_thumbnail

if TYPE_CHECKING:
    from mediashare.api.deps import AppState


async def media_response(
    state: AppState,
    request: Request,
    path: str,
    *,
    cache_control: str | None = None,
) -> StreamingResponse:
    """Range-aware media stream for a sandbox-relative file."""
    resolved, st = await state.disk.stat_file(path)
    extension = get_extension(resolved.name)
    if cache_control is None:
        cache_control = NO_CACHE if is_text_extension(extension) else LONG_CACHE
    result = state.streamer.serve(
        resolved,
        st.st_size,
        request.headers.get("range"),
        media_type=get_mime_type(extension),
        cache_control=cache_control,
    )
    return stream_response(result)


async def download_response(state: AppState, path: str) -> StreamingResponse:
    """Attachment stream for a file, or a ZIP archive for a directory."""
    item = await state.disk.get_item(path)
    if item is None:
        raise PathNotFoundError("File not found")

    if item.is_directory:
        archive = await state.disk.build_zip(path)
        name = f"{item.name or 'media'}.zip"
        result = state.streamer.serve(
            archive,
            archive.stat().st_size,
            None,
            media_type="application/zip",
            extra_headers={"Content-Disposition": content_disposition(name)},
        )
        return stream_response(result, cleanup=archive)

    resolved, st = await state.disk.stat_file(path)
    result = state.streamer.serve(
        resolved,
        st.st_size,
        None,
        media_type="application/octet-stream",
        extra_headers={"Content-Disposition": content_disposition(base_name(path))},
    )
    return stream_response(result)


async def thumbnail_response(state: AppState, path: str) -> Response:
    """Thumbnail image; a missing file yields the placeholder PNG."""
    try:
        resolved, st = await state.disk.stat_file(path)
    except PathNotFoundError:
        thumb = placeholder_thumbnail()
    else:
        thumb = await state.media.thumbnail(resolved, st.st_mtime_ns)
    return Response(
        content=thumb.data,
        media_type=thumb.media_type,
        headers={"Cache-Control": thumb.cache_control},
    )
