"""Owner media routes: range streaming, thumbnails, audio tags and extraction."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse

from mediashare.api.deps import State
from mediashare.api.routes._common import media_response, thumbnail_response
from mediashare.api.schemas import stream_response
from mediashare.fs.exceptions import InvalidRequestError
from mediashare.fs.utils import MediaType, get_extension, get_media_type

router = APIRouter(prefix="/api", tags=["media"])

AUDIO_CACHE = "public, max-age=3600"


@router.get("/media/{path:path}")
async def media(path: str, request: Request, state: State) -> StreamingResponse:
    return await media_response(state, request, path)


@router.get("/thumbnail/{path:path}")
async def thumbnail(path: str, state: State) -> Response:
    return await thumbnail_response(state, path)


@router.get("/audio/metadata/{path:path}")
async def audio_metadata(path: str, state: State) -> dict:
    resolved, _ = await state.disk.stat_file(path)
    return (await state.media.audio_metadata(resolved)).to_dict()


@router.get("/audio/extract/{path:path}")
async def extract_audio(path: str, request: Request, state: State) -> StreamingResponse:
    resolved, _ = await state.disk.stat_file(path)
    if get_media_type(get_extension(resolved.name)) is not MediaType.VIDEO:
        raise InvalidRequestError("Not a video file")
    data = await state.media.extract_audio(resolved)
    result = state.streamer.serve_bytes(
        data,
        request.headers.get("range"),
        media_type="audio/webm",
        cache_control=AUDIO_CACHE,
    )
    return stream_response(result)
