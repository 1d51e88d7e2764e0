"""Public share routes under ``/api/share/{token}``.

Every route except ``info`` and ``verify`` depends on ``share_access``,
which 404s unknown tokens and 401s passcode-protected shares without a
valid share session cookie.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, File, Form, Query, Request, Response, UploadFile
from fastapi.responses import StreamingResponse

from mediashare.api.deps import AppState, SharedRecord, State
from mediashare.api.routes._common import download_response, media_response, thumbnail_response
from mediashare.api.schemas import (
    ContentBody,
    CreateBody,
    FilePathBody,
    ImageUploadBody,
    PasscodeBody,
    PathBody,
    RenameBody,
    incoming_files,
)
from mediashare.auth import share_cookie_name
from mediashare.fs.exceptions import (
    InvalidRequestError,
    PathTraversalError,
    RateLimitedError,
    ShareNotFoundError,
    UnauthorizedError,
)
from mediashare.fs.sharing import resolve_sub_path
from mediashare.fs.utils import (
    MediaType,
    base_name,
    get_extension,
    get_media_type,
    knowledge_base_root,
    normalize_relative_path,
)
from mediashare.models.shares import ShareRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/share/{token}", tags=["share"])

SHARE_MEDIA_CACHE = "no-cache"


def resolve_for_read(share: ShareRecord, sub_path: str | None) -> str:
    """Resolve a sub-path for reading; a file share also accepts its own path."""
    sub = sub_path or ""
    if not share.is_directory and normalize_relative_path(sub) == normalize_relative_path(share.path):
        sub = ""
    resolved = resolve_sub_path(share, sub)
    if resolved is None:
        raise PathTraversalError("Path outside share boundary")
    return resolved


async def knowledge_base_scope(share: ShareRecord, state: AppState, directory: str) -> str:
    """Sandbox path a knowledge-base query on *share* may read."""
    if not share.is_directory:
        raise InvalidRequestError("Share is not a directory")
    if knowledge_base_root(share.path, await state.settings.knowledge_bases()) is None:
        raise InvalidRequestError("Share is not a knowledge base")
    return resolve_for_read(share, directory)


# =============================================================================
# Public metadata and passcode unlock
# =============================================================================


@router.get("/info")
async def info(token: str, request: Request, state: State) -> dict:
    share = await state.shares.get(token)
    if share is None:
        raise ShareNotFoundError()

    authorized = state.sessions.is_share_authorized(share, request.cookies)
    extension = "" if share.is_directory else get_extension(share.path)
    data = {
        "name": base_name(share.path) or share.path,
        "is_directory": share.is_directory,
        "editable": share.editable,
        "media_type": (MediaType.FOLDER if share.is_directory else get_media_type(extension)).value,
        "extension": extension,
        "needs_passcode": bool(share.passcode),
        "authorized": authorized,
    }
    if authorized:
        data["path"] = share.path
        data["restrictions"] = share.effective_restrictions.model_dump()
    return data


@router.post("/verify")
async def verify(token: str, body: PasscodeBody, response: Response, state: State) -> dict:
    share = await state.shares.get(token)
    if share is None:
        raise ShareNotFoundError()
    if not share.passcode:
        return {"success": True}

    if not state.verify_limiter.hit(token):
        logger.warning("Passcode rate limit hit for share %s...", token[:8])
        raise RateLimitedError()
    if not await state.shares.check_passcode(share, body.passcode):
        raise UnauthorizedError("Invalid passcode")

    state.verify_limiter.reset(token)
    response.set_cookie(
        share_cookie_name(share.token),
        state.sessions.issue_share(share.token),
        max_age=state.sessions.share_max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=state.config.secure_cookies,
    )
    return {"success": True}


# =============================================================================
# Reads
# =============================================================================


@router.get("/files")
async def files(
    share: SharedRecord, state: State, directory: Annotated[str, Query(alias="dir")] = ""
) -> dict:
    if not share.is_directory:
        raise InvalidRequestError("Share is not a directory")
    items = await state.disk.list_dir(resolve_for_read(share, directory))
    return {"files": [item.to_dict() for item in items]}


@router.get("/download")
async def download(share: SharedRecord, state: State, path: str = "") -> StreamingResponse:
    return await download_response(state, resolve_for_read(share, path))


@router.get("/media/{path:path}")
async def media(path: str, share: SharedRecord, request: Request, state: State) -> StreamingResponse:
    return await media_response(
        state, request, resolve_for_read(share, path), cache_control=SHARE_MEDIA_CACHE
    )


@router.get("/thumbnail/{path:path}")
async def thumbnail(path: str, share: SharedRecord, state: State) -> Response:
    return await thumbnail_response(state, resolve_for_read(share, path))


@router.post("/view")
async def view(body: FilePathBody, share: SharedRecord, state: State) -> dict:
    target = resolve_for_read(share, body.file_path) if share.is_directory else share.path
    count = await state.stats.record_share_view(target)
    return {"success": True, "view_count": count}


# =============================================================================
# Knowledge bases
# =============================================================================


@router.get("/kb/recent")
async def kb_recent(
    share: SharedRecord, state: State, directory: Annotated[str, Query(alias="dir")] = ""
) -> dict:
    notes = await state.knowledge.recent(await knowledge_base_scope(share, state, directory))
    return {"results": [note.to_dict() for note in notes]}


@router.get("/kb/search")
async def kb_search(
    share: SharedRecord,
    state: State,
    q: str = "",
    directory: Annotated[str, Query(alias="dir")] = "",
) -> dict:
    scope = await knowledge_base_scope(share, state, directory)
    if not q.strip():
        return {"results": []}
    hits = await state.knowledge.search(scope, q)
    return {"results": [hit.to_dict() for hit in hits]}


# =============================================================================
# Mutations
# =============================================================================


@router.post("/create")
async def create(body: CreateBody, share: SharedRecord, state: State) -> dict:
    content = body.payload() if body.type == "file" else None
    await state.share_ops.create(share, body.path, body.type, content)
    return {"success": True, "message": "Folder created" if body.type == "folder" else "File saved"}


@router.post("/edit")
async def edit(body: ContentBody, share: SharedRecord, state: State) -> dict:
    await state.share_ops.edit(share, body.path, body.require_payload())
    return {"success": True, "message": "File saved"}


@router.post("/delete")
async def delete(body: PathBody, share: SharedRecord, state: State) -> dict:
    is_dir = await state.share_ops.delete(share, body.path)
    return {"success": True, "message": "Folder deleted" if is_dir else "File deleted"}


@router.post("/rename")
async def rename(body: RenameBody, share: SharedRecord, state: State) -> dict:
    await state.share_ops.rename(share, body.old_path, body.new_path)
    return {"success": True, "message": "Renamed successfully"}


@router.post("/upload")
async def upload(
    share: SharedRecord,
    state: State,
    files: Annotated[list[UploadFile], File()],
    target_dir: Annotated[str, Form(alias="targetDir")] = "",
) -> dict:
    result = await state.share_ops.upload(share, target_dir, incoming_files(files))
    return {"success": True, "uploaded": result.uploaded}


@router.post("/upload-image")
async def upload_image(body: ImageUploadBody, share: SharedRecord, state: State) -> dict:
    path = await state.share_ops.upload_image(
        share, body.decode(), body.mime_type, await state.settings.knowledge_bases()
    )
    return {"success": True, "path": path}
