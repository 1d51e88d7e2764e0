"""Owner file routes: listing, mutations, uploads, downloads, change stream."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse

from mediashare.api.deps import State
from mediashare.api.routes._common import download_response
from mediashare.api.schemas import (
    ContentBody,
    CopyBody,
    CreateBody,
    PathBody,
    RenameBody,
    incoming_files,
)
from mediashare.fs.exceptions import InvalidRequestError
from mediashare.fs.permissions import Permission
from mediashare.fs.sandbox import check_relative

router = APIRouter(prefix="/api/files", tags=["files"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


@router.get("")
async def list_files(state: State, directory: Annotated[str, Query(alias="dir")] = "") -> dict:
    items = await state.disk.list_dir(directory)
    return {"files": [item.to_dict() for item in items]}


@router.get("/editable")
async def editable(state: State, path: str | None = None) -> dict:
    if path is None or path == "":
        return {"editable_folders": list(state.policy.editable_roots)}
    permission = state.policy.permission_for(check_relative(path))
    return {
        "editable": permission is Permission.READ_WRITE,
        "permission": permission.value,
        "path": path,
    }


@router.post("/create")
async def create(body: CreateBody, state: State) -> dict:
    content = body.payload() if body.type == "file" else None
    if body.type == "file" and content is None:
        raise InvalidRequestError("Content is required for files")
    await state.owner_ops.create(body.path, body.type, content)
    return {"success": True, "message": "Folder created" if body.type == "folder" else "File saved"}


@router.post("/edit")
async def edit(body: ContentBody, state: State) -> dict:
    await state.owner_ops.edit(body.path, body.require_payload())
    return {"success": True, "message": "File saved"}


@router.post("/delete")
async def delete(body: PathBody, state: State) -> dict:
    is_dir = await state.owner_ops.delete(body.path)
    return {"success": True, "message": "Folder deleted" if is_dir else "File deleted"}


@router.post("/rename")
async def rename(body: RenameBody, state: State) -> dict:
    await state.owner_ops.rename(body.old_path, body.new_path)
    return {"success": True, "message": "Renamed successfully"}


@router.post("/copy")
async def copy(body: CopyBody, state: State) -> dict:
    if not body.source_path or body.destination_dir is None:
        raise InvalidRequestError("Both sourcePath and destinationDir are required")
    dest = await state.owner_ops.copy(body.source_path, body.destination_dir)
    return {"success": True, "message": "Copied successfully", "path": dest}


@router.post("/upload")
async def upload(
    state: State,
    files: Annotated[list[UploadFile], File()],
    target_dir: Annotated[str, Form(alias="targetDir")] = "",
) -> dict:
    result = await state.owner_ops.upload(target_dir, incoming_files(files))
    return {"success": True, "uploaded": result.uploaded}


@router.get("/download")
async def download(state: State, path: Annotated[str, Query()] = "") -> StreamingResponse:
    return await download_response(state, path)


@router.get("/stream")
async def stream(state: State) -> StreamingResponse:
    subscription = await state.file_events.subscribe()
    return StreamingResponse(
        state.file_events.stream(subscription),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
