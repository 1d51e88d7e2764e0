"""Request bodies and response helpers shared by the route modules.

Bodies accept both snake_case and camelCase keys (``old_path`` or
``oldPath``), so existing browser clients keep working.
"""

from __future__ import annotations

import base64
import binascii
import contextlib
import os
from typing import TYPE_CHECKING, Literal
from urllib.parse import quote

from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.background import BackgroundTask

from mediashare.fs.exceptions import InvalidRequestError
from mediashare.fs.types import IncomingFile
from mediashare.models.shares import DEFAULT_MAX_UPLOAD_BYTES, ShareRestrictions

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from fastapi import UploadFile

    from mediashare.streaming import StreamResult

UPLOAD_CHUNK_SIZE = 1024 * 1024
NO_CACHE = "no-cache, no-store, must-revalidate"
LONG_CACHE = "public, max-age=31536000"


class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ContentBody(RequestBody):
    path: str = ""
    content: str | None = None
    base64_content: str | None = None

    def payload(self) -> bytes | None:
        """Decoded file content; base64 wins when both are supplied."""
        if self.base64_content:
            try:
                return base64.b64decode(self.base64_content, validate=True)
            except (binascii.Error, ValueError):
                raise InvalidRequestError("base64Content is not valid base64") from None
        if self.content is not None:
            return self.content.encode("utf-8")
        return None

    def require_payload(self) -> bytes:
        data = self.payload()
        if data is None:
            raise InvalidRequestError("Content is required")
        return data


class CreateBody(ContentBody):
    type: Literal["file", "folder"]


class PathBody(RequestBody):
    path: str = ""


class RenameBody(RequestBody):
    old_path: str = ""
    new_path: str = ""


class CopyBody(RequestBody):
    source_path: str = ""
    destination_dir: str | None = None


class LoginBody(RequestBody):
    password: str = ""


class PasscodeBody(RequestBody):
    passcode: str = ""


class FilePathBody(RequestBody):
    file_path: str = ""


class RestrictionsBody(RequestBody):
    """Share limits as sent by clients; missing flags default to allowed."""

    allow_upload: bool = True
    allow_edit: bool = True
    allow_delete: bool = True
    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, ge=0)

    def to_model(self) -> ShareRestrictions:
        return ShareRestrictions(**self.model_dump())


class ShareCreateBody(RequestBody):
    path: str = ""
    editable: bool = False
    restrictions: RestrictionsBody | None = None


class ShareUpdateBody(RequestBody):
    token: str = ""
    restrictions: RestrictionsBody = Field(default_factory=RestrictionsBody)


class TokenBody(RequestBody):
    token: str = ""


class ImageUploadBody(RequestBody):
    base64_content: str = ""
    mime_type: str | None = None

    def decode(self) -> bytes:
        if not self.base64_content:
            raise InvalidRequestError("base64Content is required")
        try:
            return base64.b64decode(self.base64_content, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidRequestError("base64Content is not valid base64") from None


class SettingsBody(RequestBody):
    action: str | None = None
    path: str | None = None
    view_mode: str | None = None
    file_path: str | None = None


# =============================================================================
# Uploads
# =============================================================================


async def _iter_upload(upload: UploadFile) -> AsyncIterator[bytes]:
    try:
        while chunk := await upload.read(UPLOAD_CHUNK_SIZE):
            yield chunk
    finally:
        await upload.close()


def incoming_files(uploads: list[UploadFile]) -> list[IncomingFile]:
    return [
        IncomingFile(name=u.filename or "", size=u.size or 0, chunks=_iter_upload(u))
        for u in uploads
    ]


# =============================================================================
# Responses
# =============================================================================


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"{disposition}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def stream_response(result: StreamResult, *, cleanup: Path | None = None) -> StreamingResponse:
    """Wrap a ``StreamResult``; *cleanup* is deleted after the body is sent."""
    background = None
    if cleanup is not None:
        background = BackgroundTask(_unlink_quietly, cleanup)
    return StreamingResponse(
        result.body,
        status_code=result.status,
        headers=result.headers,
        media_type=result.media_type,
        background=background,
    )


def _unlink_quietly(path: Path) -> None:
    with contextlib.suppress(OSError):
        os.unlink(path)
