"""Result and input types: FileItem, UploadResult, IncomingFile."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from .utils import MediaType

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@dataclass
class FileItem:
    """File/directory entry as returned by listings.

    ``path`` is always sandbox-relative with forward slashes.
    """

    name: str
    path: str
    media_type: MediaType
    size: int
    extension: str
    is_directory: bool
    share_token: str | None = None
    view_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["media_type"] = self.media_type.value
        if self.share_token is None:
            data.pop("share_token")
        if self.view_count is None:
            data.pop("view_count")
        return data


@dataclass
class UploadResult:
    """Result of a multi-file upload."""

    uploaded: int
    total_bytes: int
    directories: set[str] = field(default_factory=set)


@dataclass
class IncomingFile:
    """One file of a multipart upload.

    ``size`` is the declared size, used for fail-fast quota checks before
    any byte is written; ``chunks`` yields the actual content.
    """

    name: str
    size: int
    chunks: AsyncIterator[bytes]
