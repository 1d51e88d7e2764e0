"""Policy-checked orchestration of filesystem mutations.

Two entry points share the same disk backend:

- ``OwnerOperations``: the admin's routes, gated by ``EditPolicy``.
- ``ShareOperations``: anonymous share routes, gated by the share's
  ``editable`` flag, its restriction flags and its upload quota.

Every check runs before the first filesystem call.  A successful mutation
publishes one files-changed hint per affected parent directory.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING, Literal

from .exceptions import (
    ConflictError,
    InvalidRequestError,
    NotEditableError,
    PathTraversalError,
    QuotaExceededError,
    ShareRootDeletionError,
)
from .sandbox import check_relative
from .sharing import check_upload_quota, resolve_sub_path
from .types import UploadResult
from .utils import (
    base_name,
    format_file_size,
    images_folder_for,
    is_within,
    join_path,
    normalize_relative_path,
    parent_path,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mediashare.events import ChangeNotifier
    from mediashare.models.shares import ShareRecord

    from .local_disk import LocalDiskBackend
    from .permissions import EditPolicy
    from .sharing import ShareRegistry
    from .types import IncomingFile

logger = logging.getLogger(__name__)

EntryKind = Literal["file", "folder"]
IMAGE_UPLOAD_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})


def _upload_name(raw: str | None) -> str:
    """Final path component of a client-supplied upload filename."""
    name = base_name((raw or "").replace("\\", "/"))
    if not name or name in (".", ".."):
        raise InvalidRequestError("Invalid file name")
    return name


async def _broadcast(notifier: ChangeNotifier | None, directories: Iterable[str]) -> None:
    if notifier is None:
        return
    for directory in dict.fromkeys(directories):
        await notifier.notify_directory(directory)


class OwnerOperations:
    """Mutations on behalf of the admin session."""

    def __init__(
        self,
        disk: LocalDiskBackend,
        policy: EditPolicy,
        shares: ShareRegistry,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self.disk = disk
        self.policy = policy
        self.shares = shares
        self.notifier = notifier

    async def create(self, path: str, kind: EntryKind, content: bytes | None = None) -> None:
        path = check_relative(path)
        if not path:
            raise InvalidRequestError("Path is required")
        self.policy.require_creatable(path)
        if await self.disk.exists(path):
            raise ConflictError(f"A {kind} with this name already exists")

        if kind == "folder":
            await self.disk.create_directory(path)
        else:
            if content is None:
                raise InvalidRequestError("Content is required for files")
            await self.disk.write_bytes(path, content)
        await _broadcast(self.notifier, [parent_path(path)])

    async def edit(self, path: str, content: bytes) -> None:
        path = check_relative(path)
        if not path:
            raise InvalidRequestError("Path is required")
        self.policy.require_editable(path)
        await self.disk.write_bytes(path, content)
        await _broadcast(self.notifier, [parent_path(path)])

    async def delete(self, path: str) -> bool:
        """Delete a file or empty folder. Returns True for a folder."""
        path = check_relative(path)
        if not path:
            raise InvalidRequestError("Path is required")
        self.policy.require_editable(path)
        is_dir = await self.disk.delete(path)
        await _broadcast(self.notifier, [parent_path(path)])
        return is_dir

    async def rename(self, old_path: str, new_path: str) -> int:
        """Rename or move, carrying share records along.

        Returns the number of share records whose path was rewritten.
        """
        old_path = check_relative(old_path)
        new_path = check_relative(new_path)
        if not old_path or not new_path:
            raise InvalidRequestError("Both oldPath and newPath are required")
        self.policy.require_movable(old_path, new_path)
        await self.disk.move(old_path, new_path)
        moved = await self.shares.update_share_paths(old_path, new_path)
        await _broadcast(self.notifier, [parent_path(old_path), parent_path(new_path)])
        return moved

    async def copy(self, source: str, destination_dir: str) -> str:
        """Copy into *destination_dir*; only the destination must be editable."""
        source = check_relative(source)
        destination_dir = check_relative(destination_dir)
        if not source:
            raise InvalidRequestError("Both sourcePath and destinationDir are required")
        self.policy.require_creatable(join_path(destination_dir, base_name(source)))
        dest = await self.disk.copy(source, destination_dir)
        await _broadcast(self.notifier, [destination_dir])
        return dest

    async def upload(self, target_dir: str, files: list[IncomingFile]) -> UploadResult:
        """Stream uploaded files into *target_dir*.

        Files whose destination is not creatable are skipped; if every
        file is skipped the upload fails with ``NotEditableError``.
        """
        if not files:
            raise InvalidRequestError("No files provided")
        target_dir = check_relative(target_dir)

        result = UploadResult(uploaded=0, total_bytes=0)
        for incoming in files:
            path = join_path(target_dir, _upload_name(incoming.name))
            if not self.policy.can_create(path):
                logger.info("Skipping upload to non-editable path %s", path)
                continue
            result.total_bytes += await self.disk.write_stream(path, incoming.chunks)
            result.uploaded += 1
            result.directories.add(parent_path(path))

        if result.uploaded == 0:
            raise NotEditableError("No files were uploaded: target path is not editable")
        await _broadcast(self.notifier, sorted(result.directories))
        return result


class ShareOperations:
    """Mutations on behalf of an anonymous share visitor.

    Restriction gates: create and upload need ``allow_upload``; edit and
    rename need ``allow_edit``; delete needs ``allow_delete``.  Content
    written through create, edit and upload is charged to the share's
    quota.  Image uploads additionally need the owner's ``policy`` to
    allow writes into the images folder.
    """

    def __init__(
        self,
        disk: LocalDiskBackend,
        shares: ShareRegistry,
        notifier: ChangeNotifier | None = None,
        *,
        policy: EditPolicy | None = None,
    ) -> None:
        self.disk = disk
        self.shares = shares
        self.notifier = notifier
        self.policy = policy

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    @staticmethod
    def _require(share: ShareRecord, flag: str, message: str) -> None:
        if not share.editable:
            raise NotEditableError("Share is not editable")
        if not getattr(share.effective_restrictions, flag):
            raise NotEditableError(message)

    @staticmethod
    def _resolve(share: ShareRecord, sub_path: str | None) -> str:
        resolved = resolve_sub_path(share, sub_path)
        if resolved is None:
            raise PathTraversalError("Path outside share boundary")
        return resolved

    @staticmethod
    def _check_quota(share: ShareRecord, incoming: int) -> None:
        quota = check_upload_quota(share, incoming)
        if quota.allowed:
            return
        remaining = quota.remaining or 0
        raise QuotaExceededError(
            f"Upload exceeds quota ({format_file_size(remaining)} remaining, "
            f"{format_file_size(incoming)} requested)",
            remaining=remaining,
            requested=incoming,
        )

    async def _charge(self, share: ShareRecord, amount: int) -> None:
        if amount > 0:
            await self.shares.add_used_bytes(share.token, amount)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        share: ShareRecord,
        sub_path: str,
        kind: EntryKind,
        content: bytes | None = None,
    ) -> str:
        self._require(share, "allow_upload", "Uploads are not allowed for this share")
        if not sub_path:
            raise InvalidRequestError("Path is required")
        path = self._resolve(share, sub_path)
        if await self.disk.exists(path):
            raise ConflictError(f"A {kind} with this name already exists")

        if kind == "folder":
            await self.disk.create_directory(path)
        else:
            if content is None:
                raise InvalidRequestError("Content is required for files")
            self._check_quota(share, len(content))
            await self.disk.write_bytes(path, content)
            await self._charge(share, len(content))
        await _broadcast(self.notifier, [parent_path(path)])
        return path

    async def edit(self, share: ShareRecord, sub_path: str, content: bytes) -> str:
        self._require(share, "allow_edit", "Editing is not allowed for this share")
        path = self._resolve(share, sub_path)
        self._check_quota(share, len(content))
        await self.disk.write_bytes(path, content)
        await self._charge(share, len(content))
        await _broadcast(self.notifier, [parent_path(path)])
        return path

    async def delete(self, share: ShareRecord, sub_path: str) -> bool:
        self._require(share, "allow_delete", "Deleting is not allowed for this share")
        if not sub_path:
            raise InvalidRequestError("Path is required")
        path = self._resolve(share, sub_path)
        if path == normalize_relative_path(share.path):
            raise ShareRootDeletionError()
        is_dir = await self.disk.delete(path)
        await _broadcast(self.notifier, [parent_path(path)])
        return is_dir

    async def rename(self, share: ShareRecord, old_sub: str, new_sub: str) -> str:
        self._require(share, "allow_edit", "Editing is not allowed for this share")
        if not old_sub or not new_sub:
            raise InvalidRequestError("Both oldPath and newPath are required")
        old_path = self._resolve(share, old_sub)
        new_path = self._resolve(share, new_sub)
        if old_path == normalize_relative_path(share.path):
            raise NotEditableError("Cannot rename share root")
        await self.disk.move(old_path, new_path)
        await _broadcast(self.notifier, [parent_path(old_path), parent_path(new_path)])
        return new_path

    async def upload(
        self, share: ShareRecord, target_sub: str, files: list[IncomingFile]
    ) -> UploadResult:
        """Quota is checked once against the summed declared sizes.

        The bytes actually written are charged afterwards in one store
        transaction.  Concurrent uploads against the same share can each
        pass the check before either is charged.
        """
        self._require(share, "allow_upload", "Uploads are not allowed for this share")
        if not files:
            raise InvalidRequestError("No files provided")
        self._check_quota(share, sum(max(0, f.size) for f in files))

        result = UploadResult(uploaded=0, total_bytes=0)
        for incoming in files:
            sub = join_path(target_sub or "", _upload_name(incoming.name))
            path = resolve_sub_path(share, sub)
            if path is None:
                continue
            result.total_bytes += await self.disk.write_stream(path, incoming.chunks)
            result.uploaded += 1
            result.directories.add(parent_path(path))

        await self._charge(share, result.total_bytes)
        await _broadcast(self.notifier, sorted(result.directories))
        return result

    async def upload_image(
        self,
        share: ShareRecord,
        data: bytes,
        mime_type: str | None,
        knowledge_bases: Iterable[str],
    ) -> str:
        """Store a pasted image in the share's ``images`` folder.

        The folder is ``<knowledge base>/images`` when the share sits in a
        knowledge base, else ``<share>/images``.  It must lie inside the
        share and inside an editable folder.  Returns the image path.
        """
        self._require(share, "allow_upload", "Uploads are not allowed for this share")
        if not share.is_directory:
            raise InvalidRequestError("Share is not a directory")
        if not data:
            raise InvalidRequestError("base64Content is required")
        self._check_quota(share, len(data))

        share_root = normalize_relative_path(share.path)
        images_dir = images_folder_for(share_root, knowledge_bases)
        if not is_within(images_dir, share_root):
            raise PathTraversalError("Images folder is outside the share")
        if self.policy is None or not self.policy.is_editable(images_dir):
            raise NotEditableError("Images folder is not in an editable directory")

        subtype = (mime_type or "image/png").partition("/")[2].lower()
        extension = subtype if subtype in IMAGE_UPLOAD_EXTENSIONS else "png"
        name = f"image-{time.time_ns() // 1_000_000}-{secrets.token_hex(3)}.{extension}"
        path = join_path(images_dir, name)

        await self.disk.write_bytes(path, data)
        await self._charge(share, len(data))
        await _broadcast(self.notifier, [images_dir])
        return path
