"""LocalDiskBackend: sandboxed direct disk access."""

from __future__ import annotations

import asyncio
import contextlib
import os
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

from .exceptions import ConflictError, InvalidRequestError, PathNotFoundError
from .types import FileItem
from .utils import (
    MediaType,
    base_name,
    get_extension,
    get_media_type,
    is_within,
    normalize_relative_path,
    validate_name,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .sandbox import PathSandbox

_DIGITS_RE = re.compile(r"(\d+)")


def _natural_key(name: str) -> list[object]:
    return [int(part) if part.isdigit() else part.lower() for part in _DIGITS_RE.split(name)]


class LocalDiskBackend:
    """Disk operations confined to one ``PathSandbox``.

    Every public method takes sandbox-relative paths and resolves them
    through the sandbox first.  Editability is *not* checked here; see
    ``mediashare.fs.operations`` for the policy-checked entry points.
    """

    def __init__(self, sandbox: PathSandbox) -> None:
        self.sandbox = sandbox

    # =========================================================================
    # Read Operations
    # =========================================================================

    def _item_for(self, resolved: Path, st: os.stat_result, is_dir: bool) -> FileItem:
        name = resolved.name
        extension = "" if is_dir else get_extension(name)
        return FileItem(
            name=name,
            path=self.sandbox.to_relative(resolved),
            media_type=MediaType.FOLDER if is_dir else get_media_type(extension),
            size=0 if is_dir else st.st_size,
            extension=extension,
            is_directory=is_dir,
        )

    async def list_dir(self, path: str = "") -> list[FileItem]:
        """List a directory, directories first then natural name order."""
        resolved = self.sandbox.resolve(path)

        if not await asyncio.to_thread(resolved.exists):
            raise PathNotFoundError(f"Directory not found: {normalize_relative_path(path)}")
        if not await asyncio.to_thread(resolved.is_dir):
            raise InvalidRequestError("Path is not a directory")

        def _scan() -> list[FileItem]:
            entries: list[FileItem] = []
            for entry in os.scandir(resolved):
                try:
                    st = entry.stat()
                    is_dir = entry.is_dir()
                    entries.append(self._item_for(Path(entry.path), st, is_dir))
                except (OSError, ValueError):
                    continue
            entries.sort(key=lambda x: (not x.is_directory, _natural_key(x.name)))
            return entries

        return await asyncio.to_thread(_scan)

    async def get_item(self, path: str) -> FileItem | None:
        """Metadata for one path, or None if it does not exist."""
        resolved = self.sandbox.resolve(path)

        def _stat() -> FileItem | None:
            try:
                st = resolved.stat()
            except OSError:
                return None
            return self._item_for(resolved, st, resolved.is_dir())

        return await asyncio.to_thread(_stat)

    async def exists(self, path: str) -> bool:
        resolved = self.sandbox.resolve(path)
        return await asyncio.to_thread(resolved.exists)

    async def stat_file(self, path: str) -> tuple[Path, os.stat_result]:
        """Resolve a regular file for streaming.

        Raises:
            PathNotFoundError: If the path is missing or not a regular file.
        """
        resolved = self.sandbox.resolve(path)
        try:
            st = await asyncio.to_thread(resolved.stat)
        except OSError:
            raise PathNotFoundError("File not found") from None
        if not resolved.is_file():
            raise PathNotFoundError("Not a file")
        return resolved, st

    # =========================================================================
    # Write Operations
    # =========================================================================

    @staticmethod
    def _check_name(path: str) -> None:
        valid, error = validate_name(base_name(path))
        if not valid:
            raise InvalidRequestError(error)

    async def write_bytes(self, path: str, data: bytes) -> bool:
        """Write a file atomically via tempfile + replace.

        Returns True if the file was created, False if it was overwritten.
        """
        self._check_name(path)
        resolved = self.sandbox.resolve(path)

        def _write() -> bool:
            if resolved.is_dir():
                raise ConflictError("A folder with this name already exists")
            was_created = not resolved.exists()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(resolved.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                Path(tmp_path).replace(resolved)
            except Exception:
                with contextlib.suppress(OSError):
                    Path(tmp_path).unlink()
                raise
            return was_created

        return await asyncio.to_thread(_write)

    async def write_stream(self, path: str, chunks: AsyncIterator[bytes]) -> int:
        """Stream chunks into a file without buffering it whole.

        Returns the number of bytes written.
        """
        self._check_name(path)
        resolved = self.sandbox.resolve(path)
        await asyncio.to_thread(resolved.parent.mkdir, parents=True, exist_ok=True)

        fd, tmp_path = await asyncio.to_thread(
            tempfile.mkstemp, dir=str(resolved.parent), suffix=".part"
        )
        os.close(fd)
        written = 0
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in chunks:
                    await f.write(chunk)
                    written += len(chunk)
            await asyncio.to_thread(Path(tmp_path).replace, resolved)
        except BaseException:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
        return written

    async def create_directory(self, path: str) -> None:
        self._check_name(path)
        resolved = self.sandbox.resolve(path)
        if await asyncio.to_thread(resolved.exists):
            raise ConflictError("A folder with this name already exists")
        await asyncio.to_thread(resolved.mkdir, parents=True, exist_ok=False)

    async def delete(self, path: str) -> bool:
        """Delete a file or an empty directory.

        Returns True if a directory was removed, False for a file.
        """
        if not normalize_relative_path(path):
            raise InvalidRequestError("Cannot delete the media root")
        resolved = self.sandbox.resolve(path)

        if not await asyncio.to_thread(resolved.exists):
            raise PathNotFoundError(f"Not found: {normalize_relative_path(path)}")

        is_dir = await asyncio.to_thread(resolved.is_dir)

        def _delete() -> None:
            if is_dir:
                if any(resolved.iterdir()):
                    raise ConflictError("Cannot delete directory: Directory is not empty")
                resolved.rmdir()
            else:
                resolved.unlink()

        await asyncio.to_thread(_delete)
        return is_dir

    async def move(self, src: str, dest: str) -> None:
        """Rename or move a file or directory."""
        src = normalize_relative_path(src)
        dest = normalize_relative_path(dest)
        self._check_name(dest)
        if not src:
            raise InvalidRequestError("Cannot move the media root")
        if src == dest:
            raise InvalidRequestError("Source and destination are the same")
        if is_within(dest, src):
            raise InvalidRequestError("Cannot move a folder into itself")

        src_resolved = self.sandbox.resolve(src)
        dest_resolved = self.sandbox.resolve(dest)

        if not await asyncio.to_thread(src_resolved.exists):
            raise PathNotFoundError(f"Source not found: {src}")
        if await asyncio.to_thread(dest_resolved.exists):
            raise ConflictError("Destination already exists")

        def _move() -> None:
            dest_resolved.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src_resolved), str(dest_resolved))

        await asyncio.to_thread(_move)

    async def copy(self, src: str, dest_dir: str) -> str:
        """Copy a file or directory tree into *dest_dir*.

        Returns the relative path of the copy.
        """
        src = normalize_relative_path(src)
        dest_dir = normalize_relative_path(dest_dir)
        if not src:
            raise InvalidRequestError("Cannot copy the media root")

        name = base_name(src)
        dest = f"{dest_dir}/{name}" if dest_dir else name
        if is_within(dest, src):
            raise InvalidRequestError("Cannot copy a folder into itself")

        src_resolved = self.sandbox.resolve(src)
        dest_parent = self.sandbox.resolve(dest_dir)
        dest_resolved = self.sandbox.resolve(dest)

        if not await asyncio.to_thread(src_resolved.exists):
            raise PathNotFoundError(f"Source not found: {src}")
        if await asyncio.to_thread(dest_resolved.exists):
            raise ConflictError(f"'{name}' already exists in the destination")

        def _copy() -> None:
            dest_parent.mkdir(parents=True, exist_ok=True)
            if src_resolved.is_dir():
                shutil.copytree(str(src_resolved), str(dest_resolved))
            else:
                shutil.copy2(str(src_resolved), str(dest_resolved))

        await asyncio.to_thread(_copy)
        return dest

    # =========================================================================
    # Archives
    # =========================================================================

    async def build_zip(self, path: str) -> Path:
        """Zip a directory into a temporary file the caller must remove."""
        resolved = self.sandbox.resolve(path)
        if not await asyncio.to_thread(resolved.is_dir):
            raise PathNotFoundError("Directory not found")

        def _zip() -> Path:
            fd, tmp_path = tempfile.mkstemp(suffix=".zip")
            os.close(fd)
            try:
                with zipfile.ZipFile(tmp_path, "w", zipfile.ZIP_DEFLATED) as zf:
                    for dirpath, _dirnames, filenames in os.walk(resolved):
                        for filename in filenames:
                            full = Path(dirpath) / filename
                            zf.write(full, full.relative_to(resolved).as_posix())
            except Exception:
                with contextlib.suppress(OSError):
                    Path(tmp_path).unlink()
                raise
            return Path(tmp_path)

        return await asyncio.to_thread(_zip)
