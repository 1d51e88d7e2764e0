"""Shared fixtures for mediashare tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mediashare.events import ChangeNotifier
from mediashare.fs.local_disk import LocalDiskBackend
from mediashare.fs.permissions import EditPolicy
from mediashare.fs.sandbox import PathSandbox
from mediashare.fs.sharing import PasscodeCipher, ShareRegistry
from mediashare.fs.types import IncomingFile
from mediashare.store import JsonStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """A small media tree::

    movies/a.mp4, movies/b.mkv, docs/readme.txt, editable/notes.md,
    editable/sub/, pic.png
    """
    root = tmp_path / "media"
    (root / "movies").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "editable" / "sub").mkdir(parents=True)
    (root / "movies" / "a.mp4").write_bytes(b"0123456789" * 10)
    (root / "movies" / "b.mkv").write_bytes(b"mkv")
    (root / "docs" / "readme.txt").write_text("hello\n")
    (root / "editable" / "notes.md").write_text("# notes\n")
    (root / "pic.png").write_bytes(b"\x89PNG")
    return root


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def sandbox(media_root: Path) -> PathSandbox:
    return PathSandbox(media_root)


@pytest.fixture
def disk(sandbox: PathSandbox) -> LocalDiskBackend:
    return LocalDiskBackend(sandbox)


@pytest.fixture
def policy() -> EditPolicy:
    return EditPolicy(["editable"])


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def shares_store(data_dir: Path, sandbox: PathSandbox) -> JsonStore:
    return JsonStore(data_dir / "shares.json", sandbox.identity, name="shares")


@pytest.fixture
def registry(shares_store: JsonStore) -> ShareRegistry:
    return ShareRegistry(shares_store, PasscodeCipher("secret"), auth_enabled=True)


@pytest.fixture
def open_registry(shares_store: JsonStore) -> ShareRegistry:
    """Registry with auth disabled: new shares get no passcode."""
    return ShareRegistry(shares_store, PasscodeCipher(None), auth_enabled=False)


async def _chunks(data: bytes, size: int = 4) -> AsyncIterator[bytes]:
    for i in range(0, len(data), size):
        yield data[i : i + size]


def make_upload(name: str, data: bytes, declared: int | None = None) -> IncomingFile:
    """Upload entry with a chunked body; *declared* overrides the reported size."""
    return IncomingFile(name=name, size=len(data) if declared is None else declared, chunks=_chunks(data))


@pytest.fixture
def upload():
    return make_upload
