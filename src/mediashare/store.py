"""JsonStore: mutex-guarded read-modify-write over a JSON document.

One physical file may back several media roots: the document is a JSON
object keyed by sandbox-root identity, and each store instance only ever
touches its own section.

Mutation protocol (``transaction``):

1. acquire the store's lock (FIFO; waiters are woken in arrival order)
2. read the whole file, or start from ``{}`` (an unreadable file is
   first renamed to ``<name>.corrupt`` so it can be recovered by hand)
3. hand the caller its section to mutate in memory
4. write the whole file back via tempfile + replace
5. release the lock on every exit path

If the caller's block raises, nothing is written and the file keeps its
last successfully written state.  The lock is an in-process
``asyncio.Lock``; running several server processes against the same
file is not supported.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class JsonStore:
    """A root-scoped JSON document with an in-process mutation lock.

    Different ``JsonStore`` instances (settings, shares, stats) have
    independent locks and never block each other.
    """

    def __init__(self, path: Path | str, root_key: str, *, name: str | None = None) -> None:
        self.path = Path(path)
        self.root_key = root_key
        self.name = name or self.path.stem
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"JsonStore(name={self.name!r}, path={str(self.path)!r})"

    @property
    def is_locked(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    @property
    def corrupt_path(self) -> Path:
        return self.path.with_name(self.path.name + ".corrupt")

    def _read_file_sync(self, *, quarantine: bool = False) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            logger.warning("Store %s at %s is not a JSON object; treating as empty", self.name, self.path)
            if quarantine:
                self._quarantine_sync()
            return {}
        return data

    def _quarantine_sync(self) -> None:
        # Moved aside before the next write replaces it.
        self.path.replace(self.corrupt_path)
        logger.warning("Moved unreadable store %s to %s", self.name, self.corrupt_path)

    def _write_file_sync(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            Path(tmp_path).replace(self.path)
        except Exception:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise

    async def _read_all(self, *, quarantine: bool = False) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_file_sync, quarantine=quarantine)

    async def _write_all(self, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_file_sync, data)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read(self) -> dict[str, Any]:
        """Snapshot of this root's section, without taking the lock.

        Whole-file replace means a reader always sees some complete,
        previously written state.
        """
        section = (await self._read_all()).get(self.root_key)
        return section if isinstance(section, dict) else {}

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, Any]]:
        """Atomic read-modify-write of this root's section.

        Usage::

            async with store.transaction() as doc:
                doc.setdefault("views", {})[path] = count + 1
        """
        async with self._lock:
            all_data = await self._read_all(quarantine=True)
            section = all_data.get(self.root_key)
            if not isinstance(section, dict):
                section = {}
            yield section
            all_data[self.root_key] = section
            await self._write_all(all_data)
