"""Knowledge bases: folders of Markdown notes with recent-note and text search.

A knowledge base is a sandbox-relative folder listed under
``knowledge_bases`` in the settings document.  Every path at or below it
belongs to that knowledge base.

Walks never follow directory symlinks, skip hidden and tooling folders,
and drop any file whose real path leaves the sandbox root.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mediashare.fs.exceptions import InvalidRequestError, PathNotFoundError
from mediashare.fs.utils import get_extension, normalize_relative_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from mediashare.fs.sandbox import PathSandbox

logger = logging.getLogger(__name__)

RECENT_LIMIT = 10
SNIPPET_MAX = 220
MAX_SEARCH_FILE_BYTES = 5 * 1024 * 1024
NOTE_EXTENSIONS = frozenset({"md"})
SEARCH_EXTENSIONS = frozenset({"md", "txt"})
EXCLUDED_FOLDERS = frozenset({"node_modules", "__pycache__"})


def extract_snippet(content: str, query: str) -> str:
    """The matching line with one line of context either side.

    Falls back to the matching line alone, then to a window of
    ``SNIPPET_MAX`` characters centred on the match.
    """
    needle = query.strip().lower()
    if not needle:
        return ""
    lines = content.splitlines()
    index = next((i for i, line in enumerate(lines) if needle in line.lower()), -1)
    if index < 0:
        return ""

    snippet = "\n".join(lines[max(0, index - 1) : index + 2]).strip()
    if len(snippet) <= SNIPPET_MAX:
        return snippet

    line = lines[index]
    if len(line) <= SNIPPET_MAX:
        return line
    position = line.lower().find(needle)
    start = max(0, min(position - SNIPPET_MAX // 2, len(line) - SNIPPET_MAX))
    end = start + SNIPPET_MAX
    return ("..." if start > 0 else "") + line[start:end] + ("..." if end < len(line) else "")


@dataclass
class RecentNote:
    path: str
    name: str
    modified_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SearchHit:
    path: str
    name: str
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_excluded(name: str) -> bool:
    return name.startswith(".") or name in EXCLUDED_FOLDERS


class KnowledgeBaseIndex:
    """Read-only queries over the notes below a sandbox-relative folder."""

    def __init__(self, sandbox: PathSandbox) -> None:
        self.sandbox = sandbox

    def _walk(self, scope: Path, extensions: frozenset[str]) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(scope):
            dirnames[:] = sorted(d for d in dirnames if not _is_excluded(d))
            for name in sorted(filenames):
                if get_extension(name) not in extensions:
                    continue
                candidate = Path(dirpath, name)
                if not self.sandbox.contains(os.path.realpath(candidate)):
                    logger.warning("Skipping note outside media root: %s", candidate)
                    continue
                yield candidate

    async def _scope(self, folder: str) -> Path:
        resolved = self.sandbox.resolve(folder)
        if not await asyncio.to_thread(resolved.is_dir):
            if await asyncio.to_thread(resolved.exists):
                raise InvalidRequestError("Path is not a directory")
            raise PathNotFoundError(f"Directory not found: {normalize_relative_path(folder)}")
        return resolved

    async def recent(self, folder: str, limit: int = RECENT_LIMIT) -> list[RecentNote]:
        """The *limit* most recently modified ``.md`` files under *folder*."""
        scope = await self._scope(folder)

        def _collect() -> list[tuple[float, Path]]:
            found: list[tuple[float, Path]] = []
            for path in self._walk(scope, NOTE_EXTENSIONS):
                try:
                    found.append((path.stat().st_mtime, path))
                except OSError:
                    continue
            found.sort(key=lambda pair: pair[0], reverse=True)
            return found[:limit]

        return [
            RecentNote(
                path=self.sandbox.to_relative(path),
                name=path.name,
                modified_at=datetime.fromtimestamp(mtime, UTC).isoformat().replace("+00:00", "Z"),
            )
            for mtime, path in await asyncio.to_thread(_collect)
        ]

    async def search(self, folder: str, query: str) -> list[SearchHit]:
        """Case-insensitive substring search over ``.md`` and ``.txt`` files."""
        needle = query.strip().lower()
        if not needle:
            return []
        scope = await self._scope(folder)

        def _scan() -> list[SearchHit]:
            hits: list[SearchHit] = []
            for path in self._walk(scope, SEARCH_EXTENSIONS):
                try:
                    if path.stat().st_size > MAX_SEARCH_FILE_BYTES:
                        logger.debug("Skipping large note %s", path)
                        continue
                    content = path.read_text(encoding="utf-8", errors="replace")
                except OSError:
                    continue
                if needle not in content.lower():
                    continue
                hits.append(
                    SearchHit(
                        path=self.sandbox.to_relative(path),
                        name=path.name,
                        snippet=extract_snippet(content, query),
                    )
                )
            return hits

        return await asyncio.to_thread(_scan)
