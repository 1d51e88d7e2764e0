"""PathSandbox: resolves caller-supplied relative paths against one root.

All checks are lexical and happen before any filesystem call.  Paths that
arrive indirectly (for example a share record's stored path) are passed
through ``resolve`` again; nothing is trusted as already-safe.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from urllib.parse import unquote

from .exceptions import PathTraversalError
from .utils import normalize_relative_path

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_SEPARATORS_RE = re.compile(r"[\\/]")
_MAX_UNQUOTE_ROUNDS = 5
MAX_PATH_LENGTH = 4096


def _fully_unquote(segment: str) -> str:
    """Percent-decode until the value stops changing (bounded)."""
    for _ in range(_MAX_UNQUOTE_ROUNDS):
        decoded = unquote(segment)
        if decoded == segment:
            break
        segment = decoded
    return segment


def check_relative(relative: str) -> str:
    """Validate and normalize a sandbox-relative path string.

    Rejects null bytes, absolute paths, drive letters, UNC prefixes and any
    ``..`` segment in either separator style or percent-encoded form.

    Returns:
        The normalized relative path (``""`` for the root).

    Raises:
        PathTraversalError: On any escape attempt.
    """
    if relative is None:
        return ""
    if "\x00" in relative or len(relative) > MAX_PATH_LENGTH:
        raise PathTraversalError()

    candidate = relative.replace("\\", "/")
    if candidate.startswith("/") or _DRIVE_RE.match(candidate):
        raise PathTraversalError()

    for segment in candidate.split("/"):
        decoded = _fully_unquote(segment)
        if "\x00" in decoded:
            raise PathTraversalError()
        if any(part.strip() == ".." for part in _SEPARATORS_RE.split(decoded)):
            raise PathTraversalError()

    return normalize_relative_path(candidate)


class PathSandbox:
    """Maps sandbox-relative paths to absolute paths under a single root.

    The root is canonicalized once at construction.  ``resolve`` succeeds
    only if the joined result equals the root or has ``root + separator``
    as a strict prefix (compared case-insensitively where the platform's
    filesystem is).
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

        if not self.root.exists():
            raise FileNotFoundError(f"Media directory does not exist: {self.root}")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Media path is not a directory: {self.root}")

        self._root_str = str(self.root)
        root_key = os.path.normcase(self._root_str)
        self._root_key = root_key
        self._prefix_key = root_key if root_key.endswith(os.sep) else root_key + os.sep

    @property
    def identity(self) -> str:
        """Key used to partition shared JSON stores by sandbox root."""
        return self._root_str

    def contains(self, absolute: Path | str) -> bool:
        """True when *absolute* is the root or strictly below it."""
        key = os.path.normcase(os.path.normpath(os.path.abspath(absolute)))
        return key == self._root_key or key.startswith(self._prefix_key)

    def resolve(self, relative: str) -> Path:
        """Resolve *relative* to an absolute path inside the root.

        Raises:
            PathTraversalError: If the path escapes the root.
        """
        rel = check_relative(relative)
        if not rel:
            return self.root

        joined = os.path.normpath(os.path.join(self._root_str, *rel.split("/")))
        if not self.contains(joined):
            raise PathTraversalError()
        return Path(joined)

    def to_relative(self, absolute: Path | str) -> str:
        """Convert an absolute path under the root back to a relative one."""
        if not self.contains(absolute):
            raise PathTraversalError()
        rel = os.path.relpath(os.path.abspath(absolute), self._root_str)
        rel = rel.replace(os.sep, "/")
        return "" if rel == "." else rel


def resolve(root: Path | str, relative: str) -> Path:
    """One-shot form of ``PathSandbox(root).resolve(relative)``."""
    return PathSandbox(root).resolve(relative)
