"""Permission enum and editable-root gates.

A string-prefix policy layered on top of ``PathSandbox``.  It never
replaces the sandbox check; it only decides whether an already-safe path
may be mutated.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from .exceptions import NotEditableError
from .utils import normalize_relative_path, parent_path


class Permission(str, Enum):
    """Permission level for a path."""

    READ_WRITE = "read_write"
    READ_ONLY = "read_only"


def is_editable(relative_path: str, editable_roots: Iterable[str]) -> bool:
    """True iff *relative_path* equals an editable root or starts with ``<root>/``."""
    path = normalize_relative_path(relative_path)
    for root in editable_roots:
        root = normalize_relative_path(root)
        if not root:
            continue
        if path == root or path.startswith(root + "/"):
            return True
    return False


class EditPolicy:
    """Decides write eligibility against the configured editable roots."""

    def __init__(self, editable_roots: Iterable[str]) -> None:
        roots = (normalize_relative_path(r) for r in editable_roots)
        self.editable_roots: tuple[str, ...] = tuple(r for r in roots if r)

    def is_editable(self, path: str) -> bool:
        return is_editable(path, self.editable_roots)

    def permission_for(self, path: str) -> Permission:
        return Permission.READ_WRITE if self.is_editable(path) else Permission.READ_ONLY

    def can_create(self, path: str) -> bool:
        """Creation is allowed when the target or its parent is editable.

        Checking the target itself lets the first file be created inside an
        editable root that does not exist on disk yet.
        """
        return self.is_editable(parent_path(path)) or self.is_editable(path)

    def require_editable(self, path: str) -> None:
        if not self.is_editable(path):
            raise NotEditableError("Path is not in an editable folder")

    def require_creatable(self, path: str) -> None:
        if not self.can_create(path):
            raise NotEditableError("Path is not in an editable folder")

    def require_movable(self, src: str, dest: str) -> None:
        """Source and destination are validated independently.

        Moving between two different editable roots is allowed.
        """
        if not self.is_editable(src):
            raise NotEditableError("Source is not in an editable folder")
        if not self.can_create(dest):
            raise NotEditableError("Destination is not in an editable folder")
