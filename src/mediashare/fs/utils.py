"""Path utilities, media type tables, name validation."""

from __future__ import annotations

import posixpath
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

# =============================================================================
# Media Types
# =============================================================================


class MediaType(str, Enum):
    """Coarse classification used by listings and players."""

    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    FOLDER = "folder"
    OTHER = "other"


VIDEO_EXTENSIONS = {"mp4", "webm", "ogg", "mov", "avi", "mkv"}
AUDIO_EXTENSIONS = {"mp3", "wav", "ogg", "m4a", "flac", "aac", "opus"}
IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "ico"}

MIME_TYPES: dict[str, str] = {
    # Video
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogg": "video/ogg",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
    # Audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "flac": "audio/flac",
    "aac": "audio/aac",
    "opus": "audio/opus",
    # Image
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    # Text
    "txt": "text/plain; charset=utf-8",
    "md": "text/markdown; charset=utf-8",
    "json": "application/json",
    "pdf": "application/pdf",
}

# Served with no-cache headers because they are likely to be edited in place
TEXT_EXTENSIONS = {
    "txt", "md", "json", "xml", "csv", "log", "yaml", "yml", "ini", "conf",
    "sh", "bat", "ps1", "js", "ts", "jsx", "tsx", "css", "scss", "html",
    "py", "java", "c", "cpp", "h", "cs", "go", "rs", "php", "rb", "swift",
    "kt", "sql",
}

# Reserved filenames (Windows compatibility)
RESERVED_NAMES = {
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9",
}


def get_extension(name: str) -> str:
    """Lower-case extension without the dot, or ``""``."""
    _, ext = posixpath.splitext(name)
    return ext[1:].lower()


def get_media_type(extension: str) -> MediaType:
    """Classify a file by its extension."""
    ext = extension.lower()
    if ext in VIDEO_EXTENSIONS:
        return MediaType.VIDEO
    if ext in AUDIO_EXTENSIONS:
        return MediaType.AUDIO
    if ext in IMAGE_EXTENSIONS:
        return MediaType.IMAGE
    return MediaType.OTHER


def get_mime_type(extension: str) -> str:
    return MIME_TYPES.get(extension.lower(), "application/octet-stream")


def is_text_extension(extension: str) -> bool:
    return extension.lower() in TEXT_EXTENSIONS


def format_file_size(size: int) -> str:
    """Human-readable size, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


# =============================================================================
# Path Utilities
# =============================================================================


def normalize_relative_path(path: str) -> str:
    """Normalize a sandbox-relative path.

    - Converts backslashes to forward slashes
    - Resolves ``.`` references and collapses double slashes
    - Strips leading and trailing slashes
    - Returns ``""`` for the root

    This is purely lexical.  It does not reject ``..``; callers that need
    a safety guarantee go through ``PathSandbox``.

    Examples:
        normalize_relative_path("movies\\\\a.mp4") -> "movies/a.mp4"
        normalize_relative_path("/foo//bar/") -> "foo/bar"
        normalize_relative_path(".") -> ""
    """
    if not path:
        return ""

    path = path.replace("\\", "/")
    path = posixpath.normpath(path).strip("/")
    return "" if path == "." else path


def parent_path(path: str) -> str:
    """Parent of a sandbox-relative path; ``""`` for top-level entries.

    Examples:
        parent_path("a/b/c.txt") -> "a/b"
        parent_path("c.txt") -> ""
        parent_path("") -> ""
    """
    path = normalize_relative_path(path)
    parent = posixpath.dirname(path)
    return parent


def join_path(base: str, name: str) -> str:
    """Join two relative paths, tolerating an empty base."""
    base = normalize_relative_path(base)
    name = normalize_relative_path(name)
    if not base:
        return name
    if not name:
        return base
    return f"{base}/{name}"


def base_name(path: str) -> str:
    return posixpath.basename(normalize_relative_path(path))


def is_within(path: str, root: str) -> bool:
    """True when *path* equals *root* or lies below it at a segment boundary."""
    path = normalize_relative_path(path)
    root = normalize_relative_path(root)
    if not root:
        return True
    return path == root or path.startswith(root + "/")


def validate_name(name: str) -> tuple[bool, str]:
    """Validate a single path component for creation.

    Returns:
        (is_valid, error_message) - error_message is empty if valid
    """
    if not name or name in (".", ".."):
        return False, "Name is required"

    if "\x00" in name:
        return False, "Name contains null bytes"

    if "/" in name or "\\" in name:
        return False, "Name cannot contain path separators"

    for ch in name:
        code = ord(ch)
        if 0x01 <= code <= 0x1F:
            return False, f"Name contains control character: 0x{code:02x}"

    if len(name) > 255:
        return False, "Filename too long (max 255 characters)"

    name_upper = name.upper()
    base = name_upper.split(".")[0] if "." in name_upper else name_upper
    if base in RESERVED_NAMES:
        return False, f"Reserved filename: {name}"

    return True, ""


# =============================================================================
# Knowledge bases
# =============================================================================

IMAGES_FOLDER = "images"


def knowledge_base_root(path: str, knowledge_bases: Iterable[str]) -> str | None:
    """The configured knowledge base containing *path*, or None."""
    for kb in knowledge_bases:
        root = normalize_relative_path(kb)
        if root and is_within(path, root):
            return root
    return None


def images_folder_for(path: str, knowledge_bases: Iterable[str]) -> str:
    """``<kb>/images`` when *path* sits in a knowledge base, else ``<path>/images``."""
    root = knowledge_base_root(path, knowledge_bases)
    return join_path(root if root is not None else path, IMAGES_FOLDER)
