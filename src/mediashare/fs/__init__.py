"""Filesystem layer: sandbox, edit policy, disk backend, shares, operations."""

from mediashare.fs.exceptions import (
    ConflictError,
    ForbiddenHostError,
    InvalidRequestError,
    MediaShareError,
    NotEditableError,
    PathNotFoundError,
    PathTraversalError,
    QuotaExceededError,
    RangeNotSatisfiableError,
    RateLimitedError,
    ShareNotFoundError,
    ShareRootDeletionError,
    UnauthorizedError,
    UpstreamToolError,
)
from mediashare.fs.local_disk import LocalDiskBackend
from mediashare.fs.operations import OwnerOperations, ShareOperations
from mediashare.fs.permissions import EditPolicy, Permission, is_editable
from mediashare.fs.sandbox import PathSandbox, check_relative
from mediashare.fs.sharing import (
    PasscodeCipher,
    QuotaCheck,
    ShareRegistry,
    check_upload_quota,
    resolve_sub_path,
)
from mediashare.fs.types import FileItem, IncomingFile, UploadResult
from mediashare.fs.utils import MediaType

__all__ = [
    "ConflictError",
    "EditPolicy",
    "FileItem",
    "ForbiddenHostError",
    "IncomingFile",
    "InvalidRequestError",
    "LocalDiskBackend",
    "MediaShareError",
    "MediaType",
    "NotEditableError",
    "OwnerOperations",
    "PasscodeCipher",
    "PathNotFoundError",
    "PathSandbox",
    "PathTraversalError",
    "Permission",
    "QuotaCheck",
    "QuotaExceededError",
    "RangeNotSatisfiableError",
    "RateLimitedError",
    "ShareNotFoundError",
    "ShareOperations",
    "ShareRegistry",
    "ShareRootDeletionError",
    "UnauthorizedError",
    "UploadResult",
    "UpstreamToolError",
    "check_relative",
    "check_upload_quota",
    "is_editable",
    "resolve_sub_path",
]
