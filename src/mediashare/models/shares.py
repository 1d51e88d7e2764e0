"""Share models: token-keyed share records persisted in the shares store.

These are non-table SQLModel classes: they validate and serialize like
pydantic models and are stored as JSON, not in a database.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

DEFAULT_MAX_UPLOAD_BYTES = 2 * 1024 * 1024 * 1024  # 2 GiB


class ShareRestrictions(SQLModel):
    """Per-share limits on what anonymous visitors may change.

    Missing fields default to allowed; ``max_upload_bytes == 0`` means
    unlimited.
    """

    allow_upload: bool = True
    allow_edit: bool = True
    allow_delete: bool = True
    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, ge=0)


class ShareRecord(SQLModel):
    """A share link. Identity is ``token``."""

    token: str
    path: str
    is_directory: bool = False
    editable: bool = False
    passcode: str | None = None
    restrictions: ShareRestrictions | None = None
    used_bytes: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def effective_restrictions(self) -> ShareRestrictions:
        return self.restrictions or ShareRestrictions()
