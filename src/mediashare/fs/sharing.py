"""ShareRegistry: token-keyed share CRUD, passcodes and quota accounting.

Share records live in the shares ``JsonStore`` under this sandbox root's
section as ``{"shares": [<record>, ...]}``.  Every mutation is one store
transaction; reads take a lock-free snapshot.

Passcodes are stored encrypted (AES-256-GCM) and decrypted whenever a
record is handed back to a caller.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import hmac
import logging
import os
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mediashare.models.shares import ShareRecord, ShareRestrictions

from .exceptions import PathTraversalError
from .sandbox import check_relative
from .types import FileItem
from .utils import is_within, join_path, normalize_relative_path

if TYPE_CHECKING:
    from mediashare.store import JsonStore

    from .local_disk import LocalDiskBackend

logger = logging.getLogger(__name__)

PASSCODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
PASSCODE_LENGTH = 6
TOKEN_BYTES = 16

_PASSCODE_SALT = b"mediashare-passcode-v1"
_DEFAULT_PASSCODE_KEY = "mediashare-default"
_IV_LEN = 12
_TAG_LEN = 16


# =============================================================================
# Token / passcode generation
# =============================================================================


def generate_token() -> str:
    """128 random bits, base64url without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(TOKEN_BYTES)).rstrip(b"=").decode("ascii")


def generate_passcode(length: int = PASSCODE_LENGTH) -> str:
    """Human-typable passcode from an alphabet without look-alike characters."""
    return "".join(secrets.choice(PASSCODE_ALPHABET) for _ in range(length))


# =============================================================================
# Passcode encryption
# =============================================================================


class PasscodeCipher:
    """AES-256-GCM over share passcodes.

    Stored form is ``base64url(iv[12] + tag[16] + ciphertext)``.  The key is
    derived with scrypt from the admin password (or a fixed default) on
    first use and cached for the process lifetime.
    """

    def __init__(self, password: str | None) -> None:
        self._password = password or _DEFAULT_PASSCODE_KEY
        self._aead: AESGCM | None = None

    def _derive_key(self) -> bytes:
        return hashlib.scrypt(
            self._password.encode("utf-8"), salt=_PASSCODE_SALT, n=16384, r=8, p=1, dklen=32
        )

    async def _cipher(self) -> AESGCM:
        if self._aead is None:
            self._aead = AESGCM(await asyncio.to_thread(self._derive_key))
        return self._aead

    async def encrypt(self, plaintext: str) -> str:
        aead = await self._cipher()
        iv = os.urandom(_IV_LEN)
        sealed = aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_LEN], sealed[-_TAG_LEN:]
        return base64.urlsafe_b64encode(iv + tag + ciphertext).rstrip(b"=").decode("ascii")

    async def decrypt(self, stored: str) -> str | None:
        """Plaintext passcode, or None when *stored* is not a valid sealed value."""
        aead = await self._cipher()
        try:
            data = base64.urlsafe_b64decode(stored + "=" * (-len(stored) % 4))
        except (binascii.Error, ValueError):
            return None
        if len(data) < _IV_LEN + _TAG_LEN:
            return None
        iv, tag, ciphertext = data[:_IV_LEN], data[_IV_LEN : _IV_LEN + _TAG_LEN], data[_IV_LEN + _TAG_LEN :]
        try:
            return aead.decrypt(iv, ciphertext + tag, None).decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            return None


# =============================================================================
# Pure helpers
# =============================================================================


def resolve_sub_path(share: ShareRecord, sub_path: str | None) -> str | None:
    """Map a path inside a share to a sandbox-relative path.

    A file share only resolves the empty sub-path (or ``.``) to itself.  A
    directory share joins the sub-path under its root; any ``..`` segment
    or a result outside ``root/`` yields None.
    """
    sub = (sub_path or "").replace("\\", "/")
    if sub in ("", "."):
        return share.path
    if not share.is_directory:
        return None

    try:
        sub = check_relative(sub)
    except PathTraversalError:
        return None

    root = normalize_relative_path(share.path)
    joined = join_path(root, sub)
    if not is_within(joined, root):
        return None
    return joined


@dataclass(frozen=True)
class QuotaCheck:
    """``remaining`` is None when the share has no upload limit."""

    allowed: bool
    remaining: int | None


def check_upload_quota(share: ShareRecord, incoming_bytes: int) -> QuotaCheck:
    limit = share.effective_restrictions.max_upload_bytes
    if limit == 0:
        return QuotaCheck(allowed=True, remaining=None)
    remaining = max(0, limit - share.used_bytes)
    return QuotaCheck(allowed=incoming_bytes <= remaining, remaining=remaining)


# =============================================================================
# Registry
# =============================================================================


class ShareRegistry:
    """Manages share links for one sandbox root."""

    def __init__(self, store: JsonStore, cipher: PasscodeCipher, *, auth_enabled: bool) -> None:
        self._store = store
        self._cipher = cipher
        self._auth_enabled = auth_enabled

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _records(section: dict[str, Any]) -> list[dict[str, Any]]:
        raw = section.get("shares")
        if not isinstance(raw, list):
            raw = []
            section["shares"] = raw
        return raw

    @staticmethod
    def _find(raw: list[dict[str, Any]], **match: Any) -> int:
        for i, entry in enumerate(raw):
            if all(entry.get(k) == v for k, v in match.items()):
                return i
        return -1

    async def _reveal(self, record: ShareRecord) -> ShareRecord:
        """Copy of *record* with its passcode decrypted where possible."""
        if not record.passcode:
            return record
        plain = await self._cipher.decrypt(record.passcode)
        if plain is None:
            return record
        return record.model_copy(update={"passcode": plain})

    async def _load_all(self) -> list[ShareRecord]:
        section = await self._store.read()
        raw = section.get("shares")
        if not isinstance(raw, list):
            return []
        records: list[ShareRecord] = []
        for entry in raw:
            try:
                records.append(ShareRecord.model_validate(entry))
            except ValueError:
                logger.warning("Skipping malformed share record in %s", self._store.name)
        return records

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, token: str) -> ShareRecord | None:
        if not token:
            return None
        for record in await self._load_all():
            if record.token == token:
                return await self._reveal(record)
        return None

    async def list_all(self) -> list[ShareRecord]:
        return [await self._reveal(r) for r in await self._load_all()]

    async def list_for_path(self, path: str) -> list[ShareRecord]:
        """Shares whose path matches *path* exactly."""
        target = normalize_relative_path(path)
        return [
            await self._reveal(r)
            for r in await self._load_all()
            if normalize_relative_path(r.path) == target
        ]

    async def list_as_file_items(self, disk: LocalDiskBackend) -> list[FileItem]:
        """Shares as listing entries, skipping shares whose target is gone."""
        items: list[FileItem] = []
        for record in await self._load_all():
            try:
                item = await disk.get_item(record.path)
            except PathTraversalError:
                item = None
            if item is None:
                continue
            item.is_directory = record.is_directory
            item.share_token = record.token
            items.append(item)
        return items

    async def check_passcode(self, share: ShareRecord, candidate: str) -> bool:
        """Constant-time compare against the share's (decrypted) passcode."""
        if not share.passcode:
            return True
        expected = share.passcode
        plain = await self._cipher.decrypt(expected)
        if plain is not None:
            expected = plain
        return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        path: str,
        *,
        is_directory: bool,
        editable: bool,
        restrictions: ShareRestrictions | None = None,
    ) -> ShareRecord:
        """Create a share, or return the existing one for the same path.

        An existing record keeps its token, passcode and restrictions; only
        a change of ``editable`` or ``is_directory`` rewrites those flags
        (and replaces restrictions when the share becomes editable and new
        ones were supplied).
        """
        path = normalize_relative_path(path)
        async with self._store.transaction() as section:
            raw = self._records(section)
            index = self._find(raw, path=path)
            if index != -1:
                existing = ShareRecord.model_validate(raw[index])
                if existing.editable == editable and existing.is_directory == is_directory:
                    return await self._reveal(existing)
                update: dict[str, Any] = {"editable": editable, "is_directory": is_directory}
                if editable and restrictions is not None:
                    update["restrictions"] = restrictions
                updated = existing.model_copy(update=update)
                raw[index] = updated.model_dump(mode="json")
                logger.info("Updated share flags for %s", path)
                return await self._reveal(updated)

            plain_passcode = generate_passcode() if self._auth_enabled else None
            record = ShareRecord(
                token=generate_token(),
                path=path,
                is_directory=is_directory,
                editable=editable,
                passcode=await self._cipher.encrypt(plain_passcode) if plain_passcode else None,
                restrictions=restrictions if editable else None,
            )
            raw.append(record.model_dump(mode="json"))

        logger.info("Created share for %s", path)
        return record.model_copy(update={"passcode": plain_passcode})

    async def update_restrictions(
        self, token: str, restrictions: ShareRestrictions
    ) -> ShareRecord | None:
        async with self._store.transaction() as section:
            raw = self._records(section)
            index = self._find(raw, token=token)
            if index == -1:
                return None
            updated = ShareRecord.model_validate(raw[index]).model_copy(
                update={"restrictions": restrictions}
            )
            raw[index] = updated.model_dump(mode="json")
        return await self._reveal(updated)

    async def add_used_bytes(self, token: str, amount: int) -> bool:
        """Charge *amount* bytes against a share's quota.

        Only ever increases ``used_bytes``.  Returns False for an unknown
        token.
        """
        if amount <= 0:
            return await self.get(token) is not None
        async with self._store.transaction() as section:
            raw = self._records(section)
            index = self._find(raw, token=token)
            if index == -1:
                return False
            raw[index]["used_bytes"] = int(raw[index].get("used_bytes") or 0) + amount
        return True

    async def delete(self, token: str) -> bool:
        async with self._store.transaction() as section:
            raw = self._records(section)
            index = self._find(raw, token=token)
            if index == -1:
                return False
            del raw[index]
        logger.info("Revoked share %s...", token[:8])
        return True

    async def update_share_paths(self, old_prefix: str, new_prefix: str) -> int:
        """Rewrite share paths after a rename or move.

        Matches the exact path or anything below it at a directory
        boundary.  Returns the number of shares updated.
        """
        old_prefix = normalize_relative_path(old_prefix)
        new_prefix = normalize_relative_path(new_prefix)
        if not old_prefix or old_prefix == new_prefix:
            return 0

        count = 0
        async with self._store.transaction() as section:
            for entry in self._records(section):
                path = normalize_relative_path(str(entry.get("path", "")))
                if path == old_prefix or path.startswith(old_prefix + "/"):
                    entry["path"] = new_prefix + path[len(old_prefix) :]
                    count += 1
        if count:
            logger.info("Moved %d share(s) from %s to %s", count, old_prefix, new_prefix)
        return count
