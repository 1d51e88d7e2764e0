"""Tests for ShareRegistry: share CRUD, passcodes, quotas and path resolution."""

from __future__ import annotations

import json

import pytest

from mediashare.fs.sharing import (
    PASSCODE_ALPHABET,
    PASSCODE_LENGTH,
    PasscodeCipher,
    check_upload_quota,
    generate_passcode,
    generate_token,
    resolve_sub_path,
)
from mediashare.models.shares import DEFAULT_MAX_UPLOAD_BYTES, ShareRecord, ShareRestrictions

# ---------------------------------------------------------------------------
# Generation and encryption
# ---------------------------------------------------------------------------


class TestGeneration:
    def test_token_shape(self):
        token = generate_token()
        assert len(token) == 22
        assert "=" not in token
        assert generate_token() != token

    def test_passcode_alphabet(self):
        passcode = generate_passcode()
        assert len(passcode) == PASSCODE_LENGTH
        assert all(c in PASSCODE_ALPHABET for c in passcode)
        assert not set("0O1lI") & set(PASSCODE_ALPHABET)


class TestPasscodeCipher:
    async def test_roundtrip(self):
        cipher = PasscodeCipher("pw")
        sealed = await cipher.encrypt("AbC234")
        assert sealed != "AbC234"
        assert await cipher.decrypt(sealed) == "AbC234"

    async def test_fresh_iv_each_time(self):
        cipher = PasscodeCipher("pw")
        assert await cipher.encrypt("same") != await cipher.encrypt("same")

    async def test_wrong_key_fails_closed(self):
        sealed = await PasscodeCipher("pw").encrypt("AbC234")
        assert await PasscodeCipher("other").decrypt(sealed) is None

    @pytest.mark.parametrize("stored", ["", "short", "!!!not base64!!!", "AbC234"])
    async def test_garbage_is_none(self, stored: str):
        assert await PasscodeCipher("pw").decrypt(stored) is None


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _share(path: str, *, is_directory: bool = True, **kw) -> ShareRecord:
    return ShareRecord(token="t" * 22, path=path, is_directory=is_directory, **kw)


class TestResolveSubPath:
    def test_directory_share(self):
        share = _share("photos")
        assert resolve_sub_path(share, "") == "photos"
        assert resolve_sub_path(share, ".") == "photos"
        assert resolve_sub_path(share, "2024/a.jpg") == "photos/2024/a.jpg"

    @pytest.mark.parametrize("sub", ["../secret.txt", "2024/../../x", "/etc/passwd", "%2e%2e/x"])
    def test_directory_share_rejects_escape(self, sub: str):
        assert resolve_sub_path(_share("photos"), sub) is None

    def test_file_share_only_resolves_itself(self):
        share = _share("report.pdf", is_directory=False)
        assert resolve_sub_path(share, "") == "report.pdf"
        assert resolve_sub_path(share, ".") == "report.pdf"
        assert resolve_sub_path(share, "other.pdf") is None

    def test_root_share(self):
        assert resolve_sub_path(_share(""), "movies/a.mp4") == "movies/a.mp4"


class TestQuota:
    def test_default_limit(self):
        quota = check_upload_quota(_share("up", editable=True), 1024)
        assert quota.allowed
        assert quota.remaining == DEFAULT_MAX_UPLOAD_BYTES

    def test_limit_with_usage(self):
        share = _share("up", restrictions=ShareRestrictions(max_upload_bytes=100), used_bytes=60)
        assert check_upload_quota(share, 40).allowed
        quota = check_upload_quota(share, 41)
        assert not quota.allowed
        assert quota.remaining == 40

    def test_zero_means_unlimited(self):
        share = _share("up", restrictions=ShareRestrictions(max_upload_bytes=0), used_bytes=10**12)
        quota = check_upload_quota(share, 10**12)
        assert quota.allowed
        assert quota.remaining is None

    def test_overused_clamps_to_zero(self):
        share = _share("up", restrictions=ShareRestrictions(max_upload_bytes=10), used_bytes=50)
        assert check_upload_quota(share, 1).remaining == 0


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestCreateShare:
    async def test_create_returns_plain_passcode(self, registry):
        share = await registry.create("movies", is_directory=True, editable=False)
        assert share.path == "movies"
        assert share.passcode and len(share.passcode) == PASSCODE_LENGTH
        assert share.restrictions is None

    async def test_passcode_encrypted_at_rest(self, registry, shares_store):
        share = await registry.create("movies", is_directory=True, editable=False)
        raw = json.loads(shares_store.path.read_text())
        stored = raw[shares_store.root_key]["shares"][0]
        assert stored["passcode"] != share.passcode
        assert (await registry.get(share.token)).passcode == share.passcode

    async def test_no_passcode_without_auth(self, open_registry):
        share = await open_registry.create("movies", is_directory=True, editable=False)
        assert share.passcode is None

    async def test_same_path_returns_existing(self, registry):
        first = await registry.create("movies", is_directory=True, editable=False)
        second = await registry.create("movies/", is_directory=True, editable=False)
        assert second.token == first.token
        assert second.passcode == first.passcode
        assert len(await registry.list_all()) == 1

    async def test_flag_change_updates_in_place(self, registry):
        first = await registry.create("editable", is_directory=True, editable=False)
        limits = ShareRestrictions(allow_delete=False, max_upload_bytes=10)
        second = await registry.create(
            "editable", is_directory=True, editable=True, restrictions=limits
        )
        assert second.token == first.token
        assert second.editable is True
        assert second.restrictions == limits

    async def test_restrictions_dropped_for_read_only(self, registry):
        share = await registry.create(
            "movies", is_directory=True, editable=False, restrictions=ShareRestrictions()
        )
        assert share.restrictions is None


class TestQueries:
    async def test_get_unknown(self, registry):
        assert await registry.get("nope") is None
        assert await registry.get("") is None

    async def test_list_for_path(self, registry):
        await registry.create("movies", is_directory=True, editable=False)
        await registry.create("docs", is_directory=True, editable=False)
        matches = await registry.list_for_path("movies")
        assert [s.path for s in matches] == ["movies"]

    async def test_list_as_file_items_skips_missing(self, registry, disk, media_root):
        a = await registry.create("movies/a.mp4", is_directory=False, editable=False)
        await registry.create("gone.mp4", is_directory=False, editable=False)
        items = await registry.list_as_file_items(disk)
        assert [(i.path, i.share_token) for i in items] == [("movies/a.mp4", a.token)]

    async def test_check_passcode(self, registry):
        share = await registry.create("movies", is_directory=True, editable=False)
        assert await registry.check_passcode(share, share.passcode)
        assert not await registry.check_passcode(share, "wrong!")

    async def test_check_passcode_open_share(self, open_registry):
        share = await open_registry.create("movies", is_directory=True, editable=False)
        assert await open_registry.check_passcode(share, "")

    async def test_malformed_records_skipped(self, registry, shares_store):
        async with shares_store.transaction() as section:
            section["shares"] = [{"bogus": True}, {"token": "abc", "path": "docs"}]
        assert [s.token for s in await registry.list_all()] == ["abc"]


class TestMutations:
    async def test_update_restrictions(self, registry):
        share = await registry.create("editable", is_directory=True, editable=True)
        updated = await registry.update_restrictions(
            share.token, ShareRestrictions(allow_upload=False)
        )
        assert updated is not None
        assert updated.restrictions.allow_upload is False
        assert await registry.update_restrictions("nope", ShareRestrictions()) is None

    async def test_add_used_bytes_accumulates(self, registry):
        share = await registry.create("editable", is_directory=True, editable=True)
        assert await registry.add_used_bytes(share.token, 10)
        assert await registry.add_used_bytes(share.token, 5)
        assert (await registry.get(share.token)).used_bytes == 15

    async def test_add_used_bytes_unknown(self, registry):
        assert await registry.add_used_bytes("nope", 10) is False

    async def test_add_zero_bytes_does_not_write(self, registry, shares_store):
        share = await registry.create("editable", is_directory=True, editable=True)
        before = shares_store.path.read_text()
        assert await registry.add_used_bytes(share.token, 0)
        assert shares_store.path.read_text() == before

    async def test_delete(self, registry):
        share = await registry.create("movies", is_directory=True, editable=False)
        assert await registry.delete(share.token)
        assert await registry.get(share.token) is None
        assert await registry.delete(share.token) is False

    async def test_update_share_paths(self, registry):
        await registry.create("photos", is_directory=True, editable=False)
        await registry.create("photos/a.jpg", is_directory=False, editable=False)
        await registry.create("photos-old", is_directory=True, editable=False)
        moved = await registry.update_share_paths("photos", "pictures")
        assert moved == 2
        paths = sorted(s.path for s in await registry.list_all())
        assert paths == ["photos-old", "pictures", "pictures/a.jpg"]

    async def test_update_share_paths_noop(self, registry):
        assert await registry.update_share_paths("", "x") == 0
        assert await registry.update_share_paths("a", "a") == 0
