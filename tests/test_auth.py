"""Tests for session signing, password checks, rate limiting and host rules."""

from __future__ import annotations

import time

import pytest
from limits import RateLimitItemPerMinute, RateLimitItemPerSecond

from mediashare.auth import (
    PasswordVerifier,
    RateLimiter,
    SessionAuthenticator,
    client_address,
    is_host_allowed,
    issue,
    request_host,
    share_cookie_name,
    sign,
    token_timestamp,
    verify,
    verify_session,
)
from mediashare.models.shares import ShareRecord


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class TestSigning:
    def test_issue_and_verify(self):
        token = issue("secret", now=1000)
        assert token.startswith("1000.")
        assert token_timestamp(token) == 1000
        assert verify("secret", token)

    def test_wrong_secret(self):
        assert not verify("other", issue("secret", now=1000))

    def test_tampered_payload(self):
        _, signature = issue("secret", now=1000).split(".")
        assert not verify("secret", f"2000.{signature}")

    @pytest.mark.parametrize("token", [None, "", "no-dot", ".sig", "1000.", "abc.def"])
    def test_malformed(self, token):
        assert not verify("secret", token)

    def test_empty_secret_never_verifies(self):
        assert not verify("", f"1000.{sign('', '1000')}")

    def test_signature_has_no_padding(self):
        assert "=" not in sign("secret", "1000")


class TestVerifySession:
    def test_within_max_age(self):
        token = issue("s", now=1000)
        assert verify_session("s", token, max_age=60, now=1060)

    def test_expired(self):
        token = issue("s", now=1000)
        assert not verify_session("s", token, max_age=60, now=1061)

    def test_missing_token(self):
        assert not verify_session("s", None, now=1000)

    def test_signature_checked_first(self):
        assert not verify_session("s", "1000.bogus", max_age=60, now=1000)

    def test_non_numeric_timestamp(self):
        token = f"abc.{sign('s', 'abc')}"
        assert verify("s", token)
        assert not verify_session("s", token, now=1000)


# ---------------------------------------------------------------------------
# SessionAuthenticator
# ---------------------------------------------------------------------------


def _share(token: str = "A" * 22, passcode: str | None = "AbC234") -> ShareRecord:
    return ShareRecord(token=token, path="movies", is_directory=True, passcode=passcode)


class TestSessionAuthenticator:
    def test_admin_roundtrip(self):
        clock = FakeClock()
        sessions = SessionAuthenticator("pw", "server", max_age=100, clock=clock)
        value = sessions.issue_admin()
        assert sessions.verify_admin(value)
        clock.now += 101
        assert not sessions.verify_admin(value)

    def test_admin_disabled(self):
        sessions = SessionAuthenticator(None, "server")
        assert not sessions.verify_admin("1000.x")
        with pytest.raises(RuntimeError):
            sessions.issue_admin()

    def test_share_sessions_are_scoped(self):
        sessions = SessionAuthenticator("pw", "server")
        value = sessions.issue_share("token-one")
        assert sessions.verify_share("token-one", value)
        assert not sessions.verify_share("token-two", value)

    def test_share_session_is_not_admin_session(self):
        sessions = SessionAuthenticator("pw", "server")
        assert not sessions.verify_admin(sessions.issue_share("tok"))

    def test_is_share_authorized(self):
        sessions = SessionAuthenticator("pw", "server")
        share = _share()
        assert not sessions.is_share_authorized(share, {})
        cookies = {share_cookie_name(share.token): sessions.issue_share(share.token)}
        assert sessions.is_share_authorized(share, cookies)

    def test_open_share_always_authorized(self):
        sessions = SessionAuthenticator("pw", "server")
        assert sessions.is_share_authorized(_share(passcode=None), {})

    def test_cookie_name(self):
        assert share_cookie_name("abcdefghijkl") == "share_abcdefgh"


# ---------------------------------------------------------------------------
# PasswordVerifier
# ---------------------------------------------------------------------------


class TestPasswordVerifier:
    async def test_correct_and_wrong(self):
        verifier = PasswordVerifier("hunter2")
        assert await verifier.verify("hunter2")
        assert not await verifier.verify("hunter3")

    async def test_empty_candidate(self):
        assert not await PasswordVerifier("hunter2").verify("")

    async def test_no_password_configured(self):
        assert not await PasswordVerifier(None).verify("anything")


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------


class TestRateLimiter:
    def test_default_is_ten_per_fifteen_minutes(self):
        limiter = RateLimiter()
        assert limiter.item.amount == 10
        assert limiter.item.get_expiry() == 15 * 60

    def test_budget_then_block(self):
        limiter = RateLimiter(RateLimitItemPerMinute(3))
        assert [limiter.hit("ip") for _ in range(4)] == [True, True, True, False]

    def test_keys_are_independent(self):
        limiter = RateLimiter(RateLimitItemPerMinute(1))
        assert limiter.hit("a")
        assert limiter.hit("b")
        assert not limiter.hit("a")

    def test_window_expires(self):
        limiter = RateLimiter(RateLimitItemPerSecond(1))
        assert limiter.hit("ip")
        assert not limiter.hit("ip")
        time.sleep(1.1)
        assert limiter.hit("ip")

    def test_reset(self):
        limiter = RateLimiter(RateLimitItemPerMinute(1))
        limiter.hit("ip")
        assert not limiter.hit("ip")
        limiter.reset("ip")
        assert limiter.hit("ip")

    def test_instances_do_not_share_counters(self):
        login, verify_ = RateLimiter(RateLimitItemPerMinute(1)), RateLimiter(RateLimitItemPerMinute(1))
        assert login.hit("key")
        assert verify_.hit("key")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


class TestRequestHelpers:
    def test_client_address_prefers_forwarded_for(self):
        headers = {"x-forwarded-for": "1.2.3.4, 10.0.0.1", "x-real-ip": "5.6.7.8"}
        assert client_address(headers, "9.9.9.9") == "1.2.3.4"

    def test_client_address_real_ip(self):
        assert client_address({"x-real-ip": "5.6.7.8"}, "9.9.9.9") == "5.6.7.8"

    def test_client_address_peer(self):
        assert client_address({}, "9.9.9.9") == "9.9.9.9"
        assert client_address({}, None) == "unknown"

    def test_request_host(self):
        assert request_host({"host": "Media.Example.com:8443"}) == "media.example.com"
        assert request_host({"x-forwarded-host": "a.com", "host": "b.com"}) == "a.com"
        assert request_host({}) == ""

    def test_is_host_allowed(self):
        assert is_host_allowed("anything", [])
        assert is_host_allowed("admin.local", ["Admin.Local"])
        assert not is_host_allowed("public.com", ["admin.local"])
        assert not is_host_allowed("", ["admin.local"])
