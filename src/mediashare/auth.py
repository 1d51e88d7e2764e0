"""Signed session tokens, password verification and login rate limiting.

Session token format: ``"<unix-seconds>.<base64url(HMAC-SHA256(secret, unix-seconds))>"``.

Two independent secrets are in play:

- admin sessions are signed with the configured admin password;
- share sessions are signed with ``share token + server secret``, so
  holding one share's session material never helps forge another
  share's session or the admin's.

There is no server-side revocation list.  Expiry (checked after the
signature) is the only teardown short of rotating the secret.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import logging
import time
from typing import TYPE_CHECKING

from limits import RateLimitItem, RateLimitItemPerMinute
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from limits.storage import Storage

    from mediashare.models.shares import ShareRecord

logger = logging.getLogger(__name__)

SESSION_COOKIE = "auth_session"
SESSION_MAX_AGE = 60 * 60 * 24 * 7  # 7 days
SHARE_SESSION_MAX_AGE = 60 * 60 * 24 * 7  # 7 days
SHARE_COOKIE_PREFIX = "share_"

PASSWORD_SALT = b"mediashare-server"
PASSWORD_KEY_LEN = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1


# =============================================================================
# Signing
# =============================================================================


def sign(secret: str, payload: str) -> str:
    """HMAC-SHA256 of *payload* under *secret*, base64url without padding."""
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify(secret: str, token: str | None) -> bool:
    """Check the signature embedded in *token*.

    The comparison is constant-time over the signature bytes.  Expiry is
    not checked here; see ``verify_session``.
    """
    if not secret or not token:
        return False
    payload, sep, signature = token.partition(".")
    if not sep or not payload or not signature:
        return False
    expected = sign(secret, payload)
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))


def issue(secret: str, now: float | None = None) -> str:
    """Create a token whose payload is the current Unix timestamp."""
    timestamp = str(int(time.time() if now is None else now))
    return f"{timestamp}.{sign(secret, timestamp)}"


def token_timestamp(token: str) -> int | None:
    payload, _, _ = token.partition(".")
    try:
        return int(payload)
    except ValueError:
        return None


def verify_session(
    secret: str,
    token: str | None,
    *,
    max_age: int = SESSION_MAX_AGE,
    now: float | None = None,
) -> bool:
    """Signature check followed by ``now - timestamp <= max_age``."""
    if token is None or not verify(secret, token):
        return False
    timestamp = token_timestamp(token)
    if timestamp is None:
        return False
    current = int(time.time() if now is None else now)
    return current - timestamp <= max_age


def share_cookie_name(token: str) -> str:
    """Cookie name for a share session, derived from a token prefix."""
    return f"{SHARE_COOKIE_PREFIX}{token[:8]}"


class SessionAuthenticator:
    """Issues and checks admin and per-share session tokens.

    ``admin_secret`` is None when the auth subsystem is disabled; admin
    sessions then never verify.
    """

    def __init__(
        self,
        admin_secret: str | None,
        server_secret: str,
        *,
        max_age: int = SESSION_MAX_AGE,
        share_max_age: int = SHARE_SESSION_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._admin_secret = admin_secret
        self._server_secret = server_secret
        self.max_age = max_age
        self.share_max_age = share_max_age
        self._clock = clock

    def _share_secret(self, share_token: str) -> str:
        return share_token + self._server_secret

    def issue_admin(self) -> str:
        if not self._admin_secret:
            raise RuntimeError("Admin sessions are disabled")
        return issue(self._admin_secret, self._clock())

    def verify_admin(self, value: str | None) -> bool:
        if not self._admin_secret:
            return False
        return verify_session(self._admin_secret, value, max_age=self.max_age, now=self._clock())

    def issue_share(self, share_token: str) -> str:
        return issue(self._share_secret(share_token), self._clock())

    def verify_share(self, share_token: str, value: str | None) -> bool:
        return verify_session(
            self._share_secret(share_token),
            value,
            max_age=self.share_max_age,
            now=self._clock(),
        )

    def is_share_authorized(self, share: ShareRecord, cookies: Mapping[str, str]) -> bool:
        """Shares without a passcode are always accessible."""
        if not share.passcode:
            return True
        return self.verify_share(share.token, cookies.get(share_cookie_name(share.token)))


# =============================================================================
# Password verification
# =============================================================================


def _derive(password: str, salt: bytes, key_len: int) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=key_len,
    )


class PasswordVerifier:
    """Memory-hard password check against one configured password.

    The configured password's derived key is computed on first use and
    cached for the process lifetime (the config is immutable).  Every
    candidate still pays the full scrypt cost.
    """

    def __init__(
        self,
        password: str | None,
        *,
        salt: bytes = PASSWORD_SALT,
        key_len: int = PASSWORD_KEY_LEN,
    ) -> None:
        self._password = password or ""
        self._salt = salt
        self._key_len = key_len
        self._expected: bytes | None = None

    async def _expected_key(self) -> bytes:
        if self._expected is None:
            self._expected = await asyncio.to_thread(
                _derive, self._password, self._salt, self._key_len
            )
        return self._expected

    async def verify(self, candidate: str) -> bool:
        if not self._password or not candidate:
            return False
        candidate_key, expected_key = await asyncio.gather(
            asyncio.to_thread(_derive, candidate, self._salt, self._key_len),
            self._expected_key(),
        )
        return hmac.compare_digest(candidate_key, expected_key)


# =============================================================================
# Rate limiting
# =============================================================================


LOGIN_RATE_LIMIT = RateLimitItemPerMinute(10, 15)  # 10 attempts / 15 minutes


class RateLimiter:
    """Fixed-window attempt counter keyed by client address or share token.

    Backed by ``limits`` in-memory storage; counters reset on restart.
    """

    def __init__(
        self,
        item: RateLimitItem = LOGIN_RATE_LIMIT,
        *,
        storage: Storage | None = None,
    ) -> None:
        self.item = item
        self._limiter = FixedWindowRateLimiter(storage or MemoryStorage())

    def hit(self, key: str) -> bool:
        """Record an attempt. Returns False once the window's budget is spent."""
        allowed = self._limiter.hit(self.item, key)
        if not allowed:
            logger.debug("Rate limit %s exhausted for %s", self.item, key)
        return allowed

    def reset(self, key: str) -> None:
        self._limiter.clear(self.item, key)


# =============================================================================
# Request helpers
# =============================================================================


def client_address(headers: Mapping[str, str], peer: str | None) -> str:
    """First ``X-Forwarded-For`` hop, else ``X-Real-IP``, else the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer or "unknown"


def request_host(headers: Mapping[str, str]) -> str:
    """Lower-cased hostname from ``X-Forwarded-Host`` or ``Host``, port stripped."""
    raw = headers.get("x-forwarded-host") or headers.get("host") or ""
    raw = raw.split(",")[0].strip()
    return raw.split(":")[0].strip().lower()


def is_host_allowed(host: str, allowed_domains: Iterable[str]) -> bool:
    """An empty allow-list admits every host."""
    domains = [d.strip().lower() for d in allowed_domains if d.strip()]
    if not domains:
        return True
    return bool(host) and host in domains
