"""Application state wiring and FastAPI dependencies.

``build_state`` constructs every service once per application.  Route
handlers reach them through ``get_state``; share routes additionally
depend on ``share_access`` which resolves the token and enforces the
passcode session.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from mediashare.auth import PasswordVerifier, RateLimiter, SessionAuthenticator
from mediashare.config import AppConfig
from mediashare.events import ChangeNotifier
from mediashare.fs.exceptions import ShareNotFoundError, UnauthorizedError
from mediashare.fs.local_disk import LocalDiskBackend
from mediashare.fs.operations import OwnerOperations, ShareOperations
from mediashare.fs.permissions import EditPolicy
from mediashare.fs.sandbox import PathSandbox
from mediashare.fs.sharing import PasscodeCipher, ShareRegistry
from mediashare.knowledge import KnowledgeBaseIndex
from mediashare.library import SettingsService, ViewStats
from mediashare.media import MediaTools
from mediashare.models.shares import ShareRecord
from mediashare.store import JsonStore
from mediashare.streaming import RangeStreamer

logger = logging.getLogger(__name__)

STATE_KEY = "mediashare"


@dataclass
class AppState:
    config: AppConfig
    sandbox: PathSandbox
    disk: LocalDiskBackend
    policy: EditPolicy
    shares: ShareRegistry
    owner_ops: OwnerOperations
    share_ops: ShareOperations
    settings: SettingsService
    stats: ViewStats
    knowledge: KnowledgeBaseIndex
    sessions: SessionAuthenticator
    passwords: PasswordVerifier
    login_limiter: RateLimiter
    verify_limiter: RateLimiter
    file_events: ChangeNotifier
    settings_events: ChangeNotifier
    media: MediaTools
    streamer: RangeStreamer

    @property
    def auth_enabled(self) -> bool:
        return self.config.auth_enabled


def _server_secret(config: AppConfig) -> str:
    if config.auth.session_secret:
        return config.auth.session_secret
    if config.auth.password:
        return config.auth.password
    return secrets.token_urlsafe(32)


def build_state(config: AppConfig) -> AppState:
    sandbox = PathSandbox(config.media_dir)
    root_key = sandbox.identity
    disk = LocalDiskBackend(sandbox)
    policy = EditPolicy(config.editable_folders)

    file_events = ChangeNotifier()
    settings_events = ChangeNotifier()

    shares = ShareRegistry(
        JsonStore(config.shares_file, root_key, name="shares"),
        PasscodeCipher(config.auth.password),
        auth_enabled=config.auth_enabled,
    )
    admin_secret = config.auth.password if config.auth_enabled else None

    logger.info(
        "Serving %s (%d editable folder(s), auth %s)",
        sandbox.root,
        len(policy.editable_roots),
        "enabled" if config.auth_enabled else "disabled",
    )
    return AppState(
        config=config,
        sandbox=sandbox,
        disk=disk,
        policy=policy,
        shares=shares,
        owner_ops=OwnerOperations(disk, policy, shares, file_events),
        share_ops=ShareOperations(disk, shares, file_events, policy=policy),
        settings=SettingsService(
            JsonStore(config.settings_file, root_key, name="settings"), disk, settings_events
        ),
        stats=ViewStats(JsonStore(config.stats_file, root_key, name="stats"), disk),
        knowledge=KnowledgeBaseIndex(sandbox),
        sessions=SessionAuthenticator(admin_secret, _server_secret(config)),
        passwords=PasswordVerifier(admin_secret),
        login_limiter=RateLimiter(),
        verify_limiter=RateLimiter(),
        file_events=file_events,
        settings_events=settings_events,
        media=MediaTools(config.thumbnail_dir),
        streamer=RangeStreamer(),
    )


def get_state(request: Request) -> AppState:
    return getattr(request.app.state, STATE_KEY)


State = Annotated[AppState, Depends(get_state)]


async def share_access(token: str, request: Request, state: State) -> ShareRecord:
    """Resolve a share token and require its passcode session when it has one."""
    share = await state.shares.get(token)
    if share is None:
        raise ShareNotFoundError()
    if not state.sessions.is_share_authorized(share, request.cookies):
        raise UnauthorizedError("Passcode required")
    return share


SharedRecord = Annotated[ShareRecord, Depends(share_access)]
