"""FastAPI application factory."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mediashare import __version__
from mediashare.api.deps import STATE_KEY, build_state, get_state
from mediashare.api.errors import install_error_handlers
from mediashare.api.routes import auth, files, library, media, share_access, shares
from mediashare.auth import SESSION_COOKIE, is_host_allowed, request_host
from mediashare.config import AppConfig, load_config
from mediashare.fs.exceptions import ForbiddenHostError, UnauthorizedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from starlette.responses import Response

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES = ("/api/auth/", "/api/share/", "/api/files/stream")


def is_public(path: str) -> bool:
    return any(path == p or path.startswith(p) for p in PUBLIC_PREFIXES)


async def admin_session_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Require a valid admin session (from an allowed host) on private API routes."""
    state = get_state(request)
    path = request.url.path
    if not state.auth_enabled or not path.startswith("/api/") or is_public(path):
        return await call_next(request)

    if not state.sessions.verify_admin(request.cookies.get(SESSION_COOKIE)):
        error = UnauthorizedError()
        return JSONResponse(error.payload(), status_code=error.status_code)

    if not is_host_allowed(request_host(request.headers), state.config.auth.admin_access_domains):
        error = ForbiddenHostError()
        return JSONResponse(error.payload(), status_code=error.status_code)

    return await call_next(request)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the application; loads the config from the usual places when omitted."""
    config = config or load_config()
    state = build_state(config)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info(
            "Shutting down; closing %d change stream(s)",
            state.file_events.subscriber_count + state.settings_events.subscriber_count,
        )
        await state.file_events.close_all()
        await state.settings_events.close_all()

    app = FastAPI(title="mediashare", version=__version__, lifespan=lifespan)
    setattr(app.state, STATE_KEY, state)

    install_error_handlers(app)
    app.middleware("http")(admin_session_middleware)

    for module in (auth, files, media, library, shares, share_access):
        app.include_router(module.router)
    return app
