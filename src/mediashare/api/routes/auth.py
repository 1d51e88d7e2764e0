"""Admin login, logout and public auth configuration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response

from mediashare.api.deps import State
from mediashare.api.schemas import LoginBody
from mediashare.auth import SESSION_COOKIE, client_address
from mediashare.fs.exceptions import InvalidRequestError, RateLimitedError, UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/config")
async def auth_config(state: State) -> dict:
    return {
        "enabled": state.auth_enabled,
        "share_link_domain": state.config.share_link_domain,
    }


@router.post("/login")
async def login(body: LoginBody, request: Request, response: Response, state: State) -> dict:
    if not state.auth_enabled:
        raise InvalidRequestError("Authentication is not enabled")

    address = client_address(request.headers, request.client.host if request.client else None)
    if not state.login_limiter.hit(address):
        logger.warning("Login rate limit hit for %s", address)
        raise RateLimitedError()

    if not await state.passwords.verify(body.password):
        raise UnauthorizedError("Invalid password")

    state.login_limiter.reset(address)
    response.set_cookie(
        SESSION_COOKIE,
        state.sessions.issue_admin(),
        max_age=state.sessions.max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=state.config.secure_cookies,
    )
    return {"success": True}


@router.post("/logout")
async def logout(response: Response) -> dict:
    response.delete_cookie(SESSION_COOKIE, path="/")
    return {"success": True}
