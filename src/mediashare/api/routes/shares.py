"""Owner share management: create, update restrictions, revoke, list."""

from __future__ import annotations

from fastapi import APIRouter, Request

from mediashare.api.deps import State
from mediashare.api.schemas import ShareCreateBody, ShareUpdateBody, TokenBody
from mediashare.fs.exceptions import InvalidRequestError, PathNotFoundError, ShareNotFoundError
from mediashare.fs.sandbox import check_relative

router = APIRouter(prefix="/api/shares", tags=["shares"])


def share_url(request: Request, link_domain: str | None, token: str) -> str:
    """Public link for a share; a bare domain gets an https scheme."""
    domain = (link_domain or "").strip().rstrip("/")
    if domain:
        base = domain if domain.startswith(("http://", "https://")) else f"https://{domain}"
    else:
        base = str(request.base_url).rstrip("/")
    return f"{base}/share/{token}"


@router.get("")
async def list_shares(state: State, path: str | None = None) -> dict:
    if path is not None:
        records = await state.shares.list_for_path(check_relative(path))
    else:
        records = await state.shares.list_all()
    return {"shares": [r.model_dump(mode="json") for r in records]}


@router.post("")
async def create_share(body: ShareCreateBody, request: Request, state: State) -> dict:
    path = check_relative(body.path)
    if not path:
        raise InvalidRequestError("Path is required")
    item = await state.disk.get_item(path)
    if item is None:
        raise PathNotFoundError("Path not found")

    is_directory = item.is_directory
    editable = body.editable and is_directory and state.policy.is_editable(path)
    share = await state.shares.create(
        path,
        is_directory=is_directory,
        editable=editable,
        restrictions=body.restrictions.to_model() if body.restrictions else None,
    )
    url = share_url(request, state.config.share_link_domain, share.token)
    return {"share": share.model_dump(mode="json"), "url": url}


@router.patch("")
async def update_share(body: ShareUpdateBody, state: State) -> dict:
    if not body.token:
        raise InvalidRequestError("Token is required")
    share = await state.shares.update_restrictions(body.token, body.restrictions.to_model())
    if share is None:
        raise ShareNotFoundError()
    return {"share": share.model_dump(mode="json")}


@router.delete("")
async def delete_share(body: TokenBody, state: State) -> dict:
    if not body.token:
        raise InvalidRequestError("Token is required")
    if not await state.shares.delete(body.token):
        raise ShareNotFoundError()
    return {"success": True}


@router.get("/files")
async def shared_files(state: State) -> dict:
    items = await state.shares.list_as_file_items(state.disk)
    return {"files": [item.to_dict() for item in items]}
