"""Settings, knowledge-base and view-statistics routes."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from mediashare.api.deps import State
from mediashare.api.routes.files import SSE_HEADERS
from mediashare.api.schemas import FilePathBody, SettingsBody
from mediashare.fs.exceptions import InvalidRequestError
from mediashare.fs.sandbox import check_relative
from mediashare.fs.utils import knowledge_base_root

router = APIRouter(prefix="/api", tags=["library"])


# =============================================================================
# Settings
# =============================================================================


@router.get("/settings")
async def get_settings(state: State, path: str = "") -> dict:
    snapshot = await state.settings.snapshot()
    return {
        "view_mode": await state.settings.view_mode(path),
        "favorites": snapshot.favorites,
        "knowledge_bases": snapshot.knowledge_bases,
    }


@router.post("/settings")
async def update_settings(body: SettingsBody, state: State) -> dict:
    if body.view_mode is not None:
        if body.path is None:
            raise InvalidRequestError("Path is required")
        await state.settings.set_view_mode(body.path, body.view_mode)
        return {"success": True}

    if body.action == "toggleFavorite":
        if not body.file_path:
            raise InvalidRequestError("File path is required")
        is_favorite, favorites = await state.settings.toggle_favorite(body.file_path)
        return {"success": True, "is_favorite": is_favorite, "favorites": favorites}

    if body.action == "toggleKnowledgeBase":
        if not body.file_path:
            raise InvalidRequestError("File path is required")
        is_kb, knowledge_bases = await state.settings.toggle_knowledge_base(body.file_path)
        return {"success": True, "is_knowledge_base": is_kb, "knowledge_bases": knowledge_bases}

    raise InvalidRequestError("Invalid request")


@router.get("/settings/all")
async def all_settings(state: State) -> dict:
    return (await state.settings.snapshot()).model_dump()


@router.get("/settings/stream")
async def settings_stream(state: State) -> StreamingResponse:
    subscription = await state.settings_events.subscribe()
    return StreamingResponse(
        state.settings_events.stream(subscription),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# =============================================================================
# Knowledge bases
# =============================================================================


@router.get("/kb/recent")
async def kb_recent(state: State, root: str = "") -> dict:
    if not root:
        return {"results": []}
    if knowledge_base_root(check_relative(root), await state.settings.knowledge_bases()) is None:
        raise InvalidRequestError("Not within a knowledge base")
    notes = await state.knowledge.recent(root)
    return {"results": [note.to_dict() for note in notes]}


# =============================================================================
# Stats
# =============================================================================


@router.get("/stats/views")
async def views(state: State) -> dict:
    return {"views": await state.stats.views()}


@router.post("/stats/views")
async def record_view(body: FilePathBody, state: State) -> dict:
    if not body.file_path:
        raise InvalidRequestError("File path is required")
    count = await state.stats.record_view(body.file_path)
    return {"success": True, "view_count": count}


@router.get("/stats/most-played")
async def most_played(state: State) -> dict:
    return {"files": [item.to_dict() for item in await state.stats.most_played()]}


@router.get("/stats/favorites")
async def favorites(state: State) -> dict:
    return {"files": [item.to_dict() for item in await state.settings.favorites_as_items()]}
