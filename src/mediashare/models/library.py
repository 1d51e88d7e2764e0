"""Settings and view-statistics documents."""

from __future__ import annotations

from typing import Literal

from sqlmodel import Field, SQLModel

ViewMode = Literal["list", "grid"]


class SettingsDocument(SQLModel):
    """Per-root UI settings: folder view modes, favorites and knowledge bases."""

    view_modes: dict[str, ViewMode] = Field(default_factory=dict)
    favorites: list[str] = Field(default_factory=list)
    knowledge_bases: list[str] = Field(default_factory=list)


class StatsDocument(SQLModel):
    """Per-root view counters, keyed by sandbox-relative path."""

    views: dict[str, int] = Field(default_factory=dict)
    share_views: dict[str, int] = Field(default_factory=dict)
