"""Persisted document models."""

from mediashare.models.library import SettingsDocument, StatsDocument
from mediashare.models.shares import DEFAULT_MAX_UPLOAD_BYTES, ShareRecord, ShareRestrictions

__all__ = [
    "DEFAULT_MAX_UPLOAD_BYTES",
    "SettingsDocument",
    "ShareRecord",
    "ShareRestrictions",
    "StatsDocument",
]
