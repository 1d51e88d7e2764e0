"""HTTP surface: FastAPI app, dependencies, routes."""

from mediashare.api.app import create_app

__all__ = ["create_app"]
