"""User accounts and postal addresses with a single default address per user."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings, resolve_database_path
from .database import Database


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_application(*args: Any, **kwargs: Any):
    """Factory function that builds the application from the environment."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Database",
    "Settings",
    "create_app",
    "create_application",
    "load_settings",
    "resolve_database_path",
]
