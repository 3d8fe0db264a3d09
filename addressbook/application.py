"""Application factory that wires settings, storage and the HTTP API."""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from fastapi import FastAPI

from .api import create_app
from .config import load_settings
from .database import Database

logger = logging.getLogger("addressbook.application")


def create_application(*, environ: Optional[Mapping[str, str]] = None) -> FastAPI:
    """Create the ASGI application from environment configuration."""

    settings = load_settings(environ)
    database = Database.from_settings(settings)
    database.initialize()
    logger.info("Using database at %s", database.path)

    return create_app(settings=settings, database=database)


__all__ = ["create_application"]
