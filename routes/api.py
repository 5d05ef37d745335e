"""
Central API route registration. All HTTP controllers are mounted here with /api prefix.
"""
import logging
from fastapi import FastAPI

from app.http.controllers import sync

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    app.include_router(sync.router, prefix=f"{settings.API_PREFIX}/admin/sync", tags=["sync"])
    logger.debug("Registered sync routes under %s/admin/sync", settings.API_PREFIX)
