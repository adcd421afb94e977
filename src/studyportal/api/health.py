"""Health check endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from studyportal.api.deps import DirectoryDep
from studyportal.config import settings
from studyportal.services.directory import DirectoryError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check - just confirms the service is running."""
    return {"status": "ok"}


@router.get("/notion")
async def health_check_notion(directory: DirectoryDep):
    """Health check with Notion connectivity."""
    if not settings.notion_api_key:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "notion": "not_configured"},
        )

    try:
        await directory.ping()
        return {"status": "ok", "notion": "connected"}
    except DirectoryError as e:
        logger.error(f"Notion health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "notion": "disconnected"},
        )
