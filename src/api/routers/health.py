from datetime import datetime, UTC

from fastapi import APIRouter

from ...core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "app": settings.app_name,
        "env": settings.app_env,
        "extraction_configured": bool(settings.gemini_api_key),
        "time": datetime.now(UTC).isoformat(),
    }
