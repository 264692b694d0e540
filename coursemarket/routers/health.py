from datetime import datetime, timezone

from fastapi import APIRouter

from coursemarket.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health", operation_id="health_v1")
def health():
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "time": datetime.now(timezone.utc).isoformat(),
    }
