# linkmeta/routers/admin.py
# Responsibility: Handles administration endpoints: cache diagnostics, invalidation and runtime settings.

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from linkmeta.crawler.models import PreviewSettings
from linkmeta.crawler.scheduler import PreviewScheduler
from linkmeta.routers.dependencies import get_scheduler

router = APIRouter(
    prefix="/admin",
    tags=["Admin"]
)

# --- Pydantic Models ---
class CacheStatsResponse(BaseModel):
    metadata: Dict[str, Any]
    icons: Dict[str, Any]

class TimeoutUpdate(BaseModel):
    timeout_ms: int = Field(..., ge=500)

# --- Endpoints ---
@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats_endpoint(
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    return CacheStatsResponse(metadata=scheduler.cache_stats(), icons=scheduler.icon_stats())

@router.post("/cache/clear")
def clear_cache_endpoint(
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    """
    Clears cached previews and icon validations. Stored icons are kept.
    """
    scheduler.clear_cache()
    return {"status": "ok"}

@router.delete("/icons")
def clear_icons_endpoint(
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    scheduler.clear_icons()
    return {"status": "ok"}

@router.get("/settings", response_model=PreviewSettings)
def get_settings_endpoint(
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    return scheduler.preview_settings

@router.put("/settings", response_model=PreviewSettings)
def update_settings_endpoint(
    req: PreviewSettings,
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    """
    Replaces runtime settings. A changed timeout also clears cached previews.
    """
    timeout_changed = req.request_timeout_ms != scheduler.preview_settings.request_timeout_ms
    scheduler.update_settings(req)
    if timeout_changed:
        scheduler.update_timeout(req.request_timeout_ms)
    return scheduler.preview_settings

@router.put("/timeout", response_model=PreviewSettings)
def update_timeout_endpoint(
    req: TimeoutUpdate,
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    scheduler.update_timeout(req.timeout_ms)
    return scheduler.preview_settings
