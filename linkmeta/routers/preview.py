# linkmeta/routers/preview.py
# Responsibility: Handles preview endpoints. Preview failures are reported in the body, never as 5xx.

import asyncio
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from linkmeta.crawler.models import LinkMetadata
from linkmeta.crawler.scheduler import PreviewScheduler
from linkmeta.routers.dependencies import get_scheduler

router = APIRouter(
    prefix="/preview",
    tags=["Preview"]
)

# --- Pydantic Models ---
class BatchPreviewRequest(BaseModel):
    urls: List[str] = Field(..., min_length=1, max_length=100)

# --- Endpoints ---
@router.get("", response_model=LinkMetadata)
async def preview_endpoint(
    url: str = Query(..., description="URL to preview"),
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    """
    Returns title, description, icon and site name for one URL.
    """
    return await scheduler.fetch(url)

@router.post("/batch", response_model=List[LinkMetadata])
async def batch_preview_endpoint(
    req: BatchPreviewRequest,
    scheduler: PreviewScheduler = Depends(get_scheduler)
):
    """
    Previews several URLs concurrently. Results keep the request order.
    """
    return await asyncio.gather(*(scheduler.fetch(url) for url in req.urls))
