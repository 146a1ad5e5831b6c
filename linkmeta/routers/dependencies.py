# linkmeta/routers/dependencies.py
# Responsibility: FastAPI dependency providers shared by the routers.

from fastapi import HTTPException, Request

from linkmeta.crawler.scheduler import PreviewScheduler


def get_scheduler(request: Request) -> PreviewScheduler:
    """Provider for the scheduler created during application start-up."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Preview service not started")
    return scheduler
