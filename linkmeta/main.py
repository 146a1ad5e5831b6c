# linkmeta/main.py
# Responsibility: Application entry point. Configures and launches the FastAPI app.

from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI

from linkmeta.config.log import setup_logging
from linkmeta.config.settings import settings
from linkmeta.crawler.scheduler import PreviewScheduler, build_scheduler
from linkmeta.routers import admin, preview

VERSION = "1.0.0"


def create_app(scheduler_factory: Optional[Callable[[], PreviewScheduler]] = None) -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.

    Args:
        scheduler_factory: Builds the PreviewScheduler at start-up. Defaults to build_scheduler.
    """
    factory = scheduler_factory or build_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.SERVER.LOG_LEVEL)
        scheduler = factory()
        await scheduler.startup()
        app.state.scheduler = scheduler
        try:
            yield
        finally:
            await scheduler.shutdown()
            app.state.scheduler = None

    app = FastAPI(
        title="Link Metadata Service",
        description="Turns URLs into titles, descriptions, icons and site names.",
        version=VERSION,
        debug=settings.SERVER.DEBUG,
        lifespan=lifespan
    )

    # Register Routers
    app.include_router(preview.router)
    app.include_router(admin.router)

    # Health Check
    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok", "version": VERSION}

    return app

# Application instance
app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "linkmeta.main:app",
        host=settings.SERVER.HOST,
        port=settings.SERVER.PORT,
        reload=settings.SERVER.DEBUG
    )
