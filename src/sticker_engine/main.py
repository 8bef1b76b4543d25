"""Sticker Engine - Main FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from sticker_engine.api.v1.endpoints.websockets import ConnectionManager
from sticker_engine.api.v1.router import api_router
from sticker_engine.core.config import Settings, settings
from sticker_engine.core.jobs import JobScheduler
from sticker_engine.services import build_scheduler
from sticker_engine.services.export import ExportService
from sticker_engine.services.presets import PresetLibrary

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    config: Settings = app.state.settings
    logger.info("Starting %s v%s", config.APP_NAME, config.VERSION)
    logger.info("Output directory: %s", config.OUTPUT_PATH)
    logger.info("Upload directory: %s", config.UPLOAD_PATH)

    scheduler: JobScheduler = app.state.scheduler
    await scheduler.start()
    logger.warning("First run needs a manual login in the browser window opened for the first task")

    yield

    # Cleanup
    logger.info("Shutting down %s...", config.APP_NAME)
    await scheduler.stop()
    logger.info("Shutdown complete")


def create_app(config: Settings = settings, scheduler: Optional[JobScheduler] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=config.APP_NAME,
        description="LINE sticker batch generator driving a chat UI",
        version=config.VERSION,
        lifespan=lifespan,
        docs_url="/docs" if config.DEBUG else None,
        redoc_url="/redoc" if config.DEBUG else None,
    )

    app.state.settings = config
    app.state.scheduler = scheduler or build_scheduler(config)
    app.state.exporter = ExportService(config.OUTPUT_PATH)
    app.state.presets = PresetLibrary(config.PRESETS_PATH)
    app.state.ws_manager = ConnectionManager()
    app.state.scheduler.add_listener(app.state.ws_manager.publish)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if config.DEBUG else config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        scheduler: JobScheduler = app.state.scheduler
        return {
            "status": "healthy",
            "version": config.VERSION,
            "queue": {
                "pending": len(scheduler.state.pending),
                "activeTaskId": scheduler.state.active_job_id,
                "processing": scheduler.is_busy,
            },
            "tasks": scheduler.state.counts(),
        }

    # Include API router
    app.include_router(api_router, prefix="/api")

    # Mount generated stickers for direct viewing
    config.OUTPUT_PATH.mkdir(parents=True, exist_ok=True)
    app.mount("/output", StaticFiles(directory=str(config.OUTPUT_PATH)), name="output")
    logger.info("Output mounted at /output: %s", config.OUTPUT_PATH)

    return app


def main():
    """Run the application."""
    import uvicorn

    uvicorn.run(
        "sticker_engine.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )


if __name__ == "__main__":
    main()
