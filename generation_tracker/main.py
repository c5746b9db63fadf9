"""Pixel Studio generation tracker - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from generation_tracker.config import settings
from generation_tracker.api.v1.router import v1_router
from generation_tracker.api.v1.health import router as health_root_router
from generation_tracker.api.v1 import jobs as jobs_api
from generation_tracker.tracker import GenerationTracker, build_tracker

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def create_app(tracker: Optional[GenerationTracker] = None) -> FastAPI:
    """Build the app. Without a tracker, one is built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = tracker if tracker is not None else build_tracker(settings)

        logger.info("Starting generation tracker on port %s", settings.tracker_port)
        logger.info("Status endpoint: %s", settings.status_base_url)
        logger.info("Poll interval: %ss", settings.poll_interval_seconds)

        await active.start()
        jobs_api.set_tracker(active)

        yield

        logger.info("Shutting down generation tracker")
        jobs_api.set_tracker(None)
        await active.close()

    app = FastAPI(
        title="Pixel Studio Generation Tracker",
        description="Tracks image and video generation jobs until they finish",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    return app


app = create_app()
