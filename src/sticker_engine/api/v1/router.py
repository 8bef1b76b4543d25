"""Main API router for v1."""

from fastapi import APIRouter

from sticker_engine.api.v1.endpoints import downloads, generate, presets, uploads, websockets

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(uploads.router, tags=["Uploads"])
api_router.include_router(presets.router, tags=["Presets"])
api_router.include_router(generate.router, tags=["Generation"])
api_router.include_router(downloads.router, tags=["Downloads"])
api_router.include_router(websockets.router, tags=["Real-time"])
