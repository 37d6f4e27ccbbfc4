"""Primary API router definition."""

from fastapi import APIRouter

from . import events, kiosks, points, store

api_router = APIRouter()

api_router.include_router(points.router)
api_router.include_router(events.router)
api_router.include_router(kiosks.router)
api_router.include_router(store.router)


@api_router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    """Basic health probe endpoint."""
    return {"status": "ok"}
