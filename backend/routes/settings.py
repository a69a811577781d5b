"""Health check and settings endpoints."""

from fastapi import APIRouter

from backend import coach, storage

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get global app settings (language, script server, cache TTLs, pacing)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict):
    """Update global app settings (partial merge). Rebuilds the script repository."""
    config = storage.update_config(body)
    coach.reset_services()
    return config
