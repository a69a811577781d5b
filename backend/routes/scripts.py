"""Current script summary and forced refresh."""

from fastapi import APIRouter

from backend import coach
from coachscript.models import Script

from .models import RefreshBody

router = APIRouter()


def _summary(script: Script) -> dict:
    return {
        "id": script.id,
        "version": script.version,
        "metadata": script.metadata.model_dump(),
        "daily_events": [e.id for e in script.daily_events],
        "plot_days": sorted(script.plot_timeline, key=lambda k: int(k.split("_")[1])),
        "templates": sorted(script.message_templates),
    }


@router.get("/script")
async def get_script(language: str = ""):
    """Summary of the script served for a language (default: configured language)."""
    return _summary(await coach.load_script(language))


@router.post("/script/refresh")
async def refresh_script(body: RefreshBody):
    """Bypass the caches and check the script server now."""
    return _summary(await coach.load_script(body.language, force_refresh=True))
