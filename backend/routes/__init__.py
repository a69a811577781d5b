"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, settings), scripts (current script,
refresh), conversations (CRUD plus the engine calls: start, select, input,
messages, state, variables, reset). Each conversation's engine calls are
nested under /api/conversations/{slug}/.
"""

from fastapi import APIRouter

from .conversations import router as conversations_router
from .scripts import router as scripts_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(scripts_router)
router.include_router(conversations_router)
