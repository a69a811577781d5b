"""Conversation CRUD + engine endpoints (start, select, input, variables, reset)."""

from fastapi import APIRouter, HTTPException

from backend import coach, storage
from coachscript.engine import ConversationEngine, EngineBusyError
from coachscript.models import EmittedMessage

from .models import CreateConversation, InputBody, SelectBody, UpdateVariables

router = APIRouter()


def _require(slug: str) -> dict:
    conversation = storage.get_conversation(slug)
    if not conversation:
        raise HTTPException(404, "Conversation not found")
    return conversation


def _result(engine: ConversationEngine, messages: list[EmittedMessage]) -> dict:
    awaiting = engine.awaiting_message
    return {
        "messages": [m.model_dump(mode="json") for m in messages],
        "awaiting": awaiting.model_dump(mode="json") if awaiting else None,
        "flow_state": engine.flow_state.value,
        "day_in_journey": engine.state.day_in_journey,
    }


@router.get("/conversations")
async def list_conversations():
    """List all conversations."""
    return storage.list_conversations()


@router.post("/conversations")
async def create_conversation(body: CreateConversation):
    """Create a conversation. The slug is derived from the title."""
    return storage.create_conversation(body.title, body.language)


@router.get("/conversations/{slug}")
async def get_conversation(slug: str):
    """Get a single conversation by slug."""
    return _require(slug)


@router.delete("/conversations/{slug}")
async def delete_conversation(slug: str):
    """Delete a conversation and all its state."""
    if not storage.delete_conversation(slug):
        raise HTTPException(404, "Conversation not found")
    return {"ok": True}


@router.post("/conversations/{slug}/start")
async def start_conversation(slug: str):
    """Run a processing pass: due plot events, then due daily events."""
    _require(slug)
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        messages = await engine.start()
        storage.touch_conversation(slug)
        return _result(engine, messages)


@router.post("/conversations/{slug}/select")
async def select_option(slug: str, body: SelectBody):
    """Answer the awaited options message."""
    _require(slug)
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        messages = await engine.select_option(body.message_id, body.option_id)
        storage.touch_conversation(slug)
        return _result(engine, messages)


@router.post("/conversations/{slug}/input")
async def submit_input(slug: str, body: InputBody):
    """Answer the awaited free-text message."""
    _require(slug)
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        messages = await engine.submit_input(body.message_id, body.text)
        storage.touch_conversation(slug)
        return _result(engine, messages)


@router.get("/conversations/{slug}/messages")
async def get_messages(slug: str, limit: int | None = None):
    """Message history (bot messages and user replies), oldest first."""
    _require(slug)
    return storage.state_store(slug).get_history(limit)


@router.get("/conversations/{slug}/state")
async def get_state(slug: str):
    """Full engine state: journey day, variables, suspension snapshot."""
    _require(slug)
    engine = await coach.open_engine(slug)
    return engine.state.model_dump(mode="json")


@router.patch("/conversations/{slug}/variables")
async def update_variables(slug: str, body: UpdateVariables):
    """Debug mutation of conversation variables. Supports $increment etc."""
    _require(slug)
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        try:
            return engine.set_variables(body.variables)
        except EngineBusyError as e:
            raise HTTPException(409, str(e))


@router.post("/conversations/{slug}/reset")
async def reset_conversation(slug: str):
    """Forget the conversation's state and history."""
    _require(slug)
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        engine.reset()
        storage.touch_conversation(slug)
        return {"ok": True}
