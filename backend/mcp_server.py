"""FastMCP server exposing conversations as MCP tools.

Tools:
  - start_conversation(slug)                    — run a processing pass (creates the conversation if needed)
  - select_option(slug, message_id, option_id)  — answer an options message
  - submit_input(slug, message_id, text)        — answer a free-text message
  - get_variables(slug)                         — current variable map

Lets an agent or a test harness play through a script without the HTTP API.

Usage:
    uv run python -m backend.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from backend import coach, storage

mcp = FastMCP("coach-script")


def _messages(engine, messages) -> dict:
    awaiting = engine.awaiting_message
    return {
        "messages": [{"id": m.id, "sender": m.sender.value, "content": m.content} for m in messages],
        "awaiting": None if awaiting is None else {
            "id": awaiting.id,
            "type": awaiting.type.value,
            "options": [{"id": o.id, "text": o.text} for o in awaiting.options if o.enabled],
        },
    }


@mcp.tool()
async def start_conversation(slug: str) -> dict:
    """Start or continue a conversation and return the messages it produced."""
    if storage.get_conversation(slug) is None:
        slug = storage.create_conversation(slug)["slug"]
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        return {"slug": slug, **_messages(engine, await engine.start())}


@mcp.tool()
async def select_option(slug: str, message_id: str, option_id: str) -> dict:
    """Choose an option on the awaited message."""
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        return _messages(engine, await engine.select_option(message_id, option_id))


@mcp.tool()
async def submit_input(slug: str, message_id: str, text: str) -> dict:
    """Send free text to the awaited input message."""
    async with coach.lock_for(slug):
        engine = await coach.open_engine(slug)
        return _messages(engine, await engine.submit_input(message_id, text))


@mcp.tool()
async def get_variables(slug: str) -> dict:
    """Return the conversation's variables."""
    engine = await coach.open_engine(slug)
    return dict(engine.variables)


if __name__ == "__main__":
    import os
    from pathlib import Path

    storage.init_storage(Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data")))
    mcp.run()
