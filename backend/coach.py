"""Wires the conversation engine to storage and config.

The service keeps one ScriptRepository (built from config on first use), one
ContentResolver and one TemplateEngine per data directory. init_storage()
calls reset_services() so tests and --data-dir runs never share them.

Engines are cheap and stateless apart from the state store, so a new one is
built for every request. Calls for the same conversation are serialized with
a per-slug asyncio.Lock; the engine itself is never re-entered.
"""

import asyncio
import logging
import random
from datetime import timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from coachscript.content import ContentResolver
from coachscript.engine import ConversationEngine
from coachscript.models import Script
from coachscript.remote import HttpScriptSource
from coachscript.repository import ScriptRepository
from coachscript.storage import JsonStateStore
from coachscript.templating import FormatterRegistry, TemplateEngine

from backend import storage

logger = logging.getLogger(__name__)

_repository: ScriptRepository | None = None
_resolver: ContentResolver | None = None
_templates: TemplateEngine | None = None
_locks: dict[str, asyncio.Lock] = {}


def reset_services() -> None:
    """Forget every cached service. Called on init_storage() and settings changes."""
    global _repository, _resolver, _templates
    _repository = None
    _resolver = None
    _templates = None
    _locks.clear()


def get_repository() -> ScriptRepository:
    global _repository
    if _repository is None:
        config = storage.get_config()
        remote = config["remote"]
        source = None
        if remote["base_url"]:
            source = HttpScriptSource(remote["base_url"], remote["api_key"], float(remote["timeout"]))
        _repository = ScriptRepository(
            JsonStateStore(storage.script_cache_dir()),
            source,
            bundled_dir=storage.bundled_scripts_dir(),
            default_language=config["default_language"],
            script_ttl=timedelta(hours=config["cache"]["script_ttl_hours"]),
            version_check_ttl=timedelta(hours=config["cache"]["version_check_ttl_hours"]),
        )
    return _repository


def set_repository(repository: ScriptRepository) -> None:
    """Replace the active repository (used in tests)."""
    global _repository
    _repository = repository


def _random() -> random.Random:
    seed = storage.get_config()["random_seed"]
    return random.Random(seed) if seed is not None else random.Random()


def get_resolver() -> ContentResolver:
    global _resolver
    if _resolver is None:
        _resolver = ContentResolver(storage.content_dir(), _random())
    return _resolver


def get_templates() -> TemplateEngine:
    global _templates
    if _templates is None:
        _templates = TemplateEngine(FormatterRegistry(storage.formatters_dir()))
    return _templates


def _timezone() -> tzinfo | None:
    name = storage.get_config()["timezone"]
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using the server's local zone", name)
        return None


async def load_script(language: str = "", force_refresh: bool = False) -> Script:
    language = language or storage.get_config()["language"]
    return await get_repository().load(language, force_refresh=force_refresh)


async def open_engine(slug: str) -> ConversationEngine:
    """Build an engine for an existing conversation, loading the script for its language."""
    conversation = storage.get_conversation(slug)
    if conversation is None:
        raise LookupError(f"Conversation {slug} does not exist")
    script = await load_script(conversation.get("language", ""))
    return ConversationEngine(
        script,
        storage.state_store(slug),
        get_resolver(),
        get_templates(),
        rng=_random(),
        tz=_timezone(),
        pace=bool(storage.get_config()["pace_messages"]),
    )


def lock_for(slug: str) -> asyncio.Lock:
    if slug not in _locks:
        _locks[slug] = asyncio.Lock()
    return _locks[slug]
