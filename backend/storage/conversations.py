"""Conversation CRUD. Each conversation owns a JsonStateStore directory."""

import json
import shutil
from datetime import datetime, timezone
from typing import Any

from coachscript.storage import JsonStateStore

from .core import conversations_dir, slugify


def list_conversations() -> list[dict[str, Any]]:
    results = []
    for path in sorted(conversations_dir().glob("*.json")):
        results.append(json.loads(path.read_text()))
    return results


def get_conversation(slug: str) -> dict[str, Any] | None:
    path = conversations_dir() / f"{slug}.json"
    if not path.is_file():
        return None
    return json.loads(path.read_text())


def create_conversation(title: str, language: str = "") -> dict[str, Any]:
    """Create conversation metadata and its state directory. Slugs are made unique."""
    base_slug = slugify(title)
    slug = base_slug
    counter = 2
    while (conversations_dir() / f"{slug}.json").exists():
        slug = f"{base_slug}-{counter}"
        counter += 1

    now = datetime.now(timezone.utc).isoformat()
    conversation = {
        "title": title,
        "slug": slug,
        "language": language,
        "created_at": now,
        "updated_at": now,
    }
    (conversations_dir() / f"{slug}.json").write_text(json.dumps(conversation, indent=2))
    (conversations_dir() / slug).mkdir(exist_ok=True)
    return conversation


def delete_conversation(slug: str) -> bool:
    json_path = conversations_dir() / f"{slug}.json"
    if not json_path.is_file():
        return False
    json_path.unlink()
    child_dir = conversations_dir() / slug
    if child_dir.is_dir():
        shutil.rmtree(child_dir)
    return True


def touch_conversation(slug: str) -> None:
    """Bump updated_at after the conversation changed."""
    conversation = get_conversation(slug)
    if conversation is None:
        return
    conversation["updated_at"] = datetime.now(timezone.utc).isoformat()
    (conversations_dir() / f"{slug}.json").write_text(json.dumps(conversation, indent=2))


def state_store(slug: str) -> JsonStateStore:
    return JsonStateStore(conversations_dir() / slug)
