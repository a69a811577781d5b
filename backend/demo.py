"""Create demo conversations for development/testing."""

import shutil

from backend import storage
from coachscript.engine import STATE_KEY

DEMO_CONVERSATIONS = [
    {"title": "First Week", "variables": {}},
    {
        "title": "On a Streak",
        "variables": {"user.name": "Sam", "user.streak": 6, "user.first_time": False},
    },
]


def create_demo_data() -> None:
    """Wipe existing conversations and create fresh demo ones."""
    if storage.conversations_dir().exists():
        shutil.rmtree(storage.conversations_dir())
    storage.conversations_dir().mkdir(parents=True, exist_ok=True)

    for demo in DEMO_CONVERSATIONS:
        conversation = storage.create_conversation(demo["title"])
        if demo["variables"]:
            store = storage.state_store(conversation["slug"])
            store.save_state(STATE_KEY, {"variables": demo["variables"]})
        print(f"  Created conversation: {conversation['title']} ({conversation['slug']})")
