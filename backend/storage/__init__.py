"""File-based JSON storage for the coaching service.

Data layout:
  data/
    config.json              App settings (language, script server, cache TTLs, pacing)
    conversations/
      <slug>.json            Conversation metadata (title, language, timestamps)
      <slug>/                The conversation's state store:
        state.json           Engine state (journey day, variables, suspension snapshot)
        history.json         Every emitted message and user reply
        cache.json           TTL metadata
    script-cache/            Script repository cache (documents + TTL metadata)
  presets/
    scripts/                 Bundled default_script_<lang>.json documents
    content/                 Semantic content buckets (<actor>/<action>/<bucket>.txt)
    formatters/              Template formatter mappings (<name>.json)

Slug rules: title → Unicode normalize → strip non-ASCII → lowercase →
replace non-alnum runs with hyphen → strip leading/trailing hyphens.

Config: get_config() returns defaults merged with stored values.
update_config() applies partial updates: remote and cache merged key-by-key,
scalars overwritten.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    bundled_scripts_dir,
    content_dir,
    conversations_dir,
    data_dir,
    formatters_dir,
    init_storage,
    presets_dir,
    script_cache_dir,
    slugify,
)

from .conversations import (  # noqa: F401
    create_conversation,
    delete_conversation,
    get_conversation,
    list_conversations,
    state_store,
    touch_conversation,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)
