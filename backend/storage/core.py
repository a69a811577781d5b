"""Storage initialization, path helpers, and slug utilities."""

import re
import unicodedata
from pathlib import Path

_data_dir: Path | None = None
_presets_dir: Path | None = None


def slugify(title: str) -> str:
    """Convert a title to a filesystem-safe slug.

    "Morning Check-in" → "morning-check-in"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


def init_storage(data_dir: Path, presets_dir: Path | None = None) -> None:
    global _data_dir, _presets_dir
    from backend import coach as _coach

    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    conversations_dir().mkdir(exist_ok=True)
    script_cache_dir().mkdir(exist_ok=True)
    if presets_dir is None:
        # Default: repo_root/presets
        presets_dir = Path(__file__).parent.parent.parent / "presets"
    _presets_dir = presets_dir
    _coach.reset_services()  # drop services bound to the previous data dir


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def presets_dir() -> Path:
    assert _presets_dir is not None, "Call init_storage() before using storage"
    return _presets_dir


def conversations_dir() -> Path:
    return data_dir() / "conversations"


def script_cache_dir() -> Path:
    return data_dir() / "script-cache"


def bundled_scripts_dir() -> Path:
    return presets_dir() / "scripts"


def content_dir() -> Path:
    return presets_dir() / "content"


def formatters_dir() -> Path:
    return presets_dir() / "formatters"
