"""Global app configuration (language, script server, cache lifetimes, pacing, time zone)."""

import json
import os
from pathlib import Path
from typing import Any

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "language": "en",
    "default_language": "en",
    "remote": {
        "base_url": "",
        "api_key": "",
        "timeout": 10.0,
    },
    "cache": {
        "script_ttl_hours": 168,
        "version_check_ttl_hours": 24,
    },
    "pace_messages": False,
    "random_seed": None,
    "timezone": "",
}


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values.

    SCRIPT_REMOTE_URL and SCRIPT_API_KEY from the environment fill the remote
    settings when config.json leaves them empty.
    """
    config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
    config["remote"]["base_url"] = os.getenv("SCRIPT_REMOTE_URL", "")
    config["remote"]["api_key"] = os.getenv("SCRIPT_API_KEY", "")
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        if isinstance(stored.get("remote"), dict):
            for key, value in stored["remote"].items():
                if value != "":
                    config["remote"][key] = value
        if isinstance(stored.get("cache"), dict):
            config["cache"].update(stored["cache"])
        for key in ("language", "default_language", "pace_messages", "random_seed", "timezone"):
            if key in stored:
                config[key] = stored[key]
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config()
    for group in ("remote", "cache"):
        if isinstance(fields.get(group), dict):
            config[group].update(fields[group])
    for key in ("language", "default_language", "pace_messages", "random_seed", "timezone"):
        if key in fields:
            config[key] = fields[key]
    _config_path().write_text(json.dumps(config, indent=2))
    return config
