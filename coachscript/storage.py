"""Conversation state store.

The engine only depends on the StateStore protocol: a key/value area for
durable state, an append-only history log, and TTL metadata for cached
entries. JsonStateStore is the default implementation, backed by flat JSON
files under one directory:

    {base}/
      state.json     ← key → JSON value
      history.json   ← append-only list of emitted messages
      cache.json     ← key → {"timestamp": ..., "expires_at": ...}
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Protocol — what the engine and script repository need from persistence
# ---------------------------------------------------------------------------

class StateStore(Protocol):
    def get_state(self, key: str) -> Any | None: ...

    def save_state(self, key: str, value: Any) -> None: ...

    def delete_state(self, key: str) -> None: ...

    def append_history(self, message: dict[str, Any]) -> None: ...

    def get_history(self, limit: int | None = None) -> list[dict[str, Any]]: ...

    def clear_history(self) -> None: ...

    def is_cache_valid(self, key: str) -> bool: ...

    def save_cache_metadata(self, key: str, timestamp: datetime, ttl: timedelta) -> None: ...


# ---------------------------------------------------------------------------
# JsonStateStore
# ---------------------------------------------------------------------------

class JsonStateStore:
    def __init__(self, base_path: Path, clock: Callable[[], datetime] = utcnow) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    @property
    def base_path(self) -> Path:
        return self._base

    def _state_file(self) -> Path:
        return self._base / "state.json"

    def _history_file(self) -> Path:
        return self._base / "history.json"

    def _cache_file(self) -> Path:
        return self._base / "cache.json"

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.is_file():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptCacheError(f"Cannot decode {path}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    # ------------------------------------------------------------------
    # Key/value state
    # ------------------------------------------------------------------

    def get_state(self, key: str) -> Any | None:
        """Return the stored value or None. Raises CorruptCacheError on an unreadable file."""
        return self._read_json(self._state_file(), {}).get(key)

    def save_state(self, key: str, value: Any) -> None:
        try:
            data = self._read_json(self._state_file(), {})
        except CorruptCacheError:
            logger.warning("Overwriting corrupt state file in %s", self._base)
            data = {}
        data[key] = value
        self._write_json(self._state_file(), data)

    def delete_state(self, key: str) -> None:
        try:
            data = self._read_json(self._state_file(), {})
        except CorruptCacheError:
            data = {}
        data.pop(key, None)
        self._write_json(self._state_file(), data)

    # ------------------------------------------------------------------
    # History (append-only)
    # ------------------------------------------------------------------

    def append_history(self, message: dict[str, Any]) -> None:
        try:
            history = self._read_json(self._history_file(), [])
        except CorruptCacheError:
            logger.warning("Discarding corrupt history in %s", self._base)
            history = []
        history.append(message)
        self._write_json(self._history_file(), history)

    def get_history(self, limit: int | None = None) -> list[dict[str, Any]]:
        history = self._read_json(self._history_file(), [])
        if limit is not None:
            return history[-limit:] if limit > 0 else []
        return history

    def clear_history(self) -> None:
        self._write_json(self._history_file(), [])

    # ------------------------------------------------------------------
    # Cache metadata
    # ------------------------------------------------------------------

    def _cache_entries(self) -> dict[str, dict[str, str]]:
        try:
            return self._read_json(self._cache_file(), {})
        except CorruptCacheError:
            logger.warning("Ignoring corrupt cache metadata in %s", self._base)
            return {}

    def is_cache_valid(self, key: str) -> bool:
        entry = self._cache_entries().get(key)
        if not entry:
            return False
        try:
            expires_at = datetime.fromisoformat(entry["expires_at"])
        except (KeyError, TypeError, ValueError):
            return False
        return self._clock() < expires_at

    def save_cache_metadata(self, key: str, timestamp: datetime, ttl: timedelta) -> None:
        entries = self._cache_entries()
        entries[key] = {
            "timestamp": timestamp.isoformat(),
            "expires_at": (timestamp + ttl).isoformat(),
        }
        self._write_json(self._cache_file(), entries)


# ---------------------------------------------------------------------------
# CorruptCacheError — an on-disk file exists but cannot be decoded
# ---------------------------------------------------------------------------

class CorruptCacheError(RuntimeError):
    """Raised when a stored JSON file is unreadable. Callers treat it as a miss."""
