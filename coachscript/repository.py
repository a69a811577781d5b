"""Script repository: tiered loading with caches and fallbacks.

load(language) always returns a valid Script. Each tier is faster and less
fresh than the next:

  1. In-process cache, keyed by (version, language).
  2. Local cache in a StateStore, valid for script_ttl (7 days by default).
  3. Remote version check, at most once per version_check_ttl (24 hours).
  4. Full remote fetch when the version differs or no local copy is valid.
     The requested language is tried first, then the default language.
  5. Previous valid script (in memory, or the expired local copy).
  6. Bundled document presets/scripts/default_script_<lang>.json, then the
     default language's bundled document.
  7. MINIMAL_SCRIPT: one all-day check-in event.

Remote failures (RemoteUnavailable), invalid remote documents
(ScriptValidationError) and corrupt local caches (CorruptCacheError) never
propagate out of load(); they only move resolution to the next tier.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from coachscript.models import Script, ScriptValidationError, parse_script
from coachscript.remote import RemoteUnavailable, ScriptSource
from coachscript.storage import CorruptCacheError, StateStore, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_TTL = timedelta(days=7)
DEFAULT_VERSION_CHECK_TTL = timedelta(hours=24)
VERSION_CHECK_KEY = "script_version_check"

MINIMAL_SCRIPT: dict[str, Any] = {
    "id": "minimal",
    "version": "0.0.0",
    "global_variables": {
        "user.first_time": True,
        "user.streak": 0,
        "user.total_completions": 0,
        "user.total_failures": 0,
    },
    "daily_events": [
        {
            "id": "basic_checkin",
            "trigger": {"type": "time_window", "start": "00:00", "end": "23:59"},
            "variants": [
                {
                    "id": "default",
                    "messages": [
                        {
                            "type": "options",
                            "sender": "bot",
                            "content": "Did you complete your goal?",
                            "options": [
                                {"id": "yes", "text": "Yes"},
                                {"id": "no", "text": "No"},
                            ],
                        }
                    ],
                }
            ],
            "responses": {
                "yes": {"set_variables": {"completed_today": True}},
                "no": {"set_variables": {"completed_today": False}},
            },
        }
    ],
}


def minimal_script() -> Script:
    return parse_script(MINIMAL_SCRIPT)


class ScriptRepository:
    def __init__(
        self,
        store: StateStore,
        source: ScriptSource | None = None,
        *,
        bundled_dir: Path | None = None,
        default_language: str = "en",
        script_ttl: timedelta = DEFAULT_SCRIPT_TTL,
        version_check_ttl: timedelta = DEFAULT_VERSION_CHECK_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._source = source
        self._bundled_dir = bundled_dir
        self._default_language = default_language
        self._script_ttl = script_ttl
        self._version_check_ttl = version_check_ttl
        self._clock = clock
        self._memory: dict[tuple[str, str], Script] = {}
        self._active: dict[str, str] = {}  # language → version in _memory
        self._ready = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        self._ready = True

    def invalidate(self) -> None:
        """Drop the in-process cache. The local cache is kept."""
        self._memory.clear()
        self._active.clear()

    async def teardown(self) -> None:
        self.invalidate()
        self._source = None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, language: str | None = None, force_refresh: bool = False) -> Script:
        language = language or self._default_language
        if not self._ready:
            await self.init()

        if not force_refresh:
            script = self._from_memory(language)
            if script is not None:
                return script

        cached = self._read_local(language)
        fresh = cached is not None and self._store.is_cache_valid(self._script_key(language))

        script: Script | None
        if fresh and not force_refresh:
            script = cached
            if not self._store.is_cache_valid(VERSION_CHECK_KEY):
                script = await self._check_for_update(language, cached)
        else:
            script = await self._refresh(language, cached)

        if script is None:
            script = self._fallback(language, cached)
        self._remember(language, script)
        return script

    async def _check_for_update(self, language: str, cached: Script) -> Script:
        version = await self._latest_version()
        if version is None or version == cached.version:
            return cached
        logger.info("Script %s is outdated (remote %s)", cached.version, version)
        return await self._download(version, language) or cached

    async def _refresh(self, language: str, cached: Script | None) -> Script | None:
        version = await self._latest_version()
        if version is None:
            return None
        if cached is not None and cached.version == version:
            logger.debug("Local script %s still current, renewing TTL", version)
            self._store.save_cache_metadata(self._script_key(language), self._clock(), self._script_ttl)
            return cached
        return await self._download(version, language)

    async def _latest_version(self) -> str | None:
        if self._source is None:
            return None
        try:
            version = await self._source.latest_version()
        except RemoteUnavailable as e:
            logger.warning("Script version check failed: %s", e)
            return None
        self._store.save_cache_metadata(VERSION_CHECK_KEY, self._clock(), self._version_check_ttl)
        return version

    async def _download(self, version: str, language: str) -> Script | None:
        assert self._source is not None
        for lang in dict.fromkeys([language, self._default_language]):
            try:
                document = await self._source.fetch(version, lang)
            except RemoteUnavailable as e:
                logger.warning("Script download failed: %s", e)
                return None
            if document is None:
                logger.info("Script %s has no %r document", version, lang)
                continue
            try:
                script = parse_script(document)
            except ScriptValidationError as e:
                logger.warning("Rejected remote script %s/%s: %s", version, lang, e)
                return None
            self._write_local(language, script)
            return script
        return None

    def _fallback(self, language: str, cached: Script | None) -> Script:
        previous = self._from_memory(language) or cached
        if previous is not None:
            logger.info("Serving previous script %s", previous.version)
            return previous
        for lang in dict.fromkeys([language, self._default_language]):
            bundled = self._read_bundled(lang)
            if bundled is not None:
                return bundled
        logger.error("No usable script document, serving minimal script")
        return minimal_script()

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _script_key(self, language: str) -> str:
        return f"script:{language}"

    def _from_memory(self, language: str) -> Script | None:
        version = self._active.get(language)
        if version is None:
            return None
        return self._memory.get((version, language))

    def _remember(self, language: str, script: Script) -> None:
        self._memory[(script.version, language)] = script
        self._active[language] = script.version

    def _read_local(self, language: str) -> Script | None:
        try:
            document = self._store.get_state(self._script_key(language))
        except CorruptCacheError as e:
            logger.warning("Local script cache unreadable: %s", e)
            return None
        if document is None:
            return None
        try:
            return parse_script(document)
        except ScriptValidationError as e:
            logger.warning("Local script cache invalid: %s", e)
            return None

    def _write_local(self, language: str, script: Script) -> None:
        key = self._script_key(language)
        self._store.save_state(key, script.to_document())
        self._store.save_cache_metadata(key, self._clock(), self._script_ttl)

    def _read_bundled(self, language: str) -> Script | None:
        if self._bundled_dir is None:
            return None
        path = self._bundled_dir / f"default_script_{language}.json"
        if not path.is_file():
            return None
        try:
            return parse_script(path.read_text(encoding="utf-8"))
        except ScriptValidationError as e:
            logger.error("Bundled script %s is invalid: %s", path.name, e)
            return None
