"""Semantic content resolution.

Content lives in text buckets under a root directory, one candidate line per
row (blank lines ignored):

    content/
      default.txt                          shared last-resort bucket
      bot/
        default.txt                        actor default
        acknowledge/
          default.txt                      action default
          completion.txt                   subject
          completion_positive.txt          subject + modifiers
          task_completion.txt

A semantic key `actor.action.subject[.modifier]*` is resolved through a
ladder of progressively less specific buckets; the first bucket holding at
least one line wins and one of its lines is picked uniformly at random.
Anything that is not a semantic key is returned unchanged.
"""

from __future__ import annotations

import logging
import random
import re
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+(\.[A-Za-z0-9_\-]+){2,}$")

SEQUENCE_DELIMITER = "|||"

# Subject head words that a compound subject (e.g. "task_completion") can fall
# back to before the action default.
GENERIC_SUBJECTS = (
    "completion",
    "failure",
    "success",
    "error",
    "input",
    "name",
    "welcome",
    "save",
    "delete",
    "update",
    "create",
    "status",
    "selection",
    "permission",
    "creation",
    "modification",
)


def is_semantic_key(value: str) -> bool:
    return bool(value) and bool(_KEY_RE.match(value.strip()))


def split_sequence(text: str) -> list[str]:
    """Split a `|||`-delimited line into its ordered sub-messages."""
    if SEQUENCE_DELIMITER not in text:
        return [text]
    parts = [part.strip() for part in text.split(SEQUENCE_DELIMITER)]
    return [part for part in parts if part] or [text]


def generic_subject(subject: str) -> str | None:
    for suffix in GENERIC_SUBJECTS:
        if subject != suffix and subject.endswith(suffix):
            return suffix
    if "_" in subject:
        return subject.rsplit("_", 1)[1] or None
    return None


class ContentResolver:
    def __init__(self, root: Path, rng: random.Random | None = None) -> None:
        self._root = root
        self._rng = rng or random.Random()
        self._buckets: dict[Path, list[str]] = {}

    @property
    def root(self) -> Path:
        return self._root

    def fallback_chain(self, key: str, context_tags: Iterable[str] = ()) -> list[Path]:
        """Ordered bucket paths for `key`, most specific first."""
        actor, action, subject, *modifiers = key.strip().split(".")
        modifiers.extend(tag for tag in context_tags if tag)
        action_dir = self._root / actor / action

        chain: list[Path] = []

        def with_modifiers(name: str) -> None:
            for end in range(len(modifiers), 0, -1):
                chain.append(action_dir / f"{name}_{'_'.join(modifiers[:end])}.txt")
            chain.append(action_dir / f"{name}.txt")

        with_modifiers(subject)
        generic = generic_subject(subject)
        if generic:
            with_modifiers(generic)
        chain.append(action_dir / "default.txt")
        chain.append(self._root / actor / "default.txt")
        chain.append(self._root / "default.txt")
        return list(dict.fromkeys(chain))

    def resolve(self, value: str, fallback: str = "", context_tags: Iterable[str] = ()) -> str:
        """Resolve a semantic key to one line of content, or return literal text as-is."""
        if not is_semantic_key(value):
            return value
        for path in self.fallback_chain(value, context_tags):
            lines = self._lines(path)
            if lines:
                logger.debug("Resolved %s from %s", value, path)
                return self._rng.choice(lines)
        logger.debug("No content for %s, using fallback", value)
        return fallback

    def clear_cache(self) -> None:
        self._buckets.clear()

    def _lines(self, path: Path) -> list[str]:
        if path not in self._buckets:
            lines: list[str] = []
            if path.is_file():
                text = path.read_text(encoding="utf-8")
                lines = [line.strip() for line in text.splitlines() if line.strip()]
            self._buckets[path] = lines
        return self._buckets[path]
