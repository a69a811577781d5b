"""Tests for coachscript.storage.JsonStateStore."""

from datetime import datetime, timedelta, timezone

import pytest

from coachscript.storage import CorruptCacheError, JsonStateStore

T0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock(T0)


@pytest.fixture
def store(tmp_path, clock) -> JsonStateStore:
    return JsonStateStore(tmp_path / "store", clock=clock)


# ── State ────────────────────────────────────────────────


def test_get_missing_state(store):
    assert store.get_state("nope") is None


def test_save_and_get_state(store):
    store.save_state("a", {"x": 1})
    store.save_state("b", [1, 2])
    assert store.get_state("a") == {"x": 1}
    assert store.get_state("b") == [1, 2]


def test_state_survives_new_instance(store, tmp_path):
    store.save_state("a", 1)
    assert JsonStateStore(tmp_path / "store").get_state("a") == 1


def test_delete_state(store):
    store.save_state("a", 1)
    store.delete_state("a")
    assert store.get_state("a") is None


def test_corrupt_state_raises(store):
    (store.base_path / "state.json").write_text("{broken")
    with pytest.raises(CorruptCacheError):
        store.get_state("a")


def test_save_over_corrupt_state(store):
    (store.base_path / "state.json").write_text("{broken")
    store.save_state("a", 1)
    assert store.get_state("a") == 1


# ── History ──────────────────────────────────────────────


def test_history_append_only(store):
    assert store.get_history() == []
    store.append_history({"id": "m1"})
    store.append_history({"id": "m2"})
    store.append_history({"id": "m3"})
    assert [m["id"] for m in store.get_history()] == ["m1", "m2", "m3"]
    assert [m["id"] for m in store.get_history(limit=2)] == ["m2", "m3"]
    assert store.get_history(limit=0) == []


def test_clear_history(store):
    store.append_history({"id": "m1"})
    store.clear_history()
    assert store.get_history() == []


# ── Cache metadata ───────────────────────────────────────


def test_cache_validity_follows_ttl(store, clock):
    assert not store.is_cache_valid("script:en")
    store.save_cache_metadata("script:en", T0, timedelta(days=7))
    assert store.is_cache_valid("script:en")

    clock.now = T0 + timedelta(days=6, hours=23)
    assert store.is_cache_valid("script:en")

    clock.now = T0 + timedelta(days=7)
    assert not store.is_cache_valid("script:en")


def test_cache_metadata_refresh(store, clock):
    store.save_cache_metadata("k", T0, timedelta(hours=1))
    clock.now = T0 + timedelta(hours=2)
    assert not store.is_cache_valid("k")
    store.save_cache_metadata("k", clock.now, timedelta(hours=1))
    assert store.is_cache_valid("k")


def test_corrupt_cache_metadata_is_invalid(store):
    (store.base_path / "cache.json").write_text("nope")
    assert not store.is_cache_valid("k")
