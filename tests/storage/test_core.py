"""Tests for slugify and the storage path helpers."""

from backend import storage


def test_slugify_basic():
    assert storage.slugify("Morning Check-in") == "morning-check-in"


def test_slugify_apostrophe():
    assert storage.slugify("Sam's Streak") == "sams-streak"


def test_slugify_unicode():
    assert storage.slugify("Café Münch") == "cafe-munch"


def test_slugify_empty():
    assert storage.slugify("") == "untitled"
    assert storage.slugify("!!!") == "untitled"


def test_init_storage_creates_layout():
    assert storage.conversations_dir().is_dir()
    assert storage.script_cache_dir().is_dir()
    assert storage.conversations_dir().parent == storage.data_dir()


def test_preset_dirs():
    assert (storage.bundled_scripts_dir() / "default_script_en.json").is_file()
    assert (storage.content_dir() / "default.txt").is_file()
    assert (storage.formatters_dir() / "timeOfDay.json").is_file()
