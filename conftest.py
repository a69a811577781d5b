import shutil
from pathlib import Path

import pytest

from backend import storage

TEST_DATA_DIR = Path("data-tests")
PRESETS_DIR = Path(__file__).parent / "presets"


@pytest.fixture(autouse=True)
def clean_test_data(monkeypatch):
    """Wipe and re-init data-tests/ before every test, with no script server configured."""
    monkeypatch.delenv("SCRIPT_REMOTE_URL", raising=False)
    monkeypatch.delenv("SCRIPT_API_KEY", raising=False)
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    storage.init_storage(TEST_DATA_DIR, presets_dir=PRESETS_DIR)
    yield
    # leave data-tests around for inspection; conversations and script-cache live there
