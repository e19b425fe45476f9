"""
Shared pytest fixtures and configuration for reactive_file tests.
"""

import json

import pytest

from reactive_file.codecs import _reset_registry
from reactive_file.coordinator import shutdown_executor


@pytest.fixture(autouse=True)
def reset_registry():
    """Reset the codec registry before each test to prevent state leakage."""
    _reset_registry()
    yield
    # Drain background writes so no test writes into another's tmp_path
    shutdown_executor()


@pytest.fixture
def settings_file(tmp_path):
    """A settings.json containing {"count": 0}."""
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"count": 0}), encoding="utf-8")
    return path


@pytest.fixture
def read_json():
    def _read(path):
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    return _read
