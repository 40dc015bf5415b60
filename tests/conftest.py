"""
Pytest configuration and shared fixtures for tsstore tests.
"""

import pytest

# Import test fixtures to make them available to all tests
# These imports register the fixtures with pytest's fixture discovery system
# ruff: noqa: F401
from tests.fixtures.store import (
    fake_installer,
    fake_registry,
    sink,
    store_environment,
    store_path,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the user's store and configuration."""
    for name in (
        "TSSTORE_STORE_PATH",
        "TSSTORE_TIMEOUT",
        "TSSTORE_NPM_REGISTRY",
        "TSSTORE_NPM_EXECUTABLE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
