"""Shared pytest configuration and fixtures for switchboard tests."""

import os

import pytest
from dotenv import load_dotenv

from switchboard.core.config.context import scrub_provider_environment

# Import HTTP mocking fixtures from fixtures module
pytest_plugins = ["tests.fixtures.mock_http"]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (fast, no external deps)")


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location."""
    for item in items:
        if any(part in str(item.fspath) for part in ("tests/unit/", "tests/api/", "tests/cli/")):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(scope="function", autouse=True)
def isolated_environment():
    """Run each test without provider credentials or switchboard settings from the host.

    Tests that need a key set it themselves (monkeypatch or temporary_config);
    every HTTP call is mocked with RESPX.
    """
    # Use dotenv_path to avoid loading from home directory .env file
    load_dotenv(dotenv_path=".env.test")

    original_env = dict(os.environ)
    scrub_provider_environment()
    for key in [key for key in os.environ if key.startswith("SWB_")]:
        os.environ.pop(key, None)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(original_env)
