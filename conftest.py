"""Pytest configuration for Paranoia Python Toolkit."""

import pytest

from paranoia_toolkit.config import set_config


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Add custom markers
    config.addinivalue_line("markers", "cascade: mark test as a cascade test")


@pytest.fixture(autouse=True)
def reset_global_config():
    """Drop any global configuration a test installed."""
    yield
    set_config(None)
