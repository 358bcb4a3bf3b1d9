"""
Pytest configuration and shared fixtures.
"""

import os

# Set environment variables BEFORE importing app modules
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("REDIS_URL", None)

import pytest

from anitrack.utils.ttl_cache import CacheManager


@pytest.fixture
def cache():
    """A fresh cache with the production defaults and no sweep loop."""
    return CacheManager(default_ttl=300, max_size=1000, sweep_interval=60)


@pytest.fixture
def small_cache():
    return CacheManager(default_ttl=300, max_size=2, sweep_interval=60)
