# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Pytest configuration and fixtures for all tests.

This file ensures the project root is in the Python path
so that imports work correctly for all test modules.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Import pytest for fixtures
import pytest

from pm_core.cache import MetadataCache, TaskCache
from pm_core.config import get_settings
from pm_core.resolution import MetadataResolver


class FakeClock:
    """Manually advanced clock for TTL tests"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def project_root_path():
    """Return the project root path."""
    return project_root


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def task_cache(tmp_path, clock):
    """Task cache in a temporary directory"""
    return TaskCache(tmp_path / "cache.json", ttl_seconds=300, clock=clock)


@pytest.fixture
def metadata_cache(clock):
    return MetadataCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def resolver(metadata_cache):
    return MetadataResolver(metadata_cache)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; reset around each test"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
