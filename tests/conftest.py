"""
Shared pytest fixtures for facewatch tests.
"""
import time

import pytest

from core.plugin_manager import PluginManager


@pytest.fixture(autouse=True)
def fresh_plugin_manager():
    """PluginManager is a process-wide singleton; give each test its own."""
    PluginManager._instance = None
    yield
    PluginManager._instance = None


def wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def until():
    return wait_until
