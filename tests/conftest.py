"""
Pytest configuration and shared fixtures.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from homelab.infra.system_monitor import SystemSnapshot


@pytest.fixture(autouse=True, scope="function")
def reset_auth_module():
    """
    Reset auth module state before each test.

    This ensures tests run with API_AUTH_ENABLED=false by default,
    unless the test explicitly sets it otherwise.
    """
    # Store original values
    original_auth_enabled = os.environ.get("API_AUTH_ENABLED")
    original_api_key = os.environ.get("API_KEY")

    # Set defaults for tests (auth disabled)
    os.environ["API_AUTH_ENABLED"] = "false"

    yield

    # Restore original values
    if original_auth_enabled is not None:
        os.environ["API_AUTH_ENABLED"] = original_auth_enabled
    elif "API_AUTH_ENABLED" in os.environ:
        del os.environ["API_AUTH_ENABLED"]

    if original_api_key is not None:
        os.environ["API_KEY"] = original_api_key
    elif "API_KEY" in os.environ:
        del os.environ["API_KEY"]

    # Reload auth module to reset state
    import importlib
    import homelab.api.dependencies.auth as auth_module
    importlib.reload(auth_module)


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    Path(db_path).unlink(missing_ok=True)
    # Also cleanup WAL and SHM files
    Path(f"{db_path}-wal").unlink(missing_ok=True)
    Path(f"{db_path}-shm").unlink(missing_ok=True)


class StubSampler:
    """SystemSampler stand-in returning a fixed reading."""

    def __init__(self, cpu_load: float = 12.5, mem_used_percent: float = 41.0, temperature=None):
        self.snapshot = SystemSnapshot(
            cpu_load=cpu_load,
            mem_used_percent=mem_used_percent,
            temperature=temperature,
            mem_total=8 * 1024 ** 3,
            mem_used=int(8 * 1024 ** 3 * mem_used_percent / 100),
            cpu_cores=[cpu_load, cpu_load],
        )
        self.calls = 0

    def sample(self) -> SystemSnapshot:
        self.calls += 1
        return self.snapshot


@pytest.fixture
def stub_sampler() -> StubSampler:
    return StubSampler()


@pytest.fixture
def make_sampler():
    """Factory for samplers with specific readings."""
    return StubSampler
