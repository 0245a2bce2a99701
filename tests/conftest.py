"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from flashprep.delivery.card_set import Card, CardSet  # noqa: E402
from flashprep.delivery.state_store import InMemoryRecordStore, SQLiteRecordStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (use a temporary SQLite file)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class ScriptedRandom:
    """Random source that replays fixed values, cycling when exhausted."""

    def __init__(self, *values: float):
        self.values = list(values) or [0.0]
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


class FakeClock:
    """Epoch-millisecond clock that advances one second per call."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary data directory."""
    return Settings(data_dir=tmp_path)


@pytest.fixture
def sample_set():
    """Provide a four-card set for testing."""
    return CardSet(
        id="set-001",
        name="OSI Layers",
        cards=[
            Card(front="Layer 1?", back="Physical"),
            Card(front="Layer 2?", back="Data Link"),
            Card(front="Layer 3?", back="Network"),
            Card(front="", back="Transport", front_image="data:image/png;base64,AAAA"),
        ],
    )


@pytest.fixture
def memory_store():
    """Provide an empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def sqlite_store(tmp_path):
    """Provide a record store backed by a temporary SQLite file."""
    store = SQLiteRecordStore(tmp_path / "records.db")
    yield store
    store.close()


@pytest.fixture
def first_pick():
    """Random source that always draws the first remaining candidate."""
    return ScriptedRandom(0.0)


@pytest.fixture
def clock():
    return FakeClock()
