"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any import that might build settings.
"""

import itertools
import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("STORAGE_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from sos_relay.adapters.storage.in_memory import InMemoryKeyValueStore
from sos_relay.core.actors import ScopedStorage
from sos_relay.core.app_factory import create_app
from sos_relay.core.config import Settings
from sos_relay.services.relay_service import RelayService

ROOM_HASH = "abcdefgh12345678"
OTHER_HASH = "zyxwvuts87654321"
START = 1_700_000_000.0


class FakeClock:
    """Deterministic clock injected into entities."""

    def __init__(self, start: float = START) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class SequentialTokens:
    """Token factory yielding predictable ids, optionally replaying some first."""

    def __init__(self, *replay: str) -> None:
        self._replay = list(replay)
        self._counter = itertools.count(1)

    def __call__(self, length: int) -> str:
        if self._replay:
            return self._replay.pop(0)
        return str(next(self._counter)).rjust(length, "0")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def room_storage(store: InMemoryKeyValueStore) -> ScopedStorage:
    return ScopedStorage(store, f"room:{ROOM_HASH}:")


@pytest.fixture
def relay(store: InMemoryKeyValueStore, clock: FakeClock) -> RelayService:
    return RelayService(store, clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings()


@pytest.fixture
def client(test_settings: Settings, store: InMemoryKeyValueStore, clock: FakeClock) -> TestClient:
    """Test client over an isolated app with an in-memory store and fake clock."""
    app = create_app(test_settings, store=store, clock=clock, configure_logs=False)
    return TestClient(app)
