"""Pytest fixtures for backend tests."""
import asyncio
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from dachsbau.logic.engine import GameEngine
from dachsbau.logic.rng import RNGBase, SeededRNG
from dachsbau.main import app
from dachsbau.spin_service import SpinService
from dachsbau.store import KeyValueStore
from dachsbau.telemetry import TelemetryService

# 2025-01-15T12:00:00Z; second 0 is never the hourly lucky second (22)
START_MS = 1_736_942_400_000


class FakeClock:
    """Controllable epoch-millisecond clock shared by MockRedis and services."""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> int:
        self.now_ms += ms
        return self.now_ms


class MockRedis:
    """
    Mock Redis client for testing (GET, SET NX/EX/PX, DELETE, EVAL of the
    store scripts). Every command yields to the event loop once, so gathered
    callers interleave between commands the way they would over a socket.
    """

    def __init__(self, clock: Callable[[], int] | None = None):
        self._store: dict[str, str] = {}
        self._expiry: dict[str, int] = {}
        self._clock = clock or FakeClock()
        self.last_set_ttl_ms: dict[str, int | None] = {}  # Track TTLs for assertions

    def _purge(self, key: str) -> None:
        expires = self._expiry.get(key)
        if expires is not None and self._clock() >= expires:
            self._store.pop(key, None)
            self._expiry.pop(key, None)

    def _put(self, key: str, value: str, ttl_ms: int | None) -> None:
        self._store[key] = value
        if ttl_ms:
            self._expiry[key] = self._clock() + ttl_ms
        else:
            self._expiry.pop(key, None)
        self.last_set_ttl_ms[key] = ttl_ms

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(0)
        self._purge(key)
        return self._store.get(key)

    async def set(
        self,
        key: str,
        value: str,
        nx: bool = False,
        ex: int | None = None,
        px: int | None = None,
    ) -> bool | None:
        await asyncio.sleep(0)
        self._purge(key)
        if nx and key in self._store:
            return None
        ttl_ms = px if px else (ex * 1000 if ex else None)
        self._put(key, value, ttl_ms)
        return True

    async def delete(self, key: str) -> int:
        await asyncio.sleep(0)
        self._purge(key)
        self._expiry.pop(key, None)
        if key in self._store:
            del self._store[key]
            return 1
        return 0

    async def eval(self, script: str, numkeys: int, *args) -> Any:
        """Execute KeyValueStore.CAS_SCRIPT or KeyValueStore.ADJUST_SCRIPT."""
        await asyncio.sleep(0)
        if script == KeyValueStore.ADJUST_SCRIPT:
            return self._adjust(*args)
        assert script == KeyValueStore.CAS_SCRIPT
        # KEYS[1] = key; ARGV = expected_present, expected, new_present, new, ttl
        key, expected_present, expected, new_present, new, ttl = args
        self._purge(key)
        current = self._store.get(key)
        if expected_present == "1":
            if current != expected:
                return 0
        elif current is not None:
            return 0
        if new_present == "0":
            self._store.pop(key, None)
            self._expiry.pop(key, None)
        else:
            self._put(key, new, int(ttl) * 1000 if int(ttl) > 0 else None)
        return 1

    def _adjust(self, key: str, delta: str, default: str, ceiling: str, strict: str) -> list[int]:
        # KEYS[1] = key; ARGV = delta, default, ceiling, strict
        self._purge(key)
        try:
            current = int(self._store.get(key) or "")
        except ValueError:
            current = int(default)
        current = max(0, min(int(ceiling), current))
        updated = current + int(delta)
        if updated < 0:
            if strict == "1":
                return [0, current]
            updated = 0
        updated = min(int(ceiling), updated)
        self._put(key, str(updated), None)
        return [1, updated]

    async def close(self) -> None:
        pass

    def ttl_ms(self, key: str) -> int | None:
        expires = self._expiry.get(key)
        return None if expires is None else expires - self._clock()

    def clear(self) -> None:
        self._store.clear()
        self._expiry.clear()
        self.last_set_ttl_ms.clear()


class FailingRedis(MockRedis):
    """Every command raises a connection error."""

    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("store down")

    async def set(self, key: str, value: str, **kwargs) -> bool | None:
        raise RedisConnectionError("store down")

    async def delete(self, key: str) -> int:
        raise RedisConnectionError("store down")

    async def eval(self, script: str, numkeys: int, *args) -> int:
        raise RedisConnectionError("store down")


class RecordingTelemetrySink:
    """Telemetry sink that keeps every event for assertions."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        self.events.append((event_name, data))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event_name]


class ScriptedRNG(RNGBase):
    """RNG double that replays fixed random() values and randint() results."""

    def __init__(self, randoms: list[float] | None = None, ints: list[int] | None = None):
        self._randoms = list(randoms or [])
        self._ints = list(ints or [])

    def random(self) -> float:
        # Default: high enough to miss the rare symbol and every re-roll
        return self._randoms.pop(0) if self._randoms else 0.99

    def randint(self, a: int, b: int) -> int:
        return self._ints.pop(0) if self._ints else a


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_redis(clock: FakeClock) -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis(clock)


@pytest.fixture
def kv_store(mock_redis: MockRedis) -> Generator[KeyValueStore, None, None]:
    """KeyValueStore with mock client and no backoff delay."""
    store = KeyValueStore(atomic=True, backoff_base_ms=0)
    store._client = mock_redis
    yield store
    mock_redis.clear()


@pytest.fixture
def fallback_store(mock_redis: MockRedis) -> KeyValueStore:
    """KeyValueStore using write-then-verify instead of conditional writes."""
    store = KeyValueStore(atomic=False, backoff_base_ms=0)
    store._client = mock_redis
    return store


@pytest.fixture
def failing_store() -> KeyValueStore:
    store = KeyValueStore(atomic=True, backoff_base_ms=0)
    store._client = FailingRedis()
    return store


@pytest.fixture
def scripted_rng() -> type[ScriptedRNG]:
    return ScriptedRNG


@pytest.fixture
def fake_clock_cls() -> type[FakeClock]:
    return FakeClock


@pytest.fixture
def recording_telemetry() -> RecordingTelemetrySink:
    return RecordingTelemetrySink()


@pytest.fixture
def spin_service(
    kv_store: KeyValueStore, clock: FakeClock, recording_telemetry: RecordingTelemetrySink
) -> SpinService:
    """SpinService on the mock store with a seeded engine, fake clock and recorded telemetry."""
    return SpinService(
        kv_store,
        engine=GameEngine(SeededRNG(seed=7)),
        clock=clock,
        telemetry=TelemetryService(recording_telemetry),
    )


@pytest.fixture
def client_with_mock_redis(mock_redis: MockRedis) -> Generator[TestClient, None, None]:
    """Create TestClient with mocked Redis."""
    from dachsbau.store import store

    # Patch the global store client
    original_client = store._client
    store._client = mock_redis

    with TestClient(app) as client:
        yield client

    # Restore original
    store._client = original_client
    mock_redis.clear()


@pytest.fixture
def test_client() -> TestClient:
    """Create basic TestClient (for tests that don't need Redis)."""
    return TestClient(app)
