"""Redis-backed key-value store with a single atomic read-modify-write primitive."""
import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from dachsbau.config import settings

logger = logging.getLogger(__name__)


def current_time_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def key(prefix: str, player: str, *parts: str) -> str:
    """Build a per-player key; player names are case-insensitive."""
    return ":".join([prefix, player.lower(), *parts])


@dataclass
class Mutation:
    """What an update function wants written.

    value=None deletes the key. write=False ends the update without a write
    (e.g. insufficient funds) and still returns result.
    """

    value: str | None
    result: Any = None
    ttl_seconds: int | None = None
    write: bool = True


@dataclass
class UpdateResult:
    """Outcome of atomic_update."""

    success: bool
    result: Any = None


MutateFn = Callable[[str | None], Mutation]
VerifyFn = Callable[[str | None, Mutation], bool]


class KeyValueStore:
    """Redis client wrapper used by every repository."""

    # Conditional write: only replace the value if it still equals what the
    # caller read. ARGV: expected_present, expected, new_present, new, ttl
    CAS_SCRIPT = """
    local current = redis.call("get", KEYS[1])
    if ARGV[1] == "1" then
        if current ~= ARGV[2] then
            return 0
        end
    elseif current then
        return 0
    end
    if ARGV[3] == "0" then
        redis.call("del", KEYS[1])
    elseif tonumber(ARGV[5]) > 0 then
        redis.call("set", KEYS[1], ARGV[4], "EX", ARGV[5])
    else
        redis.call("set", KEYS[1], ARGV[4])
    end
    return 1
    """

    # Clamped integer add in one step. A missing or non-numeric value reads as
    # ARGV[2]. ARGV: delta, default, ceiling, strict. Returns {applied, value};
    # a strict add that would go below zero is refused and returns the
    # unchanged value, otherwise the result is floored at zero.
    ADJUST_SCRIPT = """
    local current = tonumber(redis.call("get", KEYS[1]) or "")
    if current == nil then
        current = tonumber(ARGV[2])
    end
    local ceiling = tonumber(ARGV[3])
    current = math.max(0, math.min(ceiling, current))
    local updated = current + tonumber(ARGV[1])
    if updated < 0 then
        if ARGV[4] == "1" then
            return {0, current}
        end
        updated = 0
    end
    updated = math.min(ceiling, updated)
    redis.call("set", KEYS[1], tostring(updated))
    return {1, updated}
    """

    def __init__(
        self,
        redis_url: str | None = None,
        atomic: bool | None = None,
        max_retries: int | None = None,
        backoff_base_ms: int | None = None,
    ):
        self._url = redis_url or settings.redis_url
        self._client: redis.Redis | None = None
        self.atomic = settings.atomic_writes if atomic is None else atomic
        self.max_retries = max_retries or settings.max_retries
        self.backoff_base_ms = (
            settings.backoff_base_ms if backoff_base_ms is None else backoff_base_ms
        )

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected")
        return self._client

    # --- plain operations (raise on store errors) ---

    async def get(self, name: str) -> str | None:
        return await self.client.get(name)

    async def set(self, name: str, value: str, ttl_seconds: int | None = None) -> None:
        if ttl_seconds:
            await self.client.set(name, value, ex=ttl_seconds)
        else:
            await self.client.set(name, value)

    async def delete(self, name: str) -> None:
        await self.client.delete(name)

    async def set_if_absent(self, name: str, value: str, ttl_ms: int) -> bool:
        """SET NX PX; True only for the single caller that created the key."""
        created = await self.client.set(name, value, nx=True, px=ttl_ms)
        return created is True

    async def compare_and_swap(
        self,
        name: str,
        expected: str | None,
        new: str | None,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Replace (or delete, if new is None) only if the value is still expected."""
        result = await self.client.eval(
            self.CAS_SCRIPT,
            1,
            name,
            "0" if expected is None else "1",
            expected or "",
            "0" if new is None else "1",
            new or "",
            str(ttl_seconds or 0),
        )
        return result == 1

    async def adjust_counter(
        self, name: str, delta: int, default: int, ceiling: int, strict: bool = False
    ) -> tuple[bool, int]:
        """
        Add delta to an integer key server-side, clamped to [0, ceiling].

        Returns (applied, value). With strict=True an add that would go below
        zero is not applied and value is the unchanged balance.
        """
        applied, value = await self.client.eval(
            self.ADJUST_SCRIPT,
            1,
            name,
            str(delta),
            str(default),
            str(ceiling),
            "1" if strict else "0",
        )
        return applied == 1, int(value)

    # --- best-effort operations (log and fall back) ---

    async def read(self, name: str, default: str | None = None) -> str | None:
        """Read a key; a store error yields the default."""
        try:
            value = await self.get(name)
        except RedisError as e:
            logger.warning("Store read failed for %s: %s", name, e)
            return default
        return default if value is None else value

    async def get_json(self, name: str) -> Any:
        """Read and decode JSON; corrupted payloads are deleted and read as None."""
        raw = await self.read(name)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Corrupted JSON at %s, removing: %.100s", name, raw)
            await self.remove(name)
            return None

    async def write(self, name: str, value: str, ttl_seconds: int | None = None) -> bool:
        """Write a key; failures are logged, never raised."""
        try:
            await self.set(name, value, ttl_seconds)
            return True
        except RedisError as e:
            logger.warning("Store write failed for %s: %s", name, e)
            return False

    async def set_json(self, name: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Encode value as JSON and write it best-effort."""
        return await self.write(name, json.dumps(value), ttl_seconds)

    async def remove(self, name: str) -> bool:
        try:
            await self.delete(name)
            return True
        except RedisError as e:
            logger.warning("Store delete failed for %s: %s", name, e)
            return False

    # --- read-modify-write ---

    async def backoff(self, attempt: int) -> None:
        """Exponential backoff with up to 50% jitter."""
        delay_ms = self.backoff_base_ms * (2**attempt)
        jitter_ms = random.uniform(0, delay_ms * 0.5)
        await asyncio.sleep((delay_ms + jitter_ms) / 1000)

    async def atomic_update(
        self, name: str, mutate: MutateFn, verify: VerifyFn | None = None
    ) -> UpdateResult:
        """
        Read, mutate and conditionally write one key, retrying on conflict.

        With atomic writes the write is a compare-and-swap against the value
        that was read. Without them the value is written and read back, and
        the verify predicate (default: equality) decides whether it stuck.
        """
        for attempt in range(self.max_retries):
            try:
                current = await self.get(name)
                mutation = mutate(current)
                if not mutation.write:
                    return UpdateResult(True, mutation.result)

                if self.atomic:
                    applied = await self.compare_and_swap(
                        name, current, mutation.value, mutation.ttl_seconds
                    )
                else:
                    if mutation.value is None:
                        await self.delete(name)
                    else:
                        await self.set(name, mutation.value, mutation.ttl_seconds)
                    observed = await self.get(name)
                    if verify is not None:
                        applied = verify(observed, mutation)
                    else:
                        applied = observed == mutation.value

                if applied:
                    return UpdateResult(True, mutation.result)
                logger.debug("Conflict updating %s (attempt %d)", name, attempt + 1)
            except RedisError as e:
                logger.warning("Store error updating %s (attempt %d): %s", name, attempt + 1, e)

            if attempt < self.max_retries - 1:
                await self.backoff(attempt)

        logger.error("Giving up on %s after %d attempts", name, self.max_retries)
        return UpdateResult(False)


# Global instance
store = KeyValueStore()
