"""Per-player spin cooldown with at-most-one accepted claim per window."""
import logging
from dataclasses import dataclass
from uuid import uuid4

from redis.exceptions import RedisError

from dachsbau.config import settings
from dachsbau.errors import ErrorCode, GameError
from dachsbau.store import KeyValueStore, key

logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    claimed: bool
    remaining_ms: int = 0
    # Rejected because another claim landed moments ago (double-submitted
    # command). The caller drops it silently instead of reporting a cooldown.
    duplicate: bool = False


class CooldownGuard:
    """
    Admit at most one spin per player per cooldown window.

    With atomic writes the marker is created with SET NX PX, so exactly one
    concurrent caller wins. Otherwise the guard falls back to last-write-wins:
    write our own marker, read it back, and treat anything else as a lost
    race. Markers are "<ms>:<nonce>" so two claims landing in the same
    millisecond still tell their writes apart.
    """

    def __init__(self, store: KeyValueStore, race_window_ms: int | None = None):
        self.store = store
        self.race_window_ms = (
            settings.race_window_ms if race_window_ms is None else race_window_ms
        )

    def _rejection(self, last_ms: int, now_ms: int, window_ms: int) -> ClaimResult:
        remaining = max(0, window_ms - (now_ms - last_ms))
        # Claimed within the race window: a near-simultaneous duplicate
        duplicate = remaining > window_ms - self.race_window_ms
        return ClaimResult(False, remaining, duplicate)

    @staticmethod
    def _marker(now_ms: int) -> str:
        return f"{now_ms}:{uuid4().hex}"

    @staticmethod
    def _parse(raw: str | None) -> int | None:
        """Timestamp part of a marker; bare timestamps are accepted too."""
        if raw is None:
            return None
        try:
            return int(raw.split(":", 1)[0])
        except ValueError:
            return None

    async def claim(self, player: str, now_ms: int, window_ms: int) -> ClaimResult:
        """
        Try to start a spin at now_ms.

        Raises GameError(STORE_UNAVAILABLE) when the store cannot be reached;
        admitting a spin without a marker could double-charge.
        """
        name = key("cooldown", player)
        try:
            if self.store.atomic:
                return await self._claim_atomic(name, now_ms, window_ms)
            return await self._claim_fallback(name, now_ms, window_ms)
        except RedisError as e:
            logger.error("Cooldown check failed for %s: %s", player, e)
            raise GameError(ErrorCode.STORE_UNAVAILABLE, "Service temporarily unavailable, try again.") from e

    async def _claim_atomic(self, name: str, now_ms: int, window_ms: int) -> ClaimResult:
        if await self.store.set_if_absent(name, self._marker(now_ms), ttl_ms=window_ms):
            return ClaimResult(True)

        last = self._parse(await self.store.get(name))
        if last is None:
            # Marker expired between SET NX and GET; one more attempt
            if await self.store.set_if_absent(name, self._marker(now_ms), ttl_ms=window_ms):
                return ClaimResult(True)
            last = self._parse(await self.store.get(name)) or now_ms
        return self._rejection(last, now_ms, window_ms)

    async def _claim_fallback(self, name: str, now_ms: int, window_ms: int) -> ClaimResult:
        last = self._parse(await self.store.get(name))
        if last is not None and now_ms - last < window_ms:
            return self._rejection(last, now_ms, window_ms)

        marker = self._marker(now_ms)
        await self.store.set(name, marker, settings.cooldown_ttl_seconds)
        observed = await self.store.get(name)
        if observed != marker:
            logger.info("Lost cooldown race on %s", name)
            return self._rejection(self._parse(observed) or now_ms, now_ms, window_ms)
        return ClaimResult(True)
