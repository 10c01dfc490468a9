"""Buff and one-shot token repository.

Read side defaults to "inactive" on any store failure. Every mutation goes
through KeyValueStore.atomic_update so a retried or concurrent write cannot
double-consume a token or resurrect an expired buff.
"""
import asyncio
import json
import logging
from typing import Callable

from dachsbau.config import settings
from dachsbau.logic.models import GridBuffs, StreakState
from dachsbau.logic.paytable import (
    DACHS_BASE_CHANCE,
    DACHS_LOCATOR_FACTOR,
    LUCKY_CHARM_FACTOR,
    RAGE_MODE_MAX_STACK,
    STREAK_MULTIPLIER_MAX,
    UNLOCK_PRICES,
)
from dachsbau.logic.streaks import next_streak_multiplier
from dachsbau.records import (
    FreeSpinEntry,
    FreeSpinQueue,
    StackBuff,
    TimedBuff,
    UsesBuff,
    parse_record,
)
from dachsbau.store import KeyValueStore, Mutation, key

logger = logging.getLogger(__name__)

ACTIVE = "active"

# Buff kinds consulted by the spin
LUCKY_CHARM = "lucky_charm"
DACHS_LOCATOR = "dachs_locator"
RAGE_MODE = "rage_mode"
STAR_MAGNET = "star_magnet"
DIAMOND_RUSH = "diamond_rush"
HAPPY_HOUR = "happy_hour"
GOLDEN_HOUR = "golden_hour"
PROFIT_DOUBLER = "profit_doubler"
JACKPOT_BOOSTER = "jackpot_booster"


class BuffRepository:
    """Per-player buffs, tokens, free spins, streaks and the peek cache."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # --- timed buffs ---

    async def is_buff_active(self, player: str, kind: str, now_ms: int) -> bool:
        buff = parse_record(TimedBuff, await self.store.read(key("buff", player, kind)))
        return buff is not None and buff.is_active(now_ms)

    async def get_buff_with_uses(self, player: str, kind: str, now_ms: int) -> UsesBuff | None:
        buff = parse_record(UsesBuff, await self.store.read(key("buff", player, kind)))
        if buff is None or not buff.is_active(now_ms):
            return None
        return buff

    async def get_buff_with_stack(self, player: str, kind: str, now_ms: int) -> StackBuff | None:
        buff = parse_record(StackBuff, await self.store.read(key("buff", player, kind)))
        if buff is None or not buff.is_active(now_ms):
            return None
        return buff

    async def activate_buff(self, player: str, kind: str, duration_seconds: int, now_ms: int) -> bool:
        buff = TimedBuff(expire_at=now_ms + duration_seconds * 1000)
        return await self.store.write(
            key("buff", player, kind), buff.model_dump_json(), buff.ttl_seconds(now_ms)
        )

    async def activate_buff_with_uses(
        self, player: str, kind: str, duration_seconds: int, uses: int, now_ms: int
    ) -> bool:
        buff = UsesBuff(expire_at=now_ms + duration_seconds * 1000, uses=uses)
        return await self.store.write(
            key("buff", player, kind), buff.model_dump_json(), buff.ttl_seconds(now_ms)
        )

    async def activate_buff_with_stack(
        self, player: str, kind: str, duration_seconds: int, now_ms: int, stack: int = 0
    ) -> bool:
        buff = StackBuff(expire_at=now_ms + duration_seconds * 1000, stack=stack)
        return await self.store.write(
            key("buff", player, kind), buff.model_dump_json(), buff.ttl_seconds(now_ms)
        )

    async def decrement_buff_uses(self, player: str, kind: str, now_ms: int) -> int | None:
        """Use up one charge. Returns the uses left, or None if the buff was not active."""

        def mutate(raw: str | None) -> Mutation:
            buff = parse_record(UsesBuff, raw)
            if buff is None or not buff.is_active(now_ms):
                return Mutation(None, None, write=raw is not None)
            remaining = buff.uses - 1
            if remaining <= 0:
                return Mutation(None, 0)
            updated = buff.model_copy(update={"uses": remaining})
            return Mutation(updated.model_dump_json(), remaining, updated.ttl_seconds(now_ms))

        result = await self.store.atomic_update(key("buff", player, kind), mutate)
        return result.result if result.success else None

    async def update_buff_stack(
        self, player: str, kind: str, adjust: Callable[[int], int], now_ms: int
    ) -> int | None:
        """
        Rewrite a stack buff's percentage. The expiry is carried over and the
        store TTL recomputed from it, so a late write cannot extend the buff.
        """

        def mutate(raw: str | None) -> Mutation:
            buff = parse_record(StackBuff, raw)
            if buff is None or not buff.is_active(now_ms):
                return Mutation(raw, None, write=False)
            stack = max(0, min(RAGE_MODE_MAX_STACK, adjust(buff.stack)))
            if stack == buff.stack:
                return Mutation(raw, stack, write=False)
            updated = buff.model_copy(update={"stack": stack})
            return Mutation(updated.model_dump_json(), stack, updated.ttl_seconds(now_ms))

        result = await self.store.atomic_update(key("buff", player, kind), mutate)
        return result.result if result.success else None

    # --- one-shot tokens ---

    async def _has_flag(self, name: str) -> bool:
        return await self.store.read(name) is not None

    async def _set_flag(self, name: str) -> bool:
        return await self.store.write(name, ACTIVE)

    async def _consume_flag(self, name: str) -> bool:
        """Delete a token. True only for the caller that actually removed it."""

        def mutate(raw: str | None) -> Mutation:
            if raw is None:
                return Mutation(None, False, write=False)
            return Mutation(None, True)

        result = await self.store.atomic_update(name, mutate)
        return result.success and result.result

    async def has_guaranteed_pair(self, player: str) -> bool:
        return await self._has_flag(key("guaranteedpair", player))

    async def activate_guaranteed_pair(self, player: str) -> bool:
        return await self._set_flag(key("guaranteedpair", player))

    async def consume_guaranteed_pair(self, player: str) -> bool:
        return await self._consume_flag(key("guaranteedpair", player))

    async def has_wild_card(self, player: str) -> bool:
        return await self._has_flag(key("wildcard", player))

    async def activate_wild_card(self, player: str) -> bool:
        return await self._set_flag(key("wildcard", player))

    async def consume_wild_card(self, player: str) -> bool:
        return await self._consume_flag(key("wildcard", player))

    async def has_win_multiplier(self, player: str) -> bool:
        return await self._has_flag(key("winmulti", player))

    async def add_win_multiplier(self, player: str) -> bool:
        return await self._set_flag(key("winmulti", player))

    async def consume_win_multiplier(self, player: str) -> bool:
        return await self._consume_flag(key("winmulti", player))

    async def has_boost(self, player: str, symbol: str) -> bool:
        return await self._has_flag(key("boost", player, symbol))

    async def add_boost(self, player: str, symbol: str) -> bool:
        return await self._set_flag(key("boost", player, symbol))

    async def consume_boost(self, player: str, symbol: str) -> bool:
        return await self._consume_flag(key("boost", player, symbol))

    # --- insurance ---

    @staticmethod
    def _parse_count(raw: str | None) -> int:
        try:
            return max(0, int(raw)) if raw is not None else 0
        except ValueError:
            return 0

    async def get_insurance_count(self, player: str) -> int:
        return self._parse_count(await self.store.read(key("insurance", player)))

    async def add_insurance(self, player: str, count: int) -> int | None:
        def mutate(raw: str | None) -> Mutation:
            total = self._parse_count(raw) + count
            return Mutation(str(total), total)

        result = await self.store.atomic_update(key("insurance", player), mutate)
        return result.result if result.success else None

    async def decrement_insurance(self, player: str) -> int | None:
        """Use one insurance. Returns the count left, None if none was held."""

        def mutate(raw: str | None) -> Mutation:
            count = self._parse_count(raw)
            if count <= 0:
                return Mutation(None, None, write=raw is not None)
            remaining = count - 1
            return Mutation(str(remaining) if remaining else None, remaining)

        result = await self.store.atomic_update(key("insurance", player), mutate)
        return result.result if result.success else None

    # --- free spins ---

    async def get_free_spins(self, player: str) -> list[FreeSpinEntry]:
        queue = parse_record(FreeSpinQueue, await self.store.read(key("freespins", player)))
        return queue.entries if queue else []

    async def add_free_spins(self, player: str, multiplier: int, count: int) -> int | None:
        """Merge count spins into the entry for multiplier. Returns the new total."""

        def mutate(raw: str | None) -> Mutation:
            queue = parse_record(FreeSpinQueue, raw) or FreeSpinQueue()
            for entry in queue.entries:
                if entry.multiplier == multiplier:
                    entry.count += count
                    break
            else:
                queue.entries.append(FreeSpinEntry(multiplier=multiplier, count=count))
            queue.entries.sort(key=lambda e: e.multiplier)
            return Mutation(queue.model_dump_json(), queue.total)

        result = await self.store.atomic_update(key("freespins", player), mutate)
        return result.result if result.success else None

    async def consume_free_spin(self, player: str) -> tuple[bool, int]:
        """Take one spin from the lowest-multiplier entry: (used, multiplier)."""

        def mutate(raw: str | None) -> Mutation:
            queue = parse_record(FreeSpinQueue, raw)
            entries = sorted(
                (e for e in (queue.entries if queue else []) if e.count > 0),
                key=lambda e: e.multiplier,
            )
            if not entries:
                return Mutation(None, (False, 0), write=raw is not None)
            lowest = entries[0]
            lowest.count -= 1
            if lowest.count == 0:
                entries.pop(0)
            new = FreeSpinQueue(entries=entries)
            return Mutation(new.model_dump_json() if entries else None, (True, lowest.multiplier))

        result = await self.store.atomic_update(key("freespins", player), mutate)
        return result.result if result.success else (False, 0)

    # --- streaks ---

    async def get_streak(self, player: str) -> StreakState:
        return parse_record(StreakState, await self.store.read(key("streak", player))) or StreakState()

    async def set_streak(self, player: str, state: StreakState) -> bool:
        return await self.store.write(
            key("streak", player), state.model_dump_json(), settings.streak_ttl_seconds
        )

    @staticmethod
    def _parse_multiplier(raw: str | None) -> float:
        try:
            value = float(raw) if raw is not None else 1.0
        except ValueError:
            return 1.0
        return max(1.0, min(STREAK_MULTIPLIER_MAX, value))

    async def get_streak_multiplier(self, player: str) -> float:
        return self._parse_multiplier(await self.store.read(key("streakmulti", player)))

    async def increment_streak_multiplier(self, player: str) -> float | None:
        def mutate(raw: str | None) -> Mutation:
            new = next_streak_multiplier(self._parse_multiplier(raw), is_win=True)
            return Mutation(str(new), new, settings.streak_ttl_seconds)

        result = await self.store.atomic_update(key("streakmulti", player), mutate)
        return result.result if result.success else None

    async def reset_streak_multiplier(self, player: str) -> bool:
        return await self.store.remove(key("streakmulti", player))

    # --- peek cache ---

    async def get_peek_grid(self, player: str) -> list[str] | None:
        return await self.store.get_json(key("peek", player))

    async def store_peek_grid(self, player: str, grid: list[str]) -> bool:
        return await self.store.set_json(key("peek", player), grid, settings.peek_ttl_seconds)

    async def take_peek_grid(self, player: str) -> list[str] | None:
        """Read and delete the preview grid; a second caller gets None."""

        def mutate(raw: str | None) -> Mutation:
            if raw is None:
                return Mutation(None, None, write=False)
            try:
                grid = json.loads(raw)
            except ValueError:
                grid = None
            return Mutation(None, grid)

        result = await self.store.atomic_update(key("peek", player), mutate)
        return result.result if result.success else None

    # --- unlocks ---

    async def has_unlock(self, player: str, unlock: str) -> bool:
        return await self._has_flag(key("unlock", player, unlock))

    async def grant_unlock(self, player: str, unlock: str) -> bool:
        return await self._set_flag(key("unlock", player, unlock))

    async def get_unlocks(self, player: str) -> set[str]:
        names = sorted(UNLOCK_PRICES)
        held = await asyncio.gather(*(self.has_unlock(player, n) for n in names))
        return {n for n, ok in zip(names, held) if ok}


def compute_dachs_chance(
    lucky_charm: bool, dachs_locator: UsesBuff | None, rage_mode: StackBuff | None
) -> float:
    """Rare-symbol chance; the three buffs multiply independently."""
    chance = DACHS_BASE_CHANCE
    if lucky_charm:
        chance *= LUCKY_CHARM_FACTOR
    if dachs_locator is not None:
        chance *= DACHS_LOCATOR_FACTOR
    if rage_mode is not None and rage_mode.stack > 0:
        chance *= 1 + rage_mode.stack / 100
    return chance


async def load_grid_buffs(repo: BuffRepository, player: str, now_ms: int) -> GridBuffs:
    """Every buff that shapes grid generation, read concurrently."""
    lucky_charm, dachs_locator, rage_mode, star_magnet, diamond_rush = await asyncio.gather(
        repo.is_buff_active(player, LUCKY_CHARM, now_ms),
        repo.get_buff_with_uses(player, DACHS_LOCATOR, now_ms),
        repo.get_buff_with_stack(player, RAGE_MODE, now_ms),
        repo.is_buff_active(player, STAR_MAGNET, now_ms),
        repo.is_buff_active(player, DIAMOND_RUSH, now_ms),
    )
    return GridBuffs(
        dachs_chance=compute_dachs_chance(lucky_charm, dachs_locator, rage_mode),
        star_magnet=star_magnet,
        diamond_rush=diamond_rush,
    )
