"""Buff, token, free-spin and streak persistence tests."""
import asyncio

import pytest

from dachsbau.buffs import (
    DACHS_LOCATOR,
    LUCKY_CHARM,
    RAGE_MODE,
    STAR_MAGNET,
    BuffRepository,
    compute_dachs_chance,
    load_grid_buffs,
)
from dachsbau.logic.models import StreakState
from dachsbau.logic.paytable import DACHS_BASE_CHANCE, RAGE_MODE_MAX_STACK
from dachsbau.records import StackBuff, UsesBuff


@pytest.fixture
def buffs(kv_store) -> BuffRepository:
    return BuffRepository(kv_store)


class TestTimedBuffs:
    @pytest.mark.asyncio
    async def test_active_until_expiry(self, buffs: BuffRepository, clock):
        await buffs.activate_buff("alice", LUCKY_CHARM, 60, clock())
        assert await buffs.is_buff_active("alice", LUCKY_CHARM, clock())
        assert await buffs.is_buff_active("alice", LUCKY_CHARM, clock() + 59_999)
        assert not await buffs.is_buff_active("alice", LUCKY_CHARM, clock() + 60_000)

    @pytest.mark.asyncio
    async def test_store_ttl_outlives_expiry(self, buffs: BuffRepository, mock_redis, clock):
        await buffs.activate_buff("alice", LUCKY_CHARM, 60, clock())
        assert mock_redis.ttl_ms("buff:alice:lucky_charm") > 60_000

    @pytest.mark.asyncio
    async def test_missing_buff_is_inactive(self, buffs: BuffRepository, clock):
        assert not await buffs.is_buff_active("alice", STAR_MAGNET, clock())
        assert await buffs.get_buff_with_uses("alice", DACHS_LOCATOR, clock()) is None

    @pytest.mark.asyncio
    async def test_store_outage_reads_inactive(self, failing_store, clock):
        assert not await BuffRepository(failing_store).is_buff_active("alice", LUCKY_CHARM, clock())

    @pytest.mark.asyncio
    async def test_uses_run_out(self, buffs: BuffRepository, clock):
        await buffs.activate_buff_with_uses("alice", DACHS_LOCATOR, 3600, 2, clock())
        assert await buffs.decrement_buff_uses("alice", DACHS_LOCATOR, clock()) == 1
        assert (await buffs.get_buff_with_uses("alice", DACHS_LOCATOR, clock())).uses == 1
        assert await buffs.decrement_buff_uses("alice", DACHS_LOCATOR, clock()) == 0
        assert await buffs.get_buff_with_uses("alice", DACHS_LOCATOR, clock()) is None
        assert await buffs.decrement_buff_uses("alice", DACHS_LOCATOR, clock()) is None

    @pytest.mark.asyncio
    async def test_stack_update_keeps_expiry(self, buffs: BuffRepository, clock):
        start = clock()
        await buffs.activate_buff_with_stack("alice", RAGE_MODE, 60, start)
        clock.advance(30_000)
        assert await buffs.update_buff_stack("alice", RAGE_MODE, lambda s: s + 5, clock()) == 5
        buff = await buffs.get_buff_with_stack("alice", RAGE_MODE, clock())
        assert buff.stack == 5
        assert buff.expire_at == start + 60_000

    @pytest.mark.asyncio
    async def test_stack_is_clamped(self, buffs: BuffRepository, clock):
        await buffs.activate_buff_with_stack("alice", RAGE_MODE, 60, clock(), stack=98)
        assert await buffs.update_buff_stack("alice", RAGE_MODE, lambda s: s + 5, clock()) == RAGE_MODE_MAX_STACK
        assert await buffs.update_buff_stack("alice", RAGE_MODE, lambda s: -10, clock()) == 0

    @pytest.mark.asyncio
    async def test_stack_update_ignores_expired_buff(self, buffs: BuffRepository, clock):
        await buffs.activate_buff_with_stack("alice", RAGE_MODE, 60, clock())
        clock.advance(60_000)
        assert await buffs.update_buff_stack("alice", RAGE_MODE, lambda s: s + 5, clock()) is None


class TestTokens:
    @pytest.mark.asyncio
    async def test_consume_once(self, buffs: BuffRepository):
        await buffs.activate_wild_card("alice")
        assert await buffs.has_wild_card("alice")
        assert await buffs.consume_wild_card("alice")
        assert not await buffs.consume_wild_card("alice")
        assert not await buffs.has_wild_card("alice")

    @pytest.mark.asyncio
    async def test_concurrent_consume_succeeds_once(self, buffs: BuffRepository):
        await buffs.add_win_multiplier("alice")
        results = await asyncio.gather(*(buffs.consume_win_multiplier("alice") for _ in range(3)))
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_boosts_are_per_symbol(self, buffs: BuffRepository):
        await buffs.add_boost("alice", "⭐")
        assert await buffs.has_boost("alice", "⭐")
        assert not await buffs.consume_boost("alice", "🍒")
        assert await buffs.consume_boost("alice", "⭐")


class TestInsurance:
    @pytest.mark.asyncio
    async def test_add_and_use(self, buffs: BuffRepository):
        assert await buffs.add_insurance("alice", 2) == 2
        assert await buffs.decrement_insurance("alice") == 1
        assert await buffs.decrement_insurance("alice") == 0
        assert await buffs.decrement_insurance("alice") is None
        assert await buffs.get_insurance_count("alice") == 0


class TestFreeSpins:
    @pytest.mark.asyncio
    async def test_entries_merge_and_sort(self, buffs: BuffRepository):
        await buffs.add_free_spins("alice", 5, 1)
        await buffs.add_free_spins("alice", 1, 2)
        assert await buffs.add_free_spins("alice", 5, 2) == 5
        entries = await buffs.get_free_spins("alice")
        assert [(e.multiplier, e.count) for e in entries] == [(1, 2), (5, 3)]

    @pytest.mark.asyncio
    async def test_lowest_multiplier_consumed_first(self, buffs: BuffRepository):
        await buffs.add_free_spins("alice", 3, 1)
        await buffs.add_free_spins("alice", 1, 1)
        assert await buffs.consume_free_spin("alice") == (True, 1)
        assert await buffs.consume_free_spin("alice") == (True, 3)
        assert await buffs.consume_free_spin("alice") == (False, 0)
        assert await buffs.get_free_spins("alice") == []


class TestStreaks:
    @pytest.mark.asyncio
    async def test_streak_round_trip(self, buffs: BuffRepository, mock_redis):
        await buffs.set_streak("alice", StreakState(wins=2))
        assert await buffs.get_streak("alice") == StreakState(wins=2)
        assert mock_redis.ttl_ms("streak:alice") is not None

    @pytest.mark.asyncio
    async def test_multiplier_grows_to_cap_and_resets(self, buffs: BuffRepository):
        assert await buffs.get_streak_multiplier("alice") == 1.0
        for _ in range(25):
            last = await buffs.increment_streak_multiplier("alice")
        assert last == 3.0
        assert await buffs.get_streak_multiplier("alice") == 3.0
        await buffs.reset_streak_multiplier("alice")
        assert await buffs.get_streak_multiplier("alice") == 1.0


class TestPeek:
    @pytest.mark.asyncio
    async def test_take_once(self, buffs: BuffRepository):
        grid = ["⭐", "⭐", "🍒"]
        await buffs.store_peek_grid("alice", grid)
        assert await buffs.get_peek_grid("alice") == grid
        assert await buffs.take_peek_grid("alice") == grid
        assert await buffs.take_peek_grid("alice") is None


class TestUnlocks:
    @pytest.mark.asyncio
    async def test_unlock_set(self, buffs: BuffRepository):
        await buffs.grant_unlock("alice", "slots_20")
        await buffs.grant_unlock("alice", "slots_all")
        assert await buffs.get_unlocks("alice") == {"slots_20", "slots_all"}


class TestGridBuffs:
    def test_chance_factors_multiply(self):
        locator = UsesBuff(expire_at=1, uses=1)
        rage = StackBuff(expire_at=1, stack=50)
        chance = compute_dachs_chance(True, locator, rage)
        assert chance == pytest.approx(DACHS_BASE_CHANCE * 2 * 3 * 1.5)
        assert compute_dachs_chance(False, None, None) == DACHS_BASE_CHANCE

    @pytest.mark.asyncio
    async def test_load_grid_buffs(self, buffs: BuffRepository, clock):
        await buffs.activate_buff("alice", STAR_MAGNET, 60, clock())
        await buffs.activate_buff("alice", LUCKY_CHARM, 60, clock())
        grid_buffs = await load_grid_buffs(buffs, "alice", clock())
        assert grid_buffs.star_magnet
        assert not grid_buffs.diamond_rush
        assert grid_buffs.dachs_chance == pytest.approx(DACHS_BASE_CHANCE * 2)
        assert not (await load_grid_buffs(buffs, "bob", clock())).has_reroll
