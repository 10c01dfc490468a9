"""Slots command handling: admission, spin resolution and economy commit."""
import asyncio
import logging
from typing import Callable

from dachsbau import buffs as kinds
from dachsbau import messages
from dachsbau.activation import PEEK_PRICE, purchase_peek
from dachsbau.buffs import BuffRepository
from dachsbau.config import settings
from dachsbau.config_hash import get_config_hash
from dachsbau.cooldown import CooldownGuard
from dachsbau.deferred import DeferredTasks
from dachsbau.errors import BookingError, ErrorCode, GameError
from dachsbau.jackpot import HourlyJackpot
from dachsbau.ledger import EconomyLedger
from dachsbau.logic.engine import GameEngine, is_triple
from dachsbau.logic.models import GridBuffs, PayoutState, StreakOutcome, WinResult
from dachsbau.logic.paytable import (
    DACHS,
    INSURANCE_REFUND_RATE,
    RAGE_MODE_LOSS_STACK,
)
from dachsbau.logic.pipeline import boost_symbols, run_payout_pipeline
from dachsbau.logic.streaks import resolve_streak
from dachsbau.players import PlayerRepository, ms_until_next_day
from dachsbau.store import KeyValueStore, current_time_ms
from dachsbau.telemetry import (
    SpinProcessedEvent,
    SpinRejectedEvent,
    SpinStatsEvent,
    TelemetryService,
    telemetry_service,
)
from dachsbau.validators import parse_stake

logger = logging.getLogger(__name__)

DAILY_BOOST_UNLOCK = "daily_boost"


class SpinService:
    """
    Handles the chat commands that touch the slot economy.

    Control flow of a spin: cooldown claim -> player gates -> buff and
    balance reads -> stake -> grid -> special items -> win -> payout
    pipeline -> streaks -> ledger commit -> response. Bookkeeping that does
    not change the economic outcome is queued on DeferredTasks.
    """

    def __init__(
        self,
        store: KeyValueStore,
        engine: GameEngine | None = None,
        clock: Callable[[], int] = current_time_ms,
        telemetry: TelemetryService | None = None,
    ):
        self.store = store
        self.engine = engine or GameEngine()
        self.clock = clock
        self.telemetry = telemetry or telemetry_service
        self.ledger = EconomyLedger(store)
        self.buffs = BuffRepository(store)
        self.players = PlayerRepository(store)
        self.cooldown = CooldownGuard(store)
        self.jackpot = HourlyJackpot(store)

    # --- simple commands ---

    async def balance(self, player: str) -> str:
        balance, free_spins = await asyncio.gather(
            self.ledger.get_balance(player), self.buffs.get_free_spins(player)
        )
        return messages.balance_message(player, balance, sum(e.count for e in free_spins))

    async def accept(self, player: str) -> str:
        """Record the disclaimer and open the account with the starting balance."""
        if await self.players.has_accepted_disclaimer(player):
            return messages.already_accepted_message(player)
        await self.players.accept_disclaimer(player)
        await self.ledger.open_account(player)
        return messages.accepted_message(player, await self.ledger.get_balance(player))

    async def daily(self, player: str) -> str:
        """Grant the once-per-local-day bonus."""
        accepted, boosted = await asyncio.gather(
            self.players.has_accepted_disclaimer(player),
            self.buffs.has_unlock(player, DAILY_BOOST_UNLOCK),
        )
        if not accepted:
            raise GameError(ErrorCode.DISCLAIMER_REQUIRED, messages.disclaimer_message(player))

        now = self.clock()
        if not await self.players.claim_daily(player, now):
            return messages.daily_taken_message(player, ms_until_next_day(now))

        amount = settings.daily_boost_amount if boosted else settings.daily_amount
        booked = await self.ledger.credit(player, amount)
        if not booked.success:
            logger.critical("Daily bonus of %d for %s was marked but not credited", amount, player)
            raise BookingError(player, amount)
        return messages.daily_message(player, amount, booked.new_balance, boosted)

    async def peek(self, player: str) -> str:
        """Buy a preview of the next spin."""
        banned, accepted = await asyncio.gather(
            self.players.is_self_banned(player),
            self.players.has_accepted_disclaimer(player),
        )
        if banned:
            raise GameError(ErrorCode.SELF_BANNED, messages.self_banned_message(player))
        if not accepted:
            raise GameError(ErrorCode.DISCLAIMER_REQUIRED, messages.disclaimer_message(player))
        will_win = await purchase_peek(
            self.ledger, self.buffs, self.engine, player, PEEK_PRICE, self.clock()
        )
        return messages.peek_message(player, will_win, PEEK_PRICE)

    # --- spin ---

    async def spin(self, player: str, amount_text: str | None, deferred: DeferredTasks) -> str:
        try:
            return await self._spin(player, amount_text, deferred)
        except GameError as e:
            if not e.mutates_state:
                self.telemetry.emit_spin_rejected(
                    SpinRejectedEvent(player=player, reason=e.code.value, remaining_ms=e.remaining_ms)
                )
            raise

    async def _admit(self, player: str, now: int) -> None:
        """Claim the cooldown slot, then apply the self-ban and disclaimer gates."""
        window_ms = settings.cooldown_seconds * 1000
        claim, banned, accepted = await asyncio.gather(
            self.cooldown.claim(player, now, window_ms),
            self.players.is_self_banned(player),
            self.players.has_accepted_disclaimer(player),
        )
        if not claim.claimed:
            if claim.duplicate:
                raise GameError(ErrorCode.DUPLICATE_REQUEST, remaining_ms=claim.remaining_ms)
            raise GameError(
                ErrorCode.COOLDOWN_ACTIVE,
                messages.cooldown_message(player, claim.remaining_ms),
                remaining_ms=claim.remaining_ms,
            )
        if banned:
            raise GameError(ErrorCode.SELF_BANNED, messages.self_banned_message(player))
        if not accepted:
            raise GameError(ErrorCode.DISCLAIMER_REQUIRED, messages.disclaimer_message(player))

    async def _spin(self, player: str, amount_text: str | None, deferred: DeferredTasks) -> str:
        now = self.clock()
        await self._admit(player, now)

        # Everything the grid depends on, read concurrently
        (
            balance,
            free_spin_queue,
            lucky_charm,
            dachs_locator,
            rage_mode,
            happy_hour,
            star_magnet,
            diamond_rush,
            has_guaranteed_pair,
            has_wild_card,
            unlocks,
        ) = await asyncio.gather(
            self.ledger.get_balance(player),
            self.buffs.get_free_spins(player),
            self.buffs.is_buff_active(player, kinds.LUCKY_CHARM, now),
            self.buffs.get_buff_with_uses(player, kinds.DACHS_LOCATOR, now),
            self.buffs.get_buff_with_stack(player, kinds.RAGE_MODE, now),
            self.buffs.is_buff_active(player, kinds.HAPPY_HOUR, now),
            self.buffs.is_buff_active(player, kinds.STAR_MAGNET, now),
            self.buffs.is_buff_active(player, kinds.DIAMOND_RUSH, now),
            self.buffs.has_guaranteed_pair(player),
            self.buffs.has_wild_card(player),
            self.buffs.get_unlocks(player),
        )

        # Free spins are consumed only once the player was admitted
        free_spin_used = False
        free_spin_multiplier = 1
        if any(entry.count > 0 for entry in free_spin_queue):
            free_spin_used, free_spin_multiplier = await self.buffs.consume_free_spin(player)
        free_spins_left = max(0, sum(e.count for e in free_spin_queue) - int(free_spin_used))

        stake = parse_stake(player, amount_text, balance, free_spin_used, unlocks)
        spin_cost = 0 if free_spin_used else stake.spin_cost
        multiplier = free_spin_multiplier if free_spin_used else stake.multiplier
        if not free_spin_used and happy_hour and spin_cost < settings.free_spin_cost_threshold:
            spin_cost //= 2

        if not free_spin_used and balance < spin_cost:
            raise GameError(
                ErrorCode.INSUFFICIENT_FUNDS,
                messages.insufficient_funds_message(player, balance, spin_cost),
            )

        dachs_chance = kinds.compute_dachs_chance(lucky_charm, dachs_locator, rage_mode)
        preview = await self.buffs.take_peek_grid(player)
        grid = self.engine.generate_grid(
            GridBuffs(dachs_chance=dachs_chance, star_magnet=star_magnet, diamond_rush=diamond_rush),
            preview=preview,
        )
        original_grid = list(grid)

        (
            insurance_count,
            previous_streak,
            golden_hour,
            profit_doubler,
            jackpot_booster,
            streak_multiplier,
            rank,
            daily_claimed,
            daily_boost,
        ) = await asyncio.gather(
            self.buffs.get_insurance_count(player),
            self.buffs.get_streak(player),
            self.buffs.is_buff_active(player, kinds.GOLDEN_HOUR, now),
            self.buffs.is_buff_active(player, kinds.PROFIT_DOUBLER, now),
            self.buffs.is_buff_active(player, kinds.JACKPOT_BOOSTER, now),
            self.buffs.get_streak_multiplier(player),
            self.players.get_rank(player),
            self.players.has_claimed_daily(player, now),
            self.buffs.has_unlock(player, DAILY_BOOST_UNLOCK),
        )

        if dachs_locator is not None:
            await self.buffs.decrement_buff_uses(player, kinds.DACHS_LOCATOR, now)

        special = self.engine.apply_special_items(grid, has_guaranteed_pair, has_wild_card)
        if special.guaranteed_pair_used and not await self.buffs.consume_guaranteed_pair(player):
            logger.warning("Guaranteed pair token of %s was already gone", player)
        if special.wild_card_used and not await self.buffs.consume_wild_card(player):
            logger.warning("Wild card token of %s was already gone", player)

        result = self.engine.calculate_win(grid, original_grid)

        jackpot_amount = await self.jackpot.try_claim(now)
        raw_points = result.points + jackpot_amount

        # Consumables are only spent on a paying spin
        win_multiplier = False
        symbol_boost = False
        if raw_points > 0:
            win_multiplier = await self.buffs.consume_win_multiplier(player)
            matching = sorted(boost_symbols(result.processed_grid))
            if matching:
                consumed = await asyncio.gather(
                    *(self.buffs.consume_boost(player, symbol) for symbol in matching)
                )
                symbol_boost = any(consumed)

        payout = run_payout_pipeline(
            PayoutState(
                points=raw_points,
                free_spins=result.free_spins,
                stake_multiplier=multiplier,
                win_multiplier=win_multiplier,
                symbol_boost=symbol_boost,
                is_triple=is_triple(result.processed_grid),
                jackpot_booster=jackpot_booster,
                golden_hour=golden_hour,
                profit_doubler=profit_doubler,
                streak_multiplier=streak_multiplier,
            )
        )
        if payout.free_spins_awarded:
            added = await self.buffs.add_free_spins(
                player, payout.free_spin_multiplier, payout.free_spins_awarded
            )
            if added is None:
                logger.error("Could not award %d free spins to %s", payout.free_spins_awarded, player)

        is_win = payout.points > 0 or result.free_spins > 0
        streak = resolve_streak(previous_streak, is_win)
        self._queue_progression(deferred, player, now, is_win, streak)

        if (
            not free_spin_used
            and payout.points == 0
            and result.free_spins == 0
            and insurance_count > 0
        ):
            return await self._settle_insured_loss(
                deferred, player, rank, grid, original_grid, result, spin_cost, insurance_count
            )

        total_win = payout.points + streak.total_bonus
        net_delta = total_win - spin_cost
        booked = await self.ledger.apply_delta(player, net_delta)
        if not booked.success:
            logger.critical("Could not book %+d for %s after the spin resolved", net_delta, player)
            raise BookingError(player, net_delta)
        new_balance = booked.new_balance

        loss_warning = streak.loss_warning
        if new_balance < settings.low_balance_warning and not daily_claimed:
            amount = settings.daily_boost_amount if daily_boost else settings.daily_amount
            hint = messages.low_balance_hint(amount)
            loss_warning = f"{loss_warning} {hint}" if loss_warning else hint

        self._queue_stats(
            deferred,
            player,
            original_grid,
            grid,
            payout=payout.points,
            cost=spin_cost,
            free_spin_used=free_spin_used,
            insurance_used=False,
            new_balance=new_balance,
        )
        self.telemetry.emit_spin_processed(
            SpinProcessedEvent(
                player=player,
                spin_cost=spin_cost,
                multiplier=multiplier,
                payout=payout.points,
                net_delta=net_delta,
                free_spin_used=free_spin_used,
                config_hash=get_config_hash(),
            )
        )

        return messages.build_spin_message(
            player,
            grid,
            result,
            total_win,
            new_balance,
            spin_cost=spin_cost,
            rank=rank,
            free_spin_used=free_spin_used,
            free_spin_multiplier=free_spin_multiplier,
            free_spins_left=free_spins_left,
            jackpot_won=jackpot_amount > 0,
            natural_bonuses=streak.natural_bonuses,
            shop_buffs=payout.shop_buffs,
            streak_multiplier=payout.applied_streak_multiplier,
            wild_card_used=special.wild_card_used,
            loss_warning=loss_warning,
        )

    async def _settle_insured_loss(
        self,
        deferred: DeferredTasks,
        player: str,
        rank: str | None,
        grid: list[str],
        original_grid: list[str],
        result: WinResult,
        spin_cost: int,
        insurance_count: int,
    ) -> str:
        """A paid losing spin with insurance held: refund part of the stake."""
        refund = int(spin_cost * INSURANCE_REFUND_RATE)
        booked = await self.ledger.apply_delta(player, -(spin_cost - refund))
        if not booked.success:
            logger.critical("Could not book insured loss of %s", player)
            raise BookingError(player, refund - spin_cost)
        remaining = await self.buffs.decrement_insurance(player)
        if remaining is None:
            remaining = max(0, insurance_count - 1)

        self._queue_stats(
            deferred,
            player,
            original_grid,
            grid,
            payout=0,
            cost=spin_cost,
            free_spin_used=False,
            insurance_used=True,
            new_balance=booked.new_balance,
        )
        self.telemetry.emit_spin_processed(
            SpinProcessedEvent(
                player=player,
                spin_cost=spin_cost,
                multiplier=1,
                payout=0,
                net_delta=refund - spin_cost,
                free_spin_used=False,
                config_hash=get_config_hash(),
            )
        )
        return messages.insurance_message(
            player, rank, grid, result, refund, remaining, booked.new_balance
        )

    # --- deferred bookkeeping ---

    def _queue_progression(
        self, deferred: DeferredTasks, player: str, now: int, is_win: bool, streak: StreakOutcome
    ) -> None:
        deferred.add("streak", self.buffs.set_streak, player, streak.new_state)
        if is_win:
            deferred.add("streak_multiplier", self.buffs.increment_streak_multiplier, player)
            deferred.add(
                "rage_mode", self.buffs.update_buff_stack, player, kinds.RAGE_MODE, _reset_stack, now
            )
        else:
            deferred.add("streak_multiplier", self.buffs.reset_streak_multiplier, player)
            deferred.add(
                "rage_mode", self.buffs.update_buff_stack, player, kinds.RAGE_MODE, _grow_stack, now
            )

    def _queue_stats(
        self,
        deferred: DeferredTasks,
        player: str,
        original_grid: list[str],
        grid: list[str],
        *,
        payout: int,
        cost: int,
        free_spin_used: bool,
        insurance_used: bool,
        new_balance: int,
    ) -> None:
        deferred.add(
            "stats",
            self.players.record_spin,
            player,
            payout,
            cost,
            free_spin_used,
            insurance_used,
            original_grid.count(DACHS),
        )
        deferred.add(
            "spin_stats",
            self._emit_stats,
            SpinStatsEvent(
                player=player,
                original_grid=list(original_grid),
                final_grid=list(grid),
                payout=payout,
                free_spin_used=free_spin_used,
                insurance_used=insurance_used,
                new_balance=new_balance,
                config_hash=get_config_hash(),
            ),
        )

    async def _emit_stats(self, event: SpinStatsEvent) -> None:
        self.telemetry.emit_spin_stats(event)


def _grow_stack(stack: int) -> int:
    return stack + RAGE_MODE_LOSS_STACK


def _reset_stack(stack: int) -> int:
    return 0
