"""Ordered payout pipeline.

Each step takes and returns a PayoutState. Every step after the stake
multiplier runs only while the payout is positive. Percentage steps use
integer arithmetic and round down, so no fractional currency ever appears.
"""
from typing import Callable

from dachsbau.logic.models import PayoutState
from dachsbau.logic.paytable import (
    GOLDEN_HOUR_RATE,
    JACKPOT_BOOSTER_RATE,
    PROFIT_DOUBLER_FACTOR,
    PROFIT_DOUBLER_THRESHOLD,
    SYMBOL_BOOST_FACTOR,
    WIN_MULTIPLIER_FACTOR,
)

PayoutStep = Callable[[PayoutState], PayoutState]


def _percent(rate: float) -> int:
    return round(rate * 100)


def _scale_down(points: int, rate: float) -> int:
    """floor(points * rate), computed on integers."""
    return points * _percent(rate) // 100


def _record(state: PayoutState, step: str) -> PayoutState:
    state.trace.append((step, state.points))
    return state


def award_free_spins(state: PayoutState) -> PayoutState:
    """Free spins keep their pre-multiplier count, tagged with the stake multiplier."""
    if state.free_spins > 0:
        state.free_spins_awarded = state.free_spins
        state.free_spin_multiplier = state.stake_multiplier
    return _record(state, "free_spins")


def apply_stake_multiplier(state: PayoutState) -> PayoutState:
    state.points = state.points * state.stake_multiplier
    return _record(state, "stake")


def apply_win_multiplier(state: PayoutState) -> PayoutState:
    """One-shot x2 token."""
    if state.points > 0 and state.win_multiplier:
        state.points *= WIN_MULTIPLIER_FACTOR
        state.shop_buffs.append("2x")
    return _record(state, "win_multiplier")


def apply_symbol_boost(state: PayoutState) -> PayoutState:
    """x2 when a boost matched a symbol of the winning combination."""
    if state.points > 0 and state.symbol_boost:
        state.points *= SYMBOL_BOOST_FACTOR
        state.shop_buffs.append("2x Boost")
    return _record(state, "symbol_boost")


def apply_jackpot_booster(state: PayoutState) -> PayoutState:
    """+25% on triples, rounded down."""
    if state.points > 0 and state.jackpot_booster and state.is_triple:
        state.points = _scale_down(state.points, JACKPOT_BOOSTER_RATE)
        state.shop_buffs.append("+25% Triple")
    return _record(state, "jackpot_booster")


def apply_golden_hour(state: PayoutState) -> PayoutState:
    """+30%, rounded down."""
    if state.points > 0 and state.golden_hour:
        state.points = _scale_down(state.points, GOLDEN_HOUR_RATE)
        state.shop_buffs.append("+30%")
    return _record(state, "golden_hour")


def apply_profit_doubler(state: PayoutState) -> PayoutState:
    """x2, only when the payout so far exceeds the threshold."""
    if state.points > PROFIT_DOUBLER_THRESHOLD and state.profit_doubler:
        state.points *= PROFIT_DOUBLER_FACTOR
        state.shop_buffs.append("Profit x2")
    return _record(state, "profit_doubler")


def apply_streak_multiplier(state: PayoutState) -> PayoutState:
    """Current streak multiplier (1.0..3.0 in 0.1 steps), rounded down."""
    if state.points > 0 and state.streak_multiplier > 1.0:
        tenths = round(state.streak_multiplier * 10)
        state.points = state.points * tenths // 10
        state.applied_streak_multiplier = tenths / 10
    return _record(state, "streak")


PAYOUT_STEPS: list[PayoutStep] = [
    award_free_spins,
    apply_stake_multiplier,
    apply_win_multiplier,
    apply_symbol_boost,
    apply_jackpot_booster,
    apply_golden_hour,
    apply_profit_doubler,
    apply_streak_multiplier,
]


def run_payout_pipeline(
    state: PayoutState, steps: list[PayoutStep] | None = None
) -> PayoutState:
    """Run every step in order on a copy of the state."""
    current = state.model_copy(deep=True)
    for step in steps or PAYOUT_STEPS:
        current = step(current)
    return current


def boost_symbols(grid: list[str]) -> set[str]:
    """Symbols taking part in a match; only these can consume a symbol boost."""
    matching: set[str] = set()
    if grid[0] == grid[1]:
        matching.add(grid[0])
    if grid[1] == grid[2]:
        matching.add(grid[1])
    if grid[0] == grid[2]:
        matching.add(grid[0])
    return matching
