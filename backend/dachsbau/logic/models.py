"""Game-rule models shared by the engine, pipeline and streak engine."""
from pydantic import BaseModel, Field

from dachsbau.logic.paytable import DACHS_BASE_CHANCE


class GridBuffs(BaseModel):
    """Probability modifiers consulted while generating a grid."""

    dachs_chance: float = DACHS_BASE_CHANCE
    star_magnet: bool = False
    diamond_rush: bool = False

    @property
    def has_reroll(self) -> bool:
        return self.star_magnet or self.diamond_rush


class SpecialItemResult(BaseModel):
    """Which one-shot tokens actually altered the grid (and must be consumed)."""

    guaranteed_pair_used: bool = False
    wild_card_used: bool = False


class WinResult(BaseModel):
    """Raw outcome of a grid before any multiplier runs."""

    points: int = 0
    message: str = ""
    free_spins: int = 0
    wild_count: int = 0
    processed_grid: list[str] = Field(default_factory=list)

    @property
    def is_win(self) -> bool:
        return self.points > 0 or self.free_spins > 0


class PayoutState(BaseModel):
    """Value threaded through the ordered payout steps."""

    points: int
    free_spins: int = 0
    stake_multiplier: int = 1

    # Inputs read (and, for consumables, already consumed) by the caller
    win_multiplier: bool = False
    symbol_boost: bool = False
    is_triple: bool = False
    jackpot_booster: bool = False
    golden_hour: bool = False
    profit_doubler: bool = False
    streak_multiplier: float = 1.0

    # Outputs
    free_spins_awarded: int = 0
    free_spin_multiplier: int = 1
    shop_buffs: list[str] = Field(default_factory=list)
    applied_streak_multiplier: float = 1.0
    trace: list[tuple[str, int]] = Field(default_factory=list)


class StreakState(BaseModel):
    """Consecutive win/loss counters; at most one is non-zero."""

    wins: int = 0
    losses: int = 0


class StreakOutcome(BaseModel):
    """Result of feeding one spin outcome into the streak engine."""

    new_state: StreakState
    streak_bonus: int = 0
    combo_bonus: int = 0
    natural_bonuses: list[str] = Field(default_factory=list)
    loss_warning: str = ""
    hot_streak_triggered: bool = False
    comeback_triggered: bool = False

    @property
    def total_bonus(self) -> int:
        return self.streak_bonus + self.combo_bonus
