"""Win/loss streak state machine with hot-streak, comeback and combo bonuses."""
from dachsbau.logic.models import StreakOutcome, StreakState
from dachsbau.logic.paytable import (
    COMBO_BONUSES,
    COMEBACK_BONUS,
    HOT_STREAK_BONUS,
    LAST_FIXED_LOSS_THRESHOLD,
    LOSS_MESSAGES,
    LOSS_STREAK_WARNING_START,
    ROTATING_LOSS_MESSAGES,
    STREAK_MULTIPLIER_INCREMENT,
    STREAK_MULTIPLIER_MAX,
    STREAK_THRESHOLD,
)


def loss_warning(losses: int) -> str:
    """Fixed warnings up to the last threshold, then a rotating set."""
    if losses < LOSS_STREAK_WARNING_START:
        return ""
    if losses in LOSS_MESSAGES:
        return LOSS_MESSAGES[losses]
    if losses > LAST_FIXED_LOSS_THRESHOLD:
        index = (losses - LAST_FIXED_LOSS_THRESHOLD - 1) % len(ROTATING_LOSS_MESSAGES)
        return ROTATING_LOSS_MESSAGES[index]
    return ""


def resolve_streak(previous: StreakState, is_win: bool) -> StreakOutcome:
    """
    Feed one spin outcome into the streak counters.

    win -> (w+1, 0), loss -> (0, l+1). Reaching the win threshold pays the
    hot-streak bonus; a win after at least threshold losses pays the comeback
    bonus. Either trigger resets both counters to (0, 0).
    """
    outcome = StreakOutcome(new_state=StreakState())
    reset = False

    if is_win and previous.wins + 1 == STREAK_THRESHOLD:
        outcome.streak_bonus += HOT_STREAK_BONUS
        outcome.natural_bonuses.append(f"🔥 Hot Streak +{HOT_STREAK_BONUS}")
        outcome.hot_streak_triggered = True
        reset = True

    if is_win and previous.losses >= STREAK_THRESHOLD:
        outcome.streak_bonus += COMEBACK_BONUS
        outcome.natural_bonuses.append(f"👑 Comeback +{COMEBACK_BONUS}")
        outcome.comeback_triggered = True
        reset = True

    if not reset:
        if is_win:
            outcome.new_state = StreakState(wins=previous.wins + 1, losses=0)
        else:
            outcome.new_state = StreakState(wins=0, losses=previous.losses + 1)

    wins = outcome.new_state.wins
    if is_win and 2 <= wins < STREAK_THRESHOLD:
        outcome.combo_bonus = COMBO_BONUSES.get(wins, 0)
        if outcome.combo_bonus > 0:
            outcome.natural_bonuses.append(f"🎯 Combo +{outcome.combo_bonus}")

    if not is_win:
        outcome.loss_warning = loss_warning(outcome.new_state.losses)

    return outcome


def next_streak_multiplier(current: float, is_win: bool) -> float:
    """+0.1 per win up to 3.0; any loss resets to 1.0."""
    if not is_win:
        return 1.0
    return min(round(current + STREAK_MULTIPLIER_INCREMENT, 1), STREAK_MULTIPLIER_MAX)
