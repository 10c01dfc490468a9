"""Stake parsing for the slots command."""
from dataclasses import dataclass

from dachsbau.config import settings
from dachsbau.errors import ErrorCode, GameError
from dachsbau.logic.paytable import MAX_FIXED_STAKE, MULTIPLIER_MAP, UNLOCK_MAP

ALL_IN = "all"
SLOTS_ALL = "slots_all"


@dataclass(frozen=True)
class StakeResult:
    spin_cost: int
    multiplier: int


def parse_stake(
    player: str,
    amount_text: str | None,
    balance: int,
    is_free_spin: bool,
    unlocks: set[str],
) -> StakeResult:
    """
    Resolve the amount argument into a spin cost and payout multiplier.

    Raises INVALID_AMOUNT or NOT_UNLOCKED; no state is touched either way.
    """
    base = StakeResult(settings.base_spin_cost, 1)
    text = (amount_text or "").strip().lower()
    if not text or is_free_spin:
        return base

    if text == ALL_IN:
        if SLOTS_ALL not in unlocks:
            raise GameError(
                ErrorCode.NOT_UNLOCKED,
                f"@{player} ❌ !slots all requires the slots_all unlock.",
            )
        if balance < 1:
            raise GameError(ErrorCode.INSUFFICIENT_FUNDS, f"@{player} ❌ You have no DachsTaler left.")
        return StakeResult(balance, max(1, balance // 10))

    try:
        amount = int(text)
    except ValueError:
        # Free text after the command is not a stake
        return base

    if SLOTS_ALL in unlocks:
        if amount < 1 or amount > balance:
            raise GameError(
                ErrorCode.INVALID_AMOUNT,
                f"@{player} ❌ Stake must be between 1 and {balance}.",
            )
        return StakeResult(amount, max(1, amount // 10))

    if amount < settings.base_spin_cost or amount > MAX_FIXED_STAKE:
        raise GameError(
            ErrorCode.INVALID_AMOUNT,
            f"@{player} ❌ Stake must be between {settings.base_spin_cost} and {MAX_FIXED_STAKE}.",
        )
    if amount == settings.base_spin_cost:
        return base
    if amount not in UNLOCK_MAP:
        allowed = ", ".join(str(a) for a in MULTIPLIER_MAP)
        raise GameError(ErrorCode.INVALID_AMOUNT, f"@{player} ❌ Allowed stakes: {allowed}.")
    if UNLOCK_MAP[amount] not in unlocks:
        raise GameError(
            ErrorCode.NOT_UNLOCKED,
            f"@{player} ❌ !slots {amount} requires the {UNLOCK_MAP[amount]} unlock.",
        )
    return StakeResult(amount, MULTIPLIER_MAP[amount])
