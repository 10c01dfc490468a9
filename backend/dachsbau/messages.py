"""Chat response text."""
import random

from dachsbau.config import settings
from dachsbau.logic.models import WinResult

CURRENCY = "DachsTaler"
SEPARATOR = "║"

# Tag characters U+E0001..U+E005F render invisibly in chat
DEDUP_FIRST = 0xE0001
DEDUP_COUNT = 95


def add_dedup_suffix(text: str) -> str:
    """Append one invisible character so the chat does not drop repeated lines."""
    if not text:
        return text
    return text + chr(DEDUP_FIRST + random.randrange(DEDUP_COUNT))


def cooldown_message(player: str, remaining_ms: int) -> str:
    seconds = -(-remaining_ms // 1000) if remaining_ms else settings.cooldown_seconds
    return f"@{player} ⏱️ Cooldown: {seconds} seconds left!"


def self_banned_message(player: str) -> str:
    return f"@{player} 🚫 You have excluded yourself from playing. Contact an admin to be unlocked."


def disclaimer_message(player: str) -> str:
    return (
        f"@{player} 🦡 Welcome! Dachsbau Slots is for entertainment only, no real money involved. "
        'Type "!slots accept" to play! 🎰'
    )


def accepted_message(player: str, balance: int) -> str:
    return f"@{player} ✅ Have fun! You start with {balance} {CURRENCY}. Type !slots to spin."


def already_accepted_message(player: str) -> str:
    return f"@{player} ✅ You are already registered."


def insufficient_funds_message(player: str, balance: int, cost: int) -> str:
    return f"@{player} ❌ Not enough {CURRENCY}! You need {cost}, you have {balance}."


def balance_message(player: str, balance: int, free_spins: int) -> str:
    text = f"@{player} 💰 Balance: {balance} {CURRENCY}"
    if free_spins:
        text += f" {SEPARATOR} 🎰 {free_spins} free spins"
    return text


def unknown_action_message(player: str, action: str) -> str:
    return f"@{player} ❓ Unknown command: {action}"


def low_balance_hint(daily_amount: int) -> str:
    return f"⚠️ Low balance! Use !slots daily for +{daily_amount} {CURRENCY}"


def insurance_message(
    player: str,
    rank: str | None,
    grid: list[str],
    result: WinResult,
    refund: int,
    insurance_left: int,
    new_balance: int,
) -> str:
    rank_part = f"{rank} " if rank else ""
    return (
        f"@{player} {rank_part}[ {' '.join(grid)} ] {result.message} 🛡️ {SEPARATOR} "
        f"Insurance +{refund} ({insurance_left} left) {SEPARATOR} Balance: {new_balance} {CURRENCY}"
    )


def build_spin_message(
    player: str,
    grid: list[str],
    result: WinResult,
    total_win: int,
    new_balance: int,
    *,
    spin_cost: int,
    rank: str | None = None,
    free_spin_used: bool = False,
    free_spin_multiplier: int = 1,
    free_spins_left: int = 0,
    jackpot_won: bool = False,
    natural_bonuses: list[str] | None = None,
    shop_buffs: list[str] | None = None,
    streak_multiplier: float = 1.0,
    wild_card_used: bool = False,
    loss_warning: str = "",
) -> str:
    """
    Assemble the spin line.

    Bonus sections are only shown for a net win. A payout below the stake
    is reported as a partial refund.
    """
    natural = list(natural_bonuses or [])
    shop = list(shop_buffs or [])
    if wild_card_used:
        shop.append("🃏 Wild")

    parts = [f"@{player}"]
    if rank:
        parts.append(rank)
    if free_spin_used:
        prefix = f"FREE SPIN ({free_spin_multiplier * settings.base_spin_cost} {CURRENCY})"
        if free_spins_left > 0:
            prefix += f" ({free_spins_left} left)"
        parts.append(prefix)
    parts.append(f"[ {' '.join(grid)} ]")

    if result.free_spins > 0:
        parts.append(result.message)
    elif total_win > 0 and total_win >= spin_cost:
        parts.append(f"{result.message} +{total_win - spin_cost} DT 💰")
        if jackpot_won:
            natural.insert(0, f"⏰ Jackpot +{settings.hourly_jackpot_amount}")
        if streak_multiplier > 1.0:
            natural.append(f"🔥 {streak_multiplier:.1f}x Streak")
        if natural:
            parts.append(f"{SEPARATOR} {' • '.join(natural)}")
        if shop:
            parts.append(f"{SEPARATOR} 🛒 {', '.join(shop)}")
    elif total_win > 0:
        parts.append(
            f"{result.message} {total_win} of {spin_cost} DT back • -{spin_cost - total_win} DT 💸"
        )
    else:
        parts.append(f"{result.message} -{spin_cost} DT 💸")

    parts.append(f"{SEPARATOR} Balance: {new_balance} {CURRENCY}")
    if loss_warning:
        parts.append(loss_warning)
    return " ".join(parts)


def peek_message(player: str, will_win: bool, cost: int) -> str:
    outcome = "WIN ✅" if will_win else "lose ❌"
    return f"@{player} 🔮 Peek (-{cost} DT): your next spin will {outcome}"


def daily_message(player: str, amount: int, balance: int, boosted: bool) -> str:
    boost = " (💎 Boosted!)" if boosted else ""
    return f"@{player} 🎁 Daily bonus: +{amount} {CURRENCY}{boost} {SEPARATOR} Balance: {balance}"


def daily_taken_message(player: str, remaining_ms: int) -> str:
    minutes = -(-remaining_ms // 60_000)
    hours, minutes = divmod(minutes, 60)
    return f"@{player} ⏰ Daily bonus already claimed! Next one in {hours}h {minutes}m"
