"""Hash of the game tables, attached to spin telemetry and the audit script.

Both places MUST compute it through this function.
"""
import hashlib
import json

from dachsbau.config import settings
from dachsbau.logic import paytable


def get_config_hash() -> str:
    """16-char hex hash of the payout-relevant configuration."""
    config_snapshot = {
        "symbol_weights": paytable.SYMBOL_WEIGHTS,
        "dachs_chance": paytable.DACHS_BASE_CHANCE,
        "dachs_payouts": [
            paytable.DACHS_TRIPLE_PAYOUT,
            paytable.DACHS_PAIR_PAYOUT,
            paytable.DACHS_SINGLE_PAYOUT,
        ],
        "triple_payouts": paytable.TRIPLE_PAYOUTS,
        "pair_payouts": paytable.PAIR_PAYOUTS,
        "combo_bonuses": paytable.COMBO_BONUSES,
        "streak": [paytable.STREAK_THRESHOLD, paytable.HOT_STREAK_BONUS, paytable.COMEBACK_BONUS],
        "base_spin_cost": settings.base_spin_cost,
        "max_balance": settings.max_balance,
        "hourly_jackpot_amount": settings.hourly_jackpot_amount,
    }
    canonical = json.dumps(config_snapshot, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]
