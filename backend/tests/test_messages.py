"""Chat message formatting tests."""
import pytest

from dachsbau import messages
from dachsbau.logic.models import WinResult

GRID = ["⭐", "⭐", "⭐"]


def build(result: WinResult, total_win: int, **kwargs) -> str:
    kwargs.setdefault("spin_cost", 10)
    return messages.build_spin_message("alice", GRID, result, total_win, 590, **kwargs)


class TestDedupSuffix:
    def test_appends_one_tag_character(self):
        text = messages.add_dedup_suffix("hello")
        assert text[:-1] == "hello"
        assert 0xE0001 <= ord(text[-1]) <= 0xE005F

    def test_empty_text_stays_empty(self):
        assert messages.add_dedup_suffix("") == ""


class TestSpinMessage:
    def test_net_win_with_bonuses(self):
        text = build(
            WinResult(points=500, message="Triple ⭐!"),
            510,
            rank="👑",
            natural_bonuses=["🎯 Combo +10"],
            shop_buffs=["2x"],
            streak_multiplier=1.2,
            wild_card_used=True,
        )
        assert text == (
            "@alice 👑 [ ⭐ ⭐ ⭐ ] Triple ⭐! +500 DT 💰 ║ 🎯 Combo +10 • 🔥 1.2x Streak "
            "║ 🛒 2x, 🃏 Wild ║ Balance: 590 DachsTaler"
        )

    def test_jackpot_is_listed_first(self):
        text = build(WinResult(points=100, message="Pair ⭐!"), 200, jackpot_won=True, natural_bonuses=["🎯 Combo +10"])
        assert "║ ⏰ Jackpot +100 • 🎯 Combo +10" in text

    def test_partial_refund(self):
        text = build(WinResult(points=5, message="Pair 🍒!"), 50, spin_cost=100)
        assert "Pair 🍒! 50 of 100 DT back • -50 DT 💸" in text

    def test_loss_with_warning(self):
        text = build(WinResult(message="Next time!"), 0, loss_warning="😔 take a break")
        assert text.endswith("Next time! -10 DT 💸 ║ Balance: 590 DachsTaler 😔 take a break")

    def test_free_spin_prefix(self):
        text = build(
            WinResult(message="Next time!"),
            0,
            spin_cost=0,
            free_spin_used=True,
            free_spin_multiplier=5,
            free_spins_left=2,
        )
        assert text.startswith("@alice FREE SPIN (50 DachsTaler) (2 left) [ ⭐ ⭐ ⭐ ]")

    def test_free_spin_award_shows_result_only(self):
        text = build(WinResult(free_spins=1, message="💎💎 +1 FREE SPIN!"), 0)
        assert "💎💎 +1 FREE SPIN! ║ Balance" in text


@pytest.mark.parametrize("remaining_ms,seconds", [(20_000, 20), (1_001, 2), (0, 30)])
def test_cooldown_message(remaining_ms, seconds):
    assert messages.cooldown_message("alice", remaining_ms) == f"@alice ⏱️ Cooldown: {seconds} seconds left!"


def test_balance_with_free_spins():
    assert messages.balance_message("alice", 42, 3) == "@alice 💰 Balance: 42 DachsTaler ║ 🎰 3 free spins"
