"""Seeded simulation script tests."""
import pytest

from scripts.audit_sim import main, run_simulation, seed_to_int


def test_seed_is_deterministic():
    assert seed_to_int("AUDIT") == seed_to_int("AUDIT")
    assert seed_to_int("AUDIT") != seed_to_int("OTHER")


def test_same_seed_same_result():
    first = run_simulation(2_000, "AUDIT_2025")
    second = run_simulation(2_000, "AUDIT_2025")
    assert first == second


def test_stats_are_consistent():
    stats = run_simulation(5_000, "AUDIT_2025")
    assert stats.rounds == 5_000
    assert stats.total_wagered == 50_000
    assert stats.free_rounds == stats.free_spins_awarded
    assert 0 < stats.hit_freq < 100
    assert stats.rtp > 0


def test_stake_scales_wager():
    stats = run_simulation(100, "AUDIT_2025", stake=50)
    assert stats.total_wagered == 5_000


def test_unknown_stake_rejected():
    with pytest.raises(ValueError):
        run_simulation(10, "AUDIT_2025", stake=15)


def test_main_writes_csv(tmp_path, capsys):
    out = tmp_path / "audit.csv"
    assert main(["--rounds", "200", "--seed", "CI", "--out", str(out)]) == 0
    header, row = out.read_text().strip().splitlines()
    assert header.startswith("timestamp,config_hash,seed")
    assert ",CI,10,200," in row
    assert "RTP:" in capsys.readouterr().out
