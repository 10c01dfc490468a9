#!/usr/bin/env python3
"""
Headless slot simulation for payout auditing.

Runs seeded spins through the pure engine (grid -> win -> payout pipeline,
no buffs, no streak bonuses) and reports hit rate, RTP and free-spin
frequency. Won free spins are played out at no cost.

Usage:
    python -m scripts.audit_sim --rounds 100000 --seed AUDIT_2025
    python -m scripts.audit_sim --rounds 100000 --seed AUDIT_2025 --stake 50 --out out/audit.csv
"""
import argparse
import csv
import hashlib
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dachsbau.config_hash import get_config_hash
from dachsbau.logic.engine import GameEngine
from dachsbau.logic.models import PayoutState
from dachsbau.logic.paytable import DACHS, MULTIPLIER_MAP
from dachsbau.logic.pipeline import run_payout_pipeline
from dachsbau.logic.rng import SeededRNG


@dataclass
class SimulationStats:
    """Statistics accumulated during simulation."""
    rounds: int = 0
    free_rounds: int = 0
    total_wagered: int = 0
    total_won: int = 0
    wins: int = 0
    free_spin_awards: int = 0
    free_spins_awarded: int = 0
    dachs_hits: int = 0
    max_win: int = 0

    @property
    def rtp(self) -> float:
        return (self.total_won / self.total_wagered * 100) if self.total_wagered else 0.0

    @property
    def hit_freq(self) -> float:
        played = self.rounds + self.free_rounds
        return (self.wins / played * 100) if played else 0.0

    @property
    def free_spin_rate(self) -> float:
        return (self.free_spin_awards / self.rounds * 100) if self.rounds else 0.0


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer deterministically."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest(), 16) % (2**31)


def play_round(engine: GameEngine, multiplier: int, stats: SimulationStats) -> int:
    """One spin; returns the number of free spins it awarded."""
    grid = engine.generate_grid()
    result = engine.calculate_win(grid)
    payout = run_payout_pipeline(
        PayoutState(points=result.points, free_spins=result.free_spins, stake_multiplier=multiplier)
    )
    stats.total_won += payout.points
    stats.max_win = max(stats.max_win, payout.points)
    if result.is_win:
        stats.wins += 1
    if DACHS in grid:
        stats.dachs_hits += 1
    if payout.free_spins_awarded:
        stats.free_spin_awards += 1
        stats.free_spins_awarded += payout.free_spins_awarded
    return payout.free_spins_awarded


def run_simulation(rounds: int, seed_str: str, stake: int = 10, verbose: bool = False) -> SimulationStats:
    """
    Run headless simulation.

    Args:
        rounds: Number of paid rounds to simulate
        seed_str: Seed string for reproducibility
        stake: Fixed stake (10, 20, 30, 50 or 100)
        verbose: Print progress
    """
    if stake not in MULTIPLIER_MAP:
        raise ValueError(f"stake must be one of {sorted(MULTIPLIER_MAP)}")
    multiplier = MULTIPLIER_MAP[stake]
    engine = GameEngine(rng=SeededRNG(seed=seed_to_int(seed_str)))
    stats = SimulationStats()

    progress_interval = max(1, rounds // 100)
    for round_index in range(rounds):
        if verbose and round_index % progress_interval == 0:
            print(f"\rProgress: {round_index / rounds * 100:.1f}%", end="", flush=True)

        stats.rounds += 1
        stats.total_wagered += stake
        pending = play_round(engine, multiplier, stats)
        # Free spins keep the multiplier of the spin that won them
        while pending > 0:
            pending -= 1
            stats.free_rounds += 1
            pending += play_round(engine, multiplier, stats)

    if verbose:
        print()
    return stats


def write_csv(output_path: str, seed_str: str, stake: int, stats: SimulationStats) -> None:
    row = {
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "config_hash": get_config_hash(),
        "seed": seed_str,
        "stake": stake,
        "rounds": stats.rounds,
        "free_rounds": stats.free_rounds,
        "rtp": f"{stats.rtp:.4f}",
        "hit_freq": f"{stats.hit_freq:.4f}",
        "free_spin_rate": f"{stats.free_spin_rate:.4f}",
        "dachs_hits": stats.dachs_hits,
        "max_win": stats.max_win,
    }
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=row.keys())
        writer.writeheader()
        writer.writerow(row)
    print(f"CSV written to: {output_path}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seeded payout simulation")
    parser.add_argument("--rounds", type=int, default=100_000, help="Number of paid rounds")
    parser.add_argument("--seed", type=str, default="AUDIT", help="Seed string for reproducibility")
    parser.add_argument("--stake", type=int, default=10, choices=sorted(MULTIPLIER_MAP), help="Stake per paid round")
    parser.add_argument("--out", type=str, default=None, help="Optional output CSV path")
    parser.add_argument("--verbose", action="store_true", help="Show progress")
    args = parser.parse_args(argv)

    print(f"Running simulation: rounds={args.rounds}, seed={args.seed}, stake={args.stake}")
    print(f"Config hash: {get_config_hash()}")
    stats = run_simulation(args.rounds, args.seed, args.stake, verbose=args.verbose)

    if args.out:
        write_csv(args.out, args.seed, args.stake, stats)

    print("\nSummary:")
    print(f"  Paid rounds: {stats.rounds}")
    print(f"  Free rounds: {stats.free_rounds}")
    print(f"  Total wagered: {stats.total_wagered}")
    print(f"  Total won: {stats.total_won}")
    print(f"  RTP: {stats.rtp:.4f}%")
    print(f"  Hit frequency: {stats.hit_freq:.4f}%")
    print(f"  Free spin awards: {stats.free_spin_awards} ({stats.free_spin_rate:.4f}%)")
    print(f"  Rounds with 🦡: {stats.dachs_hits}")
    print(f"  Max win: {stats.max_win}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
