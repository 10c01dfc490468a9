"""Slot engine: grid generation, special items and win resolution."""
from dachsbau.logic.models import GridBuffs, SpecialItemResult, WinResult
from dachsbau.logic.paytable import (
    ALL_SYMBOLS,
    BUFF_REROLL_CHANCE,
    DACHS,
    DACHS_PAIR_PAYOUT,
    DACHS_SINGLE_PAYOUT,
    DACHS_TRIPLE_PAYOUT,
    DEFAULT_PAIR_PAYOUT,
    DEFAULT_TRIPLE_PAYOUT,
    DIAMOND,
    DIAMOND_PAIR_FREE_SPINS,
    DIAMOND_TRIPLE_FREE_SPINS,
    GRID_SIZE,
    GUARANTEED_PAIR_SYMBOLS,
    PAIR_PAYOUTS,
    SPIN_LOSS_MESSAGES,
    STAR,
    SYMBOL_BOOST_CHANCE,
    TRIPLE_PAYOUTS,
    WILD,
    WILD_SYMBOL_VALUES,
)
from dachsbau.logic.rng import ProductionRNG, RNGBase
from dachsbau.logic.symbols import WeightedSymbolGenerator


def is_valid_grid(grid: object) -> bool:
    """A stored grid is usable only if it has exactly 3 known symbols."""
    return (
        isinstance(grid, list)
        and len(grid) == GRID_SIZE
        and all(isinstance(s, str) and s in ALL_SYMBOLS for s in grid)
    )


def has_any_pair(grid: list[str]) -> bool:
    """True for any two equal cells, adjacent or not."""
    return grid[0] == grid[1] or grid[1] == grid[2] or grid[0] == grid[2]


def is_triple(grid: list[str]) -> bool:
    return grid[0] == grid[1] == grid[2]


def pair_value(symbol: str) -> int:
    """Pair payout used to rank candidates for a single wild."""
    if symbol == DACHS:
        return DACHS_PAIR_PAYOUT
    if symbol == DIAMOND:
        return 0
    return PAIR_PAYOUTS.get(symbol, DEFAULT_PAIR_PAYOUT)


def find_wild_card_position(grid: list[str]) -> int | None:
    """
    Pick the cell a wild card should occupy, or None to leave the grid alone.

    - an existing triple, or an existing rare pair, is left untouched
    - an existing non-rare pair (any two cells) is completed to a triple
    - otherwise the best non-rare symbol gets a partner; the wild takes the
      cell next to it, or the other free cell if that one holds the rare
      symbol

    The wild itself never resolves to the rare symbol, so it cannot create
    a rare three-of-a-kind.
    """
    if is_triple(grid):
        return None

    for i, j, free in ((0, 1, 2), (1, 2, 0), (0, 2, 1)):
        if grid[i] == grid[j]:
            return None if grid[i] == DACHS else free

    # No pair: best non-rare cell, first cell wins ties
    best = -1
    best_value = -1
    for i, symbol in enumerate(grid):
        if symbol != DACHS and WILD_SYMBOL_VALUES.get(symbol, 0) > best_value:
            best, best_value = i, WILD_SYMBOL_VALUES.get(symbol, 0)
    if best == -1:
        return None
    position = 0 if best == 1 else 1
    if grid[position] == DACHS:
        position = 2 if best != 2 else 0
    return position


class GameEngine:
    """
    Slot rules for a single 3-cell payline.

    Implements:
    - Grid generation with rare-symbol chance and re-roll buffs
    - Consume-once preview grids
    - Guaranteed-pair and wild-card tokens
    - Win resolution with fixed precedence
    """

    def __init__(self, rng: RNGBase | None = None):
        self.rng = rng or ProductionRNG()
        self.symbols = WeightedSymbolGenerator(rng=self.rng)

    def generate_grid(
        self, buffs: GridBuffs | None = None, preview: list[str] | None = None
    ) -> list[str]:
        """
        Generate a grid, or return a stored preview verbatim.

        Each cell first rolls against the rare-symbol chance. A cell that
        missed gets a weighted symbol, then (with a re-roll buff active) a
        two-stage filter: does the cell re-roll, and does the re-roll land
        on the biased symbol. Star magnet is checked before diamond rush.
        """
        if preview is not None and is_valid_grid(preview):
            return list(preview)

        buffs = buffs or GridBuffs()
        grid: list[str] = []
        for _ in range(GRID_SIZE):
            if self.rng.chance(buffs.dachs_chance):
                grid.append(DACHS)
                continue

            symbol = self.symbols.draw()
            if buffs.has_reroll:
                # Both rolls are always drawn so the sequence does not depend on the first
                reroll_hit = self.rng.chance(BUFF_REROLL_CHANCE)
                boost_hit = self.rng.chance(SYMBOL_BOOST_CHANCE)
                hit = reroll_hit and boost_hit
                if buffs.star_magnet and symbol != STAR and hit:
                    symbol = STAR
                elif buffs.diamond_rush and symbol != DIAMOND and hit:
                    symbol = DIAMOND
            grid.append(symbol)
        return grid

    def apply_special_items(
        self, grid: list[str], guaranteed_pair: bool, wild_card: bool
    ) -> SpecialItemResult:
        """
        Rewrite the grid in place for held tokens.

        A token is reported as used only if it changed the grid; an unused
        token carries over to the next spin.
        """
        result = SpecialItemResult()

        if guaranteed_pair and not has_any_pair(grid):
            pair_symbol = self.rng.choice(GUARANTEED_PAIR_SYMBOLS)
            grid[0] = pair_symbol
            grid[1] = pair_symbol
            result.guaranteed_pair_used = True

        if wild_card:
            position = find_wild_card_position(grid)
            if position is not None:
                grid[position] = WILD
                result.wild_card_used = True

        return result

    def calculate_win(
        self, grid: list[str], original_grid: list[str] | None = None
    ) -> WinResult:
        """
        Resolve a grid to a payout and/or free spins.

        Matches are detected on the wild-substituted grid. Diamonds are
        counted on the original grid (before special items) so tokens cannot
        manufacture free spins. Wilds never resolve to the rare symbol.
        """
        original = original_grid if original_grid is not None else grid
        wild_count = grid.count(WILD)
        wild_suffix = " (🃏 Wild!)" if wild_count else ""
        processed = self._substitute_wilds(grid)

        diamond_spins = 0
        diamond_message = ""
        if original[0] == original[1] == original[2] == DIAMOND:
            diamond_spins = DIAMOND_TRIPLE_FREE_SPINS
            diamond_message = f"💎💎💎 DIAMOND JACKPOT! +{DIAMOND_TRIPLE_FREE_SPINS} FREE SPINS!"
        elif (original[0] == original[1] == DIAMOND) or (original[1] == original[2] == DIAMOND):
            diamond_spins = DIAMOND_PAIR_FREE_SPINS
            diamond_message = f"💎💎 +{DIAMOND_PAIR_FREE_SPINS} FREE SPIN!"
        diamond_tail = f" {diamond_message}" if diamond_message else ""

        def result(points: int, message: str, free_spins: int = 0) -> WinResult:
            return WinResult(
                points=points,
                message=message,
                free_spins=free_spins,
                wild_count=wild_count,
                processed_grid=processed,
            )

        dachs_count = processed.count(DACHS)
        if dachs_count == 3:
            return result(
                DACHS_TRIPLE_PAYOUT,
                f"🔥🦡🔥 MEGA DACHS JACKPOT!!! 🔥🦡🔥{wild_suffix}{diamond_tail}",
                diamond_spins,
            )
        if dachs_count == 2:
            return result(DACHS_PAIR_PAYOUT, f"💥🦡💥 DOUBLE DACHS!!! 💥🦡💥{wild_suffix}")
        if dachs_count == 1:
            return result(
                DACHS_SINGLE_PAYOUT,
                f"🦡 Dachs spotted! Nice!{wild_suffix}{diamond_tail}",
                diamond_spins,
            )

        if diamond_spins:
            return result(0, diamond_message, diamond_spins)

        if is_triple(processed) and processed[0] != WILD:
            symbol = processed[0]
            points = TRIPLE_PAYOUTS.get(symbol, DEFAULT_TRIPLE_PAYOUT)
            return result(points, f"Triple {symbol}!{wild_suffix}")

        # Only adjacent pairs pay: (0,1) or (1,2)
        if processed[0] == processed[1] != WILD or processed[1] == processed[2] != WILD:
            symbol = processed[1]
            points = PAIR_PAYOUTS.get(symbol, DEFAULT_PAIR_PAYOUT)
            return result(points, f"Pair {symbol}!{wild_suffix}")

        return result(0, self.rng.choice(SPIN_LOSS_MESSAGES))

    def _substitute_wilds(self, grid: list[str]) -> list[str]:
        """Replace wilds with the best matching non-rare symbol."""
        wild_count = grid.count(WILD)
        if wild_count == 0:
            return list(grid)

        real = [s for s in grid if s != WILD]
        if not real:
            return [STAR, STAR, STAR]

        if wild_count == 2:
            symbol = real[0]
            if symbol == DACHS:
                return list(grid)
            return [symbol, symbol, symbol]

        first, second = real
        if first == second:
            if first == DACHS:
                return list(grid)
            return [first, first, first]

        # Wild pairs with the higher pair value; the rare symbol is never a
        # candidate and the left-most symbol wins ties
        if first == DACHS:
            chosen, other = second, first
        elif second == DACHS:
            chosen, other = first, second
        elif pair_value(first) >= pair_value(second):
            chosen, other = first, second
        else:
            chosen, other = second, first
        return [chosen, chosen, other]
