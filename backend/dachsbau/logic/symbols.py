"""Weighted symbol draws from a fixed probability table."""
from bisect import bisect_right
from itertools import accumulate

from dachsbau.logic.paytable import SYMBOL_WEIGHTS
from dachsbau.logic.rng import ProductionRNG, RNGBase


class WeightedSymbolGenerator:
    """
    Draws one symbol with P(symbol) = weight / total_weight.

    Cumulative weights are computed once; each draw is a single uniform value
    in [0, total) located with a binary search.
    """

    def __init__(
        self,
        weights: list[tuple[str, int]] | None = None,
        rng: RNGBase | None = None,
    ):
        table = SYMBOL_WEIGHTS if weights is None else weights
        if not table or any(weight <= 0 for _, weight in table):
            raise ValueError("Symbol weights must be a non-empty list of positive weights")
        self.rng = rng or ProductionRNG()
        self.symbols = [symbol for symbol, _ in table]
        self.cumulative = list(accumulate(weight for _, weight in table))
        self.total_weight = self.cumulative[-1]

    def symbol_for(self, value: float) -> str:
        """Map a value in [0, total_weight) onto its symbol."""
        index = bisect_right(self.cumulative, value)
        # value == total_weight can only come from float rounding
        return self.symbols[min(index, len(self.symbols) - 1)]

    def draw(self) -> str:
        return self.symbol_for(self.rng.random() * self.total_weight)
