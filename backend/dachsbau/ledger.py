"""Player balances. The only module that writes user:{player}."""
import logging
from dataclasses import dataclass

from redis.exceptions import RedisError

from dachsbau.config import settings
from dachsbau.store import KeyValueStore, Mutation, key

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    success: bool
    new_balance: int
    insufficient: bool = False


class EconomyLedger:
    """
    Atomic credit/debit on player balances.

    Credits and debits run as one server-side step (adjust_counter) when the
    store has atomic writes, and through atomic_update otherwise. Results are
    clamped to [0, max_balance]. A player without a balance record is read
    as holding the starting balance.
    """

    def __init__(self, store: KeyValueStore, max_balance: int | None = None):
        self.store = store
        self.max_balance = max_balance or settings.max_balance

    def clamp(self, value: int) -> int:
        return max(0, min(self.max_balance, value))

    def _parse(self, raw: str | None) -> int:
        if raw is None:
            return settings.starting_balance
        try:
            return self.clamp(int(raw))
        except ValueError:
            logger.warning("Corrupted balance value %r, using starting balance", raw)
            return settings.starting_balance

    async def get_balance(self, player: str) -> int:
        """Current balance; a store failure reads as the fresh-player default."""
        return self._parse(await self.store.read(key("user", player)))

    async def has_balance(self, player: str) -> bool:
        return await self.store.read(key("user", player)) is not None

    async def open_account(self, player: str) -> bool:
        """Create the balance record with the starting balance; False if it already exists."""

        def mutate(raw: str | None) -> Mutation:
            if raw is not None:
                return Mutation(raw, False, write=False)
            return Mutation(str(settings.starting_balance), True)

        result = await self.store.atomic_update(key("user", player), mutate)
        return result.success and result.result

    async def credit(self, player: str, amount: int) -> LedgerResult:
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        return await self._adjust(player, amount, strict=False)

    async def debit(self, player: str, amount: int) -> LedgerResult:
        """Debit amount; fails without writing if the balance is insufficient."""
        if amount < 0:
            raise ValueError("debit amount must be non-negative")
        return await self._adjust(player, -amount, strict=True)

    async def apply_delta(self, player: str, delta: int) -> LedgerResult:
        """
        Book a net spin result. A loss larger than the balance (drained by a
        concurrent command) floors the balance at zero instead of failing.
        """
        if delta == 0:
            return LedgerResult(True, await self.get_balance(player))
        return await self._adjust(player, delta, strict=False)

    async def _adjust(self, player: str, delta: int, strict: bool) -> LedgerResult:
        name = key("user", player)
        if self.store.atomic:
            try:
                applied, balance = await self.store.adjust_counter(
                    name, delta, settings.starting_balance, self.max_balance, strict
                )
            except RedisError as e:
                logger.error("Balance change of %d for %s failed: %s", delta, player, e)
                return LedgerResult(False, await self.get_balance(player))
            if not applied:
                return LedgerResult(False, balance, insufficient=True)
            if not strict and delta < 0 and balance == 0:
                logger.warning("Balance of %s floored at 0 booking %d", player, delta)
            return LedgerResult(True, balance)

        def mutate(raw: str | None) -> Mutation:
            current = self._parse(raw)
            if strict and current + delta < 0:
                return Mutation(raw, LedgerResult(False, current, insufficient=True), write=False)
            new = self.clamp(current + delta)
            return Mutation(str(new), LedgerResult(True, new))

        result = await self.store.atomic_update(name, mutate)
        if not result.success:
            logger.error("Balance change of %d for %s failed", delta, player)
            return LedgerResult(False, await self.get_balance(player))
        return result.result

    async def set_balance(self, player: str, value: int) -> LedgerResult:
        new = self.clamp(value)
        result = await self.store.atomic_update(
            key("user", player), lambda raw: Mutation(str(new), new)
        )
        return LedgerResult(result.success, new if result.success else await self.get_balance(player))
