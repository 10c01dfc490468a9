"""Paid token activation with a compensating refund."""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from dachsbau.buffs import BuffRepository, load_grid_buffs
from dachsbau.config import settings
from dachsbau.errors import ErrorCode, GameError, RefundEscalationError
from dachsbau.ledger import EconomyLedger
from dachsbau.logic.engine import GameEngine

logger = logging.getLogger(__name__)

PEEK_PRICE = 75


async def activate_paid_item(
    ledger: EconomyLedger,
    player: str,
    cost: int,
    activate: Callable[[], Awaitable[Any]],
    timeout_seconds: float | None = None,
) -> Any:
    """
    Charge cost, then run the activation.

    If the activation fails or times out the cost is credited back and the
    player gets an INTERNAL_ERROR message. If the refund cannot be booked
    either, the loss is escalated with RefundEscalationError.
    """
    charged = await ledger.debit(player, cost)
    if not charged.success:
        raise GameError(
            ErrorCode.INSUFFICIENT_FUNDS,
            f"@{player} ❌ Not enough DachsTaler! You need {cost}, you have {charged.new_balance}.",
        )

    timeout = timeout_seconds or settings.activation_timeout_seconds
    try:
        return await asyncio.wait_for(activate(), timeout=timeout)
    except Exception as e:
        logger.warning("Activation for %s failed after charging %d: %r", player, cost, e)
        refund = await ledger.credit(player, cost)
        if not refund.success:
            logger.critical(
                "REFUND FAILED: %s was charged %d for a failed activation, manual refund required",
                player,
                cost,
            )
            raise RefundEscalationError(player, cost) from e
        raise GameError(
            ErrorCode.INTERNAL_ERROR,
            f"@{player} ❌ Activation failed, your {cost} DachsTaler were refunded.",
        ) from e


async def purchase_peek(
    ledger: EconomyLedger,
    buffs: BuffRepository,
    engine: GameEngine,
    player: str,
    cost: int,
    now_ms: int,
) -> bool:
    """
    Sell a preview of the next grid. The preview is generated with all of
    the player's current grid buffs and stored in the peek cache, where the
    next spin consumes it. Returns whether the previewed grid wins.
    """

    async def generate_and_store() -> bool:
        grid = engine.generate_grid(await load_grid_buffs(buffs, player, now_ms))
        if not await buffs.store_peek_grid(player, grid):
            raise RuntimeError("peek grid could not be stored")
        return engine.calculate_win(list(grid)).is_win

    return await activate_paid_item(ledger, player, cost, generate_and_store)
