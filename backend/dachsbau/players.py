"""Player gates (self-ban, disclaimer), daily flag, rank and spin stats."""
import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from dachsbau.config import settings
from dachsbau.records import parse_record
from dachsbau.store import KeyValueStore, Mutation, key

logger = logging.getLogger(__name__)


def local_date(now_ms: int) -> date:
    """Calendar day of an epoch-ms timestamp in the daily reset zone."""
    return datetime.fromtimestamp(now_ms / 1000, tz=ZoneInfo(settings.daily_timezone)).date()


def ms_until_next_day(now_ms: int) -> int:
    """Time left until local midnight, when the daily bonus resets."""
    zone = ZoneInfo(settings.daily_timezone)
    tomorrow = local_date(now_ms) + timedelta(days=1)
    midnight = datetime.combine(tomorrow, time.min, tzinfo=zone)
    return int(midnight.timestamp() * 1000) - now_ms


class SpinStats(BaseModel):
    """Lifetime counters kept for the stats/achievement side."""

    total_spins: int = 0
    total_wins: int = 0
    free_spins_used: int = 0
    insurance_used: int = 0
    biggest_win: int = 0
    total_won: int = 0
    total_lost: int = 0
    dachs_seen: int = 0


class PlayerRepository:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def is_self_banned(self, player: str) -> bool:
        return await self.store.read(key("selfban", player)) is not None

    async def self_ban(self, player: str, now_ms: int) -> bool:
        return await self.store.write(key("selfban", player), str(now_ms))

    async def has_accepted_disclaimer(self, player: str) -> bool:
        return await self.store.read(key("disclaimer", player)) is not None

    async def accept_disclaimer(self, player: str) -> bool:
        return await self.store.write(key("disclaimer", player), "accepted")

    async def last_daily(self, player: str) -> int | None:
        """Epoch ms of the last daily claim, if any."""
        raw = await self.store.read(key("daily", player))
        try:
            return None if raw is None else int(raw)
        except ValueError:
            logger.warning("Corrupted daily timestamp for %s: %r", player, raw)
            return None

    async def has_claimed_daily(self, player: str, now_ms: int) -> bool:
        """Whether the daily bonus was already taken on now_ms's local day."""
        last = await self.last_daily(player)
        return last is not None and local_date(last) == local_date(now_ms)

    async def claim_daily(self, player: str, now_ms: int) -> bool:
        """Mark today's daily bonus as taken; False if it already was."""
        today = local_date(now_ms)

        def mutate(raw: str | None) -> Mutation:
            if raw is not None and raw.isdigit() and local_date(int(raw)) == today:
                return Mutation(raw, False, write=False)
            return Mutation(str(now_ms), True, ttl_seconds=settings.daily_ttl_seconds)

        result = await self.store.atomic_update(key("daily", player), mutate)
        return result.success and result.result

    async def get_rank(self, player: str) -> str | None:
        return await self.store.read(key("rank", player))

    async def get_stats(self, player: str) -> SpinStats:
        return parse_record(SpinStats, await self.store.read(key("stats", player))) or SpinStats()

    async def record_spin(
        self,
        player: str,
        payout: int,
        cost: int,
        free_spin_used: bool,
        insurance_used: bool,
        dachs_count: int,
    ) -> SpinStats | None:
        """Fold one finished spin into the lifetime counters."""

        def mutate(raw: str | None) -> Mutation:
            stats = parse_record(SpinStats, raw) or SpinStats()
            stats.total_spins += 1
            if payout > 0:
                stats.total_wins += 1
                stats.total_won += payout
                stats.biggest_win = max(stats.biggest_win, payout)
            stats.total_lost += cost
            stats.free_spins_used += int(free_spin_used)
            stats.insurance_used += int(insurance_used)
            stats.dachs_seen += dachs_count
            return Mutation(stats.model_dump_json(), stats)

        result = await self.store.atomic_update(key("stats", player), mutate)
        if not result.success:
            logger.warning("Stats update dropped for %s", player)
            return None
        return result.result
