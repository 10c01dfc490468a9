"""Hourly jackpot: one lucky UTC second per hour, claimed once."""
import logging
from datetime import datetime, timezone

from redis.exceptions import RedisError

from dachsbau.config import settings
from dachsbau.store import KeyValueStore

logger = logging.getLogger(__name__)


def lucky_second(day: int, month: int, hour: int) -> int:
    return (day * 100 + month * 10 + hour) % 60


def claim_key(moment: datetime) -> str:
    return f"jackpot:{moment.day}-{moment.month}-{moment.hour}"


class HourlyJackpot:
    def __init__(self, store: KeyValueStore, amount: int | None = None):
        self.store = store
        self.amount = amount or settings.hourly_jackpot_amount

    async def try_claim(self, now_ms: int) -> int:
        """Return the jackpot amount if this spin hit the lucky second first, else 0."""
        moment = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
        if moment.second != lucky_second(moment.day, moment.month, moment.hour):
            return 0
        try:
            claimed = await self.store.set_if_absent(
                claim_key(moment), str(now_ms), ttl_ms=settings.jackpot_claim_ttl_seconds * 1000
            )
        except RedisError as e:
            logger.warning("Jackpot claim failed: %s", e)
            return 0
        if claimed:
            logger.info("Hourly jackpot claimed at %s", moment.isoformat())
            return self.amount
        return 0
