"""Persisted per-player records. Expiry travels with the payload."""
import logging
from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError

from dachsbau.config import settings

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class TimedBuff(BaseModel):
    """A buff that is active until expire_at (epoch ms)."""

    expire_at: int

    def is_active(self, now_ms: int) -> bool:
        return now_ms < self.expire_at

    def ttl_seconds(self, now_ms: int) -> int:
        """Store TTL derived from the expiry, padded so the record outlives it."""
        remaining_ms = max(0, self.expire_at - now_ms)
        return -(-remaining_ms // 1000) + settings.buff_ttl_buffer_seconds


class UsesBuff(TimedBuff):
    uses: int = Field(ge=0)

    def is_active(self, now_ms: int) -> bool:
        return super().is_active(now_ms) and self.uses > 0


class StackBuff(TimedBuff):
    """Rage mode: a percentage that grows on losses."""

    stack: int = Field(default=0, ge=0)


class FreeSpinEntry(BaseModel):
    multiplier: int = Field(ge=1)
    count: int = Field(ge=0)


class FreeSpinQueue(BaseModel):
    entries: list[FreeSpinEntry] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(e.count for e in self.entries)


def parse_record(model: type[RecordT], raw: str | None) -> RecordT | None:
    """Validate a stored JSON payload; anything malformed reads as absent."""
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Discarding malformed %s record: %s", model.__name__, e.errors()[:1])
        return None
