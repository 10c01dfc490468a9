"""Request models for the chat-bot command endpoint."""
from enum import Enum

from pydantic import BaseModel, Field


class Action(str, Enum):
    """Recognised command actions."""

    SLOTS = "slots"
    SLOT = "slot"
    SPIN = "spin"
    BALANCE = "balance"
    ACCEPT = "accept"
    PEEK = "peek"
    DAILY = "daily"

    @property
    def is_spin(self) -> bool:
        return self in (Action.SLOTS, Action.SLOT, Action.SPIN)


class CommandRequest(BaseModel):
    """POST /command body; GET /command carries the same fields as query params."""

    action: str = Field(default=Action.SLOTS.value, max_length=32)
    user: str = Field(min_length=1, max_length=32)
    amount: str | None = Field(default=None, max_length=32)
