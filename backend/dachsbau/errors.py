"""Error codes and exceptions for chat command handling."""
from enum import Enum
from typing import Callable

from fastapi.responses import PlainTextResponse


class ErrorCode(str, Enum):
    """Error codes surfaced to the chat bot."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    NOT_UNLOCKED = "NOT_UNLOCKED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    SELF_BANNED = "SELF_BANNED"
    DISCLAIMER_REQUIRED = "DISCLAIMER_REQUIRED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Chat-facing messages are delivered with 200 so the bot relays them verbatim.
ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UNKNOWN_ACTION: 200,
    ErrorCode.INVALID_AMOUNT: 200,
    ErrorCode.NOT_UNLOCKED: 200,
    ErrorCode.INSUFFICIENT_FUNDS: 200,
    ErrorCode.COOLDOWN_ACTIVE: 200,
    ErrorCode.DUPLICATE_REQUEST: 200,
    ErrorCode.SELF_BANNED: 200,
    ErrorCode.DISCLAIMER_REQUIRED: 200,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Whether state may have been touched before the error was raised
ERROR_MUTATES_STATE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.UNKNOWN_ACTION: False,
    ErrorCode.INVALID_AMOUNT: False,
    ErrorCode.NOT_UNLOCKED: False,
    ErrorCode.INSUFFICIENT_FUNDS: False,
    ErrorCode.COOLDOWN_ACTIVE: False,
    ErrorCode.DUPLICATE_REQUEST: False,
    ErrorCode.SELF_BANNED: False,
    ErrorCode.DISCLAIMER_REQUIRED: False,
    ErrorCode.STORE_UNAVAILABLE: False,
    ErrorCode.INTERNAL_ERROR: True,
}


class GameError(Exception):
    """Base game error that maps to a plain-text chat response."""

    def __init__(
        self, code: ErrorCode, message: str | None = None, remaining_ms: int | None = None
    ):
        self.code = code
        # Cooldown left when the request was turned away by the cooldown guard
        self.remaining_ms = remaining_ms
        self.message = message if message is not None else f"Error: {code.value}"
        self.status_code = ERROR_HTTP_STATUS[code]
        self.mutates_state = ERROR_MUTATES_STATE[code]
        super().__init__(self.message)

    @property
    def silent(self) -> bool:
        """Duplicate requests are dropped with an empty body."""
        return self.code == ErrorCode.DUPLICATE_REQUEST

    def to_response(self, decorate: Callable[[str], str] | None = None) -> PlainTextResponse:
        """Convert to a plain-text response, optionally post-processing the text."""
        body = "" if self.silent else self.message
        if decorate is not None:
            body = decorate(body)
        return PlainTextResponse(body, status_code=self.status_code)


class RefundEscalationError(GameError):
    """A compensating refund failed; an operator has to settle it by hand."""

    def __init__(self, player: str, amount: int, message: str | None = None):
        self.player = player
        self.amount = amount
        super().__init__(
            ErrorCode.INTERNAL_ERROR,
            message or f"@{player} ❌ Activation failed and the refund of {amount} could not be booked. An admin has been notified.",
        )


class BookingError(GameError):
    """A spin was resolved but its balance change could not be written."""

    def __init__(self, player: str, delta: int):
        self.player = player
        self.delta = delta
        super().__init__(
            ErrorCode.INTERNAL_ERROR,
            f"@{player} ❌ Your spin result ({delta:+d} DT) could not be booked. An admin has been notified.",
        )
