"""Middleware for request validation and error handling."""
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from dachsbau.errors import ErrorCode, GameError

logger = logging.getLogger(__name__)


def normalize_player(raw: str | None) -> str | None:
    """Strip whitespace and a leading @; None if nothing usable is left."""
    if raw is None:
        return None
    name = raw.strip().lstrip("@").strip()
    return name or None


class PlayerMiddleware(BaseHTTPMiddleware):
    """Require a user on GET /command and store it on request.state."""

    # Paths that require ?user=
    PROTECTED_PATHS = {"/command"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.PROTECTED_PATHS and request.method == "GET":
            player = normalize_player(request.query_params.get("user"))
            if not player:
                error = GameError(ErrorCode.INVALID_REQUEST, "Missing required parameter: user")
                return error.to_response()
            request.state.player = player

        return await call_next(request)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Convert GameError exceptions to plain-text chat responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except GameError as e:
            return e.to_response()
        except Exception:
            logger.exception("Unhandled error on %s", request.url.path)
            error = GameError(ErrorCode.INTERNAL_ERROR, "❌ Something went wrong, try again later.")
            return error.to_response()
