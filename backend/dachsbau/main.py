"""Dachsbau Slots FastAPI application."""
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from dachsbau import messages
from dachsbau.deferred import DeferredTasks
from dachsbau.errors import ErrorCode, GameError
from dachsbau.logic.engine import GameEngine
from dachsbau.middleware import ErrorHandlerMiddleware, PlayerMiddleware, normalize_player
from dachsbau.protocol import Action, CommandRequest
from dachsbau.spin_service import SpinService
from dachsbau.store import store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage Redis connection lifecycle."""
    await store.connect()
    yield
    await store.close()


app = FastAPI(
    title="Dachsbau Slots",
    version="0.1.0",
    description="Chat-bot slot machine economy",
    lifespan=lifespan,
)

app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(PlayerMiddleware)

# Game engine and command service
engine = GameEngine()
service = SpinService(store, engine)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


async def dispatch(player: str, action: str, amount: str | None, deferred: DeferredTasks) -> str:
    try:
        parsed = Action(action.strip().lower())
    except ValueError:
        raise GameError(ErrorCode.UNKNOWN_ACTION, messages.unknown_action_message(player, action))

    if parsed.is_spin:
        return await service.spin(player, amount, deferred)
    if parsed == Action.BALANCE:
        return await service.balance(player)
    if parsed == Action.ACCEPT:
        return await service.accept(player)
    if parsed == Action.DAILY:
        return await service.daily(player)
    return await service.peek(player)


async def respond(player: str, action: str, amount: str | None) -> PlainTextResponse:
    """
    Run one command and render it for chat.

    Deferred bookkeeping is attached as background work, so it runs after
    the response has been sent.
    """
    deferred = DeferredTasks()
    try:
        text = await dispatch(player, action, amount, deferred)
        response = PlainTextResponse(messages.add_dedup_suffix(text))
    except GameError as e:
        response = e.to_response(messages.add_dedup_suffix)
    response.background = deferred.attach(BackgroundTasks())
    return response


@app.get("/command", response_class=PlainTextResponse)
async def command(
    request: Request, action: str = Action.SLOTS.value, amount: str | None = None
) -> PlainTextResponse:
    """GET /command?action=&user=&amount= (user is validated by PlayerMiddleware)."""
    return await respond(request.state.player, action, amount)


@app.post("/command", response_class=PlainTextResponse)
async def command_post(request: Request) -> PlainTextResponse:
    """POST /command with a JSON body of the same fields."""
    try:
        body = CommandRequest.model_validate(await request.json())
    except (ValidationError, ValueError):
        raise GameError(ErrorCode.INVALID_REQUEST, "Invalid command body")
    player = normalize_player(body.user)
    if not player:
        raise GameError(ErrorCode.INVALID_REQUEST, "Missing required parameter: user")
    return await respond(player, body.action, body.amount)
