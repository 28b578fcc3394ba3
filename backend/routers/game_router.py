"""
Room HTTP endpoints.

Routes:
  POST   /api/rooms/{game}                          — Create room, host joins first
  POST   /api/rooms/{game}/{code}/join              — Atomic join-with-verify
  GET    /api/rooms/{game}/{code}                   — Shared room document (outsider roles hidden)
  GET    /api/rooms/outsider/{code}/card?player=    — One player's private outsider card
  POST   /api/rooms/{game}/{code}/actions/{action}  — Run a game action
  POST   /api/rooms/{game}/{code}/reset             — Host resets to the lobby
  DELETE /api/rooms/{game}/{code}?player=           — Host deletes the room
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from games.errors import (
    CatalogError, IllegalTransition, NotHost, SessionNotFound, UnknownAction, UnknownGame,
)
from games.outsider import outsider
from models.game import (
    ActionRequest, CreateRoomRequest, CreateRoomResponse, JoinRoomRequest,
    JoinRoomResponse, ResetRequest, RoomResponse,
)
from services import room_service
from services.firestore_service import get_session_store
from services.room_service import ActionContext
from utils.codes import normalize_room_code

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])


def get_action_context() -> ActionContext:
    """Fresh clock reading + RNG per request. Overridden in tests."""
    return ActionContext()


def _to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, (UnknownGame, UnknownAction, SessionNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, NotHost):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, CatalogError):
        return HTTPException(status_code=422, detail={"reason": exc.reason, "message": str(exc)})
    if isinstance(exc, IllegalTransition):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=503, detail=str(exc))


_HANDLED = (UnknownGame, UnknownAction, SessionNotFound, NotHost, CatalogError, IllegalTransition)


def _room_response(state) -> RoomResponse:
    return RoomResponse(
        room_code=state.room_code,
        game=state.game,
        room=room_service.public_view(state),
        errors=room_service.validate_room(state),
    )


@router.post("/rooms/{game}", response_model=CreateRoomResponse, status_code=201)
async def create_room(
    game: str,
    body: CreateRoomRequest,
    store=Depends(get_session_store),
    ctx: ActionContext = Depends(get_action_context),
):
    """Create a room with a fresh unique code; the host is its first player."""
    try:
        state = await room_service.create_room(store, game, body.host_name, body.options, ctx)
    except _HANDLED as exc:
        raise _to_http(exc)
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return CreateRoomResponse(room_code=state.room_code, game=state.game, host_name=state.host_name)


@router.post("/rooms/{game}/{code}/join", response_model=JoinRoomResponse)
async def join_room(game: str, code: str, body: JoinRoomRequest, store=Depends(get_session_store)):
    """
    Add (or re-seat) a player. Concurrent joins can overwrite each other, so
    the write is verified and retried; a 503 means the caller should retry.
    """
    try:
        result = await room_service.join_room(store, game, code, body)
    except _HANDLED as exc:
        raise _to_http(exc)
    if not result.success:
        raise HTTPException(
            status_code=503,
            detail=f"Could not join after {result.attempts} attempts: {result.error}",
        )
    return JoinRoomResponse(
        room_code=normalize_room_code(code), player_name=body.player_name.strip(), attempts=result.attempts
    )


@router.get("/rooms/outsider/{code}/card")
async def get_outsider_card(
    code: str,
    player: str = Query(..., description="Player name as joined"),
    store=Depends(get_session_store),
):
    """Private role card — location and role for insiders, the notepad for outsiders."""
    try:
        state = await room_service.get_room(store, "outsider", code)
        return outsider.player_card(state, player)
    except _HANDLED as exc:
        raise _to_http(exc)


@router.get("/rooms/{game}/{code}", response_model=RoomResponse)
async def get_room(game: str, code: str, store=Depends(get_session_store)):
    try:
        state = await room_service.get_room(store, game, code)
    except _HANDLED as exc:
        raise _to_http(exc)
    return _room_response(state)


@router.post("/rooms/{game}/{code}/actions/{action}", response_model=RoomResponse)
async def run_action(
    game: str,
    code: str,
    action: str,
    body: ActionRequest,
    store=Depends(get_session_store),
    ctx: ActionContext = Depends(get_action_context),
):
    """Run one game action. Illegal moves are rejected with 409 and nothing is written."""
    try:
        state = await room_service.run_action(store, game, code, action, body.player, body.args, ctx)
    except _HANDLED as exc:
        raise _to_http(exc)
    return _room_response(state)


@router.post("/rooms/{game}/{code}/reset", response_model=RoomResponse)
async def reset_room(game: str, code: str, body: ResetRequest, store=Depends(get_session_store)):
    """Host only. Back to the lobby; players and host are kept."""
    try:
        state = await room_service.reset_room(store, game, code, body.player)
    except _HANDLED as exc:
        raise _to_http(exc)
    return _room_response(state)


@router.delete("/rooms/{game}/{code}", status_code=204)
async def delete_room(
    game: str,
    code: str,
    player: str = Query(..., description="Must be the room's host"),
    store=Depends(get_session_store),
):
    try:
        await room_service.delete_room(store, game, code, player)
    except _HANDLED as exc:
        raise _to_http(exc)
