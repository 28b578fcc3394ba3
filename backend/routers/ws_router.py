"""
WebSocket Hub — live room updates.

URL: /ws/{game}/{room_code}?player={player_name}

Connection flow:
  1. Validate game kind + room exist (close 4404 otherwise)
  2. Subscribe to the room document in the session store
  3. Every push goes through the room's GuardedReconciler; accepted pushes are
     forwarded as "room_update" (the first one doubles as the snapshot)
  4. Message loop (dispatcher below)
  5. Room deleted → close 4404. Disconnect → unsubscribe.

Client → server message types:
  ping    — keep-alive heartbeat → responds with "pong"
  action  — {"action": name, "args": {...}} — same as the HTTP action route
"""
import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from games.errors import (
    CatalogError, IllegalTransition, NotHost, SessionDeleted, SessionNotFound, UnknownAction, UnknownGame,
)
from models.game import WSMessage
from services import room_service
from services.firestore_service import get_session_store
from services.room_sync import GuardedReconciler, ReconcileOutcome
from utils.codes import normalize_room_code

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_CODES = {
    UnknownAction: "UNKNOWN_ACTION",
    NotHost: "NOT_HOST",
    CatalogError: "CATALOG_ERROR",
    IllegalTransition: "ILLEGAL_TRANSITION",
    SessionNotFound: "ROOM_NOT_FOUND",
}


@router.websocket("/ws/{game}/{room_code}")
async def room_socket(
    ws: WebSocket,
    game: str,
    room_code: str,
    player: str = Query(..., description="Player name as joined"),
):
    store = get_session_store()
    code = normalize_room_code(room_code)

    # ── Validate game and room ─────────────────────────────────────────────────
    try:
        spec = room_service.get_game_spec(game)
    except UnknownGame:
        await ws.close(code=4404, reason="Unknown game")
        return
    if await store.get(spec.collection, code) is None:
        await ws.close(code=4404, reason="Room not found")
        return

    await ws.accept()
    logger.debug(f"[{code}] {player} connected")

    # ── Subscribe ──────────────────────────────────────────────────────────────
    # Firestore pushes arrive on a background thread; hop back onto this loop.
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = store.subscribe(
        spec.collection, code, lambda doc: loop.call_soon_threadsafe(queue.put_nowait, doc)
    )
    reconciler = room_service.make_reconciler(game, code)
    forwarder = asyncio.create_task(_forward_updates(ws, reconciler, spec, queue))

    # ── Message loop ───────────────────────────────────────────────────────────
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = WSMessage.model_validate_json(raw)
            except ValidationError:
                await ws.send_json({"type": "error", "message": "Invalid message", "code": "PARSE_ERROR"})
                continue
            await _dispatch_message(ws, store, game, code, player, msg.type, msg.data)
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        forwarder.cancel()
        try:
            await forwarder
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # Usually a send to a socket the client already closed
            logger.warning(f"[{code}] Update forwarder for {player} failed: {e}")
        logger.debug(f"[{code}] {player} disconnected")


async def _forward_updates(ws: WebSocket, reconciler: GuardedReconciler, spec, queue: asyncio.Queue) -> None:
    while True:
        doc = await queue.get()
        try:
            outcome, local = reconciler.receive(doc)
        except SessionDeleted:
            logger.info(f"[{reconciler.room_id}] Room deleted — closing socket")
            await ws.close(code=4404, reason="Room deleted")
            return
        if outcome == ReconcileOutcome.ACCEPTED:
            await ws.send_json({"type": "room_update", "room": room_service.public_view(spec.load(local))})


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _dispatch_message(
    ws: WebSocket, store, game: str, code: str, player: str, msg_type: str, data: Dict[str, Any]
) -> None:
    if msg_type == "ping":
        await ws.send_json({"type": "pong"})

    elif msg_type == "action":
        action = data.get("action", "")
        args = data.get("args") if isinstance(data.get("args"), dict) else {}
        try:
            await room_service.run_action(store, game, code, action, player, args)
        except tuple(_ERROR_CODES) as exc:
            error_code = next(c for cls, c in _ERROR_CODES.items() if isinstance(exc, cls))
            await ws.send_json({"type": "error", "message": str(exc), "code": error_code})

    else:
        await ws.send_json({
            "type": "error",
            "message": f"Unknown message type: '{msg_type}'",
            "code": "UNKNOWN_TYPE",
        })
