import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The store itself is built lazily on the first request
    logger.info(f"Party Rooms up: store={settings.store_backend}, games: {', '.join(GAME_ACTIONS)}")
    yield
    logger.info("Party Rooms shutting down.")


app = FastAPI(
    title="Party Rooms",
    version=VERSION,
    description="Shared rooms for board race, word grid, sketch and outsider party games",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)


from routers.game_router import router as game_router
from routers.ws_router import router as ws_router
from services.room_service import GAMES

# Action names per game, as accepted by POST /api/rooms/{game}/{code}/actions/{action}
GAME_ACTIONS = {
    kind.value: sorted(spec.actions) + (["freeze_word"] if kind.value == "board_race" else [])
    for kind, spec in GAMES.items()
}

app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "service": "party-rooms",
        "version": VERSION,
        "store": settings.store_backend,
    }


@app.get("/api/games")
async def list_games():
    """Game kinds this server hosts and the actions each one accepts."""
    return GAME_ACTIONS


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
