from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum
import time


class GameKind(str, Enum):
    BOARD_RACE = "board_race"   # teams race along the board by explaining words
    WORD_GRID = "word_grid"     # two teams, 25-cell grid, spymaster clues
    SKETCH = "sketch"           # draw-and-guess
    OUTSIDER = "outsider"       # hidden-role deduction


# One Firestore collection per game kind; the room code is the document id.
COLLECTIONS: Dict[GameKind, str] = {
    GameKind.BOARD_RACE: "board_race_rooms",
    GameKind.WORD_GRID: "word_grid_rooms",
    GameKind.SKETCH: "sketch_rooms",
    GameKind.OUTSIDER: "outsider_rooms",
}


class RoomState(BaseModel):
    """Fields every session document carries, whatever the game."""
    room_code: str = ""
    game: GameKind
    host_name: str = ""          # set once at creation, survives reset
    created_at: float = Field(default_factory=time.time)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ── WebSocket message shapes ──────────────────────────────────────────────────

class WSMessage(BaseModel):
    type: str
    data: Dict[str, Any] = {}


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateRoomRequest(BaseModel):
    host_name: str
    options: Dict[str, Any] = {}  # game-specific: team names, golden squares, mode…


class CreateRoomResponse(BaseModel):
    room_code: str
    game: GameKind
    host_name: str


class JoinRoomRequest(BaseModel):
    player_name: str
    team: Optional[Any] = None        # team index (board_race) or color (word_grid)
    as_spymaster: bool = False


class JoinRoomResponse(BaseModel):
    room_code: str
    player_name: str
    attempts: int


class ActionRequest(BaseModel):
    player: str
    args: Dict[str, Any] = {}


class ResetRequest(BaseModel):
    player: str


class RoomResponse(BaseModel):
    room_code: str
    game: GameKind
    room: Dict[str, Any]
    errors: List[str] = []
