from pydantic import BaseModel
from typing import Optional, List, Dict, Literal, Tuple
from enum import Enum

from models.game import GameKind, RoomState


class SketchStatus(str, Enum):
    LOBBY = "lobby"
    PLAYING = "playing"
    FINISHED = "finished"


class SketchPlayer(BaseModel):
    name: str
    score: int = 0


class Stroke(BaseModel):
    points: List[Tuple[float, float]] = []
    color: str = "#000000"
    width: float = 4.0


class Guess(BaseModel):
    player_name: str
    guess: str
    timestamp: float
    is_correct: bool = False


class SketchRound(BaseModel):
    """Round-scoped data. ``phase == "summary"`` once the round has been scored."""
    phase: Literal["active", "summary"] = "active"
    word: str
    started_at: float
    drawing: List[Stroke] = []
    guesses: List[Guess] = []
    round_winner: Optional[str] = None
    points_awarded: Dict[str, int] = {}   # player name -> points earned this round
    drinking_players: Optional[List[str]] = None


class SketchState(RoomState):
    game: GameKind = GameKind.SKETCH
    status: SketchStatus = SketchStatus.LOBBY
    players: List[SketchPlayer] = []
    current_turn_index: int = 0
    round: Optional[SketchRound] = None
    winner_name: Optional[str] = None

    @property
    def round_active(self) -> bool:
        return self.round is not None and self.round.phase == "active"

    @property
    def summary_shown(self) -> bool:
        return self.round is not None and self.round.phase == "summary"
