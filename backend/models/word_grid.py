from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from enum import Enum

from models.game import GameKind, RoomState


class TeamColor(str, Enum):
    RED = "red"
    BLUE = "blue"

    @property
    def opponent(self) -> "TeamColor":
        return TeamColor.BLUE if self is TeamColor.RED else TeamColor.RED


class CellColor(str, Enum):
    RED = "red"
    BLUE = "blue"
    NEUTRAL = "neutral"
    FORBIDDEN = "forbidden"   # revealing it loses the game


class GridMode(str, Enum):
    FRIENDS = "friends"   # same room, no turn timer
    RIVALS = "rivals"     # remote play, timed clue/guess phases


class WordGridStatus(str, Enum):
    SETUP = "setup"
    PLAYING = "playing"
    FINISHED = "finished"


class TeamRoster(BaseModel):
    spymaster: Optional[str] = None
    guessers: List[str] = []
    revealed: List[int] = []   # board indices visible to this team


class Clue(BaseModel):
    """The pending clue. Present only while the current team is guessing."""
    number: int
    word: Optional[str] = None
    guesses_remaining: int


class WordGridState(RoomState):
    game: GameKind = GameKind.WORD_GRID
    status: WordGridStatus = WordGridStatus.SETUP
    mode: GridMode = GridMode.FRIENDS
    red_team: TeamRoster = Field(default_factory=TeamRoster)
    blue_team: TeamRoster = Field(default_factory=TeamRoster)
    board_words: List[str] = []
    key_map: List[CellColor] = []
    starting_team: TeamColor = TeamColor.RED
    current_turn: TeamColor = TeamColor.RED
    turn_phase: Literal["clue", "guess"] = "clue"
    clue: Optional[Clue] = None
    turn_started_at: Optional[float] = None
    turn_duration: int = 90
    winner_team: Optional[TeamColor] = None

    def roster(self, team: TeamColor) -> TeamRoster:
        return self.red_team if team == TeamColor.RED else self.blue_team
