from pydantic import BaseModel
from typing import Optional, List, Literal
from enum import Enum

from models.game import GameKind, RoomState


class BoardRaceStatus(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class CardResolution(str, Enum):
    NORMAL = "normal"
    LAST_WORD = "last_word"   # resolved after the countdown hit zero
    GOLDEN = "golden"         # word drawn while standing on a golden square


class Team(BaseModel):
    name: str
    players: List[str] = []
    position: int = 0


class UsedCard(BaseModel):
    word: str
    status: Literal["correct", "skipped"]
    card_number: int
    resolution: CardResolution = CardResolution.NORMAL
    team_that_guessed: Optional[int] = None


class BoardRound(BaseModel):
    """Everything that only exists while a team is playing a round.

    ``phase == "active"`` while the clock runs; ``"summary"`` once time ran out
    (or the board was won) and the results are on screen.
    """
    phase: Literal["active", "summary"] = "active"
    started_at: float
    start_position: int
    used_cards: List[UsedCard] = []
    score: int = 0
    golden_word: bool = False
    frozen_word: Optional[str] = None  # word on screen when the countdown hit zero


class BoardRaceState(RoomState):
    game: GameKind = GameKind.BOARD_RACE
    status: BoardRaceStatus = BoardRaceStatus.WAITING
    teams: List[Team] = []
    current_turn: int = 0
    round: Optional[BoardRound] = None
    winner_team: Optional[str] = None
    drinking_team: Optional[str] = None
    golden_rounds_enabled: bool = False
    golden_squares: List[int] = []
    round_duration: int = 60
    # Deck dealt at game start; the word shown is cards[card_index][position % width]
    cards: List[List[str]] = []
    card_index: int = 0
    words_per_card: int = 1

    @property
    def round_active(self) -> bool:
        return self.round is not None and self.round.phase == "active"

    @property
    def summary_shown(self) -> bool:
        return self.round is not None and self.round.phase == "summary"
