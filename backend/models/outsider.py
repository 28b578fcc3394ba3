from pydantic import BaseModel
from typing import Optional, List
from enum import Enum

from models.game import GameKind, RoomState


class OutsiderStatus(str, Enum):
    LOBBY = "lobby"
    PLAYING = "playing"
    FINISHED = "finished"


class SecretMode(str, Enum):
    LOCATION = "location"   # insiders share a location and each get a role there
    WORD = "word"           # simplified: insiders share a single word


class EndReason(str, Enum):
    ALL_VOTED = "all_voted"
    DEADLINE = "deadline"
    HOST = "host"
    OUTSIDER_GUESS = "outsider_guess"


class Location(BaseModel):
    location: str
    roles: List[str]


class Secret(BaseModel):
    mode: SecretMode = SecretMode.LOCATION
    value: str             # location name or shared word


class OutsiderPlayer(BaseModel):
    name: str
    is_outsider: bool = False
    location: str = ""     # empty for outsiders
    role: str = ""
    votes: List[str] = []  # names this player currently votes for (≤ outsider_count)

    def to_public(self) -> dict:
        """Safe representation — omits the hidden role card."""
        return {"name": self.name, "votes": list(self.votes)}


class OutsiderGuess(BaseModel):
    player_name: str
    guess: str
    correct: bool


class OutsiderMatch(BaseModel):
    """Game-scoped data, present from start until reset (kept once finished)."""
    secret: Secret
    started_at: float
    all_locations: List[str] = []
    eliminated_locations: List[str] = []   # the outsiders' notepad
    outsider_guess: Optional[OutsiderGuess] = None
    end_reason: Optional[EndReason] = None


class OutsiderState(RoomState):
    game: GameKind = GameKind.OUTSIDER
    status: OutsiderStatus = OutsiderStatus.LOBBY
    players: List[OutsiderPlayer] = []
    outsider_count: int = 1
    duration: int = 360
    match: Optional[OutsiderMatch] = None


class VoteCount(BaseModel):
    name: str
    votes: int
    was_outsider: bool


class VotingResults(BaseModel):
    vote_counts: List[VoteCount]
    max_votes: int
    outsiders: List[str]
    outsiders_caught: bool
    outsiders_won: bool
    decided_by_guess: bool
    secret: Optional[str] = None
