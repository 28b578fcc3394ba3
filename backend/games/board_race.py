"""
Board-Race Word Game — pure deterministic Python.

Teams take turns explaining words against the clock. Every correct word moves
the playing team one square forward, every skip one square back. The first
team to reach the last square (59) wins.

Responsibilities:
- Round lifecycle: idle → active → summary → idle (next team)
- Word selection from the dealt deck
- Golden squares (bonus words that cannot be skipped)
- Deadline freeze of the word on screen when the countdown hits zero
- Drinking-mode payload when a full lap of turns completes

Every method takes a state and returns a NEW state. Illegal moves raise
IllegalTransition and leave the input untouched.
"""
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from games.catalog import sample_words
from games.errors import IllegalTransition
from models.board_race import (
    BoardRaceState, BoardRaceStatus, BoardRound, CardResolution, Team, UsedCard,
)
from utils.clock import seconds_remaining

logger = logging.getLogger(__name__)


class BoardRaceMachine:

    BOARD_END = 59
    DEFAULT_ROUND_DURATION = 60
    DEFAULT_CARD_COUNT = 200

    # ── Setup ─────────────────────────────────────────────────────────────────

    def initialize(
        self,
        teams: Sequence[Team],
        golden_rounds_enabled: bool = False,
        golden_squares: Sequence[int] = (),
        round_duration: int = DEFAULT_ROUND_DURATION,
        **room: Any,
    ) -> BoardRaceState:
        """Fresh game: every team on square 0, team 0 to play."""
        if not teams:
            raise IllegalTransition("At least one team is required")
        for idx, team in enumerate(teams):
            if not team.name.strip():
                raise IllegalTransition(f"Team {idx} is missing a name")
        squares = sorted({s for s in golden_squares if 0 <= s <= self.BOARD_END})
        return BoardRaceState(
            teams=[t.model_copy(update={"position": 0}) for t in teams],
            golden_rounds_enabled=golden_rounds_enabled,
            golden_squares=squares,
            round_duration=round_duration,
            **room,
        )

    def generate_cards(
        self,
        words: Sequence[str],
        cards_count: int = DEFAULT_CARD_COUNT,
        words_per_card: int = 1,
        rng: Optional[random.Random] = None,
    ) -> List[List[str]]:
        """Deal ``cards_count`` cards of ``words_per_card`` distinct words each."""
        if cards_count < 1 or words_per_card < 1:
            raise ValueError("cards_count and words_per_card must be positive")
        picked = sample_words(words, cards_count * words_per_card, rng)
        return [
            picked[i * words_per_card:(i + 1) * words_per_card]
            for i in range(cards_count)
        ]

    def deal(self, state: BoardRaceState, cards: List[List[str]]) -> BoardRaceState:
        if not cards:
            raise IllegalTransition("No cards provided")
        return state.model_copy(update={"cards": cards, "card_index": 0})

    def add_player(self, state: BoardRaceState, name: str, team_index: int) -> BoardRaceState:
        """Put ``name`` on team ``team_index`` (moving them if already on another team)."""
        name = name.strip()
        if not name:
            raise IllegalTransition("Player name is required")
        if not 0 <= team_index < len(state.teams):
            raise IllegalTransition(f"Invalid team index {team_index}")
        if name in state.teams[team_index].players:
            return state
        teams = []
        for idx, team in enumerate(state.teams):
            players = [p for p in team.players if p != name]
            if idx == team_index:
                players.append(name)
            teams.append(team.model_copy(update={"players": players}))
        return state.model_copy(update={"teams": teams})

    # ── Queries ───────────────────────────────────────────────────────────────

    def current_team(self, state: BoardRaceState) -> Optional[Team]:
        if not 0 <= state.current_turn < len(state.teams):
            return None
        return state.teams[state.current_turn]

    def is_player_turn(self, state: BoardRaceState, player_name: str) -> bool:
        team = self.current_team(state)
        return bool(team and player_name in team.players)

    def is_golden_square(self, state: BoardRaceState, position: int) -> bool:
        return state.golden_rounds_enabled and position in state.golden_squares

    @staticmethod
    def current_word(cards: Sequence[Sequence[str]], card_index: int, position: int) -> Optional[str]:
        """The word on screen: ``cards[card_index][position % card_width]``.

        Indexing by position lets one deck serve every square without reshuffling.
        """
        if not cards or not 0 <= card_index < len(cards):
            return None
        card = cards[card_index]
        if not card:
            return None
        return card[position % len(card)] or None

    def calculate_progress(self, state: BoardRaceState) -> Dict[str, int]:
        team = self.current_team(state)
        if not team:
            return {"start_pos": 0, "current_pos": 0, "moved": 0}
        start = state.round.start_position if state.round else team.position
        return {"start_pos": start, "current_pos": team.position, "moved": team.position - start}

    def final_rankings(self, state: BoardRaceState) -> List[Team]:
        return sorted(state.teams, key=lambda t: t.position, reverse=True)

    def time_remaining(self, state: BoardRaceState, now: float) -> int:
        if not state.round_active:
            return state.round_duration
        return seconds_remaining(state.round.started_at, state.round_duration, now)

    # ── Round lifecycle ───────────────────────────────────────────────────────

    def start_round(self, state: BoardRaceState, now: float) -> BoardRaceState:
        if state.status == BoardRaceStatus.FINISHED:
            raise IllegalTransition("Game is finished")
        if state.round is not None:
            raise IllegalTransition("Round is already active")
        team = self.current_team(state)
        if not team:
            raise IllegalTransition("Invalid current turn")

        round_ = BoardRound(
            started_at=now,
            start_position=team.position,
            golden_word=self.is_golden_square(state, team.position),
        )
        logger.info(
            f"[{state.room_code}] Round started for {team.name} at square {team.position}"
            f"{' (golden)' if round_.golden_word else ''}"
        )
        return state.model_copy(update={
            "status": BoardRaceStatus.PLAYING,
            "round": round_,
            "drinking_team": None,
        })

    def freeze_word(
        self, state: BoardRaceState, cards: Sequence[Sequence[str]], card_index: int
    ) -> BoardRaceState:
        """Capture the word on screen at the moment the countdown hits zero.

        A word already frozen (by this or another client) is kept as is.
        """
        self._require_active(state)
        if state.round.frozen_word:
            return state
        team = self.current_team(state)
        word = self.current_word(cards, card_index, team.position)
        if not word:
            raise IllegalTransition("Invalid card index")
        return state.model_copy(update={
            "round": state.round.model_copy(update={"frozen_word": word}),
        })

    def mark_correct(
        self,
        state: BoardRaceState,
        cards: Sequence[Sequence[str]],
        card_index: int,
        team_index: Optional[int] = None,
        is_deadline: bool = False,
    ) -> BoardRaceState:
        """The explaining team got the word: +1 square (clamped to the last square).

        ``team_index`` lets a golden/last word be claimed by another team.
        """
        self._require_active(state)
        acting = state.current_turn if team_index is None else team_index
        if not 0 <= acting < len(state.teams):
            raise IllegalTransition("Invalid team index")

        word = self._resolve_word(state, cards, card_index, is_deadline)
        golden = state.round.golden_word and not is_deadline
        if is_deadline:
            resolution = CardResolution.LAST_WORD
        elif golden:
            resolution = CardResolution.GOLDEN
        else:
            resolution = CardResolution.NORMAL

        used = UsedCard(
            word=word,
            status="correct",
            card_number=card_index + 1,
            resolution=resolution,
            team_that_guessed=acting if (is_deadline or state.round.golden_word) else None,
        )
        teams = [
            t.model_copy(update={"position": min(self.BOARD_END, t.position + 1)}) if idx == acting else t
            for idx, t in enumerate(state.teams)
        ]
        moved = teams[acting]
        used_cards = state.round.used_cards + [used]

        updates: Dict[str, Any] = {"teams": teams}
        round_updates: Dict[str, Any] = {
            "used_cards": used_cards,
            "score": sum(1 for c in used_cards if c.status == "correct"),
            # Golden flag is re-evaluated for the square the team just landed on
            "golden_word": self.is_golden_square(state, moved.position),
        }
        if moved.position >= self.BOARD_END:
            updates["status"] = BoardRaceStatus.FINISHED
            updates["winner_team"] = moved.name
            round_updates["phase"] = "summary"
            logger.info(f"[{state.room_code}] {moved.name} reached square {self.BOARD_END} and wins")
        if is_deadline:
            round_updates["phase"] = "summary"

        updates["round"] = state.round.model_copy(update=round_updates)
        return state.model_copy(update=updates)

    def mark_skip(
        self,
        state: BoardRaceState,
        cards: Sequence[Sequence[str]],
        card_index: int,
        is_deadline: bool = False,
    ) -> BoardRaceState:
        """The team passed on the word: −1 square (clamped at 0). Golden words cannot be skipped."""
        self._require_active(state)
        if state.round.golden_word and not is_deadline:
            raise IllegalTransition("Golden words cannot be skipped")

        word = self._resolve_word(state, cards, card_index, is_deadline)
        used = UsedCard(
            word=word,
            status="skipped",
            card_number=card_index + 1,
            resolution=CardResolution.LAST_WORD if is_deadline else CardResolution.NORMAL,
        )
        teams = [
            t.model_copy(update={"position": max(0, t.position - 1)}) if idx == state.current_turn else t
            for idx, t in enumerate(state.teams)
        ]
        used_cards = state.round.used_cards + [used]
        round_updates: Dict[str, Any] = {
            "used_cards": used_cards,
            "score": sum(1 for c in used_cards if c.status == "correct"),
        }
        if is_deadline:
            round_updates["phase"] = "summary"
        return state.model_copy(update={
            "teams": teams,
            "round": state.round.model_copy(update=round_updates),
        })

    def advance_card(self, state: BoardRaceState) -> BoardRaceState:
        """Move to the next card of the deck (wraps around)."""
        if not state.cards:
            return state
        return state.model_copy(update={"card_index": (state.card_index + 1) % len(state.cards)})

    def finish_round(self, state: BoardRaceState, drinking_mode: bool = False) -> BoardRaceState:
        """Close the summary and hand the turn to the next team."""
        if state.status == BoardRaceStatus.FINISHED:
            raise IllegalTransition("Game is finished")
        if not state.summary_shown:
            raise IllegalTransition("Round summary must be shown before finishing")

        next_turn = (state.current_turn + 1) % len(state.teams)
        drinking_team = None
        if drinking_mode and next_turn == 0:
            # First team in order with the lowest position drinks
            lowest = min(state.teams, key=lambda t: t.position)
            drinking_team = lowest.name
            logger.info(f"[{state.room_code}] Lap complete — {drinking_team} drinks")

        return state.model_copy(update={
            "current_turn": next_turn,
            "round": None,
            "drinking_team": drinking_team,
        })

    # ── Validation / reset ────────────────────────────────────────────────────

    def validate(self, state: BoardRaceState) -> List[str]:
        errors: List[str] = []
        if not state.teams:
            errors.append("Teams must not be empty")
        for idx, team in enumerate(state.teams):
            if not team.name:
                errors.append(f"Team {idx} missing name")
            if not 0 <= team.position <= self.BOARD_END:
                errors.append(f"Team {idx} position must be between 0 and {self.BOARD_END}")
        if not 0 <= state.current_turn < max(len(state.teams), 1):
            errors.append("Invalid current turn")
        if state.status == BoardRaceStatus.FINISHED and not state.winner_team:
            errors.append("Finished game has no winner")
        if state.round is not None and state.status == BoardRaceStatus.WAITING:
            errors.append("Round in progress while waiting")
        return errors

    def reset(self, state: BoardRaceState) -> BoardRaceState:
        return state.model_copy(update={
            "teams": [t.model_copy(update={"position": 0}) for t in state.teams],
            "current_turn": 0,
            "status": BoardRaceStatus.WAITING,
            "round": None,
            "winner_team": None,
            "drinking_team": None,
            "cards": [],
            "card_index": 0,
        })

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_active(self, state: BoardRaceState) -> None:
        if state.status == BoardRaceStatus.FINISHED:
            raise IllegalTransition("Game is finished")
        if not state.round_active:
            raise IllegalTransition("No active round")

    def _resolve_word(
        self,
        state: BoardRaceState,
        cards: Sequence[Sequence[str]],
        card_index: int,
        is_deadline: bool,
    ) -> str:
        # After the deadline the scored word is the frozen one, not whatever
        # the index formula yields now.
        if is_deadline and state.round.frozen_word:
            return state.round.frozen_word
        word = self.current_word(cards, card_index, self.current_team(state).position)
        if not word:
            raise IllegalTransition("Invalid card index")
        return word


# Module-level singleton
board_race = BoardRaceMachine()
