"""
Draw-and-Guess — one artist draws, everyone else guesses.

Scoring is keyed to how long after the round started a correct guess landed:
  0–20s → 3 points, 21–40s → 2 points, 41s and later → 1 point.
The artist earns 1 point if anybody guessed. First to 12 wins.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from games.errors import IllegalTransition
from models.sketch import Guess, SketchPlayer, SketchRound, SketchState, SketchStatus, Stroke
from utils.clock import elapsed_seconds, seconds_remaining
from utils.codes import normalize_text

logger = logging.getLogger(__name__)

WINNING_SCORE = 12
ROUND_DURATION = 60
ARTIST_POINTS = 1


class SketchMachine:

    def initialize(self, players: Sequence[str], **room: Any) -> SketchState:
        names = [n.strip() for n in players if n and n.strip()]
        if not names:
            raise IllegalTransition("Need at least one player")
        if len(set(names)) != len(names):
            raise IllegalTransition("Player names must be unique")
        return SketchState(players=[SketchPlayer(name=n) for n in names], **room)

    def add_player(self, state: SketchState, name: str) -> SketchState:
        name = name.strip()
        if not name:
            raise IllegalTransition("Player name is required")
        if any(p.name == name for p in state.players):
            return state
        if state.status != SketchStatus.LOBBY:
            raise IllegalTransition("Cannot join a game in progress")
        return state.model_copy(update={"players": state.players + [SketchPlayer(name=name)]})

    def start_game(self, state: SketchState, word: str, now: float) -> SketchState:
        if state.status != SketchStatus.LOBBY:
            raise IllegalTransition("Game must be in lobby status")
        if len(state.players) < 2:
            raise IllegalTransition("Need at least 2 players")
        word = self._check_word(word)
        logger.info(f"[{state.room_code}] Game started — {state.players[0].name} draws first")
        return state.model_copy(update={
            "status": SketchStatus.PLAYING,
            "current_turn_index": 0,
            "round": SketchRound(word=word, started_at=now),
            "winner_name": None,
        })

    # ── Round actions ─────────────────────────────────────────────────────────

    def update_drawing(self, state: SketchState, strokes: Sequence[Any]) -> SketchState:
        self._require_active(state)
        if not isinstance(strokes, (list, tuple)):
            raise IllegalTransition("Strokes must be a list")
        try:
            drawing = [s if isinstance(s, Stroke) else Stroke.model_validate(s) for s in strokes]
        except ValidationError as e:
            raise IllegalTransition(f"Invalid stroke: {e.error_count()} error(s)")
        return state.model_copy(update={"round": state.round.model_copy(update={"drawing": drawing})})

    @staticmethod
    def points_for_elapsed(seconds: int) -> int:
        if seconds <= 20:
            return 3
        if seconds <= 40:
            return 2
        return 1

    def submit_guess(self, state: SketchState, player_name: str, guess: str, now: float) -> SketchState:
        self._require_active(state)
        if player_name == self.current_artist(state):
            raise IllegalTransition("Artist cannot submit a guess")
        if not any(p.name == player_name for p in state.players):
            raise IllegalTransition(f"Unknown player: {player_name}")
        if not isinstance(guess, str) or not guess.strip():
            raise IllegalTransition("Invalid guess")

        is_correct = normalize_text(guess) == normalize_text(state.round.word)
        entry = Guess(player_name=player_name, guess=guess.strip(), timestamp=now, is_correct=is_correct)
        guesses = state.round.guesses + [entry]
        timer_expired = elapsed_seconds(state.round.started_at, now) >= ROUND_DURATION

        if is_correct or timer_expired:
            return self._end_round(state, guesses)
        return state.model_copy(update={"round": state.round.model_copy(update={"guesses": guesses})})

    def time_expired(self, state: SketchState, now: float, drinking_mode: bool = False) -> SketchState:
        """Deadline reached. Scores whatever correct guesses exist (normally none)."""
        self._require_active(state)
        if elapsed_seconds(state.round.started_at, now) < ROUND_DURATION:
            raise IllegalTransition("Round timer has not expired yet")
        logger.info(f"[{state.room_code}] Round timed out")
        return self._end_round(state, state.round.guesses, drinking_mode)

    def next_round(self, state: SketchState, next_word: str, now: float) -> SketchState:
        if state.status == SketchStatus.FINISHED:
            raise IllegalTransition("Game is already finished")
        if not state.summary_shown:
            raise IllegalTransition("Round summary must be shown")
        next_word = self._check_word(next_word)

        count = len(state.players)
        next_index = state.current_turn_index
        for step in range(1, count + 1):
            candidate = (state.current_turn_index + step) % count
            if state.players[candidate].name.strip():
                next_index = candidate
                break

        return state.model_copy(update={
            "current_turn_index": next_index,
            "round": SketchRound(word=next_word, started_at=now),
        })

    # ── Queries ───────────────────────────────────────────────────────────────

    def current_artist(self, state: SketchState) -> str:
        if not state.players or not 0 <= state.current_turn_index < len(state.players):
            return ""
        return state.players[state.current_turn_index].name

    def is_player_turn(self, state: SketchState, player_name: str) -> bool:
        return bool(player_name) and self.current_artist(state) == player_name

    def correct_guessers(self, state: SketchState) -> List[str]:
        if state.round is None:
            return []
        names: List[str] = []
        for g in state.round.guesses:
            if g.is_correct and g.player_name not in names:
                names.append(g.player_name)
        return names

    def is_timer_expired(self, state: SketchState, now: float) -> bool:
        if not state.round_active:
            return False
        return elapsed_seconds(state.round.started_at, now) >= ROUND_DURATION

    def time_remaining(self, state: SketchState, now: float) -> int:
        if state.round is None:
            return ROUND_DURATION
        return seconds_remaining(state.round.started_at, ROUND_DURATION, now)

    # ── Validation / reset ────────────────────────────────────────────────────

    def validate(self, state: SketchState) -> List[str]:
        errors: List[str] = []
        if len(state.players) < 2 and state.status != SketchStatus.LOBBY:
            errors.append("Need at least 2 players")
        for idx, player in enumerate(state.players):
            if not player.name:
                errors.append(f"Player {idx} missing name")
            if player.score < 0:
                errors.append(f"Player {idx} score must be non-negative")
        if state.players and not 0 <= state.current_turn_index < len(state.players):
            errors.append("Invalid current turn index")
        if state.status == SketchStatus.PLAYING and state.round is None:
            errors.append("Playing game has no round")
        if state.status == SketchStatus.FINISHED and not state.winner_name:
            errors.append("Finished game has no winner")
        return errors

    def reset(self, state: SketchState) -> SketchState:
        return state.model_copy(update={
            "players": [p.model_copy(update={"score": 0}) for p in state.players],
            "status": SketchStatus.LOBBY,
            "current_turn_index": 0,
            "round": None,
            "winner_name": None,
        })

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_active(self, state: SketchState) -> None:
        if state.status != SketchStatus.PLAYING:
            raise IllegalTransition("Game must be in playing status")
        if not state.round_active:
            raise IllegalTransition("No active round")

    @staticmethod
    def _check_word(word: str) -> str:
        if not isinstance(word, str) or not word.strip():
            raise IllegalTransition("Invalid word")
        return word.strip()

    def _end_round(
        self, state: SketchState, guesses: List[Guess], drinking_mode: bool = False
    ) -> SketchState:
        round_ = state.round
        artist = self.current_artist(state)

        # Best tier per guesser, ordered by first correct timestamp
        awarded: Dict[str, int] = {}
        for g in sorted((g for g in guesses if g.is_correct), key=lambda g: g.timestamp):
            points = self.points_for_elapsed(elapsed_seconds(round_.started_at, g.timestamp))
            awarded[g.player_name] = max(points, awarded.get(g.player_name, 0))
        round_winner = next(iter(awarded), None)
        if awarded:
            awarded[artist] = ARTIST_POINTS

        scores = {p.name: p.score for p in state.players}
        winner_name: Optional[str] = None
        for name, points in awarded.items():
            scores[name] = scores.get(name, 0) + points
            if winner_name is None and scores[name] >= WINNING_SCORE:
                winner_name = name

        drinking: Optional[List[str]] = None
        if drinking_mode:
            drinking = [p.name for p in state.players if p.name != artist and p.name not in awarded] or None

        players = [p.model_copy(update={"score": scores[p.name]}) for p in state.players]
        updates: Dict[str, Any] = {
            "players": players,
            "round": round_.model_copy(update={
                "phase": "summary",
                "guesses": guesses,
                "round_winner": round_winner,
                "points_awarded": awarded,
                "drinking_players": drinking,
            }),
        }
        if winner_name:
            logger.info(f"[{state.room_code}] {winner_name} wins with {scores[winner_name]} points")
            updates["status"] = SketchStatus.FINISHED
            updates["winner_name"] = winner_name
        return state.model_copy(update=updates)


# Module-level singleton
sketch = SketchMachine()
