"""
Team Word-Guessing Grid — pure deterministic Python.

25 words on a 5×5 grid. A hidden key colors 9 cells for the starting team,
8 for the other team, 7 neutral and 1 forbidden. Spymasters give a clue and a
number; their team then reveals cells one at a time.

Rules implemented here:
- Clue budget is number + 1 (one bonus guess beyond the stated count)
- Forbidden cell → immediate loss for the revealing team
- Wrong color or neutral → turn passes to the other team
- A team with no unrevealed cells left wins

Remaining-cell counts are always re-derived from key_map + revealed lists,
never kept as counters.
"""
import logging
import random
from typing import Any, Dict, List, Optional, Sequence, Set

from games.catalog import sample_words
from games.errors import IllegalTransition
from models.word_grid import (
    CellColor, Clue, GridMode, TeamColor, TeamRoster, WordGridState, WordGridStatus,
)
from utils.clock import seconds_remaining

logger = logging.getLogger(__name__)


class WordGridMachine:

    BOARD_SIZE = 25
    STARTING_TEAM_CELLS = 9
    OTHER_TEAM_CELLS = 8
    NEUTRAL_CELLS = 7
    FORBIDDEN_CELLS = 1

    # ── Board generation ──────────────────────────────────────────────────────

    def generate_key_map(self, starting_team: TeamColor, rng: Optional[random.Random] = None) -> List[CellColor]:
        """9/8/7/1 key, Fisher–Yates shuffled. The starting team gets the extra cell."""
        starting_team = TeamColor(starting_team)
        rng = rng or random.Random()
        key_map = (
            [CellColor(starting_team.value)] * self.STARTING_TEAM_CELLS
            + [CellColor(starting_team.opponent.value)] * self.OTHER_TEAM_CELLS
            + [CellColor.NEUTRAL] * self.NEUTRAL_CELLS
            + [CellColor.FORBIDDEN] * self.FORBIDDEN_CELLS
        )
        for i in range(len(key_map) - 1, 0, -1):
            j = rng.randint(0, i)
            key_map[i], key_map[j] = key_map[j], key_map[i]
        return key_map

    def pick_board_words(self, words: Sequence[str], rng: Optional[random.Random] = None) -> List[str]:
        return sample_words(words, self.BOARD_SIZE, rng)

    # ── Lobby ─────────────────────────────────────────────────────────────────

    def add_player(
        self, state: WordGridState, name: str, team: TeamColor, as_spymaster: bool = False
    ) -> WordGridState:
        """Seat ``name`` on ``team`` (as spymaster or guesser), leaving any previous seat."""
        name = name.strip()
        if not name:
            raise IllegalTransition("Player name is required")
        team = TeamColor(team)
        target = state.roster(team)
        if as_spymaster and target.spymaster not in (None, name):
            raise IllegalTransition(f"The {team.value} team already has a spymaster")
        if (as_spymaster and target.spymaster == name) or (not as_spymaster and name in target.guessers):
            return state

        rosters: Dict[str, TeamRoster] = {}
        for color in TeamColor:
            roster = state.roster(color)
            spymaster = None if roster.spymaster == name else roster.spymaster
            guessers = [g for g in roster.guessers if g != name]
            if color == team:
                if as_spymaster:
                    spymaster = name
                else:
                    guessers.append(name)
            rosters[f"{color.value}_team"] = roster.model_copy(
                update={"spymaster": spymaster, "guessers": guessers}
            )
        return state.model_copy(update=rosters)

    def initialize(
        self,
        state: WordGridState,
        board_words: Sequence[str],
        key_map: Sequence[CellColor],
        starting_team: TeamColor,
        now: float,
        mode: Optional[GridMode] = None,
    ) -> WordGridState:
        """Deal a board and start playing. Both spymasters must be seated."""
        if state.status == WordGridStatus.FINISHED:
            raise IllegalTransition("Game is finished")
        if state.status != WordGridStatus.SETUP:
            raise IllegalTransition("Game is already in progress")
        if len(board_words) != self.BOARD_SIZE:
            raise IllegalTransition(f"Board must have exactly {self.BOARD_SIZE} words")
        if len(key_map) != self.BOARD_SIZE:
            raise IllegalTransition(f"Key map must have exactly {self.BOARD_SIZE} entries")
        try:
            starting_team = TeamColor(starting_team)
        except ValueError:
            raise IllegalTransition("Starting team must be red or blue")
        colors = []
        for idx, color in enumerate(key_map):
            try:
                colors.append(CellColor(color))
            except ValueError:
                raise IllegalTransition(f"Invalid color at index {idx}: {color}")
        if not state.red_team.spymaster or not state.blue_team.spymaster:
            raise IllegalTransition("Both teams need a spymaster")

        logger.info(f"[{state.room_code}] Board dealt — {starting_team.value} starts")
        return state.model_copy(update={
            "red_team": state.red_team.model_copy(update={"revealed": []}),
            "blue_team": state.blue_team.model_copy(update={"revealed": []}),
            "board_words": list(board_words),
            "key_map": colors,
            "starting_team": starting_team,
            "current_turn": starting_team,
            "mode": GridMode(mode) if mode else state.mode,
            "status": WordGridStatus.PLAYING,
            "turn_phase": "clue",
            "clue": None,
            "turn_started_at": now,
            "winner_team": None,
        })

    def start_game(
        self,
        state: WordGridState,
        words: Sequence[str],
        now: float,
        starting_team: Optional[TeamColor] = None,
        rng: Optional[random.Random] = None,
    ) -> WordGridState:
        """Pick words and a key from the catalog, then initialize."""
        rng = rng or random.Random()
        starting_team = TeamColor(starting_team) if starting_team else rng.choice(list(TeamColor))
        board = self.pick_board_words(words, rng)
        key_map = self.generate_key_map(starting_team, rng)
        return self.initialize(state, board, key_map, starting_team, now)

    # ── Queries ───────────────────────────────────────────────────────────────

    def revealed_indices(self, state: WordGridState) -> Set[int]:
        return set(state.red_team.revealed) | set(state.blue_team.revealed)

    def count_words_left(self, state: WordGridState, team: TeamColor) -> int:
        team = TeamColor(team)
        revealed = self.revealed_indices(state)
        return sum(
            1 for idx, color in enumerate(state.key_map)
            if color.value == team.value and idx not in revealed
        )

    def check_win(self, state: WordGridState, team: TeamColor) -> bool:
        return bool(state.key_map) and self.count_words_left(state, team) == 0

    def player_role(self, state: WordGridState, player_name: str) -> Optional[Dict[str, str]]:
        if not player_name:
            return None
        for team in TeamColor:
            roster = state.roster(team)
            if roster.spymaster == player_name:
                return {"team": team.value, "role": "spymaster"}
            if player_name in roster.guessers:
                return {"team": team.value, "role": "guesser"}
        return None

    def is_player_turn(self, state: WordGridState, player_name: str) -> bool:
        role = self.player_role(state, player_name)
        return bool(role and role["team"] == state.current_turn.value)

    def time_remaining(self, state: WordGridState, now: float) -> int:
        if state.turn_started_at is None:
            return state.turn_duration
        return seconds_remaining(state.turn_started_at, state.turn_duration, now)

    # ── Turn actions ──────────────────────────────────────────────────────────

    def submit_clue(
        self, state: WordGridState, number: int, now: float, word: Optional[str] = None
    ) -> WordGridState:
        self._require_playing(state)
        if state.clue is not None:
            raise IllegalTransition("A clue is already pending")
        if not isinstance(number, int) or isinstance(number, bool) or number < 1:
            raise IllegalTransition("Clue number must be a positive number")

        clue = Clue(number=number, word=(word or "").strip() or None, guesses_remaining=number + 1)
        logger.info(f"[{state.room_code}] {state.current_turn.value} clue for {number}")
        updates: Dict[str, Any] = {"clue": clue, "turn_started_at": now}
        if state.mode == GridMode.RIVALS:
            updates["turn_phase"] = "guess"
        return state.model_copy(update=updates)

    def reveal_cell(self, state: WordGridState, index: int, now: float) -> WordGridState:
        self._require_playing(state)
        if not 0 <= index < len(state.board_words):
            raise IllegalTransition("Invalid word index")
        if index in self.revealed_indices(state):
            return state
        if state.clue is None:
            raise IllegalTransition("No clue has been given this turn")

        team = state.current_turn
        color = state.key_map[index]
        red_revealed = list(state.red_team.revealed)
        blue_revealed = list(state.blue_team.revealed)
        if color == CellColor.RED:
            red_revealed.append(index)
        elif color == CellColor.BLUE:
            blue_revealed.append(index)
        else:
            # Neutral and forbidden cells are common knowledge once touched
            red_revealed.append(index)
            blue_revealed.append(index)

        updates: Dict[str, Any] = {
            "red_team": state.red_team.model_copy(update={"revealed": red_revealed}),
            "blue_team": state.blue_team.model_copy(update={"revealed": blue_revealed}),
        }
        revealed_state = state.model_copy(update=updates)

        winner: Optional[TeamColor] = None
        end_turn = False
        guesses_remaining = state.clue.guesses_remaining - 1

        if color == CellColor.FORBIDDEN:
            winner = team.opponent
            logger.info(f"[{state.room_code}] {team.value} revealed the forbidden cell")
        elif color.value == team.value:
            if self.check_win(revealed_state, team):
                winner = team
        else:
            end_turn = True

        if winner is None:
            # A team can also be handed the win by the other side revealing its last cell
            for candidate in (team, team.opponent):
                if self.check_win(revealed_state, candidate):
                    winner = candidate
                    break

        if winner is not None:
            logger.info(f"[{state.room_code}] {winner.value} team wins")
            updates.update({
                "status": WordGridStatus.FINISHED,
                "winner_team": winner,
                "clue": None,
            })
            return state.model_copy(update=updates)

        if end_turn or guesses_remaining <= 0:
            return self._switch_turn(revealed_state, now)

        updates["clue"] = state.clue.model_copy(update={"guesses_remaining": guesses_remaining})
        return state.model_copy(update=updates)

    def end_turn(self, state: WordGridState, now: float) -> WordGridState:
        """The guessing team stops voluntarily."""
        self._require_playing(state)
        return self._switch_turn(state, now)

    def time_expired(self, state: WordGridState, now: float) -> WordGridState:
        """Turn timer ran out. Same effect as ending the turn."""
        self._require_playing(state)
        logger.info(f"[{state.room_code}] {state.current_turn.value} ran out of time")
        return self._switch_turn(state, now)

    # ── Validation / reset ────────────────────────────────────────────────────

    def validate(self, state: WordGridState) -> List[str]:
        errors: List[str] = []
        if state.status != WordGridStatus.SETUP:
            if len(state.board_words) != self.BOARD_SIZE:
                errors.append(f"Board must have exactly {self.BOARD_SIZE} words")
            if len(state.key_map) != self.BOARD_SIZE:
                errors.append(f"Key map must have exactly {self.BOARD_SIZE} entries")
            if not state.red_team.spymaster:
                errors.append("Red team missing spymaster")
            if not state.blue_team.spymaster:
                errors.append("Blue team missing spymaster")
        revealed = self.revealed_indices(state)
        if any(not 0 <= idx < max(len(state.key_map), 1) for idx in revealed):
            errors.append("Revealed index out of range")
        if state.key_map and state.status == WordGridStatus.FINISHED:
            forbidden_hit = any(state.key_map[i] == CellColor.FORBIDDEN for i in revealed)
            if not forbidden_hit and not any(self.check_win(state, t) for t in TeamColor):
                errors.append("Finished game with no finishing condition")
        if state.clue is not None and state.clue.guesses_remaining <= 0:
            errors.append("Pending clue has no guesses remaining")
        return errors

    def reset(self, state: WordGridState) -> WordGridState:
        return state.model_copy(update={
            "red_team": state.red_team.model_copy(update={"revealed": []}),
            "blue_team": state.blue_team.model_copy(update={"revealed": []}),
            "status": WordGridStatus.SETUP,
            "current_turn": TeamColor.RED,
            "starting_team": TeamColor.RED,
            "board_words": [],
            "key_map": [],
            "turn_phase": "clue",
            "clue": None,
            "winner_team": None,
            "turn_started_at": None,
        })

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_playing(self, state: WordGridState) -> None:
        if state.status != WordGridStatus.PLAYING:
            raise IllegalTransition("Game must be in playing status")

    def _switch_turn(self, state: WordGridState, now: float) -> WordGridState:
        return state.model_copy(update={
            "current_turn": state.current_turn.opponent,
            "clue": None,
            "turn_phase": "clue",
            "turn_started_at": now,
        })


# Module-level singleton
word_grid = WordGridMachine()
