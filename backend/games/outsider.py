"""
Outsider — hidden-role deduction.

k of the N players are secretly outsiders. Everyone else shares a secret
(a location plus a personal role there, or a single word). Players question
each other and vote for whoever they think the outsiders are.

End conditions:
- every player holds exactly k votes
- the timer runs out
- the host ends it
- an outsider takes their one shot at guessing the secret

An outsider's guess is authoritative. Otherwise the outsiders are caught only
if EACH of them has the top vote count (ties at the top still count).
"""
import logging
import random
from typing import Any, Dict, List, Optional, Sequence, Union

from games.errors import IllegalTransition
from models.outsider import (
    EndReason, Location, OutsiderGuess, OutsiderMatch, OutsiderPlayer, OutsiderState,
    OutsiderStatus, Secret, SecretMode, VoteCount, VotingResults,
)
from utils.clock import elapsed_seconds, seconds_remaining
from utils.codes import normalize_text

logger = logging.getLogger(__name__)

MIN_PLAYERS = 3


class OutsiderMachine:

    def initialize(self, players: Sequence[str], **room: Any) -> OutsiderState:
        names = [n.strip() for n in players if n and n.strip()]
        if len(set(names)) != len(names):
            raise IllegalTransition("Player names must be unique")
        return OutsiderState(players=[OutsiderPlayer(name=n) for n in names], **room)

    def add_player(self, state: OutsiderState, name: str) -> OutsiderState:
        name = name.strip()
        if not name:
            raise IllegalTransition("Player name is required")
        if any(p.name == name for p in state.players):
            return state
        if state.status != OutsiderStatus.LOBBY:
            raise IllegalTransition("Cannot join a game in progress")
        return state.model_copy(update={"players": state.players + [OutsiderPlayer(name=name)]})

    @staticmethod
    def effective_outsider_count(requested: int, player_count: int) -> int:
        return max(1, min(int(requested), player_count // 2))

    def start_game(
        self,
        state: OutsiderState,
        secret: Union[Location, str],
        now: float,
        outsider_count: Optional[int] = None,
        duration: Optional[int] = None,
        all_locations: Optional[Sequence[str]] = None,
        rng: Optional[random.Random] = None,
    ) -> OutsiderState:
        """Deal role cards. ``secret`` is a Location (location mode) or a word (word mode)."""
        if state.status != OutsiderStatus.LOBBY:
            raise IllegalTransition("Game must be in lobby status")
        if len(state.players) < MIN_PLAYERS:
            raise IllegalTransition(f"Need at least {MIN_PLAYERS} players")
        if duration is not None and duration <= 0:
            raise IllegalTransition("Duration must be positive")

        if isinstance(secret, Location):
            if not secret.location.strip() or not secret.roles:
                raise IllegalTransition("Invalid location")
            shared = Secret(mode=SecretMode.LOCATION, value=secret.location)
            notepad = list(all_locations) if all_locations else [secret.location]
        elif isinstance(secret, str) and secret.strip():
            shared = Secret(mode=SecretMode.WORD, value=secret.strip())
            notepad = []
        else:
            raise IllegalTransition("Invalid secret")

        rng = rng or random.Random()
        k = self.effective_outsider_count(
            outsider_count if outsider_count is not None else state.outsider_count, len(state.players)
        )
        outsiders = set(rng.sample([p.name for p in state.players], k))

        players: List[OutsiderPlayer] = []
        for p in state.players:
            if p.name in outsiders:
                card = {"is_outsider": True, "location": "", "role": ""}
            elif shared.mode == SecretMode.LOCATION:
                card = {"is_outsider": False, "location": secret.location, "role": rng.choice(secret.roles)}
            else:
                card = {"is_outsider": False, "location": shared.value, "role": ""}
            players.append(p.model_copy(update={**card, "votes": []}))

        logger.info(f"[{state.room_code}] Game started — {len(players)} players, {k} outsider(s)")
        return state.model_copy(update={
            "status": OutsiderStatus.PLAYING,
            "players": players,
            "outsider_count": k,
            "duration": duration or state.duration,
            "match": OutsiderMatch(secret=shared, started_at=now, all_locations=notepad),
        })

    # ── Player actions ────────────────────────────────────────────────────────

    def toggle_vote(self, state: OutsiderState, voter: str, target: str) -> OutsiderState:
        self._require_playing(state)
        if voter == target:
            raise IllegalTransition("Cannot vote for yourself")
        names = {p.name for p in state.players}
        if voter not in names:
            raise IllegalTransition(f"Unknown player: {voter}")
        if target not in names:
            raise IllegalTransition(f"Unknown vote target: {target}")

        players = []
        for p in state.players:
            if p.name == voter:
                if target in p.votes:
                    votes = [v for v in p.votes if v != target]
                elif len(p.votes) >= state.outsider_count:
                    raise IllegalTransition(f"Already cast {state.outsider_count} vote(s)")
                else:
                    votes = p.votes + [target]
                p = p.model_copy(update={"votes": votes})
            players.append(p)

        updated = state.model_copy(update={"players": players})
        if all(len(p.votes) == state.outsider_count for p in players):
            logger.info(f"[{state.room_code}] All votes are in")
            return self._finish(updated, EndReason.ALL_VOTED)
        return updated

    def submit_outsider_guess(self, state: OutsiderState, player_name: str, guess: str) -> OutsiderState:
        self._require_playing(state)
        player = self._player(state, player_name)
        if not player.is_outsider:
            raise IllegalTransition("Only an outsider can guess the secret")
        if state.match.outsider_guess is not None:
            raise IllegalTransition("The secret has already been guessed")
        if not isinstance(guess, str) or not guess.strip():
            raise IllegalTransition("Invalid guess")

        correct = normalize_text(guess) == normalize_text(state.match.secret.value)
        logger.info(f"[{state.room_code}] {player_name} guessed the secret — correct={correct}")
        updated = state.model_copy(update={"match": state.match.model_copy(update={
            "outsider_guess": OutsiderGuess(player_name=player_name, guess=guess.strip(), correct=correct),
        })})
        return self._finish(updated, EndReason.OUTSIDER_GUESS)

    def toggle_location_eliminated(self, state: OutsiderState, player_name: str, location: str) -> OutsiderState:
        """Outsider-only notepad for crossing off locations."""
        self._require_playing(state)
        if not self._player(state, player_name).is_outsider:
            raise IllegalTransition("Only an outsider can eliminate locations")
        if location not in state.match.all_locations:
            raise IllegalTransition(f"Unknown location: {location}")
        eliminated = list(state.match.eliminated_locations)
        if location in eliminated:
            eliminated.remove(location)
        else:
            eliminated.append(location)
        return state.model_copy(update={
            "match": state.match.model_copy(update={"eliminated_locations": eliminated}),
        })

    def end_game(self, state: OutsiderState, reason: EndReason = EndReason.HOST) -> OutsiderState:
        self._require_playing(state)
        return self._finish(state, EndReason(reason))

    def time_expired(self, state: OutsiderState, now: float) -> OutsiderState:
        self._require_playing(state)
        if not self.is_timer_expired(state, now):
            raise IllegalTransition("Game timer has not expired yet")
        logger.info(f"[{state.room_code}] Time is up")
        return self._finish(state, EndReason.DEADLINE)

    # ── Queries ───────────────────────────────────────────────────────────────

    def is_outsider(self, state: OutsiderState, player_name: str) -> bool:
        return any(p.name == player_name and p.is_outsider for p in state.players)

    def player_card(self, state: OutsiderState, player_name: str) -> Dict[str, Any]:
        """What one player is allowed to see about themselves."""
        player = self._player(state, player_name)
        card: Dict[str, Any] = {"name": player.name, "is_outsider": player.is_outsider, "votes": list(player.votes)}
        if state.match is None:
            return card
        if player.is_outsider:
            card["all_locations"] = list(state.match.all_locations)
            card["eliminated_locations"] = list(state.match.eliminated_locations)
        else:
            card["location"] = player.location
            card["role"] = player.role
        return card

    def is_timer_expired(self, state: OutsiderState, now: float) -> bool:
        if state.match is None:
            return False
        return elapsed_seconds(state.match.started_at, now) >= state.duration

    def time_remaining(self, state: OutsiderState, now: float) -> int:
        if state.match is None:
            return state.duration
        return seconds_remaining(state.match.started_at, state.duration, now)

    def voting_results(self, state: OutsiderState) -> VotingResults:
        if state.status != OutsiderStatus.FINISHED:
            raise IllegalTransition("Game must be finished to calculate results")

        counts = [
            VoteCount(
                name=p.name,
                votes=sum(1 for voter in state.players if p.name in voter.votes),
                was_outsider=p.is_outsider,
            )
            for p in state.players
        ]
        max_votes = max((c.votes for c in counts), default=0)
        outsiders = [c for c in counts if c.was_outsider]
        caught = max_votes > 0 and bool(outsiders) and all(c.votes == max_votes for c in outsiders)

        guess = state.match.outsider_guess if state.match else None
        if guess is not None:
            caught = not guess.correct

        return VotingResults(
            vote_counts=sorted(counts, key=lambda c: c.votes, reverse=True),
            max_votes=max_votes,
            outsiders=[c.name for c in outsiders],
            outsiders_caught=caught,
            outsiders_won=not caught,
            decided_by_guess=guess is not None,
            secret=state.match.secret.value if state.match else None,
        )

    # ── Validation / reset ────────────────────────────────────────────────────

    def validate(self, state: OutsiderState) -> List[str]:
        errors: List[str] = []
        names = [p.name for p in state.players]
        if len(set(names)) != len(names):
            errors.append("Duplicate player names")
        if state.status == OutsiderStatus.LOBBY:
            if state.match is not None:
                errors.append("Lobby must not carry match data")
            return errors

        if len(state.players) < MIN_PLAYERS:
            errors.append(f"Need at least {MIN_PLAYERS} players")
        if state.match is None:
            errors.append("Missing match data")
        outsider_total = sum(1 for p in state.players if p.is_outsider)
        if outsider_total != state.outsider_count:
            errors.append(f"Expected {state.outsider_count} outsider(s), found {outsider_total}")
        if state.outsider_count > max(1, len(state.players) // 2):
            errors.append("Too many outsiders for the player count")
        for p in state.players:
            if len(p.votes) > state.outsider_count:
                errors.append(f"{p.name} holds too many votes")
            if not p.is_outsider and not p.location:
                errors.append(f"{p.name} has no secret")
        if state.status == OutsiderStatus.FINISHED and state.match and state.match.end_reason is None:
            errors.append("Finished game has no end reason")
        return errors

    def reset(self, state: OutsiderState) -> OutsiderState:
        return state.model_copy(update={
            "status": OutsiderStatus.LOBBY,
            "players": [OutsiderPlayer(name=p.name) for p in state.players],
            "match": None,
        })

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_playing(self, state: OutsiderState) -> None:
        if state.status != OutsiderStatus.PLAYING or state.match is None:
            raise IllegalTransition("Game must be in playing status")

    def _player(self, state: OutsiderState, player_name: str) -> OutsiderPlayer:
        for p in state.players:
            if p.name == player_name:
                return p
        raise IllegalTransition(f"Unknown player: {player_name}")

    def _finish(self, state: OutsiderState, reason: EndReason) -> OutsiderState:
        return state.model_copy(update={
            "status": OutsiderStatus.FINISHED,
            "match": state.match.model_copy(update={"end_reason": reason}),
        })


# Module-level singleton
outsider = OutsiderMachine()
