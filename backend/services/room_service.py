"""
Room service — binds each game to its collection, state model, actions and
reconcile guard, and runs them against the session store.

Every action is a pure machine transition committed through
room_sync.commit_transition; joins go through room_sync.atomic_join.
"""
import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Type

from config import settings
from games import catalog
from games.board_race import board_race
from games.errors import IllegalTransition, NotHost, SessionNotFound, UnknownAction, UnknownGame
from games.outsider import outsider
from games.sketch import sketch
from games.word_grid import word_grid
from models.board_race import BoardRaceState, Team
from models.game import COLLECTIONS, GameKind, JoinRoomRequest, RoomState
from models.outsider import OutsiderState, OutsiderStatus, SecretMode
from models.sketch import SketchState
from models.word_grid import GridMode, TeamColor, WordGridState
from services.room_sync import (
    GuardedReconciler, JoinResult, ReconcileGuard, RetryPolicy, atomic_join,
    changed_fields, commit_transition, freeze_on_deadline,
)
from utils.clock import clock
from utils.codes import generate_room_code, normalize_room_code

logger = logging.getLogger(__name__)


class ActionContext:
    """Everything an action needs besides the state: time, randomness, catalogs."""

    def __init__(
        self,
        now: Optional[float] = None,
        rng: Optional[random.Random] = None,
        words: Optional[Callable[[], List[str]]] = None,
        locations: Optional[Callable[[], list]] = None,
    ):
        self.now = clock.now() if now is None else now
        self.rng = rng or random.Random()
        self.words = words or catalog.load_words
        self.locations = locations or catalog.load_locations


Action = Callable[[Any, str, Dict[str, Any], ActionContext], Any]


def _require_arg(args: Dict[str, Any], key: str) -> Any:
    if args.get(key) is None:
        raise IllegalTransition(f"Missing argument: {key}")
    return args[key]


def _int_arg(args: Dict[str, Any], key: str, default: Optional[int] = None) -> Optional[int]:
    value = args.get(key)
    if value is None:
        value = default
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise IllegalTransition(f"Argument {key} must be a number")


def _enum_arg(args: Dict[str, Any], key: str, enum_cls: Type[Enum], default: Optional[Enum] = None):
    value = args.get(key)
    if value is None or value == "":
        return default
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        choices = ", ".join(e.value for e in enum_cls)
        raise IllegalTransition(f"Argument {key} must be one of: {choices}")


def _int_list_arg(args: Dict[str, Any], key: str) -> List[int]:
    values = args.get(key) or []
    if not isinstance(values, list):
        raise IllegalTransition(f"Argument {key} must be a list of numbers")
    return [_int_arg({key: v}, key) for v in values]


# ── Board race ────────────────────────────────────────────────────────────────

def _board_race_create(host_name: str, options: Dict[str, Any], room: Dict[str, Any]) -> BoardRaceState:
    names = options.get("teams") or ["Team 1", "Team 2"]
    if not isinstance(names, list):
        raise IllegalTransition("Option teams must be a list of team names")
    state = board_race.initialize(
        [Team(name=str(n)) for n in names],
        golden_rounds_enabled=bool(options.get("golden_rounds_enabled", False)),
        golden_squares=_int_list_arg(options, "golden_squares"),
        round_duration=_int_arg(options, "round_duration", settings.board_race_round_seconds),
        words_per_card=max(1, _int_arg(options, "words_per_card", 1)),
        **room,
    )
    return board_race.add_player(state, host_name, _int_arg(options, "host_team", 0))


def _board_race_join(state: BoardRaceState, req: JoinRoomRequest) -> BoardRaceState:
    team = _int_arg({"team": req.team}, "team", 0)
    return board_race.add_player(state, req.player_name, team)


def _board_race_joined(state: BoardRaceState, name: str) -> bool:
    return any(name in t.players for t in state.teams)


def _require_turn(state: BoardRaceState, player: str) -> None:
    if not board_race.is_player_turn(state, player):
        raise IllegalTransition(f"It is not {player}'s team's turn")


def _board_race_start_round(state: BoardRaceState, player, args, ctx: ActionContext):
    _require_turn(state, player)
    if not state.cards:
        cards = board_race.generate_cards(
            ctx.words(), settings.board_race_card_count, state.words_per_card, ctx.rng
        )
        state = board_race.deal(state, cards)
    return board_race.start_round(state, ctx.now)


def _board_race_correct(state: BoardRaceState, player, args, ctx: ActionContext):
    _require_turn(state, player)
    state = board_race.mark_correct(
        state, state.cards, state.card_index,
        team_index=_int_arg(args, "team_index"),
        is_deadline=bool(args.get("is_deadline", False)),
    )
    return board_race.advance_card(state)


def _board_race_skip(state: BoardRaceState, player, args, ctx: ActionContext):
    _require_turn(state, player)
    state = board_race.mark_skip(
        state, state.cards, state.card_index, is_deadline=bool(args.get("is_deadline", False))
    )
    return board_race.advance_card(state)


def _board_race_finish_round(state: BoardRaceState, player, args, ctx: ActionContext):
    return board_race.finish_round(state, drinking_mode=bool(args.get("drinking_mode", False)))


# ── Word grid ─────────────────────────────────────────────────────────────────

def _word_grid_create(host_name: str, options: Dict[str, Any], room: Dict[str, Any]) -> WordGridState:
    state = WordGridState(
        mode=_enum_arg(options, "mode", GridMode, GridMode.FRIENDS),
        turn_duration=_int_arg(options, "turn_duration", settings.word_grid_turn_seconds),
        **room,
    )
    team = _enum_arg(options, "host_team", TeamColor, TeamColor.RED)
    return word_grid.add_player(state, host_name, team, bool(options.get("host_spymaster", False)))


def _word_grid_join(state: WordGridState, req: JoinRoomRequest) -> WordGridState:
    team = _enum_arg({"team": req.team}, "team", TeamColor, TeamColor.RED)
    return word_grid.add_player(state, req.player_name, team, req.as_spymaster)


def _word_grid_joined(state: WordGridState, name: str) -> bool:
    return word_grid.player_role(state, name) is not None


def _require_role(state: WordGridState, player: str, role: str) -> None:
    info = word_grid.player_role(state, player)
    if not info or info["team"] != state.current_turn.value or info["role"] != role:
        raise IllegalTransition(f"Only the current team's {role} can do that")


def _word_grid_start(state: WordGridState, player, args, ctx: ActionContext):
    return word_grid.start_game(
        state, ctx.words(), ctx.now,
        starting_team=_enum_arg(args, "starting_team", TeamColor),
        rng=ctx.rng,
    )


def _word_grid_clue(state: WordGridState, player, args, ctx: ActionContext):
    _require_role(state, player, "spymaster")
    return word_grid.submit_clue(state, _int_arg(args, "number", 0), ctx.now, word=args.get("word"))


def _word_grid_reveal(state: WordGridState, player, args, ctx: ActionContext):
    _require_role(state, player, "guesser")
    return word_grid.reveal_cell(state, _int_arg(args, "index", -1), ctx.now)


def _word_grid_end_turn(state: WordGridState, player, args, ctx: ActionContext):
    if not word_grid.is_player_turn(state, player):
        raise IllegalTransition("It is not your team's turn")
    return word_grid.end_turn(state, ctx.now)


def _word_grid_time_expired(state: WordGridState, player, args, ctx: ActionContext):
    return word_grid.time_expired(state, ctx.now)


# ── Sketch ────────────────────────────────────────────────────────────────────

def _sketch_create(host_name: str, options: Dict[str, Any], room: Dict[str, Any]) -> SketchState:
    return sketch.initialize([host_name], **room)


def _sketch_join(state: SketchState, req: JoinRoomRequest) -> SketchState:
    return sketch.add_player(state, req.player_name)


def _has_player(state, name: str) -> bool:
    return any(p.name == name for p in state.players)


def _pick_word(ctx: ActionContext) -> str:
    return catalog.sample_words(ctx.words(), 1, ctx.rng)[0]


def _sketch_start(state: SketchState, player, args, ctx: ActionContext):
    return sketch.start_game(state, _pick_word(ctx), ctx.now)


def _sketch_draw(state: SketchState, player, args, ctx: ActionContext):
    if not sketch.is_player_turn(state, player):
        raise IllegalTransition("Only the artist can draw")
    return sketch.update_drawing(state, args.get("strokes") or [])


def _sketch_guess(state: SketchState, player, args, ctx: ActionContext):
    return sketch.submit_guess(state, player, _require_arg(args, "guess"), ctx.now)


def _sketch_time_expired(state: SketchState, player, args, ctx: ActionContext):
    return sketch.time_expired(state, ctx.now, drinking_mode=bool(args.get("drinking_mode", False)))


def _sketch_next_round(state: SketchState, player, args, ctx: ActionContext):
    return sketch.next_round(state, _pick_word(ctx), ctx.now)


# ── Outsider ──────────────────────────────────────────────────────────────────

def _outsider_create(host_name: str, options: Dict[str, Any], room: Dict[str, Any]) -> OutsiderState:
    state = outsider.initialize([host_name], **room)
    return state.model_copy(update={
        "outsider_count": max(1, _int_arg(options, "outsider_count", 1)),
        "duration": _int_arg(options, "duration", settings.outsider_game_seconds),
    })


def _outsider_join(state: OutsiderState, req: JoinRoomRequest) -> OutsiderState:
    return outsider.add_player(state, req.player_name)


def _outsider_start(state: OutsiderState, player, args, ctx: ActionContext):
    mode = _enum_arg(args, "mode", SecretMode, SecretMode.LOCATION)
    if mode == SecretMode.LOCATION:
        locations = catalog.validate_locations(ctx.locations())
        secret = catalog.pick_location(locations, ctx.rng)
        all_locations = [loc.location for loc in locations]
    else:
        secret = _pick_word(ctx)
        all_locations = None
    return outsider.start_game(
        state, secret, ctx.now,
        outsider_count=_int_arg(args, "outsider_count"),
        duration=_int_arg(args, "duration"),
        all_locations=all_locations,
        rng=ctx.rng,
    )


def _outsider_vote(state: OutsiderState, player, args, ctx: ActionContext):
    return outsider.toggle_vote(state, player, _require_arg(args, "target"))


def _outsider_guess(state: OutsiderState, player, args, ctx: ActionContext):
    return outsider.submit_outsider_guess(state, player, _require_arg(args, "guess"))


def _outsider_eliminate(state: OutsiderState, player, args, ctx: ActionContext):
    return outsider.toggle_location_eliminated(state, player, _require_arg(args, "location"))


def _outsider_end(state: OutsiderState, player, args, ctx: ActionContext):
    return outsider.end_game(state)


def _outsider_time_expired(state: OutsiderState, player, args, ctx: ActionContext):
    return outsider.time_expired(state, ctx.now)


def _round_phase(doc: Dict[str, Any]) -> Optional[str]:
    round_ = doc.get("round")
    return round_.get("phase") if isinstance(round_, dict) else None


def _outsider_role_cards(doc: Dict[str, Any]) -> Dict[str, Any]:
    match = doc.get("match") or {}
    return {
        "players": [
            {k: p.get(k) for k in ("name", "is_outsider", "location", "role")}
            for p in doc.get("players", [])
        ],
        "secret": match.get("secret"),
        "all_locations": match.get("all_locations"),
    }


# ── Registry ──────────────────────────────────────────────────────────────────

class GameSpec:
    def __init__(
        self,
        kind: GameKind,
        model: Type[RoomState],
        machine: Any,
        create: Callable[[str, Dict[str, Any], Dict[str, Any]], RoomState],
        join: Callable[[Any, JoinRoomRequest], RoomState],
        joined: Callable[[Any, str], bool],
        actions: Dict[str, Action],
        host_actions: FrozenSet[str] = frozenset(),
        guard: Optional[ReconcileGuard] = None,
    ):
        self.kind = kind
        self.collection = COLLECTIONS[kind]
        self.model = model
        self.machine = machine
        self.create = create
        self.join = join
        self.joined = joined
        self.actions = actions
        self.host_actions = host_actions
        self.guard = guard or ReconcileGuard()

    def load(self, doc: Dict[str, Any]) -> RoomState:
        return self.model.model_validate(doc)


GAMES: Dict[GameKind, GameSpec] = {
    GameKind.BOARD_RACE: GameSpec(
        kind=GameKind.BOARD_RACE,
        model=BoardRaceState,
        machine=board_race,
        create=_board_race_create,
        join=_board_race_join,
        joined=_board_race_joined,
        actions={
            "start_round": _board_race_start_round,
            "correct": _board_race_correct,
            "skip": _board_race_skip,
            "finish_round": _board_race_finish_round,
        },
        guard=ReconcileGuard(
            cursor_field="current_turn",
            round_active=lambda doc: _round_phase(doc) == "active",
            summary_shown=lambda doc: _round_phase(doc) == "summary",
        ),
    ),
    # Turns pass straight from team to team (no summary step), so no cursor guard
    GameKind.WORD_GRID: GameSpec(
        kind=GameKind.WORD_GRID,
        model=WordGridState,
        machine=word_grid,
        create=_word_grid_create,
        join=_word_grid_join,
        joined=_word_grid_joined,
        actions={
            "start_game": _word_grid_start,
            "submit_clue": _word_grid_clue,
            "reveal": _word_grid_reveal,
            "end_turn": _word_grid_end_turn,
            "time_expired": _word_grid_time_expired,
        },
        host_actions=frozenset({"start_game"}),
    ),
    GameKind.SKETCH: GameSpec(
        kind=GameKind.SKETCH,
        model=SketchState,
        machine=sketch,
        create=_sketch_create,
        join=_sketch_join,
        joined=_has_player,
        actions={
            "start_game": _sketch_start,
            "draw": _sketch_draw,
            "guess": _sketch_guess,
            "time_expired": _sketch_time_expired,
            "next_round": _sketch_next_round,
        },
        host_actions=frozenset({"start_game"}),
        guard=ReconcileGuard(
            cursor_field="current_turn_index",
            round_active=lambda doc: _round_phase(doc) == "active",
            summary_shown=lambda doc: _round_phase(doc) == "summary",
        ),
    ),
    GameKind.OUTSIDER: GameSpec(
        kind=GameKind.OUTSIDER,
        model=OutsiderState,
        machine=outsider,
        create=_outsider_create,
        join=_outsider_join,
        joined=_has_player,
        actions={
            "start_game": _outsider_start,
            "vote": _outsider_vote,
            "guess_secret": _outsider_guess,
            "eliminate_location": _outsider_eliminate,
            "end_game": _outsider_end,
            "time_expired": _outsider_time_expired,
        },
        host_actions=frozenset({"start_game", "end_game"}),
        guard=ReconcileGuard(
            locked=_outsider_role_cards,
            locked_while=lambda doc: doc.get("status") == OutsiderStatus.PLAYING.value,
        ),
    ),
}


def get_game_spec(game: str) -> GameSpec:
    try:
        return GAMES[GameKind(game)]
    except ValueError:
        raise UnknownGame(game)


def make_reconciler(game: str, room_code: str) -> GuardedReconciler:
    spec = get_game_spec(game)
    return GuardedReconciler(spec.collection, normalize_room_code(room_code), spec.guard)


# ── Room lifecycle ────────────────────────────────────────────────────────────

async def generate_unique_room_code(store, collection: str, rng: Optional[random.Random] = None) -> str:
    for attempt in range(settings.room_code_attempts):
        code = generate_room_code(settings.room_code_length, rng)
        if not await store.find_by_field(collection, "room_code", code):
            return code
        logger.info(f"Room code {code} taken in {collection} (attempt {attempt + 1})")
    raise RuntimeError(f"Could not generate a unique room code after {settings.room_code_attempts} attempts")


async def create_room(
    store,
    game: str,
    host_name: str,
    options: Optional[Dict[str, Any]] = None,
    ctx: Optional[ActionContext] = None,
) -> RoomState:
    spec = get_game_spec(game)
    ctx = ctx or ActionContext()
    host_name = (host_name or "").strip()
    if not host_name:
        raise IllegalTransition("Host name is required")

    code = await generate_unique_room_code(store, spec.collection, ctx.rng)
    room = {"room_code": code, "host_name": host_name, "created_at": ctx.now}
    state = spec.create(host_name, options or {}, room)
    await store.create(spec.collection, code, state.to_document())
    logger.info(f"[{code}] {spec.kind.value} room created by {host_name}")
    return state


async def get_room(store, game: str, room_code: str) -> RoomState:
    spec = get_game_spec(game)
    code = normalize_room_code(room_code)
    doc = await store.get(spec.collection, code)
    if doc is None:
        raise SessionNotFound(spec.collection, code)
    return spec.load(doc)


async def join_room(
    store,
    game: str,
    room_code: str,
    request: JoinRoomRequest,
    policy: Optional[RetryPolicy] = None,
    sleep=None,
) -> JoinResult:
    spec = get_game_spec(game)
    code = normalize_room_code(room_code)
    name = (request.player_name or "").strip()
    if not name:
        raise IllegalTransition("Player name is required")
    request = request.model_copy(update={"player_name": name})

    def mutate(doc: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        state = spec.load(doc)
        joined = spec.join(state, request)
        updates = changed_fields(doc, joined.to_document())
        return updates or None

    def verify(doc: Dict[str, Any]) -> bool:
        return spec.joined(spec.load(doc), name)

    kwargs = {"sleep": sleep} if sleep is not None else {}
    result = await atomic_join(store, spec.collection, code, mutate, verify, policy, **kwargs)
    if result.success:
        logger.info(f"[{code}] {name} joined")
    else:
        logger.warning(f"[{code}] {name} could not join: {result.error}")
    return result


def _check_host(state: RoomState, player: str) -> None:
    if player != state.host_name:
        raise NotHost(f"Only the host ({state.host_name}) can do that")


async def run_action(
    store,
    game: str,
    room_code: str,
    action: str,
    player: str,
    args: Optional[Dict[str, Any]] = None,
    ctx: Optional[ActionContext] = None,
) -> RoomState:
    spec = get_game_spec(game)
    if spec.kind == GameKind.BOARD_RACE and action == "freeze_word":
        return await freeze_board_word(store, room_code, ctx)
    handler = spec.actions.get(action)
    if handler is None:
        raise UnknownAction(spec.kind.value, action)
    ctx = ctx or ActionContext()
    args = args or {}

    def transition(doc: Dict[str, Any]) -> Dict[str, Any]:
        state = spec.load(doc)
        if action in spec.host_actions:
            _check_host(state, player)
        return handler(state, player, args, ctx).to_document()

    code = normalize_room_code(room_code)
    doc = await commit_transition(store, spec.collection, code, transition)
    logger.info(f"[{code}] {player} → {action}")
    return spec.load(doc)


async def freeze_board_word(store, room_code: str, ctx: Optional[ActionContext] = None) -> RoomState:
    """Deadline freeze for the board race: persist the word on screen."""
    spec = GAMES[GameKind.BOARD_RACE]
    code = normalize_room_code(room_code)

    def freeze(doc: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        state = spec.load(doc)
        frozen = board_race.freeze_word(state, state.cards, state.card_index)
        return {"round.frozen_word": frozen.round.frozen_word}

    def read_frozen(doc: Dict[str, Any]) -> Optional[str]:
        round_ = doc.get("round") or {}
        return round_.get("frozen_word")

    await freeze_on_deadline(store, spec.collection, code, freeze, read_frozen)
    return await get_room(store, GameKind.BOARD_RACE.value, code)


async def reset_room(store, game: str, room_code: str, player: str) -> RoomState:
    spec = get_game_spec(game)

    def transition(doc: Dict[str, Any]) -> Dict[str, Any]:
        state = spec.load(doc)
        _check_host(state, player)
        return spec.machine.reset(state).to_document()

    code = normalize_room_code(room_code)
    doc = await commit_transition(store, spec.collection, code, transition)
    logger.info(f"[{code}] Room reset by {player}")
    return spec.load(doc)


async def delete_room(store, game: str, room_code: str, player: str) -> None:
    state = await get_room(store, game, room_code)
    _check_host(state, player)
    await store.delete(get_game_spec(game).collection, state.room_code)
    logger.info(f"[{state.room_code}] Room deleted by {player}")


# ── Views ─────────────────────────────────────────────────────────────────────

def public_view(state: RoomState) -> Dict[str, Any]:
    """The shared document as every player may see it. Outsider role cards and
    the secret stay hidden until the game is over."""
    doc = state.to_document()
    if isinstance(state, OutsiderState):
        if state.status == OutsiderStatus.PLAYING:
            doc["players"] = [p.to_public() for p in state.players]
            if doc.get("match"):
                doc["match"]["secret"] = None
        elif state.status == OutsiderStatus.FINISHED:
            doc["results"] = outsider.voting_results(state).model_dump(mode="json")
    return doc


def validate_room(state: RoomState) -> List[str]:
    return GAMES[state.game].machine.validate(state)
