import pytest

from games.errors import IllegalTransition
from games.sketch import WINNING_SCORE, sketch
from models.sketch import Guess, SketchPlayer, SketchStatus
from tests.stubs import T0


def _playing(*names, word="Giraffe"):
    state = sketch.initialize(list(names) or ["ann", "bob", "cat"], room_code="DRAW", host_name="ann")
    return sketch.start_game(state, word, T0)


def _with_scores(state, **scores):
    return state.model_copy(update={
        "players": [SketchPlayer(name=p.name, score=scores.get(p.name, p.score)) for p in state.players]
    })


@pytest.mark.parametrize("seconds, points", [(0, 3), (20, 3), (21, 2), (40, 2), (41, 1), (59, 1), (75, 1)])
def test_points_for_elapsed(seconds, points):
    assert sketch.points_for_elapsed(seconds) == points


def test_start_requires_two_players():
    lobby = sketch.initialize(["ann"])
    with pytest.raises(IllegalTransition):
        sketch.start_game(lobby, "cat", T0)


def test_start_requires_lobby():
    with pytest.raises(IllegalTransition):
        sketch.start_game(_playing(), "dog", T0)


def test_correct_guess_at_15s_scores_three_and_artist_one():
    state = sketch.submit_guess(_playing(), "bob", "  giraffe ", T0 + 15)
    scores = {p.name: p.score for p in state.players}
    assert scores == {"ann": 1, "bob": 3, "cat": 0}
    assert state.round.phase == "summary"
    assert state.round.round_winner == "bob"
    assert state.round.points_awarded == {"bob": 3, "ann": 1}


def test_wrong_guess_keeps_round_open():
    state = sketch.submit_guess(_playing(), "bob", "horse", T0 + 5)
    assert state.round_active
    assert len(state.round.guesses) == 1
    assert state.round.guesses[0].is_correct is False


def test_tier_is_fixed_at_submission_time():
    state = sketch.submit_guess(_playing(), "cat", "giraffe", T0 + 30)
    assert {p.name: p.score for p in state.players}["cat"] == 2


def test_artist_cannot_guess_and_blank_guess_rejected():
    state = _playing()
    with pytest.raises(IllegalTransition):
        sketch.submit_guess(state, "ann", "giraffe", T0 + 1)
    with pytest.raises(IllegalTransition):
        sketch.submit_guess(state, "bob", "   ", T0 + 1)


def test_guess_after_summary_is_illegal():
    state = sketch.submit_guess(_playing(), "bob", "giraffe", T0 + 1)
    with pytest.raises(IllegalTransition):
        sketch.submit_guess(state, "cat", "giraffe", T0 + 2)


def test_late_guess_closes_round_when_timer_expired():
    state = sketch.submit_guess(_playing(), "bob", "horse", T0 + 61)
    assert state.round.phase == "summary"
    assert state.round.round_winner is None
    assert all(p.score == 0 for p in state.players)


def test_time_expired_scores_nobody_and_lists_drinkers():
    state = sketch.time_expired(_playing(), T0 + 60, drinking_mode=True)
    assert state.round.phase == "summary"
    assert state.round.drinking_players == ["bob", "cat"]
    assert all(p.score == 0 for p in state.players)


def test_time_expired_before_deadline_is_illegal():
    with pytest.raises(IllegalTransition):
        sketch.time_expired(_playing(), T0 + 10)


def test_duplicate_correct_guesses_take_best_tier():
    state = _playing()
    guesses = [
        Guess(player_name="bob", guess="giraffe", timestamp=T0 + 45, is_correct=True),
        Guess(player_name="bob", guess="giraffe", timestamp=T0 + 10, is_correct=True),
        Guess(player_name="cat", guess="giraffe", timestamp=T0 + 25, is_correct=True),
    ]
    state = state.model_copy(update={"round": state.round.model_copy(update={"guesses": guesses})})
    state = sketch.time_expired(state, T0 + 60)
    scores = {p.name: p.score for p in state.players}
    assert scores == {"ann": 1, "bob": 3, "cat": 2}
    assert state.round.round_winner == "bob"


def test_first_to_reach_winning_score_wins():
    state = _with_scores(_playing(), ann=WINNING_SCORE - 1, bob=WINNING_SCORE - 3)
    state = sketch.submit_guess(state, "bob", "giraffe", T0 + 5)
    # bob's points are applied before the artist's, so bob crosses first
    assert state.status == SketchStatus.FINISHED
    assert state.winner_name == "bob"
    with pytest.raises(IllegalTransition):
        sketch.next_round(state, "lion", T0 + 100)


def test_next_round_rotates_artist_and_skips_blank_names():
    state = sketch.submit_guess(_playing(), "bob", "giraffe", T0 + 5)
    state = state.model_copy(update={
        "players": [state.players[0], SketchPlayer(name=""), state.players[2]],
    })
    state = sketch.next_round(state, "lion", T0 + 100)
    assert state.current_turn_index == 2
    assert sketch.current_artist(state) == "cat"
    assert state.round.word == "lion"
    assert state.round.started_at == T0 + 100
    assert state.round.guesses == [] and state.round.drawing == []


def test_next_round_requires_summary():
    with pytest.raises(IllegalTransition):
        sketch.next_round(_playing(), "lion", T0)


def test_update_drawing_only_while_active():
    state = sketch.update_drawing(_playing(), [{"points": [[0, 0], [10, 5]], "color": "#ff0000"}])
    assert state.round.drawing[0].points == [(0.0, 0.0), (10.0, 5.0)]
    done = sketch.submit_guess(state, "bob", "giraffe", T0 + 1)
    with pytest.raises(IllegalTransition):
        sketch.update_drawing(done, [])


def test_queries():
    state = sketch.submit_guess(_playing(), "bob", "nope", T0 + 1)
    assert sketch.is_player_turn(state, "ann")
    assert sketch.correct_guessers(state) == []
    assert not sketch.is_timer_expired(state, T0 + 59)
    assert sketch.is_timer_expired(state, T0 + 60)
    assert sketch.time_remaining(state, T0 + 12) == 48


def test_add_player_only_in_lobby():
    lobby = sketch.add_player(sketch.initialize(["ann"]), "bob")
    assert [p.name for p in lobby.players] == ["ann", "bob"]
    with pytest.raises(IllegalTransition):
        sketch.add_player(_playing(), "dan")


def test_reset_zeroes_scores():
    state = sketch.reset(sketch.submit_guess(_playing(), "bob", "giraffe", T0 + 5))
    assert state.status == SketchStatus.LOBBY
    assert all(p.score == 0 for p in state.players)
    assert state.round is None and state.winner_name is None
    assert sketch.validate(state) == []


@pytest.mark.parametrize("strokes", ["scribble", [{"points": "nope"}], [{"width": "thick"}], 7])
def test_malformed_strokes_are_illegal(strokes):
    state = _playing()
    with pytest.raises(IllegalTransition):
        sketch.update_drawing(state, strokes)
