import random

import pytest

from games.board_race import board_race
from games.errors import CatalogError, IllegalTransition
from models.board_race import BoardRaceStatus, CardResolution, Team
from tests.stubs import T0, WORDS

CARDS = [["alpha"], ["bravo"], ["charlie"], ["delta"]]


def _game(**kwargs):
    state = board_race.initialize(
        [Team(name="Red", players=["ann"]), Team(name="Blue", players=["bob"])],
        room_code="ABCD", host_name="ann", **kwargs,
    )
    return board_race.deal(state, CARDS)


def _at(state, team_index, position):
    teams = [
        t.model_copy(update={"position": position}) if i == team_index else t
        for i, t in enumerate(state.teams)
    ]
    return state.model_copy(update={"teams": teams})


def test_initialize_requires_teams():
    with pytest.raises(IllegalTransition):
        board_race.initialize([])


def test_start_round_snapshots_position_and_clears_drinking():
    state = _at(_game(), 0, 7).model_copy(update={"drinking_team": "Blue"})
    state = board_race.start_round(state, T0)
    assert state.status == BoardRaceStatus.PLAYING
    assert state.round.started_at == T0
    assert state.round.start_position == 7
    assert state.round.phase == "active"
    assert state.drinking_team is None


def test_start_round_twice_is_illegal():
    state = board_race.start_round(_game(), T0)
    with pytest.raises(IllegalTransition):
        board_race.start_round(state, T0)


def test_scoring_without_active_round_is_illegal():
    state = _game()
    with pytest.raises(IllegalTransition):
        board_race.mark_correct(state, CARDS, 0)
    with pytest.raises(IllegalTransition):
        board_race.mark_skip(state, CARDS, 0)


def test_correct_then_skip_moves_and_records():
    state = board_race.start_round(_game(), T0)
    state = board_race.mark_correct(state, CARDS, 0)
    assert state.teams[0].position == 1
    state = board_race.mark_skip(state, CARDS, 1)
    assert state.teams[0].position == 0
    assert [c.status for c in state.round.used_cards] == ["correct", "skipped"]
    assert [c.word for c in state.round.used_cards] == ["alpha", "bravo"]
    assert state.round.score == 1


def test_skip_clamps_at_zero():
    state = board_race.start_round(_game(), T0)
    state = board_race.mark_skip(state, CARDS, 0)
    assert state.teams[0].position == 0


def test_reaching_last_square_finishes_game():
    state = board_race.start_round(_at(_game(), 0, 58), T0)
    state = board_race.mark_correct(state, CARDS, 0)
    assert state.teams[0].position == board_race.BOARD_END
    assert state.status == BoardRaceStatus.FINISHED
    assert state.winner_team == "Red"
    assert state.round.phase == "summary"
    with pytest.raises(IllegalTransition):
        board_race.finish_round(state)


def test_positions_stay_on_board_for_random_sequences():
    rnd = random.Random(7)
    for _ in range(30):
        state = board_race.start_round(_game(), T0)
        for _ in range(150):
            if state.status == BoardRaceStatus.FINISHED:
                break
            if rnd.random() < 0.7:
                state = board_race.mark_correct(state, CARDS, rnd.randrange(len(CARDS)))
            else:
                state = board_race.mark_skip(state, CARDS, rnd.randrange(len(CARDS)))
            assert all(0 <= t.position <= board_race.BOARD_END for t in state.teams)
        if state.teams[0].position == board_race.BOARD_END:
            assert state.status == BoardRaceStatus.FINISHED
            assert state.winner_team == "Red"
        assert board_race.validate(state) == []


def test_deadline_uses_frozen_word_and_moves_to_summary():
    state = board_race.start_round(_game(), T0)
    state = board_race.freeze_word(state, CARDS, 2)
    assert state.round.frozen_word == "charlie"
    # Card index moved on after the freeze; the frozen word is still scored
    state = board_race.mark_correct(state, CARDS, 3, is_deadline=True)
    last = state.round.used_cards[-1]
    assert last.word == "charlie"
    assert last.resolution == CardResolution.LAST_WORD
    assert last.team_that_guessed == 0
    assert state.round.phase == "summary"


def test_freeze_keeps_existing_frozen_word():
    state = board_race.start_round(_game(), T0)
    state = board_race.freeze_word(state, CARDS, 0)
    again = board_race.freeze_word(state, CARDS, 1)
    assert again.round.frozen_word == "alpha"


def test_last_word_can_be_claimed_by_other_team():
    state = board_race.start_round(_game(), T0)
    state = board_race.mark_correct(state, CARDS, 0, team_index=1, is_deadline=True)
    assert state.teams[0].position == 0
    assert state.teams[1].position == 1
    assert state.round.used_cards[-1].team_that_guessed == 1


def test_golden_word_cannot_be_skipped():
    state = _game(golden_rounds_enabled=True, golden_squares=[0])
    state = board_race.start_round(state, T0)
    assert state.round.golden_word is True
    with pytest.raises(IllegalTransition):
        board_race.mark_skip(state, CARDS, 0)
    # ...except at the deadline
    skipped = board_race.mark_skip(state, CARDS, 0, is_deadline=True)
    assert skipped.round.phase == "summary"


def test_golden_flag_recomputed_after_correct_only():
    state = _game(golden_rounds_enabled=True, golden_squares=[1])
    state = board_race.start_round(state, T0)
    assert state.round.golden_word is False
    state = board_race.mark_correct(state, CARDS, 0)
    assert state.round.golden_word is True
    state = board_race.mark_correct(state, CARDS, 1)
    assert state.round.used_cards[-1].resolution == CardResolution.GOLDEN
    assert state.round.golden_word is False


def test_golden_squares_ignored_when_disabled():
    state = board_race.start_round(_game(golden_squares=[0]), T0)
    assert state.round.golden_word is False


def test_finish_round_requires_summary():
    state = board_race.start_round(_game(), T0)
    with pytest.raises(IllegalTransition):
        board_race.finish_round(state)


def test_finish_round_rotates_and_picks_drinking_team_on_wrap():
    state = board_race.start_round(_game(), T0)
    state = board_race.mark_correct(state, CARDS, 0, is_deadline=True)
    state = board_race.finish_round(state, drinking_mode=True)
    assert state.current_turn == 1
    assert state.round is None
    assert state.drinking_team is None

    state = board_race.start_round(state, T0 + 100)
    state = board_race.mark_skip(state, CARDS, 0, is_deadline=True)
    state = board_race.finish_round(state, drinking_mode=True)
    assert state.current_turn == 0
    assert state.drinking_team == "Blue"


def test_drinking_ties_go_to_first_team():
    state = board_race.start_round(_game(), T0)
    state = board_race.mark_skip(state, CARDS, 0, is_deadline=True)
    state = board_race.finish_round(state, drinking_mode=True)
    state = board_race.start_round(state, T0)
    state = board_race.mark_skip(state, CARDS, 0, is_deadline=True)
    state = board_race.finish_round(state, drinking_mode=True)
    assert state.drinking_team == "Red"


def test_current_word_indexes_by_position():
    cards = [["a", "b", "c"]]
    assert board_race.current_word(cards, 0, 4) == "b"
    assert board_race.current_word(cards, 1, 0) is None
    assert board_race.current_word([], 0, 0) is None


def test_generate_cards_shape_and_catalog_errors(rng):
    cards = board_race.generate_cards(WORDS, cards_count=10, words_per_card=3, rng=rng)
    assert len(cards) == 10
    assert all(len(c) == 3 for c in cards)
    assert len({w for c in cards for w in c}) == 30

    with pytest.raises(CatalogError) as exc:
        board_race.generate_cards([], cards_count=1)
    assert exc.value.reason == CatalogError.EMPTY
    with pytest.raises(CatalogError) as exc:
        board_race.generate_cards(WORDS[:5], cards_count=10)
    assert exc.value.reason == CatalogError.INSUFFICIENT


def test_add_player_moves_between_teams():
    state = board_race.add_player(_game(), "cat", 0)
    state = board_race.add_player(state, "cat", 1)
    assert "cat" not in state.teams[0].players
    assert state.teams[1].players == ["bob", "cat"]
    assert board_race.add_player(state, "cat", 1) == state


def test_queries():
    state = board_race.start_round(_at(_game(), 0, 3), T0)
    state = board_race.mark_correct(state, CARDS, 0)
    assert board_race.is_player_turn(state, "ann")
    assert not board_race.is_player_turn(state, "bob")
    assert board_race.calculate_progress(state) == {"start_pos": 3, "current_pos": 4, "moved": 1}
    assert [t.name for t in board_race.final_rankings(state)] == ["Red", "Blue"]
    assert board_race.time_remaining(state, T0 + 15.5) == 45
    assert board_race.time_remaining(state, T0 + 500) == 0


def test_reset_keeps_teams_and_host():
    state = board_race.start_round(_at(_game(), 0, 58), T0)
    state = board_race.mark_correct(state, CARDS, 0)
    state = board_race.reset(state)
    assert state.status == BoardRaceStatus.WAITING
    assert state.host_name == "ann"
    assert [t.players for t in state.teams] == [["ann"], ["bob"]]
    assert all(t.position == 0 for t in state.teams)
    assert state.round is None and state.winner_team is None
    assert board_race.validate(state) == []
