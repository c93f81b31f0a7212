"""
Round lifecycle: generation, score entry, completion and admin changes.
"""
from itertools import combinations

import pytest

from americano.controller import BlockReason, ProgressState, TournamentController
from americano.exceptions import (
    InvalidScore,
    MatchAlreadyCompleted,
    MatchNotFound,
    PlayerChangeNotAllowed,
    PlayerNotFound,
)
from americano.models import MatchStatus, Player, TournamentStatus

from conftest import make_tournament


def _complete_round(ctl, rnd, team1_score=12):
    points = ctl.tournament.points_per_match
    for m in rnd.matches:
        ctl.record_score(m.id, team1_score, points - team1_score)


def _play_rounds(ctl, count):
    rounds = []
    for _ in range(count):
        rnd = ctl.generate_next_round()
        assert rnd is not None
        _complete_round(ctl, rnd)
        rounds.append(rnd)
    return rounds


def test_first_round_eight_players_two_courts(tournament):
    ctl = TournamentController(tournament)
    assert ctl.progress_state() == ProgressState.NO_ROUNDS

    rnd = ctl.generate_next_round()
    assert rnd.round_number == 1
    assert len(rnd.matches) == 2
    assert sorted(m.court_number for m in rnd.matches) == [1, 2]
    assert tournament.status == TournamentStatus.ACTIVE
    assert ctl.progress_state() == ProgressState.ROUND_IN_PROGRESS

    state = tournament.pairing_state
    for m in rnd.matches:
        assert state.partnership_count(*m.team1) == 1
        assert state.partnership_count(*m.team2) == 1
    assert all(n <= 1 for counts in state.partnership_counts.values() for n in counts.values())

    ctl.record_score(rnd.matches[0].id, 12, 12)
    assert rnd.status == MatchStatus.IN_PROGRESS
    assert not ctl.can_generate_next_round()
    ctl.record_score(rnd.matches[1].id, 15, 9)

    assert rnd.status == MatchStatus.COMPLETED
    assert ctl.can_generate_next_round()
    assert ctl.should_auto_generate_next_round()
    assert ctl.progress_state() == ProgressState.ROUND_COMPLETE_AWAITING_NEXT


def test_history_is_recorded_when_round_is_generated(tournament):
    ctl = TournamentController(tournament)
    rnd = ctl.generate_next_round()
    m = rnd.matches[0]
    assert tournament.pairing_state.group_count(m.players) == 1
    assert tournament.pairing_state.has_faced_team(m.player1_id, tuple(sorted(m.team2)))
    assert all(m.status == MatchStatus.PENDING for m in rnd.matches)


def test_rounds_never_double_book_players():
    t = make_tournament(n_players=11, courts=3)
    ctl = TournamentController(t)
    for rnd in _play_rounds(ctl, 8):
        seen = [pid for m in rnd.matches for pid in m.players]
        assert len(seen) == len(set(seen))
        assert len(rnd.matches) == 2


def test_partnership_counts_match_generated_rounds():
    t = make_tournament(n_players=9, courts=2)
    ctl = TournamentController(t)
    rounds = _play_rounds(ctl, 6)

    expected = {}
    for rnd in rounds:
        for m in rnd.matches:
            for a, b in (m.team1, m.team2):
                expected[(a, b)] = expected.get((a, b), 0) + 1
                expected[(b, a)] = expected.get((b, a), 0) + 1

    for a, b in combinations([p.id for p in t.players], 2):
        assert t.pairing_state.partnership_count(a, b) == expected.get((a, b), 0)
        assert t.pairing_state.partnership_count(b, a) == expected.get((b, a), 0)


def test_groups_do_not_repeat_while_fresh_ones_remain(tournament):
    ctl = TournamentController(tournament)
    groups = [frozenset(m.players) for rnd in _play_rounds(ctl, 10) for m in rnd.matches]
    assert len(groups) == 20
    assert len(set(groups)) == 20


def test_record_score_credits_both_teams(tournament):
    ctl = TournamentController(tournament)
    match = ctl.generate_next_round().matches[0]
    before = {p.id: p.total_points for p in tournament.players}

    ctl.record_score(match.id, 15, 9)

    for p in tournament.players:
        if p.id in match.team1:
            assert p.total_points == before[p.id] + 15
        elif p.id in match.team2:
            assert p.total_points == before[p.id] + 9
        else:
            assert p.total_points == before[p.id]
    assert match.status == MatchStatus.COMPLETED
    assert (match.team1_score, match.team2_score) == (15, 9)


def test_second_score_for_same_match_fails(tournament):
    ctl = TournamentController(tournament)
    match = ctl.generate_next_round().matches[0]
    ctl.record_score(match.id, 15, 9)
    totals = [p.total_points for p in tournament.players]

    with pytest.raises(MatchAlreadyCompleted):
        ctl.record_score(match.id, 9, 15)
    assert [p.total_points for p in tournament.players] == totals
    assert (match.team1_score, match.team2_score) == (15, 9)


def test_invalid_scores_change_nothing(tournament):
    ctl = TournamentController(tournament)
    match = ctl.generate_next_round().matches[0]

    with pytest.raises(InvalidScore):
        ctl.record_score(match.id, 15, 10)
    with pytest.raises(InvalidScore):
        ctl.record_score(match.id, -1, 25)
    with pytest.raises(MatchNotFound):
        ctl.record_score("missing", 12, 12)

    assert match.status == MatchStatus.PENDING
    assert all(p.total_points == 0 for p in tournament.players)


def test_generation_stops_at_max_rounds():
    t = make_tournament(max_rounds=2)
    ctl = TournamentController(t)
    _play_rounds(ctl, 2)

    assert ctl.completed_round_count() == 2
    assert ctl.generate_next_round() is None
    assert t.status == TournamentStatus.COMPLETED
    assert ctl.progress_state() == ProgressState.TOURNAMENT_COMPLETE
    assert len(t.rounds) == 2


def test_exhausted_tournament_is_completed_on_generation():
    t = make_tournament(max_rounds=3)
    ctl = TournamentController(t)
    _play_rounds(ctl, 2)
    t.max_rounds = 2

    assert ctl.block_reason() == BlockReason.TOURNAMENT_EXHAUSTED
    assert ctl.generate_next_round() is None
    assert t.status == TournamentStatus.COMPLETED


def test_five_players_one_court_sits_one_out():
    t = make_tournament(n_players=5, courts=1)
    ctl = TournamentController(t)
    for rnd in _play_rounds(ctl, 5):
        assert len(rnd.matches) == 1
        assert rnd.matches[0].court_number == 1
        playing = set(rnd.matches[0].players)
        assert len({p.id for p in t.players} - playing) == 1


def test_round_in_progress_blocks_generation(tournament):
    ctl = TournamentController(tournament)
    ctl.generate_next_round()
    assert ctl.block_reason() == BlockReason.ROUND_IN_PROGRESS
    assert ctl.generate_next_round() is None
    assert len(tournament.rounds) == 1


def test_too_few_players_or_courts():
    t = make_tournament(n_players=3)
    ctl = TournamentController(t)
    assert ctl.generate_next_round() is None
    assert ctl.block_reason() == BlockReason.INSUFFICIENT_PLAYERS

    t = make_tournament(courts=0)
    ctl = TournamentController(t)
    assert ctl.generate_next_round() is None
    assert ctl.block_reason() == BlockReason.NO_COURT_CAPACITY


def test_reset_with_new_players_clears_rounds_and_history(tournament):
    ctl = TournamentController(tournament)
    _play_rounds(ctl, 2)

    new_players = [Player(id=f"n{i}", name=f"New {i}") for i in range(4)]
    ctl.reset_with_new_players(new_players)

    assert tournament.rounds == []
    assert tournament.players == new_players
    assert tournament.pairing_state.total_rounds_generated == 0
    assert set(tournament.pairing_state.pairing_history) == {"n0", "n1", "n2", "n3"}
    assert tournament.pairing_state.match_group_history == {}
    assert ctl.progress_state() == ProgressState.NO_ROUNDS
    assert ctl.generate_next_round().round_number == 1


def test_player_admin(tournament):
    ctl = TournamentController(tournament)
    rnd = ctl.generate_next_round()
    busy = rnd.matches[0].player1_id

    with pytest.raises(PlayerChangeNotAllowed):
        ctl.remove_player(busy)
    with pytest.raises(PlayerNotFound):
        ctl.remove_player("nobody")

    newcomer = ctl.add_player("  Late Arrival ")
    assert newcomer.name == "Late Arrival"
    assert newcomer.id in tournament.pairing_state.pairing_history

    _complete_round(ctl, rnd)
    ctl.remove_player(busy)
    assert tournament.player(busy) is None

    ctl.adjust_player_points(newcomer.id, 30)
    assert tournament.player(newcomer.id).total_points == 30
    with pytest.raises(InvalidScore):
        ctl.adjust_player_points(newcomer.id, -5)

    actions = [entry["action"] for entry in tournament.admin_history]
    assert "PLAYER_ADDED" in actions
    assert "PLAYER_REMOVED" in actions
    assert "SCORE_ADJUSTED" in actions


def test_finish_forces_completion(tournament):
    ctl = TournamentController(tournament)
    ctl.generate_next_round()
    ctl.finish()
    assert tournament.status == TournamentStatus.COMPLETED
    assert ctl.block_reason() == BlockReason.TOURNAMENT_COMPLETED


def test_leaderboard_orders_by_points(tournament):
    ctl = TournamentController(tournament)
    rnd = ctl.generate_next_round()
    ctl.record_score(rnd.matches[0].id, 20, 4)
    ctl.record_score(rnd.matches[1].id, 14, 10)

    board = ctl.leaderboard()
    assert [row["points"] for row in board] == [20, 20, 14, 14, 10, 10, 4, 4]
    assert board[0]["rank"] == 1
    assert board[0]["games_won"] == 1
    assert board[-1]["games_lost"] == 1


def test_reset_zeroes_totals_and_keeps_status(tournament):
    ctl = TournamentController(tournament)
    ctl.generate_next_round()
    carried = [Player(id=f"n{i}", name=f"New {i}", total_points=30) for i in range(4)]

    ctl.reset_with_new_players(carried)

    assert [p.total_points for p in tournament.players] == [0, 0, 0, 0]
    assert tournament.status == TournamentStatus.ACTIVE


def test_completed_tournament_cannot_be_reset():
    t = make_tournament(max_rounds=1)
    ctl = TournamentController(t)
    _play_rounds(ctl, 1)
    assert t.status == TournamentStatus.COMPLETED
    players = list(t.players)

    with pytest.raises(PlayerChangeNotAllowed):
        ctl.reset_with_new_players([Player(id=f"n{i}", name=f"New {i}") for i in range(4)])
    assert t.status == TournamentStatus.COMPLETED
    assert t.players == players
    assert len(t.rounds) == 1


def test_late_player_sit_outs_start_when_they_join(tournament):
    ctl = TournamentController(tournament)
    _play_rounds(ctl, 3)

    late = ctl.add_player("Late")
    assert tournament.pairing_state.sit_out_count(late.id) == 0
    row = next(r for r in ctl.leaderboard() if r["id"] == late.id)
    assert row["sit_outs"] == 0

    rnd = ctl.generate_next_round()
    playing = {pid for m in rnd.matches for pid in m.players}
    assert tournament.pairing_state.sit_out_count(late.id) == (0 if late.id in playing else 1)
