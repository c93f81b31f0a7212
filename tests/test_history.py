import pytest

from americano.history import PairingState, group_key, rebuild_pairing_state, team_key
from americano.models import Match, MatchStatus, Player, Round, Tournament


def test_record_match_updates_every_history():
    state = PairingState.for_players(["a", "b", "c", "d", "e"])
    state.record_round(1, [(("a", "b", "c", "d"), 2)])

    assert state.partnership_count("a", "b") == state.partnership_count("b", "a") == 1
    assert state.partnership_count("c", "d") == 1
    assert state.partnership_count("a", "c") == 0
    assert state.has_been_partners("d", "c")
    assert state.opponent_history["a"] == {"c", "d"}
    assert state.has_faced_team("a", ("c", "d"))
    assert state.has_faced_team("d", team_key("b", "a"))
    assert not state.has_faced_team("a", ("a", "b"))
    assert state.group_count(["d", "c", "b", "a"]) == 1
    assert state.player_match_group_history["a"] == {("a", "b", "c", "d")}
    assert state.player_court_history["b"] == {2}
    assert state.player_round_participation["c"] == {1}
    assert state.court_usage_by_round == {1: {2: ["a", "b", "c", "d"]}}
    assert state.total_rounds_generated == 1
    assert state.sit_out_count("e") == 1
    assert state.sit_out_count("a") == 0


def test_unknown_players_are_added_on_record():
    state = PairingState()
    state.record_match(1, ("w", "x", "y", "z"), None)
    assert state.partnership_count("w", "x") == 1
    assert state.player_court_history["w"] == set()


def test_group_key_is_order_independent():
    assert group_key(["d", "b", "a", "c"]) == ("a", "b", "c", "d")
    with pytest.raises(ValueError):
        group_key(["a", "b", "c"])


def test_state_survives_serialization():
    state = PairingState.for_players(["a", "b", "c", "d", "e", "f", "g", "h"])
    state.record_round(1, [(("a", "b", "c", "d"), 1), (("e", "f", "g", "h"), 2)])
    state.record_round(2, [(("a", "c", "e", "g"), 2), (("b", "d", "f", "h"), 1)])

    data = state.to_dict()
    assert isinstance(data["match_group_history"], list)
    assert PairingState.from_dict(data) == state


def test_from_dict_deduplicates_lists():
    state = PairingState.from_dict({
        "pairing_history": {"a": ["b", "b"]},
        "player_court_history": {"a": [1, 1, 2]},
    })
    assert state.pairing_history["a"] == {"b"}
    assert state.player_court_history["a"] == {1, 2}


def _stored_round(number, players, court, status=MatchStatus.PENDING):
    match = Match(f"m{number}", *players, court_number=court, status=status)
    return Round(id=f"r{number}", round_number=number, matches=[match], status=status)


def test_rebuild_replays_stored_rounds():
    rounds = [
        _stored_round(1, ("a", "b", "c", "d"), 1, MatchStatus.COMPLETED),
        _stored_round(2, ("a", "c", "b", "e"), 1),
    ]
    state = rebuild_pairing_state(["a", "b", "c", "d", "e"], rounds)
    assert state.total_rounds_generated == 2
    assert state.partnership_count("a", "b") == 1
    assert state.partnership_count("a", "c") == 1
    assert state.player_round_participation["a"] == {1, 2}


def test_tournament_without_stored_state_is_migrated():
    players = [Player(id=pid, name=pid.upper()) for pid in "abcd"]
    t = Tournament(id="t1", name="Old", players=players,
                   rounds=[_stored_round(1, ("a", "b", "c", "d"), 1)])
    data = t.to_dict()
    del data["pairing_state"]

    loaded = Tournament.from_dict(data)
    assert loaded.pairing_state.partnership_count("a", "b") == 1
    assert loaded.pairing_state.group_count("abcd") == 1


def test_stored_state_is_not_recomputed():
    players = [Player(id=pid, name=pid.upper()) for pid in "abcd"]
    t = Tournament(id="t1", name="New", players=players,
                   rounds=[_stored_round(1, ("a", "b", "c", "d"), 1)],
                   pairing_state=PairingState.for_players("abcd"))

    loaded = Tournament.from_dict(t.to_dict())
    assert loaded.pairing_state.partnership_count("a", "b") == 0
    assert loaded == t


def test_join_round_is_kept_for_sit_outs():
    state = PairingState.for_players("abcd")
    state.record_round(1, [(("a", "b", "c", "d"), 1)])
    state.record_round(2, [(("a", "c", "b", "d"), 1)])
    state.ensure_player("e")

    assert state.sit_out_count("e") == 0
    loaded = PairingState.from_dict(state.to_dict())
    assert loaded.player_joined_round["e"] == 2
    loaded.record_round(3, [(("a", "b", "c", "d"), 1)])
    assert loaded.sit_out_count("e") == 1
