"""
Cumulative pairing statistics of one tournament.

The state only ever grows: every generated match is recorded once, at the
moment its round is generated, so the next round already treats it as
history even before a score is entered.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

# Bump when the persisted layout changes; older records are rebuilt from rounds.
PAIRING_STATE_VERSION = 1

TeamKey = Tuple[str, str]
GroupKey = Tuple[str, str, str, str]


def team_key(a: str, b: str) -> TeamKey:
    return tuple(sorted((a, b)))  # type: ignore[return-value]


def group_key(players: Iterable[str]) -> GroupKey:
    key = tuple(sorted(players))
    if len(key) != 4:
        raise ValueError(f"a match group has 4 players, got {len(key)}")
    return key  # type: ignore[return-value]


@dataclass
class PairingState:
    pairing_history: Dict[str, Set[str]] = field(default_factory=dict)
    partnership_counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    opponent_history: Dict[str, Set[str]] = field(default_factory=dict)
    opponent_pair_history: Dict[str, Set[TeamKey]] = field(default_factory=dict)
    player_court_history: Dict[str, Set[int]] = field(default_factory=dict)
    player_round_participation: Dict[str, Set[int]] = field(default_factory=dict)
    court_usage_by_round: Dict[int, Dict[int, List[str]]] = field(default_factory=dict)
    match_group_history: Dict[GroupKey, int] = field(default_factory=dict)
    player_match_group_history: Dict[str, Set[GroupKey]] = field(default_factory=dict)
    player_joined_round: Dict[str, int] = field(default_factory=dict)
    total_rounds_generated: int = 0
    version: int = PAIRING_STATE_VERSION

    @classmethod
    def for_players(cls, player_ids: Iterable[str]) -> "PairingState":
        state = cls()
        for pid in player_ids:
            state.ensure_player(pid)
        return state

    def ensure_player(self, pid: str) -> None:
        self.pairing_history.setdefault(pid, set())
        self.partnership_counts.setdefault(pid, {})
        self.opponent_history.setdefault(pid, set())
        self.opponent_pair_history.setdefault(pid, set())
        self.player_court_history.setdefault(pid, set())
        self.player_round_participation.setdefault(pid, set())
        self.player_match_group_history.setdefault(pid, set())
        self.player_joined_round.setdefault(pid, self.total_rounds_generated)

    # -- Queries -----------------------------------------------------------

    def partnership_count(self, a: str, b: str) -> int:
        return self.partnership_counts.get(a, {}).get(b, 0)

    def has_been_partners(self, a: str, b: str) -> bool:
        return b in self.pairing_history.get(a, ())

    def has_faced_team(self, pid: str, opponents: TeamKey) -> bool:
        return opponents in self.opponent_pair_history.get(pid, ())

    def group_count(self, players: Iterable[str]) -> int:
        return self.match_group_history.get(group_key(players), 0)

    def has_played_on_court(self, pid: str, court: int) -> bool:
        return court in self.player_court_history.get(pid, ())

    def sit_out_count(self, pid: str) -> int:
        """Rounds generated since the player joined in which they did not play."""
        played = len(self.player_round_participation.get(pid, ()))
        eligible = self.total_rounds_generated - self.player_joined_round.get(pid, 0)
        return max(eligible - played, 0)

    # -- Updates -----------------------------------------------------------

    def record_match(self, round_number: int, players: Sequence[str],
                     court: Optional[int]) -> None:
        """Record one match; players are (team1 a, team1 b, team2 a, team2 b)."""
        p1, p2, p3, p4 = players
        for pid in players:
            self.ensure_player(pid)

        for a, b in ((p1, p2), (p3, p4)):
            self.pairing_history[a].add(b)
            self.pairing_history[b].add(a)
            self.partnership_counts[a][b] = self.partnership_counts[a].get(b, 0) + 1
            self.partnership_counts[b][a] = self.partnership_counts[b].get(a, 0) + 1

        for a, b in ((p1, p3), (p1, p4), (p2, p3), (p2, p4)):
            self.opponent_history[a].add(b)
            self.opponent_history[b].add(a)

        team1, team2 = team_key(p1, p2), team_key(p3, p4)
        self.opponent_pair_history[p1].add(team2)
        self.opponent_pair_history[p2].add(team2)
        self.opponent_pair_history[p3].add(team1)
        self.opponent_pair_history[p4].add(team1)

        gkey = group_key(players)
        self.match_group_history[gkey] = self.match_group_history.get(gkey, 0) + 1
        for pid in players:
            self.player_match_group_history[pid].add(gkey)
            self.player_round_participation[pid].add(round_number)

        usage = self.court_usage_by_round.setdefault(round_number, {})
        if court is not None:
            for pid in players:
                self.player_court_history[pid].add(court)
            usage.setdefault(court, []).extend(players)

    def record_round(self, round_number: int,
                     matches: Iterable[Tuple[Sequence[str], Optional[int]]]) -> None:
        for players, court in matches:
            self.record_match(round_number, players, court)
        self.total_rounds_generated += 1

    # -- Serialization -----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "pairing_history": _sets_to_lists(self.pairing_history),
            "partnership_counts": {p: dict(c) for p, c in self.partnership_counts.items()},
            "opponent_history": _sets_to_lists(self.opponent_history),
            "opponent_pair_history": {
                p: [list(k) for k in sorted(keys)]
                for p, keys in self.opponent_pair_history.items()
            },
            "player_court_history": _sets_to_lists(self.player_court_history),
            "player_round_participation": _sets_to_lists(self.player_round_participation),
            "court_usage_by_round": {
                str(r): {str(c): list(pids) for c, pids in courts.items()}
                for r, courts in self.court_usage_by_round.items()
            },
            "match_group_history": [
                {"players": list(k), "count": n}
                for k, n in sorted(self.match_group_history.items())
            ],
            "player_match_group_history": {
                p: [list(k) for k in sorted(keys)]
                for p, keys in self.player_match_group_history.items()
            },
            "player_joined_round": dict(self.player_joined_round),
            "total_rounds_generated": self.total_rounds_generated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PairingState":
        return cls(
            pairing_history=_lists_to_sets(data.get("pairing_history", {})),
            partnership_counts={
                p: {q: int(n) for q, n in c.items()}
                for p, c in data.get("partnership_counts", {}).items()
            },
            opponent_history=_lists_to_sets(data.get("opponent_history", {})),
            opponent_pair_history={
                p: {team_key(*k) for k in keys}
                for p, keys in data.get("opponent_pair_history", {}).items()
            },
            player_court_history={
                p: {int(c) for c in v}
                for p, v in data.get("player_court_history", {}).items()
            },
            player_round_participation={
                p: {int(r) for r in v}
                for p, v in data.get("player_round_participation", {}).items()
            },
            court_usage_by_round={
                int(r): {int(c): list(pids) for c, pids in courts.items()}
                for r, courts in data.get("court_usage_by_round", {}).items()
            },
            match_group_history=_group_counts(data.get("match_group_history", [])),
            player_match_group_history={
                p: {group_key(k) for k in keys}
                for p, keys in data.get("player_match_group_history", {}).items()
            },
            player_joined_round={
                p: int(n) for p, n in data.get("player_joined_round", {}).items()
            },
            total_rounds_generated=int(data.get("total_rounds_generated", 0)),
            version=int(data.get("version", PAIRING_STATE_VERSION)),
        )


def _sets_to_lists(mapping: Dict[str, Set[Any]]) -> Dict[str, list]:
    return {k: sorted(v) for k, v in mapping.items()}


def _lists_to_sets(mapping: Dict[str, Iterable[str]]) -> Dict[str, Set[str]]:
    return {k: set(v) for k, v in mapping.items()}


def _group_counts(entries: Iterable[Dict[str, Any]]) -> Dict[GroupKey, int]:
    counts: Dict[GroupKey, int] = {}
    for entry in entries:
        key = group_key(entry["players"])
        counts[key] = counts.get(key, 0) + int(entry["count"])
    return counts


def rebuild_pairing_state(player_ids: Iterable[str], rounds: Iterable[Any]) -> PairingState:
    """
    Replay stored rounds into a fresh state.

    Only used to migrate persisted records written before the state was
    stored (or with an older layout); every match counts regardless of status.
    """
    state = PairingState.for_players(player_ids)
    for rnd in sorted(rounds, key=lambda r: r.round_number):
        state.record_round(
            rnd.round_number,
            ((m.players, m.court_number) for m in rnd.matches),
        )
    logger.info("Rebuilt pairing state from %d rounds", state.total_rounds_generated)
    return state
