from dataclasses import dataclass, replace
from itertools import combinations
from typing import List, Optional, Sequence, Set, Tuple

from americano.history import PairingState, team_key
from americano.models import Tournament

PARTNERSHIP_WEIGHT = 10
OPPONENT_PAIR_WEIGHT = 5


@dataclass(frozen=True)
class Candidate:
    players: Tuple[str, str, str, str]  # team1 = players[:2], team2 = players[2:]
    partnership_score: int
    opponent_score: int
    total_score: int
    is_repeated_group: bool
    court_number: Optional[int] = None

    @property
    def team1(self) -> Tuple[str, str]:
        return self.players[0], self.players[1]

    @property
    def team2(self) -> Tuple[str, str]:
        return self.players[2], self.players[3]


def score_split(state: PairingState, team1: Sequence[str], team2: Sequence[str]) -> Tuple[int, int, int]:
    """Return (partnership, opponent-pair, total) score of a team split. Lower is better."""
    x, y = team1
    u, v = team2
    partnership = state.partnership_count(x, y) + state.partnership_count(u, v)

    key1, key2 = team_key(x, y), team_key(u, v)
    opponent = sum((
        state.has_faced_team(x, key2),
        state.has_faced_team(y, key2),
        state.has_faced_team(u, key1),
        state.has_faced_team(v, key1),
    ))
    return partnership, opponent, partnership * PARTNERSHIP_WEIGHT + opponent * OPPONENT_PAIR_WEIGHT


def team_splits(a: str, b: str, c: str, d: str):
    return (
        ((a, b), (c, d)),
        ((a, c), (b, d)),
        ((a, d), (b, c)),
    )


def best_split(state: PairingState, group: Sequence[str]) -> Candidate:
    """Pick the cheapest of the three team splits of a 4-player group; first wins ties."""
    best = None
    for team1, team2 in team_splits(*group):
        partnership, opponent, total = score_split(state, team1, team2)
        if best is None or total < best.total_score:
            best = Candidate(
                players=(team1[0], team1[1], team2[0], team2[1]),
                partnership_score=partnership,
                opponent_score=opponent,
                total_score=total,
                is_repeated_group=False,
            )
    return replace(best, is_repeated_group=state.group_count(group) > 0)


def generate_candidates(player_ids: Sequence[str], state: PairingState) -> List[Candidate]:
    """Every 4-player group of the pool, each with its best team split."""
    if len(player_ids) < 4:
        return []
    return [best_split(state, group) for group in combinations(player_ids, 4)]


def target_match_count(active_players: int, courts: int) -> int:
    return max(min(active_players // 4, courts), 0)


def court_diversity_score(state: PairingState, players: Sequence[str], court: int) -> int:
    """How many of these players have already played on this court."""
    return sum(1 for pid in players if state.has_played_on_court(pid, court))


def select_matches(candidates: Sequence[Candidate], max_matches: int, courts: int,
                   state: PairingState) -> List[Candidate]:
    """
    Greedily pick player-disjoint candidates and give each a court.

    Groups that never played together are exhausted before any repeated
    group is considered, whatever their scores. May return fewer than
    max_matches when the pool runs out of disjoint candidates.
    """
    if max_matches <= 0:
        return []

    fresh = sorted((c for c in candidates if not c.is_repeated_group), key=lambda c: c.total_score)
    stale = sorted((c for c in candidates if c.is_repeated_group), key=lambda c: c.total_score)

    selected: List[Candidate] = []
    used_players: Set[str] = set()
    used_courts: Set[int] = set()

    for candidate in fresh + stale:
        if len(selected) >= max_matches:
            break
        if any(pid in used_players for pid in candidate.players):
            continue

        best_court, best_court_score = None, None
        for court in range(1, courts + 1):
            if court in used_courts:
                continue
            score = court_diversity_score(state, candidate.players, court)
            if best_court_score is None or score < best_court_score:
                best_court, best_court_score = court, score
        if best_court is None:
            break

        selected.append(replace(candidate, court_number=best_court))
        used_players.update(candidate.players)
        used_courts.add(best_court)

    return selected


def calculate_standings(tournament: Tournament) -> List[dict]:
    state = tournament.pairing_state
    standings = []
    for player in tournament.players:
        games_played = games_won = games_lost = 0
        for rnd in tournament.rounds:
            for m in rnd.matches:
                if not m.completed or player.id not in m.players:
                    continue
                on_team1 = player.id in m.team1
                score_for = m.team1_score if on_team1 else m.team2_score
                score_against = m.team2_score if on_team1 else m.team1_score
                games_played += 1
                if score_for > score_against:
                    games_won += 1
                elif score_for < score_against:
                    games_lost += 1
        standings.append({
            "id": player.id,
            "name": player.name,
            "points": player.total_points,
            "games_played": games_played,
            "games_won": games_won,
            "games_lost": games_lost,
            "sit_outs": state.sit_out_count(player.id),
        })
    standings.sort(key=lambda x: (-x["points"], -x["games_won"]))
    for i, s in enumerate(standings):
        s["rank"] = i + 1
    return standings
