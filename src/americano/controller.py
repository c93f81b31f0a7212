"""
Round lifecycle of one Americano tournament.

The controller works on an in-memory Tournament aggregate and never touches
storage; loading, saving and serializing concurrent calls per tournament is
the caller's job (see americano.service).
"""
import logging
from enum import Enum
from typing import List, Optional, Sequence

from americano.exceptions import (
    InvalidScore,
    MatchAlreadyCompleted,
    MatchNotFound,
    PlayerChangeNotAllowed,
    PlayerNotFound,
)
from americano.functions import (
    calculate_standings,
    generate_candidates,
    select_matches,
    target_match_count,
)
from americano.history import PairingState
from americano.models import (
    Match,
    MatchStatus,
    Player,
    Round,
    Tournament,
    TournamentStatus,
    generate_id,
)

logger = logging.getLogger(__name__)


class ProgressState(str, Enum):
    NO_ROUNDS = "NO_ROUNDS"
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    ROUND_COMPLETE_AWAITING_NEXT = "ROUND_COMPLETE_AWAITING_NEXT"
    TOURNAMENT_COMPLETE = "TOURNAMENT_COMPLETE"


class BlockReason(str, Enum):
    """Why a new round cannot be generated right now."""
    TOURNAMENT_COMPLETED = "TOURNAMENT_COMPLETED"
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    TOURNAMENT_EXHAUSTED = "TOURNAMENT_EXHAUSTED"
    INSUFFICIENT_PLAYERS = "INSUFFICIENT_PLAYERS"
    NO_COURT_CAPACITY = "NO_COURT_CAPACITY"


class TournamentController:

    def __init__(self, tournament: Tournament):
        self.tournament = tournament

    @property
    def state(self) -> PairingState:
        return self.tournament.pairing_state

    # -- Queries -----------------------------------------------------------

    def active_player_ids(self) -> List[str]:
        return [p.id for p in self.tournament.players]

    def completed_round_count(self) -> int:
        return sum(1 for r in self.tournament.rounds if r.completed)

    def current_round(self) -> Optional[Round]:
        return next((r for r in self.tournament.rounds if not r.completed), None)

    def latest_round(self) -> Optional[Round]:
        return self.tournament.rounds[-1] if self.tournament.rounds else None

    def rounds_exhausted(self) -> bool:
        # max_rounds <= 0 means no ceiling
        max_rounds = self.tournament.max_rounds
        return max_rounds > 0 and self.completed_round_count() >= max_rounds

    def progress_state(self) -> ProgressState:
        if self.tournament.status == TournamentStatus.COMPLETED:
            return ProgressState.TOURNAMENT_COMPLETE
        if not self.tournament.rounds:
            return ProgressState.NO_ROUNDS
        if self.current_round() is not None:
            return ProgressState.ROUND_IN_PROGRESS
        return ProgressState.ROUND_COMPLETE_AWAITING_NEXT

    def block_reason(self) -> Optional[BlockReason]:
        if self.tournament.status == TournamentStatus.COMPLETED:
            return BlockReason.TOURNAMENT_COMPLETED
        if self.current_round() is not None:
            return BlockReason.ROUND_IN_PROGRESS
        if self.rounds_exhausted():
            return BlockReason.TOURNAMENT_EXHAUSTED
        if len(self.tournament.players) < 4:
            return BlockReason.INSUFFICIENT_PLAYERS
        if target_match_count(len(self.tournament.players), self.tournament.number_of_courts) == 0:
            return BlockReason.NO_COURT_CAPACITY
        return None

    def can_generate_next_round(self) -> bool:
        return self.block_reason() is None

    def should_auto_generate_next_round(self) -> bool:
        latest = self.latest_round()
        if latest is None or not latest.completed:
            return False
        return self.can_generate_next_round()

    def leaderboard(self) -> List[dict]:
        return calculate_standings(self.tournament)

    # -- Round generation --------------------------------------------------

    def generate_next_round(self) -> Optional[Round]:
        """
        Build, append and record the next round.

        Returns None when no round can be generated; block_reason() says why.
        Reaching the round ceiling completes the tournament.
        """
        t = self.tournament
        reason = self.block_reason()
        if reason == BlockReason.TOURNAMENT_EXHAUSTED:
            self._complete("max rounds reached")
            return None
        if reason is not None:
            logger.debug("Tournament %s: no round generated (%s)", t.id, reason.value)
            return None

        player_ids = self.active_player_ids()
        max_matches = target_match_count(len(player_ids), t.number_of_courts)
        candidates = generate_candidates(player_ids, self.state)
        selected = select_matches(candidates, max_matches, t.number_of_courts, self.state)
        if not selected:
            logger.warning("Tournament %s: no disjoint matches among %d candidates",
                           t.id, len(candidates))
            return None

        round_number = len(t.rounds) + 1
        matches = [
            Match(
                id=generate_id(),
                player1_id=c.players[0],
                player2_id=c.players[1],
                player3_id=c.players[2],
                player4_id=c.players[3],
                court_number=c.court_number,
            )
            for c in selected
        ]
        rnd = Round(id=generate_id(), round_number=round_number, matches=matches)
        t.rounds.append(rnd)
        self.state.record_round(round_number, ((m.players, m.court_number) for m in matches))

        if t.status == TournamentStatus.DRAFT:
            t.status = TournamentStatus.ACTIVE
        repeated = sum(1 for c in selected if c.is_repeated_group)
        t.log_action("ROUND_GENERATED", {"round_number": round_number, "matches": len(matches),
                                         "repeated_groups": repeated})
        logger.info("Tournament %s: generated round %d with %d matches (%d repeated groups)",
                    t.id, round_number, len(matches), repeated)
        return rnd

    # -- Scores ------------------------------------------------------------

    def validate_score(self, team1_score: int, team2_score: int) -> None:
        if team1_score < 0 or team2_score < 0:
            raise InvalidScore("scores must not be negative")
        target = self.tournament.points_per_match
        if target > 0 and team1_score + team2_score != target:
            raise InvalidScore(
                f"scores must add up to {target}, got {team1_score} + {team2_score}"
            )

    def record_score(self, match_id: str, team1_score: int, team2_score: int) -> Match:
        """Complete a pending match and credit each team's score to both its players."""
        t = self.tournament
        rnd, match = t.find_match(match_id)
        if match is None:
            raise MatchNotFound(match_id)
        if match.status != MatchStatus.PENDING:
            raise MatchAlreadyCompleted(match_id)
        self.validate_score(team1_score, team2_score)
        team_players = [t.player(pid) for pid in match.players]
        if any(p is None for p in team_players):
            raise PlayerNotFound(f"match {match_id} references a removed player")

        match.team1_score = team1_score
        match.team2_score = team2_score
        match.status = MatchStatus.COMPLETED
        p1, p2, p3, p4 = team_players
        p1.total_points += team1_score
        p2.total_points += team1_score
        p3.total_points += team2_score
        p4.total_points += team2_score

        rnd.refresh_status()
        t.log_action("MATCH_COMPLETED", {"match_id": match_id,
                                         "scores": {"team1": team1_score, "team2": team2_score}})
        if rnd.completed:
            logger.info("Tournament %s: round %d completed", t.id, rnd.round_number)
            if self.rounds_exhausted():
                self._complete("max rounds reached")
        return match

    # -- Admin -------------------------------------------------------------

    def reset_with_new_players(self, new_players: Sequence[Player]) -> None:
        """Replace the pool and forget every round and all pairing history."""
        t = self.tournament
        if t.status == TournamentStatus.COMPLETED:
            raise PlayerChangeNotAllowed(f"tournament {t.id} is completed")
        t.players = list(new_players)
        for p in t.players:
            p.total_points = 0
        t.rounds = []
        t.pairing_state = PairingState.for_players(p.id for p in t.players)
        t.log_action("PLAYERS_RESET", {"message": "Tournament reset with new players",
                                       "new_player_count": len(t.players)})
        logger.info("Tournament %s: reset with %d players", t.id, len(t.players))

    def add_player(self, name: str) -> Player:
        name = name.strip()
        if not name:
            raise PlayerChangeNotAllowed("player name is empty")
        player = Player(id=generate_id(), name=name)
        self.tournament.players.append(player)
        self.state.ensure_player(player.id)
        self.tournament.log_action("PLAYER_ADDED", {"player_id": player.id, "name": name})
        return player

    def remove_player(self, player_id: str) -> Player:
        player = self.tournament.player(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        current = self.current_round()
        if current and any(player_id in m.players and not m.completed for m in current.matches):
            raise PlayerChangeNotAllowed(f"player {player_id} has a match in progress")
        self.tournament.players.remove(player)
        self.tournament.log_action("PLAYER_REMOVED", {"player_id": player_id, "name": player.name})
        return player

    def adjust_player_points(self, player_id: str, total_points: int) -> Player:
        player = self.tournament.player(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        if total_points < 0:
            raise InvalidScore("total points must not be negative")
        old = player.total_points
        player.total_points = total_points
        self.tournament.log_action("SCORE_ADJUSTED", {"player_id": player_id, "old": old,
                                                      "new": total_points})
        return player

    def finish(self) -> None:
        self._complete("finished by admin")

    def _complete(self, why: str) -> None:
        t = self.tournament
        if t.status == TournamentStatus.COMPLETED:
            return
        t.status = TournamentStatus.COMPLETED
        t.log_action("TOURNAMENT_COMPLETED", {"message": why})
        logger.info("Tournament %s completed: %s", t.id, why)
