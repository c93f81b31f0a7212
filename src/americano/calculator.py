"""
Tournament length estimates.

A round takes roughly 18 minutes for a 24-point match. The round ceiling is
the smaller of what fits in the target duration and what gives each player
a partner among ~60% of the field, clamped to 4..10 rounds.
"""
import math
from dataclasses import dataclass

MINUTES_PER_24_POINTS = 18
MIN_ROUNDS = 4
MAX_ROUNDS = 10
MIXING_RATIO = 0.6


@dataclass
class TournamentStats:
    total_rounds: int
    total_matches: int
    matches_per_round: int
    players_per_round: int
    estimated_duration: int  # minutes
    target_duration: int  # minutes
    rounds_for_target_duration: int


def calculate_tournament_stats(num_players: int, num_courts: int, points_per_match: int = 24,
                               target_duration: int = 105) -> TournamentStats:
    if num_players < 4:
        return TournamentStats(0, 0, 0, 0, 0, target_duration, 0)

    matches_per_round = min(num_players // 4, num_courts)
    minutes_per_match = math.ceil(points_per_match / 24 * MINUTES_PER_24_POINTS)
    rounds_for_duration = target_duration // minutes_per_match if minutes_per_match > 0 else MAX_ROUNDS
    ideal_rounds_for_mixing = math.ceil((num_players - 1) * MIXING_RATIO)

    total_rounds = max(MIN_ROUNDS, min(rounds_for_duration, ideal_rounds_for_mixing, MAX_ROUNDS))

    return TournamentStats(
        total_rounds=total_rounds,
        total_matches=total_rounds * matches_per_round,
        matches_per_round=matches_per_round,
        players_per_round=matches_per_round * 4,
        estimated_duration=total_rounds * minutes_per_match,
        target_duration=target_duration,
        rounds_for_target_duration=rounds_for_duration,
    )


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m" if rest else f"{hours}h"
