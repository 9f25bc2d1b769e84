"""
Score Aggregator.

total = rank points + elimination points + leader-kill bonus + penalty
"""

from pokerleague.models import TournamentPlayer

from .models import ScoreBreakdown, SeasonScoring
from .penalty import compute_penalty


def compute_score(entry: TournamentPlayer, scoring: SeasonScoring) -> ScoreBreakdown:
    """Score for an entry's current counters. Pure."""
    return ScoreBreakdown(
        rank_points=scoring.points_for_rank(entry.final_rank),
        elimination_points=entry.eliminations_count * scoring.elimination_points,
        bonus_points=entry.leader_kills * scoring.leader_killer_bonus,
        penalty_points=compute_penalty(entry.rebuys_count, scoring.penalty_rules),
    )


def recompute(entry: TournamentPlayer, scoring: SeasonScoring) -> ScoreBreakdown:
    """Recompute and store an entry's score columns.

    Idempotent: running it twice with unchanged counters writes the same values.
    """
    breakdown = compute_score(entry, scoring)

    entry.rank_points = breakdown.rank_points
    entry.elimination_points = breakdown.elimination_points
    entry.bonus_points = breakdown.bonus_points
    entry.penalty_points = breakdown.penalty_points
    entry.total_points = breakdown.total_points

    return breakdown
