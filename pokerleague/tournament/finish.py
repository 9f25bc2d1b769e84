"""
Finish Validator and tournament status machine.

PLANNED -> REGISTRATION -> IN_PROGRESS -> FINISHED
CANCELLED is reachable from any non-terminal state.
"""

from collections import Counter
from typing import Dict, FrozenSet, Optional, Sequence

from pokerleague.models import TournamentStatus
from pokerleague.utils.errors import (
    DuplicateRanksError,
    ErrorCode,
    IncompleteRanksError,
    OutOfBoundsError,
    StateError,
)

from .models import FinishCheck

ALLOWED_TRANSITIONS: Dict[TournamentStatus, FrozenSet[TournamentStatus]] = {
    TournamentStatus.PLANNED: frozenset(
        {TournamentStatus.REGISTRATION, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.REGISTRATION: frozenset(
        {TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.IN_PROGRESS: frozenset(
        {TournamentStatus.FINISHED, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.FINISHED: frozenset(),
    TournamentStatus.CANCELLED: frozenset(),
}


def can_finish(
    ranks: Sequence[Optional[int]],
    player_ids: Optional[Sequence[str]] = None,
) -> FinishCheck:
    """
    Check final ranks of every enrolled player.

    Checks run in order: missing ranks, duplicates, then the set must be
    exactly {1..N}.

    Args:
        ranks: final_rank of each enrolled player
        player_ids: Parallel player ids, only used in error details
    """
    missing = [i for i, rank in enumerate(ranks) if rank is None]
    if missing:
        ids = [player_ids[i] for i in missing] if player_ids else [str(i) for i in missing]
        return FinishCheck(error=IncompleteRanksError(ids))

    counts = Counter(ranks)
    duplicates = sorted(rank for rank, n in counts.items() if n > 1)
    if duplicates:
        return FinishCheck(error=DuplicateRanksError(duplicates))

    expected = set(range(1, len(ranks) + 1))
    unexpected = sorted(set(ranks) - expected)
    if unexpected:
        return FinishCheck(error=OutOfBoundsError(unexpected, len(ranks)))

    return FinishCheck()


def validate_transition(current: TournamentStatus, target: TournamentStatus) -> None:
    """Raise StateError when target is not reachable from current."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise StateError(
            f"Cannot move tournament from {current.value} to {target.value}",
            code=ErrorCode.INVALID_TRANSITION,
            details={"from": current.value, "to": target.value},
        )
