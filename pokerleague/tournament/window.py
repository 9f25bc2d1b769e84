"""Rebuy window predicates.

Timer state is read from the tournament row at call time. A request that
lands exactly on a level change is judged against whatever was read.
"""

from pokerleague.models import Tournament, TournamentStatus
from pokerleague.utils.errors import ErrorCode, StateError


def is_rebuy_window_open(tournament: Tournament) -> bool:
    """Open iff IN_PROGRESS and the current level has not passed the cutoff."""
    if tournament.status != TournamentStatus.IN_PROGRESS:
        return False
    if tournament.rebuy_end_level is None:
        return True
    return tournament.current_level <= tournament.rebuy_end_level


def accepts_rebuys(tournament: Tournament) -> bool:
    """Window open, or the grace break right after the last rebuy level."""
    if tournament.status != TournamentStatus.IN_PROGRESS:
        return False
    return is_rebuy_window_open(tournament) or tournament.rebuy_grace_open


def require_in_progress(tournament: Tournament) -> None:
    if tournament.status == TournamentStatus.IN_PROGRESS:
        return
    if tournament.is_terminal:
        raise StateError(
            f"Tournament is {tournament.status.value}; no further changes are accepted",
            code=ErrorCode.TOURNAMENT_FINISHED,
            details={"status": tournament.status.value},
        )
    raise StateError(
        "Tournament is not in progress",
        details={"status": tournament.status.value},
    )


def require_window_open(tournament: Tournament) -> None:
    require_in_progress(tournament)
    if not is_rebuy_window_open(tournament):
        raise StateError(
            "Rebuy period is closed; record an elimination instead",
            code=ErrorCode.REBUY_WINDOW_CLOSED,
            details={
                "currentLevel": tournament.current_level,
                "rebuyEndLevel": tournament.rebuy_end_level,
            },
        )


def require_window_closed(tournament: Tournament) -> None:
    require_in_progress(tournament)
    if is_rebuy_window_open(tournament):
        raise StateError(
            "Rebuy period is still open; record a bust instead",
            code=ErrorCode.REBUY_WINDOW_OPEN,
            details={
                "currentLevel": tournament.current_level,
                "rebuyEndLevel": tournament.rebuy_end_level,
            },
        )


def require_accepts_rebuys(tournament: Tournament) -> None:
    require_in_progress(tournament)
    if not accepts_rebuys(tournament):
        raise StateError(
            "Rebuy period is closed",
            code=ErrorCode.REBUY_WINDOW_CLOSED,
            details={
                "currentLevel": tournament.current_level,
                "rebuyEndLevel": tournament.rebuy_end_level,
            },
        )
