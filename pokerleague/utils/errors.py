"""Exception classes for tournament engine errors.

Every business-rule failure carries an error code, a message a director can
act on, and an HTTP status hint for the transport layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for engine errors."""

    # General errors
    INVALID_REQUEST = "INVALID_REQUEST"

    # Lookup errors
    TOURNAMENT_NOT_FOUND = "TOURNAMENT_NOT_FOUND"
    BUST_NOT_FOUND = "BUST_NOT_FOUND"

    # Player errors
    PLAYER_NOT_ENROLLED = "PLAYER_NOT_ENROLLED"
    PLAYER_ALREADY_ENROLLED = "PLAYER_ALREADY_ENROLLED"
    PLAYER_ALREADY_ELIMINATED = "PLAYER_ALREADY_ELIMINATED"
    SELF_ELIMINATION = "SELF_ELIMINATION"

    # Rebuy errors
    LIGHT_REBUY_DISABLED = "LIGHT_REBUY_DISABLED"
    LIGHT_REBUY_ALREADY_USED = "LIGHT_REBUY_ALREADY_USED"
    RECAVE_ALREADY_APPLIED = "RECAVE_ALREADY_APPLIED"
    NOTHING_TO_CANCEL = "NOTHING_TO_CANCEL"

    # Tournament state errors
    TOURNAMENT_NOT_IN_PROGRESS = "TOURNAMENT_NOT_IN_PROGRESS"
    TOURNAMENT_FINISHED = "TOURNAMENT_FINISHED"
    REBUY_WINDOW_OPEN = "REBUY_WINDOW_OPEN"
    REBUY_WINDOW_CLOSED = "REBUY_WINDOW_CLOSED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ENROLLMENT_CLOSED = "ENROLLMENT_CLOSED"

    # Rank errors
    RANK_ALREADY_TAKEN = "RANK_ALREADY_TAKEN"
    RANK_OUT_OF_BOUNDS = "RANK_OUT_OF_BOUNDS"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Finish validation
    INCOMPLETE_RANKS = "INCOMPLETE_RANKS"
    DUPLICATE_RANKS = "DUPLICATE_RANKS"
    RANKS_OUT_OF_BOUNDS = "RANKS_OUT_OF_BOUNDS"

    # Prize pool
    OVER_BUDGET = "OVER_BUDGET"
    INVALID_PAYOUT = "INVALID_PAYOUT"


class EngineError(Exception):
    """Base exception for tournament engine errors.

    Attributes:
        code: Error code for programmatic handling
        message: Director-facing error message
        details: Additional error details
        status_code: HTTP status the transport layer should use
    """

    status_code: int = 400

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
        }


class ValidationError(EngineError):
    """Self-reference, unenrolled player, malformed input."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str = ErrorCode.INVALID_REQUEST,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class StateError(EngineError):
    """Wrong tournament status or wrong rebuy-window phase."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str = ErrorCode.TOURNAMENT_NOT_IN_PROGRESS,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class ConflictError(EngineError):
    """Rank collision or concurrent write conflict. Callers may retry."""

    status_code = 400

    def __init__(
        self,
        message: str = "FinalRank is already taken",
        code: ErrorCode | str = ErrorCode.RANK_ALREADY_TAKEN,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class BoundsError(EngineError):
    """Rank <= 0 or greater than the enrolled count."""

    def __init__(
        self,
        message: str = "Computed finalRank is out of bounds",
        code: ErrorCode | str = ErrorCode.RANK_OUT_OF_BOUNDS,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class NotFoundError(EngineError):
    """Tournament, player, bust or season absent."""

    status_code = 404

    def __init__(
        self,
        message: str,
        code: ErrorCode | str = ErrorCode.TOURNAMENT_NOT_FOUND,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class TournamentNotFoundError(NotFoundError):
    """Raised when a tournament id is unknown."""

    def __init__(self, tournament_id: str):
        super().__init__(
            message=f"Tournament not found: {tournament_id}",
            code=ErrorCode.TOURNAMENT_NOT_FOUND,
            details={"tournamentId": tournament_id},
        )


class NotEnrolledError(ValidationError):
    """Raised when a player is not enrolled in the tournament."""

    def __init__(self, player_id: str, role: str = "Player"):
        super().__init__(
            message=f"{role} is not enrolled in this tournament",
            code=ErrorCode.PLAYER_NOT_ENROLLED,
            details={"playerId": player_id},
        )


class AlreadyEliminatedError(ValidationError):
    """Raised when a player already holds a final rank."""

    def __init__(self, player_id: str, final_rank: int | None = None):
        super().__init__(
            message="Player has already been eliminated",
            code=ErrorCode.PLAYER_ALREADY_ELIMINATED,
            details={"playerId": player_id, "finalRank": final_rank},
        )


# =============================================================================
# Finish validation
# =============================================================================


class IncompleteRanksError(StateError):
    """Raised when at least one enrolled player has no final rank."""

    def __init__(self, missing: list[str] | None = None):
        missing = missing or []
        super().__init__(
            message=f"Cannot finish: {len(missing)} player(s) without a final rank",
            code=ErrorCode.INCOMPLETE_RANKS,
            details={"playersWithoutRank": missing},
        )


class DuplicateRanksError(StateError):
    """Raised when two players share a final rank."""

    def __init__(self, duplicates: list[int]):
        super().__init__(
            message=f"Cannot finish: duplicate final ranks {duplicates}",
            code=ErrorCode.DUPLICATE_RANKS,
            details={"duplicateRanks": duplicates},
        )


class OutOfBoundsError(BoundsError):
    """Raised when final ranks are not exactly 1..N."""

    def __init__(self, unexpected: list[int], expected_count: int):
        super().__init__(
            message=(
                f"Cannot finish: final ranks {unexpected} "
                f"are outside 1..{expected_count}"
            ),
            code=ErrorCode.RANKS_OUT_OF_BOUNDS,
            details={"unexpectedRanks": unexpected, "expectedCount": expected_count},
        )


# =============================================================================
# Prize pool
# =============================================================================


class OverBudgetError(ValidationError):
    """Raised when a payout allocation exceeds the prize pool."""

    def __init__(self, allocated: float, pool: float):
        super().__init__(
            message=f"Payout allocation {allocated:.2f} exceeds prize pool {pool:.2f}",
            code=ErrorCode.OVER_BUDGET,
            details={"allocated": allocated, "prizePool": pool},
        )
