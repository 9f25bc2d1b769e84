"""
Tournament Domain Models.

Immutable value objects shared by the scoring, rebuy, elimination and
prize pool components. ORM rows live in pokerleague.models; everything
here is derived from them and never persisted directly.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from pokerleague.utils.errors import EngineError


class TournamentEventType(Enum):
    """Event types for tournament event bus."""

    # Lifecycle
    TOURNAMENT_STATUS_CHANGED = auto()
    TOURNAMENT_FINISHED = auto()

    # Player
    PLAYER_ENROLLED = auto()
    PLAYER_BUSTED = auto()
    PLAYER_REBUY = auto()
    PLAYER_REBUY_CANCELLED = auto()
    PLAYER_ELIMINATED = auto()
    PLAYER_ELIMINATION_CANCELLED = auto()

    # Timer collaborator
    TIMER_PAUSE_REQUESTED = auto()  # 버스트 후 시계 정지
    TIMER_RESUME_REQUESTED = auto()  # 리바이 후 지연 재개


# =============================================================================
# Season rules
# =============================================================================


@dataclass(frozen=True)
class PenaltyTier:
    """One rebuy penalty threshold."""

    from_recaves: int  # inclusive
    penalty_points: int  # <= 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "fromRecaves": self.from_recaves,
            "penaltyPoints": self.penalty_points,
        }


@dataclass(frozen=True)
class SeasonPenaltyRules:
    """Free rebuy allowance plus penalty tiers."""

    free_rebuys_count: int = 0
    tiers: Tuple[PenaltyTier, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "freeRebuysCount": self.free_rebuys_count,
            "tiers": [t.to_dict() for t in self.tiers],
        }


@dataclass(frozen=True)
class SeasonScoring:
    """
    Everything the score aggregator needs from a season.

    rank_points[0] is the value for rank 1. Only ranks up to
    EXPLICIT_RANK_LIMIT read the table (missing entries score 0). Ranks
    after that and up to FLAT_RANK_LIMIT receive flat_rank_points.
    """

    EXPLICIT_RANK_LIMIT = 11
    FLAT_RANK_LIMIT = 16

    rank_points: Tuple[int, ...] = ()
    flat_rank_points: int = 0
    elimination_points: int = 0
    leader_killer_bonus: int = 0
    penalty_rules: SeasonPenaltyRules = field(default_factory=SeasonPenaltyRules)

    @classmethod
    def from_season(cls, season: Any) -> "SeasonScoring":
        """Build from a Season row. None yields an all-zero scoring."""
        if season is None:
            return cls()

        from pokerleague.tournament.penalty import parse_penalty_rules

        return cls(
            rank_points=tuple(int(p) for p in (season.rank_points_table or [])),
            flat_rank_points=season.points_rank_12_to_16,
            elimination_points=season.elimination_points,
            leader_killer_bonus=season.leader_killer_bonus,
            penalty_rules=parse_penalty_rules(season),
        )

    def points_for_rank(self, rank: Optional[int]) -> int:
        if rank is None or rank < 1:
            return 0
        if rank <= self.EXPLICIT_RANK_LIMIT:
            if rank <= len(self.rank_points):
                return self.rank_points[rank - 1]
            return 0
        if rank <= self.FLAT_RANK_LIMIT:
            return self.flat_rank_points
        return 0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Points earned by one participant."""

    rank_points: int = 0
    elimination_points: int = 0
    bonus_points: int = 0
    penalty_points: int = 0

    @property
    def total_points(self) -> int:
        return (
            self.rank_points
            + self.elimination_points
            + self.bonus_points
            + self.penalty_points
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "rankPoints": self.rank_points,
            "eliminationPoints": self.elimination_points,
            "bonusPoints": self.bonus_points,
            "penaltyPoints": self.penalty_points,
            "totalPoints": self.total_points,
        }


# =============================================================================
# Prize pool
# =============================================================================


@dataclass(frozen=True)
class PrizePoolConfig:
    """Payout allocation ordered by rank, plus the manual adjustment."""

    payout_count: int
    amounts: Tuple[float, ...]
    adjustment: float = 0.0
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payoutCount": self.payout_count,
            "amounts": list(self.amounts),
            "adjustment": self.adjustment,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AllocationCheck:
    """Result of validating an allocation against the pool."""

    allocated: float
    pool: float
    warning: Optional[str] = None

    @property
    def remaining(self) -> float:
        return round(self.pool - self.allocated, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocated": self.allocated,
            "prizePool": self.pool,
            "remaining": self.remaining,
            "warning": self.warning,
        }


@dataclass(frozen=True)
class PrizePoolSummary:
    """Pool totals for a tournament."""

    paid_players: int
    rebuys: int
    light_rebuys: int
    buy_in_total: float
    rebuy_total: float
    light_rebuy_total: float
    calculated_pool: float
    adjustment: float
    total_pool: float
    adjustment_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paidPlayers": self.paid_players,
            "rebuys": self.rebuys,
            "lightRebuys": self.light_rebuys,
            "buyInTotal": self.buy_in_total,
            "rebuyTotal": self.rebuy_total,
            "lightRebuyTotal": self.light_rebuy_total,
            "calculatedPrizePool": self.calculated_pool,
            "prizePoolAdjustment": self.adjustment,
            "totalPrizePool": self.total_pool,
            "adjustmentReason": self.adjustment_reason,
        }


# =============================================================================
# Finish validation
# =============================================================================


@dataclass(frozen=True)
class FinishCheck:
    """Outcome of the finish validation. error is None when ranks are complete."""

    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class TournamentEvent:
    """
    Tournament event for event bus.

    Emitted after a mutation commits:
    - Timer pause / resume requests
    - Audit logging
    - Display refresh
    """

    event_id: str = field(default_factory=lambda: str(uuid4()))
    event_type: TournamentEventType = TournamentEventType.TOURNAMENT_STATUS_CHANGED
    tournament_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Event-specific data
    data: Dict[str, Any] = field(default_factory=dict)

    # Optional reference
    player_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.name,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "player_id": self.player_id,
        }


@dataclass(frozen=True)
class PenaltyPreviewRow:
    """Penalty for a given rebuy count."""

    rebuys: int
    penalty: int

    def to_dict(self) -> Dict[str, int]:
        return {"rebuys": self.rebuys, "penalty": self.penalty}

