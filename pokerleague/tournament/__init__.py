"""
Live Poker League Tournament Engine.

This module provides:
- Bust recording and rebuy (recave) processing during the rebuy window
- Definitive elimination with atomic, unique final rank assignment
- Tiered, non-cumulative rebuy penalties and season point scoring
- Finish validation and prize pool arithmetic
- Distributed locking with Redis for concurrent table directors
"""

from .engine import EngineOutcome, TournamentEngine
from .models import (
    AllocationCheck,
    FinishCheck,
    PenaltyTier,
    PrizePoolConfig,
    ScoreBreakdown,
    SeasonPenaltyRules,
    SeasonScoring,
    TournamentEvent,
    TournamentEventType,
)
from .penalty import compute_penalty, parse_penalty_rules
from .event_bus import TournamentEventBus
from .requests import BustRequest, EliminationRequest, RebuyRequest

__all__ = [
    "TournamentEngine",
    "EngineOutcome",
    "AllocationCheck",
    "FinishCheck",
    "PenaltyTier",
    "PrizePoolConfig",
    "ScoreBreakdown",
    "SeasonPenaltyRules",
    "SeasonScoring",
    "TournamentEvent",
    "TournamentEventType",
    "compute_penalty",
    "parse_penalty_rules",
    "TournamentEventBus",
    "BustRequest",
    "EliminationRequest",
    "RebuyRequest",
]
