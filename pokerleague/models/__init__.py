"""Database models."""

from pokerleague.models.base import Base
from pokerleague.models.bust import BustEvent
from pokerleague.models.elimination import Elimination
from pokerleague.models.participant import TournamentPlayer
from pokerleague.models.rebuy import RebuyKind, RebuyRecord
from pokerleague.models.season import Season
from pokerleague.models.tournament import Tournament, TournamentStatus

__all__ = [
    "Base",
    "BustEvent",
    "Elimination",
    "RebuyKind",
    "RebuyRecord",
    "Season",
    "Tournament",
    "TournamentPlayer",
    "TournamentStatus",
]
