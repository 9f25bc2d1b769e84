"""Definitive elimination model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pokerleague.models.base import Base, UUIDMixin, utcnow


class Elimination(Base, UUIDMixin):
    """Elimination after the rebuy window closed."""

    __tablename__ = "eliminations"
    __table_args__ = (
        UniqueConstraint("tournament_id", "sequence", name="uq_elimination_sequence"),
    )

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    eliminated_id: Mapped[str] = mapped_column(String(64), nullable=False)
    eliminator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    is_leader_kill: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Monotonic per tournament; highest is the one "cancel last" reverses
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Sole survivor ranked 1 by this elimination, if any
    winner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tournamentId": self.tournament_id,
            "eliminatedId": self.eliminated_id,
            "eliminatorId": self.eliminator_id,
            "rank": self.rank,
            "level": self.level,
            "isLeaderKill": self.is_leader_kill,
            "winnerId": self.winner_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
