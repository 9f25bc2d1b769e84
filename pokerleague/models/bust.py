"""Bust event model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pokerleague.models.base import Base, UUIDMixin, utcnow


class BustEvent(Base, UUIDMixin):
    """Chip loss during the rebuy window.

    Informational only: it never assigns a final rank or touches counters.
    """

    __tablename__ = "bust_events"

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    eliminated_id: Mapped[str] = mapped_column(String(64), nullable=False)
    killer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    # Set once a recave has been applied for this bust
    recave_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

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
            "killerId": self.killer_id,
            "level": self.level,
            "recaveApplied": self.recave_applied,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
