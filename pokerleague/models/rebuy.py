"""Rebuy record model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pokerleague.models.base import Base, UUIDMixin, utcnow


class RebuyKind(str, Enum):
    """Rebuy variants."""

    STANDARD = "STANDARD"
    LIGHT = "LIGHT"  # 라이트 리바이 (1회 한정)


class RebuyRecord(Base, UUIDMixin):
    """Applied rebuy, kept so the most recent one can be reversed."""

    __tablename__ = "rebuy_records"
    __table_args__ = (
        UniqueConstraint("tournament_id", "sequence", name="uq_rebuy_sequence"),
    )

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[RebuyKind] = mapped_column(
        SQLEnum(RebuyKind, native_enum=False, length=10),
        nullable=False,
    )
    bust_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("bust_events.id", ondelete="SET NULL"),
        nullable=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tournamentId": self.tournament_id,
            "playerId": self.player_id,
            "kind": self.kind.value,
            "bustId": self.bust_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
