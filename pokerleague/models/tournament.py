"""Tournament model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pokerleague.models.base import Base, TimestampMixin, UUIDMixin


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    PLANNED = "PLANNED"
    REGISTRATION = "REGISTRATION"  # 접수 중
    IN_PROGRESS = "IN_PROGRESS"  # 진행 중
    FINISHED = "FINISHED"  # 완료 (terminal)
    CANCELLED = "CANCELLED"  # 취소 (terminal)


class Tournament(Base, UUIDMixin, TimestampMixin):
    """Live tournament.

    current_level and rebuy_grace_open are written by the blind timer;
    the engine only reads them.
    """

    __tablename__ = "tournaments"

    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Tournament")

    season_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("seasons.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status: Mapped[TournamentStatus] = mapped_column(
        SQLEnum(TournamentStatus, native_enum=False, length=20),
        default=TournamentStatus.PLANNED,
        nullable=False,
        index=True,
    )

    # Blind timer state
    current_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    rebuy_end_level: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Last level where busts can be recaved; NULL = always open",
    )
    rebuy_grace_open: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Break right after rebuy_end_level, rebuys still accepted",
    )

    # Money
    buy_in_amount: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    light_rebuy_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    light_rebuy_amount: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    prize_pool_adjustment: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payout allocation (ordered by rank)
    prize_payout_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    prize_payout_amounts: Mapped[list | None] = mapped_column(JSON, nullable=True)

    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    season: Mapped["Season"] = relationship("Season", lazy="selectin")
    participants: Mapped[list["TournamentPlayer"]] = relationship(
        "TournamentPlayer",
        back_populates="tournament",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Tournament {self.name} ({self.status.value})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in (TournamentStatus.FINISHED, TournamentStatus.CANCELLED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "seasonId": self.season_id,
            "status": self.status.value,
            "currentLevel": self.current_level,
            "rebuyEndLevel": self.rebuy_end_level,
            "buyInAmount": float(self.buy_in_amount),
            "lightRebuyAmount": float(self.light_rebuy_amount),
            "prizePoolAdjustment": float(self.prize_pool_adjustment),
            "adjustmentReason": self.adjustment_reason,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }
