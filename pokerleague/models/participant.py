"""Tournament participant entry model."""

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pokerleague.models.base import Base, TimestampMixin, UUIDMixin


class TournamentPlayer(Base, UUIDMixin, TimestampMixin):
    """One player's entry in one tournament.

    final_rank is NULL while the player is still contesting.
    Score columns are derived by the score aggregator and never
    written directly by request handlers.
    """

    __tablename__ = "tournament_players"
    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_tournament_player"),
        # NULL ranks never collide; assigned ranks must be unique
        UniqueConstraint("tournament_id", "final_rank", name="uq_tournament_final_rank"),
    )

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Opaque id from the player registry
    player_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    final_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    has_paid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Counters
    rebuys_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    light_rebuy_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    eliminations_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    leader_kills: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Score
    rank_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    elimination_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bonus_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    penalty_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="participants")

    def __repr__(self) -> str:
        return f"<TournamentPlayer {self.player_id} rank={self.final_rank}>"

    @property
    def is_active(self) -> bool:
        return self.final_rank is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tournamentId": self.tournament_id,
            "playerId": self.player_id,
            "finalRank": self.final_rank,
            "hasPaid": self.has_paid,
            "rebuysCount": self.rebuys_count,
            "lightRebuyUsed": self.light_rebuy_used,
            "eliminationsCount": self.eliminations_count,
            "leaderKills": self.leader_kills,
            "rankPoints": self.rank_points,
            "eliminationPoints": self.elimination_points,
            "bonusPoints": self.bonus_points,
            "penaltyPoints": self.penalty_points,
            "totalPoints": self.total_points,
        }
