"""Season scoring configuration model."""

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pokerleague.models.base import Base, TimestampMixin, UUIDMixin

# Points for ranks 1..11
DEFAULT_RANK_POINTS = [1500, 1000, 700, 500, 400, 300, 200, 200, 200, 200, 100]


class Season(Base, UUIDMixin, TimestampMixin):
    """Scoring rules shared by every tournament of a season."""

    __tablename__ = "seasons"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Index 0 = rank 1
    rank_points_table: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: list(DEFAULT_RANK_POINTS),
    )
    points_rank_12_to_16: Mapped[int] = mapped_column(Integer, default=50, nullable=False)

    elimination_points: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    leader_killer_bonus: Mapped[int] = mapped_column(Integer, default=25, nullable=False)

    # Rebuy penalties
    free_rebuys_count: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    recave_penalty_tiers: Mapped[list | None] = mapped_column(
        JSON,
        nullable=True,
        comment='[{"fromRecaves": 3, "penaltyPoints": -50}, ...]',
    )
    # Legacy flat fields, used when recave_penalty_tiers is absent or malformed
    rebuy_penalty_tier1: Mapped[int] = mapped_column(Integer, default=-50, nullable=False)
    rebuy_penalty_tier2: Mapped[int] = mapped_column(Integer, default=-100, nullable=False)
    rebuy_penalty_tier3: Mapped[int] = mapped_column(Integer, default=-150, nullable=False)

    def __repr__(self) -> str:
        return f"<Season {self.name}>"
