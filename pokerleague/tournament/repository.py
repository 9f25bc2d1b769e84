"""Store access for the tournament engine.

Every mutating path loads the tournament row and its participant rows
with SELECT ... FOR UPDATE so concurrent directors are serialized on the
participant set for the rest of the transaction.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pokerleague.models import (
    BustEvent,
    Elimination,
    RebuyRecord,
    Tournament,
    TournamentPlayer,
)
from pokerleague.utils.errors import (
    ErrorCode,
    NotEnrolledError,
    NotFoundError,
    TournamentNotFoundError,
)


class TournamentRepository:
    """Queries scoped to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Tournament
    # =========================================================================

    async def get_tournament(self, tournament_id: str, for_update: bool = False) -> Tournament:
        stmt = select(Tournament).where(Tournament.id == tournament_id)
        if for_update:
            stmt = stmt.with_for_update()
        tournament = (await self.session.execute(stmt)).scalar_one_or_none()
        if tournament is None:
            raise TournamentNotFoundError(tournament_id)
        return tournament

    # =========================================================================
    # Participants
    # =========================================================================

    async def get_participants(
        self,
        tournament_id: str,
        for_update: bool = False,
    ) -> List[TournamentPlayer]:
        stmt = (
            select(TournamentPlayer)
            .where(TournamentPlayer.tournament_id == tournament_id)
            .order_by(TournamentPlayer.player_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list((await self.session.execute(stmt)).scalars().all())

    async def find_participant(
        self,
        tournament_id: str,
        player_id: str,
    ) -> Optional[TournamentPlayer]:
        stmt = select(TournamentPlayer).where(
            TournamentPlayer.tournament_id == tournament_id,
            TournamentPlayer.player_id == player_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    def pick(
        participants: List[TournamentPlayer],
        player_id: str,
        role: str = "Player",
    ) -> TournamentPlayer:
        """Find an entry in an already locked participant list."""
        for entry in participants:
            if entry.player_id == player_id:
                return entry
        raise NotEnrolledError(player_id, role=role)

    # =========================================================================
    # Busts
    # =========================================================================

    async def get_bust(
        self,
        tournament_id: str,
        bust_id: str,
        for_update: bool = False,
    ) -> BustEvent:
        stmt = select(BustEvent).where(
            BustEvent.id == bust_id,
            BustEvent.tournament_id == tournament_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        bust = (await self.session.execute(stmt)).scalar_one_or_none()
        if bust is None:
            raise NotFoundError(
                f"Bust not found: {bust_id}",
                code=ErrorCode.BUST_NOT_FOUND,
                details={"bustId": bust_id},
            )
        return bust

    async def list_busts(self, tournament_id: str) -> List[BustEvent]:
        stmt = (
            select(BustEvent)
            .where(BustEvent.tournament_id == tournament_id)
            .order_by(BustEvent.created_at)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    # =========================================================================
    # Eliminations
    # =========================================================================

    async def last_elimination(self, tournament_id: str) -> Optional[Elimination]:
        stmt = (
            select(Elimination)
            .where(Elimination.tournament_id == tournament_id)
            .order_by(Elimination.sequence.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def next_elimination_sequence(self, tournament_id: str) -> int:
        stmt = select(func.coalesce(func.max(Elimination.sequence), 0)).where(
            Elimination.tournament_id == tournament_id
        )
        return int((await self.session.execute(stmt)).scalar_one()) + 1

    async def list_eliminations(self, tournament_id: str) -> List[Elimination]:
        stmt = (
            select(Elimination)
            .where(Elimination.tournament_id == tournament_id)
            .order_by(Elimination.sequence)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    # =========================================================================
    # Rebuys
    # =========================================================================

    async def last_rebuy(self, tournament_id: str) -> Optional[RebuyRecord]:
        stmt = (
            select(RebuyRecord)
            .where(RebuyRecord.tournament_id == tournament_id)
            .order_by(RebuyRecord.sequence.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def next_rebuy_sequence(self, tournament_id: str) -> int:
        stmt = select(func.coalesce(func.max(RebuyRecord.sequence), 0)).where(
            RebuyRecord.tournament_id == tournament_id
        )
        return int((await self.session.execute(stmt)).scalar_one()) + 1

    # =========================================================================
    # Writes
    # =========================================================================

    def add(self, instance) -> None:
        self.session.add(instance)

    async def delete(self, instance) -> None:
        await self.session.delete(instance)

    async def flush(self) -> None:
        await self.session.flush()
