"""
Elimination Recorder.

리바이 기간 종료 후 최종 탈락 기록 및 순위 부여.

Rank assignment:
─────────────────────────────────────────────────────────────────

    rank = number of players still without a final rank
           (including the one being eliminated)

With 9 players contesting, the next elimination finishes 9th; the last
survivor finishes 1st. The count is re-read from the locked participant
rows on every call. No counter is cached between requests.

Conflict handling:
- Another entry already holds the computed rank -> ConflictError
- The (tournament_id, final_rank) unique constraint rejects whatever a
  stale read lets through; the engine maps that to ConflictError as well
  and retries in a fresh transaction.

─────────────────────────────────────────────────────────────────
"""

from typing import List, Optional, Tuple

from pokerleague.logging_config import get_logger
from pokerleague.models import Elimination, TournamentPlayer
from pokerleague.utils.errors import (
    AlreadyEliminatedError,
    BoundsError,
    ConflictError,
    ErrorCode,
    ValidationError,
)

from .models import SeasonScoring
from .repository import TournamentRepository
from .scoring import recompute
from .window import require_in_progress, require_window_closed

logger = get_logger(__name__)


def is_leader_kill(
    eliminator: TournamentPlayer,
    active: List[TournamentPlayer],
) -> bool:
    """
    True when the eliminator's count before this kill equals the highest
    count among players still active, and that count is above zero.
    """
    if not active:
        return False
    leader_count = max(p.eliminations_count for p in active)
    return leader_count > 0 and eliminator.eliminations_count == leader_count


def _rank_holder(
    participants: List[TournamentPlayer],
    rank: int,
) -> Optional[TournamentPlayer]:
    for p in participants:
        if p.final_rank == rank:
            return p
    return None


class EliminationRecorder:
    """Records and reverses definitive eliminations inside the caller's transaction."""

    def __init__(self, repo: TournamentRepository):
        self.repo = repo

    async def record(
        self,
        tournament_id: str,
        eliminated_id: str,
        eliminator_id: str,
    ) -> Elimination:
        """
        Record an elimination and assign the eliminated player's final rank.

        Raises:
            StateError: Tournament not in progress or rebuy window still open
            ValidationError: Self-elimination, not enrolled, already eliminated
            BoundsError: Computed rank outside 1..enrolled
            ConflictError: Computed rank already held by another entry
        """
        if eliminated_id == eliminator_id:
            raise ValidationError(
                "A player cannot eliminate themselves",
                code=ErrorCode.SELF_ELIMINATION,
                details={"playerId": eliminated_id},
            )

        tournament = await self.repo.get_tournament(tournament_id, for_update=True)
        require_window_closed(tournament)

        participants = await self.repo.get_participants(tournament_id, for_update=True)
        eliminated = self.repo.pick(participants, eliminated_id)
        eliminator = self.repo.pick(participants, eliminator_id, role="Eliminator")

        if not eliminated.is_active:
            raise AlreadyEliminatedError(eliminated_id, eliminated.final_rank)

        active = [p for p in participants if p.is_active]
        rank = len(active)
        total = len(participants)

        if rank < 1 or rank > total:
            raise BoundsError(details={"rank": rank, "enrolled": total})

        holder = _rank_holder(participants, rank)
        if holder is not None:
            raise ConflictError(
                details={"rank": rank, "heldBy": holder.player_id},
            )

        leader_kill = is_leader_kill(eliminator, active)

        eliminated.final_rank = rank
        eliminator.eliminations_count += 1
        if leader_kill:
            eliminator.leader_kills += 1

        # 마지막 생존자 = 1위
        winner: Optional[TournamentPlayer] = None
        survivors = [p for p in active if p is not eliminated]
        if len(survivors) == 1:
            winner = survivors[0]
            taken = _rank_holder(participants, 1)
            if taken is not None and taken is not winner:
                raise ConflictError(details={"rank": 1, "heldBy": taken.player_id})
            winner.final_rank = 1

        elimination = Elimination(
            tournament_id=tournament_id,
            eliminated_id=eliminated_id,
            eliminator_id=eliminator_id,
            rank=rank,
            level=tournament.current_level,
            is_leader_kill=leader_kill,
            sequence=await self.repo.next_elimination_sequence(tournament_id),
            winner_id=winner.player_id if winner else None,
        )
        self.repo.add(elimination)

        affected = [eliminated, eliminator]
        if winner is not None and winner is not eliminator:
            affected.append(winner)

        scoring = SeasonScoring.from_season(tournament.season)
        for entry in affected:
            recompute(entry, scoring)

        await self.repo.flush()

        logger.info(
            "elimination_recorded",
            tournament_id=tournament_id,
            player_id=eliminated_id,
            eliminator_id=eliminator_id,
            rank=rank,
            leader_kill=leader_kill,
            winner_id=elimination.winner_id,
        )
        return elimination

    async def cancel_last(
        self,
        tournament_id: str,
    ) -> Tuple[Elimination, List[TournamentPlayer]]:
        """
        Reverse the most recent elimination of the tournament.

        Other ranks are left untouched.

        Returns:
            (deleted elimination, affected entries)
        """
        tournament = await self.repo.get_tournament(tournament_id, for_update=True)
        require_in_progress(tournament)

        participants = await self.repo.get_participants(tournament_id, for_update=True)
        elimination = await self.repo.last_elimination(tournament_id)
        if elimination is None:
            raise ValidationError(
                "No elimination to cancel",
                code=ErrorCode.NOTHING_TO_CANCEL,
            )

        eliminated = self.repo.pick(participants, elimination.eliminated_id)
        eliminator = self.repo.pick(participants, elimination.eliminator_id, role="Eliminator")

        eliminated.final_rank = None
        eliminator.eliminations_count = max(0, eliminator.eliminations_count - 1)
        if elimination.is_leader_kill:
            eliminator.leader_kills = max(0, eliminator.leader_kills - 1)

        affected = [eliminated, eliminator]
        if elimination.winner_id is not None:
            winner = self.repo.pick(participants, elimination.winner_id)
            winner.final_rank = None
            if winner is not eliminator:
                affected.append(winner)

        scoring = SeasonScoring.from_season(tournament.season)
        for entry in affected:
            recompute(entry, scoring)

        await self.repo.delete(elimination)
        await self.repo.flush()

        logger.info(
            "elimination_cancelled",
            tournament_id=tournament_id,
            player_id=elimination.eliminated_id,
            eliminator_id=elimination.eliminator_id,
            rank=elimination.rank,
        )
        return elimination, affected
