"""
Rebuy Processor.

리바이(recave) 처리: STANDARD / LIGHT, 버스트 연동 리바이, 마지막 리바이 취소.

- STANDARD increments rebuys_count and may move the player into a penalty tier.
- LIGHT is capped at one per player and only affects the prize pool.
- Only the single most recent rebuy of a tournament can be reversed.
"""

from typing import Optional, Tuple

from pokerleague.logging_config import get_logger
from pokerleague.models import RebuyKind, RebuyRecord, TournamentPlayer
from pokerleague.utils.errors import (
    AlreadyEliminatedError,
    ErrorCode,
    ValidationError,
)

from .models import SeasonScoring
from .repository import TournamentRepository
from .scoring import recompute
from .window import require_accepts_rebuys

logger = get_logger(__name__)


class RebuyProcessor:
    """Applies and reverses rebuys inside the caller's transaction."""

    def __init__(self, repo: TournamentRepository):
        self.repo = repo

    async def process(
        self,
        tournament_id: str,
        player_id: str,
        kind: RebuyKind = RebuyKind.STANDARD,
        bust_id: Optional[str] = None,
    ) -> TournamentPlayer:
        """
        Apply a rebuy.

        Args:
            tournament_id: Tournament
            player_id: Player re-entering
            kind: STANDARD or LIGHT
            bust_id: Bust this rebuy answers, if any

        Raises:
            StateError: Tournament not in progress or rebuys closed
            ValidationError: Not enrolled, eliminated, light rebuy unavailable
        """
        tournament = await self.repo.get_tournament(tournament_id, for_update=True)
        require_accepts_rebuys(tournament)

        participants = await self.repo.get_participants(tournament_id, for_update=True)
        entry = self.repo.pick(participants, player_id)
        if not entry.is_active:
            raise AlreadyEliminatedError(player_id, entry.final_rank)

        if kind == RebuyKind.LIGHT:
            if not tournament.light_rebuy_enabled:
                raise ValidationError(
                    "Light rebuy is not enabled for this tournament",
                    code=ErrorCode.LIGHT_REBUY_DISABLED,
                )
            if entry.light_rebuy_used:
                raise ValidationError(
                    "Player has already used their light rebuy",
                    code=ErrorCode.LIGHT_REBUY_ALREADY_USED,
                    details={"playerId": player_id},
                )
            entry.light_rebuy_used = True
        else:
            entry.rebuys_count += 1

        record = RebuyRecord(
            tournament_id=tournament_id,
            player_id=player_id,
            kind=kind,
            bust_id=bust_id,
            sequence=await self.repo.next_rebuy_sequence(tournament_id),
        )
        self.repo.add(record)

        breakdown = recompute(entry, SeasonScoring.from_season(tournament.season))
        await self.repo.flush()

        logger.info(
            "rebuy_applied",
            tournament_id=tournament_id,
            player_id=player_id,
            kind=kind.value,
            rebuys_count=entry.rebuys_count,
            penalty_points=breakdown.penalty_points,
        )
        return entry

    async def recave_from_bust(self, tournament_id: str, bust_id: str) -> TournamentPlayer:
        """Apply a STANDARD rebuy for a recorded bust. Each bust recaves once."""
        # tournament row first, same lock order as every other mutation
        await self.repo.get_tournament(tournament_id, for_update=True)
        bust = await self.repo.get_bust(tournament_id, bust_id, for_update=True)
        if bust.recave_applied:
            raise ValidationError(
                "A recave has already been applied for this bust",
                code=ErrorCode.RECAVE_ALREADY_APPLIED,
                details={"bustId": bust_id},
            )

        entry = await self.process(
            tournament_id,
            bust.eliminated_id,
            RebuyKind.STANDARD,
            bust_id=bust_id,
        )
        bust.recave_applied = True
        return entry

    async def cancel_last(self, tournament_id: str) -> Tuple[RebuyRecord, TournamentPlayer]:
        """
        Reverse the most recent rebuy of the tournament.

        Returns:
            (deleted record, updated entry)

        Raises:
            ValidationError: No rebuy to cancel
        """
        tournament = await self.repo.get_tournament(tournament_id, for_update=True)
        require_accepts_rebuys(tournament)

        participants = await self.repo.get_participants(tournament_id, for_update=True)
        record = await self.repo.last_rebuy(tournament_id)
        if record is None:
            raise ValidationError(
                "No rebuy to cancel",
                code=ErrorCode.NOTHING_TO_CANCEL,
            )

        entry = self.repo.pick(participants, record.player_id)
        if record.kind == RebuyKind.LIGHT:
            entry.light_rebuy_used = False
        else:
            entry.rebuys_count = max(0, entry.rebuys_count - 1)

        if record.bust_id is not None:
            bust = await self.repo.get_bust(tournament_id, record.bust_id, for_update=True)
            bust.recave_applied = False

        recompute(entry, SeasonScoring.from_season(tournament.season))
        await self.repo.delete(record)
        await self.repo.flush()

        logger.info(
            "rebuy_cancelled",
            tournament_id=tournament_id,
            player_id=record.player_id,
            kind=record.kind.value,
            rebuys_count=entry.rebuys_count,
        )
        return record, entry
