"""
Bust Recorder.

리바이 기간 중 칩을 모두 잃은 플레이어 기록.

A bust never assigns a final rank and never changes counters or scores.
It stays informational until the player recaves or the window closes.
"""

from typing import Optional

from pokerleague.logging_config import get_logger
from pokerleague.models import BustEvent
from pokerleague.utils.errors import AlreadyEliminatedError, ErrorCode, ValidationError

from .repository import TournamentRepository
from .window import require_window_open

logger = get_logger(__name__)


class BustRecorder:
    """Records busts inside the caller's transaction."""

    def __init__(self, repo: TournamentRepository):
        self.repo = repo

    async def record(
        self,
        tournament_id: str,
        eliminated_id: str,
        killer_id: Optional[str] = None,
    ) -> BustEvent:
        """
        Record a bust.

        Raises:
            StateError: Tournament not in progress or rebuy window closed
            ValidationError: Self-bust, player not enrolled or already eliminated
        """
        if killer_id is not None and killer_id == eliminated_id:
            raise ValidationError(
                "A player cannot bust themselves",
                code=ErrorCode.SELF_ELIMINATION,
                details={"playerId": eliminated_id},
            )

        tournament = await self.repo.get_tournament(tournament_id, for_update=True)
        require_window_open(tournament)

        participants = await self.repo.get_participants(tournament_id, for_update=True)
        eliminated = self.repo.pick(participants, eliminated_id)
        if killer_id is not None:
            self.repo.pick(participants, killer_id, role="Killer")

        if not eliminated.is_active:
            raise AlreadyEliminatedError(eliminated_id, eliminated.final_rank)

        bust = BustEvent(
            tournament_id=tournament_id,
            eliminated_id=eliminated_id,
            killer_id=killer_id,
            level=tournament.current_level,
            recave_applied=False,
        )
        self.repo.add(bust)
        await self.repo.flush()

        logger.info(
            "bust_recorded",
            tournament_id=tournament_id,
            player_id=eliminated_id,
            killer_id=killer_id,
            level=tournament.current_level,
        )
        return bust
