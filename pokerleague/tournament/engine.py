"""
Tournament Engine - request façade.

테이블마다 한 명의 디렉터가 동시에 입력하는 버스트/리바이/탈락 요청 처리.

Every mutation:
1. takes the per-tournament participants lock in Redis
2. opens one database transaction with row locks on the tournament and
   its participant rows
3. runs one recorder
4. commits, then publishes events (timer pause/resume, display refresh)

Business-rule failures come back from handle() as typed outcomes.
Infrastructure failures (database, Redis, lock timeout) propagate.
"""

from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence, Union

import redis.asyncio as redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from pokerleague.config import Settings, get_settings
from pokerleague.logging_config import bind_context, get_logger, unbind_context
from pokerleague.models import (
    BustEvent,
    Elimination,
    RebuyKind,
    Tournament,
    TournamentPlayer,
    TournamentStatus,
)
from pokerleague.utils.db import build_engine, build_session_factory, close_db
from pokerleague.utils.errors import (
    ConflictError,
    EngineError,
    ErrorCode,
    ValidationError,
)
from pokerleague.utils.redis_client import build_redis, close_redis

from .bust import BustRecorder
from .distributed_lock import DistributedLockManager, LockType
from .elimination import EliminationRecorder
from .event_bus import TournamentEventBus
from .finish import can_finish, validate_transition
from .models import (
    AllocationCheck,
    FinishCheck,
    PrizePoolConfig,
    SeasonScoring,
    TournamentEvent,
    TournamentEventType,
)
from .prize_pool import (
    breakdown_from_percents,
    summarize,
    validate_allocation,
    validate_payout_config,
)
from .rebuy import RebuyProcessor
from .repository import TournamentRepository
from .requests import (
    BustRequest,
    CancelLastEliminationRequest,
    CancelLastRebuyRequest,
    EliminationRequest,
    EngineRequest,
    RebuyRequest,
    RecaveFromBustRequest,
    parse_request,
)
from .scoring import recompute
from .window import require_in_progress

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineOutcome:
    """Typed result handed to the transport layer."""

    ok: bool
    status_code: int
    data: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, data: Dict[str, Any], status_code: int = 200) -> "EngineOutcome":
        return cls(ok=True, status_code=status_code, data=data)

    @classmethod
    def failure(cls, error: EngineError) -> "EngineOutcome":
        return cls(ok=False, status_code=error.status_code, error=error.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


def _conflict_from_integrity(error: IntegrityError) -> ConflictError:
    if "final_rank" in str(error.orig):
        return ConflictError(details={"constraint": "final_rank"})
    return ConflictError(
        "Concurrent modification detected, please retry",
        code=ErrorCode.CONCURRENT_MODIFICATION,
    )


def _log_conflict_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "elimination_conflict_retry",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
    )


class TournamentEngine:
    """
    Tournament elimination / rebuy / scoring engine.

    동시성 제어:
    ─────────────────────────────────────────────────────────────────

    - Redis 분산 락 (lock:tournament:{id}:participants)
    - SELECT ... FOR UPDATE (tournament + participant rows)
    - UNIQUE (tournament_id, final_rank) as the last line of defence
    - 순위 충돌 시 새 트랜잭션으로 제한 횟수 재시도 (tenacity)

    ─────────────────────────────────────────────────────────────────
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: Optional[redis.Redis] = None,
        settings: Optional[Settings] = None,
        event_bus: Optional[TournamentEventBus] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory

        self.lock_manager: Optional[DistributedLockManager] = None
        if redis_client is not None:
            self.lock_manager = DistributedLockManager(
                redis_client,
                default_lock_timeout_ms=self.settings.lock_timeout_ms,
                default_acquire_timeout_ms=self.settings.lock_acquire_timeout_ms,
                retry_interval_ms=self.settings.lock_retry_interval_ms,
            )
        self.event_bus = event_bus or TournamentEventBus(redis_client)

        # Set by from_settings(); closed in shutdown()
        self._db_engine: Optional[AsyncEngine] = None
        self._redis: Optional[redis.Redis] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        use_redis: bool = True,
    ) -> "TournamentEngine":
        """Build the engine with its own database engine and Redis client."""
        settings = settings or get_settings()
        db_engine = build_engine(settings)
        redis_client = build_redis(settings) if use_redis else None

        engine = cls(
            build_session_factory(db_engine),
            redis_client=redis_client,
            settings=settings,
        )
        engine._db_engine = db_engine
        engine._redis = redis_client
        return engine

    async def shutdown(self) -> None:
        if self.lock_manager is not None:
            await self.lock_manager.cleanup_all()
        if self._redis is not None:
            await close_redis(self._redis)
            self._redis = None
        if self._db_engine is not None:
            await close_db(self._db_engine)
            self._db_engine = None

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    def _lock(self, tournament_id: str, lock_type: LockType):
        if self.lock_manager is None:
            return nullcontext()
        return self.lock_manager.lock(tournament_id, lock_type)

    @asynccontextmanager
    async def _transaction(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.PARTICIPANTS,
    ) -> AsyncGenerator[TournamentRepository, None]:
        """Lock, open a transaction, commit on success."""
        async with self._lock(tournament_id, lock_type):
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        yield TournamentRepository(session)
                except IntegrityError as e:
                    raise _conflict_from_integrity(e) from e

    @asynccontextmanager
    async def _read(self) -> AsyncGenerator[TournamentRepository, None]:
        async with self.session_factory() as session:
            yield TournamentRepository(session)

    async def _emit(
        self,
        event_type: TournamentEventType,
        tournament_id: str,
        player_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        await self.event_bus.publish(
            TournamentEvent(
                event_type=event_type,
                tournament_id=tournament_id,
                player_id=player_id,
                data=data,
            )
        )

    # =========================================================================
    # Enrollment
    # =========================================================================

    async def enroll_player(
        self,
        tournament_id: str,
        player_id: str,
        has_paid: bool = True,
    ) -> TournamentPlayer:
        """Create a zeroed entry. Only while PLANNED or REGISTRATION."""
        async with self._transaction(tournament_id) as repo:
            tournament = await repo.get_tournament(tournament_id, for_update=True)
            if tournament.status not in (
                TournamentStatus.PLANNED,
                TournamentStatus.REGISTRATION,
            ):
                raise ValidationError(
                    "Enrollment is closed for this tournament",
                    code=ErrorCode.ENROLLMENT_CLOSED,
                    details={"status": tournament.status.value},
                )
            if await repo.find_participant(tournament_id, player_id) is not None:
                raise ValidationError(
                    "Player is already enrolled in this tournament",
                    code=ErrorCode.PLAYER_ALREADY_ENROLLED,
                    details={"playerId": player_id},
                )

            entry = TournamentPlayer(
                tournament_id=tournament_id,
                player_id=player_id,
                has_paid=has_paid,
                final_rank=None,
                rebuys_count=0,
                light_rebuy_used=False,
                eliminations_count=0,
                leader_kills=0,
                rank_points=0,
                elimination_points=0,
                bonus_points=0,
                penalty_points=0,
                total_points=0,
            )
            repo.add(entry)
            await repo.flush()

        logger.info("player_enrolled", tournament_id=tournament_id, player_id=player_id)
        await self._emit(TournamentEventType.PLAYER_ENROLLED, tournament_id, player_id)
        return entry

    # =========================================================================
    # Busts and rebuys
    # =========================================================================

    async def record_bust(
        self,
        tournament_id: str,
        eliminated_id: str,
        killer_id: Optional[str] = None,
    ) -> BustEvent:
        async with self._transaction(tournament_id) as repo:
            bust = await BustRecorder(repo).record(tournament_id, eliminated_id, killer_id)

        await self._emit(
            TournamentEventType.PLAYER_BUSTED,
            tournament_id,
            eliminated_id,
            bust_id=bust.id,
            killer_id=killer_id,
            level=bust.level,
        )
        await self.event_bus.request_timer_pause(tournament_id, eliminated_id, bust.id)
        return bust

    async def process_rebuy(
        self,
        tournament_id: str,
        player_id: str,
        kind: RebuyKind = RebuyKind.STANDARD,
    ) -> TournamentPlayer:
        async with self._transaction(tournament_id) as repo:
            entry = await RebuyProcessor(repo).process(tournament_id, player_id, kind)

        await self._after_rebuy(tournament_id, entry, kind)
        return entry

    async def recave_from_bust(self, tournament_id: str, bust_id: str) -> TournamentPlayer:
        async with self._transaction(tournament_id) as repo:
            entry = await RebuyProcessor(repo).recave_from_bust(tournament_id, bust_id)

        await self._after_rebuy(tournament_id, entry, RebuyKind.STANDARD, bust_id=bust_id)
        return entry

    async def _after_rebuy(
        self,
        tournament_id: str,
        entry: TournamentPlayer,
        kind: RebuyKind,
        bust_id: Optional[str] = None,
    ) -> None:
        await self._emit(
            TournamentEventType.PLAYER_REBUY,
            tournament_id,
            entry.player_id,
            kind=kind.value,
            bust_id=bust_id,
            rebuys_count=entry.rebuys_count,
        )
        await self.event_bus.request_timer_resume(
            tournament_id,
            entry.player_id,
            self.settings.timer_resume_delay_seconds,
        )

    async def cancel_last_rebuy(self, tournament_id: str) -> Dict[str, Any]:
        async with self._transaction(tournament_id) as repo:
            record, entry = await RebuyProcessor(repo).cancel_last(tournament_id)

        await self._emit(
            TournamentEventType.PLAYER_REBUY_CANCELLED,
            tournament_id,
            entry.player_id,
            kind=record.kind.value,
        )
        return {"cancelled": record.to_dict(), "participant": entry.to_dict()}

    # =========================================================================
    # Eliminations
    # =========================================================================

    async def record_elimination(
        self,
        tournament_id: str,
        eliminated_id: str,
        eliminator_id: str,
    ) -> Elimination:
        """
        Record a definitive elimination.

        A rank conflict is retried in a fresh transaction up to
        elimination_retry_attempts times before ConflictError surfaces.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.elimination_retry_attempts),
            wait=wait_random(min=0, max=0.05),
            retry=retry_if_exception_type(ConflictError),
            before_sleep=_log_conflict_retry,
            reraise=True,
        ):
            with attempt:
                async with self._transaction(tournament_id) as repo:
                    elimination = await EliminationRecorder(repo).record(
                        tournament_id, eliminated_id, eliminator_id
                    )

        await self._emit(
            TournamentEventType.PLAYER_ELIMINATED,
            tournament_id,
            eliminated_id,
            rank=elimination.rank,
            eliminator_id=eliminator_id,
            is_leader_kill=elimination.is_leader_kill,
            winner_id=elimination.winner_id,
        )
        return elimination

    async def cancel_last_elimination(self, tournament_id: str) -> Dict[str, Any]:
        async with self._transaction(tournament_id) as repo:
            elimination, affected = await EliminationRecorder(repo).cancel_last(tournament_id)

        await self._emit(
            TournamentEventType.PLAYER_ELIMINATION_CANCELLED,
            tournament_id,
            elimination.eliminated_id,
            rank=elimination.rank,
        )
        return {
            "cancelled": elimination.to_dict(),
            "participants": [e.to_dict() for e in affected],
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def check_finish(self, tournament_id: str) -> FinishCheck:
        async with self._read() as repo:
            await repo.get_tournament(tournament_id)
            participants = await repo.get_participants(tournament_id)
        return can_finish(
            [p.final_rank for p in participants],
            [p.player_id for p in participants],
        )

    async def transition(self, tournament_id: str, target: TournamentStatus) -> Tournament:
        """Move along PLANNED -> REGISTRATION -> IN_PROGRESS, or cancel."""
        if target == TournamentStatus.FINISHED:
            return await self.finish(tournament_id)

        async with self._transaction(tournament_id, LockType.TOURNAMENT) as repo:
            tournament = await repo.get_tournament(tournament_id, for_update=True)
            previous = tournament.status
            validate_transition(previous, target)
            tournament.status = target

        logger.info(
            "tournament_status_changed",
            tournament_id=tournament_id,
            from_status=previous.value,
            to_status=target.value,
        )
        await self._emit(
            TournamentEventType.TOURNAMENT_STATUS_CHANGED,
            tournament_id,
            from_status=previous.value,
            to_status=target.value,
        )
        return tournament

    async def finish(self, tournament_id: str) -> Tournament:
        """
        IN_PROGRESS -> FINISHED.

        Requires final ranks to be exactly 1..N; recomputes every score.

        Raises:
            IncompleteRanksError / DuplicateRanksError / OutOfBoundsError
        """
        async with self._transaction(tournament_id, LockType.TOURNAMENT) as repo:
            tournament = await repo.get_tournament(tournament_id, for_update=True)
            require_in_progress(tournament)
            validate_transition(tournament.status, TournamentStatus.FINISHED)

            participants = await repo.get_participants(tournament_id, for_update=True)
            can_finish(
                [p.final_rank for p in participants],
                [p.player_id for p in participants],
            ).raise_for_error()

            scoring = SeasonScoring.from_season(tournament.season)
            for entry in participants:
                recompute(entry, scoring)

            tournament.status = TournamentStatus.FINISHED
            tournament.finished_at = datetime.now(timezone.utc)

        logger.info(
            "tournament_finished",
            tournament_id=tournament_id,
            players=len(participants),
        )
        await self._emit(
            TournamentEventType.TOURNAMENT_FINISHED,
            tournament_id,
            players=len(participants),
        )
        return tournament

    # =========================================================================
    # Results and prize pool
    # =========================================================================

    async def results(self, tournament_id: str) -> List[Dict[str, Any]]:
        """Entries ordered by final rank; unranked players last, by points."""
        async with self._read() as repo:
            await repo.get_tournament(tournament_id)
            participants = await repo.get_participants(tournament_id)

        ordered = sorted(
            participants,
            key=lambda p: (
                p.final_rank is None,
                p.final_rank or 0,
                -p.total_points,
                p.player_id,
            ),
        )
        return [p.to_dict() for p in ordered]

    async def history(self, tournament_id: str) -> Dict[str, Any]:
        """Busts in recording order and eliminations by sequence."""
        async with self._read() as repo:
            await repo.get_tournament(tournament_id)
            busts = await repo.list_busts(tournament_id)
            eliminations = await repo.list_eliminations(tournament_id)

        return {
            "busts": [b.to_dict() for b in busts],
            "eliminations": [e.to_dict() for e in eliminations],
        }

    async def prize_pool(self, tournament_id: str) -> Dict[str, Any]:
        """Pool totals plus the stored payout allocation, if any."""
        async with self._read() as repo:
            tournament = await repo.get_tournament(tournament_id)
            participants = await repo.get_participants(tournament_id)

        summary = summarize(tournament, participants)
        result = summary.to_dict()
        amounts = list(tournament.prize_payout_amounts or [])
        result["payoutCount"] = tournament.prize_payout_count or 0
        result["payouts"] = [
            {"rank": i + 1, "amount": amount} for i, amount in enumerate(amounts)
        ]
        if amounts:
            result["allocation"] = validate_allocation(
                amounts,
                summary.total_pool,
                self.settings.prize_pool_tolerance,
            ).to_dict()
        return result

    async def configure_payouts(
        self,
        tournament_id: str,
        config: PrizePoolConfig,
    ) -> AllocationCheck:
        """Store adjustment and payout amounts after checking them against the pool."""
        async with self._transaction(tournament_id, LockType.TOURNAMENT) as repo:
            tournament = await repo.get_tournament(tournament_id, for_update=True)
            if tournament.status == TournamentStatus.CANCELLED:
                raise ValidationError(
                    "Tournament is cancelled",
                    code=ErrorCode.INVALID_PAYOUT,
                )
            participants = await repo.get_participants(tournament_id)

            tournament.prize_pool_adjustment = config.adjustment
            tournament.adjustment_reason = config.reason
            pool = summarize(tournament, participants).total_pool

            check = validate_payout_config(config, pool, self.settings.prize_pool_tolerance)

            tournament.prize_payout_count = config.payout_count
            tournament.prize_payout_amounts = [float(a) for a in config.amounts]

        logger.info(
            "payouts_configured",
            tournament_id=tournament_id,
            allocated=check.allocated,
            prize_pool=check.pool,
        )
        return check

    async def configure_payouts_from_percents(
        self,
        tournament_id: str,
        percents: Sequence[float],
        adjustment: float = 0.0,
        reason: Optional[str] = None,
    ) -> AllocationCheck:
        """Convert percentages of the current pool into amounts and store them."""
        async with self._read() as repo:
            tournament = await repo.get_tournament(tournament_id)
            participants = await repo.get_participants(tournament_id)

        base = summarize(tournament, participants).calculated_pool
        rows = breakdown_from_percents(
            base + adjustment,
            percents,
            self.settings.prize_pool_tolerance,
        )
        config = PrizePoolConfig(
            payout_count=len(rows),
            amounts=tuple(row["amount"] for row in rows),
            adjustment=adjustment,
            reason=reason,
        )
        return await self.configure_payouts(tournament_id, config)

    # =========================================================================
    # Request entry point
    # =========================================================================

    async def handle(self, request: Union[EngineRequest, Dict[str, Any]]) -> EngineOutcome:
        """
        Run one director request and map the result to an outcome.

        Infrastructure errors are not caught here.
        """
        try:
            if isinstance(request, dict):
                request = parse_request(request)

            bind_context(tournament_id=request.tournament_id, action=request.action)
            return await self._dispatch(request)

        except EngineError as e:
            logger.info(
                "request_rejected",
                error_code=e.code,
                error_message=e.message,
            )
            return EngineOutcome.failure(e)
        finally:
            unbind_context("tournament_id", "action")

    async def _dispatch(self, request: EngineRequest) -> EngineOutcome:
        tid = request.tournament_id

        if isinstance(request, BustRequest):
            bust = await self.record_bust(tid, request.eliminated_id, request.killer_id)
            return EngineOutcome.success(bust.to_dict(), status_code=201)

        if isinstance(request, EliminationRequest):
            elimination = await self.record_elimination(
                tid, request.eliminated_id, request.eliminator_id
            )
            return EngineOutcome.success(elimination.to_dict(), status_code=201)

        if isinstance(request, RebuyRequest):
            entry = await self.process_rebuy(tid, request.player_id, request.kind)
            return EngineOutcome.success(entry.to_dict(), status_code=201)

        if isinstance(request, RecaveFromBustRequest):
            entry = await self.recave_from_bust(tid, request.bust_id)
            return EngineOutcome.success(entry.to_dict(), status_code=201)

        if isinstance(request, CancelLastRebuyRequest):
            return EngineOutcome.success(await self.cancel_last_rebuy(tid))

        if isinstance(request, CancelLastEliminationRequest):
            return EngineOutcome.success(await self.cancel_last_elimination(tid))

        raise ValidationError(f"Unsupported action: {request.action}")
