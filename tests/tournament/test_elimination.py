"""
Elimination Recorder Tests.

최종 탈락 순위 부여, 리더 킬, 우승자 확정, 마지막 탈락 취소, 순위 충돌 재시도.
"""

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError

import pokerleague.tournament.engine as engine_module
from pokerleague.models import Elimination, TournamentPlayer
from pokerleague.tournament.distributed_lock import LockType
from pokerleague.tournament.elimination import EliminationRecorder, is_leader_kill
from pokerleague.tournament.engine import TournamentEngine, _conflict_from_integrity
from pokerleague.tournament.models import TournamentEventType
from pokerleague.utils.errors import ConflictError, ErrorCode, StateError, ValidationError


def new_entry(tournament_id, player_id, eliminations_count=0):
    return TournamentPlayer(
        tournament_id=tournament_id,
        player_id=player_id,
        final_rank=None,
        eliminations_count=eliminations_count,
    )


class TestIsLeaderKill:
    def test_eliminator_matches_leader(self):
        eliminator = new_entry("t", "a", eliminations_count=2)
        active = [eliminator, new_entry("t", "b", eliminations_count=1)]
        assert is_leader_kill(eliminator, active) is True

    def test_tied_leaders(self):
        eliminator = new_entry("t", "a", eliminations_count=2)
        active = [eliminator, new_entry("t", "b", eliminations_count=2)]
        assert is_leader_kill(eliminator, active) is True

    def test_eliminating_the_leader_counts(self):
        # 탈락 대상도 아직 active에 포함
        eliminator = new_entry("t", "a", eliminations_count=2)
        leader = new_entry("t", "b", eliminations_count=3)
        assert is_leader_kill(eliminator, [eliminator, leader]) is False

    def test_no_kills_yet(self):
        eliminator = new_entry("t", "a")
        assert is_leader_kill(eliminator, [eliminator, new_entry("t", "b")]) is False

    def test_empty(self):
        assert is_leader_kill(new_entry("t", "a"), []) is False


class TestRecordElimination:
    @pytest.mark.asyncio
    async def test_rank_is_active_count(self, engine, factory):
        tid = await factory.tournament(players=("a", "b", "c", "d"))
        await factory.close_window(tid)

        first = await engine.record_elimination(tid, "d", "a")
        second = await engine.record_elimination(tid, "c", "b")

        assert first.rank == 4
        assert second.rank == 3
        assert first.winner_id is None
        assert second.level == 5

        entries = await factory.entries(tid)
        assert entries["d"].final_rank == 4
        assert entries["c"].final_rank == 3
        assert entries["a"].eliminations_count == 1
        assert entries["b"].eliminations_count == 1

    @pytest.mark.asyncio
    async def test_rejected_while_window_open(self, engine, factory):
        tid = await factory.tournament()

        with pytest.raises(StateError) as exc_info:
            await engine.record_elimination(tid, "carol", "alice")

        assert exc_info.value.code == ErrorCode.REBUY_WINDOW_OPEN.value
        assert "bust" in exc_info.value.message
        assert await factory.all(Elimination) == []

    @pytest.mark.asyncio
    async def test_rejected_on_last_rebuy_level(self, engine, factory):
        tid = await factory.tournament(current_level=4, rebuy_end_level=4)
        with pytest.raises(StateError):
            await engine.record_elimination(tid, "carol", "alice")

    @pytest.mark.asyncio
    async def test_last_survivor_gets_first(self, engine, factory, published):
        season_id = await factory.season()
        tid = await factory.tournament(season_id=season_id)
        await factory.close_window(tid)

        await engine.record_elimination(tid, "carol", "alice")
        final = await engine.record_elimination(tid, "bob", "alice")

        assert final.rank == 2
        assert final.winner_id == "alice"
        assert final.is_leader_kill is True

        entries = await factory.entries(tid)
        assert entries["alice"].final_rank == 1
        assert entries["alice"].leader_kills == 1
        assert entries["alice"].total_points == 1500 + 2 * 50 + 25
        assert entries["bob"].total_points == 1000
        assert entries["carol"].total_points == 700

        eliminated = [e for e in published if e.event_type == TournamentEventType.PLAYER_ELIMINATED]
        assert [e.data["rank"] for e in eliminated] == [3, 2]
        assert eliminated[-1].data["winner_id"] == "alice"

        # 자동 종료 없음
        tournament = await factory.get_tournament(tid)
        assert tournament.status.value == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_not_a_leader_kill(self, engine, factory):
        tid = await factory.tournament(players=("a", "b", "c", "d"))
        await factory.close_window(tid)

        await engine.record_elimination(tid, "d", "a")
        second = await engine.record_elimination(tid, "c", "b")

        assert second.is_leader_kill is False

    @pytest.mark.asyncio
    async def test_self_elimination(self, engine, factory):
        tid = await factory.tournament()
        await factory.close_window(tid)
        with pytest.raises(ValidationError) as exc_info:
            await engine.record_elimination(tid, "alice", "alice")
        assert exc_info.value.code == ErrorCode.SELF_ELIMINATION.value

    @pytest.mark.asyncio
    async def test_already_eliminated(self, engine, factory):
        tid = await factory.tournament()
        await factory.close_window(tid)
        await engine.record_elimination(tid, "carol", "alice")

        with pytest.raises(ValidationError) as exc_info:
            await engine.record_elimination(tid, "carol", "bob")
        assert exc_info.value.code == ErrorCode.PLAYER_ALREADY_ELIMINATED.value

    @pytest.mark.asyncio
    async def test_unknown_eliminator(self, engine, factory):
        tid = await factory.tournament()
        await factory.close_window(tid)
        with pytest.raises(ValidationError) as exc_info:
            await engine.record_elimination(tid, "carol", "mallory")
        assert exc_info.value.code == ErrorCode.PLAYER_NOT_ENROLLED.value
        assert exc_info.value.message.startswith("Eliminator")


# =============================================================================
# Rank conflicts
# =============================================================================


class TestRankConflict:
    @pytest.mark.asyncio
    async def test_rank_already_held(self, engine, factory):
        # 3 enrolled, bob already holds rank 2, two players still active
        tid = await factory.tournament()
        await factory.close_window(tid)
        await factory.update_entry(tid, "bob", final_rank=2)

        with pytest.raises(ConflictError) as exc_info:
            await engine.record_elimination(tid, "carol", "alice")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "FinalRank is already taken"
        assert exc_info.value.details == {"rank": 2, "heldBy": "bob"}

        entries = await factory.entries(tid)
        assert entries["carol"].final_rank is None
        assert entries["alice"].eliminations_count == 0
        assert await factory.all(Elimination) == []

    @pytest.mark.asyncio
    async def test_conflict_retried_then_surfaced(self, engine, factory, monkeypatch):
        tid = await factory.tournament()
        await factory.close_window(tid)
        calls = []

        class AlwaysConflicting:
            def __init__(self, repo):
                pass

            async def record(self, *args):
                calls.append(args)
                raise ConflictError()

        monkeypatch.setattr(engine_module, "EliminationRecorder", AlwaysConflicting)

        with pytest.raises(ConflictError):
            await engine.record_elimination(tid, "carol", "alice")

        assert len(calls) == engine.settings.elimination_retry_attempts

    @pytest.mark.asyncio
    async def test_conflict_resolved_on_retry(self, engine, factory, monkeypatch):
        tid = await factory.tournament()
        await factory.close_window(tid)
        attempts = []

        class ConflictOnce(EliminationRecorder):
            async def record(self, *args):
                attempts.append(args)
                if len(attempts) == 1:
                    raise ConflictError()
                return await super().record(*args)

        monkeypatch.setattr(engine_module, "EliminationRecorder", ConflictOnce)

        elimination = await engine.record_elimination(tid, "carol", "alice")

        assert len(attempts) == 2
        assert elimination.rank == 3

    def test_unique_violation_on_rank_maps_to_rank_conflict(self):
        error = IntegrityError(
            "UPDATE tournament_players",
            {},
            Exception("UNIQUE constraint failed: tournament_players.tournament_id, tournament_players.final_rank"),
        )
        conflict = _conflict_from_integrity(error)
        assert conflict.code == ErrorCode.RANK_ALREADY_TAKEN.value
        assert conflict.message == "FinalRank is already taken"

    def test_other_unique_violation_is_concurrent_modification(self):
        error = IntegrityError(
            "INSERT INTO eliminations",
            {},
            Exception("UNIQUE constraint failed: eliminations.tournament_id, eliminations.sequence"),
        )
        conflict = _conflict_from_integrity(error)
        assert conflict.code == ErrorCode.CONCURRENT_MODIFICATION.value
        assert conflict.status_code == 400


# =============================================================================
# Cancel last elimination
# =============================================================================


class TestCancelLastElimination:
    @pytest.mark.asyncio
    async def test_cancel_clears_winner(self, engine, factory):
        season_id = await factory.season()
        tid = await factory.tournament(season_id=season_id)
        await factory.close_window(tid)
        await engine.record_elimination(tid, "carol", "alice")
        await engine.record_elimination(tid, "bob", "alice")

        result = await engine.cancel_last_elimination(tid)

        assert result["cancelled"]["eliminatedId"] == "bob"
        entries = await factory.entries(tid)
        assert entries["bob"].final_rank is None
        assert entries["alice"].final_rank is None
        assert entries["alice"].eliminations_count == 1
        assert entries["alice"].leader_kills == 0
        assert entries["alice"].total_points == 50
        assert entries["carol"].final_rank == 3

    @pytest.mark.asyncio
    async def test_cancel_then_re_record(self, engine, factory):
        tid = await factory.tournament()
        await factory.close_window(tid)
        await engine.record_elimination(tid, "carol", "alice")
        await engine.cancel_last_elimination(tid)

        elimination = await engine.record_elimination(tid, "carol", "bob")

        assert elimination.rank == 3
        entries = await factory.entries(tid)
        assert entries["alice"].eliminations_count == 0
        assert entries["bob"].eliminations_count == 1

    @pytest.mark.asyncio
    async def test_cancel_in_reverse_order(self, engine, factory):
        tid = await factory.tournament()
        await factory.close_window(tid)
        await engine.record_elimination(tid, "carol", "alice")
        await engine.record_elimination(tid, "bob", "alice")

        await engine.cancel_last_elimination(tid)
        await engine.cancel_last_elimination(tid)

        entries = await factory.entries(tid)
        assert all(e.final_rank is None for e in entries.values())
        assert entries["alice"].eliminations_count == 0

        with pytest.raises(ValidationError) as exc_info:
            await engine.cancel_last_elimination(tid)
        assert exc_info.value.code == ErrorCode.NOTHING_TO_CANCEL.value

    @pytest.mark.asyncio
    async def test_cancel_emits_event(self, engine, factory, published):
        tid = await factory.tournament()
        await factory.close_window(tid)
        await engine.record_elimination(tid, "carol", "alice")
        await engine.cancel_last_elimination(tid)

        cancelled = [
            e for e in published
            if e.event_type == TournamentEventType.PLAYER_ELIMINATION_CANCELLED
        ]
        assert len(cancelled) == 1
        assert cancelled[0].player_id == "carol"
        assert cancelled[0].data["rank"] == 3


class TestConcurrentEliminations:
    """여러 테이블에서 동시에 들어오는 탈락 입력."""

    @pytest.fixture
    def patient_engine(self, session_factory, mock_redis, settings, event_bus):
        # 락 대기 시간을 늘려 모든 요청이 순서대로 통과하도록
        return TournamentEngine(
            session_factory,
            redis_client=mock_redis,
            settings=settings.model_copy(update={"lock_acquire_timeout_ms": 5000}),
            event_bus=event_bus,
        )

    @pytest.mark.asyncio
    async def test_gathered_eliminations_get_distinct_ranks(self, patient_engine, factory, mock_redis):
        players = ("a", "b", "c", "d", "e", "f")
        tid = await factory.tournament(players=players)
        await factory.close_window(tid)

        results = await asyncio.gather(
            patient_engine.record_elimination(tid, "f", "a"),
            patient_engine.record_elimination(tid, "e", "b"),
            patient_engine.record_elimination(tid, "d", "c"),
        )

        assert sorted(r.rank for r in results) == [4, 5, 6]
        assert sorted(r.sequence for r in results) == [1, 2, 3]
        # 먼저 커밋된 탈락이 더 높은 순위 번호
        by_sequence = sorted(results, key=lambda r: r.sequence)
        assert [r.rank for r in by_sequence] == [6, 5, 4]

        entries = await factory.entries(tid)
        assert {p: entries[p].final_rank for p in ("d", "e", "f")} == {
            r.eliminated_id: r.rank for r in results
        }
        assert all(entries[p].final_rank is None for p in ("a", "b", "c"))
        key = patient_engine.lock_manager.make_lock_key(tid, LockType.PARTICIPANTS)
        assert await mock_redis.exists(key) == 0
