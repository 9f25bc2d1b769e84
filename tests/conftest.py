"""Shared test fixtures.

Engine tests run against in-memory SQLite (one shared connection) and an
in-process Redis double.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pokerleague.config import Settings
from pokerleague.models import Season, Tournament, TournamentPlayer, TournamentStatus
from pokerleague.tournament.engine import TournamentEngine
from pokerleague.tournament.event_bus import TournamentEventBus
from pokerleague.tournament.models import TournamentEvent, TournamentEventType
from pokerleague.utils.db import build_engine, build_session_factory, close_db, get_db_session, init_db


# =============================================================================
# Redis double
# =============================================================================


class MockRedis:
    """Mock Redis client covering the commands the engine uses."""

    def __init__(self):
        self._data: dict[str, Any] = {}
        self.streams: dict[str, list[dict]] = {}

    async def set(self, key, value, nx=False, px=None):
        if nx and key in self._data:
            return False
        self._data[key] = value
        return True

    async def get(self, key):
        return self._data.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    async def exists(self, key):
        return 1 if key in self._data else 0

    def register_script(self, script):
        # Owner-checked release
        async def mock_script(keys=None, args=None):
            key, owner = keys[0], args[0]
            if self._data.get(key) != owner:
                return 0
            del self._data[key]
            return 1

        return mock_script

    async def xadd(self, stream, data, maxlen=None, approximate=False):
        entries = self.streams.setdefault(stream, [])
        entries.append(data)
        return f"{datetime.now(timezone.utc).timestamp()}-{len(entries)}"


# =============================================================================
# Settings / database
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        elimination_retry_attempts=3,
        lock_acquire_timeout_ms=200,
        timer_resume_delay_seconds=10,
    )


@pytest_asyncio.fixture
async def session_factory(settings: Settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = build_engine(settings)
    await init_db(engine)
    yield build_session_factory(engine)
    await close_db(engine)


@pytest.fixture
def mock_redis() -> MockRedis:
    return MockRedis()


@pytest.fixture
def published() -> list[TournamentEvent]:
    return []


@pytest.fixture
def event_bus(mock_redis: MockRedis, published: list[TournamentEvent]) -> TournamentEventBus:
    bus = TournamentEventBus(mock_redis)

    async def record(event: TournamentEvent) -> None:
        published.append(event)

    bus.subscribe(set(TournamentEventType), record)
    return bus


@pytest.fixture
def engine(
    session_factory: async_sessionmaker[AsyncSession],
    mock_redis: MockRedis,
    settings: Settings,
    event_bus: TournamentEventBus,
) -> TournamentEngine:
    return TournamentEngine(
        session_factory,
        redis_client=mock_redis,
        settings=settings,
        event_bus=event_bus,
    )


# =============================================================================
# Factories
# =============================================================================


def new_entry(tournament_id: str, player_id: str, **overrides: Any) -> TournamentPlayer:
    """Participant with every counter explicitly zeroed."""
    fields: dict[str, Any] = dict(
        tournament_id=tournament_id,
        player_id=player_id,
        final_rank=None,
        has_paid=True,
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
    fields.update(overrides)
    return TournamentPlayer(**fields)


class DataFactory:
    """Writes fixture rows directly, bypassing the engine."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def season(self, **overrides: Any) -> str:
        fields: dict[str, Any] = dict(
            name="Season 2026",
            rank_points_table=[1500, 1000, 700, 500, 400, 300, 200, 200, 200, 200, 100],
            points_rank_12_to_16=50,
            elimination_points=50,
            leader_killer_bonus=25,
            free_rebuys_count=2,
            recave_penalty_tiers=[
                {"fromRecaves": 3, "penaltyPoints": -50},
                {"fromRecaves": 4, "penaltyPoints": -100},
                {"fromRecaves": 5, "penaltyPoints": -150},
            ],
            rebuy_penalty_tier1=-50,
            rebuy_penalty_tier2=-100,
            rebuy_penalty_tier3=-150,
        )
        fields.update(overrides)
        async with get_db_session(self.session_factory) as session:
            season = Season(**fields)
            session.add(season)
            await session.flush()
            return season.id

    async def tournament(
        self,
        players: Sequence[str] = ("alice", "bob", "carol"),
        status: TournamentStatus = TournamentStatus.IN_PROGRESS,
        season_id: str | None = None,
        current_level: int = 1,
        rebuy_end_level: int | None = None,
        **overrides: Any,
    ) -> str:
        fields: dict[str, Any] = dict(
            name="Friday Night",
            status=status,
            season_id=season_id,
            current_level=current_level,
            rebuy_end_level=rebuy_end_level,
            rebuy_grace_open=False,
            buy_in_amount=10,
            light_rebuy_enabled=True,
            light_rebuy_amount=5,
            prize_pool_adjustment=0,
        )
        fields.update(overrides)
        async with get_db_session(self.session_factory) as session:
            tournament = Tournament(**fields)
            session.add(tournament)
            await session.flush()
            for player_id in players:
                session.add(new_entry(tournament.id, player_id))
            return tournament.id

    async def update_tournament(self, tournament_id: str, **fields: Any) -> None:
        """Stands in for the blind timer (or an admin) writing the tournament row."""
        async with get_db_session(self.session_factory) as session:
            tournament = await session.get(Tournament, tournament_id)
            for name, value in fields.items():
                setattr(tournament, name, value)

    async def close_window(self, tournament_id: str) -> None:
        await self.update_tournament(tournament_id, current_level=5, rebuy_end_level=4)

    async def update_entry(self, tournament_id: str, player_id: str, **fields: Any) -> None:
        async with get_db_session(self.session_factory) as session:
            entry = (
                await session.execute(
                    select(TournamentPlayer).where(
                        TournamentPlayer.tournament_id == tournament_id,
                        TournamentPlayer.player_id == player_id,
                    )
                )
            ).scalar_one()
            for name, value in fields.items():
                setattr(entry, name, value)

    async def entries(self, tournament_id: str) -> dict[str, TournamentPlayer]:
        async with self.session_factory() as session:
            rows = (
                await session.execute(
                    select(TournamentPlayer).where(
                        TournamentPlayer.tournament_id == tournament_id
                    )
                )
            ).scalars().all()
            return {row.player_id: row for row in rows}

    async def get_tournament(self, tournament_id: str) -> Tournament:
        async with self.session_factory() as session:
            return await session.get(Tournament, tournament_id)

    async def all(self, model: type) -> list[Any]:
        async with self.session_factory() as session:
            return list((await session.execute(select(model))).scalars().all())


@pytest.fixture
def factory(session_factory: async_sessionmaker[AsyncSession]) -> DataFactory:
    return DataFactory(session_factory)
