"""
Redis-based Distributed Locking.

여러 테이블 디렉터가 동시에 탈락/리바이를 입력할 때 순위 계산을 직렬화.

The database row locks already serialize writers that share one database.
This lock additionally keeps two engine processes from running the
"count active players, assign rank" sequence for the same tournament at
once, and fails fast with LockAcquisitionError instead of piling up
blocked transactions.

Lock keys:
- lock:tournament:{id}                 # status transitions, finish
- lock:tournament:{id}:participants    # bust, rebuy, elimination, cancel
"""

import asyncio
import hashlib
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncGenerator, Optional, Set
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from pokerleague.logging_config import get_logger

logger = get_logger(__name__)


class LockType(Enum):
    """Lock granularity types."""

    TOURNAMENT = "tournament"  # 토너먼트 전체
    PARTICIPANTS = "participants"  # 참가자 집합 (순위, 카운터)


@dataclass
class LockInfo:
    """Lock metadata."""

    lock_key: str
    owner_id: str
    acquired_at: float
    expires_at: float
    lock_type: LockType


class DistributedLockError(Exception):
    """Base lock error."""


class LockAcquisitionError(DistributedLockError):
    """Failed to acquire lock within timeout."""


class DistributedLockManager:
    """
    Redis-based Distributed Lock Manager.

    Redis 명령어 사용:
    - SET NX PX: 원자적 락 획득 (key가 없을 때만 설정, 만료시간 포함)
    - GET + DEL (Lua): 원자적 락 해제 (owner 확인 후 삭제)
    """

    # 락 소유자 확인 후 삭제 - 다른 프로세스의 락을 실수로 해제하지 않음
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        default_lock_timeout_ms: int = 10000,
        default_acquire_timeout_ms: int = 5000,
        retry_interval_ms: int = 50,
    ):
        self.redis = redis_client
        self.default_lock_timeout_ms = default_lock_timeout_ms
        self.default_acquire_timeout_ms = default_acquire_timeout_ms
        self.retry_interval_ms = retry_interval_ms

        # Instance ID for lock ownership
        self._instance_id = str(uuid4())

        # Currently held locks (for cleanup on shutdown)
        self._held_locks: Set[str] = set()

        self._release_script = None

    def _ensure_scripts(self) -> None:
        """Register the release script if not already done."""
        if self._release_script is None:
            self._release_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)

    @staticmethod
    def make_lock_key(tournament_id: str, lock_type: LockType) -> str:
        base = f"lock:tournament:{tournament_id}"
        if lock_type == LockType.TOURNAMENT:
            return base
        return f"{base}:{lock_type.value}"

    def _make_owner_token(self) -> str:
        """Unique token: instance id + timestamp + random suffix."""
        raw = f"{self._instance_id}:{time.time_ns()}:{uuid4().hex[:8]}"
        return hashlib.sha256(raw.encode()).hexdigest()[:32]

    async def acquire(
        self,
        tournament_id: str,
        lock_type: LockType,
        lock_timeout_ms: Optional[int] = None,
        acquire_timeout_ms: Optional[int] = None,
    ) -> LockInfo:
        """
        Acquire distributed lock.

        Polls SET NX PX at a fixed interval until acquire_timeout_ms.

        Raises:
            LockAcquisitionError: If lock cannot be acquired within timeout
        """
        self._ensure_scripts()

        lock_timeout = lock_timeout_ms or self.default_lock_timeout_ms
        acquire_timeout = acquire_timeout_ms or self.default_acquire_timeout_ms

        lock_key = self.make_lock_key(tournament_id, lock_type)
        owner_token = self._make_owner_token()

        start_time = time.monotonic() * 1000

        while True:
            acquired = await self.redis.set(
                lock_key,
                owner_token,
                nx=True,
                px=lock_timeout,
            )

            if acquired:
                now = time.time()
                self._held_locks.add(lock_key)
                return LockInfo(
                    lock_key=lock_key,
                    owner_id=owner_token,
                    acquired_at=now,
                    expires_at=now + (lock_timeout / 1000),
                    lock_type=lock_type,
                )

            elapsed = (time.monotonic() * 1000) - start_time
            if elapsed >= acquire_timeout:
                logger.warning(
                    "lock_acquisition_timeout",
                    lock_key=lock_key,
                    timeout_ms=acquire_timeout,
                )
                raise LockAcquisitionError(
                    f"Failed to acquire lock {lock_key} within {acquire_timeout}ms. "
                    f"Lock is held by another process."
                )

            await asyncio.sleep(self.retry_interval_ms / 1000)

    async def release(self, lock_info: LockInfo) -> bool:
        """
        Release distributed lock.

        Returns:
            True if lock was released, False if not held (expired or stolen)
        """
        self._ensure_scripts()

        result = await self._release_script(
            keys=[lock_info.lock_key],
            args=[lock_info.owner_id],
        )

        self._held_locks.discard(lock_info.lock_key)
        if result != 1:
            logger.warning("lock_expired_before_release", lock_key=lock_info.lock_key)
        return result == 1

    @asynccontextmanager
    async def lock(
        self,
        tournament_id: str,
        lock_type: LockType = LockType.PARTICIPANTS,
        lock_timeout_ms: Optional[int] = None,
        acquire_timeout_ms: Optional[int] = None,
    ) -> AsyncGenerator[LockInfo, None]:
        """
        Context manager for automatic lock acquire/release.

        사용 예시:
        ```python
        async with lock_manager.lock("t1", LockType.PARTICIPANTS):
            await recorder.record_elimination(...)
        ```
        """
        lock_info = await self.acquire(
            tournament_id,
            lock_type,
            lock_timeout_ms,
            acquire_timeout_ms,
        )
        try:
            yield lock_info
        finally:
            await self.release(lock_info)

    async def cleanup_all(self) -> int:
        """
        Release all locks held by this instance on shutdown.

        Locks left behind by a crash expire through their TTL.
        """
        released = 0
        for lock_key in list(self._held_locks):
            try:
                await self.redis.delete(lock_key)
                released += 1
            except RedisError as e:
                logger.warning("lock_cleanup_failed", lock_key=lock_key, error=str(e))
            self._held_locks.discard(lock_key)
        return released
