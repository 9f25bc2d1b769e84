"""
Tournament Event Bus.

커밋이 끝난 변경 사항을 외부 협력자(블라인드 타이머, 디스플레이)에 전달.

설계 원칙:
1. Publish after commit: 이벤트는 트랜잭션 커밋 이후에만 발행
2. Fan-Out: 하나의 이벤트를 여러 로컬 핸들러가 독립적으로 처리
3. Durable: Redis Stream(XADD)에 저장하여 타이머 프로세스가 소비

The engine owns no background tasks; the Timer process reads the stream
and decides when to pause or resume the clock.
"""

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set
from uuid import uuid4

import redis.asyncio as redis

from pokerleague.logging_config import get_logger

from .models import TournamentEvent, TournamentEventType

logger = get_logger(__name__)

# Type alias for event handlers
EventHandler = Callable[[TournamentEvent], Awaitable[None]]


@dataclass
class Subscription:
    """Event subscription metadata."""

    subscription_id: str
    event_types: Set[TournamentEventType]
    handler: EventHandler
    tournament_id: Optional[str] = None  # None = all tournaments
    is_active: bool = True


class TournamentEventBus:
    """
    Event bus for tournament events.

    [Engine] -> publish() -> [Local handlers]
                          -> [Redis Stream] -> [Timer / display consumers]
    """

    STREAM_KEY_PREFIX = "tournament:events"

    # Approximate stream length kept in Redis
    STREAM_MAX_LEN = 10000

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        instance_id: Optional[str] = None,
    ):
        self.redis = redis_client
        self.instance_id = instance_id or str(uuid4())[:8]

        self._subscriptions: Dict[str, Subscription] = {}
        self._handlers_by_type: Dict[TournamentEventType, List[Subscription]] = (
            defaultdict(list)
        )

    def subscribe(
        self,
        event_types: Set[TournamentEventType],
        handler: EventHandler,
        tournament_id: Optional[str] = None,
    ) -> str:
        """
        Subscribe to tournament events.

        Args:
            event_types: Set of event types to listen for
            handler: Async function to call on event
            tournament_id: Filter for specific tournament (None = all)

        Returns:
            Subscription ID for unsubscribe
        """
        subscription_id = str(uuid4())
        subscription = Subscription(
            subscription_id=subscription_id,
            event_types=event_types,
            handler=handler,
            tournament_id=tournament_id,
        )

        self._subscriptions[subscription_id] = subscription
        for event_type in event_types:
            self._handlers_by_type[event_type].append(subscription)

        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove subscription."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if not subscription:
            return False

        subscription.is_active = False
        for event_type in subscription.event_types:
            self._handlers_by_type[event_type] = [
                h
                for h in self._handlers_by_type[event_type]
                if h.subscription_id != subscription_id
            ]

        return True

    async def publish(self, event: TournamentEvent) -> None:
        """Append to the stream, then dispatch to local handlers."""
        if self.redis is not None:
            await self._publish_to_stream(event)

        await self._dispatch_local(event)

        logger.debug(
            "tournament_event_published",
            event_type=event.event_type.name,
            tournament_id=event.tournament_id,
        )

    async def _publish_to_stream(self, event: TournamentEvent) -> str:
        """Publish single event to Redis Stream. Returns stream entry ID."""
        stream_key = f"{self.STREAM_KEY_PREFIX}:{event.tournament_id}"

        # Flat structure for XADD
        data = {
            "event_id": event.event_id,
            "event_type": event.event_type.name,
            "tournament_id": event.tournament_id,
            "timestamp": event.timestamp.isoformat(),
            "data": json.dumps(event.data),
            "player_id": event.player_id or "",
        }

        return await self.redis.xadd(
            stream_key,
            data,
            maxlen=self.STREAM_MAX_LEN,
            approximate=True,
        )

    async def _dispatch_local(self, event: TournamentEvent) -> None:
        """Run matching local handlers concurrently; one failure does not stop the rest."""
        tasks = []
        for subscription in self._handlers_by_type.get(event.event_type, []):
            if not subscription.is_active:
                continue
            if (
                subscription.tournament_id
                and subscription.tournament_id != event.tournament_id
            ):
                continue
            tasks.append(
                asyncio.create_task(self._safe_handler_call(subscription.handler, event))
            )

        if tasks:
            await asyncio.gather(*tasks)

    async def _safe_handler_call(
        self,
        handler: EventHandler,
        event: TournamentEvent,
    ) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "event_handler_failed",
                event_type=event.event_type.name,
                tournament_id=event.tournament_id,
            )

    # =========================================================================
    # Timer collaborator signals
    # =========================================================================

    async def request_timer_pause(
        self,
        tournament_id: str,
        player_id: str,
        bust_id: str,
    ) -> None:
        """Ask the timer to stop the clock while a recave decision is pending."""
        await self.publish(
            TournamentEvent(
                event_type=TournamentEventType.TIMER_PAUSE_REQUESTED,
                tournament_id=tournament_id,
                player_id=player_id,
                data={"reason": "bust", "bust_id": bust_id},
            )
        )

    async def request_timer_resume(
        self,
        tournament_id: str,
        player_id: str,
        delay_seconds: int,
    ) -> None:
        """Ask the timer to resume after delay_seconds. The timer owns the delay."""
        await self.publish(
            TournamentEvent(
                event_type=TournamentEventType.TIMER_RESUME_REQUESTED,
                tournament_id=tournament_id,
                player_id=player_id,
                data={"reason": "rebuy", "delay_seconds": delay_seconds},
            )
        )
