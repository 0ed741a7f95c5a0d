"""
이벤트 버스 (Event Bus)

경매 상태 변화를 `auction-<id>` 토픽으로 발행합니다.
엔진은 EventPublisher 프로토콜에만 의존하므로 외부 실시간 채널(Pusher 등)로
교체할 수 있고, 기본 구현인 EventBus는 프로세스 내 구독자에게 전달합니다.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)


class AuctionEventType(Enum):
    """경매 이벤트 타입 (실시간 채널 이벤트 이름)"""

    NEW_BID = "new-bid"                     # 새 최고 입찰
    AUCTION_EXTENDED = "auction-extended"   # 마감 연장
    AUCTION_ENDED = "auction-ended"         # 마감 (낙찰/유찰)
    AUCTION_STARTED = "auction-started"     # 예약 경매 시작
    AUCTION_CANCELLED = "auction-cancelled"  # 관리자 취소


def auction_topic(auction_id: int) -> str:
    return f"auction-{auction_id}"


@dataclass
class AuctionEvent:
    """경매 이벤트"""

    type: AuctionEventType
    auction_id: int
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def topic(self) -> str:
        return auction_topic(self.auction_id)

    def to_payload(self) -> Dict[str, Any]:
        """채널 전송용 dict (datetime은 ISO 문자열)"""
        payload = {"auctionId": self.auction_id}
        for key, value in self.data.items():
            payload[key] = value.isoformat() if isinstance(value, datetime) else value
        payload["timestamp"] = self.timestamp.isoformat()
        return payload

    def __repr__(self) -> str:
        return f"AuctionEvent(type={self.type.value}, auction_id={self.auction_id}, data={self.data})"


class EventPublisher(Protocol):
    """토픽 발행자 - 엔진이 의존하는 유일한 인터페이스"""

    async def publish(self, topic: str, event: AuctionEvent) -> None:
        ...


class EventBus:
    """
    프로세스 내 이벤트 버스

    구독자는 이벤트 타입별로 등록하며, 토픽(경매)과 무관하게 모든 경매의 이벤트를 받습니다.

    Example:
        >>> bus = EventBus()
        >>>
        >>> async def on_new_bid(topic: str, event: AuctionEvent):
        ...     print(f"{topic}: {event.data['amount']}")
        >>>
        >>> bus.subscribe(AuctionEventType.NEW_BID, on_new_bid)
        >>> await bus.publish("auction-1", AuctionEvent(
        ...     type=AuctionEventType.NEW_BID,
        ...     auction_id=1,
        ...     data={"amount": 110}
        ... ))
    """

    def __init__(self):
        self._subscribers: Dict[AuctionEventType, List[Callable]] = {}

    def subscribe(self, event_type: AuctionEventType, callback: Callable) -> None:
        """
        이벤트 구독

        Args:
            event_type: 구독할 이벤트 타입
            callback: `async def callback(topic, event)`
        """
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []

        if callback not in self._subscribers[event_type]:
            self._subscribers[event_type].append(callback)
            logger.debug(f"Subscribed to {event_type.value}: {callback.__name__}")

    async def publish(self, topic: str, event: AuctionEvent) -> None:
        """
        이벤트 발행

        구독자 콜백을 순차 호출하며, 한 구독자의 에러가 다른 구독자에게 영향을 주지 않습니다.

        Args:
            topic: 토픽 이름 (`auction-<id>`)
            event: 발행할 이벤트
        """
        callbacks = self._subscribers.get(event.type)
        if not callbacks:
            logger.debug(f"No subscribers for event: {event.type.value}")
            return

        logger.debug(f"Publishing to {topic}: {event}")

        for callback in list(callbacks):
            try:
                await callback(topic, event)
            except Exception as e:
                logger.error(
                    f"Error in event callback {callback.__name__} for {event.type.value}: {e}",
                    exc_info=True
                )


class LoggingPublisher:
    """발행 내용을 로그로만 남기는 발행자 (실시간 채널 미설정 시)"""

    def __init__(self, level: int = logging.INFO, bus: Optional[EventBus] = None):
        self.level = level
        self.bus = bus

    async def publish(self, topic: str, event: AuctionEvent) -> None:
        logger.log(self.level, f"[{topic}] {event.type.value} {event.to_payload()}")
        if self.bus is not None:
            await self.bus.publish(topic, event)


class EventDispatcher:
    """
    발행 지연/실패가 호출자에게 전파되지 않도록 백그라운드 태스크로 발행

    발행 실패는 로그만 남깁니다. 진행 중인 태스크 참조를 보관해 GC로 사라지지 않게 합니다.
    """

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher
        self._pending: Set[asyncio.Task] = set()

    def emit(self, event: AuctionEvent) -> asyncio.Task:
        task = asyncio.create_task(self._publish(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _publish(self, event: AuctionEvent) -> None:
        try:
            await self.publisher.publish(event.topic, event)
        except Exception as e:
            logger.error(f"Failed to publish {event.type.value} to {event.topic}: {e}", exc_info=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """진행 중인 발행이 끝날 때까지 대기 (종료/테스트용)"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
