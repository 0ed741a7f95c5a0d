"""
경매 시작/마감 처리

스케줄러가 주기적으로 호출합니다. 모든 작업은 멱등이며 입찰과 동시에 실행돼도 안전합니다.
상태 전이는 AuctionStateStore가 경매별 락 안에서 수행하고,
보증금 확정/해제와 이벤트 발행은 전이가 커밋된 뒤에 진행합니다.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from exceptions import AuctionEngineError
from service.auction.results import AuctionSnapshot, ClosedAuction
from service.auction.state_store import AuctionStateStore
from service.deposit.deposit_manager import DepositManager
from service.event.event_bus import AuctionEvent, AuctionEventType, EventDispatcher

logger = logging.getLogger(__name__)


class AuctionCloser:
    """경매 생명주기 전이 (시작, 마감, 취소)"""

    def __init__(
        self,
        store: AuctionStateStore,
        deposits: DepositManager,
        events: EventDispatcher
    ):
        self.store = store
        self.deposits = deposits
        self.events = events

    # =========================================================================
    # 시작
    # =========================================================================

    async def activate_due_auctions(self, now: Optional[datetime] = None) -> List[AuctionSnapshot]:
        """
        시작 시각이 된 예약 경매를 ACTIVE로 전환

        Returns:
            이번 호출에서 시작된 경매 목록
        """
        now = now or datetime.now(timezone.utc)
        activated = []

        for auction_id in await self.store.find_due_for_activation(now):
            try:
                snapshot = await self.store.activate(auction_id, now)
            except AuctionEngineError as e:
                logger.error(f"Failed to activate auction {auction_id}: {e}", exc_info=True)
                continue

            if snapshot is None:
                continue

            activated.append(snapshot)
            self.events.emit(AuctionEvent(
                type=AuctionEventType.AUCTION_STARTED,
                auction_id=auction_id,
                data={
                    "startingPrice": snapshot.starting_price,
                    "endTime": snapshot.current_end_time,
                },
                timestamp=now,
            ))

        if activated:
            logger.info(f"Activated {len(activated)} scheduled auctions")
        return activated

    # =========================================================================
    # 마감
    # =========================================================================

    async def close_due_auctions(self, now: Optional[datetime] = None) -> List[ClosedAuction]:
        """
        마감 시각이 지난 경매 일괄 마감

        한 경매의 실패가 다른 경매 마감을 막지 않습니다.

        Returns:
            이번 호출에서 마감된 경매 목록
        """
        now = now or datetime.now(timezone.utc)
        closed = []

        for auction_id in await self.store.find_due_for_close(now):
            try:
                result = await self.close_auction(auction_id, now)
            except AuctionEngineError as e:
                logger.error(f"Failed to close auction {auction_id}: {e}", exc_info=True)
                continue

            if result is not None:
                closed.append(result)

        if closed:
            sold = sum(1 for result in closed if result.sold)
            logger.info(f"Closed {len(closed)} auctions ({sold} sold, {len(closed) - sold} no sale)")
        return closed

    async def close_auction(self, auction_id: int, now: Optional[datetime] = None) -> Optional[ClosedAuction]:
        """
        경매 하나 마감

        Args:
            auction_id: 경매 ID
            now: 현재 시각

        Returns:
            ClosedAuction, 이미 마감됐거나 아직 마감 전이면 None

        Raises:
            AuctionNotFoundError: 경매 없음
            PersistenceFailureError: 상태 전이 저장 실패
        """
        now = now or datetime.now(timezone.utc)

        result = await self.store.close(auction_id, now)
        if result is None:
            return None

        # 커밋 이후: 보증금 정리 (실패는 기록 후 스윕이 재시도)
        if result.sold:
            await self.deposits.capture(auction_id, result.winner_id, now)
        await self.deposits.release_all(auction_id, except_user_id=result.winner_id, now=now)

        snapshot = result.auction
        self.events.emit(AuctionEvent(
            type=AuctionEventType.AUCTION_ENDED,
            auction_id=auction_id,
            data={
                "status": snapshot.status.value,
                "winnerId": result.winner_id,
                "finalPrice": result.final_price,
                "bidCount": snapshot.bid_count,
                "reserveMet": snapshot.reserve_met,
            },
            timestamp=now,
        ))
        return result

    # =========================================================================
    # 취소 (관리자)
    # =========================================================================

    async def cancel_auction(
        self,
        auction_id: int,
        reason: str,
        now: Optional[datetime] = None
    ) -> AuctionSnapshot:
        """
        경매 취소 후 모든 보증금 해제

        Raises:
            AuctionNotFoundError: 경매 없음
            InvalidAuctionTransitionError: 이미 끝난 경매
        """
        now = now or datetime.now(timezone.utc)

        snapshot = await self.store.cancel(auction_id, reason, now)
        await self.deposits.release_all(auction_id, now=now)

        self.events.emit(AuctionEvent(
            type=AuctionEventType.AUCTION_CANCELLED,
            auction_id=auction_id,
            data={"reason": reason},
            timestamp=now,
        ))
        return snapshot
