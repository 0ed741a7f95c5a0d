"""
입찰 처리 서비스

입찰 요청 하나를 끝까지 처리합니다.

    Received → Validated → DepositChecked → Committed
                  └──────────┴──────────────┴──→ Rejected

- 검증은 락 없이 읽은 스냅샷으로 하고, 커밋 시 version으로 재확인합니다.
- version 충돌이면 최신 스냅샷으로 재검증 후 재시도 (최대 MAX_BID_RETRIES회)
- 보증금 확인과 커밋은 각각 타임아웃이 있습니다.
- 커밋 후 이벤트는 비동기로 발행하며, 발행 실패가 입찰 결과에 영향을 주지 않습니다.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from config.auction import AUCTION, AuctionConfig
from exceptions import (
    AuctionEngineError,
    AuctionNotOpenError,
    BidAmountImplausibleError,
    BidTimeoutError,
    BidTooLowError,
    ContentionError,
    PaymentProviderUnavailableError,
    PersistenceFailureError,
    RejectionReason,
    SelfBidError,
)
from service.auction.bid_validator import (
    calculate_minimum_bid,
    calculate_suggested_bid,
    validate_bid,
)
from service.auction.results import (
    AppliedBid,
    AuctionSnapshot,
    BidAccepted,
    BidRejected,
    BidResult,
    ValidationAccepted,
    ValidationRejected,
)
from service.auction.state_store import AuctionStateStore
from service.deposit.deposit_manager import DepositManager, Ineligible
from service.event.event_bus import AuctionEvent, AuctionEventType, EventDispatcher

logger = logging.getLogger(__name__)


class BiddingService:
    """입찰 수락 오케스트레이터"""

    def __init__(
        self,
        store: AuctionStateStore,
        deposits: DepositManager,
        events: EventDispatcher,
        config: AuctionConfig = AUCTION
    ):
        self.store = store
        self.deposits = deposits
        self.events = events
        self.config = config

    async def place_bid(
        self,
        auction_id: int,
        bidder_id: int,
        amount: int,
        now: Optional[datetime] = None
    ) -> BidResult:
        """
        입찰

        예외를 올리지 않고 항상 BidAccepted / BidRejected 중 하나를 반환합니다.

        Args:
            auction_id: 경매 ID
            bidder_id: 입찰자 ID
            amount: 입찰 금액
            now: 입찰 시각 (테스트용, 기본: 지금)

        Returns:
            BidAccepted 또는 BidRejected
        """
        bid_time = now or datetime.now(timezone.utc)

        try:
            applied = await self._place_bid(auction_id, bidder_id, amount, bid_time)
        except PersistenceFailureError as e:
            logger.critical(
                f"Persistence failure on bid: auction {auction_id}, bidder {bidder_id}, amount {amount}: {e}",
                exc_info=True
            )
            return self._reject(auction_id, e)
        except AuctionEngineError as e:
            logger.warning(
                f"Bid rejected ({e.reason.value if e.reason else 'unknown'}): "
                f"auction {auction_id}, bidder {bidder_id}, amount {amount}: {e.message}"
            )
            return self._reject(auction_id, e)

        logger.info(
            f"Bid accepted: auction {auction_id}, bidder {bidder_id}, amount {amount} "
            f"(bid {applied.bid_id}, count {applied.auction.bid_count})"
        )
        self._emit_bid_events(applied)
        return self._accept(applied)

    async def _place_bid(
        self,
        auction_id: int,
        bidder_id: int,
        amount: int,
        bid_time: datetime
    ) -> AppliedBid:
        # 1. Received → Validated
        snapshot = await self.store.get_snapshot(auction_id)
        if snapshot.seller_id == bidder_id:
            raise SelfBidError()
        self._validate(amount, snapshot, bid_time)

        # 2. Validated → DepositChecked
        try:
            eligibility = await asyncio.wait_for(
                self.deposits.ensure_eligible(bidder_id, auction_id, amount, now=bid_time),
                timeout=self.config.DEPOSIT_CHECK_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise PaymentProviderUnavailableError("보증금 확인이 지연되고 있습니다. 잠시 후 다시 시도해주세요.")

        if isinstance(eligibility, Ineligible):
            raise eligibility.error

        # 3. DepositChecked → Committed (version 충돌 시 재검증 후 재시도)
        for attempt in range(1, self.config.MAX_BID_RETRIES + 1):
            try:
                result = await asyncio.wait_for(
                    self.store.apply_bid(auction_id, bidder_id, amount, snapshot.version, bid_time),
                    timeout=self.config.COMMIT_TIMEOUT_SECONDS
                )
            except asyncio.TimeoutError:
                raise BidTimeoutError("입찰 기록", self.config.COMMIT_TIMEOUT_SECONDS)

            if isinstance(result, AppliedBid):
                return result

            logger.debug(
                f"Bid conflict on auction {auction_id}: expected v{result.expected_version}, "
                f"now v{result.current.version} (attempt {attempt})"
            )
            snapshot = result.current
            self._validate(amount, snapshot, bid_time)

        raise ContentionError(auction_id, self.config.MAX_BID_RETRIES)

    def _validate(
        self,
        amount: int,
        snapshot: AuctionSnapshot,
        bid_time: datetime
    ) -> ValidationAccepted:
        validation = validate_bid(
            amount,
            snapshot.current_bid,
            snapshot.starting_price,
            snapshot.status,
            self.config
        )

        if isinstance(validation, ValidationRejected):
            if validation.reason == RejectionReason.AUCTION_NOT_OPEN:
                raise AuctionNotOpenError(snapshot.id, snapshot.status.value)
            if validation.reason == RejectionReason.BID_TOO_LOW:
                raise BidTooLowError(validation.minimum_bid, amount)
            raise BidAmountImplausibleError(amount, validation.maximum_plausible)

        if bid_time < snapshot.start_time or bid_time >= snapshot.current_end_time:
            raise AuctionNotOpenError(snapshot.id, snapshot.status.value)

        return validation

    # =========================================================================
    # 응답 / 이벤트
    # =========================================================================

    def _accept(self, applied: AppliedBid) -> BidAccepted:
        auction = applied.auction
        return BidAccepted(
            bid_id=applied.bid_id,
            auction_id=auction.id,
            current_bid=auction.current_bid,
            bid_count=auction.bid_count,
            current_end_time=auction.current_end_time,
            reserve_met=auction.reserve_met,
            extended=applied.extended,
            extension_count=auction.extension_count,
            minimum_next_bid=calculate_minimum_bid(auction.current_bid, auction.starting_price, self.config),
            suggested_next_bid=calculate_suggested_bid(auction.current_bid, auction.starting_price, self.config),
        )

    @staticmethod
    def _reject(auction_id: int, error: AuctionEngineError) -> BidRejected:
        return BidRejected(
            auction_id=auction_id,
            reason=error.reason or RejectionReason.PERSISTENCE_FAILURE,
            message=error.message,
            retryable=error.retryable,
            minimum_bid=getattr(error, "minimum_bid", None),
        )

    def _emit_bid_events(self, applied: AppliedBid) -> None:
        auction = applied.auction

        self.events.emit(AuctionEvent(
            type=AuctionEventType.NEW_BID,
            auction_id=auction.id,
            data={
                "bidId": applied.bid_id,
                "bidderId": applied.bidder_id,
                "bidderNumber": applied.bidder_number,
                "amount": applied.amount,
                "bidCount": auction.bid_count,
                "currentEndTime": auction.current_end_time,
                "reserveMet": auction.reserve_met,
                "minimumNextBid": calculate_minimum_bid(auction.current_bid, auction.starting_price, self.config),
            },
            timestamp=applied.created_at,
        ))

        if applied.extended:
            self.events.emit(AuctionEvent(
                type=AuctionEventType.AUCTION_EXTENDED,
                auction_id=auction.id,
                data={
                    "newEndTime": auction.current_end_time,
                    "extensionCount": auction.extension_count,
                },
                timestamp=applied.created_at,
            ))
