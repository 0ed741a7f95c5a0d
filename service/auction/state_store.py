"""
경매 상태 저장소

경매 집계 필드(현재가, 입찰 수, 마감 시각, 상태, 버전)를 변경하는 유일한 곳입니다.

모든 변경은 다음 순서로 직렬화됩니다.
    1. 프로세스 내 경매별 락 (KeyedLock)
    2. DB 트랜잭션 + 경매 행 배타 락 (SELECT ... FOR UPDATE)
    3. version 비교 후 갱신 (compare-and-set)

행 락은 MySQL 기본 격리 수준(REPEATABLE READ)에서 최신 커밋 행을 읽는 locking read입니다.
행 락을 지원하지 않는 백엔드(SQLite)에서는 1번 락과 3번 CAS가 같은 보장을 제공합니다.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from tortoise.exceptions import BaseORMException, IntegrityError
from tortoise.transactions import in_transaction

from config.auction import AUCTION, AuctionConfig
from exceptions import (
    AuctionNotFoundError,
    AuctionNotOpenError,
    BidTooLowError,
    InvalidAuctionConfigError,
    InvalidAuctionTransitionError,
    PersistenceFailureError,
)
from models.auction import Auction, AuctionStatus
from models.bid import Bid
from service.auction.anti_snipe import AntiSnipeScheduler
from service.auction.bid_validator import (
    calculate_minimum_bid,
    determine_auction_result,
    is_reserve_met,
)
from service.auction.locks import KeyedLock
from service.auction.results import (
    ApplyBidResult,
    AppliedBid,
    AuctionSnapshot,
    BidConflict,
    BidPage,
    ClosedAuction,
)

logger = logging.getLogger(__name__)


class _StaleVersion(Exception):
    """CAS 갱신이 0건 - 트랜잭션 롤백용 (내부)"""


class AuctionStateStore:
    """경매 행의 권위 있는 기록"""

    def __init__(
        self,
        anti_snipe: Optional[AntiSnipeScheduler] = None,
        locks: Optional[KeyedLock] = None,
        config: AuctionConfig = AUCTION
    ):
        self.config = config
        self.anti_snipe = anti_snipe or AntiSnipeScheduler(config)
        self.locks = locks or KeyedLock()

    # =========================================================================
    # 생성 / 조회
    # =========================================================================

    async def create_auction(
        self,
        listing_id: int,
        seller_id: int,
        starting_price: int,
        reserve_price: Optional[int] = None,
        start_time: Optional[datetime] = None,
        duration_days: Optional[int] = None,
        anti_sniping_enabled: bool = True,
        currency: str = "EUR",
        now: Optional[datetime] = None
    ) -> AuctionSnapshot:
        """
        승인된 리스팅으로 경매 생성

        Args:
            listing_id: 리스팅 ID (리스팅당 경매 1개)
            seller_id: 판매자 ID
            starting_price: 시작가
            reserve_price: 최저 낙찰가 (없으면 None)
            start_time: 시작 시각 (기본: 지금)
            duration_days: 기간 (일)
            anti_sniping_enabled: 스나이핑 방지 사용 여부
            currency: 통화
            now: 현재 시각 (테스트용)

        Returns:
            생성된 경매 스냅샷

        Raises:
            InvalidAuctionConfigError: 가격/기간 오류, 이미 경매가 있는 리스팅
        """
        now = now or datetime.now(timezone.utc)
        start_time = start_time or now
        duration_days = duration_days or self.config.DEFAULT_DURATION_DAYS

        # Guard: 가격 검증
        if starting_price <= 0:
            raise InvalidAuctionConfigError("시작가는 0보다 커야 합니다")
        if reserve_price is not None and reserve_price <= 0:
            raise InvalidAuctionConfigError("최저 낙찰가는 0보다 커야 합니다")

        # Guard: 기간 검증
        if not (self.config.MIN_DURATION_DAYS <= duration_days <= self.config.MAX_DURATION_DAYS):
            raise InvalidAuctionConfigError(
                f"기간은 {self.config.MIN_DURATION_DAYS}~{self.config.MAX_DURATION_DAYS}일이어야 합니다"
            )

        end_time = start_time + timedelta(days=duration_days)
        status = AuctionStatus.ACTIVE if start_time <= now else AuctionStatus.SCHEDULED

        try:
            auction = await Auction.create(
                listing_id=listing_id,
                seller_id=seller_id,
                status=status,
                currency=currency.upper(),
                starting_price=starting_price,
                reserve_price=reserve_price,
                # 최저가가 없으면 입찰 전에도 "충족"으로 표시
                reserve_met=reserve_price is None,
                start_time=start_time,
                original_end_time=end_time,
                current_end_time=end_time,
                anti_sniping_enabled=anti_sniping_enabled,
            )
        except IntegrityError:
            raise InvalidAuctionConfigError(f"리스팅 {listing_id}에 이미 경매가 있습니다")
        except BaseORMException as e:
            raise PersistenceFailureError("경매 생성", e) from e

        logger.info(
            f"Created auction {auction.id} for listing {listing_id} "
            f"({status.value}, start={starting_price}, reserve={reserve_price}, {duration_days}d)"
        )
        return AuctionSnapshot.from_model(auction)

    async def get_snapshot(self, auction_id: int) -> AuctionSnapshot:
        """락 없이 읽은 경매 스냅샷 (검증용, 커밋 시 version으로 재확인)"""
        try:
            auction = await Auction.get_or_none(id=auction_id)
        except BaseORMException as e:
            raise PersistenceFailureError("경매 조회", e) from e

        if auction is None:
            raise AuctionNotFoundError(auction_id)
        return AuctionSnapshot.from_model(auction)

    async def get_bid_history(self, auction_id: int, limit: int = 50) -> List[Bid]:
        """입찰 기록 (최신순)"""
        return await Bid.filter(auction_id=auction_id).order_by("-created_at", "-id").limit(limit)

    async def get_user_bids(self, user_id: int, page: int = 1, limit: int = 20) -> BidPage:
        """
        사용자 입찰 기록 (최신순, 페이지 단위)

        Args:
            user_id: 입찰자 ID
            page: 1부터 시작하는 페이지 번호
            limit: 페이지 크기

        Returns:
            BidPage (입찰 목록과 전체 건수)
        """
        page = max(page, 1)
        query = Bid.filter(bidder_id=user_id)
        bids = await query.order_by("-created_at", "-id").offset((page - 1) * limit).limit(limit)
        total = await query.count()
        return BidPage(bids=bids, page=page, limit=limit, total=total)

    async def find_due_for_activation(self, now: datetime) -> List[int]:
        return await Auction.filter(
            status=AuctionStatus.SCHEDULED,
            start_time__lte=now
        ).order_by("start_time").values_list("id", flat=True)

    async def find_due_for_close(self, now: datetime) -> List[int]:
        return await Auction.filter(
            status__in=[AuctionStatus.ACTIVE, AuctionStatus.EXTENDED],
            current_end_time__lte=now
        ).order_by("current_end_time").values_list("id", flat=True)

    # =========================================================================
    # 입찰 반영
    # =========================================================================

    async def apply_bid(
        self,
        auction_id: int,
        bidder_id: int,
        amount: int,
        expected_version: int,
        bid_time: datetime
    ) -> ApplyBidResult:
        """
        입찰 반영 (원자적)

        입찰 기록, 최고 입찰 교체, 집계 갱신, 마감 연장, 버전 증가가
        하나의 트랜잭션으로 커밋되거나 모두 롤백됩니다.

        Args:
            auction_id: 경매 ID
            bidder_id: 입찰자 ID
            amount: 입찰 금액 (검증 완료)
            expected_version: 검증에 사용한 스냅샷의 version
            bid_time: 입찰 시각

        Returns:
            AppliedBid 또는 BidConflict (version 불일치)

        Raises:
            AuctionNotFoundError: 경매 없음
            AuctionNotOpenError: 입찰 불가 상태이거나 마감 시각 경과
            BidTooLowError: 현재가 기준 최소 입찰가 미달
            PersistenceFailureError: 경합과 무관한 저장 실패
        """
        async with self.locks.hold(auction_id):
            try:
                async with in_transaction() as conn:
                    auction = await Auction.filter(
                        id=auction_id
                    ).select_for_update().using_db(conn).get_or_none()

                    if auction is None:
                        raise AuctionNotFoundError(auction_id)

                    if auction.version != expected_version:
                        return BidConflict(expected_version, AuctionSnapshot.from_model(auction))

                    status = AuctionStatus(auction.status)
                    if (
                        not status.is_open
                        or bid_time < auction.start_time
                        or bid_time >= auction.current_end_time
                    ):
                        raise AuctionNotOpenError(auction_id, status.value)

                    # 단조 증가 보장 (권위 있는 행 기준)
                    minimum_bid = calculate_minimum_bid(
                        auction.current_bid, auction.starting_price, self.config
                    )
                    if amount < minimum_bid:
                        raise BidTooLowError(minimum_bid, amount)

                    # 연장 판단은 반드시 방금 잠근 행의 마감 시각으로
                    extended = auction.anti_sniping_enabled and self.anti_snipe.should_extend(
                        bid_time, auction.current_end_time, auction.extension_count
                    )

                    # 이 경매에서 이미 받은 번호가 있으면 그대로 사용
                    assigned = await Bid.filter(
                        auction_id=auction_id,
                        bidder_id=bidder_id,
                        bidder_number__gt=0
                    ).using_db(conn).order_by("created_at").limit(1).values_list("bidder_number", flat=True)
                    new_bidder = not assigned
                    bidder_number = auction.next_bidder_number if new_bidder else assigned[0]

                    await Bid.filter(
                        auction_id=auction_id,
                        is_winning=True
                    ).using_db(conn).update(is_winning=False)

                    bid = await Bid.create(
                        auction_id=auction_id,
                        bidder_id=bidder_id,
                        bidder_number=bidder_number,
                        amount=amount,
                        created_at=bid_time,
                        is_winning=True,
                        triggered_extension=extended,
                        using_db=conn
                    )

                    previous_leader_id = auction.leading_bidder_id
                    updates = {
                        "current_bid": amount,
                        "bid_count": auction.bid_count + 1,
                        "reserve_met": is_reserve_met(amount, auction.reserve_price),
                        "leading_bid_id": bid.id,
                        "leading_bidder_id": bidder_id,
                        "version": expected_version + 1,
                    }
                    if new_bidder:
                        updates["next_bidder_number"] = bidder_number + 1
                    if extended:
                        updates["current_end_time"] = self.anti_snipe.next_end_time(auction.current_end_time)
                        updates["extension_count"] = auction.extension_count + 1
                        updates["status"] = AuctionStatus.EXTENDED

                    updated = await Auction.filter(
                        id=auction_id,
                        version=expected_version
                    ).using_db(conn).update(**updates)

                    if updated != 1:
                        raise _StaleVersion()

            except _StaleVersion:
                logger.info(f"Version race on auction {auction_id} (expected v{expected_version})")
                return BidConflict(expected_version, await self.get_snapshot(auction_id))
            except BaseORMException as e:
                raise PersistenceFailureError(f"경매 {auction_id} 입찰", e) from e

        for field_name, value in updates.items():
            setattr(auction, field_name, value)

        snapshot = AuctionSnapshot.from_model(auction)

        if extended:
            logger.info(
                f"Auction {auction_id} extended to {snapshot.current_end_time.isoformat()} "
                f"(extension {snapshot.extension_count}/{self.config.MAX_EXTENSIONS})"
            )

        return AppliedBid(
            bid_id=bid.id,
            bidder_id=bidder_id,
            bidder_number=bidder_number,
            amount=amount,
            created_at=bid_time,
            auction=snapshot,
            extended=extended,
            previous_leader_id=previous_leader_id,
        )

    # =========================================================================
    # 상태 전이 (스케줄러 / 관리자)
    # =========================================================================

    async def activate(self, auction_id: int, now: datetime) -> Optional[AuctionSnapshot]:
        """
        예약 경매 시작 (SCHEDULED → ACTIVE)

        Returns:
            시작된 경매 스냅샷, 이미 처리됐거나 아직 시간이 안 됐으면 None
        """
        async with self.locks.hold(auction_id):
            try:
                async with in_transaction() as conn:
                    auction = await Auction.filter(
                        id=auction_id
                    ).select_for_update().using_db(conn).get_or_none()

                    if auction is None:
                        raise AuctionNotFoundError(auction_id)

                    if auction.status != AuctionStatus.SCHEDULED or auction.start_time > now:
                        return None

                    auction.status = AuctionStatus.ACTIVE
                    auction.version += 1
                    await auction.save(using_db=conn, update_fields=["status", "version", "updated_at"])
            except BaseORMException as e:
                raise PersistenceFailureError(f"경매 {auction_id} 시작", e) from e

        logger.info(f"Activated auction {auction_id}")
        return AuctionSnapshot.from_model(auction)

    async def close(self, auction_id: int, now: datetime) -> Optional[ClosedAuction]:
        """
        마감 처리 (ACTIVE/EXTENDED → ENDED → SOLD/NO_SALE)

        현재 유효한 최고 입찰로 낙찰자를 정합니다. 이미 닫혔거나 연장되어
        아직 마감 전이면 아무것도 하지 않습니다 (멱등).

        Returns:
            ClosedAuction 또는 None (처리할 것 없음)
        """
        async with self.locks.hold(auction_id):
            try:
                async with in_transaction() as conn:
                    auction = await Auction.filter(
                        id=auction_id
                    ).select_for_update().using_db(conn).get_or_none()

                    if auction is None:
                        raise AuctionNotFoundError(auction_id)

                    status = AuctionStatus(auction.status)
                    if not status.is_open or auction.current_end_time > now:
                        return None

                    winning_bid = await Bid.filter(
                        auction_id=auction_id,
                        is_winning=True,
                        is_valid=True
                    ).using_db(conn).first()

                    result = determine_auction_result(
                        winning_bid.amount if winning_bid else None,
                        auction.reserve_price
                    )
                    self._check_transition(auction_id, status, AuctionStatus.ENDED)
                    self._check_transition(auction_id, AuctionStatus.ENDED, result)

                    sold = result == AuctionStatus.SOLD
                    auction.status = result
                    auction.winner_id = winning_bid.bidder_id if sold else None
                    auction.winning_bid_id = winning_bid.id if sold else None
                    auction.final_price = winning_bid.amount if sold else None
                    auction.ended_at = now
                    auction.version += 1
                    await auction.save(
                        using_db=conn,
                        update_fields=[
                            "status", "winner_id", "winning_bid_id", "final_price",
                            "ended_at", "version", "updated_at",
                        ]
                    )
            except BaseORMException as e:
                raise PersistenceFailureError(f"경매 {auction_id} 마감", e) from e

        logger.info(
            f"Closed auction {auction_id}: {auction.status.value}, "
            f"winner={auction.winner_id}, price={auction.final_price}"
        )
        return ClosedAuction(
            auction=AuctionSnapshot.from_model(auction),
            winner_id=auction.winner_id,
            winning_bid_id=auction.winning_bid_id,
            final_price=auction.final_price,
        )

    async def cancel(
        self,
        auction_id: int,
        reason: str,
        now: Optional[datetime] = None
    ) -> AuctionSnapshot:
        """
        경매 취소 (관리자)

        Raises:
            AuctionNotFoundError: 경매 없음
            InvalidAuctionTransitionError: 이미 끝난 경매
        """
        now = now or datetime.now(timezone.utc)

        async with self.locks.hold(auction_id):
            try:
                async with in_transaction() as conn:
                    auction = await Auction.filter(
                        id=auction_id
                    ).select_for_update().using_db(conn).get_or_none()

                    if auction is None:
                        raise AuctionNotFoundError(auction_id)

                    self._check_transition(
                        auction_id, AuctionStatus(auction.status), AuctionStatus.CANCELLED
                    )

                    auction.status = AuctionStatus.CANCELLED
                    auction.cancel_reason = reason[:255]
                    auction.ended_at = now
                    auction.version += 1
                    await auction.save(
                        using_db=conn,
                        update_fields=["status", "cancel_reason", "ended_at", "version", "updated_at"]
                    )
            except BaseORMException as e:
                raise PersistenceFailureError(f"경매 {auction_id} 취소", e) from e

        logger.info(f"Cancelled auction {auction_id}: {reason}")
        return AuctionSnapshot.from_model(auction)

    @staticmethod
    def _check_transition(
        auction_id: int,
        current: AuctionStatus,
        target: AuctionStatus
    ) -> None:
        if not current.can_transition_to(target):
            raise InvalidAuctionTransitionError(auction_id, current.value, target.value)
