"""
입찰 엔진 결과 타입

각 단계의 결과를 태그된 변형(dataclass)으로 표현합니다.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from exceptions import ErrorKind, RejectionReason
from models.auction import Auction, AuctionStatus
from models.bid import Bid


@dataclass(frozen=True)
class AuctionSnapshot:
    """경매 한 시점의 불변 스냅샷"""

    id: int
    seller_id: int
    version: int
    status: AuctionStatus
    starting_price: int
    reserve_price: Optional[int]
    current_bid: Optional[int]
    bid_count: int
    reserve_met: bool
    start_time: datetime
    original_end_time: datetime
    current_end_time: datetime
    extension_count: int
    anti_sniping_enabled: bool
    leading_bid_id: Optional[int] = None
    leading_bidder_id: Optional[int] = None
    winner_id: Optional[int] = None
    winning_bid_id: Optional[int] = None
    final_price: Optional[int] = None

    @classmethod
    def from_model(cls, auction: Auction) -> "AuctionSnapshot":
        return cls(
            id=auction.id,
            seller_id=auction.seller_id,
            version=auction.version,
            status=AuctionStatus(auction.status),
            starting_price=auction.starting_price,
            reserve_price=auction.reserve_price,
            current_bid=auction.current_bid,
            bid_count=auction.bid_count,
            reserve_met=auction.reserve_met,
            start_time=auction.start_time,
            original_end_time=auction.original_end_time,
            current_end_time=auction.current_end_time,
            extension_count=auction.extension_count,
            anti_sniping_enabled=auction.anti_sniping_enabled,
            leading_bid_id=auction.leading_bid_id,
            leading_bidder_id=auction.leading_bidder_id,
            winner_id=auction.winner_id,
            winning_bid_id=auction.winning_bid_id,
            final_price=auction.final_price,
        )


# =============================================================================
# Bid Validator
# =============================================================================


@dataclass(frozen=True)
class ValidationAccepted:
    """검증 통과"""

    minimum_bid: int
    """이번 입찰이 넘어야 했던 최소가"""

    minimum_next_bid: int
    """이 입찰이 반영된 뒤의 최소 입찰가"""


@dataclass(frozen=True)
class ValidationRejected:
    """검증 실패"""

    reason: RejectionReason
    minimum_bid: int
    maximum_plausible: Optional[int] = None


BidValidation = Union[ValidationAccepted, ValidationRejected]


# =============================================================================
# Auction State Store
# =============================================================================


@dataclass(frozen=True)
class AppliedBid:
    """커밋된 입찰과 그 직후의 경매 상태"""

    bid_id: int
    bidder_id: int
    bidder_number: int
    amount: int
    created_at: datetime
    auction: AuctionSnapshot
    extended: bool
    previous_leader_id: Optional[int] = None


@dataclass(frozen=True)
class BidConflict:
    """버전 불일치 - 최신 스냅샷으로 재검증 필요"""

    expected_version: int
    current: AuctionSnapshot


ApplyBidResult = Union[AppliedBid, BidConflict]


@dataclass(frozen=True)
class ClosedAuction:
    """마감 처리 결과"""

    auction: AuctionSnapshot
    winner_id: Optional[int]
    winning_bid_id: Optional[int]
    final_price: Optional[int]

    @property
    def sold(self) -> bool:
        return self.auction.status == AuctionStatus.SOLD


# =============================================================================
# place_bid 응답
# =============================================================================


@dataclass(frozen=True)
class BidAccepted:
    """입찰 수락"""

    bid_id: int
    auction_id: int
    current_bid: int
    bid_count: int
    current_end_time: datetime
    reserve_met: bool
    extended: bool
    extension_count: int
    minimum_next_bid: int
    suggested_next_bid: int
    accepted: bool = True


@dataclass(frozen=True)
class BidRejected:
    """입찰 거절"""

    auction_id: int
    reason: RejectionReason
    message: str
    retryable: bool = False
    minimum_bid: Optional[int] = None
    accepted: bool = False

    @property
    def kind(self) -> ErrorKind:
        return self.reason.kind


BidResult = Union[BidAccepted, BidRejected]


# =============================================================================
# 조회
# =============================================================================


@dataclass(frozen=True)
class BidPage:
    """사용자 입찰 목록 한 페이지"""

    bids: List[Bid]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
