"""
경매 모델

승인된 리스팅 하나당 하나의 경매를 관리합니다.
집계 필드(현재가, 입찰 수, 마감 시각 등)의 변경은 AuctionStateStore만 수행합니다.
"""
from enum import Enum

from tortoise import fields, models


class AuctionStatus(str, Enum):
    """경매 상태"""
    SCHEDULED = "scheduled"  # 시작 대기
    ACTIVE = "active"        # 진행 중
    EXTENDED = "extended"    # 스나이핑 방지로 연장됨
    ENDED = "ended"          # 마감 (결과 판정 전)
    SOLD = "sold"            # 낙찰
    NO_SALE = "no_sale"      # 유찰 (입찰 없음 / 최저가 미달)
    CANCELLED = "cancelled"  # 관리자 취소

    @property
    def is_open(self) -> bool:
        """입찰 가능 여부"""
        return self in (AuctionStatus.ACTIVE, AuctionStatus.EXTENDED)

    @property
    def is_terminal(self) -> bool:
        return self in (AuctionStatus.SOLD, AuctionStatus.NO_SALE, AuctionStatus.CANCELLED)

    def can_transition_to(self, target: "AuctionStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    AuctionStatus.SCHEDULED: (AuctionStatus.ACTIVE, AuctionStatus.CANCELLED),
    AuctionStatus.ACTIVE: (AuctionStatus.EXTENDED, AuctionStatus.ENDED, AuctionStatus.CANCELLED),
    AuctionStatus.EXTENDED: (AuctionStatus.ENDED, AuctionStatus.CANCELLED),
    AuctionStatus.ENDED: (AuctionStatus.SOLD, AuctionStatus.NO_SALE),
    AuctionStatus.SOLD: (),
    AuctionStatus.NO_SALE: (),
    AuctionStatus.CANCELLED: (),
}


class Auction(models.Model):
    """
    경매

    - version은 낙관적 동시성 토큰 (상태/집계 변경마다 +1)
    - current_bid는 bid_count == 0 일 때만 null
    - current_end_time은 original_end_time 이상 (연장만 가능)
    - leading_bid_id는 현재 최고 입찰 포인터, winning_bid_id는 마감 시에만 설정
    """

    id = fields.BigIntField(pk=True)

    listing_id = fields.BigIntField(unique=True)
    seller_id = fields.BigIntField()

    version = fields.IntField(default=0)
    status = fields.CharEnumField(AuctionStatus, default=AuctionStatus.SCHEDULED)

    # 가격
    currency = fields.CharField(max_length=3, default="EUR")
    starting_price = fields.BigIntField()
    reserve_price = fields.BigIntField(null=True)
    current_bid = fields.BigIntField(null=True)
    bid_count = fields.IntField(default=0)
    reserve_met = fields.BooleanField(default=False)

    # 시간
    start_time = fields.DatetimeField()
    original_end_time = fields.DatetimeField()
    current_end_time = fields.DatetimeField()

    # 스나이핑 방지
    anti_sniping_enabled = fields.BooleanField(default=True)
    extension_count = fields.IntField(default=0)

    # 익명 입찰자 번호 시퀀스 (다음에 배정할 번호)
    next_bidder_number = fields.IntField(default=1)

    # 현재 최고 입찰 (O(1) 조회용 비정규화)
    leading_bid_id = fields.BigIntField(null=True)
    leading_bidder_id = fields.BigIntField(null=True)

    # 마감 결과
    winner_id = fields.BigIntField(null=True)
    winning_bid_id = fields.BigIntField(null=True)
    final_price = fields.BigIntField(null=True)
    ended_at = fields.DatetimeField(null=True)
    cancel_reason = fields.CharField(max_length=255, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "auction"
        indexes = (
            ("status", "current_end_time"),  # 마감 처리 스윕
            ("status", "start_time"),        # 시작 처리 스윕
        )

    def __str__(self) -> str:
        return f"Auction {self.id}: listing {self.listing_id} ({self.status})"
