"""
입찰가 검증 유닛 테스트
"""
import pytest

from config.auction import AuctionConfig
from exceptions import RejectionReason
from models.auction import AuctionStatus
from service.auction.bid_validator import (
    calculate_minimum_bid,
    calculate_suggested_bid,
    determine_auction_result,
    is_reserve_met,
    validate_bid,
)
from service.auction.results import ValidationAccepted, ValidationRejected


class TestCalculateMinimumBid:
    """최소 입찰가 계산 테스트"""

    def test_no_bids_uses_starting_price(self):
        """입찰이 없으면 시작가"""
        assert calculate_minimum_bid(None, 1_000) == 1_000

    def test_absolute_floor_applies_to_small_bids(self):
        """1%가 10 미만이면 10 증가"""
        assert calculate_minimum_bid(500, 100) == 510
        assert calculate_minimum_bid(1_000, 100) == 1_010

    def test_percent_increment_for_large_bids(self):
        """1%가 10보다 크면 1% 증가"""
        assert calculate_minimum_bid(100_000, 100) == 101_000

    def test_rounds_up(self):
        """소수점은 올림"""
        # 12345 + 123.45 = 12468.45
        assert calculate_minimum_bid(12_345, 100) == 12_469

    def test_custom_config(self):
        """설정값 반영"""
        config = AuctionConfig(MIN_BID_INCREMENT_PERCENT=5.0, MIN_BID_INCREMENT_AMOUNT=100)
        assert calculate_minimum_bid(1_000, 100, config) == 1_100
        assert calculate_minimum_bid(10_000, 100, config) == 10_500


class TestCalculateSuggestedBid:
    """추천 입찰가 테스트"""

    @pytest.mark.parametrize("current_bid,expected", [
        (500, 550),
        (1_000, 1_100),
        (7_500, 7_750),
        (20_000, 20_500),
        (40_000, 41_000),
        (75_000, 77_500),
        (150_000, 155_000),
        (300_000, 310_000),
    ])
    def test_price_tiers(self, current_bid, expected):
        """가격 구간별 증가액"""
        assert calculate_suggested_bid(current_bid, 100) == expected

    def test_no_bids_uses_starting_price(self):
        assert calculate_suggested_bid(None, 2_500) == 2_500

    def test_never_below_minimum_bid(self):
        """구간 증가액이 1%보다 작으면 최소 입찰가를 추천"""
        # 최상위 구간 +10000 < 1% (20000)
        assert calculate_suggested_bid(2_000_000, 100) == 2_020_000


class TestValidateBid:
    """입찰가 검증 테스트"""

    def test_accepts_exact_minimum(self):
        """최소 입찰가와 같으면 통과"""
        result = validate_bid(1_010, 1_000, 1_000, AuctionStatus.ACTIVE)

        assert isinstance(result, ValidationAccepted)
        assert result.minimum_bid == 1_010
        # 1010 + max(10.1, 10) = 1020.1 → 1021
        assert result.minimum_next_bid == 1_021

    def test_accepts_first_bid_at_starting_price(self):
        result = validate_bid(1_000, None, 1_000, AuctionStatus.ACTIVE)

        assert isinstance(result, ValidationAccepted)
        assert result.minimum_bid == 1_000
        assert result.minimum_next_bid == 1_010

    def test_rejects_below_minimum(self):
        """최소 입찰가 미만 거절"""
        result = validate_bid(1_009, 1_000, 1_000, AuctionStatus.ACTIVE)

        assert isinstance(result, ValidationRejected)
        assert result.reason == RejectionReason.BID_TOO_LOW
        assert result.minimum_bid == 1_010

    def test_rejects_below_starting_price(self):
        result = validate_bid(999, None, 1_000, AuctionStatus.ACTIVE)

        assert isinstance(result, ValidationRejected)
        assert result.reason == RejectionReason.BID_TOO_LOW

    def test_accepts_extended_auction(self):
        result = validate_bid(1_010, 1_000, 1_000, AuctionStatus.EXTENDED)
        assert isinstance(result, ValidationAccepted)

    @pytest.mark.parametrize("status", [
        AuctionStatus.SCHEDULED,
        AuctionStatus.ENDED,
        AuctionStatus.SOLD,
        AuctionStatus.NO_SALE,
        AuctionStatus.CANCELLED,
    ])
    def test_rejects_closed_statuses(self, status):
        """입찰 불가 상태는 금액과 무관하게 거절"""
        result = validate_bid(5_000, 1_000, 1_000, status)

        assert isinstance(result, ValidationRejected)
        assert result.reason == RejectionReason.AUCTION_NOT_OPEN

    def test_not_open_checked_before_amount(self):
        result = validate_bid(1, None, 1_000, AuctionStatus.SOLD)
        assert result.reason == RejectionReason.AUCTION_NOT_OPEN

    def test_implausible_amount_boundary(self):
        """최소 입찰가의 100배까지만 허용"""
        accepted = validate_bid(101_000, 1_000, 1_000, AuctionStatus.ACTIVE)
        rejected = validate_bid(101_001, 1_000, 1_000, AuctionStatus.ACTIVE)

        assert isinstance(accepted, ValidationAccepted)
        assert isinstance(rejected, ValidationRejected)
        assert rejected.reason == RejectionReason.AMOUNT_IMPLAUSIBLE
        assert rejected.maximum_plausible == 101_000


class TestReserve:
    """최저 낙찰가 판정 테스트"""

    def test_no_reserve_always_met(self):
        assert is_reserve_met(None, None) is True
        assert is_reserve_met(100, None) is True

    def test_reserve_without_bids(self):
        assert is_reserve_met(None, 5_000) is False

    def test_reserve_boundary(self):
        assert is_reserve_met(4_999, 5_000) is False
        assert is_reserve_met(5_000, 5_000) is True

    def test_result_without_bids_is_no_sale(self):
        assert determine_auction_result(None, None) == AuctionStatus.NO_SALE

    def test_result_sold(self):
        assert determine_auction_result(1_000, None) == AuctionStatus.SOLD
        assert determine_auction_result(25_000, 25_000) == AuctionStatus.SOLD

    def test_result_reserve_not_met(self):
        assert determine_auction_result(24_999, 25_000) == AuctionStatus.NO_SALE
