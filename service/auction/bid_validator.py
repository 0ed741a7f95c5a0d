"""
입찰가 검증

부작용 없는 순수 함수만 모아둡니다. 입찰자/보증금/DB를 알지 못하므로
단독으로 테스트할 수 있습니다.
"""
import math
from decimal import Decimal
from typing import Optional

from config.auction import AUCTION, AuctionConfig
from exceptions import RejectionReason
from models.auction import AuctionStatus
from service.auction.results import BidValidation, ValidationAccepted, ValidationRejected


def calculate_minimum_bid(
    current_bid: Optional[int],
    starting_price: int,
    config: AuctionConfig = AUCTION
) -> int:
    """
    최소 입찰가 계산

    현재가 + max(현재가의 1%, 최소 증가액), 입찰이 없으면 시작가

    Args:
        current_bid: 현재 최고가 (입찰 없으면 None)
        starting_price: 시작가
        config: 경매 설정

    Returns:
        최소 입찰가 (올림)
    """
    if current_bid is None:
        return starting_price

    percent_increment = Decimal(current_bid) * Decimal(str(config.MIN_BID_INCREMENT_PERCENT)) / 100
    increment = max(percent_increment, Decimal(config.MIN_BID_INCREMENT_AMOUNT))
    return math.ceil(Decimal(current_bid) + increment)


def calculate_suggested_bid(
    current_bid: Optional[int],
    starting_price: int,
    config: AuctionConfig = AUCTION
) -> int:
    """가격 구간별 추천 입찰가 (UX 용도, 유효성 판단에는 쓰지 않음)"""
    if current_bid is None:
        return starting_price

    increment = config.TOP_TIER_INCREMENT
    for max_price, tier_increment in config.BID_INCREMENT_TIERS:
        if current_bid < max_price:
            increment = tier_increment
            break

    # 추천가는 최소 입찰가보다 낮을 수 없음
    return max(current_bid + increment, calculate_minimum_bid(current_bid, starting_price, config))


def validate_bid(
    amount: int,
    current_bid: Optional[int],
    starting_price: int,
    status: AuctionStatus,
    config: AuctionConfig = AUCTION
) -> BidValidation:
    """
    입찰가 검증

    Args:
        amount: 제시 금액
        current_bid: 현재 최고가
        starting_price: 시작가
        status: 경매 상태
        config: 경매 설정

    Returns:
        ValidationAccepted 또는 ValidationRejected
    """
    minimum_bid = calculate_minimum_bid(current_bid, starting_price, config)

    if not status.is_open:
        return ValidationRejected(RejectionReason.AUCTION_NOT_OPEN, minimum_bid)

    if amount < minimum_bid:
        return ValidationRejected(RejectionReason.BID_TOO_LOW, minimum_bid)

    maximum_plausible = minimum_bid * config.IMPLAUSIBLE_BID_MULTIPLIER
    if amount > maximum_plausible:
        return ValidationRejected(
            RejectionReason.AMOUNT_IMPLAUSIBLE, minimum_bid, maximum_plausible
        )

    return ValidationAccepted(
        minimum_bid=minimum_bid,
        minimum_next_bid=calculate_minimum_bid(amount, starting_price, config),
    )


def is_reserve_met(current_bid: Optional[int], reserve_price: Optional[int]) -> bool:
    """최저 낙찰가 충족 여부 (최저가가 없으면 항상 충족)"""
    if reserve_price is None:
        return True
    if current_bid is None:
        return False
    return current_bid >= reserve_price


def determine_auction_result(
    current_bid: Optional[int],
    reserve_price: Optional[int]
) -> AuctionStatus:
    """마감 결과 판정 (SOLD / NO_SALE)"""
    if current_bid is None:
        return AuctionStatus.NO_SALE
    if not is_reserve_met(current_bid, reserve_price):
        return AuctionStatus.NO_SALE
    return AuctionStatus.SOLD
