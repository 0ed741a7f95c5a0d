"""
테스트용 경매 픽스처 데이터
"""
from datetime import datetime, timedelta, timezone
from typing import Any

# 경매 마감 기준 시각 (T)
AUCTION_END = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
AUCTION_START = AUCTION_END - timedelta(days=7)

SELLER_ID = 1
BIDDER_A = 101
BIDDER_B = 102
BIDDER_C = 103

# 기본 경매 (시작가 1000, 최저가 없음)
DEFAULT_AUCTION_DATA: dict[str, Any] = {
    "seller_id": SELLER_ID,
    "starting_price": 1_000,
    "reserve_price": None,
    "start_time": AUCTION_START,
    "duration_days": 7,
}

# 최저 낙찰가가 있는 경매
RESERVE_AUCTION_DATA: dict[str, Any] = {
    **DEFAULT_AUCTION_DATA,
    "starting_price": 10_000,
    "reserve_price": 25_000,
}


def before_end(**kwargs) -> datetime:
    """마감 기준 상대 시각 (예: before_end(seconds=30) → T-30s)"""
    return AUCTION_END - timedelta(**kwargs)
