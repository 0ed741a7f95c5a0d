"""
입찰 엔진 설정 상수

모든 매직 넘버와 경매 규칙 관련 상수를 여기서 관리합니다.
각 도메인별 설정은 config/ 하위 모듈에 정의되어 있습니다.
"""
from config.auction import AuctionConfig, AUCTION, DEFAULT_BID_INCREMENT_TIERS
from config.deposit import DepositConfig, DEPOSIT
from config.scheduler import SchedulerConfig, SCHEDULER

__all__ = [
    # auction
    "AuctionConfig", "AUCTION", "DEFAULT_BID_INCREMENT_TIERS",
    # deposit
    "DepositConfig", "DEPOSIT",
    # scheduler
    "SchedulerConfig", "SCHEDULER",
]
