"""경매 입찰 엔진 설정 (입찰 단위, 스나이핑 방지, 경매 기간)"""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Tuple


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


# (상한가, 추천 증가액) - 상한가 미만 구간에 적용
DEFAULT_BID_INCREMENT_TIERS: Tuple[Tuple[int, int], ...] = (
    (1_000, 50),
    (5_000, 100),
    (10_000, 250),
    (25_000, 500),
    (50_000, 1_000),
    (100_000, 2_500),
    (250_000, 5_000),
)


@dataclass(frozen=True)
class AuctionConfig:
    """경매 설정"""

    # =========================================================================
    # 스나이핑 방지
    # =========================================================================

    ANTI_SNIPE_WINDOW_MINUTES: int = 2
    """마감 몇 분 전 입찰부터 연장하는지"""

    ANTI_SNIPE_EXTENSION_MINUTES: int = 2
    """1회 연장 시간 (분)"""

    MAX_EXTENSIONS: int = 10
    """최대 연장 횟수"""

    # =========================================================================
    # 입찰 단위
    # =========================================================================

    MIN_BID_INCREMENT_PERCENT: float = 1.0
    """최소 증가율 (현재가 대비 %)"""

    MIN_BID_INCREMENT_AMOUNT: int = 10
    """최소 증가액 (절대값)"""

    IMPLAUSIBLE_BID_MULTIPLIER: int = 100
    """최소 입찰가의 몇 배를 넘으면 오타로 간주하는지"""

    BID_INCREMENT_TIERS: Tuple[Tuple[int, int], ...] = DEFAULT_BID_INCREMENT_TIERS
    """가격 구간별 추천 증가액 (UX 용도, 유효성과 무관)"""

    TOP_TIER_INCREMENT: int = 10_000
    """마지막 구간 이상일 때 추천 증가액"""

    # =========================================================================
    # 동시성 / 타임아웃
    # =========================================================================

    MAX_BID_RETRIES: int = 3
    """버전 충돌 시 재시도 횟수"""

    DEPOSIT_CHECK_TIMEOUT_SECONDS: float = 20.0
    """보증금 확인 타임아웃 (승인 + 기존 홀드 취소, 결제사 호출 2회분 이상)"""

    COMMIT_TIMEOUT_SECONDS: float = 5.0
    """입찰 커밋 (락 대기 + 트랜잭션) 타임아웃"""

    # =========================================================================
    # 경매 기간
    # =========================================================================

    DEFAULT_DURATION_DAYS: int = 7
    MIN_DURATION_DAYS: int = 3
    MAX_DURATION_DAYS: int = 14

    @property
    def anti_snipe_window(self) -> timedelta:
        return timedelta(minutes=self.ANTI_SNIPE_WINDOW_MINUTES)

    @property
    def anti_snipe_extension(self) -> timedelta:
        return timedelta(minutes=self.ANTI_SNIPE_EXTENSION_MINUTES)

    @classmethod
    def from_env(cls) -> "AuctionConfig":
        """환경변수로 덮어쓴 설정 생성"""
        return cls(
            ANTI_SNIPE_WINDOW_MINUTES=_env_int("ANTI_SNIPING_WINDOW", cls.ANTI_SNIPE_WINDOW_MINUTES),
            ANTI_SNIPE_EXTENSION_MINUTES=_env_int("ANTI_SNIPING_EXTENSION", cls.ANTI_SNIPE_EXTENSION_MINUTES),
            MAX_EXTENSIONS=_env_int("ANTI_SNIPING_MAX_EXTENSIONS", cls.MAX_EXTENSIONS),
            MIN_BID_INCREMENT_PERCENT=_env_float("MIN_BID_INCREMENT_PERCENT", cls.MIN_BID_INCREMENT_PERCENT),
            MIN_BID_INCREMENT_AMOUNT=_env_int("MIN_BID_INCREMENT_AMOUNT", cls.MIN_BID_INCREMENT_AMOUNT),
            MAX_BID_RETRIES=_env_int("BID_MAX_RETRIES", cls.MAX_BID_RETRIES),
            DEFAULT_DURATION_DAYS=_env_int("AUCTION_DEFAULT_DURATION", cls.DEFAULT_DURATION_DAYS),
            MIN_DURATION_DAYS=_env_int("AUCTION_MIN_DURATION", cls.MIN_DURATION_DAYS),
            MAX_DURATION_DAYS=_env_int("AUCTION_MAX_DURATION", cls.MAX_DURATION_DAYS),
        )


AUCTION = AuctionConfig()
