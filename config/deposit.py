"""입찰 보증금 (카드 홀드) 설정"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class DepositConfig:
    """보증금 설정"""

    MIN_DEPOSIT: int = 500
    """최소 보증금"""

    MAX_DEPOSIT: int = 5_000
    """최대 보증금"""

    DEPOSIT_PERCENT: float = 5.0
    """입찰가 대비 보증금 비율 (%)"""

    CURRENCY: str = "eur"

    HOLD_DURATION_DAYS: int = 30
    """홀드 최대 유지 기간 - 경과 시 스윕이 자동 해제"""

    PROVIDER_TIMEOUT_SECONDS: float = 8.0
    """결제사 호출 1회 타임아웃"""

    SWEEP_BATCH_SIZE: int = 100
    """스윕 1회당 최대 처리 건수"""

    @classmethod
    def from_env(cls) -> "DepositConfig":
        return cls(
            MIN_DEPOSIT=int(os.getenv("MIN_DEPOSIT") or cls.MIN_DEPOSIT),
            MAX_DEPOSIT=int(os.getenv("MAX_DEPOSIT") or cls.MAX_DEPOSIT),
            DEPOSIT_PERCENT=float(os.getenv("DEPOSIT_PERCENT") or cls.DEPOSIT_PERCENT),
            CURRENCY=os.getenv("DEPOSIT_CURRENCY") or cls.CURRENCY,
            HOLD_DURATION_DAYS=int(os.getenv("DEPOSIT_HOLD_DURATION_DAYS") or cls.HOLD_DURATION_DAYS),
        )


DEPOSIT = DepositConfig()
