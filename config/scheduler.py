"""배경 작업 주기 설정"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class SchedulerConfig:
    """크론 주기 (초)"""

    ACTIVATE_INTERVAL_SECONDS: int = 60
    """예약 경매 시작 처리 주기"""

    CLOSE_INTERVAL_SECONDS: int = 60
    """마감 경매 종료 처리 주기"""

    DEPOSIT_SWEEP_INTERVAL_SECONDS: int = 3600
    """보증금 안전 해제 스윕 주기"""

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        return cls(
            ACTIVATE_INTERVAL_SECONDS=int(os.getenv("ACTIVATE_INTERVAL_SECONDS") or cls.ACTIVATE_INTERVAL_SECONDS),
            CLOSE_INTERVAL_SECONDS=int(os.getenv("CLOSE_INTERVAL_SECONDS") or cls.CLOSE_INTERVAL_SECONDS),
            DEPOSIT_SWEEP_INTERVAL_SECONDS=int(
                os.getenv("DEPOSIT_SWEEP_INTERVAL_SECONDS") or cls.DEPOSIT_SWEEP_INTERVAL_SECONDS
            ),
        )


SCHEDULER = SchedulerConfig()
