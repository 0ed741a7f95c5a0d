"""배경 작업 - 예약 경매 시작, 마감, 보증금 스윕"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List

from config.scheduler import SCHEDULER, SchedulerConfig
from service.auction.auction_closer import AuctionCloser
from service.deposit.deposit_manager import DepositManager

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """주기적 배경 작업 관리"""

    def __init__(
        self,
        closer: AuctionCloser,
        deposits: DepositManager,
        config: SchedulerConfig = SCHEDULER
    ):
        self.closer = closer
        self.deposits = deposits
        self.config = config
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self) -> None:
        """작업 시작 (이미 실행 중이면 무시)"""
        if self._tasks:
            return

        self._start_loop("activate_auctions", self.activate_auctions, self.config.ACTIVATE_INTERVAL_SECONDS)
        self._start_loop("close_auctions", self.close_auctions, self.config.CLOSE_INTERVAL_SECONDS)
        self._start_loop("deposit_sweep", self.sweep_deposits, self.config.DEPOSIT_SWEEP_INTERVAL_SECONDS)
        logger.info("Background tasks started")

    async def stop(self) -> None:
        """작업 정지"""
        tasks: List[asyncio.Task] = list(self._tasks.values())
        self._tasks.clear()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Background tasks stopped")

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def _start_loop(self, name: str, job: Callable[[], Awaitable[None]], interval: float) -> None:
        async def _runner():
            while True:
                await job()
                await asyncio.sleep(interval)

        self._tasks[name] = asyncio.create_task(_runner(), name=name)

    # =========================================================================
    # 작업 (각 1회 실행, 예외는 로그만 남기고 다음 주기에 재시도)
    # =========================================================================

    async def activate_auctions(self) -> None:
        """예약 경매 시작 (1분마다)"""
        try:
            await self.closer.activate_due_auctions()
        except Exception as e:
            logger.error(f"Failed to activate due auctions: {e}", exc_info=True)

    async def close_auctions(self) -> None:
        """마감 경매 처리 (1분마다)"""
        try:
            await self.closer.close_due_auctions()
        except Exception as e:
            logger.error(f"Failed to close due auctions: {e}", exc_info=True)

    async def sweep_deposits(self) -> None:
        """오래된/해제 실패 보증금 정리 (1시간마다)"""
        try:
            released = await self.deposits.sweep()

            if released > 0:
                logger.info(f"🧹 Released {released} stale deposits")
            else:
                logger.debug("No stale deposits to release")

        except Exception as e:
            logger.error(f"Failed to sweep deposits: {e}", exc_info=True)
