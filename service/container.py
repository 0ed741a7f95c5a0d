"""
엔진 조립

결제사 클라이언트, 이벤트 발행자, 서비스 객체를 프로세스 시작 시 한 번 만들어 주입합니다.
전역 싱글톤 없이 build_engine()이 돌려준 AuctionEngine을 통해서만 접근합니다.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from config.auction import AUCTION, AuctionConfig
from config.deposit import DEPOSIT, DepositConfig
from config.scheduler import SCHEDULER, SchedulerConfig
from models.bid import Bid
from models.deposit import Deposit
from service.auction.anti_snipe import AntiSnipeScheduler
from service.auction.auction_closer import AuctionCloser
from service.auction.bidding_service import BiddingService
from service.auction.locks import KeyedLock
from service.auction.results import AuctionSnapshot, BidPage, BidResult
from service.auction.state_store import AuctionStateStore
from service.deposit.deposit_manager import DepositManager
from service.deposit.payment_provider import PaymentProvider
from service.event.event_bus import EventDispatcher, EventPublisher
from service.scheduler.background_tasks import BackgroundTasks

logger = logging.getLogger(__name__)


@dataclass
class AuctionEngine:
    """입찰 엔진 (외부에서 쓰는 진입점 모음)"""

    store: AuctionStateStore
    deposits: DepositManager
    bidding: BiddingService
    closer: AuctionCloser
    events: EventDispatcher
    background: BackgroundTasks

    async def place_bid(
        self,
        auction_id: int,
        bidder_id: int,
        amount: int,
        now: Optional[datetime] = None
    ) -> BidResult:
        return await self.bidding.place_bid(auction_id, bidder_id, amount, now=now)

    async def create_auction(self, listing_id: int, seller_id: int, starting_price: int, **kwargs) -> AuctionSnapshot:
        return await self.store.create_auction(listing_id, seller_id, starting_price, **kwargs)

    async def get_auction(self, auction_id: int) -> AuctionSnapshot:
        return await self.store.get_snapshot(auction_id)

    async def get_bid_history(self, auction_id: int, limit: int = 50) -> List[Bid]:
        return await self.store.get_bid_history(auction_id, limit)

    async def get_user_bids(self, user_id: int, page: int = 1, limit: int = 20) -> BidPage:
        return await self.store.get_user_bids(user_id, page, limit)

    async def get_user_deposits(self, user_id: int) -> List[Deposit]:
        return await self.deposits.get_user_deposits(user_id)

    async def shutdown(self) -> None:
        """배경 작업 정지 후 남은 이벤트 발행 대기"""
        await self.background.stop()
        if self.events.pending_count:
            logger.info(f"Waiting for {self.events.pending_count} pending events")
        await self.events.drain()


def build_engine(
    payment_provider: PaymentProvider,
    publisher: EventPublisher,
    auction_config: AuctionConfig = AUCTION,
    deposit_config: DepositConfig = DEPOSIT,
    scheduler_config: SchedulerConfig = SCHEDULER
) -> AuctionEngine:
    """
    엔진 생성

    Args:
        payment_provider: 카드 홀드 결제사 클라이언트
        publisher: 실시간 이벤트 발행자
        auction_config: 경매 설정
        deposit_config: 보증금 설정
        scheduler_config: 배경 작업 주기

    Returns:
        조립된 AuctionEngine (배경 작업은 아직 시작하지 않음)
    """
    events = EventDispatcher(publisher)
    store = AuctionStateStore(
        anti_snipe=AntiSnipeScheduler(auction_config),
        locks=KeyedLock(),
        config=auction_config
    )
    deposits = DepositManager(payment_provider, deposit_config, KeyedLock())
    bidding = BiddingService(store, deposits, events, auction_config)
    closer = AuctionCloser(store, deposits, events)
    background = BackgroundTasks(closer, deposits, scheduler_config)

    logger.info("Auction engine built")
    return AuctionEngine(
        store=store,
        deposits=deposits,
        bidding=bidding,
        closer=closer,
        events=events,
        background=background,
    )
