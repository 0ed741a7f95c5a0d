"""
경매 생명주기 통합 테스트 (생성, 시작, 마감, 취소)
"""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from exceptions import (
    AuctionNotFoundError,
    InvalidAuctionConfigError,
    InvalidAuctionTransitionError,
    RejectionReason,
)
from models.auction import Auction, AuctionStatus
from models.deposit import Deposit, DepositStatus
from service.event.event_bus import AuctionEventType
from service.scheduler.background_tasks import BackgroundTasks
from tests.fixtures.auctions import (
    AUCTION_END,
    AUCTION_START,
    BIDDER_A,
    BIDDER_B,
    RESERVE_AUCTION_DATA,
    before_end,
)

pytestmark = pytest.mark.integration

AFTER_END = AUCTION_END + timedelta(seconds=1)


class TestCreateAuction:
    """경매 생성 테스트"""

    @pytest.mark.asyncio
    async def test_active_when_started(self, auction_factory):
        auction = await auction_factory()

        assert auction.status == AuctionStatus.ACTIVE
        assert auction.current_end_time == AUCTION_END
        assert auction.original_end_time == AUCTION_END
        assert auction.version == 0
        assert auction.current_bid is None
        assert auction.reserve_met is True

    @pytest.mark.asyncio
    async def test_scheduled_when_start_in_future(self, auction_factory):
        auction = await auction_factory(start_time=AUCTION_START + timedelta(days=1))

        assert auction.status == AuctionStatus.SCHEDULED
        assert auction.current_end_time == AUCTION_END + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_reserve_not_met_initially(self, auction_factory):
        auction = await auction_factory(**RESERVE_AUCTION_DATA)
        assert auction.reserve_met is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration_days", [2, 15])
    async def test_duration_bounds(self, auction_factory, duration_days):
        """기간은 3~14일"""
        with pytest.raises(InvalidAuctionConfigError):
            await auction_factory(duration_days=duration_days)

    @pytest.mark.asyncio
    async def test_invalid_starting_price(self, auction_factory):
        with pytest.raises(InvalidAuctionConfigError):
            await auction_factory(starting_price=0)

    @pytest.mark.asyncio
    async def test_one_auction_per_listing(self, auction_factory):
        await auction_factory(listing_id=77)

        with pytest.raises(InvalidAuctionConfigError):
            await auction_factory(listing_id=77)


class TestActivation:
    """예약 경매 시작 테스트"""

    @pytest.mark.asyncio
    async def test_activate_due(self, engine, auction_factory, publisher):
        start = AUCTION_START + timedelta(days=1)
        auction = await auction_factory(start_time=start)

        assert await engine.closer.activate_due_auctions(now=start - timedelta(minutes=1)) == []

        activated = await engine.closer.activate_due_auctions(now=start)
        await engine.events.drain()

        assert [snapshot.id for snapshot in activated] == [auction.id]
        assert activated[0].status == AuctionStatus.ACTIVE
        assert activated[0].version == 1
        assert len(publisher.of_type(AuctionEventType.AUCTION_STARTED)) == 1

        # 두 번째 호출은 아무것도 하지 않음
        assert await engine.closer.activate_due_auctions(now=start) == []

    @pytest.mark.asyncio
    async def test_bid_before_activation_rejected(self, engine, auction_factory):
        start = AUCTION_START + timedelta(days=1)
        auction = await auction_factory(start_time=start)

        result = await engine.place_bid(auction.id, BIDDER_A, 1_000, now=start + timedelta(minutes=5))

        assert result.reason == RejectionReason.AUCTION_NOT_OPEN


class TestClosing:
    """경매 마감 테스트"""

    @pytest.mark.asyncio
    async def test_sold(self, engine, auction_factory, publisher):
        """최고 입찰자 낙찰, 보증금 확정 / 나머지 해제"""
        auction = await auction_factory()
        await engine.place_bid(auction.id, BIDDER_A, 1_000, now=before_end(hours=2))
        await engine.place_bid(auction.id, BIDDER_B, 1_200, now=before_end(hours=1))

        closed = await engine.closer.close_due_auctions(now=AFTER_END)
        await engine.events.drain()

        assert len(closed) == 1
        result = closed[0]
        assert result.sold is True
        assert result.winner_id == BIDDER_B
        assert result.final_price == 1_200

        stored = await Auction.get(id=auction.id)
        assert stored.status == AuctionStatus.SOLD
        assert stored.winner_id == BIDDER_B
        assert stored.winning_bid_id == stored.leading_bid_id
        assert stored.ended_at == AFTER_END

        winner_deposit = await Deposit.get(user_id=BIDDER_B, auction_id=auction.id)
        loser_deposit = await Deposit.get(user_id=BIDDER_A, auction_id=auction.id)
        assert winner_deposit.status == DepositStatus.CAPTURED
        assert loser_deposit.status == DepositStatus.RELEASED

        ended = publisher.of_type(AuctionEventType.AUCTION_ENDED)
        assert len(ended) == 1
        assert ended[0].data["status"] == "sold"
        assert ended[0].data["finalPrice"] == 1_200

    @pytest.mark.asyncio
    async def test_reserve_not_met(self, engine, auction_factory):
        """최저가 미달 → 유찰, 모든 보증금 해제"""
        auction = await auction_factory(**RESERVE_AUCTION_DATA)
        await engine.place_bid(auction.id, BIDDER_A, 10_000, now=before_end(hours=1))

        result = await engine.closer.close_auction(auction.id, now=AFTER_END)

        assert result.sold is False
        assert result.auction.status == AuctionStatus.NO_SALE
        assert result.winner_id is None
        assert result.final_price is None

        deposit = await Deposit.get(user_id=BIDDER_A, auction_id=auction.id)
        assert deposit.status == DepositStatus.RELEASED

    @pytest.mark.asyncio
    async def test_no_bids(self, engine, auction_factory):
        auction = await auction_factory()

        result = await engine.closer.close_auction(auction.id, now=AFTER_END)

        assert result.auction.status == AuctionStatus.NO_SALE

    @pytest.mark.asyncio
    async def test_idempotent(self, engine, auction_factory, publisher):
        """중복 마감 호출은 아무것도 바꾸지 않음"""
        auction = await auction_factory()
        await engine.place_bid(auction.id, BIDDER_A, 1_000, now=before_end(hours=1))

        first = await engine.closer.close_due_auctions(now=AFTER_END)
        second = await engine.closer.close_due_auctions(now=AFTER_END + timedelta(minutes=1))
        direct = await engine.closer.close_auction(auction.id, now=AFTER_END)
        await engine.events.drain()

        assert len(first) == 1
        assert second == []
        assert direct is None
        assert len(publisher.of_type(AuctionEventType.AUCTION_ENDED)) == 1

        stored = await Auction.get(id=auction.id)
        assert stored.status == AuctionStatus.SOLD
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_extended_auction_closes_at_new_end(self, engine, auction_factory):
        """연장된 경매는 원래 마감 시각에 닫히지 않음"""
        auction = await auction_factory()
        await engine.place_bid(auction.id, BIDDER_A, 1_000, now=before_end(seconds=30))

        assert await engine.closer.close_due_auctions(now=AFTER_END) == []

        late_bid = await engine.place_bid(auction.id, BIDDER_B, 1_100, now=AFTER_END)
        assert late_bid.accepted is True
        assert late_bid.extension_count == 2

        closed = await engine.closer.close_due_auctions(now=AUCTION_END + timedelta(minutes=5))
        assert [result.winner_id for result in closed] == [BIDDER_B]

    @pytest.mark.asyncio
    async def test_bid_after_close_rejected(self, engine, auction_factory):
        auction = await auction_factory()
        await engine.closer.close_auction(auction.id, now=AFTER_END)

        result = await engine.place_bid(auction.id, BIDDER_A, 1_000, now=before_end(minutes=10))

        assert result.reason == RejectionReason.AUCTION_NOT_OPEN

    @pytest.mark.asyncio
    async def test_unknown_auction(self, engine):
        with pytest.raises(AuctionNotFoundError):
            await engine.closer.close_auction(9_999, now=AFTER_END)


class TestCancellation:
    """관리자 취소 테스트"""

    @pytest.mark.asyncio
    async def test_cancel_releases_every_hold(self, engine, auction_factory, payment_provider):
        auction = await auction_factory()
        await engine.place_bid(auction.id, BIDDER_A, 1_000, now=before_end(hours=2))
        await engine.place_bid(auction.id, BIDDER_B, 1_200, now=before_end(hours=1))

        snapshot = await engine.closer.cancel_auction(auction.id, "판매자 요청", now=before_end(minutes=30))

        assert snapshot.status == AuctionStatus.CANCELLED
        assert payment_provider.active_holds() == []

        stored = await Auction.get(id=auction.id)
        assert stored.cancel_reason == "판매자 요청"

    @pytest.mark.asyncio
    async def test_cannot_cancel_finished(self, engine, auction_factory):
        auction = await auction_factory()
        await engine.closer.close_auction(auction.id, now=AFTER_END)

        with pytest.raises(InvalidAuctionTransitionError):
            await engine.closer.cancel_auction(auction.id, "too late")


class TestQueries:
    """조회 테스트"""

    @pytest.mark.asyncio
    async def test_bid_history_limit(self, engine, auction_factory):
        auction = await auction_factory()
        amount = 1_000
        for i in range(5):
            result = await engine.place_bid(
                auction.id, BIDDER_A if i % 2 == 0 else BIDDER_B, amount, now=before_end(hours=5 - i)
            )
            amount = result.minimum_next_bid

        history = await engine.get_bid_history(auction.id, limit=3)

        assert len(history) == 3
        assert history[0].amount > history[1].amount > history[2].amount
        assert history[0].is_winning is True

    @pytest.mark.asyncio
    async def test_user_bids_paginated(self, engine, auction_factory):
        """내 입찰 기록 (최신순, 페이지 단위)"""
        auctions = [await auction_factory() for _ in range(3)]
        for i, auction in enumerate(auctions):
            await engine.place_bid(auction.id, BIDDER_A, 1_000, now=before_end(hours=3 - i))
        await engine.place_bid(auctions[0].id, BIDDER_B, 1_100, now=before_end(minutes=30))

        first_page = await engine.get_user_bids(BIDDER_A, page=1, limit=2)
        second_page = await engine.get_user_bids(BIDDER_A, page=2, limit=2)

        assert first_page.total == 3
        assert first_page.total_pages == 2
        assert [bid.auction_id for bid in first_page.bids] == [auctions[2].id, auctions[1].id]
        assert [bid.auction_id for bid in second_page.bids] == [auctions[0].id]

    @pytest.mark.asyncio
    async def test_get_auction(self, engine, auction_factory):
        auction = await auction_factory()

        snapshot = await engine.get_auction(auction.id)

        assert snapshot == auction


class TestBackgroundTasks:
    """배경 작업 테스트"""

    @pytest.mark.asyncio
    async def test_job_errors_are_logged_not_raised(self):
        closer = AsyncMock()
        closer.close_due_auctions.side_effect = RuntimeError("db down")
        deposits = AsyncMock()
        deposits.sweep.side_effect = RuntimeError("provider down")

        tasks = BackgroundTasks(closer, deposits)

        await tasks.close_auctions()
        await tasks.sweep_deposits()

        closer.close_due_auctions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        closer = AsyncMock()
        closer.activate_due_auctions.return_value = []
        closer.close_due_auctions.return_value = []
        deposits = AsyncMock()
        deposits.sweep.return_value = 0

        tasks = BackgroundTasks(closer, deposits)
        tasks.start()
        assert tasks.running

        await tasks.stop()

        assert not tasks.running
