"""
pytest 설정 및 공통 픽스처 정의
"""
import sys
from pathlib import Path
from typing import AsyncGenerator, List, Tuple

import pytest

# 프로젝트 루트를 Python 경로에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from service.event.event_bus import AuctionEvent, AuctionEventType  # noqa: E402


# =============================================================================
# pytest 설정
# =============================================================================


def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


# =============================================================================
# 데이터베이스 픽스처
# =============================================================================


@pytest.fixture(scope="function")
async def test_db() -> AsyncGenerator[None, None]:
    """
    테스트용 인메모리 SQLite 데이터베이스
    각 테스트 함수마다 새로운 DB 생성
    """
    from tortoise import Tortoise

    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": ["models"]},
        use_tz=True
    )
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


# =============================================================================
# 외부 연동 대역
# =============================================================================


class RecordingPublisher:
    """발행된 이벤트를 기록하는 발행자"""

    def __init__(self):
        self.published: List[Tuple[str, AuctionEvent]] = []

    async def publish(self, topic: str, event: AuctionEvent) -> None:
        self.published.append((topic, event))

    def of_type(self, event_type: AuctionEventType) -> List[AuctionEvent]:
        return [event for _, event in self.published if event.type == event_type]


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def payment_provider():
    """메모리 내 결제사"""
    from service.deposit.payment_provider import SandboxPaymentProvider

    return SandboxPaymentProvider()


# =============================================================================
# 엔진 / 경매 팩토리 픽스처
# =============================================================================


@pytest.fixture
async def engine(test_db, payment_provider, publisher):
    """테스트용 입찰 엔진 (배경 작업은 시작하지 않음)"""
    from service.container import build_engine

    auction_engine = build_engine(payment_provider, publisher)
    yield auction_engine
    await auction_engine.events.drain()


@pytest.fixture
def auction_factory(engine):
    """테스트용 경매 생성 팩토리 (기본: 시작가 1000, T에 마감, 진행 중)"""
    from tests.fixtures.auctions import AUCTION_START, DEFAULT_AUCTION_DATA

    counter = {"listing_id": 0}

    async def _create_auction(**overrides):
        counter["listing_id"] += 1
        data = {**DEFAULT_AUCTION_DATA, **overrides}
        data.setdefault("now", AUCTION_START)
        listing_id = data.pop("listing_id", counter["listing_id"])
        return await engine.store.create_auction(listing_id=listing_id, **data)

    return _create_auction
