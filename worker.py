# worker.py
import asyncio
import os
import signal

from dotenv import load_dotenv
from tortoise import Tortoise

import logging

from config import AuctionConfig, DepositConfig, SchedulerConfig
from service.container import build_engine
from service.deposit.payment_provider import SandboxPaymentProvider
from service.event.event_bus import EventBus, LoggingPublisher

# 로그 기본 설정
logging.basicConfig(
    level=logging.INFO,  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

load_dotenv()

DATABASE_URL_OVERRIDE = os.getenv('DATABASE_URL_OVERRIDE')
DATABASE_URL = os.getenv('DATABASE_URL')
DATABASE_USER = os.getenv('DATABASE_USER')
DATABASE_PASSWORD = os.getenv('DATABASE_PASSWORD')
DATABASE_PORT = int(os.getenv('DATABASE_PORT') or 0)
DATABASE_TABLE = os.getenv('DATABASE_TABLE')


def database_url() -> str:
    if DATABASE_URL_OVERRIDE:
        return DATABASE_URL_OVERRIDE

    if not DATABASE_URL or not DATABASE_USER or not DATABASE_PASSWORD or not DATABASE_PORT or not DATABASE_TABLE:
        raise RuntimeError("데이터 베이스 설정에 필요한 정보가 부족합니다 .env를 확인해주세요")

    return f"mysql://{DATABASE_USER}:{DATABASE_PASSWORD}@{DATABASE_URL}:{DATABASE_PORT}/{DATABASE_TABLE}"


async def init_db() -> None:
    await Tortoise.init(
        db_url=database_url(),
        modules={"models": ["models"]},
        use_tz=True
    )
    await Tortoise.generate_schemas()


async def main() -> None:
    logging.info("데이터 베이스 연결 시작")
    await init_db()
    logging.info("데이터 베이스 연결")

    # TODO: 실결제 클라이언트가 붙으면 PAYMENT_PROVIDER 값으로 선택
    logging.warning("Using sandbox payment provider")
    engine = build_engine(
        payment_provider=SandboxPaymentProvider(),
        publisher=LoggingPublisher(bus=EventBus()),
        auction_config=AuctionConfig.from_env(),
        deposit_config=DepositConfig.from_env(),
        scheduler_config=SchedulerConfig.from_env(),
    )
    engine.background.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await stop.wait()

    logging.info("종료 중...")
    await engine.shutdown()
    await Tortoise.close_connections()


if __name__ == "__main__":
    asyncio.run(main())
