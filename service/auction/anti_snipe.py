"""
스나이핑 방지 스케줄러

입찰 수락 시점에 마감 시각을 연장할지 판단합니다.
반드시 입찰을 기록하는 트랜잭션 안에서 읽은 current_end_time으로 호출해야 합니다.
"""
from datetime import datetime

from config.auction import AUCTION, AuctionConfig


class AntiSnipeScheduler:
    """마감 연장 판단"""

    def __init__(self, config: AuctionConfig = AUCTION):
        self.config = config

    def should_extend(
        self,
        bid_time: datetime,
        current_end_time: datetime,
        extension_count: int
    ) -> bool:
        """
        연장 여부

        Args:
            bid_time: 입찰 시각
            current_end_time: 트랜잭션 안에서 읽은 현재 마감 시각
            extension_count: 지금까지 연장 횟수

        Returns:
            마감 전 연장 창(window) 안에 들어온 입찰이고 상한 미만이면 True
        """
        if extension_count >= self.config.MAX_EXTENSIONS:
            return False

        time_until_end = current_end_time - bid_time
        return time_until_end.total_seconds() > 0 and time_until_end <= self.config.anti_snipe_window

    def next_end_time(self, current_end_time: datetime) -> datetime:
        return current_end_time + self.config.anti_snipe_extension
