"""
입찰 보증금 모델

(사용자, 경매) 쌍마다 하나의 카드 홀드를 관리합니다.
상태 변경은 DepositManager만 수행합니다.
"""
from enum import Enum

from tortoise import fields, models


class DepositStatus(str, Enum):
    """보증금 상태"""
    HELD = "held"            # 홀드 중
    CAPTURED = "captured"    # 낙찰자 보증금 확정
    RELEASED = "released"    # 해제됨


class Deposit(models.Model):
    """
    입찰 보증금 (카드 홀드)

    - 첫 입찰 시 생성, 더 큰 금액이 필요하면 재발급
    - 낙찰자만 CAPTURED, 나머지는 마감 즉시 RELEASED
    - release_requested_at이 있는데 HELD면 해제 실패 건 (스윕이 재시도)
    """

    id = fields.BigIntField(pk=True)

    user_id = fields.BigIntField()
    auction = fields.ForeignKeyField(
        "models.Auction",
        related_name="deposits",
        on_delete=fields.CASCADE
    )

    status = fields.CharEnumField(DepositStatus, default=DepositStatus.HELD)
    amount = fields.BigIntField()
    currency = fields.CharField(max_length=3, default="EUR")

    # 결제사 홀드 참조
    hold_reference = fields.CharField(max_length=255)

    held_at = fields.DatetimeField()
    captured_at = fields.DatetimeField(null=True)
    released_at = fields.DatetimeField(null=True)
    release_requested_at = fields.DatetimeField(null=True)
    last_error = fields.TextField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "deposit"
        unique_together = (("user_id", "auction"),)
        indexes = (
            ("status", "held_at"),  # 스윕
            ("auction", "status"),  # 마감 시 일괄 해제
        )

    def __str__(self) -> str:
        return f"Deposit {self.id}: {self.amount} ({self.status}) user {self.user_id}"
