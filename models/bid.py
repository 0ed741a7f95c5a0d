"""
입찰 기록 모델

경매에 대한 입찰 정보를 관리합니다. 생성 후 금액은 변하지 않습니다.
"""
from tortoise import fields, models


class Bid(models.Model):
    """
    입찰 기록

    - 경매당 is_winning=True 인 입찰은 최대 1건
    - is_valid는 관리자 무효화로만 False가 됨 (엔진은 건드리지 않음)
    """

    id = fields.BigIntField(pk=True)

    auction = fields.ForeignKeyField(
        "models.Auction",
        related_name="bids",
        on_delete=fields.CASCADE
    )

    bidder_id = fields.BigIntField()
    # 경매 내 익명 번호 ("Bidder 3"), 같은 입찰자는 항상 같은 번호
    bidder_number = fields.IntField(default=0)
    amount = fields.BigIntField()
    created_at = fields.DatetimeField()

    is_winning = fields.BooleanField(default=False)
    is_valid = fields.BooleanField(default=True)

    # 이 입찰로 마감이 연장되었는지
    triggered_extension = fields.BooleanField(default=False)

    class Meta:
        table = "bid"
        indexes = (
            ("auction", "created_at"),   # 입찰 기록 조회
            ("auction", "is_winning"),   # 최고 입찰 조회
            ("bidder_id", "created_at"),  # 내 입찰 조회
            ("auction", "bidder_id"),    # 입찰자 번호 조회
        )

    def __str__(self) -> str:
        return f"Bid {self.id}: {self.amount} on Auction {self.auction_id}"
