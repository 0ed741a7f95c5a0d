from models.auction import Auction, AuctionStatus
from models.bid import Bid
from models.deposit import Deposit, DepositStatus

__all__ = [
    "Auction", "AuctionStatus",
    "Bid",
    "Deposit", "DepositStatus",
]
