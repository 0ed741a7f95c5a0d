"""
입찰 엔진 커스텀 예외 클래스 정의

모든 예외는 AuctionEngineError를 상속받아 일관된 에러 처리를 제공합니다.
입찰 거절 사유는 RejectionReason으로, 재시도 가능 여부는 retryable로 구분합니다.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """거절 분류"""
    VALIDATION_ERROR = "validation_error"        # 재시도하지 않음
    PAYMENT_ERROR = "payment_error"              # 보증금 승인 실패
    CONTENTION = "contention"                    # 일시적 - 현재가 재조회 후 재입찰
    PERSISTENCE_FAILURE = "persistence_failure"  # 저장 실패 (치명적)


class RejectionReason(str, Enum):
    """입찰 거절 사유"""
    AUCTION_NOT_FOUND = "auction_not_found"
    AUCTION_NOT_OPEN = "auction_not_open"
    BID_TOO_LOW = "bid_too_low"
    AMOUNT_IMPLAUSIBLE = "amount_implausible"
    SELF_BID = "self_bid"
    PAYMENT_DECLINED = "payment_declined"
    PAYMENT_PROVIDER_UNAVAILABLE = "payment_provider_unavailable"
    DEPOSIT_INSUFFICIENT = "deposit_insufficient"
    CONTENTION = "contention"
    TIMEOUT = "timeout"
    PERSISTENCE_FAILURE = "persistence_failure"

    @property
    def kind(self) -> ErrorKind:
        return _REASON_KIND[self]


_REASON_KIND = {
    RejectionReason.AUCTION_NOT_FOUND: ErrorKind.VALIDATION_ERROR,
    RejectionReason.AUCTION_NOT_OPEN: ErrorKind.VALIDATION_ERROR,
    RejectionReason.BID_TOO_LOW: ErrorKind.VALIDATION_ERROR,
    RejectionReason.AMOUNT_IMPLAUSIBLE: ErrorKind.VALIDATION_ERROR,
    RejectionReason.SELF_BID: ErrorKind.VALIDATION_ERROR,
    RejectionReason.PAYMENT_DECLINED: ErrorKind.PAYMENT_ERROR,
    RejectionReason.PAYMENT_PROVIDER_UNAVAILABLE: ErrorKind.PAYMENT_ERROR,
    RejectionReason.DEPOSIT_INSUFFICIENT: ErrorKind.PAYMENT_ERROR,
    RejectionReason.CONTENTION: ErrorKind.CONTENTION,
    RejectionReason.TIMEOUT: ErrorKind.CONTENTION,
    RejectionReason.PERSISTENCE_FAILURE: ErrorKind.PERSISTENCE_FAILURE,
}


class AuctionEngineError(Exception):
    """입찰 엔진 기본 예외 클래스"""

    reason: Optional[RejectionReason] = None
    retryable: bool = False

    def __init__(self, message: str = "알 수 없는 오류가 발생했습니다"):
        self.message = message
        super().__init__(self.message)


# =============================================================================
# 입찰 검증 (ValidationError) - 호출자에게 그대로 노출, 자동 재시도 없음
# =============================================================================


class BidValidationError(AuctionEngineError):
    """입찰 검증 실패 기본 예외"""
    pass


class AuctionNotFoundError(BidValidationError):
    """경매를 찾을 수 없음"""

    reason = RejectionReason.AUCTION_NOT_FOUND

    def __init__(self, auction_id: int):
        self.auction_id = auction_id
        super().__init__(f"경매를 찾을 수 없습니다: {auction_id}")


class AuctionNotOpenError(BidValidationError):
    """입찰을 받지 않는 경매"""

    reason = RejectionReason.AUCTION_NOT_OPEN

    def __init__(self, auction_id: int, status: str):
        self.auction_id = auction_id
        self.status = status
        super().__init__(f"입찰을 받을 수 없는 경매입니다 (경매 {auction_id}, 상태: {status})")


class BidTooLowError(BidValidationError):
    """최소 입찰가 미달"""

    reason = RejectionReason.BID_TOO_LOW

    def __init__(self, minimum_bid: int, amount: int):
        self.minimum_bid = minimum_bid
        self.amount = amount
        super().__init__(f"입찰가가 너무 낮습니다. (최소: {minimum_bid}, 입찰: {amount})")


class BidAmountImplausibleError(BidValidationError):
    """비정상적으로 큰 입찰가 (오타 방지)"""

    reason = RejectionReason.AMOUNT_IMPLAUSIBLE

    def __init__(self, amount: int, maximum_plausible: int):
        self.amount = amount
        self.maximum_plausible = maximum_plausible
        super().__init__(
            f"입찰가가 비정상적으로 높습니다. 금액을 확인해주세요. "
            f"(입찰: {amount}, 허용 상한: {maximum_plausible})"
        )


class SelfBidError(BidValidationError):
    """판매자 본인 입찰"""

    reason = RejectionReason.SELF_BID

    def __init__(self):
        super().__init__("본인이 등록한 경매에는 입찰할 수 없습니다.")


# =============================================================================
# 결제 (PaymentError)
# =============================================================================


class PaymentError(AuctionEngineError):
    """보증금 관련 기본 예외"""
    pass


class PaymentDeclinedError(PaymentError):
    """결제사가 홀드를 거절함"""

    reason = RejectionReason.PAYMENT_DECLINED

    def __init__(self, message: str = "카드 승인이 거절되었습니다."):
        super().__init__(message)


class PaymentProviderUnavailableError(PaymentError):
    """결제사 응답 없음 - 잠시 후 재시도 가능"""

    reason = RejectionReason.PAYMENT_PROVIDER_UNAVAILABLE
    retryable = True

    def __init__(self, message: str = "결제사에 연결할 수 없습니다. 잠시 후 다시 시도해주세요."):
        super().__init__(message)


class DepositInsufficientError(PaymentError):
    """보증금 부족 (증액 불가 상태)"""

    reason = RejectionReason.DEPOSIT_INSUFFICIENT

    def __init__(self, required: int, current: int):
        self.required = required
        self.current = current
        super().__init__(f"보증금이 부족합니다. (필요: {required}, 보유: {current})")


# =============================================================================
# 경합 / 타임아웃 (Contention) - 현재가를 다시 조회한 뒤 재입찰
# =============================================================================


class ContentionError(AuctionEngineError):
    """동시 입찰 충돌 재시도 횟수 초과"""

    reason = RejectionReason.CONTENTION
    retryable = True

    def __init__(self, auction_id: int, attempts: int):
        self.auction_id = auction_id
        self.attempts = attempts
        super().__init__(
            f"입찰이 몰려 처리하지 못했습니다. 현재가를 확인 후 다시 입찰해주세요. "
            f"(경매 {auction_id}, 시도 {attempts}회)"
        )


class BidTimeoutError(AuctionEngineError):
    """입찰 처리 단계 타임아웃"""

    reason = RejectionReason.TIMEOUT
    retryable = True

    def __init__(self, stage: str, timeout_seconds: float):
        self.stage = stage
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{stage} 단계가 {timeout_seconds}초 안에 끝나지 않았습니다.")


# =============================================================================
# 저장소 (PersistenceFailure)
# =============================================================================


class PersistenceFailureError(AuctionEngineError):
    """트랜잭션/커밋 실패 (경합과 무관)"""

    reason = RejectionReason.PERSISTENCE_FAILURE

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} 저장에 실패했습니다{detail}")


# =============================================================================
# 경매 생명주기 (관리/스케줄러)
# =============================================================================


class InvalidAuctionTransitionError(AuctionEngineError):
    """허용되지 않는 경매 상태 전이"""

    def __init__(self, auction_id: int, current_status: str, target_status: str):
        self.auction_id = auction_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"경매 {auction_id}: {current_status} 상태에서 {target_status}(으)로 변경할 수 없습니다."
        )


class InvalidAuctionConfigError(AuctionEngineError):
    """경매 생성 파라미터 오류"""

    def __init__(self, reason: str):
        self.detail = reason
        super().__init__(f"경매 설정이 올바르지 않습니다: {reason}")
