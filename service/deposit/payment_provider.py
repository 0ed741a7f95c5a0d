"""
결제사 (카드 홀드) 인터페이스

보증금은 수동 캡처(manual capture) 방식의 카드 승인 홀드입니다.
엔진은 PaymentProvider 프로토콜에만 의존하며, 실제 클라이언트는 프로세스 시작 시 주입합니다.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Set

from exceptions import PaymentDeclinedError, PaymentProviderUnavailableError

logger = logging.getLogger(__name__)


class PaymentProvider(Protocol):
    """
    카드 홀드 결제사

    authorize 실패는 반드시 두 가지로 구분해서 올려야 합니다.
        - PaymentDeclinedError: 카드/한도 문제 (재시도 무의미)
        - PaymentProviderUnavailableError: 결제사 장애, 네트워크 (재시도 가능)
    """

    async def authorize(
        self,
        user_id: int,
        amount: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """홀드 생성 후 hold_reference 반환"""
        ...

    async def capture(self, hold_reference: str) -> None:
        ...

    async def cancel(self, hold_reference: str) -> None:
        ...


@dataclass
class SandboxHold:
    """샌드박스 홀드 기록"""
    reference: str
    user_id: int
    amount: int
    currency: str
    status: str = "requires_capture"


class SandboxPaymentProvider:
    """
    메모리 내 결제사 (개발/테스트용)

    Attributes:
        declined_users: 항상 거절할 사용자 ID
        available: False면 모든 호출이 PaymentProviderUnavailableError
        latency: 호출마다 지연 (초)
    """

    def __init__(
        self,
        declined_users: Optional[Set[int]] = None,
        available: bool = True,
        latency: float = 0.0
    ):
        self.declined_users: Set[int] = set(declined_users or ())
        self.available = available
        self.latency = latency
        self.holds: Dict[str, SandboxHold] = {}
        self.fail_cancel: Set[str] = set()

    async def _round_trip(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if not self.available:
            raise PaymentProviderUnavailableError()

    async def authorize(
        self,
        user_id: int,
        amount: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        await self._round_trip()

        if user_id in self.declined_users:
            raise PaymentDeclinedError(f"카드 승인이 거절되었습니다. (사용자 {user_id})")

        reference = f"pi_sandbox_{uuid.uuid4().hex[:24]}"
        self.holds[reference] = SandboxHold(reference, user_id, amount, currency)
        logger.debug(f"Sandbox hold {reference}: {amount} {currency} for user {user_id} {metadata or {}}")
        return reference

    async def capture(self, hold_reference: str) -> None:
        await self._round_trip()
        self._get_hold(hold_reference).status = "succeeded"

    async def cancel(self, hold_reference: str) -> None:
        await self._round_trip()
        if hold_reference in self.fail_cancel:
            raise PaymentProviderUnavailableError(f"홀드 해제 실패: {hold_reference}")
        self._get_hold(hold_reference).status = "canceled"

    def _get_hold(self, hold_reference: str) -> SandboxHold:
        hold = self.holds.get(hold_reference)
        if hold is None:
            raise PaymentDeclinedError(f"존재하지 않는 홀드입니다: {hold_reference}")
        return hold

    def active_holds(self, user_id: Optional[int] = None) -> list:
        """아직 캡처/해제되지 않은 홀드"""
        return [
            hold for hold in self.holds.values()
            if hold.status == "requires_capture" and (user_id is None or hold.user_id == user_id)
        ]
