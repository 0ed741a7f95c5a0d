"""
입찰 보증금 관리자

(사용자, 경매) 쌍마다 하나의 카드 홀드를 유지합니다.
같은 쌍에 대한 호출은 KeyedLock으로 직렬화됩니다.

홀드 생명주기:
    첫 입찰 → authorize (HELD)
    필요 금액 증가 → 새 금액으로 authorize 후 기존 홀드 cancel
    마감 → 낙찰자 capture (CAPTURED), 나머지 cancel (RELEASED)
    해제 실패 → release_requested_at 기록, 스윕이 재시도
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Union

from tortoise.exceptions import BaseORMException
from tortoise.expressions import Q

from config.deposit import DEPOSIT, DepositConfig
from exceptions import (
    AuctionNotOpenError,
    DepositInsufficientError,
    PaymentError,
    PaymentProviderUnavailableError,
    PersistenceFailureError,
    RejectionReason,
)
from models.auction import Auction, AuctionStatus
from models.deposit import Deposit, DepositStatus
from service.auction.locks import KeyedLock
from service.deposit.payment_provider import PaymentProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eligible:
    """입찰 가능 (충분한 홀드 보유)"""
    deposit_id: int
    amount: int
    newly_authorized: bool = False


@dataclass(frozen=True)
class Ineligible:
    """입찰 불가"""
    error: PaymentError

    @property
    def reason(self) -> RejectionReason:
        return self.error.reason

    @property
    def retryable(self) -> bool:
        return self.error.retryable


Eligibility = Union[Eligible, Ineligible]


class DepositManager:
    """보증금 홀드 관리"""

    def __init__(
        self,
        provider: PaymentProvider,
        config: DepositConfig = DEPOSIT,
        locks: Optional[KeyedLock] = None
    ):
        self.provider = provider
        self.config = config
        self.locks = locks or KeyedLock()

    def calculate_deposit_amount(self, bid_amount: int) -> int:
        """
        필요 보증금 계산

        입찰가의 DEPOSIT_PERCENT%를 [MIN_DEPOSIT, MAX_DEPOSIT] 범위로 자름

        Args:
            bid_amount: 입찰가

        Returns:
            필요 보증금 (올림)
        """
        percent_amount = math.ceil(Decimal(bid_amount) * Decimal(str(self.config.DEPOSIT_PERCENT)) / 100)
        return max(self.config.MIN_DEPOSIT, min(percent_amount, self.config.MAX_DEPOSIT))

    # =========================================================================
    # 입찰 자격
    # =========================================================================

    async def ensure_eligible(
        self,
        user_id: int,
        auction_id: int,
        bid_amount: int,
        now: Optional[datetime] = None
    ) -> Eligibility:
        """
        입찰 자격 확인 (필요하면 홀드 생성/증액)

        Args:
            user_id: 입찰자 ID
            auction_id: 경매 ID
            bid_amount: 입찰가
            now: 현재 시각 (테스트용)

        Returns:
            Eligible 또는 Ineligible

        Raises:
            AuctionNotOpenError: 홀드 도중 경매가 마감/취소됨 (새 홀드는 해제됨)
            PersistenceFailureError: 홀드는 성공했지만 기록 실패 (새 홀드는 취소됨)
        """
        now = now or datetime.now(timezone.utc)
        required = self.calculate_deposit_amount(bid_amount)

        # 결제사 승인 후 호출자가 타임아웃으로 빠지면 기록 없는 홀드가 남으므로
        # 승인 → 기록 → 기존 홀드 취소는 호출자와 분리해서 끝까지 진행
        task = asyncio.ensure_future(self._ensure_eligible(user_id, auction_id, required, now))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(self._log_detached_check)
            raise

    @staticmethod
    def _log_detached_check(task: "asyncio.Future[Eligibility]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Deposit check failed after caller timed out: {error!r}")
        else:
            logger.info(f"Deposit check finished after caller timed out: {task.result()}")

    async def _ensure_eligible(
        self,
        user_id: int,
        auction_id: int,
        required: int,
        now: datetime
    ) -> Eligibility:
        async with self.locks.hold((user_id, auction_id)):
            try:
                deposit = await Deposit.get_or_none(user_id=user_id, auction_id=auction_id)
            except BaseORMException as e:
                raise PersistenceFailureError("보증금 조회", e) from e

            if deposit is not None and deposit.status != DepositStatus.RELEASED:
                if deposit.amount >= required:
                    return Eligible(deposit.id, deposit.amount)
                if deposit.status == DepositStatus.CAPTURED:
                    return Ineligible(DepositInsufficientError(required, deposit.amount))

            try:
                reference = await asyncio.wait_for(
                    self.provider.authorize(
                        user_id,
                        required,
                        self.config.CURRENCY,
                        {"type": "bid_deposit", "auction_id": str(auction_id), "user_id": str(user_id)}
                    ),
                    timeout=self.config.PROVIDER_TIMEOUT_SECONDS
                )
            except asyncio.TimeoutError:
                logger.warning(f"Deposit authorize timed out: user {user_id}, auction {auction_id}")
                return Ineligible(PaymentProviderUnavailableError("결제사 응답이 없습니다. 잠시 후 다시 시도해주세요."))
            except PaymentError as e:
                logger.warning(f"Deposit authorize failed: user {user_id}, auction {auction_id}: {e.message}")
                return Ineligible(e)

            previous_reference = None
            if deposit is not None and deposit.status == DepositStatus.HELD:
                previous_reference = deposit.hold_reference

            try:
                deposit = await self._record_hold(deposit, user_id, auction_id, required, reference, now)
            except BaseORMException as e:
                await self._cancel_quietly(reference)
                raise PersistenceFailureError("보증금 기록", e) from e

            if previous_reference:
                await self._cancel_quietly(previous_reference)

            # 승인 대기 중 마감됐다면 일괄 해제가 이미 지나갔을 수 있음
            closed_status = await self._closed_status_for(user_id, auction_id)
            if closed_status is not None:
                logger.warning(
                    f"Auction {auction_id} closed during deposit check, releasing hold for user {user_id}"
                )
                await self._release_locked(deposit, now)
                raise AuctionNotOpenError(auction_id, closed_status.value)

            logger.info(
                f"Deposit held: user {user_id}, auction {auction_id}, amount {required} "
                f"({'increased' if previous_reference else 'new'})"
            )
            return Eligible(deposit.id, deposit.amount, newly_authorized=True)

    async def _record_hold(
        self,
        deposit: Optional[Deposit],
        user_id: int,
        auction_id: int,
        amount: int,
        reference: str,
        now: datetime
    ) -> Deposit:
        if deposit is None:
            return await Deposit.create(
                user_id=user_id,
                auction_id=auction_id,
                status=DepositStatus.HELD,
                amount=amount,
                currency=self.config.CURRENCY.upper(),
                hold_reference=reference,
                held_at=now,
            )

        # 해제됐던 행 재사용 ((user, auction) 유니크)
        deposit.status = DepositStatus.HELD
        deposit.amount = amount
        deposit.hold_reference = reference
        deposit.held_at = now
        deposit.released_at = None
        deposit.release_requested_at = None
        deposit.last_error = None
        await deposit.save()
        return deposit

    async def _closed_status_for(self, user_id: int, auction_id: int) -> Optional[AuctionStatus]:
        """끝난 경매면 그 상태 (낙찰자 본인의 홀드는 마감 처리가 확정하므로 제외)"""
        try:
            auction = await Auction.get_or_none(id=auction_id)
        except BaseORMException as e:
            raise PersistenceFailureError("경매 상태 조회", e) from e

        if auction is None:
            return None
        status = AuctionStatus(auction.status)
        if not status.is_terminal or auction.winner_id == user_id:
            return None
        return status

    async def _cancel_quietly(self, reference: str) -> None:
        """교체된 홀드 취소 - 실패해도 입찰은 진행"""
        try:
            await asyncio.wait_for(
                self.provider.cancel(reference),
                timeout=self.config.PROVIDER_TIMEOUT_SECONDS
            )
        except (PaymentError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to cancel superseded hold {reference}: {e}")

    # =========================================================================
    # 마감 처리
    # =========================================================================

    async def capture(
        self,
        auction_id: int,
        winner_id: int,
        now: Optional[datetime] = None
    ) -> Optional[Deposit]:
        """
        낙찰자 보증금 확정

        Returns:
            확정된 보증금, 홀드가 없거나 실패하면 None
        """
        now = now or datetime.now(timezone.utc)

        async with self.locks.hold((winner_id, auction_id)):
            deposit = await Deposit.get_or_none(
                user_id=winner_id,
                auction_id=auction_id,
                status=DepositStatus.HELD
            )
            if deposit is None:
                logger.warning(f"No held deposit to capture: auction {auction_id}, winner {winner_id}")
                return None

            try:
                await asyncio.wait_for(
                    self.provider.capture(deposit.hold_reference),
                    timeout=self.config.PROVIDER_TIMEOUT_SECONDS
                )
            except (PaymentError, asyncio.TimeoutError) as e:
                logger.error(f"Deposit capture failed: auction {auction_id}, winner {winner_id}: {e}")
                deposit.last_error = str(e) or type(e).__name__
                await deposit.save(update_fields=["last_error"])
                return None

            deposit.status = DepositStatus.CAPTURED
            deposit.captured_at = now
            deposit.last_error = None
            await deposit.save(update_fields=["status", "captured_at", "last_error"])

        logger.info(f"Deposit captured: auction {auction_id}, winner {winner_id}, amount {deposit.amount}")
        return deposit

    async def release_all(
        self,
        auction_id: int,
        except_user_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        경매의 HELD 홀드 일괄 해제 (낙찰자 제외)

        개별 실패는 기록만 하고 넘어가며 마감을 막지 않습니다.

        Returns:
            해제 성공 건수
        """
        now = now or datetime.now(timezone.utc)
        deposits = await Deposit.filter(auction_id=auction_id, status=DepositStatus.HELD)

        released = 0
        for deposit in deposits:
            if deposit.user_id == except_user_id:
                continue
            if await self._release(deposit, now):
                released += 1

        logger.info(f"Released {released}/{len(deposits)} deposits for auction {auction_id}")
        return released

    async def _release(self, deposit: Deposit, now: datetime) -> bool:
        async with self.locks.hold((deposit.user_id, deposit.auction_id)):
            # 락 대기 중 재발급/해제됐을 수 있음
            await deposit.refresh_from_db()
            if deposit.status != DepositStatus.HELD:
                return False
            return await self._release_locked(deposit, now)

    async def _release_locked(self, deposit: Deposit, now: datetime) -> bool:
        """(user, auction) 락을 잡은 상태에서 해제, 실패는 스윕 대상으로 기록"""
        try:
            await asyncio.wait_for(
                self.provider.cancel(deposit.hold_reference),
                timeout=self.config.PROVIDER_TIMEOUT_SECONDS
            )
        except Exception as e:
            logger.warning(
                f"Deposit release failed, left for sweep: deposit {deposit.id} "
                f"(user {deposit.user_id}, auction {deposit.auction_id}): {e!r}"
            )
            deposit.release_requested_at = deposit.release_requested_at or now
            deposit.last_error = repr(e)
            await deposit.save(update_fields=["release_requested_at", "last_error"])
            return False

        deposit.status = DepositStatus.RELEASED
        deposit.released_at = now
        deposit.last_error = None
        await deposit.save(update_fields=["status", "released_at", "last_error"])
        return True

    # =========================================================================
    # 스윕 / 조회
    # =========================================================================

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        안전망 스윕

        보관 기간이 지난 HELD 홀드와, 해제 요청이 실패했던 HELD 홀드를 해제합니다.

        Returns:
            해제 성공 건수
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.config.HOLD_DURATION_DAYS)

        deposits = await Deposit.filter(
            Q(held_at__lte=cutoff) | Q(release_requested_at__isnull=False),
            status=DepositStatus.HELD
        ).order_by("held_at").limit(self.config.SWEEP_BATCH_SIZE)

        released = 0
        for deposit in deposits:
            if await self._release(deposit, now):
                released += 1

        if deposits:
            logger.info(f"Deposit sweep released {released}/{len(deposits)}")
        return released

    async def get_user_deposits(self, user_id: int) -> List[Deposit]:
        """사용자의 보증금 목록 (최신순)"""
        return await Deposit.filter(user_id=user_id).order_by("-held_at")
