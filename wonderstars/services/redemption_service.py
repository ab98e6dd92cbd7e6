"""
优惠券兑换业务服务层

"今天已兑换"等预期内的失败返回 RedemptionResult(success=False)，不抛异常；
数据库不可用时 DatastoreError 向上抛出，由接口层统一返回"请重试"。
"""

import logging
from datetime import datetime
from typing import List, Optional

from wonderstars.core.clock import business_today, end_of_business_day, ensure_aware, utcnow
from wonderstars.core.database import retry_read, with_timeout
from wonderstars.core.exceptions import VoucherNotFound
from wonderstars.models.voucher import (
    REDEMPTION_METHOD_PATTERN,
    RedeemCheck,
    RedemptionMethod,
    RedemptionResult,
    UserVoucher,
    UserVoucherStatus,
    Voucher,
)
from wonderstars.repositories.user_voucher_repository import UserVoucherRepository
from wonderstars.services.voucher_service import VoucherService

logger = logging.getLogger(__name__)

ALREADY_TODAY = "You've already used this voucher today"
ALREADY_USED = "This voucher has already been used"
INACTIVE = "This voucher is no longer active"
EXPIRED = "This voucher has expired"
INVALID_CODE = "Invalid voucher code"


class RedemptionService:
    """优惠券兑换业务服务"""

    def __init__(self, voucher_service: VoucherService, user_voucher_repo: UserVoucherRepository):
        self.voucher_service = voucher_service
        self.user_voucher_repo = user_voucher_repo

    def _voucher_unavailable(self, voucher: Optional[Voucher], now: datetime) -> Optional[str]:
        """优惠券本身不可用的原因"""
        if voucher is None:
            return INVALID_CODE
        if not voucher.is_active:
            return INACTIVE
        if voucher.is_expired(now):
            return EXPIRED
        return None

    async def can_redeem_today(
        self,
        user_id: str,
        voucher_id: str,
        now: Optional[datetime] = None
    ) -> RedeemCheck:
        """判断用户今天能否兑换该优惠券"""
        now = ensure_aware(now) or utcnow()
        today = business_today(now)

        voucher = await self.voucher_service.get_voucher_by_id(voucher_id)
        reason = self._voucher_unavailable(voucher, now)
        if reason:
            return RedeemCheck(can_redeem=False, reason=reason)

        row = await retry_read(
            lambda: self.user_voucher_repo.get(user_id, voucher_id),
            description="user voucher"
        )
        if row is None:
            return RedeemCheck(can_redeem=True)

        if row.is_daily_voucher:
            if row.last_redeemed_date == today:
                return RedeemCheck(can_redeem=False, reason=ALREADY_TODAY)
            return RedeemCheck(can_redeem=True)

        if row.status == UserVoucherStatus.EXPIRED.value:
            return RedeemCheck(can_redeem=False, reason=EXPIRED)
        if row.status == UserVoucherStatus.USED.value or row.usage_count >= row.max_usage_count:
            return RedeemCheck(can_redeem=False, reason=ALREADY_USED)
        return RedeemCheck(can_redeem=True)

    async def redeem(
        self,
        user_id: str,
        voucher_id: str,
        method: str = RedemptionMethod.MANUAL_CODE.value,
        now: Optional[datetime] = None
    ) -> RedemptionResult:
        """
        兑换优惠券

        先读状态做快速判断，真正的互斥由数据库保证：
        首次兑换靠唯一约束，之后靠条件UPDATE的受影响行数。
        """
        if not REDEMPTION_METHOD_PATTERN.match(method or ""):
            return RedemptionResult(success=False, message="Invalid redemption method")

        now = ensure_aware(now) or utcnow()
        today = business_today(now)

        voucher = await self.voucher_service.get_voucher_by_id(voucher_id)
        reason = self._voucher_unavailable(voucher, now)
        if reason:
            return RedemptionResult(success=False, message=reason)

        daily_expiry = end_of_business_day(today)

        row = await retry_read(
            lambda: self.user_voucher_repo.get(user_id, voucher_id),
            description="user voucher"
        )

        if row is None:
            inserted = await with_timeout(
                self.user_voucher_repo.insert_first_redemption(
                    user_id,
                    voucher,
                    method,
                    today,
                    daily_expiry if voucher.is_daily_redeemable else voucher.expires_at
                )
            )
            if inserted is not None:
                logger.info(f"首次兑换成功 user={user_id} voucher={voucher.code} method={method}")
                return self._success(inserted, voucher)

            # 并发请求先插入了记录，按已有记录继续判断
            row = await self.user_voucher_repo.get(user_id, voucher_id)
            if row is None:
                return RedemptionResult(success=False, message=ALREADY_USED)

        if row.is_daily_voucher:
            if row.last_redeemed_date == today:
                return RedemptionResult(success=False, message=ALREADY_TODAY)

            updated = await with_timeout(
                self.user_voucher_repo.mark_redeemed_today(row.id, today, daily_expiry, method)
            )
            if not updated:
                return RedemptionResult(success=False, message=ALREADY_TODAY)
        else:
            if row.status == UserVoucherStatus.EXPIRED.value:
                return RedemptionResult(success=False, message=EXPIRED)
            if row.status != UserVoucherStatus.AVAILABLE.value or row.usage_count >= row.max_usage_count:
                return RedemptionResult(success=False, message=ALREADY_USED)

            updated = await with_timeout(
                self.user_voucher_repo.mark_used(row.id, today, method)
            )
            if not updated:
                return RedemptionResult(success=False, message=ALREADY_USED)

        row = await self.user_voucher_repo.refresh(row)
        logger.info(f"兑换成功 user={user_id} voucher={voucher.code} count={row.redemption_count}")
        return self._success(row, voucher)

    async def redeem_by_code(
        self,
        user_id: str,
        code: str,
        method: str = RedemptionMethod.MANUAL_CODE.value,
        now: Optional[datetime] = None
    ) -> RedemptionResult:
        """用户输入券码兑换"""
        voucher = await self.voucher_service.get_voucher_by_code(code)
        if voucher is None:
            return RedemptionResult(success=False, message=INVALID_CODE)
        return await self.redeem(user_id, voucher.id, method=method, now=now)

    async def claim_voucher(self, user_id: str, voucher_id: str) -> UserVoucher:
        """领取优惠券到卡包（幂等）"""
        voucher = await self.voucher_service.get_voucher_by_id(voucher_id)
        if voucher is None:
            raise VoucherNotFound(INVALID_CODE, {"voucher_id": voucher_id})

        row = await with_timeout(self.user_voucher_repo.claim(user_id, voucher))
        return self.user_voucher_repo.to_model(row, voucher)

    async def get_user_vouchers(
        self,
        user_id: str,
        status: Optional[UserVoucherStatus] = None,
        now: Optional[datetime] = None
    ) -> List[UserVoucher]:
        """获取用户卡包，先把过期的可用券标记为过期"""
        now = ensure_aware(now) or utcnow()

        expired = await with_timeout(self.user_voucher_repo.expire_stale(user_id, now))
        if expired:
            logger.info(f"标记过期优惠券 user={user_id} count={expired}")

        rows = await retry_read(
            lambda: self.user_voucher_repo.list_for_user(
                user_id, status.value if status else None
            ),
            description="user vouchers"
        )

        vouchers = {}
        result = []
        for row in rows:
            if row.voucher_id not in vouchers:
                vouchers[row.voucher_id] = await self.voucher_service.get_voucher_by_id(row.voucher_id)
            result.append(self.user_voucher_repo.to_model(row, vouchers[row.voucher_id]))
        return result

    def _success(self, row, voucher: Voucher) -> RedemptionResult:
        if voucher.is_daily_redeemable:
            message = "Voucher redeemed! Valid until the end of today."
        else:
            message = "Voucher redeemed successfully!"
        return RedemptionResult(
            success=True,
            message=message,
            user_voucher_id=row.id,
            expires_at=row.expires_at,
            redemption_count=row.redemption_count
        )
