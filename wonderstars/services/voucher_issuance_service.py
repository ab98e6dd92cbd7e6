"""
自动发券业务服务层

触发点：首次登录、充值达到门槛、每日签到。每个触发先在发券记录表占位，
唯一约束冲突说明这次触发已经发过券；然后复用领取逻辑把券放进用户卡包。
用户已持有同一张券时重新发放这条持券记录（恢复可用、更新有效期）。
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from wonderstars.core.clock import business_today, ensure_aware, utcnow
from wonderstars.core.config import settings
from wonderstars.core.database import retry_read, with_timeout
from wonderstars.core.exceptions import InvalidAmount, VoucherNotFound, VoucherValidationError
from wonderstars.models.auto_rule import (
    AutoRuleTrigger,
    IssuanceResult,
    VoucherAutoRule,
    VoucherAutoRuleCreate,
)
from wonderstars.models.voucher import UserVoucher, UserVoucherStatus
from wonderstars.repositories.auto_rule_repository import AutoRuleRepository
from wonderstars.repositories.user_voucher_repository import UserVoucherRepository
from wonderstars.services.voucher_service import VoucherService

logger = logging.getLogger(__name__)

FIRST_LOGIN_ISSUE_KEY = "first_login"

NO_FIRST_LOGIN_RULE = "No welcome voucher available"
FIRST_LOGIN_ISSUED = "Welcome voucher received!"
FIRST_LOGIN_ALREADY = "Welcome voucher has already been issued"
NO_TOPUP_RULE = "No top-up voucher for this amount"
TOPUP_ISSUED = "Top-up voucher received!"
TOPUP_ALREADY = "Top-up voucher has already been issued for this top-up"
NO_CHECKIN_RULE = "No check-in voucher available"
CHECKIN_ISSUED = "Daily F&B voucher received!"
CHECKIN_ALREADY = "You have already received your daily check-in voucher"


class VoucherIssuanceService:
    """自动发券业务服务"""

    def __init__(
        self,
        voucher_service: VoucherService,
        user_voucher_repo: UserVoucherRepository,
        auto_rule_repo: AutoRuleRepository
    ):
        self.voucher_service = voucher_service
        self.user_voucher_repo = user_voucher_repo
        self.auto_rule_repo = auto_rule_repo

    async def create_rule(self, payload: VoucherAutoRuleCreate) -> VoucherAutoRule:
        """创建自动发券规则，发放的券必须存在"""
        voucher = await self.voucher_service.get_voucher_by_id(payload.voucher_id)
        if voucher is None:
            raise VoucherNotFound("Invalid voucher code", {"voucher_id": payload.voucher_id})

        data = payload.model_dump()
        data["trigger_type"] = payload.trigger_type.value
        rule = await with_timeout(self.auto_rule_repo.create(data))
        logger.info(f"创建自动发券规则 trigger={payload.trigger_type.value} voucher={voucher.code}")
        return self.auto_rule_repo.to_model(rule)

    async def list_rules(self) -> List[VoucherAutoRule]:
        rules = await retry_read(self.auto_rule_repo.list_all, description="auto rules")
        return [self.auto_rule_repo.to_model(rule) for rule in rules]

    async def issue_voucher_to_user(
        self,
        user_id: str,
        voucher_id: str,
        rule_id: Optional[str] = None,
        expires_in: Optional[timedelta] = None,
        now: Optional[datetime] = None
    ) -> UserVoucher:
        """
        把券发到用户卡包

        expires_in 给出时有效期为 now + expires_in，否则沿用券本身的有效期。
        """
        voucher = await self.voucher_service.get_voucher_by_id(voucher_id)
        if voucher is None:
            raise VoucherNotFound("Invalid voucher code", {"voucher_id": voucher_id})
        now = ensure_aware(now) or utcnow()
        if not voucher.is_active or voucher.is_expired(now):
            raise VoucherValidationError("This voucher is no longer active", {"voucher_id": voucher_id})

        if expires_in is not None:
            expires_at = (now + expires_in).astimezone(timezone.utc)
        elif voucher.is_daily_redeemable:
            expires_at = None
        else:
            expires_at = voucher.expires_at

        row = await with_timeout(self.user_voucher_repo.claim(user_id, voucher, expires_at))

        stale = (
            row.status != UserVoucherStatus.AVAILABLE.value
            or (row.usage_count or 0) > 0
            or ensure_aware(row.expires_at) != ensure_aware(expires_at)
        )
        if stale:
            await with_timeout(self.user_voucher_repo.reissue(row.id, expires_at))
            row = await self.user_voucher_repo.refresh(row)

        logger.info(f"发券成功 user={user_id} voucher={voucher.code} rule={rule_id} expires_at={expires_at}")
        return self.user_voucher_repo.to_model(row, voucher)

    async def handle_first_login(self, user_id: str, now: Optional[datetime] = None) -> IssuanceResult:
        """首次登录送券，每个用户只发一次"""
        rule = await self._first_rule(AutoRuleTrigger.FIRST_LOGIN)
        if rule is None:
            return IssuanceResult(success=False, message=NO_FIRST_LOGIN_RULE)

        return await self._issue_once(
            user_id, rule, AutoRuleTrigger.FIRST_LOGIN, FIRST_LOGIN_ISSUE_KEY,
            success_message=FIRST_LOGIN_ISSUED,
            already=IssuanceResult(success=False, message=FIRST_LOGIN_ALREADY, rule_id=rule.id),
            now=now
        )

    async def handle_topup(
        self,
        user_id: str,
        amount: Decimal,
        correlation_key: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> IssuanceResult:
        """
        充值送券

        规则按优先级升序匹配，第一条门槛不高于充值金额的规则生效，只发一张。
        带充值单号时同一单重复触发返回 duplicate。
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise InvalidAmount("Amount must be greater than 0", {"amount": str(amount)})

        rules = await retry_read(
            lambda: self.auto_rule_repo.list_active(AutoRuleTrigger.TOPUP_AMOUNT.value),
            description="topup rules"
        )
        rule = next((r for r in rules if amount >= Decimal(str(r.threshold_amount or 0))), None)
        if rule is None:
            return IssuanceResult(success=False, message=NO_TOPUP_RULE)

        return await self._issue_once(
            user_id, rule, AutoRuleTrigger.TOPUP_AMOUNT, correlation_key,
            success_message=TOPUP_ISSUED,
            already=IssuanceResult(success=True, message=TOPUP_ALREADY, rule_id=rule.id, duplicate=True),
            now=now
        )

    async def handle_checkin(self, user_id: str, now: Optional[datetime] = None) -> IssuanceResult:
        """每日签到送券，每个自然日一次，券24小时内有效"""
        now = ensure_aware(now) or utcnow()

        rule = await self._first_rule(AutoRuleTrigger.DAILY_CHECKIN)
        if rule is None:
            return IssuanceResult(success=False, message=NO_CHECKIN_RULE)

        return await self._issue_once(
            user_id, rule, AutoRuleTrigger.DAILY_CHECKIN, business_today(now).isoformat(),
            success_message=CHECKIN_ISSUED,
            already=IssuanceResult(success=False, message=CHECKIN_ALREADY, rule_id=rule.id),
            now=now,
            expires_in=timedelta(hours=settings.checkin_voucher_ttl_hours)
        )

    async def _first_rule(self, trigger: AutoRuleTrigger):
        rules = await retry_read(
            lambda: self.auto_rule_repo.list_active(trigger.value),
            description=f"{trigger.value} rules"
        )
        return rules[0] if rules else None

    async def _issue_once(
        self,
        user_id: str,
        rule,
        trigger: AutoRuleTrigger,
        issue_key: Optional[str],
        success_message: str,
        already: IssuanceResult,
        now: Optional[datetime] = None,
        expires_in: Optional[timedelta] = None
    ) -> IssuanceResult:
        issuance = await with_timeout(
            self.auto_rule_repo.record_issuance(user_id, rule.id, trigger.value, issue_key)
        )
        if issuance is None:
            logger.info(f"已发过券 user={user_id} trigger={trigger.value} key={issue_key}")
            return already

        user_voucher = await self.issue_voucher_to_user(
            user_id, rule.voucher_id, rule_id=rule.id, expires_in=expires_in, now=now
        )
        await with_timeout(self.auto_rule_repo.attach_user_voucher(issuance, user_voucher.id))

        return IssuanceResult(
            success=True,
            message=success_message,
            rule_id=rule.id,
            user_voucher=user_voucher
        )
