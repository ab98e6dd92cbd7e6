"""
钱包 / 奖励金 / 星星 账本业务服务层

每次变动都在锁住用户行之后完成：先按去重键查重，再追加流水并同步余额。
重复请求返回 success=True, duplicate=True，调用方按"已处理"对待。
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, List, Optional

from wonderstars.core.database import retry_read, with_timeout
from wonderstars.core.exceptions import DuplicateOperation, InvalidAmount, UserNotFound
from wonderstars.models.award import (
    BalanceKind,
    BalanceSnapshot,
    LedgerResult,
    LedgerTransaction,
    ReconciliationReport,
    TransactionType,
)
from wonderstars.repositories.award_repository import AwardRepository
from wonderstars.services.discount_calculator import money

logger = logging.getLogger(__name__)

INSUFFICIENT = "Insufficient balance"


class AwardService:
    """账本业务服务"""

    def __init__(self, award_repo: AwardRepository):
        self.award_repo = award_repo

    async def award(
        self,
        kind: BalanceKind,
        user_id: str,
        amount: Decimal,
        transaction_type: TransactionType = TransactionType.EARN,
        source: str = "manual",
        correlation_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerResult:
        """发放（入账）"""
        amount = self._positive(amount)
        return await with_timeout(
            self._apply(kind, user_id, amount, transaction_type, source, correlation_key, description, metadata)
        )

    async def credit_wallet(
        self,
        user_id: str,
        amount: Decimal,
        source: str,
        correlation_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerResult:
        """钱包充值入账"""
        return await self.award(
            BalanceKind.WALLET, user_id, amount, TransactionType.TOPUP,
            source, correlation_key, description, metadata
        )

    async def award_bonus(
        self,
        user_id: str,
        amount: Decimal,
        source: str = "topup_bonus",
        correlation_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerResult:
        """发放充值奖励金"""
        return await self.award(
            BalanceKind.BONUS, user_id, amount, TransactionType.TOPUP_BONUS,
            source, correlation_key, description, metadata
        )

    async def award_stars(
        self,
        user_id: str,
        amount: Decimal,
        source: str,
        correlation_key: Optional[str] = None,
        multiplier: Decimal = Decimal("1"),
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerResult:
        """发放星星，数量 = floor(amount × 会员倍率)"""
        multiplier = Decimal(str(multiplier))
        if multiplier <= 0:
            raise InvalidAmount("Multiplier must be greater than 0", {"multiplier": str(multiplier)})

        stars = (self._positive(amount) * multiplier).to_integral_value(rounding=ROUND_FLOOR)
        if stars <= 0:
            return LedgerResult(success=False, kind=BalanceKind.STARS, reason="Nothing to award")

        meta = dict(metadata or {})
        meta.setdefault("base_amount", str(amount))
        meta.setdefault("multiplier", str(multiplier))

        return await with_timeout(
            self._apply(
                BalanceKind.STARS, user_id, stars, TransactionType.EARN,
                source, correlation_key, description, meta
            )
        )

    async def spend(
        self,
        kind: BalanceKind,
        user_id: str,
        amount: Decimal,
        source: str,
        correlation_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerResult:
        """消费（出账），余额不足时返回失败"""
        amount = self._positive(amount)
        return await with_timeout(
            self._apply(kind, user_id, -amount, TransactionType.SPEND, source, correlation_key, description, metadata)
        )

    async def admin_adjust(
        self,
        kind: BalanceKind,
        user_id: str,
        delta: Decimal,
        admin_id: str,
        reason: str
    ) -> LedgerResult:
        """管理员调整，带审计信息，不能把余额调成负数"""
        delta = Decimal(str(delta))
        if delta == 0:
            raise InvalidAmount("Adjustment cannot be zero")
        if BalanceKind(kind) != BalanceKind.STARS:
            delta = money(delta)

        logger.info(f"管理员调整余额 admin={admin_id} user={user_id} kind={BalanceKind(kind).value} delta={delta}")
        return await with_timeout(
            self._apply(
                kind, user_id, delta, TransactionType.ADMIN_ADJUSTMENT,
                "admin_adjustment", None, reason,
                {"admin_id": admin_id, "reason": reason}
            )
        )

    async def get_balance(self, kind: BalanceKind, user_id: str) -> Decimal:
        user = await retry_read(lambda: self.award_repo.get_user(user_id), description="user balance")
        if user is None:
            raise UserNotFound("User not found", {"user_id": user_id})
        return self.award_repo.current_balance(user, kind)

    async def get_balances(self, user_id: str) -> BalanceSnapshot:
        user = await retry_read(lambda: self.award_repo.get_user(user_id), description="user balance")
        if user is None:
            raise UserNotFound("User not found", {"user_id": user_id})
        return BalanceSnapshot(
            user_id=user.id,
            wallet_balance=self.award_repo.current_balance(user, BalanceKind.WALLET),
            bonus_balance=self.award_repo.current_balance(user, BalanceKind.BONUS),
            stars=self.award_repo.current_balance(user, BalanceKind.STARS)
        )

    async def list_transactions(
        self,
        kind: BalanceKind,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[LedgerTransaction]:
        return await retry_read(
            lambda: self.award_repo.list_transactions(kind, user_id, limit=limit, offset=offset),
            description="ledger transactions"
        )

    async def reconcile(self, kind: BalanceKind, user_id: Optional[str] = None) -> ReconciliationReport:
        """对账：流水合计 vs 冗余余额"""
        result = await retry_read(
            lambda: self.award_repo.reconcile(kind, user_id=user_id),
            description="reconcile"
        )
        report = ReconciliationReport(
            kind=kind,
            checked_users=result["checked_users"],
            mismatches=result["mismatches"]
        )
        if report.mismatches:
            logger.warning(f"对账发现差异 kind={BalanceKind(kind).value} count={len(report.mismatches)}")
        return report

    def _positive(self, amount) -> Decimal:
        amount = Decimal(str(amount))
        if amount <= 0:
            raise InvalidAmount("Amount must be greater than 0", {"amount": str(amount)})
        return amount

    async def _apply(
        self,
        kind: BalanceKind,
        user_id: str,
        amount: Decimal,
        transaction_type: TransactionType,
        source: str,
        correlation_key: Optional[str],
        description: Optional[str],
        metadata: Optional[Dict[str, Any]]
    ) -> LedgerResult:
        kind = BalanceKind(kind)
        if kind != BalanceKind.STARS:
            amount = money(amount)
        elif amount != amount.to_integral_value():
            # 星星只记整数
            raise InvalidAmount("Stars must be a whole number", {"amount": str(amount)})

        user = await self.award_repo.lock_user(user_id)
        if user is None:
            raise UserNotFound("User not found", {"user_id": user_id})

        if correlation_key:
            existing = await self.award_repo.find_transaction(kind, user_id, source, correlation_key)
            if existing is not None:
                return self._duplicate(kind, user, existing)

        balance = self.award_repo.current_balance(user, kind)
        if amount < 0 and balance + amount < 0:
            return LedgerResult(success=False, kind=kind, new_balance=balance, reason=INSUFFICIENT)

        try:
            entry = await self.award_repo.append_entry(
                kind,
                user,
                amount,
                TransactionType(transaction_type).value,
                source,
                correlation_key=correlation_key,
                description=description,
                metadata=metadata
            )
        except DuplicateOperation as e:
            logger.info(f"重复的账本操作，按已处理返回: {e.details}")
            existing = await self.award_repo.find_transaction(kind, user_id, source, correlation_key)
            return self._duplicate(kind, user, existing)

        logger.info(
            f"账本变动 user={user_id} kind={kind.value} amount={amount} "
            f"source={source} balance={entry.balance_after}"
        )
        return LedgerResult(
            success=True,
            kind=kind,
            new_balance=entry.balance_after,
            transaction_id=entry.id
        )

    def _duplicate(self, kind: BalanceKind, user, existing) -> LedgerResult:
        return LedgerResult(
            success=True,
            kind=kind,
            new_balance=self.award_repo.current_balance(user, kind),
            transaction_id=existing.id if existing is not None else None,
            duplicate=True
        )
