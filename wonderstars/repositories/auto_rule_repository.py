"""
自动发券规则数据库操作层

同一触发只发一次靠发券记录表的 (user_id, trigger_type, issue_key) 唯一约束：
先插入记录占位，冲突说明已经发过。
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.models.auto_rule import VoucherAutoRule
from wonderstars.models.database.auto_rule_db import VoucherAutoRuleDB, VoucherIssuanceDB


class AutoRuleRepository:
    """自动发券规则数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, trigger_type: str) -> List[VoucherAutoRuleDB]:
        """某触发类型下启用的规则，按优先级升序"""
        result = await self.db.execute(
            select(VoucherAutoRuleDB)
            .where(
                and_(
                    VoucherAutoRuleDB.trigger_type == trigger_type,
                    VoucherAutoRuleDB.is_active.is_(True)
                )
            )
            .order_by(VoucherAutoRuleDB.priority, VoucherAutoRuleDB.created_at)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[VoucherAutoRuleDB]:
        result = await self.db.execute(
            select(VoucherAutoRuleDB).order_by(VoucherAutoRuleDB.trigger_type, VoucherAutoRuleDB.priority)
        )
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> VoucherAutoRuleDB:
        rule = VoucherAutoRuleDB(**data)
        self.db.add(rule)
        await self.db.flush()
        await self.db.refresh(rule)
        return rule

    async def record_issuance(
        self,
        user_id: str,
        rule_id: str,
        trigger_type: str,
        issue_key: Optional[str]
    ) -> Optional[VoucherIssuanceDB]:
        """占用一次发放名额，已发过返回None"""
        row = VoucherIssuanceDB(
            user_id=user_id,
            rule_id=rule_id,
            trigger_type=trigger_type,
            issue_key=issue_key
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            return None
        return row

    async def attach_user_voucher(self, issuance: VoucherIssuanceDB, user_voucher_id: str) -> None:
        issuance.user_voucher_id = user_voucher_id
        await self.db.flush()

    def to_model(self, rule: VoucherAutoRuleDB) -> VoucherAutoRule:
        """转换为Pydantic模型"""
        return VoucherAutoRule(
            id=rule.id,
            voucher_id=rule.voucher_id,
            trigger_type=rule.trigger_type,
            threshold_amount=rule.threshold_amount or 0,
            priority=rule.priority or 0,
            is_active=bool(rule.is_active),
            created_at=rule.created_at,
            updated_at=rule.updated_at
        )
