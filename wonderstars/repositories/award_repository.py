"""
账本数据库操作层

流水插入和冗余余额更新在同一个保存点内完成：要么都成功，要么都回滚。
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, and_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.core.exceptions import DuplicateOperation
from wonderstars.models.award import BalanceKind, LedgerTransaction, ReconciliationEntry
from wonderstars.models.database.ledger_db import (
    WalletTransactionDB,
    BonusTransactionDB,
    StarsTransactionDB,
)
from wonderstars.models.database.user_db import UserDB

# 余额种类 -> (流水表, users上的余额列名)
LEDGERS = {
    BalanceKind.WALLET: (WalletTransactionDB, "wallet_balance"),
    BalanceKind.BONUS: (BonusTransactionDB, "bonus_balance"),
    BalanceKind.STARS: (StarsTransactionDB, "stars"),
}


def ledger_for(kind: BalanceKind):
    try:
        return LEDGERS[BalanceKind(kind)]
    except (KeyError, ValueError):
        raise ValueError(f"未知的余额种类: {kind}")


class AwardRepository:
    """账本数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[UserDB]:
        result = await self.db.execute(select(UserDB).where(UserDB.id == user_id))
        return result.scalar_one_or_none()

    async def lock_user(self, user_id: str) -> Optional[UserDB]:
        """锁定用户行（SELECT ... FOR UPDATE），同一用户的余额变动串行执行"""
        result = await self.db.execute(
            select(UserDB)
            .where(UserDB.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def current_balance(self, user: UserDB, kind: BalanceKind) -> Decimal:
        _, column = ledger_for(kind)
        return Decimal(getattr(user, column) or 0)

    async def find_transaction(
        self,
        kind: BalanceKind,
        user_id: str,
        source: str,
        correlation_key: str
    ):
        """按去重键查找已有流水"""
        model, _ = ledger_for(kind)
        result = await self.db.execute(
            select(model).where(
                and_(
                    model.user_id == user_id,
                    model.source == source,
                    model.correlation_key == correlation_key
                )
            )
        )
        return result.scalar_one_or_none()

    async def append_entry(
        self,
        kind: BalanceKind,
        user: UserDB,
        amount: Decimal,
        transaction_type: str,
        source: str,
        correlation_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        追加一条流水并同步冗余余额

        调用方需先 lock_user。去重键冲突时抛 DuplicateOperation，余额不变。
        """
        model, column = ledger_for(kind)
        new_balance = self.current_balance(user, kind) + amount

        entry = model(
            user_id=user.id,
            amount=amount,
            transaction_type=transaction_type,
            source=source,
            correlation_key=correlation_key,
            description=description,
            balance_after=new_balance,
            meta=dict(metadata or {})
        )

        try:
            async with self.db.begin_nested():
                self.db.add(entry)
                await self.db.flush()
                setattr(user, column, new_balance)
                await self.db.flush()
        except IntegrityError as e:
            # 事务回滚后对象属性已过期，重新加载
            await self.db.refresh(user)
            raise DuplicateOperation(
                "This operation has already been processed",
                {"kind": BalanceKind(kind).value, "source": source, "correlation_key": correlation_key}
            ) from e

        return entry

    async def list_transactions(
        self,
        kind: BalanceKind,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[LedgerTransaction]:
        """获取用户流水，最新的在前"""
        model, _ = ledger_for(kind)
        result = await self.db.execute(
            select(model)
            .where(model.user_id == user_id)
            .order_by(desc(model.created_at))
            .limit(limit)
            .offset(offset)
        )
        return [self.to_model(row) for row in result.scalars().all()]

    async def reconcile(self, kind: BalanceKind, user_id: Optional[str] = None) -> Dict[str, Any]:
        """对比流水合计和冗余余额，返回检查人数和差异列表"""
        model, column = ledger_for(kind)
        balance_column = getattr(UserDB, column)

        ledger_sums = (
            select(
                model.user_id.label("user_id"),
                func.coalesce(func.sum(model.amount), 0).label("ledger_sum")
            )
            .group_by(model.user_id)
            .subquery()
        )

        query = select(
            UserDB.id,
            balance_column,
            func.coalesce(ledger_sums.c.ledger_sum, 0)
        ).outerjoin(ledger_sums, UserDB.id == ledger_sums.c.user_id)

        if user_id:
            query = query.where(UserDB.id == user_id)

        result = await self.db.execute(query)
        rows = result.fetchall()

        mismatches = []
        for uid, stored, ledger_sum in rows:
            stored = Decimal(str(stored or 0))
            ledger_sum = Decimal(str(ledger_sum or 0))
            if stored != ledger_sum:
                mismatches.append(ReconciliationEntry(
                    user_id=uid,
                    kind=kind,
                    ledger_sum=ledger_sum,
                    stored_balance=stored,
                    difference=stored - ledger_sum
                ))

        return {"checked_users": len(rows), "mismatches": mismatches}

    def to_model(self, row) -> LedgerTransaction:
        """转换为Pydantic模型"""
        return LedgerTransaction(
            id=row.id,
            user_id=row.user_id,
            amount=row.amount,
            transaction_type=row.transaction_type,
            source=row.source,
            correlation_key=row.correlation_key,
            description=row.description,
            balance_after=row.balance_after,
            metadata=row.meta or {},
            created_at=row.created_at
        )
