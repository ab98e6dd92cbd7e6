"""
账本数据库测试 - 临时SQLite数据库
"""

import asyncio

import pytest
from decimal import Decimal
from sqlalchemy import select, func, update

from wonderstars.core.exceptions import DuplicateOperation
from wonderstars.models.award import BalanceKind
from wonderstars.models.database.ledger_db import BonusTransactionDB, WalletTransactionDB
from wonderstars.models.database.user_db import UserDB
from wonderstars.repositories.award_repository import AwardRepository
from wonderstars.services.award_service import AwardService


@pytest.mark.asyncio
class TestAwardLedger:
    """账本数据库测试类"""

    async def test_double_award_is_idempotent(self, create_user_row, db_session):
        """同一充值单发两次奖励金：一条流水，余额只加一次"""
        user_id = await create_user_row()
        service = AwardService(AwardRepository(db_session))

        first = await service.award_bonus(user_id, Decimal("10"), correlation_key="wt_1001")
        second = await service.award_bonus(user_id, Decimal("10"), correlation_key="wt_1001")

        assert first.success is True and first.duplicate is False
        assert second.success is True and second.duplicate is True
        assert second.transaction_id == first.transaction_id
        assert await service.get_balance(BalanceKind.BONUS, user_id) == Decimal("10.00")

        count = await db_session.execute(
            select(func.count()).select_from(BonusTransactionDB).where(BonusTransactionDB.user_id == user_id)
        )
        assert count.scalar_one() == 1

    async def test_concurrent_double_award(self, create_user_row, session_maker):
        user_id = await create_user_row()

        async def attempt():
            async with session_maker() as session:
                result = await AwardService(AwardRepository(session)).award_bonus(
                    user_id, Decimal("10"), correlation_key="wt_2002"
                )
                await session.commit()
                return result

        results = await asyncio.gather(attempt(), attempt())

        assert all(result.success for result in results)
        assert [result.duplicate for result in results].count(True) == 1

        async with session_maker() as session:
            user = await session.get(UserDB, user_id)
            assert user.bonus_balance == Decimal("10.00")

    async def test_unique_constraint_rolls_back_both_writes(self, create_user_row, db_session):
        """直接撞唯一约束：抛 DuplicateOperation，余额不变"""
        user_id = await create_user_row()
        repo = AwardRepository(db_session)

        user = await repo.lock_user(user_id)
        await repo.append_entry(BalanceKind.WALLET, user, Decimal("25.00"), "topup", "topup", "TU-1")

        with pytest.raises(DuplicateOperation):
            await repo.append_entry(BalanceKind.WALLET, user, Decimal("25.00"), "topup", "topup", "TU-1")

        user = await repo.lock_user(user_id)
        assert user.wallet_balance == Decimal("25.00")

    async def test_spend_guarded_by_balance(self, create_user_row, db_session):
        user_id = await create_user_row()
        service = AwardService(AwardRepository(db_session))

        await service.credit_wallet(user_id, Decimal("30"), "topup", correlation_key="TU-7")

        denied = await service.spend(BalanceKind.WALLET, user_id, Decimal("30.01"), "shop_order", "SO-1")
        assert denied.success is False
        assert denied.reason == "Insufficient balance"

        spent = await service.spend(BalanceKind.WALLET, user_id, Decimal("30"), "shop_order", "SO-1")
        assert spent.success is True
        assert spent.new_balance == Decimal("0.00")

        history = await service.list_transactions(BalanceKind.WALLET, user_id)
        assert sorted(tx.amount for tx in history) == [Decimal("-30.00"), Decimal("30.00")]

    async def test_stars_multiplier(self, create_user_row, db_session):
        user_id = await create_user_row()
        service = AwardService(AwardRepository(db_session))

        result = await service.award_stars(
            user_id, Decimal("19.90"), "shop_order", correlation_key="SO-2", multiplier=Decimal("2")
        )

        assert result.new_balance == Decimal("39")

    async def test_reconcile_reports_only_mismatches(self, create_user_row, db_session):
        healthy = await create_user_row(phone="+60111111111")
        drifted = await create_user_row(phone="+60122222222")
        service = AwardService(AwardRepository(db_session))

        await service.credit_wallet(healthy, Decimal("40"), "topup", correlation_key="TU-A")
        await service.credit_wallet(drifted, Decimal("15"), "topup", correlation_key="TU-B")

        # 模拟绕过账本直接改余额
        await db_session.execute(
            update(UserDB).where(UserDB.id == drifted).values(wallet_balance=Decimal("20.00"))
        )

        report = await service.reconcile(BalanceKind.WALLET)

        assert report.checked_users == 2
        assert [entry.user_id for entry in report.mismatches] == [drifted]
        entry = report.mismatches[0]
        assert entry.ledger_sum == Decimal("15.00")
        assert entry.stored_balance == Decimal("20.00")
        assert entry.difference == Decimal("5.00")

        wallet_rows = await db_session.execute(select(func.count()).select_from(WalletTransactionDB))
        assert wallet_rows.scalar_one() == 2
