"""
自动发券数据库测试 - 临时SQLite数据库
"""

import asyncio

import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone
from sqlalchemy import select, func

from wonderstars.core.clock import ensure_aware
from wonderstars.models.database.auto_rule_db import VoucherAutoRuleDB, VoucherIssuanceDB
from wonderstars.models.database.voucher_db import UserVoucherDB
from wonderstars.repositories.auto_rule_repository import AutoRuleRepository
from wonderstars.repositories.user_voucher_repository import UserVoucherRepository
from wonderstars.repositories.voucher_repository import VoucherRepository
from wonderstars.services.redemption_service import RedemptionService
from wonderstars.services.voucher_issuance_service import VoucherIssuanceService
from wonderstars.services.voucher_service import VoucherService


# 吉隆坡时间 2026-03-10 12:00
NOW = datetime(2026, 3, 10, 4, 0, tzinfo=timezone.utc)


def build_service(session) -> VoucherIssuanceService:
    return VoucherIssuanceService(
        VoucherService(VoucherRepository(session)),
        UserVoucherRepository(session),
        AutoRuleRepository(session)
    )


@pytest.fixture
def create_rule_row(session_maker):
    """插入一条自动发券规则并提交，返回ID"""

    async def _create(voucher_id: str, trigger_type: str, **overrides) -> str:
        data = {"voucher_id": voucher_id, "trigger_type": trigger_type}
        data.update(overrides)
        async with session_maker() as session:
            rule = VoucherAutoRuleDB(**data)
            session.add(rule)
            await session.commit()
            return rule.id

    return _create


@pytest.mark.asyncio
class TestAutoRuleRepository:
    """自动发券规则数据库测试类"""

    async def test_list_active_orders_by_priority(self, create_voucher_row, create_rule_row, db_session):
        voucher_id = await create_voucher_row(code="TOPUP", is_daily_redeemable=False)
        await create_rule_row(voucher_id, "topup_amount", threshold_amount=Decimal("50"), priority=5)
        await create_rule_row(voucher_id, "topup_amount", threshold_amount=Decimal("200"), priority=1)
        await create_rule_row(voucher_id, "topup_amount", threshold_amount=Decimal("100"), priority=3, is_active=False)
        await create_rule_row(voucher_id, "first_login")

        rules = await AutoRuleRepository(db_session).list_active("topup_amount")

        assert [rule.threshold_amount for rule in rules] == [Decimal("200"), Decimal("50")]

    async def test_record_issuance_is_unique_per_key(self, create_voucher_row, create_rule_row, db_session):
        voucher_id = await create_voucher_row(code="CHECKIN", is_daily_redeemable=False)
        rule_id = await create_rule_row(voucher_id, "daily_checkin")
        repo = AutoRuleRepository(db_session)

        assert await repo.record_issuance("user_001", rule_id, "daily_checkin", "2026-03-10") is not None
        assert await repo.record_issuance("user_001", rule_id, "daily_checkin", "2026-03-10") is None
        assert await repo.record_issuance("user_001", rule_id, "daily_checkin", "2026-03-11") is not None
        assert await repo.record_issuance("user_002", rule_id, "daily_checkin", "2026-03-10") is not None


@pytest.mark.asyncio
class TestIssuanceFlow:
    """自动发券流程数据库测试类"""

    async def test_checkin_once_per_day_then_reissued(self, create_voucher_row, create_rule_row, db_session):
        """签到券：同一天只发一次；第二天重新发放同一条持券记录，有效期顺延"""
        voucher_id = await create_voucher_row(code="CHECKINFNB", is_daily_redeemable=False)
        await create_rule_row(voucher_id, "daily_checkin")
        service = build_service(db_session)

        first = await service.handle_checkin("user_001", now=NOW)
        assert first.success is True
        assert ensure_aware(first.user_voucher.expires_at) == NOW + timedelta(hours=24)

        again = await service.handle_checkin("user_001", now=NOW + timedelta(hours=3))
        assert again.success is False
        assert again.message == "You have already received your daily check-in voucher"

        # 用掉之后第二天签到
        redemption = RedemptionService(service.voucher_service, service.user_voucher_repo)
        used = await redemption.redeem("user_001", voucher_id, now=NOW + timedelta(hours=4))
        assert used.success is True

        tomorrow = NOW + timedelta(days=1)
        second = await service.handle_checkin("user_001", now=tomorrow)
        assert second.success is True
        assert second.user_voucher.id == first.user_voucher.id
        assert second.user_voucher.status.value == "available"
        assert second.user_voucher.usage_count == 0
        assert ensure_aware(second.user_voucher.expires_at) == tomorrow + timedelta(hours=24)

        issued = await db_session.execute(
            select(VoucherIssuanceDB.issue_key, VoucherIssuanceDB.user_voucher_id)
            .where(VoucherIssuanceDB.user_id == "user_001")
            .order_by(VoucherIssuanceDB.issue_key)
        )
        assert issued.all() == [
            ("2026-03-10", first.user_voucher.id),
            ("2026-03-11", first.user_voucher.id),
        ]

    async def test_concurrent_checkins(self, create_voucher_row, create_rule_row, session_maker):
        """同一天两个并发签到请求只有一个发券"""
        voucher_id = await create_voucher_row(code="CHECKINFNB", is_daily_redeemable=False)
        await create_rule_row(voucher_id, "daily_checkin")

        async def attempt():
            async with session_maker() as session:
                result = await build_service(session).handle_checkin("user_001", now=NOW)
                await session.commit()
                return result

        results = await asyncio.gather(attempt(), attempt())

        assert sorted(result.success for result in results) == [False, True]

        async with session_maker() as session:
            count = await session.execute(select(func.count()).select_from(VoucherIssuanceDB))
            assert count.scalar_one() == 1

    async def test_first_login_then_topup(self, create_voucher_row, create_rule_row, db_session):
        welcome_id = await create_voucher_row(code="WELCOME10", voucher_type="percent", value=Decimal("10"),
                                              is_daily_redeemable=False)
        topup_id = await create_voucher_row(code="TOPUP100", is_daily_redeemable=False)
        await create_rule_row(welcome_id, "first_login")
        await create_rule_row(topup_id, "topup_amount", threshold_amount=Decimal("100"))
        service = build_service(db_session)

        assert (await service.handle_first_login("user_001", now=NOW)).success is True
        assert (await service.handle_first_login("user_001", now=NOW)).success is False

        assert (await service.handle_topup("user_001", Decimal("80"), "TU-1", now=NOW)).success is False
        topup = await service.handle_topup("user_001", Decimal("120"), "TU-2", now=NOW)
        assert topup.success is True
        repeat = await service.handle_topup("user_001", Decimal("120"), "TU-2", now=NOW)
        assert repeat.duplicate is True

        rows = await db_session.execute(
            select(UserVoucherDB.voucher_id).where(UserVoucherDB.user_id == "user_001")
        )
        assert sorted(rows.scalars().all()) == sorted([welcome_id, topup_id])
